from django.urls import path

from .views import (
    AuthInitializeView,
    AuthStateView,
    RefreshView,
    SignInView,
    SignOutView,
)

app_name = 'accounts'

urlpatterns = [
    path('state/', AuthStateView.as_view(), name='state'),
    path('initialize/', AuthInitializeView.as_view(), name='initialize'),
    path('sign-in/', SignInView.as_view(), name='sign-in'),
    path('refresh/', RefreshView.as_view(), name='refresh'),
    path('sign-out/', SignOutView.as_view(), name='sign-out'),
]
