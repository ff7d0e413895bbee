"""
Contact Submissions Admin URL Configuration
"""
from django.urls import path
from .views import (
    ContactSubmissionActionView,
    ContactSubmissionDetailView,
    ContactSubmissionListView,
    ContactStatsView,
)

app_name = 'contact_admin'

urlpatterns = [
    path('contact-submissions/', ContactSubmissionListView.as_view(), name='submission-list'),
    path('contact-submissions/<str:id>/', ContactSubmissionDetailView.as_view(), name='submission-detail'),
    path('contact-submissions/<str:id>/mark-read/',
         ContactSubmissionActionView.as_view(action='mark_as_read'), name='submission-mark-read'),
    path('contact-submissions/<str:id>/mark-replied/',
         ContactSubmissionActionView.as_view(action='mark_as_replied'), name='submission-mark-replied'),
    path('contact-submissions/<str:id>/archive/',
         ContactSubmissionActionView.as_view(action='archive'), name='submission-archive'),
    path('contact-stats/', ContactStatsView.as_view(), name='stats'),
]
