"""
URL configuration for the contact admin project.

The `urlpatterns` list routes URLs to views. For more information please see:
    https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""
from django.urls import path, include

urlpatterns = [
    path('api/auth/', include('accounts.urls')),
    path('api/admin/', include('contact.admin_urls')),
]
