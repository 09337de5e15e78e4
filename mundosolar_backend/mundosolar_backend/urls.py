"""
URL configuration for mundosolar_backend project.

Every JSON endpoint lives under /api/ and is aggregated in api/urls.py.
"""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include("api.urls")),
]
