from django.urls import path

from growatt import views

urlpatterns = [
    path("cron/sync/", views.cron_sync, name="growatt_cron_sync"),
    path("cached/", views.cached_systems, name="growatt_cached"),
    path("cache/stats/", views.cache_statistics, name="growatt_cache_stats"),
    path("cache/<int:client_id>/", views.client_cache, name="growatt_client_cache"),
    path("test-credentials/", views.test_credentials, name="growatt_test_credentials"),
]
