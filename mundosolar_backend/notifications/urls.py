from rest_framework.routers import SimpleRouter

from django.urls import include, path

from .views import NotificationViewSet

router = SimpleRouter()
router.register("", NotificationViewSet, basename="notifications")

urlpatterns = [
    path("", include(router.urls)),
]
