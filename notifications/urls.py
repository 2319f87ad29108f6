"""
URL configuration for the notifications app.

Routes are included under the ``/api/notifications/`` prefix at the
project level.
"""
from django.urls import include, path
from rest_framework.routers import SimpleRouter

from .views import NotificationViewSet

app_name = "notifications"

router = SimpleRouter()
router.register(r"", NotificationViewSet, basename="notification")

urlpatterns = [
    path("", include(router.urls)),
]
