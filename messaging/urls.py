# messaging/urls.py
"""
URL configuration for the messaging app.

Defines REST endpoints for conversations and their nested messages.
These routes are included under the ``/api/messaging/`` prefix at the
project level.
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import ConversationViewSet

app_name = "messaging"

router = DefaultRouter()
router.register(r"conversations", ConversationViewSet, basename="conversation")

urlpatterns = [
    path("", include(router.urls)),
]
