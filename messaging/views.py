"""
Views for the messaging app.

Expose REST endpoints over the conversation directory, the message store
and the read-state tracker.  Authentication is required for all
endpoints.  The underlying helpers never raise for expected failures, so
the views only translate their None/empty/False results into responses:

 - GET  /conversations/                  inbox summaries
 - GET  /conversations/<id>/             one summary (404 if not a participant)
 - POST /conversations/direct/           resolve or start a direct conversation
 - GET  /conversations/<id>/messages/    ordered thread (empty for non-participants)
 - POST /conversations/<id>/messages/    send a message
 - POST /conversations/<id>/read/        mark the conversation read
"""
from __future__ import annotations

import logging

from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound
from rest_framework.response import Response

from . import directory, read_state, services
from .serializers import (
    ConversationSerializer,
    DirectConversationSerializer,
    MessageCreateSerializer,
    MessageSerializer,
)

logger = logging.getLogger(__name__)


class ConversationViewSet(viewsets.ViewSet):
    """ViewSet for listing conversations and their messages."""

    permission_classes = [permissions.IsAuthenticated]

    def list(self, request, *args, **kwargs):
        conversations = directory.list_conversations(request.user)
        serializer = ConversationSerializer(conversations, many=True, context={"request": request})
        return Response(serializer.data)

    def retrieve(self, request, pk=None, *args, **kwargs):
        conversation = directory.get_conversation(request.user, pk)
        if conversation is None:
            raise NotFound("Conversation not found.")
        serializer = ConversationSerializer(conversation, context={"request": request})
        return Response(serializer.data)

    @action(detail=False, methods=["post"], url_path="direct")
    def direct(self, request):
        """
        Return the direct conversation with another user, creating it on
        first contact.  Idempotent: repeated calls return the same id.
        """
        payload = DirectConversationSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        conversation_id = directory.resolve_or_create_direct(
            request.user, payload.validated_data["other_user_id"]
        )
        if conversation_id is None:
            return Response(
                {"detail": "Could not start conversation."}, status=status.HTTP_400_BAD_REQUEST
            )
        return Response({"conversation_id": str(conversation_id)})

    @action(detail=True, methods=["get", "post"], url_path="messages")
    def messages(self, request, pk=None):
        if request.method == "GET":
            messages = services.list_messages(request.user, pk)
            return Response(MessageSerializer(messages, many=True).data)

        payload = MessageCreateSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        message = services.append(request.user, pk, payload.validated_data["content"])
        if message is None:
            return Response(
                {"detail": "Message could not be sent."}, status=status.HTTP_400_BAD_REQUEST
            )
        return Response(MessageSerializer(message).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="read")
    def read(self, request, pk=None):
        return Response({"ok": read_state.mark_read(request.user, pk)})
