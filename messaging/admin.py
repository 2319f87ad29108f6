# messaging/admin.py
from django.contrib import admin

from .models import Conversation, ConversationParticipant, Message


class ParticipantInline(admin.TabularInline):
    model = ConversationParticipant
    extra = 0
    raw_id_fields = ("user",)
    readonly_fields = ("joined_at", "last_read_at")


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    list_display = ("id", "type", "direct_key", "updated_at", "created_at")
    list_filter = ("type", "updated_at")
    search_fields = ("id", "direct_key")
    ordering = ("-updated_at",)
    inlines = [ParticipantInline]


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ("id", "conversation", "sender", "created_at", "edited_at")
    list_filter = ("created_at",)
    search_fields = ("sender__username", "content")
    raw_id_fields = ("conversation", "sender")
    ordering = ("-created_at",)
