"""
Admin configuration for the users app.

Profiles are listed read-mostly; they are provisioned by the messaging
directory, so the admin is mainly a lookup tool.
"""
from django.contrib import admin

from .models import UserProfile


@admin.register(UserProfile)
class UserProfileAdmin(admin.ModelAdmin):
    list_display = ("user_id", "username", "email", "first_name", "last_name", "created_at")
    search_fields = ("username", "email", "first_name", "last_name")
    ordering = ("-created_at",)
