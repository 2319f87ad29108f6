from django.conf import settings
from django.db import models


class Notification(models.Model):
    KIND_MESSAGE = "message"
    KIND_CHOICES = [
        ("welcome", "Welcome"),
        (KIND_MESSAGE, "Message"),
        ("invitation", "Invitation"),
        ("team", "Team"),
        ("system", "System"),
    ]

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL, related_name="notifications", on_delete=models.CASCADE
    )
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        related_name="notifications_as_actor",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
    )
    kind = models.CharField(max_length=32, choices=KIND_CHOICES)
    title = models.CharField(max_length=200, blank=True)
    description = models.TextField(blank=True, default="")
    link = models.CharField(max_length=255, blank=True, default="")
    data = models.JSONField(default=dict, blank=True)
    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["recipient", "is_read", "created_at"], name="notif_recipient_read_idx"),
            models.Index(fields=["kind"], name="notif_kind_idx"),
        ]

    def __str__(self):
        return f"Notification(to={self.recipient_id}, kind={self.kind})"
