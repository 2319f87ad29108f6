"""
Models for the users app.

`UserProfile` is the denormalised, read-mostly projection of an identity
(`auth.User`) that the rest of the platform joins against.  Its primary
key *is* the user id, so conversation participants and message senders
can only reference users that have a profile row.
"""
from django.conf import settings
from django.db import models


class UserProfile(models.Model):
    """Profile projection keyed by the auth user id."""

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        primary_key=True,
        related_name="profile",
    )
    email = models.EmailField()
    first_name = models.CharField(max_length=150, blank=True, null=True)
    last_name = models.CharField(max_length=150, blank=True, null=True)
    username = models.CharField(max_length=150, blank=True, null=True)
    image_url = models.URLField(max_length=500, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p).strip()

    def __str__(self) -> str:
        return f"Profile<{self.user_id}>"

    class Meta:
        indexes = [
            models.Index(fields=["username"], name="users_profile_username_idx"),
        ]
