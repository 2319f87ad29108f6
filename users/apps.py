from django.apps import AppConfig


class UsersConfig(AppConfig):
    """Configuration for the users app.

    The users app owns the profile projection that conversations and
    messages reference.  Profiles are not created automatically with the
    auth user; the messaging directory provisions them on demand.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "users"
