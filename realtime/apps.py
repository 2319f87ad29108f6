from django.apps import AppConfig


class RealtimeConfig(AppConfig):
    """Configuration for the realtime app.

    The realtime app provides the row-level change feed: publishers push
    insert/update events into channel-layer groups, and `Subscription`
    objects deliver them to callbacks.  This config simply registers the
    app with Django.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "realtime"
