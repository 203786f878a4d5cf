from django.apps import AppConfig


class CoreConfig(AppConfig):
    """Scheduling plumbing shared by the other apps."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "recruitdesk.core"
