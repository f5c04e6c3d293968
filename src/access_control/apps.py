"""App configuration for the access_control Django application.

Builds the access control services once at startup and registers the ACL
system checks.
"""

from django.apps import AppConfig


class AccessControlConfig(AppConfig):
    """Application configuration for the access_control app.

    ``services`` holds the single ``AccessControl`` bundle that views and the
    permission class receive; nothing else constructs the services.
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "access_control"

    services = None

    def ready(self) -> None:
        """Wire the services and register system checks when the app is loaded."""
        from . import checks  # noqa: F401
        from .services import AccessControl

        self.services = AccessControl()
