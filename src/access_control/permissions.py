"""DRF permission class asking the authorization engine about module actions."""

from django.apps import apps
from rest_framework import permissions


class AccessControlMixin:
    """Give a view access to the access control services built at startup."""

    @property
    def services(self):
        return apps.get_app_config("access_control").services


class AclPermission(permissions.BasePermission):
    """Allow the request when the user may run ``view.acl_module`` / ``view.action``.

    The requested action is the viewset action name, with ``partial_update``
    folded into ``update``. Admin users bypass the ACL inside the engine.
    """

    message = "You do not have permission to perform this action on this resource."

    action_aliases = {"partial_update": "update"}

    def has_permission(self, request, view) -> bool:
        module = getattr(view, "acl_module", None)
        if not module:
            return False

        user = getattr(request, "user", None)
        if not user or not getattr(user, "is_authenticated", False):
            return False

        services = getattr(view, "services", None)
        if services is None:
            return False

        return services.engine.authorize(user, module, self._requested_action(view))

    def _requested_action(self, view):
        action = getattr(view, "action", None)
        return self.action_aliases.get(action, action)


__all__ = ["AclPermission", "AccessControlMixin"]
