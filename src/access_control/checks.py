"""System checks for ACL configuration."""

from django.core.checks import Error, Tags, Warning, register
from django.db import DatabaseError

from access_control.permissions import AclPermission


@register()
def acl_views_have_module(app_configs, **kwargs):
    """Ensure ACL-protected views declare the module their actions belong to.

    Only the viewsets known to this project are inspected. New ACL-protected
    views should be added to the list below.
    """
    errors: list[Error] = []

    # Import here to avoid circular imports at module load time.
    from access_control.views import AclViewSet, GroupViewSet, RuleViewSet
    from authentication.views import UserViewSet

    acl_views = [RuleViewSet, GroupViewSet, AclViewSet, UserViewSet]

    for view_cls in acl_views:
        permission_classes = getattr(view_cls, "permission_classes", [])
        if AclPermission in permission_classes and not getattr(view_cls, "acl_module", None):
            errors.append(
                Error(
                    f"{view_cls.__name__} uses AclPermission but does not define acl_module.",
                    obj=view_cls,
                    id="access_control.E001",
                )
            )

    return errors


@register(Tags.database)
def default_group_configured(app_configs, **kwargs):
    """Warn when no group is flagged default; the system keeps running degraded."""
    from access_control.models import Group

    try:
        has_default = Group.objects.filter(is_default=True).exists()
    except DatabaseError:
        # Tables not migrated yet.
        return []

    if has_default:
        return []
    return [
        Warning(
            "No default group is configured.",
            hint="Flag one group as default or run 'manage.py seed_acl'.",
            id="access_control.W001",
        )
    ]
