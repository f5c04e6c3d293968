"""Seed core modules and rules, the default group, a language and an admin user."""

from django.apps import apps
from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from access_control.models import Acl, Group, Module, Rule
from authentication.models import Language

CORE_MODULES = {
    "users": ["list", "retrieve", "create", "update", "destroy"],
    "groups": ["list", "retrieve", "create", "update", "destroy", "missing_rules", "add_all", "default_acl"],
    "rules": ["list", "retrieve", "create", "update", "destroy"],
    "acl": ["list", "retrieve", "create", "destroy"],
}
# Rule and grant administration stays with admins by default.
ADMIN_ONLY_MODULES = {"rules"}

DEFAULT_GROUP = "Users"
ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "adminpass"


class Command(BaseCommand):
    """Management command to install the core modules and a usable default setup."""

    help = (
        "Install the core modules and their rules, a default group with a landing "
        "grant, the English language and an admin user. Use --reset to clear "
        "previously seeded data first."
    )

    def add_arguments(self, parser):
        parser.add_argument(
            "--reset",
            action="store_true",
            help="Remove the seeded admin user, groups, grants, rules and modules before seeding.",
        )

    def handle(self, *args, **options):
        """Entrypoint for the management command."""
        services = apps.get_app_config("access_control").services

        if options.get("reset"):
            self._reset_seeded_data()

        self.stdout.write("Seeding ACL data...")
        install_core_modules(services)
        group = create_default_group(services)
        language = create_default_language()
        create_admin_user(group, language)
        self.stdout.write(self.style.SUCCESS("ACL seed completed."))

    def _reset_seeded_data(self) -> None:
        """Remove the seeded admin, the grants and rules of the core modules, and empty groups."""
        self.stdout.write("Resetting previously seeded ACL data...")

        get_user_model().objects.filter(username=ADMIN_USERNAME).delete()
        Acl.objects.filter(rule__module__name__in=CORE_MODULES).delete()
        Rule.objects.filter(module__name__in=CORE_MODULES).delete()
        Module.objects.filter(name__in=CORE_MODULES).delete()
        Group.objects.filter(name=DEFAULT_GROUP, users__isnull=True).delete()

        self.stdout.write(self.style.WARNING("Seeded ACL data cleared."))


def install_core_modules(services) -> None:
    """Register the modules served by this API together with their actions."""
    for name, actions in CORE_MODULES.items():
        services.rules.install_module(name, actions, admin_only=name in ADMIN_ONLY_MODULES)


def create_default_group(services) -> Group:
    """Return the default group, creating it (with its landing grant) if missing."""
    group = Group.objects.filter(is_default=True).first()
    if group is not None:
        return group
    group = Group.objects.filter(name=DEFAULT_GROUP).first()
    if group is not None:
        return services.groups.update(group.pk, is_default=True)
    return services.groups.create(DEFAULT_GROUP, is_default=True)


def create_default_language() -> Language:
    language, _ = Language.objects.get_or_create(
        code="en", defaults={"name": "English", "is_default": True}
    )
    return language


def create_admin_user(group: Group, language: Language):
    """Create the admin account used to bootstrap the installation."""
    User = get_user_model()
    admin = User.objects.filter(username=ADMIN_USERNAME).first()
    if admin is None:
        admin = User.objects.create_superuser(
            ADMIN_USERNAME,
            ADMIN_PASSWORD,
            group=group,
            language=language,
            name="Admin",
            surname="User",
        )
    return admin
