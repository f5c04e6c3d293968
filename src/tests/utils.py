"""Shared helpers for tests (ACL seeding, user creation, fake Redis)."""

from __future__ import annotations

from typing import Dict

from django.apps import apps
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from access_control.models import Group
from authentication.managers import UserManager
from authentication.models import Language
from authentication.services import TokenService
from scripts.management.commands.seed_acl import create_default_language, install_core_modules

User = get_user_model()


class FakeRedis:
    """Minimal Redis stub supporting the commands used by TokenService."""

    def __init__(self):
        self._store: Dict[str, str] = {}

    def setex(self, key: str, ttl_seconds: int, value: str) -> None:
        """Mimic Redis SETEX; TTL is ignored in tests, value stored in-memory."""
        self._store[key] = value

    def get(self, key: str):
        """Return stored value for key or None, matching Redis GET semantics."""
        return self._store.get(key)


def services():
    return apps.get_app_config("access_control").services


def seed_core_modules() -> None:
    """Install the modules served by the API, like the ``seed_acl`` command does."""
    install_core_modules(services())


def default_language() -> Language:
    return create_default_language()


def create_user(username: str, password: str, group: Group, **extra):
    """Create a user with a bcrypt-hashed password for tests."""

    extra.setdefault("language", default_language())
    return User.objects.create(
        username=username,
        password_hash=UserManager.hash_password(password),
        group=group,
        **extra,
    )


def auth_client(user) -> APIClient:
    """Return an APIClient authenticated with a fresh access token."""
    token, _ = TokenService.generate_tokens(user)
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")
    return client
