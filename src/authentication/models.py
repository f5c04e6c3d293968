"""Language and User models; users belong to exactly one ACL group.

Note: Django's built-in groups/permissions (PermissionsMixin) are not used.
Authorization goes exclusively through the access_control Group/Rule/Acl
tables.
"""

import uuid
from typing import ClassVar, Optional

from django.contrib.auth.models import AbstractBaseUser
from django.db import models

from .managers import UserManager


class Language(models.Model):
    """Interface language a user can pick."""

    code = models.CharField(max_length=7, unique=True)
    name = models.CharField(max_length=50)
    is_default = models.BooleanField(default=False)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.name


class User(AbstractBaseUser):
    """User identified by username, with bcrypt hashes and an ACL group.

    ``admin`` users bypass every ACL check. ``faults`` counts consecutive
    failed logins; ``last_login`` comes from AbstractBaseUser.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    username = models.CharField(max_length=150, unique=True)
    password_hash = models.CharField(max_length=128)
    name = models.CharField(max_length=150, blank=True)
    surname = models.CharField(max_length=150, blank=True)
    email = models.EmailField(null=True, blank=True)
    group = models.ForeignKey("access_control.Group", on_delete=models.PROTECT, related_name="users")
    language = models.ForeignKey(Language, on_delete=models.PROTECT, related_name="users")
    admin = models.BooleanField(default=False)
    enabled = models.BooleanField(default=True)
    faults = models.PositiveIntegerField(default=0)
    token_version = models.PositiveIntegerField(default=1)
    date_joined = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    USERNAME_FIELD = "username"
    REQUIRED_FIELDS: ClassVar[list[str]] = []

    objects = UserManager()

    class Meta:
        ordering = ["name", "surname", "username"]

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.username

    @property
    def is_active(self) -> bool:
        return self.enabled

    @property
    def full_name(self) -> str:
        return f"{self.name} {self.surname}".strip() or self.username

    def set_password(self, raw_password: Optional[str]) -> None:  # type: ignore[override]
        """Override to ensure bcrypt hashing via manager utility."""

        if raw_password is None:
            self.password_hash = ""
        else:
            self.password_hash = UserManager.hash_password(raw_password)

    def check_password(self, raw_password: Optional[str]) -> bool:  # type: ignore[override]
        """Delegate to bcrypt verification helper."""

        if raw_password is None:
            return False
        return UserManager.verify_password(self, raw_password)


__all__ = ["Language", "User"]
