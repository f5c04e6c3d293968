"""Custom user manager handling bcrypt hashing and verification."""

import uuid

import bcrypt
from django.conf import settings
from django.contrib.auth.base_user import BaseUserManager


class UserManager(BaseUserManager):
    """Manager to create users with bcrypt password hashes."""

    use_in_migrations = True

    def _create_user(self, username: str, password: str, group, language, **extra_fields):
        if not username:
            raise ValueError("The username must be set")
        username = self.model.normalize_username(username)
        user = self.model(id=uuid.uuid4(), username=username, group=group, language=language, **extra_fields)
        user.password_hash = self.hash_password(password)
        user.save(using=self._db)
        return user

    def create_user(self, username: str, password: str | None = None, *, group, language, **extra_fields):
        """Create a regular (non-admin) user with a bcrypt-hashed password."""
        extra_fields.setdefault("admin", False)
        if password is None:
            raise ValueError("Password must be provided")
        return self._create_user(username, password, group, language, **extra_fields)

    def create_superuser(self, username: str, password: str, *, group, language, **extra_fields):
        """Create an admin user, which bypasses every ACL check."""
        extra_fields.setdefault("admin", True)
        extra_fields.setdefault("enabled", True)
        if not extra_fields.get("admin"):
            raise ValueError("Superuser must have admin=True.")
        return self._create_user(username, password, group, language, **extra_fields)

    @staticmethod
    def hash_password(raw_password: str) -> str:
        """Hash a raw password using bcrypt and return the utf-8 string."""
        salt = bcrypt.gensalt(rounds=getattr(settings, "BCRYPT_ROUNDS", 12))
        hashed = bcrypt.hashpw(raw_password.encode(), salt)
        return hashed.decode()

    @staticmethod
    def verify_password(user, raw_password: str) -> bool:
        """Verify raw password against stored bcrypt hash."""

        if not user.password_hash:
            return False
        return bcrypt.checkpw(raw_password.encode(), user.password_hash.encode("utf-8"))


__all__ = ["UserManager"]
