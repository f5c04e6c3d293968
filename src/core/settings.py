"""Django settings for the ACL backend project.

Environment-driven configuration for Postgres, Redis, logging, security
defaults and the access control knobs.
"""
import os
from pathlib import Path
from urllib.parse import urlparse

from django.core.exceptions import ImproperlyConfigured

BASE_DIR = Path(__file__).resolve().parent.parent


def _get_env(name: str, default: str | None = None) -> str | None:
    """Read an environment variable with an optional fallback."""
    return os.environ.get(name, default)


def _parse_database_url(url: str) -> dict:
    """Parse a PostgreSQL-style DATABASE_URL into a Django DATABASES entry."""
    parsed = urlparse(url)
    return {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": parsed.path.lstrip("/"),
        "USER": parsed.username,
        "PASSWORD": parsed.password,
        "HOST": parsed.hostname,
        "PORT": parsed.port or "5432",
    }


SECRET_KEY = _get_env("SECRET_KEY", "dev-secret-key-change-me")
DEBUG = _get_env("DEBUG", "True") == "True"
if not DEBUG and SECRET_KEY in ("change-me", "dev-secret-key-change-me"):
    raise ImproperlyConfigured("SECRET_KEY must be set in production")
ALLOWED_HOSTS = [
    h.strip()
    for h in _get_env("ALLOWED_HOSTS", "localhost,127.0.0.1,0.0.0.0").split(",")
    if h.strip()
]

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.staticfiles",
    "rest_framework",
    "drf_spectacular",
    "access_control",
    "authentication",
    "scripts",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
    # Sets request.user from the bearer token; replaces the session-based
    # AuthenticationMiddleware.
    "core.middleware.JWTAuthMiddleware",
]

ROOT_URLCONF = "core.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
            ],
        },
    },
]

WSGI_APPLICATION = "core.wsgi.application"

DATABASE_URL = _get_env("DATABASE_URL")
if DATABASE_URL:
    DATABASES = {"default": _parse_database_url(DATABASE_URL)}
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": _get_env("POSTGRES_DB", "acl_backend"),
            "USER": _get_env("POSTGRES_USER", "acl_backend"),
            "PASSWORD": _get_env("POSTGRES_PASSWORD", "acl_backend"),
            "HOST": _get_env("POSTGRES_HOST", "localhost"),
            "PORT": _get_env("POSTGRES_PORT", "5433"),
        }
    }

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

AUTH_USER_MODEL = "authentication.User"

DEBUG_AUTH_ERRORS = _get_env("DEBUG_AUTH_ERRORS", "False") == "True"
REDIS_URL = _get_env("REDIS_URL", "redis://localhost:6380/0")
REDIS_SOCKET_TIMEOUT = float(_get_env("REDIS_SOCKET_TIMEOUT", "2.0"))
BCRYPT_ROUNDS = int(_get_env("BCRYPT_ROUNDS", "12"))

# Access control
ACL_GROUP_NAME_MIN_LENGTH = int(_get_env("ACL_GROUP_NAME_MIN_LENGTH", "3"))
ACL_MAX_LOGIN_FAULTS = int(_get_env("ACL_MAX_LOGIN_FAULTS", "9"))
ACL_GROUP_LANDING_MODULE = _get_env("ACL_GROUP_LANDING_MODULE", "users")

LOG_LEVEL = (_get_env("LOG_LEVEL", "INFO") or "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
    "loggers": {
        "django.db.backends": {"level": "WARNING", "propagate": True},
    },
}

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": ["core.authentication.MiddlewareUserAuthentication"],
    "DEFAULT_PERMISSION_CLASSES": [],
    "EXCEPTION_HANDLER": "core.exceptions.custom_exception_handler",
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
}

SPECTACULAR_SETTINGS = {
    "TITLE": "ACL Backend API",
    "DESCRIPTION": (
        "OpenAPI schema for the access control backend: users in groups, "
        "groups granted module/action rules, JWT login with a Redis blocklist."
    ),
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
    "SERVE_PUBLIC": True,
    "APPEND_COMPONENTS": {
        "securitySchemes": {
            "bearerAuth": {
                "type": "http",
                "scheme": "bearer",
                "bearerFormat": "JWT",
            }
        }
    },
    # Apply JWT bearer auth by default to operations unless overridden.
    "SECURITY": [{"bearerAuth": []}],
}
