"""Middleware resolving ``request.user`` from a bearer access token.

A token is accepted only when it decodes as an access token, its ``jti`` is
not blocklisted, its ``ver`` claim equals the user's current
``token_version`` and the user is still enabled. Anything else answers 401
before the view runs; an unreachable blocklist answers 503.
"""

import logging
from typing import Optional

from django.contrib.auth.models import AnonymousUser
from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin
from rest_framework import status
from rest_framework.exceptions import AuthenticationFailed

from authentication.models import User
from authentication.services import BlocklistUnavailable, TokenService

logger = logging.getLogger(__name__)

UNAUTHORIZED_MESSAGE = (
    "Authentication credentials were not provided or are invalid, token revoked, or user is disabled."
)


class JWTAuthMiddleware(MiddlewareMixin):
    """Attach the token's user, or AnonymousUser when no bearer token is sent."""

    def process_request(self, request):  # type: ignore[override]
        token = _bearer_token(request)
        if token is None:
            request.user = AnonymousUser()
            return None

        try:
            request.user = self.authenticate(token)
        except AuthenticationFailed as exc:
            logger.debug("Bearer token rejected: %s", exc.detail)
            return _envelope(UNAUTHORIZED_MESSAGE, status.HTTP_401_UNAUTHORIZED)
        except BlocklistUnavailable:
            logger.error("Token blocklist unavailable, refusing authenticated request")
            return _envelope(
                "Authentication service unavailable (blocklist).", status.HTTP_503_SERVICE_UNAVAILABLE
            )
        return None

    @staticmethod
    def authenticate(token: str) -> User:
        """Return the enabled user owning ``token`` or raise AuthenticationFailed."""
        payload = TokenService.decode_token(token, expected_type="access")
        jti = payload.get("jti")
        if not jti or TokenService.is_token_blocked(jti):
            raise AuthenticationFailed("Token revoked")

        user = _load_user(payload.get("sub"))
        if user is None or not user.enabled:
            raise AuthenticationFailed("User not found or disabled")
        if payload.get("ver") != user.token_version:
            raise AuthenticationFailed("Token issued before the last logout-all")
        return user


def _bearer_token(request) -> Optional[str]:
    auth_header = request.META.get("HTTP_AUTHORIZATION", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1]


def _load_user(user_id: Optional[str]) -> Optional[User]:
    if not user_id:
        return None
    try:
        return User.objects.select_related("group", "language").get(id=user_id)
    except (User.DoesNotExist, ValueError):
        return None


def _envelope(message: str, status_code: int) -> JsonResponse:
    return JsonResponse({"data": None, "errors": [message]}, status=status_code)


__all__ = ["JWTAuthMiddleware"]
