"""DRF authenticator surfacing the user attached by ``JWTAuthMiddleware``.

Token parsing, blocklist and token-version checks all happen in the
middleware; DRF only needs to see the result so that permission classes
and ``request.user`` agree.
"""

from typing import Any, Optional, Tuple

from rest_framework.authentication import BaseAuthentication


class MiddlewareUserAuthentication(BaseAuthentication):
    """Expose ``request._request.user`` to DRF; anonymous users are skipped."""

    def authenticate(self, request) -> Optional[Tuple[Any, None]]:
        django_request = getattr(request, "_request", None)
        user = getattr(django_request, "user", None)
        if user is None or not getattr(user, "is_authenticated", False):
            return None
        return user, None

    def authenticate_header(self, request) -> str:
        return 'Bearer realm="api"'


__all__ = ["MiddlewareUserAuthentication"]
