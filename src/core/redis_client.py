"""Redis connection used by the JWT blocklist."""

import redis
from django.conf import settings

_client: redis.Redis | None = None


def get_redis_client() -> redis.Redis:
    """Return the process-wide client built from REDIS_URL.

    Socket timeouts come from REDIS_SOCKET_TIMEOUT; TokenService turns
    connection errors into BlocklistUnavailable.
    """

    global _client
    if _client is None:
        timeout = getattr(settings, "REDIS_SOCKET_TIMEOUT", 2.0)
        _client = redis.Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
    return _client


__all__ = ["get_redis_client"]
