"""
Redis Connection Manager

Owns the one Redis connection the server process uses. Constructed explicitly at
startup (see main.py), injected into the stores through `get_connection_manager`,
closed at shutdown.

- Lazy: nothing connects until the first `acquire()`.
- Concurrent callers during a connect share that single attempt.
- After a failed attempt, reconnects wait out a cooldown and a capped
  exponential backoff; inside that window `acquire()` fails fast.
"""
import logging
import threading
import time
from concurrent.futures import Future
from typing import Callable, Optional

import redis
from fastapi import Request
from redis.exceptions import RedisError

from core.config import settings
from core.errors import ConnectionUnavailable
from core.execution_context import ensure_server_side

logger = logging.getLogger(__name__)


class RedisConnectionManager:
    """Single lazily-initialized, auto-reconnecting Redis handle."""

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        client_factory: Optional[Callable[[], redis.Redis]] = None,
        cooldown_s: Optional[float] = None,
        backoff_base_s: Optional[float] = None,
        backoff_max_s: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.url = url or settings.REDIS_URL
        self._client_factory = client_factory or self._default_factory
        self.cooldown_s = settings.REDIS_RECONNECT_COOLDOWN_S if cooldown_s is None else cooldown_s
        self.backoff_base_s = (
            settings.REDIS_RECONNECT_BACKOFF_BASE_S if backoff_base_s is None else backoff_base_s
        )
        self.backoff_max_s = (
            settings.REDIS_RECONNECT_BACKOFF_MAX_S if backoff_max_s is None else backoff_max_s
        )
        self._clock = clock

        self._lock = threading.Lock()
        self._client: Optional[redis.Redis] = None
        self._pending: Optional[Future] = None
        self._failures = 0
        self._last_failure_at: Optional[float] = None

    def _default_factory(self) -> redis.Redis:
        return redis.from_url(
            self.url,
            decode_responses=True,
            socket_connect_timeout=settings.REDIS_CONNECT_TIMEOUT_S,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT_S,
            retry_on_timeout=True,
            health_check_interval=30,
        )

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    def retry_delay(self) -> float:
        """Seconds that must separate the last failure from the next attempt."""
        if self._failures == 0:
            return 0.0
        backoff = min(self.backoff_base_s * (2 ** (self._failures - 1)), self.backoff_max_s)
        return max(self.cooldown_s, backoff)

    def _cooldown_remaining(self) -> float:
        if self._last_failure_at is None:
            return 0.0
        elapsed = self._clock() - self._last_failure_at
        return max(0.0, self.retry_delay() - elapsed)

    def acquire(self) -> redis.Redis:
        """Return a ready connection or raise ConnectionUnavailable."""
        ensure_server_side()

        with self._lock:
            if self._client is not None:
                return self._client

            owner = False
            if self._pending is None:
                remaining = self._cooldown_remaining()
                if remaining > 0:
                    raise ConnectionUnavailable(
                        f"Redis reconnect cooldown active ({remaining:.1f}s remaining)"
                    )
                self._pending = Future()
                owner = True
            pending = self._pending

        if owner:
            self._connect(pending)

        # Waiters block on the owner's attempt instead of starting their own
        return pending.result()

    def _connect(self, pending: Future) -> None:
        """Run the shared attempt. The future is always settled and `_pending` cleared."""
        try:
            client = self._client_factory()
            # Liveness probe before publishing the handle
            client.ping()
        except (RedisError, OSError) as e:
            failures = self._record_failure()
            logger.warning(f"Redis unavailable: {e} (consecutive failures: {failures})")
            pending.set_exception(ConnectionUnavailable(f"Redis unavailable: {e}"))
            return
        except Exception as e:
            # Misconfiguration (e.g. a malformed REDIS_URL): every waiter gets the real error
            failures = self._record_failure()
            logger.error(f"Redis client could not be created: {e} (consecutive failures: {failures})")
            pending.set_exception(e)
            return

        with self._lock:
            self._client = client
            self._failures = 0
            self._last_failure_at = None
            self._pending = None
        logger.info("Redis connection established")
        pending.set_result(client)

    def _record_failure(self) -> int:
        with self._lock:
            self._failures += 1
            self._last_failure_at = self._clock()
            self._pending = None
            return self._failures

    def mark_unhealthy(self, error: Exception) -> None:
        """Drop the current handle after a transport failure."""
        with self._lock:
            client, self._client = self._client, None
            self._failures += 1
            self._last_failure_at = self._clock()
        logger.warning(f"Redis connection dropped: {error}")
        self._close_quietly(client)

    def ping(self) -> bool:
        """Health probe. False when Redis cannot be reached."""
        try:
            client = self.acquire()
        except ConnectionUnavailable:
            return False

        try:
            return bool(client.ping())
        except (RedisError, OSError) as e:
            self.mark_unhealthy(e)
            return False

    def close(self) -> None:
        with self._lock:
            client, self._client = self._client, None
        if client is not None:
            self._close_quietly(client)
            logger.info("Redis connection closed")

    @staticmethod
    def _close_quietly(client: Optional[redis.Redis]) -> None:
        if client is None or not hasattr(client, "close"):
            return
        try:
            client.close()
        except (RedisError, OSError) as e:
            logger.debug(f"Ignoring error while closing Redis client: {e}")


def get_connection_manager(request: Request) -> RedisConnectionManager:
    """FastAPI dependency: the manager created at application startup."""
    return request.app.state.redis_manager
