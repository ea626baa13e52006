"""Supervised Redis connections with bounded retry and a circuit breaker."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Callable, TypeVar

from redis import Redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..domain.errors import TransportUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_ERRORS = (RedisConnectionError, RedisTimeoutError)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Exponential backoff bounded by ``max_attempts`` and ``max_delay``."""

    max_attempts: int = 5
    base_delay: float = 0.2
    max_delay: float = 5.0

    def delay(self, attempt: int) -> float:
        """Seconds to wait after the ``attempt``-th failure (1-based)."""
        return min(self.max_delay, self.base_delay * 2 ** (attempt - 1))


class CircuitState(str, Enum):
    closed = "closed"
    open = "open"
    half_open = "half_open"


class CircuitBreaker:
    """Stops calling a dead backend until ``reset_timeout`` has passed."""

    def __init__(
        self,
        failure_threshold: int = 3,
        reset_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._failure_threshold = failure_threshold
        self._reset_timeout = reset_timeout
        self._clock = clock
        self._failures = 0
        self._opened_at = 0.0
        self._half_opened_at = 0.0
        self._state = CircuitState.closed
        self._lock = Lock()

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    def allow(self) -> bool:
        """Return ``True`` when a call may go through.

        An open breaker turns half-open once the reset timeout has elapsed and
        lets one trial call pass. A trial that never reports back does not pin
        the breaker: another one is admitted after a further reset timeout.
        """
        with self._lock:
            if self._state is CircuitState.closed:
                return True
            now = self._clock()
            if self._state is CircuitState.open:
                started = self._opened_at
            else:
                started = self._half_opened_at
            if now - started >= self._reset_timeout:
                self._state = CircuitState.half_open
                self._half_opened_at = now
                return True
            return False

    def record_success(self) -> None:
        with self._lock:
            self._failures = 0
            self._state = CircuitState.closed

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            if self._state is CircuitState.half_open or self._failures >= self._failure_threshold:
                self._state = CircuitState.open
                self._opened_at = self._clock()


class SupervisedRedis:
    """Runs Redis operations, reconnecting on transport errors.

    Each call is tried up to ``policy.max_attempts`` times with exponential
    backoff, dropping and re-creating the client between attempts. A call
    that exhausts its attempts, or arrives while the breaker is open, raises
    :class:`TransportUnavailable`. Nothing here exits the process.
    """

    def __init__(
        self,
        connect: Callable[[], Redis],
        *,
        name: str,
        policy: RetryPolicy | None = None,
        breaker: CircuitBreaker | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._connect = connect
        self._name = name
        self._policy = policy or RetryPolicy()
        self._breaker = breaker or CircuitBreaker()
        self._sleep = sleep
        self._client: Redis | None = None
        self._lock = Lock()

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    def _get_client(self) -> Redis:
        with self._lock:
            if self._client is None:
                self._client = self._connect()
            return self._client

    def _reset_client(self) -> None:
        with self._lock:
            client, self._client = self._client, None
        if client is not None:
            try:
                client.close()
            except Exception:  # pragma: no cover - best effort on a broken socket
                logger.debug("error closing %s client", self._name, exc_info=True)

    def execute(self, operation: Callable[[Redis], T]) -> T:
        if not self._breaker.allow():
            raise TransportUnavailable(f"{self._name} circuit is open")

        last_error: Exception | None = None
        for attempt in range(1, self._policy.max_attempts + 1):
            try:
                result = operation(self._get_client())
            except _TRANSIENT_ERRORS as exc:
                last_error = exc
                self._reset_client()
                if attempt == self._policy.max_attempts:
                    break
                delay = self._policy.delay(attempt)
                logger.warning(
                    "%s unreachable (attempt %s/%s), reconnecting in %.2fs: %s",
                    self._name,
                    attempt,
                    self._policy.max_attempts,
                    delay,
                    exc,
                )
                self._sleep(delay)
            except Exception:
                # the server answered, so the transport is healthy
                self._breaker.record_success()
                raise
            else:
                self._breaker.record_success()
                return result

        self._breaker.record_failure()
        logger.error("%s unavailable after %s attempts", self._name, self._policy.max_attempts)
        raise TransportUnavailable(f"{self._name} is unavailable") from last_error
