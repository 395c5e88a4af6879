"""
Circuit Breaker for the upstream video API

Once the video service keeps failing, further calls are rejected locally
until a cool-down passes; then a few trial calls decide whether to close
again.

States:
- CLOSED: Calls pass through, consecutive failures are counted
- OPEN: Calls are rejected with CircuitBreakerOpen
- HALF_OPEN: A limited number of trial calls are let through

A failure is either a raised exception or a result the configured
``is_failure`` predicate rejects (for the video API: any 5xx response).
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """Thresholds for one breaker."""
    failure_threshold: int = 5  # Consecutive failures before opening
    recovery_timeout: float = 30.0  # Seconds OPEN before trial calls
    half_open_max_calls: int = 3
    success_threshold: int = 2  # Trial successes needed to close
    timeout: Optional[float] = 60.0  # Per-call timeout, None disables it
    is_failure: Optional[Callable[[Any], bool]] = None


@dataclass
class CircuitBreakerStats:
    state: CircuitState = CircuitState.CLOSED
    consecutive_failures: int = 0
    trial_calls: int = 0
    trial_successes: int = 0
    opened_at: float = 0.0
    total_calls: int = 0
    total_failures: int = 0
    total_rejected: int = 0
    last_failure: Optional[str] = None


class CircuitBreakerOpen(Exception):
    """Raised instead of calling upstream while the circuit is open."""

    def __init__(self, service_name: str, retry_after: float):
        self.service_name = service_name
        self.retry_after = max(retry_after, 0.0)
        super().__init__(
            f"{service_name} is unavailable (circuit open), "
            f"retry in {self.retry_after:.0f}s"
        )


class CircuitBreaker:
    """
    Circuit breaker guarding calls to one upstream service.

    Usage:
        breaker = get_upstream_breaker()
        response = await breaker.call(http_client.send, request)
    """

    def __init__(
        self,
        service_name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.service_name = service_name
        self.config = config or CircuitBreakerConfig()
        self.stats = CircuitBreakerStats()
        self._clock = clock
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self.stats.state

    def _set_state(self, state: CircuitState):
        previous = self.stats.state
        self.stats.state = state

        if state == CircuitState.OPEN:
            self.stats.opened_at = self._clock()
        elif state == CircuitState.HALF_OPEN:
            self.stats.trial_calls = 0
            self.stats.trial_successes = 0
        else:
            self.stats.consecutive_failures = 0

        logger.info(f"Circuit [{self.service_name}] {previous.value} -> {state.value}")

    async def _admit(self):
        async with self._lock:
            self.stats.total_calls += 1

            if self.stats.state == CircuitState.OPEN:
                waited = self._clock() - self.stats.opened_at
                if waited < self.config.recovery_timeout:
                    self.stats.total_rejected += 1
                    raise CircuitBreakerOpen(
                        self.service_name, self.config.recovery_timeout - waited
                    )
                self._set_state(CircuitState.HALF_OPEN)

            if self.stats.state == CircuitState.HALF_OPEN:
                if self.stats.trial_calls >= self.config.half_open_max_calls:
                    self.stats.total_rejected += 1
                    raise CircuitBreakerOpen(self.service_name, self.config.recovery_timeout)
                self.stats.trial_calls += 1

    async def _record_success(self):
        async with self._lock:
            if self.stats.state == CircuitState.HALF_OPEN:
                self.stats.trial_successes += 1
                if self.stats.trial_successes >= self.config.success_threshold:
                    self._set_state(CircuitState.CLOSED)
            else:
                self.stats.consecutive_failures = 0

    async def _record_failure(self, reason: str):
        async with self._lock:
            self.stats.consecutive_failures += 1
            self.stats.total_failures += 1
            self.stats.last_failure = reason

            logger.warning(
                f"Circuit [{self.service_name}] failure "
                f"{self.stats.consecutive_failures}/{self.config.failure_threshold}: {reason}"
            )

            if self.stats.state == CircuitState.HALF_OPEN:
                self._set_state(CircuitState.OPEN)
            elif (
                self.stats.state == CircuitState.CLOSED
                and self.stats.consecutive_failures >= self.config.failure_threshold
            ):
                self._set_state(CircuitState.OPEN)

    async def call(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """
        Run func under the breaker.

        Raises:
            CircuitBreakerOpen: The circuit is open; func was not called
            asyncio.TimeoutError: The call exceeded the configured timeout
            Exception: Whatever func raised
        """
        await self._admit()

        try:
            if self.config.timeout is None:
                result = await func(*args, **kwargs)
            else:
                result = await asyncio.wait_for(func(*args, **kwargs), self.config.timeout)
        except Exception as e:
            await self._record_failure(f"{type(e).__name__}: {e}")
            raise

        if self.config.is_failure is not None and self.config.is_failure(result):
            await self._record_failure(f"rejected result {result!r}")
        else:
            await self._record_success()
        return result

    def reset(self):
        self.stats = CircuitBreakerStats()
        logger.info(f"Circuit [{self.service_name}] reset")

    def get_status(self) -> dict:
        return {
            "service": self.service_name,
            "state": self.stats.state.value,
            "consecutive_failures": self.stats.consecutive_failures,
            "total_calls": self.stats.total_calls,
            "total_failures": self.stats.total_failures,
            "total_rejected": self.stats.total_rejected,
            "last_failure": self.stats.last_failure,
        }


def _is_server_error(response: Any) -> bool:
    return getattr(response, "status_code", 0) >= 500


def get_upstream_breaker(timeout: Optional[float] = None) -> CircuitBreaker:
    """
    Build a breaker tuned for the video generation API.

    No per-call timeout by default; the httpx client enforces
    VIDEO_HTTP_TIMEOUT. 5xx responses count as failures, 4xx do not.
    """
    return CircuitBreaker(
        "azure_video",
        CircuitBreakerConfig(
            failure_threshold=5,
            recovery_timeout=30.0,
            timeout=timeout,
            is_failure=_is_server_error,
        ),
    )
