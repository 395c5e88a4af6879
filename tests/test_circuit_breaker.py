"""
Circuit breaker tests - opening, rejection and half-open recovery.
"""

import asyncio

import httpx
import pytest

from core.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerOpen,
    CircuitState,
    get_upstream_breaker,
)


class ManualClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


async def ok():
    return "ok"


async def boom():
    raise RuntimeError("boom")


def make_breaker(clock, **overrides) -> CircuitBreaker:
    config = CircuitBreakerConfig(failure_threshold=2, recovery_timeout=30.0, **overrides)
    return CircuitBreaker("test", config, clock=clock)


class TestCircuitBreaker:

    @pytest.mark.asyncio
    async def test_opens_after_consecutive_failures(self):
        breaker = make_breaker(ManualClock())

        for _ in range(2):
            with pytest.raises(RuntimeError):
                await breaker.call(boom)

        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitBreakerOpen):
            await breaker.call(ok)
        assert breaker.get_status()["total_rejected"] == 1

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self):
        breaker = make_breaker(ManualClock())

        with pytest.raises(RuntimeError):
            await breaker.call(boom)
        await breaker.call(ok)
        with pytest.raises(RuntimeError):
            await breaker.call(boom)

        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_trials_close_circuit(self):
        clock = ManualClock()
        breaker = make_breaker(clock, success_threshold=2)
        for _ in range(2):
            with pytest.raises(RuntimeError):
                await breaker.call(boom)

        clock.now += 31
        assert await breaker.call(ok) == "ok"
        assert breaker.state == CircuitState.HALF_OPEN
        await breaker.call(ok)

        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self):
        clock = ManualClock()
        breaker = make_breaker(clock)
        for _ in range(2):
            with pytest.raises(RuntimeError):
                await breaker.call(boom)

        clock.now += 31
        with pytest.raises(RuntimeError):
            await breaker.call(boom)

        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self):
        async def slow():
            await asyncio.sleep(1)

        breaker = make_breaker(ManualClock(), timeout=0.01)

        with pytest.raises(asyncio.TimeoutError):
            await breaker.call(slow)

        assert breaker.get_status()["consecutive_failures"] == 1

    @pytest.mark.asyncio
    async def test_upstream_breaker_counts_server_errors(self):
        breaker = get_upstream_breaker()

        async def respond(code):
            return httpx.Response(code)

        for _ in range(4):
            await breaker.call(respond, 404)
        assert breaker.state == CircuitState.CLOSED

        for _ in range(5):
            await breaker.call(respond, 503)
        assert breaker.state == CircuitState.OPEN

    def test_reset(self):
        breaker = make_breaker(ManualClock())
        breaker.stats.state = CircuitState.OPEN

        breaker.reset()

        assert breaker.state == CircuitState.CLOSED
