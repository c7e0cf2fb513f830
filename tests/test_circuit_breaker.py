import pytest

from stipend_flights.circuit_breaker import BreakerRegistry, CircuitBreaker
from stipend_flights.exceptions import CircuitOpenError
from stipend_flights.models import CircuitState


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def breaker(clock):
    return CircuitBreaker("google_flights", failure_threshold=3, timeout=300, clock=clock)


@pytest.mark.asyncio
async def test_opens_after_threshold(breaker):
    for _ in range(2):
        await breaker.record_failure()
    assert breaker.state == CircuitState.CLOSED
    await breaker.before_call()

    await breaker.record_failure()
    assert breaker.state == CircuitState.OPEN
    with pytest.raises(CircuitOpenError):
        await breaker.before_call()


@pytest.mark.asyncio
async def test_success_resets_failure_count(breaker):
    await breaker.record_failure()
    await breaker.record_failure()
    await breaker.record_success()
    await breaker.record_failure()
    assert breaker.state == CircuitState.CLOSED
    assert breaker.failures == 1


@pytest.mark.asyncio
async def test_half_open_after_timeout_then_close(breaker, clock):
    for _ in range(3):
        await breaker.record_failure()
    clock.now += 299
    with pytest.raises(CircuitOpenError):
        await breaker.before_call()

    clock.now += 1
    await breaker.before_call()
    assert breaker.state == CircuitState.HALF_OPEN

    await breaker.record_success()
    assert breaker.state == CircuitState.CLOSED
    assert breaker.failures == 0


@pytest.mark.asyncio
async def test_half_open_failure_reopens(breaker, clock):
    for _ in range(3):
        await breaker.record_failure()
    clock.now += 301
    await breaker.before_call()
    await breaker.record_failure()
    assert breaker.state == CircuitState.OPEN
    assert breaker.opened_at == clock.now
    with pytest.raises(CircuitOpenError):
        await breaker.before_call()


def test_registry_reuses_breakers():
    registry = BreakerRegistry(failure_threshold=1)
    first = registry.get("amadeus")
    assert registry.get("amadeus") is first
    assert registry.get("google_flights") is not first
    assert first.failure_threshold == 1
