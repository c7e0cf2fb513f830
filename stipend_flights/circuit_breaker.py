"""Per-provider circuit breaker for batch runs"""

import asyncio
import time
from typing import Callable, Dict, Optional

from loguru import logger

from .config import CIRCUIT_BREAKER_THRESHOLD, CIRCUIT_BREAKER_TIMEOUT
from .exceptions import CircuitOpenError
from .models import CircuitState


class CircuitBreaker:
    """
    Stops calling a price provider after repeated failures.

    Opens after ``failure_threshold`` consecutive failures; once ``timeout``
    seconds have passed one trial call is let through (HALF_OPEN). A success
    closes the circuit, a failure re-opens it.
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = CIRCUIT_BREAKER_THRESHOLD,
        timeout: float = CIRCUIT_BREAKER_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.clock = clock
        self.failures = 0
        self.state = CircuitState.CLOSED
        self.opened_at: Optional[float] = None
        self.lock = asyncio.Lock()

    async def before_call(self) -> None:
        """
        Raises:
            CircuitOpenError: While the circuit is open and the timeout has
                not expired
        """
        async with self.lock:
            if self.state != CircuitState.OPEN:
                return
            elapsed = self.clock() - (self.opened_at or 0.0)
            if elapsed < self.timeout:
                raise CircuitOpenError(
                    f"Circuit '{self.name}' is OPEN, retry in {self.timeout - elapsed:.0f}s"
                )
            logger.info(f"Circuit '{self.name}' transitioning to HALF_OPEN (timeout expired)")
            self.state = CircuitState.HALF_OPEN

    async def record_success(self) -> None:
        async with self.lock:
            if self.state == CircuitState.HALF_OPEN:
                logger.success(f"✓ Circuit '{self.name}' recovered, closing")
            self.state = CircuitState.CLOSED
            self.failures = 0
            self.opened_at = None

    async def record_failure(self) -> None:
        async with self.lock:
            self.failures += 1
            if self.state == CircuitState.HALF_OPEN or self.failures >= self.failure_threshold:
                logger.error(f"❌ Circuit '{self.name}' OPENING after {self.failures} failures")
                self.state = CircuitState.OPEN
                self.opened_at = self.clock()
            else:
                logger.warning(
                    f"⚠️ Circuit '{self.name}' failure {self.failures}/{self.failure_threshold}"
                )


class BreakerRegistry:
    """One breaker per provider name, created on first use"""

    def __init__(self, **breaker_kwargs):
        self.breaker_kwargs = breaker_kwargs
        self.breakers: Dict[str, CircuitBreaker] = {}

    def get(self, name: str) -> CircuitBreaker:
        if name not in self.breakers:
            self.breakers[name] = CircuitBreaker(name, **self.breaker_kwargs)
        return self.breakers[name]
