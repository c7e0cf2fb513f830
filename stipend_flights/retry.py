"""Retry logic with exponential backoff"""

import asyncio
import random
from typing import Callable, Optional, Tuple, Type

import httpx
from loguru import logger
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .config import (
    BACKOFF_MULTIPLIER,
    INITIAL_BACKOFF,
    JITTER_RANGE,
    MAX_BACKOFF,
    MAX_RETRIES,
)
from .exceptions import (
    AmadeusAuthError,
    AmadeusError,
    ElementNotFoundError,
    FilterVerificationError,
)
from .models import ErrorType


def backoff_delays(
    attempts: int,
    initial_backoff: float = INITIAL_BACKOFF,
    max_backoff: float = MAX_BACKOFF,
    backoff_multiplier: float = BACKOFF_MULTIPLIER,
):
    """Yield the capped, jitter-free sleep before each retry"""
    backoff = initial_backoff
    for _ in range(attempts):
        yield min(backoff, max_backoff)
        backoff *= backoff_multiplier


async def retry_with_backoff(
    func: Callable,
    *args,
    max_retries: int = MAX_RETRIES,
    initial_backoff: float = INITIAL_BACKOFF,
    max_backoff: float = MAX_BACKOFF,
    backoff_multiplier: float = BACKOFF_MULTIPLIER,
    jitter: Optional[Tuple[float, float]] = JITTER_RANGE,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    give_up_on: Tuple[ErrorType, ...] = (),
    on_retry: Optional[Callable] = None,
    **kwargs,
):
    """
    Execute an async function with exponential backoff retry logic.

    Used for every retried operation in the package: generic transient
    failures (3 retries) and alliance-filter verification (5 attempts,
    1.5s base, x1.5, 8s cap, no jitter).

    Args:
        func: Async function to execute
        max_retries: Retries after the first attempt
        initial_backoff: Sleep before the first retry, in seconds
        max_backoff: Upper bound for any single sleep
        backoff_multiplier: Growth factor between retries
        jitter: Multiplicative jitter range, or None for a fixed schedule
        retry_on: Exception types that are retried; others propagate at once
        give_up_on: Error classes (see classify_error) that are never retried
        on_retry: Optional async callback awaited before each retry:
            on_retry(attempt, error), attempt counting from 1

    Returns:
        Whatever func returns on its first successful attempt

    Raises:
        The last exception once retries are exhausted
    """
    last_exception = None
    delays = backoff_delays(max_retries, initial_backoff, max_backoff, backoff_multiplier)

    for attempt in range(max_retries + 1):
        try:
            result = await func(*args, **kwargs)

            if attempt > 0:
                logger.success(f"✓ Recovered after {attempt} retries")

            return result

        except retry_on as e:
            last_exception = e
            error_type = classify_error(e)

            if error_type in give_up_on:
                logger.error(f"❌ Not retrying ({error_type.value}): {e}")
                raise

            if attempt >= max_retries:
                logger.error(f"❌ Failed after {max_retries + 1} attempts: {e}")
                break

            sleep_time = next(delays)
            if jitter:
                sleep_time = min(sleep_time * random.uniform(*jitter), max_backoff)

            logger.warning(
                f"⚠️ Attempt {attempt + 1}/{max_retries + 1} failed "
                f"({error_type.value}): {e}"
            )
            logger.info(f"   Retrying in {sleep_time:.1f}s...")

            if on_retry:
                await on_retry(attempt + 1, e)

            await asyncio.sleep(sleep_time)

    raise last_exception


def classify_error(error: BaseException) -> ErrorType:
    """Classify error for appropriate handling"""
    if isinstance(error, AmadeusAuthError):
        return ErrorType.AUTH_FAILURE
    elif isinstance(error, AmadeusError):
        if error.status_code == 429:
            return ErrorType.RATE_LIMIT
        elif error.status_code >= 500 or error.status_code == 0:
            return ErrorType.TRANSIENT
        return ErrorType.PERMANENT
    elif isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status in (401, 403):
            return ErrorType.AUTH_FAILURE
        elif status == 429:
            return ErrorType.RATE_LIMIT
        elif status >= 500:
            return ErrorType.TRANSIENT
        return ErrorType.PERMANENT
    elif isinstance(error, (httpx.TransportError, asyncio.TimeoutError)):
        return ErrorType.TRANSIENT
    elif isinstance(
        error,
        (PlaywrightTimeoutError, PlaywrightError, ElementNotFoundError, FilterVerificationError),
    ):
        return ErrorType.TRANSIENT
    return ErrorType.PERMANENT
