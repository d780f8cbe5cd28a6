# catalog_bot/services/retry.py

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar, Union

from ..config import LimitSettings, logger
from ..errors import CatalogBotError, ExternalRateLimit

T = TypeVar("T")

RATE_LIMIT_PADDING_SECONDS = 1.0

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """How long to back off after a rate-limit signal and how often to try again."""

    default_wait: float = 30.0
    padding: float = RATE_LIMIT_PADDING_SECONDS
    max_rate_limit_retries: int = 5

    @classmethod
    def from_limits(cls, limits: LimitSettings) -> "RetryPolicy":
        return cls(
            default_wait=limits.rate_limit_default_wait,
            max_rate_limit_retries=limits.rate_limit_max_retries,
        )

    def wait_for(self, retry_after: float | None) -> float:
        base = retry_after if retry_after is not None and retry_after >= 0 else self.default_wait
        return base + self.padding


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T
    rate_limit_retries: int = 0


@dataclass(frozen=True)
class PermanentFailure:
    error: Exception
    rate_limit_retries: int = 0

    @property
    def user_message(self) -> str:
        if isinstance(self.error, CatalogBotError):
            return self.error.user_message
        return str(self.error) or type(self.error).__name__


Outcome = Union[Success[T], PermanentFailure]


async def run_with_backoff(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: Sleep = asyncio.sleep,
    on_rate_limit: Callable[[float, int], Awaitable[None]] | None = None,
) -> Outcome[T]:
    """
    Runs `operation` until it succeeds, retrying the same call after every
    `ExternalRateLimit`. Rate-limit retries are bounded by the policy; once
    exhausted the call is reported as a single `PermanentFailure`. Any other
    exception is a permanent failure straight away.
    """
    retries = 0
    while True:
        try:
            value = await operation()
        except ExternalRateLimit as e:
            if retries >= policy.max_rate_limit_retries:
                logger.warning(f"Giving up after {retries} rate-limit retries.")
                return PermanentFailure(e, retries)
            retries += 1
            wait = policy.wait_for(e.retry_after)
            logger.warning(f"Rate limit hit, waiting {wait:.1f}s (retry {retries}).")
            if on_rate_limit is not None:
                await on_rate_limit(wait, retries)
            await sleep(wait)
            continue
        except CatalogBotError as e:
            logger.error(f"Operation failed: {e.user_message}")
            return PermanentFailure(e, retries)
        except Exception as e:
            logger.error("Operation failed with an unexpected error.", exc_info=e)
            return PermanentFailure(e, retries)
        return Success(value, retries)


class RelayLimiter:
    """
    Token bucket shared by every send to a storage channel and every relay, so
    concurrent uploads and deliveries draw from one global budget.
    """

    def __init__(
        self,
        rate_per_second: float,
        capacity: float | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        self.rate = rate_per_second
        self.capacity = capacity if capacity is not None else max(1.0, rate_per_second)
        self._tokens = self.capacity
        self._clock = clock
        self._sleep = sleep
        self._updated = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._updated = now

    async def acquire(self) -> None:
        if self.rate <= 0:
            return
        async with self._lock:
            while True:
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    return
                await self._sleep((1 - self._tokens) / self.rate)
