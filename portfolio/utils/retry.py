"""Bounded retry with linearly increasing delay."""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from portfolio.utils.config import PortfolioConfig
from portfolio.utils.errors import NotFound
from portfolio.utils.logging import StructuredLogger, get_structured_logger

T = TypeVar("T")

logger = get_structured_logger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry ``attempts`` times, waiting ``base_delay * n`` seconds after the n-th failure."""
    attempts: int = 3
    base_delay: float = 0.5

    def __post_init__(self):
        if self.attempts < 1:
            raise ValueError("attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must not be negative")

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * attempt

    @classmethod
    def immediate(cls, attempts: int = 3) -> "RetryPolicy":
        """Zero-delay variant for tests."""
        return cls(attempts=attempts, base_delay=0.0)

    @classmethod
    def from_config(cls) -> "RetryPolicy":
        return cls(
            attempts=PortfolioConfig.PROFILE_LOAD_ATTEMPTS,
            base_delay=PortfolioConfig.PROFILE_LOAD_DELAY_SECONDS,
        )


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    retry_on: Tuple[Type[BaseException], ...] = (NotFound,),
    operation_name: str = "operation",
    log: Optional[StructuredLogger] = None,
) -> T:
    """Run ``operation`` until it succeeds or the policy is exhausted; the last error propagates."""
    log = log or logger
    for attempt in range(1, policy.attempts + 1):
        try:
            return await operation()
        except retry_on as e:
            if attempt == policy.attempts:
                log.warning(
                    f"{operation_name} failed after {attempt} attempts",
                    operation=operation_name,
                    attempts=attempt,
                    error=str(e),
                )
                raise
            delay = policy.delay_for(attempt)
            log.info(
                f"Retrying {operation_name}",
                operation=operation_name,
                attempt=attempt,
                delay_seconds=delay,
            )
            if delay:
                await asyncio.sleep(delay)
    raise RuntimeError("unreachable")
