"""Explicit step runtime with retry and exponential backoff.

A step is an async callable that accepts a ``step: StepContext`` keyword.
Raising ``RetryableStepError`` asks the runner to wait and invoke it again
with the next attempt number; any other exception propagates unchanged.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from priceledger.core.config import settings
from priceledger.core.exceptions import RetryableStepError
from priceledger.utils.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class StepContext:
    step_id: str
    attempt: int
    max_attempts: int

    @property
    def is_last_attempt(self) -> bool:
        return self.attempt >= self.max_attempts


def make_step_id(step_name: str, *keys: Any) -> str:
    return ":".join([step_name, *(str(key) for key in keys)])


class StepRunner:
    def __init__(
        self,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        pipeline = settings.pipeline
        self.max_attempts = max_attempts or pipeline.page_parse_max_attempts
        self.base_delay = pipeline.step_retry_base_delay_seconds if base_delay is None else base_delay
        self.max_delay = pipeline.step_retry_max_delay_seconds if max_delay is None else max_delay
        self._sleep = sleep

    def backoff_delay(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Delay before the attempt following ``attempt``."""
        if retry_after is not None:
            delay = retry_after
        else:
            delay = self.base_delay * (2 ** (attempt - 1))
        return min(self.max_delay, max(0.0, delay))

    async def run(
        self,
        step_id: str,
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Run ``fn`` until it returns, raises a non-retryable error, or exhausts attempts.

        Raises:
            RetryableStepError: When the last attempt still asked for a retry.
        """
        attempt = 1
        while True:
            context = StepContext(step_id=step_id, attempt=attempt, max_attempts=self.max_attempts)
            try:
                return await fn(*args, step=context, **kwargs)
            except RetryableStepError as e:
                if attempt >= self.max_attempts:
                    LOGGER.error(
                        "Step exhausted its retries",
                        extra={"step_id": step_id, "attempt": attempt},
                    )
                    raise
                delay = self.backoff_delay(attempt, e.retry_after)
                LOGGER.warning(
                    f"Step asked for retry: {e}",
                    extra={"step_id": step_id, "attempt": attempt, "delay_seconds": delay},
                )
                await self._sleep(delay)
                attempt += 1
