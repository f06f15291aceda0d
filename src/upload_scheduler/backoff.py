import asyncio
from typing import Awaitable, Callable

from pydantic import BaseModel, Field

DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 10.0


def backoff_delay(attempt: int, base_delay: float = DEFAULT_BASE_DELAY, max_delay: float = DEFAULT_MAX_DELAY) -> float:
    """
    Exponential backoff delay in seconds for the given retry attempt (1-based).
    """
    attempt = max(1, attempt)
    return min(base_delay * 2 ** (attempt - 1), max_delay)


class BackoffPolicy(BaseModel):
    """
    Exponential backoff between retries of a step.
    """
    base_delay: float = Field(default=DEFAULT_BASE_DELAY, gt=0, description="Delay before the first retry, in seconds")
    max_delay: float = Field(default=DEFAULT_MAX_DELAY, gt=0, description="Upper bound for any single delay, in seconds")

    def delay(self, attempt: int) -> float:
        return backoff_delay(attempt, self.base_delay, self.max_delay)

    async def wait(self, attempt: int, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> float:
        delay = self.delay(attempt)
        await sleep(delay)
        return delay
