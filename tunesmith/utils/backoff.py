"""
Retry wrapper for catalog calls that hit the rate limit.

The retry policy is a small state machine: ``next_state`` is a pure function of
the current state and the outcome of one call, so the policy can be tested
without timers. ``call_with_backoff`` drives it with an injectable sleep.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

T = TypeVar("T")

RATE_LIMIT_STATUS = 429

@dataclass(frozen=True)
class BackoffPolicy:
    """Deterministic retry policy (no jitter)."""
    max_retries: int = 5
    initial_delay: float = 1.0           # seconds

    def delay_for(self, retries: int, error: BaseException) -> float:
        """Server hint if present, else ``initial_delay * 2 ** retries``."""
        hinted = retry_after_seconds(error)
        if hinted is not None:
            return hinted
        return self.initial_delay * (2 ** retries)

@dataclass(frozen=True)
class Attempting:
    retries: int = 0

@dataclass(frozen=True)
class Waiting:
    retries: int                         # retries already spent, including this one
    delay: float

@dataclass(frozen=True)
class Succeeded:
    value: Any

@dataclass(frozen=True)
class Exhausted:
    error: BaseException

BackoffState = Union[Attempting, Waiting, Succeeded, Exhausted]

@dataclass(frozen=True)
class CallOutcome:
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

def is_rate_limited(error: BaseException) -> bool:
    return getattr(error, "status_code", None) == RATE_LIMIT_STATUS

def retry_after_seconds(error: BaseException) -> Optional[float]:
    """Parse the ``retry-after`` header carried by an error, if any."""
    headers = getattr(error, "headers", None) or {}
    raw = headers.get("retry-after", headers.get("Retry-After"))
    if raw is None:
        return None
    try:
        seconds = float(str(raw).strip())
    except ValueError:
        return None
    if not math.isfinite(seconds) or seconds < 0:
        return None
    return seconds

def next_state(state: Attempting, outcome: CallOutcome, policy: BackoffPolicy) -> BackoffState:
    """Transition after one attempt."""
    if not outcome.failed:
        return Succeeded(outcome.value)

    if is_rate_limited(outcome.error) and state.retries < policy.max_retries:
        return Waiting(
            retries=state.retries + 1,
            delay=policy.delay_for(state.retries, outcome.error)
        )

    return Exhausted(outcome.error)

async def call_with_backoff(
    operation: Callable[[], Awaitable[T]],
    policy: Optional[BackoffPolicy] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
) -> T:
    """
    Run ``operation``, retrying on HTTP 429.

    Args:
        operation: Zero-argument coroutine function
        policy: Retry policy (defaults to 5 retries from 1s)
        sleep: Awaitable sleep used between attempts

    Returns:
        The operation's result

    Raises:
        The operation's error, unchanged, when it is not a 429 or retries are spent
    """
    policy = policy or BackoffPolicy()
    state: BackoffState = Attempting(0)

    while True:
        try:
            outcome = CallOutcome(value=await operation())
        except Exception as e:
            outcome = CallOutcome(error=e)

        state = next_state(state, outcome, policy)

        if isinstance(state, Succeeded):
            return state.value
        if isinstance(state, Exhausted):
            raise state.error

        logger.warning(f"Rate limited. Retrying after {state.delay:.2f}s (retry {state.retries}/{policy.max_retries})")
        await sleep(state.delay)
        state = Attempting(state.retries)
