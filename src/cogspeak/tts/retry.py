"""Retry policy shared by every synthesis backend.

Wraps exactly one backend call with bounded exponential backoff and jitter.
Transient failures (network, timeouts, 408/429/5xx) are retried; validation,
authentication and malformed-request failures are surfaced after the attempt
that raised them.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from .errors import EngineAPIError, EngineError, EngineTimeoutError, SpeechError

if TYPE_CHECKING:
    from ..config import RetryConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

# 2**62 seconds is already far beyond any clamp; larger exponents saturate
MAX_BACKOFF_EXPONENT = 62


@dataclass(frozen=True)
class RetryResult(Generic[T]):
    """Value returned by a successful call and the attempts it took."""

    value: T
    attempts: int


def is_retryable(error: BaseException) -> bool:
    """Classify a failure as retryable (True) or terminal (False)."""
    if isinstance(error, EngineError):
        return error.retryable
    if isinstance(error, SpeechError):
        return False
    return isinstance(error, (TimeoutError, ConnectionError))


class RetryPolicy:
    """Bounded exponential backoff with jitter around a single backend call.

    The delay after failed attempt ``n`` (1-indexed) is
    ``base_delay * 2**(n-1)`` clamped to ``max_delay``, then spread by a
    uniform ``±jitter`` fraction and clamped again.

    Example:
        policy = RetryPolicy(max_attempts=3, base_delay=0.1, max_delay=5.0)
        result = await policy.execute(lambda: engine.synthesize(text, voice))
        audio, attempts = result.value, result.attempts
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 0.1,
        max_delay: float = 5.0,
        jitter: float = 0.2,
        attempt_timeout: float | None = 30.0,
        *,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """Initialize retry policy.

        Args:
            max_attempts: Total attempts including the first one (>= 1)
            base_delay: Delay after the first failure, in seconds
            max_delay: Upper bound for any single delay, in seconds
            jitter: Fraction of the delay randomized in both directions (0.0-1.0)
            attempt_timeout: Deadline for each attempt in seconds, None for no limit
            rng: Random source for jitter (injectable for tests)
            sleep: Coroutine used to wait between attempts

        Raises:
            ValueError: If any parameter is out of range
        """
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        if base_delay < 0 or max_delay < 0:
            raise ValueError("Retry delays cannot be negative")
        if base_delay > max_delay:
            raise ValueError(
                f"base_delay ({base_delay}) cannot be greater than max_delay ({max_delay})"
            )
        if not 0.0 <= jitter <= 1.0:
            raise ValueError(f"jitter must be between 0.0 and 1.0, got {jitter}")
        if attempt_timeout is not None and attempt_timeout <= 0:
            raise ValueError(f"attempt_timeout must be positive, got {attempt_timeout}")

        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter = jitter
        self.attempt_timeout = attempt_timeout
        self._rng = rng or random.Random()
        self._sleep = sleep

    @classmethod
    def from_config(cls, config: "RetryConfig", **kwargs) -> "RetryPolicy":
        """Build a policy from the ``[retry]`` configuration section."""
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay_ms / 1000,
            max_delay=config.max_delay_ms / 1000,
            jitter=config.jitter,
            attempt_timeout=config.attempt_timeout_secs,
            **kwargs,
        )

    def compute_delay(self, attempt: int) -> float:
        """Backoff before the attempt following failed attempt ``attempt``.

        Non-decreasing in ``attempt`` and saturating: the exponent is capped,
        so arbitrarily large attempt numbers never overflow.
        """
        if attempt < 1:
            raise ValueError(f"attempt is 1-indexed, got {attempt}")
        if self.base_delay == 0:
            return 0.0
        exponent = min(attempt - 1, MAX_BACKOFF_EXPONENT)
        return min(self.base_delay * (1 << exponent), self.max_delay)

    def jittered_delay(self, attempt: int) -> float:
        """Backoff for ``attempt`` with jitter applied, within [0, max_delay]."""
        delay = self.compute_delay(attempt)
        if self.jitter:
            delay *= self._rng.uniform(1.0 - self.jitter, 1.0 + self.jitter)
        return max(0.0, min(delay, self.max_delay))

    async def execute(
        self, call: Callable[[], Awaitable[T]], engine: str | None = None
    ) -> RetryResult[T]:
        """Run ``call`` until it succeeds, fails terminally or attempts run out.

        Args:
            call: Zero-argument coroutine factory performing one attempt
            engine: Engine name for logs and wrapped errors

        Returns:
            RetryResult with the call's value and the number of attempts made

        Raises:
            SpeechError: The last failure, unchanged apart from its
                ``attempts`` attribute
        """
        attempts = 0
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait,
            retry=retry_if_exception(is_retryable),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    value = await self._attempt(call, engine)
        except SpeechError as e:
            e.attempts = attempts
            logger.debug(f"Giving up on {engine or 'engine'} after {attempts} attempt(s): {e}")
            raise

        return RetryResult(value=value, attempts=attempts)

    async def _attempt(self, call: Callable[[], Awaitable[T]], engine: str | None) -> T:
        try:
            if self.attempt_timeout is None:
                return await call()
            return await asyncio.wait_for(call(), timeout=self.attempt_timeout)
        except SpeechError:
            raise
        except TimeoutError as e:
            raise EngineTimeoutError(
                f"Synthesis attempt timed out after {self.attempt_timeout}s",
                engine=engine,
                original_error=e,
            ) from e
        except ConnectionError as e:
            raise EngineAPIError(
                f"Connection failed: {e}", engine=engine, original_error=e
            ) from e
        except Exception as e:
            raise EngineError(
                f"Engine call failed: {e}", engine=engine, original_error=e
            ) from e

    def _wait(self, retry_state: RetryCallState) -> float:
        return self.jittered_delay(retry_state.attempt_number)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            f"Attempt {retry_state.attempt_number}/{self.max_attempts} failed: {error}; "
            f"retrying in {delay:.2f}s"
        )
