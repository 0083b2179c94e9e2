"""
Automatic retry of whole runs after a ``NETWORK_UNAVAILABLE`` failure.

Only that error class is retried.  Attempt *k* (1-indexed) waits
``base_delay * k`` seconds first.  Once ``max_retries`` retries have failed
no further retry is scheduled until :meth:`RetryController.reset`.
:meth:`RetryController.cancel` abandons a pending backoff and any retries
still to come.
"""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional

from .cancel import CancelToken
from .constants import DEFAULT_RETRY_ATTEMPTS, RETRY_BASE_DELAY
from .errors import ErrorType, SpeedTestError

logger = logging.getLogger(__name__)


class RetryController:
    """Wraps an async ``start`` callable with a linear backoff schedule.

    *sleep* defaults to a cancellable wait on the controller's own token.
    """

    def __init__(
        self,
        start: Callable[..., Awaitable[Any]],
        max_retries: int = DEFAULT_RETRY_ATTEMPTS,
        base_delay: float = RETRY_BASE_DELAY,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self.start = start
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._sleep = sleep
        self._token = CancelToken()

        self.retry_count = 0
        self.is_retrying = False
        self.last_error: Optional[SpeedTestError] = None
        self.on_retry: Optional[Callable[[int, float], None]] = None

    # -- State --------------------------------------------------------------

    @property
    def has_reached_max_retries(self) -> bool:
        return self.retry_count >= self.max_retries

    @property
    def cancelled(self) -> bool:
        return self._token.cancelled

    def observe(self, error: Optional[SpeedTestError]) -> None:
        """Record the most recent classified error (``None`` clears it)."""
        self.last_error = error

    def should_retry(self) -> bool:
        return (
            not self._token.cancelled
            and self.last_error is not None
            and self.last_error.type is ErrorType.NETWORK_UNAVAILABLE
            and self.retry_count < self.max_retries
            and not self.is_retrying
        )

    def next_delay(self) -> float:
        """Seconds to wait before the next attempt."""
        return self.base_delay * (self.retry_count + 1)

    def cancel(self) -> None:
        """Wake a pending backoff and schedule no further attempts."""
        if not self._token.cancelled:
            logger.info("Retry cancelled")
        self._token.cancel()

    def reset(self) -> None:
        self.retry_count = 0
        self.is_retrying = False
        self.last_error = None
        self._token = CancelToken()

    # -- Execution ----------------------------------------------------------

    async def _wait(self, delay: float) -> None:
        if self._sleep is None:
            await self._token.sleep(delay)
        else:
            await self._sleep(delay)

    async def retry(self, *args: Any, **kwargs: Any) -> Any:
        """Wait out the backoff delay, then re-invoke ``start`` once."""
        attempt = self.retry_count + 1
        delay = self.next_delay()

        self.is_retrying = True
        try:
            logger.info("Retry %d/%d in %.1f s", attempt, self.max_retries, delay)
            if self.on_retry:
                self.on_retry(attempt, delay)
            await self._wait(delay)

            if self._token.cancelled:
                self.last_error = SpeedTestError(ErrorType.CANCELLED, "Retry was cancelled by user")
                raise self.last_error

            try:
                result = await self.start(*args, **kwargs)
            except SpeedTestError as exc:
                self.retry_count += 1
                self.last_error = exc
                logger.warning("Retry %d failed: %s", attempt, exc.message)
                raise
        finally:
            self.is_retrying = False

        self.retry_count = 0
        self.last_error = None
        return result

    async def run(self, *args: Any, **kwargs: Any) -> Any:
        """Run ``start`` and keep retrying while the policy allows it."""
        try:
            result = await self.start(*args, **kwargs)
        except SpeedTestError as exc:
            self.observe(exc)
        else:
            self.observe(None)
            return result

        while self.should_retry():
            try:
                return await self.retry(*args, **kwargs)
            except SpeedTestError:
                continue

        if self.last_error.retryable and self.retry_count and self.has_reached_max_retries:
            logger.warning("Giving up after %d retries", self.retry_count)
        raise self.last_error
