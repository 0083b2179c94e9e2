"""Cooperative cancellation token handed to every suspending phase operation."""
from __future__ import annotations

import asyncio
from typing import Optional

from .errors import ErrorType, SpeedTestError


class CancelToken:
    """
    One token per run.  ``cancel()`` is idempotent; phases poll
    :attr:`cancelled` or call :meth:`raise_if_cancelled` at each checkpoint.
    """

    def __init__(self) -> None:
        self._event: Optional[asyncio.Event] = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise SpeedTestError(ErrorType.CANCELLED, "Test was stopped by user")

    async def sleep(self, seconds: float) -> None:
        """Sleep for *seconds*, returning early if the token is cancelled."""
        if self._cancelled or seconds <= 0:
            return
        if self._event is None:
            self._event = asyncio.Event()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
