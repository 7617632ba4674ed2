"""
ReadinessSignal: write-once, many-reader broadcast used to chain runners.

To express "start B after A", the supervisor hands A.did_start() to B.start().
"""

from __future__ import annotations

import asyncio
from enum import Enum

from devrunner.process.cancel import CancelScope


class Readiness(str, Enum):
    """Outcome of waiting on a ReadinessSignal."""

    FIRED = "fired"
    CANCELLED = "cancelled"


class ReadinessSignal:
    """
    One-shot broadcast.

    signal() may be called more than once; only the first call has an effect.
    Any number of coroutines may wait on the same signal.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @classmethod
    def already_fired(cls) -> ReadinessSignal:
        """Create a signal that is ready from the start."""
        sig = cls()
        sig.signal()
        return sig

    @property
    def fired(self) -> bool:
        return self._event.is_set()

    def signal(self) -> None:
        """Fire the signal, releasing every current and future waiter."""
        self._event.set()

    async def wait(self, cancel: CancelScope | None = None) -> Readiness:
        """
        Wait until fired or until the cancellation scope fires.

        Returns immediately if the signal has already fired. If both are
        already set, FIRED wins.

        Args:
            cancel: Scope whose cancellation aborts the wait

        Returns:
            Readiness.FIRED or Readiness.CANCELLED
        """
        if self._event.is_set():
            return Readiness.FIRED
        if cancel is None:
            await self._event.wait()
            return Readiness.FIRED
        if cancel.cancelled:
            return Readiness.CANCELLED

        fired = asyncio.create_task(self._event.wait())
        cancelled = asyncio.create_task(cancel.wait())
        try:
            await asyncio.wait(
                {fired, cancelled}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            fired.cancel()
            cancelled.cancel()
        if self._event.is_set():
            return Readiness.FIRED
        return Readiness.CANCELLED
