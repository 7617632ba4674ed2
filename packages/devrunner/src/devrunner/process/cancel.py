"""
CancelScope for propagating a single exit request to every blocking call.

One root scope is created by the entry point. Runners derive child scopes
from it so that a restart can abandon a pending start without cancelling
the whole session, while cancelling the root still reaches everyone.

Built on asyncio.Event, the same primitive used for shutdown coordination
throughout the supervisor and the UI loop.
"""

from __future__ import annotations

import asyncio


class CancelScope:
    """
    Hierarchical cancellation flag.

    Example:
        root = CancelScope()
        attempt = root.child()
        root.cancel()
        assert attempt.cancelled
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._children: list[CancelScope] = []

    @property
    def cancelled(self) -> bool:
        """True once cancel() was called on this scope or an ancestor."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Cancel this scope and every scope derived from it."""
        if self._event.is_set():
            return
        self._event.set()
        for child in self._children:
            child.cancel()
        self._children.clear()

    async def wait(self) -> None:
        """Block until the scope is cancelled."""
        await self._event.wait()

    def child(self) -> CancelScope:
        """
        Derive a scope that is cancelled together with this one.

        Cancelling the child leaves this scope untouched.
        """
        scope = CancelScope()
        if self.cancelled:
            scope.cancel()
        else:
            self._children.append(scope)
        return scope
