"""
StateStore: the only process-wide UI state.

Three display toggles plus the "previous view" used by the environment
overlay to go back. Every access goes through one lock; readers get plain
values, never references into the store.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class PreviousView:
    """Where the environment overlay returns to."""

    name: str
    props: Any = None
    borderless: bool = False


class StateStore:
    """Lock-guarded autoscroll / wrap / borderless flags and previous view."""

    def __init__(
        self,
        autoscroll: bool = True,
        wrap: bool = False,
        borderless: bool = False,
    ) -> None:
        self._lock = threading.Lock()
        self._autoscroll = autoscroll
        self._wrap = wrap
        self._borderless = borderless
        self._previous = PreviousView("main")

    def toggle_autoscroll(self) -> None:
        with self._lock:
            self._autoscroll = not self._autoscroll

    def disable_autoscroll(self) -> None:
        with self._lock:
            self._autoscroll = False

    def get_autoscroll(self) -> bool:
        with self._lock:
            return self._autoscroll

    def toggle_wrap(self) -> None:
        with self._lock:
            self._wrap = not self._wrap

    def get_wrap(self) -> bool:
        with self._lock:
            return self._wrap

    def toggle_borderless(self) -> None:
        with self._lock:
            self._borderless = not self._borderless

    def set_borderless(self, borderless: bool) -> None:
        with self._lock:
            self._borderless = borderless

    def reset_borderless(self) -> None:
        """Turn borderless off."""
        with self._lock:
            self._borderless = False

    def get_borderless(self) -> bool:
        with self._lock:
            return self._borderless

    def set_previous_view(self, name: str, props: Any = None) -> None:
        """Remember a view to go back to, along with its current borderless flag."""
        with self._lock:
            self._previous = PreviousView(name, props, self._borderless)

    def get_previous_view(self) -> PreviousView:
        with self._lock:
            return self._previous
