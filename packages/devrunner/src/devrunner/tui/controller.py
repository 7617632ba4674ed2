"""
ViewController: runs the full-screen UI on the asyncio loop.

- Owns the named view map and switches between views on request
- Registers SIGINT and SIGTERM handlers before entering the Live context
- Runs the keyboard reader, one scan loop per pane and the render loop
  in a single TaskGroup
- Draw queue: panes post closures through post(), which is safe from any
  thread; the render loop drains the queue before painting, so every
  widget mutation happens on the UI loop
- exit() cancels the session scope; the Supervisor sees the cancellation
  and stops the runners while the UI unwinds
"""

from __future__ import annotations

import asyncio
import collections
import functools
import logging
import signal
from typing import Any, Callable, Sequence

from rich.console import Console, RenderableType
from rich.live import Live

from devrunner.errors import SpawnError
from devrunner.process.cancel import CancelScope
from devrunner.tui.keyboard import KeyboardTask
from devrunner.tui.pane import ProcessPane
from devrunner.tui.state import StateStore
from devrunner.tui.views import EnvironmentView, FullscreenView, MainView, View

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_PER_SECOND = 10.0


class ViewController:
    """
    Controls the UI lifecycle and dispatches keys to the current view.

    Example:
        controller = ViewController(panes, StateStore(), cancel)
        await controller.run()  # Runs until exit() or the scope is cancelled
    """

    def __init__(
        self,
        panes: Sequence[ProcessPane],
        state: StateStore,
        cancel: CancelScope,
        environment: Sequence[str] = (),
        console: Console | None = None,
        refresh_per_second: float = DEFAULT_REFRESH_PER_SECOND,
        mouse: bool = False,
        border_color: str = "grey50",
    ) -> None:
        """
        Initialize the controller on the main view.

        Args:
            panes: One pane per runner, in start order
            state: Shared display toggles
            cancel: Session scope, cancelled on exit
            environment: KEY=VALUE entries shown by the environment view
            console: Rich Console to use (creates default if None)
            refresh_per_second: Upper bound on idle repaint rate
            mouse: Enable mouse wheel reporting
            border_color: Border colour of the outer frames
        """
        self.console = console if console is not None else Console()
        self.panes = list(panes)
        self.state = state
        self.cancel = cancel
        self.refresh_per_second = refresh_per_second
        self.views: dict[str, View] = {
            "main": MainView(self.panes, state, border_color),
            "fullscreen": FullscreenView(state),
            "environment": EnvironmentView(
                [pane.runner for pane in self.panes], environment, state, border_color
            ),
        }
        self.current: View = self.views["main"]
        self.props: Any = None
        self._handler = self.current.keymap(self)
        self._keyboard = KeyboardTask(on_key=self.handle_key, mouse=mouse)
        self._draws: collections.deque[Callable[[], None]] = collections.deque()
        self._dirty = asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._task_group: asyncio.TaskGroup | None = None
        self._restarts: dict[int, asyncio.Task[None]] = {}

    def set_view(self, name: str, props: Any = None) -> None:
        """Switch to a named view, hand it the props and install its keymap."""
        logger.debug("setting view to %s", name)
        self.current = self.views[name]
        self.props = props
        self.current.show(props)
        self._handler = self.current.keymap(self)
        self._dirty.set()

    def refresh_view(self, props: Any = None) -> None:
        """Repaint the current view, optionally with new props."""
        if props is not None:
            self.props = props
            self.current.show(props)
        self._dirty.set()

    def exit(self) -> None:
        """Request shutdown of the whole session."""
        logger.info("exit requested")
        self.cancel.cancel()
        self._keyboard.stop()
        self._dirty.set()

    def restart(self, pane: ProcessPane) -> None:
        """Restart a pane's runner in the background; the pane keeps scanning."""
        runner = pane.runner
        pending = self._restarts.get(id(pane))
        if pending is not None and not pending.done():
            logger.debug("restart of %s already in progress", runner.title)
            return
        if not runner.can_restart:
            logger.warning("cannot restart %s while %s", runner.title, runner.state.value)
            return
        coro = self._restart(pane)
        if self._task_group is not None:
            task = self._task_group.create_task(coro)
        else:
            task = asyncio.get_running_loop().create_task(coro)
        self._restarts[id(pane)] = task

    async def _restart(self, pane: ProcessPane) -> None:
        runner = pane.runner
        try:
            await runner.restart()
        except SpawnError as e:
            logger.error("error restarting process %s: %s", runner.title, e)
            runner.append_notice(f"failed to start ({e.bin_path}): {e.reason}", error=True)

    def post(self, draw: Callable[[], None]) -> None:
        """Queue a widget mutation for the UI loop. Safe from any thread."""
        self._draws.append(draw)
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._dirty.set)

    def drain(self) -> int:
        """Run every queued widget mutation. Returns how many ran."""
        count = 0
        while self._draws:
            self._draws.popleft()()
            count += 1
        return count

    def handle_key(self, key: str) -> None:
        """Dispatch a key name to the current view's keymap."""
        self._handler(key)
        self._dirty.set()

    def render(self) -> RenderableType:
        """Current view as a renderable, with pending draws applied."""
        self.drain()
        return self.current.render(self.props)

    async def run(self) -> None:
        """
        Run the UI until exit() or cancellation of the session scope.

        Registers SIGINT and SIGTERM handlers first so a signal during
        startup still shuts down cleanly.
        """
        loop = asyncio.get_running_loop()
        self._loop = loop
        signals = (signal.SIGINT, signal.SIGTERM)
        for sig in signals:
            loop.add_signal_handler(sig, functools.partial(self._handle_signal, sig))

        try:
            with Live(
                self.render(),
                console=self.console,
                screen=True,
                auto_refresh=False,
                redirect_stdout=False,
                redirect_stderr=False,
            ) as live:
                try:
                    async with asyncio.TaskGroup() as tg:
                        self._task_group = tg
                        tg.create_task(self._keyboard.run())
                        for pane in self.panes:
                            tg.create_task(pane.run(self.post, self.cancel))
                        tg.create_task(self._render_loop(live))
                except ExceptionGroup as group:
                    # Only programmer errors get here; surface the first one
                    raise group.exceptions[0]
                finally:
                    self._task_group = None
        finally:
            for sig in signals:
                loop.remove_signal_handler(sig)
            self._loop = None

    async def _render_loop(self, live: Live) -> None:
        """Repaint on demand, and at least refresh_per_second times a second."""
        interval = 1.0 / self.refresh_per_second
        while not self.cancel.cancelled:
            self._dirty.clear()
            live.update(self.render(), refresh=True)
            try:
                await asyncio.wait_for(self._dirty.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
        self._keyboard.stop()

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info("received %s, shutting down", sig.name)
        self.exit()
