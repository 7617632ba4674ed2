"""
ProcessPane: the UI face of one ProcessRunner.

Every tick the pane compares the runner's output size with what it has
already read. New bytes are sliced out of the buffer and decoded, then
handed to the controller as a closure; the LogView itself is only touched
when the UI loop runs that closure.
"""

from __future__ import annotations

import asyncio
import codecs
import functools
import logging
from typing import Callable

from rich.console import RenderableType
from rich.markup import escape
from rich.panel import Panel

from devrunner.process.cancel import CancelScope
from devrunner.process.runner import ProcessRunner
from devrunner.tui.logview import LogView

logger = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL = 0.25

Post = Callable[[Callable[[], None]], None]


class ProcessPane:
    """
    Scrollable, optionally bordered log panel for a runner.

    Example:
        pane = ProcessPane(runner)
        tg.create_task(pane.run(controller.post, cancel))
        layout.update(pane.render())
    """

    def __init__(
        self,
        runner: ProcessRunner,
        highlight_color: str = "blue",
        border_color: str = "grey50",
        tick_interval: float = DEFAULT_TICK_INTERVAL,
        max_lines: int | None = None,
    ) -> None:
        """
        Args:
            runner: Runner whose log buffer this pane follows
            highlight_color: Border colour when the pane has focus
            border_color: Border colour otherwise
            tick_interval: Seconds between buffer scans
            max_lines: Lines kept by the view, None for all
        """
        self.runner = runner
        self.highlight_color = highlight_color
        self.border_color = border_color
        self.tick_interval = tick_interval
        self.view = LogView(max_lines=max_lines)
        self.highlighted = False
        self.borderless = False
        self._last_read = 0
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def title(self) -> str:
        return self.runner.title

    @property
    def last_read(self) -> int:
        return self._last_read

    def scan(self) -> Callable[[], None] | None:
        """
        Pick up bytes appended since the last scan.

        Returns:
            A closure that writes the new text into the view, or None if
            nothing new arrived
        """
        size = self.runner.output_size()
        if size <= self._last_read:
            return None
        data = self.runner.output_slice(self._last_read, size)
        self._last_read = size
        text = self._decoder.decode(data)
        if not text:
            return None
        return functools.partial(self.view.write, text)

    async def run(self, post: Post, cancel: CancelScope) -> None:
        """Scan every tick until cancelled, posting view updates to the UI loop."""
        while not cancel.cancelled:
            update = self.scan()
            if update is not None:
                post(update)
            try:
                await asyncio.wait_for(cancel.wait(), timeout=self.tick_interval)
            except asyncio.TimeoutError:
                pass

    def set_autoscroll(self, autoscroll: bool) -> None:
        self.view.set_autoscroll(autoscroll)

    def set_wrap(self, wrap: bool) -> None:
        self.view.set_wrap(wrap)

    def set_borderless(self, borderless: bool) -> None:
        self.borderless = borderless

    def highlight(self, highlighted: bool) -> None:
        self.highlighted = highlighted

    def scroll_to_head(self) -> None:
        self.view.scroll_to_head()

    def scroll_to_tail(self) -> None:
        self.view.scroll_to_tail()

    def scroll_by(self, delta: int) -> None:
        self.view.scroll_by(delta)

    def render(self) -> RenderableType:
        """The view wrapped in a titled panel, or the bare view when borderless."""
        if self.borderless:
            return self.view
        title = f"[bold]{escape(self.title)}[/bold]"
        if self.highlighted:
            title = f"[reverse] > [/reverse] {title}"
        return Panel(
            self.view,
            title=title,
            title_align="left",
            subtitle=f"[dim]{self.runner.state.value}[/dim]",
            subtitle_align="right",
            border_style=self.highlight_color if self.highlighted else self.border_color,
            padding=(0, 1),
        )
