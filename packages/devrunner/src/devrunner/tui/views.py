"""
Named views and their keymaps.

- MainView: every pane stacked vertically plus a one-line legend
- FullscreenView: one pane plus an extended legend
- EnvironmentView: read-only list of binaries and environment entries

A view renders from the StateStore each frame, so a toggle made in one view
is picked up by the next view that is shown. Keymaps mutate the store and
the panes, then ask the app to switch or refresh views.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Protocol, Sequence

from rich.color import ColorSystem
from rich.console import Console, RenderableType
from rich.layout import Layout
from rich.panel import Panel
from rich.syntax import Syntax
from rich.text import Text

from devrunner.process.runner import ProcessRunner
from devrunner.tui.logview import LogView
from devrunner.tui.pane import ProcessPane
from devrunner.tui.state import StateStore

logger = logging.getLogger(__name__)

MAIN_TITLE = "devrunner"
KeyHandler = Callable[[str], None]


class App(Protocol):
    """The controller surface keymaps are allowed to use."""

    def set_view(self, name: str, props: Any = None) -> None: ...

    def refresh_view(self, props: Any = None) -> None: ...

    def exit(self) -> None: ...

    def restart(self, pane: ProcessPane) -> None: ...


class View(Protocol):
    name: str

    def show(self, props: Any = None) -> None: ...

    def render(self, props: Any = None) -> RenderableType: ...

    def keymap(self, app: App) -> KeyHandler: ...


def legend_status(label: str, on: bool) -> str:
    """Legend item with an ON/off badge, as rich markup."""
    if on:
        return f"{label}: [black on white]ON [/]"
    return f"{label}: [white on grey30]off[/]"


def _legend(*items: str) -> Layout:
    text = Text.from_markup(" " + " | ".join(items))
    text.no_wrap = True
    text.overflow = "crop"
    return Layout(text, name="legend", size=1)


class MainView:
    """All panes stacked, exactly one of them highlighted."""

    name = "main"

    def __init__(self, panes: Sequence[ProcessPane], state: StateStore, border_color: str = "grey50") -> None:
        self.panes = list(panes)
        self.state = state
        self.border_color = border_color
        self.selected = 0
        self._redraw()

    @property
    def selected_pane(self) -> ProcessPane | None:
        return self.panes[self.selected] if self.panes else None

    def select_next(self) -> None:
        if self.panes:
            self.selected = (self.selected + 1) % len(self.panes)
            self._redraw()

    def select_previous(self) -> None:
        if self.panes:
            self.selected = (self.selected - 1) % len(self.panes)
            self._redraw()

    def _redraw(self) -> None:
        for index, pane in enumerate(self.panes):
            pane.highlight(index == self.selected)

    def legend(self) -> Layout:
        return _legend(
            "(q)uit",
            "(r)estart selected",
            legend_status("(a)utoscroll", self.state.get_autoscroll()),
            legend_status("(w)rap lines", self.state.get_wrap()),
            "(e)nvironment",
            "(up/down) select pane",
            "(enter) fullscreen selected pane",
        )

    def show(self, props: Any = None) -> None:
        pass

    def render(self, props: Any = None) -> RenderableType:
        autoscroll = self.state.get_autoscroll()
        wrap = self.state.get_wrap()
        borderless = self.state.get_borderless()
        for pane in self.panes:
            pane.set_autoscroll(autoscroll)
            pane.set_wrap(wrap)
            pane.set_borderless(borderless)
        self._redraw()

        stack = Layout(name="panes")
        if self.panes:
            stack.split_column(
                *(Layout(pane.render(), name=f"pane-{index}") for index, pane in enumerate(self.panes))
            )
        root = Layout(name="root")
        root.split_column(stack, self.legend())
        return Panel(root, title=f"[bold]{MAIN_TITLE}[/bold]", border_style=self.border_color, padding=0)

    def keymap(self, app: App) -> KeyHandler:
        def handle(key: str) -> None:
            if key in ("ctrl+c", "q"):
                app.exit()
                return
            if key == "up":
                self.select_previous()
            elif key == "down":
                self.select_next()
            elif key == "enter":
                if self.selected_pane is not None:
                    app.set_view("fullscreen", self.selected_pane)
                return
            elif key == "a":
                self.state.toggle_autoscroll()
                for pane in self.panes:
                    pane.set_autoscroll(self.state.get_autoscroll())
            elif key == "w":
                self.state.toggle_wrap()
                for pane in self.panes:
                    pane.set_wrap(self.state.get_wrap())
            elif key == "r":
                if self.selected_pane is not None:
                    app.restart(self.selected_pane)
            elif key == "e":
                self.state.set_previous_view(self.name)
                self.state.set_borderless(False)
                app.set_view("environment")
                return
            app.refresh_view()

        return handle


class FullscreenView:
    """A single pane filling the screen."""

    name = "fullscreen"

    def __init__(self, state: StateStore) -> None:
        self.state = state
        self.pane: ProcessPane | None = None

    def legend(self) -> Layout:
        return _legend(
            "(q/esc) back",
            "(r)estart",
            legend_status("(a)utoscroll", self.state.get_autoscroll()),
            legend_status("(w)rap lines", self.state.get_wrap()),
            legend_status("(b)orderless", self.state.get_borderless()),
            "(e)nvironment",
            "(0/1) jump to head/tail",
            "(up/down or mousewheel) scroll if autoscroll is off",
        )

    def show(self, props: Any = None) -> None:
        """Focus the pane passed as props, before any frame is painted."""
        if props is not None:
            self.pane = props

    def render(self, props: Any = None) -> RenderableType:
        self.show(props)
        root = Layout(name="root")
        if self.pane is None:
            root.split_column(Layout(Text("no pane selected"), name="body"), self.legend())
            return root
        self.pane.set_borderless(self.state.get_borderless())
        self.pane.set_wrap(self.state.get_wrap())
        root.split_column(Layout(self.pane.render(), name="body"), self.legend())
        return root

    def keymap(self, app: App) -> KeyHandler:
        def back_to_main() -> None:
            self.state.reset_borderless()
            if self.pane is not None:
                self.pane.set_borderless(False)
            app.set_view("main")

        def handle(key: str) -> None:
            pane = self.pane
            if key == "ctrl+c":
                app.exit()
                return
            if key in ("q", "escape"):
                back_to_main()
                return
            if pane is None:
                return
            if key == "a":
                self.state.toggle_autoscroll()
                pane.set_autoscroll(self.state.get_autoscroll())
            elif key == "b":
                self.state.toggle_borderless()
                pane.set_borderless(self.state.get_borderless())
            elif key == "w":
                self.state.toggle_wrap()
                pane.set_wrap(self.state.get_wrap())
            elif key == "r":
                app.restart(pane)
            elif key == "0":
                self.state.disable_autoscroll()
                pane.set_autoscroll(False)
                pane.scroll_to_head()
            elif key == "1":
                self.state.disable_autoscroll()
                pane.set_autoscroll(False)
                pane.scroll_to_tail()
            elif key in ("up", "wheel_up", "down", "wheel_down"):
                # Manual scrolling only applies while autoscroll is off
                if not self.state.get_autoscroll():
                    pane.scroll_by(-1 if key in ("up", "wheel_up") else 1)
            elif key == "e":
                self.state.set_previous_view(self.name, pane)
                self.state.set_borderless(False)
                app.set_view("environment")
                return
            app.refresh_view(pane)

        return handle


def format_environment(runners: Sequence[ProcessRunner], environment: Sequence[str]) -> tuple[str, str]:
    """
    Build the two blocks shown by the environment view.

    Returns:
        (binaries, entries): one "Title:  /bin/path" line per runner, and
        the environment entries with blanks and comments dropped,
        duplicates removed and the rest sorted
    """
    width = max((len(runner.title) for runner in runners), default=0) + 2
    binaries = "\n".join(f"{runner.title + ':':<{width}}{runner.spec.bin_path}" for runner in runners)

    entries = {line.strip() for line in environment}
    kept = sorted(entry for entry in entries if entry and not entry.startswith("#"))
    return binaries, "\n".join(kept)


def _to_ansi(text: Text, console: Console) -> str:
    """Flatten styled text back into ANSI so it can go through a LogView."""
    return "".join(
        segment.style.render(segment.text, color_system=ColorSystem.EIGHT_BIT) if segment.style else segment.text
        for segment in text.render(console)
    )


class EnvironmentView:
    """Scrollable overlay listing binaries and the merged environment."""

    name = "environment"

    def __init__(
        self,
        runners: Sequence[ProcessRunner],
        environment: Sequence[str],
        state: StateStore,
        border_color: str = "grey50",
    ) -> None:
        self.state = state
        self.border_color = border_color
        self.view = LogView()
        self.view.set_autoscroll(False)

        binaries, entries = format_environment(runners, environment)
        highlighted = Syntax(entries, "bash", theme="monokai", background_color="default").highlight(entries)
        highlighted.rstrip()
        console = Console(color_system="256")
        self.view.write(f"{binaries}\n\n{_to_ansi(highlighted, console)}\n")

    def legend(self) -> Layout:
        return _legend(
            "(q/esc/e) back",
            legend_status("(w)rap lines", self.state.get_wrap()),
            legend_status("(b)orderless", self.state.get_borderless()),
            "(0/1) jump to head/tail",
            "(up/down or mousewheel) scroll",
        )

    def show(self, props: Any = None) -> None:
        pass

    def render(self, props: Any = None) -> RenderableType:
        self.view.set_wrap(self.state.get_wrap())
        if self.state.get_borderless():
            body: RenderableType = self.view
        else:
            body = Panel(self.view, title="[bold]Environment[/bold]", border_style=self.border_color, padding=(0, 1))
        root = Layout(name="root")
        root.split_column(Layout(body, name="body"), self.legend())
        return root

    def keymap(self, app: App) -> KeyHandler:
        def back_to_previous() -> None:
            previous = self.state.get_previous_view()
            self.state.set_borderless(previous.borderless)
            if previous.props is not None:
                previous.props.set_borderless(previous.borderless)
            app.set_view(previous.name, previous.props)

        def handle(key: str) -> None:
            if key == "ctrl+c":
                app.exit()
                return
            if key in ("q", "escape", "e"):
                back_to_previous()
                return
            if key == "b":
                self.state.toggle_borderless()
            elif key == "w":
                self.state.toggle_wrap()
            elif key == "0":
                self.view.scroll_to_head()
            elif key == "1":
                self.view.scroll_to_tail()
            elif key in ("up", "wheel_up"):
                self.view.scroll_by(-1)
            elif key in ("down", "wheel_down"):
                self.view.scroll_by(1)
            app.refresh_view()

        return handle
