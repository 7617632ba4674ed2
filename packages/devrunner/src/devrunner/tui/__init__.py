"""
Full-screen terminal UI for supervised processes.

- StateStore: shared autoscroll / wrap / borderless toggles
- LogView: scrollable ANSI log renderable
- ProcessPane: per-runner panel that follows the runner's log buffer
- KeyboardTask, parse_keys: terminal key and mouse wheel input
- MainView, FullscreenView, EnvironmentView: the named views
- ViewController: view switching, draw queue and render loop
"""

from devrunner.tui.controller import ViewController
from devrunner.tui.keyboard import KeyboardTask, parse_keys
from devrunner.tui.logview import LogView
from devrunner.tui.pane import ProcessPane
from devrunner.tui.state import PreviousView, StateStore
from devrunner.tui.views import EnvironmentView, FullscreenView, MainView, legend_status

__all__ = [
    "EnvironmentView",
    "FullscreenView",
    "KeyboardTask",
    "LogView",
    "MainView",
    "PreviousView",
    "ProcessPane",
    "StateStore",
    "ViewController",
    "legend_status",
    "parse_keys",
]
