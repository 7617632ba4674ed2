"""Tests for ViewController dispatch, the draw queue and the UI lifecycle."""

import asyncio
import io
import os
import shutil
import signal
import sys
import threading

import pytest
from rich.console import Console

from devrunner.process.cancel import CancelScope
from devrunner.process.readiness import ReadinessSignal
from devrunner.process.runner import RESTARTED, ProcessRunner, ProcessSpec, RunnerState
from devrunner.tui.controller import ViewController
from devrunner.tui.pane import ProcessPane
from devrunner.tui.state import StateStore

BASH = shutil.which("bash") or "/bin/bash"


def make_controller(specs, cancel=None, **kwargs) -> ViewController:
    cancel = cancel or CancelScope()
    panes = [ProcessPane(ProcessRunner(spec, cancel), tick_interval=0.01) for spec in specs]
    return ViewController(
        panes,
        StateStore(),
        cancel,
        console=Console(file=io.StringIO(), width=120, height=30),
        refresh_per_second=50.0,
        **kwargs,
    )


@pytest.fixture
def no_tty(monkeypatch):
    """Run the keyboard reader in its non-terminal mode."""
    monkeypatch.setattr(sys, "stdin", io.StringIO(""))


class TestDrawQueue:
    """Tests for post() and drain()."""

    def test_drain_runs_in_order(self):
        controller = make_controller([ProcessSpec("A", "/bin/true")])
        calls = []
        controller.post(lambda: calls.append(1))
        controller.post(lambda: calls.append(2))

        assert calls == []
        assert controller.drain() == 2
        assert calls == [1, 2]
        assert controller.drain() == 0

    def test_post_from_threads(self):
        controller = make_controller([ProcessSpec("A", "/bin/true")])
        calls = []

        def producer():
            for i in range(100):
                controller.post(lambda i=i: calls.append(i))

        threads = [threading.Thread(target=producer) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert controller.drain() == 400
        assert len(calls) == 400

    def test_render_drains_first(self):
        controller = make_controller([ProcessSpec("A", "/bin/true")])
        pane = controller.panes[0]
        controller.post(lambda: pane.view.write("queued\n"))
        controller.render()
        assert pane.view.line_count == 1


class TestViewSwitching:
    """Tests for set_view and key dispatch."""

    def test_set_view_installs_keymap(self):
        controller = make_controller([ProcessSpec("A", "/bin/true")])
        pane = controller.panes[0]
        controller.set_view("fullscreen", pane)
        assert controller.current.name == "fullscreen"
        assert controller.props is pane

        # "b" means nothing on the main view; here it toggles borderless
        controller.handle_key("b")
        assert controller.state.get_borderless() is True

    def test_unknown_keys_ignored(self):
        controller = make_controller([ProcessSpec("A", "/bin/true")])
        controller.handle_key("x")
        controller.handle_key("left")
        assert controller.current.name == "main"
        assert not controller.cancel.cancelled

    def test_exit_cancels_scope(self):
        controller = make_controller([ProcessSpec("A", "/bin/true")])
        controller.exit()
        assert controller.cancel.cancelled


class TestRestart:
    """Tests for restarting from the UI."""

    @pytest.mark.asyncio
    async def test_restart_key(self):
        cancel = CancelScope()
        controller = make_controller([ProcessSpec("Echo", BASH, ("-c", "echo hello"))], cancel)
        runner = controller.panes[0].runner
        await runner.start(ReadinessSignal.already_fired())
        await runner.wait_exited()

        controller.handle_key("r")
        await asyncio.wait_for(asyncio.gather(*controller._restarts.values()), timeout=2.0)
        await runner.wait_exited()

        text = runner.buffer.text()
        assert RESTARTED in text
        assert text.count("hello") == 2
        cancel.cancel()

    @pytest.mark.asyncio
    async def test_overlapping_restart_ignored(self):
        cancel = CancelScope()
        controller = make_controller([ProcessSpec("Sleeper", BASH, ("-c", "echo up; sleep 30"))], cancel)
        runner = controller.panes[0].runner
        runner.grace_period = 0.5
        await runner.start(ReadinessSignal.already_fired())

        controller.handle_key("r")
        first = controller._restarts[id(controller.panes[0])]
        controller.handle_key("r")
        assert controller._restarts[id(controller.panes[0])] is first

        await asyncio.wait_for(first, timeout=3.0)
        assert runner.state is RunnerState.RUNNING
        assert runner.buffer.text().count(RESTARTED) == 1
        await runner.stop()

    @pytest.mark.asyncio
    async def test_restart_spawn_failure_is_written_to_log(self, tmp_path):
        script = tmp_path / "service.sh"
        script.write_text("#!/bin/sh\necho once\n")
        script.chmod(0o755)
        controller = make_controller([ProcessSpec("Flaky", str(script))])
        runner = controller.panes[0].runner
        await runner.start(ReadinessSignal.already_fired())
        await runner.wait_exited()

        script.unlink()
        controller.handle_key("r")
        await asyncio.wait_for(asyncio.gather(*controller._restarts.values()), timeout=2.0)

        assert "failed to start" in runner.buffer.text()
        assert runner.state is RunnerState.EXITED


class TestRun:
    """Tests for the full UI loop."""

    @pytest.mark.asyncio
    async def test_runs_until_exit(self, no_tty):
        controller = make_controller([ProcessSpec("A", "/bin/true")])
        pane = controller.panes[0]
        task = asyncio.create_task(controller.run())

        pane.runner.buffer.append(b"streamed\n")
        await asyncio.sleep(0.2)
        controller.exit()
        await asyncio.wait_for(task, timeout=2.0)

        assert "streamed" in "\n".join(pane.view._all_lines())

    @pytest.mark.asyncio
    async def test_stops_when_scope_cancelled(self, no_tty):
        cancel = CancelScope()
        controller = make_controller([ProcessSpec("A", "/bin/true")], cancel)
        task = asyncio.create_task(controller.run())
        await asyncio.sleep(0.1)

        cancel.cancel()
        await asyncio.wait_for(task, timeout=2.0)

    @pytest.mark.asyncio
    async def test_sigint_shuts_down(self, no_tty):
        controller = make_controller([ProcessSpec("A", "/bin/true")])
        task = asyncio.create_task(controller.run())
        await asyncio.sleep(0.1)

        assert not task.done()
        os.kill(os.getpid(), signal.SIGINT)
        await asyncio.wait_for(task, timeout=2.0)
        assert controller.cancel.cancelled

    @pytest.mark.asyncio
    async def test_keys_reach_views_while_running(self, no_tty):
        controller = make_controller([ProcessSpec("A", "/bin/true"), ProcessSpec("B", "/bin/true")])
        task = asyncio.create_task(controller.run())
        await asyncio.sleep(0.05)

        controller.handle_key("down")
        controller.handle_key("enter")
        await asyncio.sleep(0.05)
        assert controller.props is controller.panes[1]

        controller.handle_key("ctrl+c")
        await asyncio.wait_for(task, timeout=2.0)
