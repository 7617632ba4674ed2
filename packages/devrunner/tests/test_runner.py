"""Tests for ProcessRunner lifecycle against real child processes."""

import asyncio
import errno
import shutil
from unittest.mock import MagicMock

import pytest

from devrunner.errors import InvariantViolation, SpawnError
from devrunner.process.cancel import CancelScope
from devrunner.process.ready import ReadyCheck
from devrunner.process.readiness import ReadinessSignal
from devrunner.process.runner import (
    EXITED_CLEANLY,
    EXITED_WITH_ERROR,
    RESTARTED,
    ProcessRunner,
    ProcessSpec,
    RunnerState,
)

BASH = shutil.which("bash") or "/bin/bash"


def bash(title: str, script: str, **kwargs) -> ProcessSpec:
    return ProcessSpec(title, BASH, ("-c", script), **kwargs)


async def wait_for_output(runner: ProcessRunner, needle: bytes, timeout: float = 2.0) -> None:
    """Poll the runner's buffer until needle shows up."""
    deadline = asyncio.get_running_loop().time() + timeout
    while needle not in runner.buffer.slice(0, runner.output_size()):
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError(f"{needle!r} not seen in {runner.buffer.text()!r}")
        await asyncio.sleep(0.02)


class TestProcessSpec:
    """Tests for ProcessSpec helpers."""

    def test_empty_env_inherits(self):
        assert ProcessSpec("A", "/bin/true").environment() is None

    def test_env_entries_become_mapping(self):
        spec = ProcessSpec("A", "/bin/true", env=("FOO=bar", "URL=http://x?a=b"))

        assert spec.environment() == {"FOO": "bar", "URL": "http://x?a=b"}


class TestRunnerStart:
    """Tests for start() and the exit sentinel."""

    @pytest.mark.asyncio
    async def test_echo_smoke(self):
        """Echo output is captured, followed by the clean exit sentinel."""
        runner = ProcessRunner(ProcessSpec("Echo", "/bin/echo", ("hello, world",)))

        started = await runner.start(ReadinessSignal.already_fired())
        await asyncio.wait_for(runner.wait_exited(), timeout=1.0)

        assert started is True
        assert runner.did_start().fired
        text = runner.buffer.text()
        assert text.startswith("hello, world\n")
        assert EXITED_CLEANLY in text
        assert runner.state is RunnerState.EXITED
        assert runner.returncode == 0

    @pytest.mark.asyncio
    async def test_spawn_failure(self):
        """A missing binary raises SpawnError and leaves no output."""
        runner = ProcessRunner(ProcessSpec("Missing", "/path/to/nonexistent"))

        with pytest.raises(SpawnError) as exc_info:
            await runner.start(ReadinessSignal.already_fired())

        assert exc_info.value.title == "Missing"
        assert exc_info.value.bin_path == "/path/to/nonexistent"
        assert not runner.did_start().fired
        assert runner.output_size() == 0
        assert runner.state is RunnerState.EXITED

    @pytest.mark.asyncio
    async def test_nonzero_exit(self):
        """A failing child gets the error sentinel with its exit status."""
        runner = ProcessRunner(bash("Fails", "exit 1"))

        await runner.start(ReadinessSignal.already_fired())
        await asyncio.wait_for(runner.wait_exited(), timeout=1.0)

        text = runner.buffer.text()
        assert EXITED_WITH_ERROR in text
        assert "exit status 1" in text
        assert runner.state is RunnerState.EXITED
        assert runner.returncode == 1

    @pytest.mark.asyncio
    async def test_stdout_and_stderr_share_buffer(self):
        runner = ProcessRunner(bash("Both", "echo out; echo err >&2"))

        await runner.start()
        await asyncio.wait_for(runner.wait_exited(), timeout=1.0)

        text = runner.buffer.text()
        assert "out\n" in text
        assert "err\n" in text

    @pytest.mark.asyncio
    async def test_environment_is_passed(self):
        runner = ProcessRunner(bash("Env", 'echo "value=$FOO"', env=("FOO=bar",)))

        await runner.start()
        await asyncio.wait_for(runner.wait_exited(), timeout=1.0)

        assert "value=bar\n" in runner.buffer.text()

    @pytest.mark.asyncio
    async def test_sentinel_starts_on_new_line(self):
        """Output without a trailing newline does not swallow the sentinel."""
        runner = ProcessRunner(bash("NoNewline", "printf partial"))

        await runner.start()
        await asyncio.wait_for(runner.wait_exited(), timeout=1.0)

        assert runner.buffer.text().startswith("partial\n")

    @pytest.mark.asyncio
    async def test_start_while_running_is_invariant_violation(self):
        runner = ProcessRunner(bash("Sleeper", "sleep 30"))
        await runner.start()
        try:
            with pytest.raises(InvariantViolation):
                await runner.start()
        finally:
            await runner.stop()


class TestRunnerDependency:
    """Tests for waiting on the dependency signal."""

    @pytest.mark.asyncio
    async def test_waits_for_dependency(self):
        """Nothing is spawned until the dependency fires."""
        dependency = ReadinessSignal()
        runner = ProcessRunner(ProcessSpec("Echo", "/bin/echo", ("later",)))

        task = asyncio.create_task(runner.start(dependency))
        await asyncio.sleep(0.05)
        assert runner.state is RunnerState.STARTING
        assert runner.pid is None
        assert runner.output_size() == 0

        dependency.signal()
        assert await asyncio.wait_for(task, timeout=1.0) is True
        await asyncio.wait_for(runner.wait_exited(), timeout=1.0)
        assert "later\n" in runner.buffer.text()

    @pytest.mark.asyncio
    async def test_cancel_while_waiting(self):
        """Cancelling the scope during the dependency wait returns False."""
        root = CancelScope()
        runner = ProcessRunner(ProcessSpec("Echo", "/bin/echo", ("never",)), root)

        task = asyncio.create_task(runner.start(ReadinessSignal()))
        await asyncio.sleep(0.02)
        root.cancel()

        assert await asyncio.wait_for(task, timeout=1.0) is False
        assert runner.state is RunnerState.EXITED
        assert runner.output_size() == 0
        assert not runner.did_start().fired

    @pytest.mark.asyncio
    async def test_stop_while_waiting(self):
        runner = ProcessRunner(ProcessSpec("Echo", "/bin/echo", ("never",)))

        task = asyncio.create_task(runner.start(ReadinessSignal()))
        await asyncio.sleep(0.02)
        await asyncio.wait_for(runner.stop(), timeout=1.0)

        assert await task is False
        assert runner.state is RunnerState.EXITED

    @pytest.mark.asyncio
    async def test_ready_check_gates_did_start(self):
        """did_start fires only after the ready check passes."""
        attempts = []

        async def poll() -> bool:
            attempts.append(1)
            return len(attempts) >= 3

        check = ReadyCheck("test poll", poll, retry_count=5, retry_interval=0.01)
        runner = ProcessRunner(bash("Ready", "sleep 30", ready_check=check))
        try:
            assert await runner.start() is True
            assert len(attempts) == 3
            assert runner.did_start().fired
        finally:
            await runner.stop()


class TestRunnerStop:
    """Tests for stop(), restart() and cancellation."""

    @pytest.mark.asyncio
    async def test_stop_running_process(self):
        """stop() interrupts the child and writes the clean sentinel."""
        runner = ProcessRunner(bash("Sleeper", "echo up; sleep 30"))
        await runner.start()
        await wait_for_output(runner, b"up")

        await asyncio.wait_for(runner.stop(), timeout=6.0)

        assert runner.state is RunnerState.EXITED
        assert EXITED_CLEANLY in runner.buffer.text()

    @pytest.mark.asyncio
    async def test_output_size_constant_after_stop(self):
        runner = ProcessRunner(bash("Chatty", "while true; do echo tick; sleep 0.01; done"))
        await runner.start()
        await wait_for_output(runner, b"tick")

        await runner.stop()
        size = runner.output_size()
        await asyncio.sleep(0.1)

        assert runner.output_size() == size

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self):
        runner = ProcessRunner(bash("Sleeper", "sleep 30"))
        await runner.start()

        await runner.stop()
        size = runner.output_size()
        await runner.stop()

        assert runner.output_size() == size
        assert runner.buffer.text().count(EXITED_CLEANLY) == 1

    @pytest.mark.asyncio
    async def test_stop_before_start_is_noop(self):
        runner = ProcessRunner(bash("Idle", "true"))

        await runner.stop()

        assert runner.state is RunnerState.CREATED

    @pytest.mark.asyncio
    async def test_sigkill_after_grace_period(self):
        """A child that ignores SIGINT is killed once the grace period ends."""
        runner = ProcessRunner(bash("Stubborn", 'trap "" INT; echo ready; sleep 30'), grace_period=0.2)
        await runner.start()
        await wait_for_output(runner, b"ready")

        await asyncio.wait_for(runner.stop(), timeout=3.0)

        assert runner.returncode == -9
        assert runner.state is RunnerState.EXITED

    @pytest.mark.asyncio
    async def test_parent_cancel_stops_runner(self):
        root = CancelScope()
        runner = ProcessRunner(bash("Sleeper", "sleep 30"), root)
        await runner.start()

        root.cancel()
        await asyncio.wait_for(runner.wait_exited(), timeout=6.0)

        assert runner.state is RunnerState.EXITED
        assert EXITED_CLEANLY in runner.buffer.text()

    @pytest.mark.asyncio
    async def test_restart_preserves_spec_and_history(self):
        """Restart keeps the spec and appends after the previous run's output."""
        spec = bash("Once", "echo run")
        runner = ProcessRunner(spec)
        await runner.start()
        await asyncio.wait_for(runner.wait_exited(), timeout=1.0)
        size_before = runner.output_size()

        assert await runner.restart() is True
        await asyncio.wait_for(runner.wait_exited(), timeout=1.0)

        text = runner.buffer.text()
        assert runner.spec is spec
        assert runner.output_size() > size_before
        assert text.count("run\n") == 2
        assert text.index(EXITED_CLEANLY) < text.index(RESTARTED)

    @pytest.mark.asyncio
    async def test_restart_running_process(self):
        runner = ProcessRunner(bash("Sleeper", "echo up; sleep 30"))
        await runner.start()
        first_pid = runner.pid

        await asyncio.wait_for(runner.restart(), timeout=6.0)
        try:
            assert runner.state is RunnerState.RUNNING
            assert runner.pid != first_pid
        finally:
            await runner.stop()

    @pytest.mark.asyncio
    async def test_restart_before_start_is_invariant_violation(self):
        runner = ProcessRunner(bash("Idle", "true"))

        assert not runner.can_restart
        with pytest.raises(InvariantViolation):
            await runner.restart()


class TestLogExport:
    """Tests for exporting output to a file."""

    @pytest.mark.asyncio
    async def test_export_strips_ansi(self, tmp_path):
        log_path = tmp_path / "logs" / "colour.log"
        runner = ProcessRunner(bash("Colour", r"printf '\033[31mred\033[0m\n'", log_path=log_path))

        await runner.start()
        await asyncio.wait_for(runner.wait_exited(), timeout=1.0)

        exported = log_path.read_text()
        assert exported.startswith("red\n")
        assert "\x1b" not in exported
        assert EXITED_CLEANLY in exported
        assert "\x1b[31m" in runner.buffer.text()

    @pytest.mark.asyncio
    async def test_unwritable_log_dir_does_not_block_start(self, tmp_path):
        """An export file that cannot be created leaves a supervised child that stops normally."""
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        runner = ProcessRunner(bash("Sleeper", "echo up; sleep 30", log_path=blocker / "sub" / "x.log"))
        runner.grace_period = 1.0

        assert await runner.start() is True
        assert runner.state is RunnerState.RUNNING
        await wait_for_output(runner, b"up")
        assert "log export disabled" in runner.buffer.text()

        await asyncio.wait_for(runner.stop(), timeout=3.0)
        assert runner.state is RunnerState.EXITED
        assert EXITED_CLEANLY in runner.buffer.text()

    @pytest.mark.asyncio
    async def test_export_write_failure_keeps_capturing(self, tmp_path):
        """A full disk stops the export; the child's output still reaches the buffer."""
        log_path = tmp_path / "full.log"
        runner = ProcessRunner(bash("Writer", "echo before; sleep 0.3; echo after", log_path=log_path))

        await runner.start()
        await wait_for_output(runner, b"before")
        exporter = runner._exporter
        exporter._file.close()
        exporter._file = MagicMock(write=MagicMock(side_effect=OSError(errno.ENOSPC, "No space left on device")))

        await asyncio.wait_for(runner.wait_exited(), timeout=2.0)

        assert not exporter.is_open
        assert exporter.error == "No space left on device"
        text = runner.buffer.text()
        assert "after" in text
        assert EXITED_CLEANLY in text
        assert "stream error" not in text
