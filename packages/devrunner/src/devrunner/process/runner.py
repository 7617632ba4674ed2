"""
ProcessRunner: owns one child process and its captured output.

Lifecycle:
    created -> starting -> running -> exiting -> exited
                   |                               ^
                   +------(cancelled/spawn error)--+

- start() waits on the dependency's readiness signal, spawns the child with
  stdout and stderr piped, and launches one reader task per stream
- Both readers append raw bytes to the same LogBuffer; the buffer's lock
  serializes them
- stop() sends SIGINT to the child's process group, escalates to SIGKILL
  after the grace period, waits for the readers, and appends one sentinel
- Children run in their own session so Ctrl+C in the terminal never
  reaches them directly; termination is always forwarded explicitly
- Cancelling the parent scope behaves like stop()
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from devrunner.errors import ChildExitedError, InvariantViolation, SpawnError, StreamError
from devrunner.process.buffer import LogBuffer
from devrunner.process.cancel import CancelScope
from devrunner.process.export import LogExporter
from devrunner.process.ready import ReadyCheck
from devrunner.process.readiness import Readiness, ReadinessSignal

logger = logging.getLogger(__name__)

DEFAULT_GRACE_PERIOD = 5.0
READ_CHUNK_SIZE = 64 * 1024

# Inverse video for notices, white on red for errors
NOTICE_STYLE = "\x1b[7m"
ERROR_STYLE = "\x1b[97;41m"
RESET_STYLE = "\x1b[0m"

EXITED_CLEANLY = "process exited cleanly"
EXITED_WITH_ERROR = "process exited with error"
RESTARTED = "process restarted"


class RunnerState(str, Enum):
    """Lifecycle states of a ProcessRunner."""

    CREATED = "created"
    STARTING = "starting"
    RUNNING = "running"
    EXITING = "exiting"
    EXITED = "exited"


@dataclass(frozen=True)
class ProcessSpec:
    """
    Immutable description of a process to run.

    Attributes:
        title: Display name, e.g. "Sequencer"
        bin_path: Path of the binary to execute
        args: Argument vector, not including the binary
        env: Environment entries as KEY=VALUE; empty means inherit ours
        ready_check: Optional check that must pass before did-start fires
        log_path: Optional file receiving an ANSI-stripped copy of the output
    """

    title: str
    bin_path: str
    args: tuple[str, ...] = ()
    env: tuple[str, ...] = ()
    ready_check: ReadyCheck | None = None
    log_path: Path | None = None

    def environment(self) -> dict[str, str] | None:
        """Environment mapping for the child, or None to inherit."""
        if not self.env:
            return None
        environment: dict[str, str] = {}
        for entry in self.env:
            key, _, value = entry.partition("=")
            environment[key] = value
        return environment


class ProcessRunner:
    """
    Supervises a single child process.

    Example:
        runner = ProcessRunner(ProcessSpec("Echo", "/bin/echo", ("hello",)), cancel)
        await runner.start(ReadinessSignal.already_fired())
        await runner.wait_exited()
        print(runner.buffer.text())
    """

    def __init__(
        self,
        spec: ProcessSpec,
        cancel: CancelScope | None = None,
        buffer: LogBuffer | None = None,
        grace_period: float = DEFAULT_GRACE_PERIOD,
    ) -> None:
        """
        Initialize a runner in the created state.

        Args:
            spec: What to run
            cancel: Parent scope; its cancellation stops this runner
            buffer: Log buffer to write into (a new unbounded one if None)
            grace_period: Seconds between SIGINT and SIGKILL on stop
        """
        self.spec = spec
        self.buffer = buffer if buffer is not None else LogBuffer()
        self.grace_period = grace_period
        self.returncode: int | None = None

        self._cancel = cancel.child() if cancel is not None else CancelScope()
        self._state = RunnerState.CREATED
        self._did_start = ReadinessSignal()
        self._dependency: ReadinessSignal | None = None
        self._attempt: CancelScope | None = None
        self._process: asyncio.subprocess.Process | None = None
        self._waiter: asyncio.Task[int] | None = None
        self._readers: list[asyncio.Task[None]] = []
        self._supervisor: asyncio.Task[None] | None = None
        self._terminator: asyncio.Task[None] | None = None
        self._exited = asyncio.Event()
        self._stop_requested = False
        self._at_line_start = True
        self._exporter = LogExporter(spec.log_path) if spec.log_path is not None else None

    @property
    def title(self) -> str:
        return self.spec.title

    @property
    def state(self) -> RunnerState:
        return self._state

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def can_restart(self) -> bool:
        return self._state in (RunnerState.RUNNING, RunnerState.EXITED)

    def did_start(self) -> ReadinessSignal:
        """Signal fired once the child has been spawned (and passed its ready check)."""
        return self._did_start

    def output_size(self) -> int:
        return self.buffer.size()

    def output_slice(self, start: int, end: int) -> bytes:
        return self.buffer.slice(start, end)

    async def start(self, dependency_ready: ReadinessSignal | None = None) -> bool:
        """
        Wait for the dependency, then spawn the child.

        Args:
            dependency_ready: Signal to wait on first; None starts immediately

        Returns:
            True if the child was spawned, False if cancellation was observed

        Raises:
            SpawnError: If the binary could not be executed
            InvariantViolation: If the runner is not created or exited
        """
        if self._state not in (RunnerState.CREATED, RunnerState.EXITED):
            raise InvariantViolation(f"cannot start {self.title} while {self._state.value}")

        self._state = RunnerState.STARTING
        self._dependency = dependency_ready
        self._exited.clear()
        attempt = self._attempt = self._cancel.child()

        if dependency_ready is not None:
            if await dependency_ready.wait(attempt) is Readiness.CANCELLED:
                logger.info("cancelled before starting %s", self.title)
                self._mark_exited()
                return False
        if attempt.cancelled:
            self._mark_exited()
            return False

        if self._exporter is not None and not self._exporter.open():
            self.append_notice(f"log export disabled ({self._exporter.path}): {self._exporter.error}", error=True)

        logger.debug("starting %s: %s %s", self.title, self.spec.bin_path, list(self.spec.args))
        try:
            process = await asyncio.create_subprocess_exec(
                self.spec.bin_path,
                *self.spec.args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.spec.environment(),
                start_new_session=True,
            )
        except OSError as e:
            error = SpawnError(self.title, self.spec.bin_path, e.strerror or str(e))
            logger.error("%s", error)
            if self._exporter is not None:
                self._exporter.close()
            self._mark_exited()
            raise error from e

        self._process = process
        self.returncode = None
        self._stop_requested = False
        self._state = RunnerState.RUNNING

        self._readers = [
            asyncio.create_task(self._read_stream(process.stdout, "stdout")),
            asyncio.create_task(self._read_stream(process.stderr, "stderr")),
        ]
        self._waiter = asyncio.create_task(process.wait())
        self._supervisor = asyncio.create_task(self._supervise())
        logger.info("started %s (pid %d)", self.title, process.pid)

        if attempt.cancelled:
            self._begin_stop()
            return False

        if self.spec.ready_check is not None:
            await self.spec.ready_check.wait_until_ready(attempt)
            if attempt.cancelled:
                return False

        self._did_start.signal()
        return True

    async def stop(self) -> None:
        """
        Stop the child and wait until the exit sentinel has been written.

        Safe to call in any state and any number of times.
        """
        if self._state is RunnerState.STARTING:
            if self._attempt is not None:
                self._attempt.cancel()
            await self._exited.wait()
            return
        if self._state is RunnerState.CREATED:
            return
        if self._state is RunnerState.RUNNING:
            self._begin_stop()
        await self._exited.wait()

    async def restart(self) -> bool:
        """
        Stop the child, then start it again with the same spec and dependency.

        The exit sentinel and a restart notice separate the two runs in the
        log buffer.

        Raises:
            InvariantViolation: If the runner is not running or exited
        """
        if not self.can_restart:
            raise InvariantViolation(f"cannot restart {self.title} while {self._state.value}")
        logger.info("restarting %s", self.title)
        await self.stop()
        self.append_notice(RESTARTED)
        return await self.start(self._dependency)

    async def wait_exited(self) -> None:
        """Wait until the runner reaches the exited state."""
        await self._exited.wait()

    def _mark_exited(self) -> None:
        self._state = RunnerState.EXITED
        self._exited.set()

    def _begin_stop(self) -> None:
        """Move to exiting and schedule polite-then-forceful termination."""
        self._state = RunnerState.EXITING
        self._stop_requested = True
        if self._attempt is not None:
            self._attempt.cancel()
        if self._terminator is None or self._terminator.done():
            self._terminator = asyncio.create_task(self._terminate())

    async def _terminate(self) -> None:
        process = self._process
        waiter = self._waiter
        if process is None or waiter is None:
            return
        self._signal_group(process, signal.SIGINT)
        try:
            await asyncio.wait_for(asyncio.shield(waiter), timeout=self.grace_period)
        except asyncio.TimeoutError:
            logger.warning(
                "%s did not exit within %.1fs of SIGINT, sending SIGKILL",
                self.title,
                self.grace_period,
            )
            self._signal_group(process, signal.SIGKILL)

    def _signal_group(self, process: asyncio.subprocess.Process, sig: signal.Signals) -> None:
        if process.returncode is not None:
            return
        try:
            os.killpg(process.pid, sig)
        except ProcessLookupError:
            logger.debug("%s already gone when sending %s", self.title, sig.name)
        except PermissionError:
            process.send_signal(sig)

    async def _supervise(self) -> None:
        """Wait for the child to exit (or for cancellation), then write the sentinel."""
        assert self._waiter is not None
        cancelled = asyncio.create_task(self._cancel.wait())
        try:
            await asyncio.wait({self._waiter, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancelled.cancel()

        if not self._waiter.done():
            logger.info("session cancelled, stopping %s", self.title)
            self._begin_stop()
        returncode = await self._waiter

        if self._readers:
            _, pending = await asyncio.wait(self._readers, timeout=self.grace_period)
            for reader in pending:
                reader.cancel()
        self._readers = []

        self.returncode = returncode
        if returncode == 0 or self._stop_requested:
            logger.info("%s %s", self.title, EXITED_CLEANLY)
            self.append_notice(EXITED_CLEANLY)
        else:
            error = ChildExitedError(self.title, returncode)
            logger.error("%s %s: %s", self.title, EXITED_WITH_ERROR, error)
            self.append_notice(f"{EXITED_WITH_ERROR}: {error}", error=True)

        if self._exporter is not None:
            self._exporter.close()
        self._process = None
        self._mark_exited()

    async def _read_stream(self, stream: asyncio.StreamReader | None, name: str) -> None:
        if stream is None:
            return
        try:
            while True:
                chunk = await stream.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                self._append(chunk)
        except OSError as e:
            error = StreamError(self.title, name, str(e))
            logger.warning("%s: %s", self.title, error)
            self.append_notice(str(error), error=True)

    def _append(self, data: bytes) -> None:
        self.buffer.append(data)
        self._at_line_start = data.endswith(b"\n")
        if self._exporter is not None:
            self._exporter.write(data)

    def append_notice(self, message: str, error: bool = False) -> None:
        """Write a highlighted "[devrunner] <title> <message>" line into the log."""
        style = ERROR_STYLE if error else NOTICE_STYLE
        prefix = "" if self._at_line_start else "\n"
        line = f"{prefix}{style}[devrunner] {self.title} {message}{RESET_STYLE}\n"
        self._append(line.encode("utf-8"))
