"""
Supervisor: builds the runner chain and drives it alongside the UI.

Start order is a linear chain: runner 0 waits on an already-fired signal,
runner i waits on runner i-1's did-start. Startup runs as a task next to
the UI so the operator sees panes fill in as services come up.

A spawn failure does not end the session. The failure is recorded and
written into the failed runner's pane; the runners after it stay queued on
their predecessor's did-start, so restarting the failed runner from the UI
releases the rest of the chain.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol, Sequence

from devrunner.errors import SpawnError
from devrunner.process.buffer import LogBuffer
from devrunner.process.cancel import CancelScope
from devrunner.process.readiness import ReadinessSignal
from devrunner.process.runner import DEFAULT_GRACE_PERIOD, ProcessRunner, ProcessSpec

logger = logging.getLogger(__name__)


@dataclass
class StartFailure:
    """A runner that could not be spawned."""

    title: str
    error: SpawnError


class UIController(Protocol):
    """What the supervisor needs from the view controller."""

    async def run(self) -> None: ...


class Supervisor:
    """
    Owns every ProcessRunner for the session.

    Example:
        cancel = CancelScope()
        supervisor = Supervisor(specs, cancel)
        controller = ViewController(panes_for(supervisor.runners), state, cancel)
        await supervisor.run(controller)
    """

    def __init__(
        self,
        specs: Sequence[ProcessSpec],
        cancel: CancelScope,
        max_buffer_bytes: int | None = None,
        grace_period: float = DEFAULT_GRACE_PERIOD,
    ) -> None:
        """
        Create one runner per spec, in start order.

        Args:
            specs: Process specifications in dependency order
            cancel: Root cancellation scope for the session
            max_buffer_bytes: Per-runner log buffer cap, None for unbounded
            grace_period: Seconds between SIGINT and SIGKILL on stop
        """
        self.cancel = cancel
        self.runners = [
            ProcessRunner(
                spec,
                cancel,
                buffer=LogBuffer(max_bytes=max_buffer_bytes),
                grace_period=grace_period,
            )
            for spec in specs
        ]
        self.failures: list[StartFailure] = []
        self._pending: list[asyncio.Task[bool]] = []

    async def start_all(self) -> list[StartFailure]:
        """
        Start every runner in chain order.

        Returns once each runner has either started, failed to spawn, been
        queued behind a failed predecessor, or observed cancellation.

        Returns:
            The spawn failures seen so far
        """
        go = ReadinessSignal.already_fired()
        previous: ProcessRunner | None = None
        blocked = False

        for runner in self.runners:
            dependency = go if previous is None else previous.did_start()
            if blocked:
                # Predecessor failed; wait in the background in case it is restarted
                runner.append_notice(f"waiting for {previous.title} to start")
                self._pending.append(asyncio.create_task(self._start_one(runner, dependency)))
            else:
                started = await self._start_one(runner, dependency)
                if self.cancel.cancelled:
                    break
                blocked = not started
            previous = runner

        return self.failures

    async def _start_one(self, runner: ProcessRunner, dependency: ReadinessSignal) -> bool:
        try:
            return await runner.start(dependency)
        except SpawnError as e:
            logger.error("error running %s: %s", runner.title, e)
            self.failures.append(StartFailure(runner.title, e))
            runner.append_notice(f"failed to start ({e.bin_path}): {e.reason}", error=True)
            return False

    async def stop_all(self) -> None:
        """Stop every runner, last-started first."""
        self.cancel.cancel()
        for runner in reversed(self.runners):
            await runner.stop()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
            self._pending.clear()

    async def run(self, controller: UIController) -> list[StartFailure]:
        """
        Run startup and the UI together, then shut everything down.

        The UI returning (user exit) or the root scope being cancelled both
        end the session.

        Returns:
            Spawn failures observed during the session
        """
        startup = asyncio.create_task(self.start_all())
        try:
            await controller.run()
        finally:
            self.cancel.cancel()
            await asyncio.gather(startup, return_exceptions=True)
            await self.stop_all()
        if not startup.cancelled() and startup.exception() is not None:
            raise startup.exception()
        return self.failures

