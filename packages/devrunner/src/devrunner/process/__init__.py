"""
Process supervision runtime.

- CancelScope: hierarchical cancellation shared by every blocking call
- ReadinessSignal: one-shot broadcast used to chain runner startup
- LogBuffer: lock-guarded append-only byte log per runner
- ProcessRunner / ProcessSpec: one supervised child process
- ReadyCheck: optional post-spawn readiness check (HTTP or TCP)
- Supervisor: builds and drives the runner chain
"""

from devrunner.process.buffer import LogBuffer
from devrunner.process.cancel import CancelScope
from devrunner.process.ready import ReadyCheck, http_poll, tcp_poll
from devrunner.process.readiness import Readiness, ReadinessSignal
from devrunner.process.runner import ProcessRunner, ProcessSpec, RunnerState
from devrunner.process.supervisor import StartFailure, Supervisor

__all__ = [
    "CancelScope",
    "LogBuffer",
    "ProcessRunner",
    "ProcessSpec",
    "Readiness",
    "ReadinessSignal",
    "ReadyCheck",
    "RunnerState",
    "StartFailure",
    "Supervisor",
    "http_poll",
    "tcp_poll",
]
