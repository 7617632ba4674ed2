"""
devrunner

Runs a set of local blockchain-node processes in dependency order and shows
their output side by side in a full-screen terminal UI. This package
provides:

- Process supervision: ProcessRunner, Supervisor, readiness chaining
- Terminal UI: ViewController and its main, fullscreen and environment views
- Configuration: TOML run files, environment files, TUI settings
- CLI infrastructure: Typer-based command structure
"""

__version__ = "0.1.0"

# Re-export public types for convenient imports
from devrunner.errors import (
    ChildExitedError,
    ConfigError,
    DevrunnerError,
    InvariantViolation,
    SpawnError,
    StreamError,
)
from devrunner.process import (
    CancelScope,
    LogBuffer,
    ProcessRunner,
    ProcessSpec,
    ReadinessSignal,
    ReadyCheck,
    Supervisor,
)

__all__ = [
    "__version__",
    # Errors
    "DevrunnerError",
    "SpawnError",
    "StreamError",
    "ChildExitedError",
    "InvariantViolation",
    "ConfigError",
    # Supervision
    "CancelScope",
    "LogBuffer",
    "ProcessRunner",
    "ProcessSpec",
    "ReadinessSignal",
    "ReadyCheck",
    "Supervisor",
]
