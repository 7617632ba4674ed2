"""
Error types for process supervision.

- SpawnError: child could not be started (binary missing, not executable)
- StreamError: a pipe reader failed after the child was running
- ChildExitedError: child exited unexpectedly
- InvariantViolation: programmer error, e.g. start() while running
- ConfigError: configuration file or environment file is unusable

Only InvariantViolation is fatal. The others are reported to the operator
as sentinel lines in the affected pane and as log records.
"""

import signal


class DevrunnerError(Exception):
    """Base class for all devrunner errors."""


class SpawnError(DevrunnerError):
    """
    Raised when a child process cannot be spawned.

    Attributes:
        title: Title of the runner that failed
        bin_path: Binary that was executed
        reason: Underlying OS error message
    """

    def __init__(self, title: str, bin_path: str, reason: str) -> None:
        self.title = title
        self.bin_path = bin_path
        self.reason = reason
        super().__init__(f"failed to start {title} ({bin_path}): {reason}")


class StreamError(DevrunnerError):
    """
    Raised when reading a child's output stream fails mid-run.

    Attributes:
        title: Title of the runner
        stream: "stdout" or "stderr"
        reason: Underlying error message
    """

    def __init__(self, title: str, stream: str, reason: str) -> None:
        self.title = title
        self.stream = stream
        self.reason = reason
        super().__init__(f"stream error on {stream}: {reason}")


class ChildExitedError(DevrunnerError):
    """
    Describes a child that exited unexpectedly.

    Never raised out of a runner; the message becomes the exit sentinel.

    Attributes:
        title: Title of the runner
        returncode: Exit status, negative for signal termination
    """

    def __init__(self, title: str, returncode: int) -> None:
        self.title = title
        self.returncode = returncode
        super().__init__(describe_returncode(returncode))


class InvariantViolation(DevrunnerError):
    """Raised when a runner operation is called in a state that forbids it."""


class ConfigError(DevrunnerError):
    """
    Raised when a configuration source cannot be loaded.

    Attributes:
        path: File that failed to load
        reason: What was wrong with it
    """

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


def describe_returncode(returncode: int) -> str:
    """Format a subprocess return code for display."""
    if returncode < 0:
        try:
            name = signal.Signals(-returncode).name
        except ValueError:
            name = f"signal {-returncode}"
        return f"terminated by {name}"
    return f"exit status {returncode}"
