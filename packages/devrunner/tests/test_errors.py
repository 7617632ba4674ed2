"""Tests for error types and exit status formatting."""

import signal

from devrunner.errors import ChildExitedError, ConfigError, DevrunnerError, SpawnError, describe_returncode


class TestDescribeReturncode:
    """Tests for describe_returncode."""

    def test_exit_status(self):
        assert describe_returncode(0) == "exit status 0"
        assert describe_returncode(3) == "exit status 3"

    def test_signal(self):
        assert describe_returncode(-signal.SIGKILL) == "terminated by SIGKILL"
        assert describe_returncode(-signal.SIGINT) == "terminated by SIGINT"

    def test_unknown_signal(self):
        assert describe_returncode(-250) == "terminated by signal 250"


class TestErrorTypes:
    """Tests for error context attributes."""

    def test_spawn_error(self):
        error = SpawnError("Node", "/opt/bin/node", "No such file or directory")
        assert isinstance(error, DevrunnerError)
        assert error.bin_path == "/opt/bin/node"
        assert str(error) == "failed to start Node (/opt/bin/node): No such file or directory"

    def test_child_exited(self):
        error = ChildExitedError("Node", 2)
        assert error.returncode == 2
        assert str(error) == "exit status 2"

    def test_config_error(self):
        error = ConfigError("devrunner.toml", "invalid TOML")
        assert (error.path, error.reason) == ("devrunner.toml", "invalid TOML")
        assert str(error) == "devrunner.toml: invalid TOML"
