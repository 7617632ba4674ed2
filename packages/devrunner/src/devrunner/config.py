"""
Configuration for a devrunner session.

Two sources feed a session:
- A TOML run file with an optional [tui] table and an ordered
  [[services]] array; the array order is the start order
- An environment file of KEY=VALUE lines handed to every child

TUI settings can also come from DEVRUNNER_TUI_* environment variables.
Values in the run file take precedence over the environment.

Example run file:
    [tui]
    wrap_lines = true

    [[services]]
    name = "sequencer"
    title = "Sequencer"
    bin_path = "~/.devrunner/bin/sequencer"

    [services.ready_check]
    kind = "http"
    target = "http://${SEQUENCER_GRPC_ADDR}/health"
"""

from __future__ import annotations

import logging
import os
import shlex
import string
import time
import tomllib
from pathlib import Path
from typing import Literal, Mapping, Sequence

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings

from devrunner.errors import ConfigError
from devrunner.process.ready import ReadyCheck, http_poll, tcp_poll
from devrunner.process.runner import ProcessSpec

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("devrunner.toml")
DEFAULT_LOG_DIR = Path("~/.devrunner/logs")


class TUISettings(BaseSettings):
    """Start state and appearance of the terminal UI.

    All settings can be overridden via environment variables with
    DEVRUNNER_TUI_ prefix. For example:
        DEVRUNNER_TUI_WRAP_LINES=true
        DEVRUNNER_TUI_HIGHLIGHT_COLOR=magenta
    """

    # Log viewer start state
    auto_scroll: bool = True
    wrap_lines: bool = False
    borderless: bool = False

    # Accessibility
    highlight_color: str = "blue"
    border_color: str = "grey50"

    # Memory bounds; None keeps everything
    max_ui_log_lines: int | None = 10000
    max_buffer_bytes: int | None = 16 * 1024 * 1024

    refresh_per_second: float = 10.0
    mouse: bool = True

    model_config = {"env_prefix": "DEVRUNNER_TUI_"}


class ReadyCheckConfig(BaseModel):
    """
    Check run after a service is spawned, before dependents may start.

    Attributes:
        kind: "http" (GET, 200 means ready) or "tcp" (connect succeeds)
        target: URL for http, host:port for tcp; ${VAR} is expanded from
            the session environment
        retry_count: Maximum number of poll attempts
        retry_interval: Seconds between attempts
        timeout: Per-attempt timeout in seconds
    """

    kind: Literal["http", "tcp"] = Field(..., description="Check type")
    target: str = Field(..., description="URL or host:port to poll")
    retry_count: int = Field(default=10, ge=1, description="Maximum poll attempts")
    retry_interval: float = Field(default=0.1, ge=0, description="Seconds between attempts")
    timeout: float = Field(default=2.0, gt=0, description="Per-attempt timeout")


class ServiceConfig(BaseModel):
    """
    One supervised service.

    Attributes:
        name: Identifier used by --path overrides and log file names
        title: Pane title (defaults to name)
        bin_path: Binary to execute; ~ and ${VAR} are expanded
        args: Argument vector, as a list or a shell-style string
        env: Extra KEY=VALUE entries for this service only
        ready_check: Optional post-spawn readiness check
    """

    name: str = Field(..., min_length=1, description="Service identifier")
    title: str | None = Field(default=None, description="Pane title")
    bin_path: str = Field(..., min_length=1, description="Binary to execute")
    args: list[str] = Field(default_factory=list, description="Argument vector")
    env: dict[str, str] = Field(default_factory=dict, description="Per-service environment")
    ready_check: ReadyCheckConfig | None = Field(default=None, description="Post-spawn readiness check")

    @field_validator("args", mode="before")
    @classmethod
    def _split_args(cls, value: object) -> object:
        if isinstance(value, str):
            return shlex.split(value)
        return value

    @property
    def display_title(self) -> str:
        return self.title or self.name


class RunConfig(BaseModel):
    """Everything loaded from a run file."""

    tui: TUISettings = Field(default_factory=TUISettings)
    services: list[ServiceConfig] = Field(..., min_length=1)
    environment_file: str | None = Field(default=None, description="Default --env-file")

    @field_validator("services")
    @classmethod
    def _unique_names(cls, services: list[ServiceConfig]) -> list[ServiceConfig]:
        seen: set[str] = set()
        for service in services:
            if service.name in seen:
                raise ValueError(f"duplicate service name '{service.name}'")
            seen.add(service.name)
        return services


def load_run_config(path: str | Path = DEFAULT_CONFIG_PATH) -> RunConfig:
    """
    Load and validate a TOML run file.

    Raises:
        ConfigError: If the file is missing, is not valid TOML, or fails validation
    """
    path = Path(path).expanduser()
    try:
        with path.open("rb") as handle:
            raw = tomllib.load(handle)
    except OSError as e:
        raise ConfigError(str(path), e.strerror or str(e)) from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(str(path), f"invalid TOML: {e}") from e

    tui = raw.pop("tui", {})
    try:
        config = RunConfig(tui=TUISettings(**tui), **raw)
    except ValidationError as e:
        raise ConfigError(str(path), _describe(e)) from e

    if config.environment_file is not None:
        # Relative to the run file, not the working directory
        env_path = Path(config.environment_file).expanduser()
        if not env_path.is_absolute():
            config.environment_file = str(path.parent / env_path)
    logger.debug("loaded %d services from %s", len(config.services), path)
    return config


def _describe(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    return f"{location}: {first['msg']}" if location else first["msg"]


def parse_environment(text: str, source: str = "<string>") -> dict[str, str]:
    """
    Parse KEY=VALUE lines.

    Blank lines and # comments are skipped. An "export " prefix and matching
    surrounding quotes are removed.

    Raises:
        ConfigError: If a non-comment line has no "="
    """
    environment: dict[str, str] = {}
    for number, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ConfigError(source, f"line {number}: expected KEY=VALUE")
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        environment[key] = value
    return environment


def load_environment_file(path: str | Path) -> dict[str, str]:
    """Read an environment file. See parse_environment for the format."""
    path = Path(path).expanduser()
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(str(path), e.strerror or str(e)) from e
    return parse_environment(text, str(path))


def merge_environment(*layers: Mapping[str, str]) -> dict[str, str]:
    """Combine environment layers; later layers override earlier ones."""
    merged: dict[str, str] = {}
    for layer in layers:
        merged.update(layer)
    return merged


def parse_assignments(values: Sequence[str], what: str) -> dict[str, str]:
    """
    Parse repeated NAME=VALUE command line options.

    Raises:
        ConfigError: If an item has no "="
    """
    parsed: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise ConfigError(what, f"expected NAME=VALUE, got '{item}'")
        parsed[key] = value
    return parsed


def environment_lines(environment: Mapping[str, str]) -> list[str]:
    return [f"{key}={value}" for key, value in environment.items()]


def _expand(value: str, environment: Mapping[str, str]) -> str:
    return string.Template(value).safe_substitute(environment)


def build_ready_check(service: ServiceConfig, environment: Mapping[str, str]) -> ReadyCheck | None:
    """
    Turn a service's ready_check table into a ReadyCheck.

    Raises:
        ConfigError: If a tcp target is not host:port
    """
    check = service.ready_check
    if check is None:
        return None
    target = _expand(check.target, environment)
    if check.kind == "http":
        if "://" not in target:
            target = f"http://{target}"
        poll = http_poll(target, timeout=check.timeout)
    else:
        host, sep, port = target.rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ConfigError(service.name, f"tcp ready check target must be host:port, got '{target}'")
        poll = tcp_poll(host.strip("[]"), int(port), timeout=check.timeout)
    return ReadyCheck(
        name=f"{service.display_title} {check.kind} {target}",
        poll=poll,
        retry_count=check.retry_count,
        retry_interval=check.retry_interval,
    )


def build_specs(
    config: RunConfig,
    environment: Mapping[str, str],
    path_overrides: Mapping[str, str] | None = None,
    log_dir: str | Path | None = None,
) -> list[ProcessSpec]:
    """
    Produce the ordered process specifications for a session.

    Args:
        config: Loaded run file
        environment: Session environment given to every service
        path_overrides: Binary path per service name, replacing bin_path
        log_dir: Directory for exported logs; None disables export

    Raises:
        ConfigError: If an override names an unknown service
    """
    path_overrides = dict(path_overrides or {})
    unknown = set(path_overrides) - {service.name for service in config.services}
    if unknown:
        raise ConfigError("--path", f"unknown service(s): {', '.join(sorted(unknown))}")

    started_at = time.strftime("%Y%m%d-%H%M%S")
    specs: list[ProcessSpec] = []
    for service in config.services:
        service_env = merge_environment(environment, service.env)
        bin_path = path_overrides.get(service.name, service.bin_path)
        bin_path = os.path.expanduser(_expand(bin_path, service_env))
        log_path = None
        if log_dir is not None:
            log_path = Path(log_dir).expanduser() / f"{started_at}-{service.name}.log"
        specs.append(
            ProcessSpec(
                title=service.display_title,
                bin_path=bin_path,
                args=tuple(_expand(arg, service_env) for arg in service.args),
                env=tuple(environment_lines(service_env)),
                ready_check=build_ready_check(service, service_env),
                log_path=log_path,
            )
        )
        logger.debug("service %s: %s %s", service.name, bin_path, service.args)
    return specs
