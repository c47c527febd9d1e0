"""Application configuration via defaults, YAML file, environment and flags.

Precedence, lowest first: built-in defaults, the optional YAML config
file, ``ALERT_EXEC_*`` environment variables (and ``.env``), then the
keyword overrides passed to :func:`load_settings` by the command line.
"""

import math
import re
from pathlib import Path
from typing import Any, Optional

from pydantic import field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    YamlConfigSettingsSource,
)

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_RE_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: str) -> float:
    """Convert a duration string such as ``"5s"`` or ``"1m30s"`` to seconds.

    A bare number is taken as seconds.

    Args:
        value: Duration text.

    Returns:
        Duration in seconds.

    Raises:
        ValueError: If *value* is not a finite duration.
    """
    text = value.strip()
    try:
        seconds = float(text)
    except ValueError:
        seconds = 0.0
        pos = 0
        for match in _RE_DURATION_PART.finditer(text):
            if match.start() != pos:
                break
            seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
            pos = match.end()
        if pos == 0 or pos != len(text):
            raise ValueError(f"invalid duration {value!r}") from None
    if not math.isfinite(seconds):
        raise ValueError(f"invalid duration {value!r}")
    return seconds


def format_duration(seconds: float) -> str:
    """Render *seconds* compactly, e.g. ``100ms``, ``5s`` or ``1m30s``."""
    if seconds < 1:
        return f"{seconds * 1000:g}ms"
    hours, rem = divmod(seconds, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{int(hours)}h{int(minutes)}m{secs:g}s"
    if minutes:
        return f"{int(minutes)}m{secs:g}s"
    return f"{secs:g}s"


def parse_listen(listen: str) -> tuple[str, int]:
    """Split a ``[host]:port`` listen address.

    An empty host means all interfaces; IPv6 hosts may be bracketed.

    Raises:
        ValueError: If the address has no usable port.
    """
    host, sep, port = listen.rpartition(":")
    if not sep or not port.isdigit() or int(port) > 65535:
        raise ValueError(f"invalid listen address {listen!r}")
    return host.strip("[]") or "0.0.0.0", int(port)


class Settings(BaseSettings):
    """Service configuration.

    Attributes:
        listen: ``[host]:port`` to bind the HTTP server to.
        token: Shared secret expected in the ``X-Token`` header.  Empty
            disables the check.
        command: Executable path, optionally a Jinja2 template.
        args: Argument list; each entry may be a Jinja2 template.
        timeout: Command deadline in seconds.  Accepts duration strings
            such as ``"5s"`` or ``"250ms"``.
        log_level: ``debug``, ``info``, ``warn`` or ``error``.
        max_body_bytes: Largest accepted webhook body.
    """

    listen: str = ":9095"
    token: str = ""
    command: str = "/usr/local/bin/send-evolution"
    args: list[str] = []
    timeout: float = 5.0
    log_level: str = "info"
    max_body_bytes: int = 1 << 20

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "ALERT_EXEC_",
        "extra": "ignore",
        "frozen": True,
    }

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # The YAML file sits below the environment.
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    @field_validator("listen")
    @classmethod
    def _check_listen(cls, value: str) -> str:
        if not value:
            raise ValueError("listen address cannot be empty")
        parse_listen(value)
        return value

    @field_validator("command")
    @classmethod
    def _check_command(cls, value: str) -> str:
        if not value:
            raise ValueError("command cannot be empty")
        return value

    @field_validator("timeout", mode="before")
    @classmethod
    def _parse_timeout(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_duration(value)
        return value

    @field_validator("timeout")
    @classmethod
    def _check_timeout(cls, value: float) -> float:
        if not value > 0 or not math.isfinite(value):
            raise ValueError("timeout must be greater than zero")
        return value

    def bind_address(self) -> tuple[str, int]:
        """Return the ``(host, port)`` pair for the HTTP server."""
        return parse_listen(self.listen)


def load_settings(config_file: Optional[str] = None, **overrides: Any) -> Settings:
    """Build a :class:`Settings` from every configuration source.

    Args:
        config_file: Optional path to a YAML (or JSON) config file.
        **overrides: Highest-precedence values, typically command-line
            flags.  ``None`` values are ignored.

    Raises:
        FileNotFoundError: If *config_file* does not exist.
        yaml.YAMLError: If *config_file* is not valid YAML.
        pydantic.ValidationError: If the merged values are invalid.
    """
    overrides = {key: value for key, value in overrides.items() if value is not None}
    if not config_file:
        return Settings(**overrides)

    path = Path(config_file)
    if not path.is_file():
        raise FileNotFoundError(f"config file not found: {config_file}")

    class FileSettings(Settings):
        model_config = {"yaml_file": path}

    return FileSettings(**overrides)
