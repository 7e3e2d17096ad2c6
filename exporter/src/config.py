"""
Exporter configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
Device definitions live in YAML files inside ``setup_dir``; this module
only covers process-level settings.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import logging

from pydantic import field_validator
from pydantic_settings import BaseSettings


def parse_bind(bind: str) -> tuple[str, int]:
    """Split a ``[host]:port`` bind address.

    An empty host (``":9876"``) binds all interfaces.

    Raises:
        ValueError: If the port is missing, not a number, or out of range.
    """
    value = bind.strip()
    host, sep, port_s = value.rpartition(":")
    if not sep:
        host, port_s = "", value
    host = host.strip("[]") or "0.0.0.0"

    try:
        port = int(port_s)
    except ValueError:
        raise ValueError(f"BIND port must be a number (got: '{bind}')") from None
    if not 1 <= port <= 65535:
        raise ValueError(f"BIND port must be between 1 and 65535 (got: {port})")
    return host, port


class ExporterSettings(BaseSettings):
    """Exporter configuration.

    All values are loaded from environment variables and have defaults.

    Attributes:
        setup_dir: Directory holding device YAML files, ``overview.yaml``
            and optionally ``overview.html``.
        bind: Socket to listen on, ``[host]:port``.
        request_timeout_s: HTTP timeout for device requests.
        backoff_factor: Interval multiplier after a failed poll.
        default_interval_s: Interval for devices configured without a
            usable one.
        log_level: Root logging level name.
    """

    setup_dir: str = "./setup"
    bind: str = ":9876"
    request_timeout_s: float = 10.0
    backoff_factor: int = 5
    default_interval_s: int = 60
    log_level: str = "INFO"

    @field_validator("setup_dir")
    @classmethod
    def setup_dir_must_be_set(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("SETUP_DIR must not be empty")
        return v

    @field_validator("bind")
    @classmethod
    def bind_must_be_valid(cls, v: str) -> str:
        parse_bind(v)
        return v

    @field_validator("request_timeout_s")
    @classmethod
    def timeout_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("REQUEST_TIMEOUT_S must be > 0")
        return v

    @field_validator("backoff_factor", "default_interval_s")
    @classmethod
    def must_be_at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be >= 1")
        return v

    @field_validator("log_level")
    @classmethod
    def log_level_must_be_known(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"LOG_LEVEL '{v}' is not a logging level")
        return level

    @property
    def listen_address(self) -> tuple[str, int]:
        return parse_bind(self.bind)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}
