from __future__ import annotations

import logging
import os
from dataclasses import dataclass

MODES = ("verbose", "status")
HEADER_MERGE_POLICIES = ("append", "replace")


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Listener
    http_addr: str = ":8080"
    shutdown_grace_s: float = 10.0

    # Dependencies
    conf_path: str = "./dependencies.yaml"
    dependency_timeout_s: float = 10.0
    header_merge: str = "append"  # append|replace

    # Response
    mode: str = "verbose"  # verbose|status
    wait_ms: int = 20
    welcome_message: str = "Welcome"

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from FANOUT_* environment variables."""
        return cls(
            http_addr=_env_str("FANOUT_HTTP_ADDR", cls.http_addr),
            shutdown_grace_s=_env_float("FANOUT_SHUTDOWN_GRACE_S", cls.shutdown_grace_s),
            conf_path=_env_str("FANOUT_CONF", cls.conf_path),
            dependency_timeout_s=_env_float("FANOUT_DEPENDENCY_TIMEOUT_S", cls.dependency_timeout_s),
            header_merge=_env_str("FANOUT_HEADER_MERGE", cls.header_merge).strip().lower(),
            mode=_env_str("FANOUT_MODE", cls.mode).strip().lower(),
            wait_ms=_env_int("FANOUT_WAIT_MS", cls.wait_ms),
            welcome_message=_env_str("FANOUT_WELCOME_MESSAGE", cls.welcome_message),
            log_level=_env_str("FANOUT_LOG_LEVEL", cls.log_level).strip().upper(),
        )

    def validate(self) -> None:
        if self.mode not in MODES:
            raise ValueError(f"Unknown mode {self.mode!r}; expected one of {', '.join(MODES)}.")
        if self.header_merge not in HEADER_MERGE_POLICIES:
            raise ValueError(
                f"Unknown header merge policy {self.header_merge!r}; "
                f"expected one of {', '.join(HEADER_MERGE_POLICIES)}."
            )
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Unknown log level {self.log_level!r}.")
        if self.wait_ms < 0:
            raise ValueError("wait_ms must be >= 0.")
        parse_listen_addr(self.http_addr)


def parse_listen_addr(addr: str) -> tuple[str, int]:
    """Split a listen address into (host, port).

    An empty host (":8080") means every interface. Bracketed IPv6 hosts
    ("[::1]:8080") are accepted.
    """
    host, sep, port_s = addr.strip().rpartition(":")
    if not sep:
        raise ValueError(f"Invalid listen address {addr!r}: missing port.")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port = int(port_s)
    except ValueError:
        raise ValueError(f"Invalid listen address {addr!r}: bad port {port_s!r}.") from None
    if not 0 <= port <= 65535:
        raise ValueError(f"Invalid listen address {addr!r}: port out of range.")
    return host or "0.0.0.0", port
