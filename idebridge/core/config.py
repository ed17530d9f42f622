"""Environment-driven configuration for the gateway and the host server."""

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from idebridge.core.constants import (
    CALL_TIMEOUT_SECONDS,
    DEFAULT_HOST,
    DEFAULT_MUTATION_TIMEOUT_SECONDS,
    DEFAULT_PORTS,
    MOVE_MUTATION_TIMEOUT_SECONDS,
    PROBE_TIMEOUT_SECONDS,
)

load_dotenv()

_config_log = logging.getLogger("idebridge.config")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        _config_log.warning("config_invalid variable=%s value=%s", name, raw, extra={"variable": name})
        return default
    return value if value > 0 else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        _config_log.warning("config_invalid variable=%s value=%s", name, raw, extra={"variable": name})
        return default


def parse_ports(raw: str) -> tuple[int, ...]:
    """Parse a comma-separated port list; raises ValueError on malformed entries."""
    ports: list[int] = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        port = int(item)
        if not 0 < port < 65536:
            raise ValueError(f"Port out of range: {port}")
        ports.append(port)
    return tuple(ports)


@dataclass(frozen=True)
class GatewayConfig:
    host: str = DEFAULT_HOST
    ports: tuple[int, ...] = DEFAULT_PORTS
    probe_timeout: float = PROBE_TIMEOUT_SECONDS
    call_timeout: float = CALL_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls) -> "GatewayConfig":
        ports = DEFAULT_PORTS
        raw_ports = os.getenv("IDEBRIDGE_PORTS")
        if raw_ports:
            try:
                ports = parse_ports(raw_ports) or DEFAULT_PORTS
            except ValueError:
                _config_log.warning(
                    "config_invalid variable=IDEBRIDGE_PORTS value=%s",
                    raw_ports,
                    extra={"variable": "IDEBRIDGE_PORTS"},
                )
        return cls(
            host=os.getenv("IDEBRIDGE_HOST", DEFAULT_HOST),
            ports=ports,
            probe_timeout=_env_float("IDEBRIDGE_PROBE_TIMEOUT", PROBE_TIMEOUT_SECONDS),
            call_timeout=_env_float("IDEBRIDGE_CALL_TIMEOUT", CALL_TIMEOUT_SECONDS),
        )


@dataclass(frozen=True)
class HostConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORTS[0]
    default_timeout: float = DEFAULT_MUTATION_TIMEOUT_SECONDS
    move_timeout: float = MOVE_MUTATION_TIMEOUT_SECONDS

    @classmethod
    def from_env(cls) -> "HostConfig":
        return cls(
            port=_env_int("IDEBRIDGE_HOST_PORT", DEFAULT_PORTS[0]),
            default_timeout=_env_float("IDEBRIDGE_DEFAULT_TIMEOUT", DEFAULT_MUTATION_TIMEOUT_SECONDS),
            move_timeout=_env_float("IDEBRIDGE_MOVE_TIMEOUT", MOVE_MUTATION_TIMEOUT_SECONDS),
        )
