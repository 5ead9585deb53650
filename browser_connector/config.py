"""
Connector Settings

Runtime configuration read from the environment, then overridden by
command-line flags in __main__.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def parse_ports(raw: str) -> List[int]:
    """Parse a comma-separated port list ("9222,9223") preserving order."""
    ports = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            port = int(part)
        except ValueError:
            raise ValueError(f"Invalid port: {part!r}") from None
        if not 0 < port < 65536:
            raise ValueError(f"Port out of range: {port}")
        ports.append(port)
    return ports


@dataclass
class Settings:
    """Connector settings with the original defaults."""
    host: str = "127.0.0.1"
    port: int = 3001
    browser_host: str = "localhost"
    debugging_ports: List[int] = field(default_factory=lambda: [9222, 9223, 9224])
    log_capacity: int = 1000
    log_retain: int = 800
    connect_timeout: float = 10.0
    command_timeout: float = 60.0
    navigation_timeout: float = 30.0
    discovery_budget: Optional[float] = None

    def __post_init__(self):
        if self.log_capacity < 1:
            raise ValueError("log_capacity must be at least 1")
        if not 0 <= self.log_retain < self.log_capacity:
            raise ValueError("log_retain must be in [0, log_capacity)")

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        ports = os.environ.get("BROWSER_DEBUGGING_PORTS")
        return cls(
            host=os.environ.get("CONNECTOR_HOST") or "127.0.0.1",
            port=_env_int("PORT", 3001),
            browser_host=os.environ.get("BROWSER_HOST") or "localhost",
            debugging_ports=parse_ports(ports) if ports else [9222, 9223, 9224],
            log_capacity=_env_int("LOG_CAPACITY", 1000),
            log_retain=_env_int("LOG_RETAIN", 800),
            connect_timeout=_env_float("CONNECT_TIMEOUT", 10.0),
            command_timeout=_env_float("COMMAND_TIMEOUT", 60.0),
            navigation_timeout=_env_float("NAVIGATION_TIMEOUT", 30.0),
            discovery_budget=_env_float("DISCOVERY_BUDGET", None),
        )
