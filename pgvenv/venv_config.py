from __future__ import annotations

import dataclasses
import enum
from pathlib import Path

from .server import (
    DEFAULT_BOOT_TIMEOUT,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_STOP_TIMEOUT,
    ServerKind,
)


class ProbeKind(str, enum.Enum):
    PG_ISREADY = "pg_isready"
    PG8000 = "pg8000"


@dataclasses.dataclass(frozen=True)
class VenvConfig:
    """
    The configuration of a disposable postgres environment.
    A port of 0 means a free port is picked at startup.
    """

    bin_dir: Path | None = None
    host: str = "localhost"
    port: int = 0
    database: str = "postgres"
    server_kind: ServerKind = ServerKind.PG_CTL
    probe_kind: ProbeKind = ProbeKind.PG_ISREADY
    boot_timeout: float = DEFAULT_BOOT_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    stop_timeout: float = DEFAULT_STOP_TIMEOUT
    # the data is thrown away, so fsync is not needed
    server_options: tuple[str, ...] = ("-F",)
    initdb_options: tuple[str, ...] = ("-A", "trust")
    env_var: str = "PGURL"

    def __post_init__(self):
        if not 0 <= self.port <= 65535:
            raise ValueError(f"port must be between 0 and 65535, got {self.port}")
        if self.boot_timeout <= 0 or self.poll_interval <= 0 or self.stop_timeout <= 0:
            raise ValueError("timeouts and intervals must be positive")
