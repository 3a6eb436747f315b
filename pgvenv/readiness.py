from __future__ import annotations

import dataclasses
import enum
import getpass
import logging
from pathlib import Path
from typing import Protocol

import pg8000.dbapi

from .db_config import ConnectionDescriptor
from .process import run

logger = logging.getLogger(__name__)

# SQLSTATE of a server that is still starting up or shutting down
CANNOT_CONNECT_NOW = "57P03"


class ProbeStatus(enum.Enum):
    READY = "ready"
    REFUSED = "refused"
    NO_RESPONSE = "no_response"
    ERROR = "error"


@dataclasses.dataclass(frozen=True)
class ProbeResult:
    status: ProbeStatus
    detail: str = ""

    @property
    def ready(self) -> bool:
        return self.status is ProbeStatus.READY

    @property
    def retryable(self) -> bool:
        return self.status in (ProbeStatus.REFUSED, ProbeStatus.NO_RESPONSE)


class ReadinessProber(Protocol):
    def poll(self, descriptor: ConnectionDescriptor) -> ProbeResult:
        ...


class PgIsReadyProber:
    """
    Check a server with pg_isready.

    See https://www.postgresql.org/docs/current/app-pg-isready.html for the
    meaning of its exit codes.
    """

    STATUS_BY_CODE = {
        0: ProbeStatus.READY,
        1: ProbeStatus.REFUSED,
        2: ProbeStatus.NO_RESPONSE,
    }

    def __init__(self, bin_dir: Path, env: dict[str, str] | None = None):
        self.pg_isready = bin_dir / "pg_isready"
        self.env = env

    def poll(self, descriptor: ConnectionDescriptor) -> ProbeResult:
        out, status = run(
            self.pg_isready, [f"--dbname={descriptor.uri}"], env=self.env
        )
        probe_status = self.STATUS_BY_CODE.get(status.code, ProbeStatus.ERROR)
        if probe_status is ProbeStatus.ERROR:
            return ProbeResult(
                probe_status,
                f"unexpected pg_isready {status} --dbname={descriptor.uri}; "
                f"detail: {out.strip()}",
            )
        return ProbeResult(probe_status, out.strip())


class Pg8000Prober:
    """
    Check a server by opening a connection to it with pg8000.
    """

    def __init__(self, user: str | None = None, timeout: float = 5):
        self.user = user or getpass.getuser()
        self.timeout = timeout

    def _connect(self, descriptor: ConnectionDescriptor) -> pg8000.dbapi.Connection:
        return pg8000.dbapi.connect(
            user=self.user,
            host=descriptor.host,
            port=descriptor.port,
            database=descriptor.database,
            timeout=self.timeout,
        )

    def poll(self, descriptor: ConnectionDescriptor) -> ProbeResult:
        try:
            connection = self._connect(descriptor)
        except pg8000.dbapi.InterfaceError as e:
            # nothing is listening yet
            return ProbeResult(ProbeStatus.NO_RESPONSE, str(e))
        except pg8000.dbapi.DatabaseError as e:
            fields = e.args[0] if e.args and isinstance(e.args[0], dict) else {}
            if fields.get("C") == CANNOT_CONNECT_NOW:
                return ProbeResult(ProbeStatus.REFUSED, str(fields.get("M", e)))
            return ProbeResult(ProbeStatus.ERROR, f"pg8000 failed to connect: {e}")
        connection.close()
        return ProbeResult(ProbeStatus.READY)
