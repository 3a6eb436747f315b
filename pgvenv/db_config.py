from __future__ import annotations

import dataclasses
from pathlib import Path


@dataclasses.dataclass(frozen=True)
class ConnectionDescriptor:
    """
    Where clients should connect to.
    """

    host: str
    port: int
    database: str

    @property
    def uri(self) -> str:
        return f"postgresql://{self.host}:{self.port}/{self.database}"


@dataclasses.dataclass(frozen=True)
class ServerConfig:
    """
    The configuration of one postgres server instance.
    The data directory must already be initialized.
    """

    bin_dir: Path
    data_dir: Path
    sock_dir: Path
    port: int
    host: str = "localhost"
    database: str = "postgres"
    options: tuple[str, ...] = ()
    log_path: Path | None = None

    @property
    def connection_descriptor(self) -> ConnectionDescriptor:
        return ConnectionDescriptor(
            host=self.host, port=self.port, database=self.database
        )

    def postgres_options(self) -> list[str]:
        """
        The command line options for the postgres executable, without the
        data directory.
        """
        return [
            "-i",
            "-h",
            self.host,
            "-p",
            str(self.port),
            "-k",
            str(self.sock_dir),
            *self.options,
        ]
