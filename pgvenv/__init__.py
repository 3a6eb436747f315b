from __future__ import annotations

import contextlib
import logging
from pathlib import Path
from types import TracebackType
from typing import Sequence, Type

from .db_config import ConnectionDescriptor, ServerConfig
from .env import get_pg_environ, get_postgres_bin_dir, get_user_environ
from .errors import (
    EXIT_SETUP_FAILURE,
    BootError,
    InitDbError,
    PgVenvError,
    SetupError,
    StopError,
)
from .options import fmt_option_string
from .ports import get_free_port
from .process import ExitStatus, StatusKind, run, run_attached, shell_command
from .readiness import Pg8000Prober, PgIsReadyProber, ReadinessProber
from .server import (
    PgCtlPostgresServer,
    PostgresServer,
    RawPostgresServer,
    ServerKind,
    create_server,
)
from .venv_config import ProbeKind, VenvConfig
from .workspace import Workspace

logger = logging.getLogger(__name__)

__all__ = [
    "BootError",
    "ConnectionDescriptor",
    "InitDbError",
    "PgCtlPostgresServer",
    "PgVenv",
    "PgVenvError",
    "ProbeKind",
    "RawPostgresServer",
    "ServerConfig",
    "ServerKind",
    "SetupError",
    "StopError",
    "VenvConfig",
    "run_in_venv",
]


class PgVenv:
    """
    A disposable postgres server, alive for the duration of a ``with`` block.

    Entering creates a workspace, initializes a data directory in it and
    boots a server. Exiting stops the server and removes the workspace, also
    when entering failed half way.
    """

    def __init__(self, config: VenvConfig | None = None):
        self.config = config or VenvConfig()
        self.bin_dir: Path | None = None
        self.pg_environ: dict[str, str] | None = None
        self.workspace: Workspace | None = None
        self.server: PostgresServer | None = None
        self._stack: contextlib.ExitStack | None = None

    def initdb(self) -> str:
        """
        Initialize the data directory of the workspace using pg_ctl.
        :return: The output of initdb.
        """
        data_dir = self.workspace.data_dir
        logger.debug(f"Initializing database at {data_dir}")
        out, status = run(
            self.bin_dir / "pg_ctl",
            [
                "initdb",
                "-o",
                fmt_option_string(*self.config.initdb_options),
                "--pgdata",
                str(data_dir),
            ],
            env=self.pg_environ,
        )
        if not status.success:
            logger.error(out)
            raise InitDbError(f"initdb failed with {status}; details: {out}")
        return out

    def _create_prober(self) -> ReadinessProber:
        if self.config.probe_kind is ProbeKind.PG8000:
            return Pg8000Prober()
        return PgIsReadyProber(self.bin_dir, env=self.pg_environ)

    def _server_config(self) -> ServerConfig:
        port = self.config.port or get_free_port(self.config.host)
        return ServerConfig(
            bin_dir=self.bin_dir,
            data_dir=self.workspace.data_dir,
            sock_dir=self.workspace.sock_dir,
            port=port,
            host=self.config.host,
            database=self.config.database,
            options=self.config.server_options,
            log_path=self.workspace.log_path,
        )

    def connection_descriptor(self) -> ConnectionDescriptor:
        if self.server is None:
            raise RuntimeError("the server has not been started")
        return self.server.connection_descriptor()

    @property
    def uri(self) -> str:
        return self.connection_descriptor().uri

    def environ(self) -> dict[str, str]:
        """
        The environment for commands using the server.
        """
        return get_user_environ(self.config.env_var, self.uri)

    def run(self, command: Sequence[str]) -> ExitStatus:
        """
        Run a command with the connection uri in its environment.
        :param command: The command line of the user.
        :return: The exit status of the command.
        """
        if not command:
            raise ValueError("no command given: nothing to do with the server")
        program, args = shell_command(command)
        logger.info(f"Running {list(command)} with {self.config.env_var}={self.uri}")
        return run_attached(program, args, env=self.environ())

    def __enter__(self) -> PgVenv:
        """
        Create the workspace and start the server.
        :return:
        """
        with contextlib.ExitStack() as stack:
            self.bin_dir = get_postgres_bin_dir(self.config.bin_dir)
            logger.debug(f"Using postgres binaries from {self.bin_dir}")
            self.pg_environ = get_pg_environ(self.bin_dir)
            self.workspace = stack.enter_context(Workspace())
            self.initdb()
            server = create_server(
                self.config.server_kind,
                self._server_config(),
                self._create_prober(),
                boot_timeout=self.config.boot_timeout,
                poll_interval=self.config.poll_interval,
                stop_timeout=self.config.stop_timeout,
                env=self.pg_environ,
            )
            server.start()
            stack.callback(server.stop)
            self.server = server
            self._stack = stack.pop_all()
        return self

    def __exit__(
        self,
        exc_type: Type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """
        Stop the server and remove the workspace.
        """
        stack, self._stack = self._stack, None
        if stack is not None:
            stack.close()


def run_in_venv(command: Sequence[str], config: VenvConfig | None = None) -> int:
    """
    Run a command against a disposable postgres server.

    :param command: The command line of the user.
    :param config: The configuration of the server.
    :return: The exit code of the command.
    """
    if not command:
        raise ValueError("no command given: nothing to do with the server")
    with PgVenv(config) as venv:
        status = venv.run(command)
    if status.kind is StatusKind.UNKNOWN:
        logger.error(f"Could not determine how {list(command)} exited")
        return EXIT_SETUP_FAILURE
    return status.code
