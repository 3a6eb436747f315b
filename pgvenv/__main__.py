import logging
from pathlib import Path
from typing import List, Optional

import typer

from pgvenv import run_in_venv
from pgvenv.errors import PgVenvError
from pgvenv.server import ServerKind
from pgvenv.venv_config import ProbeKind, VenvConfig

app = typer.Typer(add_completion=False)

formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
handler = logging.StreamHandler()
handler.setFormatter(formatter)
logger = logging.getLogger("pgvenv")
logger.addHandler(handler)
logger.setLevel(logging.INFO)


def main():
    app()


@app.command(
    context_settings={"allow_interspersed_args": False, "ignore_unknown_options": True}
)
def pgvenv(
    command: List[str] = typer.Argument(
        ..., help="The command to run once the server accepts connections."
    ),
    bin_dir: Optional[Path] = typer.Option(
        None, envvar="PGVENV_BIN_DIR", help="Postgres binaries. Default: pg_config --bindir."
    ),
    host: str = typer.Option("localhost", envvar="PGVENV_HOST"),
    port: int = typer.Option(0, envvar="PGVENV_PORT", help="0 picks a free port."),
    database: str = typer.Option("postgres", envvar="PGVENV_DATABASE"),
    server: ServerKind = typer.Option(ServerKind.PG_CTL, envvar="PGVENV_SERVER"),
    probe: ProbeKind = typer.Option(
        ProbeKind.PG_ISREADY,
        envvar="PGVENV_PROBE",
        help="Readiness check used by the raw server.",
    ),
    boot_timeout: float = typer.Option(60.0, envvar="PGVENV_BOOT_TIMEOUT"),
    poll_interval: float = typer.Option(1.0, envvar="PGVENV_POLL_INTERVAL"),
    stop_timeout: float = typer.Option(30.0, envvar="PGVENV_STOP_TIMEOUT"),
    option: List[str] = typer.Option(
        ["-F"], "--option", "-O", help="Extra postgres option, repeatable."
    ),
    env_var: str = typer.Option(
        "PGURL", envvar="PGVENV_ENV_VAR", help="Variable receiving the connection uri."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """
    Start a disposable postgres server, run COMMAND against it, then throw
    the server away. Exits with the status of COMMAND.
    """
    if verbose:
        logger.setLevel(logging.DEBUG)
    try:
        config = VenvConfig(
            bin_dir=bin_dir,
            host=host,
            port=port,
            database=database,
            server_kind=server,
            probe_kind=probe,
            boot_timeout=boot_timeout,
            poll_interval=poll_interval,
            stop_timeout=stop_timeout,
            server_options=tuple(option),
            env_var=env_var,
        )
    except ValueError as e:
        raise typer.BadParameter(str(e))
    try:
        code = run_in_venv(list(command), config)
    except PgVenvError as e:
        logger.error(e)
        raise typer.Exit(code=e.exit_code)
    raise typer.Exit(code=code)


if __name__ == "__main__":
    main()
