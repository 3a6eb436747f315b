"""End to end tests against a real postgres installation."""

import getpass
import os
import shutil
import sys

import pg8000.dbapi
import pytest

from pgvenv import PgVenv, VenvConfig, run_in_venv
from pgvenv.server import ServerKind
from pgvenv.venv_config import ProbeKind

pytestmark = [
    pytest.mark.skipif(shutil.which("pg_config") is None, reason="postgres is not installed"),
    pytest.mark.skipif(
        hasattr(os, "geteuid") and os.geteuid() == 0, reason="postgres refuses to run as root"
    ),
]


@pytest.mark.parametrize(
    "config",
    [
        VenvConfig(server_kind=ServerKind.PG_CTL),
        VenvConfig(server_kind=ServerKind.RAW),
        VenvConfig(server_kind=ServerKind.RAW, probe_kind=ProbeKind.PG8000),
    ],
    ids=["pg_ctl", "raw-pg_isready", "raw-pg8000"],
)
def test_server_accepts_connections(config):
    with PgVenv(config) as venv:
        descriptor = venv.connection_descriptor()
        connection = pg8000.dbapi.connect(
            user=getpass.getuser(),
            host=descriptor.host,
            port=descriptor.port,
            database=descriptor.database,
        )
        try:
            cursor = connection.cursor()
            cursor.execute("select 1")
            assert cursor.fetchone() == [1]
        finally:
            connection.close()
        workspace_root = venv.workspace.root

    assert not workspace_root.exists()


def test_run_in_venv_with_pg_isready():
    code = run_in_venv(
        [
            sys.executable,
            "-c",
            "import os, sys; "
            "sys.exit(0 if os.environ['PGURL'].startswith('postgresql://localhost:') else 9)",
        ],
        VenvConfig(server_kind=ServerKind.RAW, poll_interval=0.2),
    )

    assert code == 0
