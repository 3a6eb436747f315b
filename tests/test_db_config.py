from pathlib import Path

from pgvenv.db_config import ConnectionDescriptor, ServerConfig


def test_connection_descriptor_uri():
    descriptor = ConnectionDescriptor(host="localhost", port=5433, database="postgres")

    assert descriptor.uri == "postgresql://localhost:5433/postgres"


def test_server_config_descriptor_and_options(tmp_path: Path):
    config = ServerConfig(
        bin_dir=tmp_path / "bin",
        data_dir=tmp_path / "pgdata",
        sock_dir=tmp_path / "pgsock",
        port=6543,
        database="app",
        options=("-F", "-c", "log_statement=all"),
    )

    assert config.connection_descriptor == ConnectionDescriptor("localhost", 6543, "app")
    assert config.postgres_options() == [
        "-i",
        "-h",
        "localhost",
        "-p",
        "6543",
        "-k",
        str(tmp_path / "pgsock"),
        "-F",
        "-c",
        "log_statement=all",
    ]
