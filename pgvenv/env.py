from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Mapping

from .errors import SetupError
from .process import run

logger = logging.getLogger(__name__)


def get_postgres_bin_dir(bin_dir: Path | None = None) -> Path:
    """
    Get the path to the postgres binaries.

    :param bin_dir: An explicit directory, used as is when given.
    :return: The directory reported by ``pg_config --bindir`` otherwise.
    """
    if bin_dir is not None:
        return Path(bin_dir)
    pg_config = shutil.which("pg_config")
    if pg_config is None:
        raise SetupError("pg_config not found on PATH, pass --bin-dir")
    out, status = run(pg_config, ["--bindir"])
    if not status.success:
        raise SetupError(f"pg_config --bindir failed with {status}: {out}")
    return Path(out.strip())


def get_pg_environ(bin_dir: Path) -> dict[str, str]:
    """
    The environment for postgres tools, with the binaries on the PATH.
    """
    return {
        **os.environ,
        "PATH": os.environ.get("PATH", "") + os.pathsep + str(bin_dir),
    }


def get_user_environ(
    env_var: str, uri: str, base: Mapping[str, str] | None = None
) -> dict[str, str]:
    """
    The environment for the user command: inherited, plus the connection uri.
    """
    environ = dict(os.environ if base is None else base)
    environ[env_var] = uri
    return environ
