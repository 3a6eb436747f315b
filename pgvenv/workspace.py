from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from types import TracebackType
from typing import Type

from .errors import SetupError

logger = logging.getLogger(__name__)


class Workspace:
    """
    A temporary directory holding the data directory, the unix socket
    directory and the server log. Removed on exit.
    """

    def __init__(self, prefix: str = "pgvenv_", dir: Path | None = None):
        self.prefix = prefix
        self.dir = dir
        self.root: Path | None = None

    @property
    def data_dir(self) -> Path:
        return self.root / "pgdata"

    @property
    def sock_dir(self) -> Path:
        return self.root / "pgsock"

    @property
    def log_path(self) -> Path:
        return self.root / "postgres.log"

    def create(self) -> Workspace:
        try:
            self.root = Path(tempfile.mkdtemp(prefix=self.prefix, dir=self.dir))
            self.data_dir.mkdir(mode=0o700)
            self.sock_dir.mkdir(mode=0o755)
            self.log_path.touch()
        except OSError as e:
            if self.root is not None:
                shutil.rmtree(self.root, ignore_errors=True)
                self.root = None
            raise SetupError(f"could not create workspace: {e}") from e
        logger.debug(f"Created workspace {self.root}")
        return self

    def remove(self) -> None:
        if self.root is None:
            return
        logger.debug(f"Removing workspace {self.root}")
        try:
            shutil.rmtree(self.root)
        except OSError as e:
            raise SetupError(f"could not remove workspace {self.root}: {e}") from e
        self.root = None

    def __enter__(self) -> Workspace:
        return self.create()

    def __exit__(
        self,
        exc_type: Type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.remove()
