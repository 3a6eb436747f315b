from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .server import BootOutcome

EXIT_STOP_FAILURE = 123
EXIT_BOOT_FAILURE = 124
EXIT_SETUP_FAILURE = 125


class PgVenvError(Exception):
    """
    Base class for failures of pgvenv itself, as opposed to the user command.
    """

    exit_code = EXIT_SETUP_FAILURE


class SetupError(PgVenvError):
    """
    The environment could not be prepared before any server was started.
    """

    pass


class InitDbError(SetupError):
    """
    The data directory could not be initialized.
    """

    pass


class SpawnError(PgVenvError):
    """
    A program could not be started at all.
    """

    pass


class PgCtlError(PgVenvError):
    """
    An error occurred while running pg_ctl.
    """

    pass


class BootError(PgVenvError):
    """
    The server did not become ready. The server process has already been
    killed when this is raised.
    """

    exit_code = EXIT_BOOT_FAILURE

    def __init__(self, outcome: BootOutcome):
        super().__init__(f"postgres server failed to boot: {outcome}")
        self.outcome = outcome


class StopError(PgVenvError):
    """
    The server process could not be stopped.
    """

    exit_code = EXIT_STOP_FAILURE
