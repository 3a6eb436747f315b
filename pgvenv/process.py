from __future__ import annotations

import dataclasses
import enum
import logging
import os
import subprocess
from pathlib import Path
from typing import Mapping, Sequence

from .errors import SpawnError

logger = logging.getLogger(__name__)


class StatusKind(enum.Enum):
    SUCCESS = "success"
    EXIT_CODE = "exit_code"
    UNKNOWN = "unknown"


@dataclasses.dataclass(frozen=True)
class ExitStatus:
    """
    The normalized exit status of a finished program.
    """

    kind: StatusKind
    code: int | None = None

    @classmethod
    def from_returncode(cls, returncode: int | None) -> ExitStatus:
        """
        Build a status from ``Popen.returncode``.

        Death by signal N is reported as exit code 128 + N, like a shell does.
        """
        if returncode is None:
            return cls(StatusKind.UNKNOWN)
        if returncode == 0:
            return cls(StatusKind.SUCCESS, 0)
        if returncode < 0:
            return cls(StatusKind.EXIT_CODE, 128 - returncode)
        return cls(StatusKind.EXIT_CODE, returncode)

    @property
    def success(self) -> bool:
        return self.kind is StatusKind.SUCCESS

    def __str__(self) -> str:
        if self.kind is StatusKind.UNKNOWN:
            return "unknown exit status"
        return f"exit code {self.code}"


def _command(path: str | Path, args: Sequence[str]) -> list[str]:
    return [str(path), *args]


def run(
    path: str | Path,
    args: Sequence[str],
    env: Mapping[str, str] | None = None,
) -> tuple[str, ExitStatus]:
    """
    Run a program to completion.

    :param path: The program to run.
    :param args: The arguments to pass to it.
    :param env: The environment of the child, inherited when None.
    :return: The combined stdout and stderr, and the exit status.
    """
    command = _command(path, args)
    logger.debug(f"Running {command}")
    try:
        result = subprocess.run(
            command,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            universal_newlines=True,
            env=env,
        )
    except OSError as e:
        raise SpawnError(f"could not run {command}: {e}") from e
    status = ExitStatus.from_returncode(result.returncode)
    logger.debug(f"{path} finished with {status}: {result.stdout}")
    return result.stdout, status


def spawn(
    path: str | Path,
    args: Sequence[str],
    env: Mapping[str, str] | None = None,
    log_path: Path | None = None,
) -> subprocess.Popen:
    """
    Start a program without waiting for it.

    :param path: The program to run.
    :param args: The arguments to pass to it.
    :param env: The environment of the child, inherited when None.
    :param log_path: A file receiving stdout and stderr. When None the child
        writes to our own stdout and stderr.
    :return: The handle of the running child.
    """
    command = _command(path, args)
    logger.debug(f"Spawning {command}")
    try:
        if log_path is None:
            return subprocess.Popen(command, env=env)
        with open(log_path, "ab") as log:
            return subprocess.Popen(
                command, env=env, stdout=log, stderr=subprocess.STDOUT
            )
    except OSError as e:
        raise SpawnError(f"could not start {command}: {e}") from e


def run_attached(
    path: str | Path,
    args: Sequence[str],
    env: Mapping[str, str] | None = None,
) -> ExitStatus:
    """
    Run a program to completion, letting it write to our stdout and stderr.

    :param path: The program to run.
    :param args: The arguments to pass to it.
    :param env: The environment of the child, inherited when None.
    :return: The exit status.
    """
    proc = spawn(path, args, env=env)
    try:
        proc.wait()
    except BaseException:
        # e.g. KeyboardInterrupt: do not leave the child behind
        proc.kill()
        proc.wait()
        raise
    status = ExitStatus.from_returncode(proc.returncode)
    logger.debug(f"{path} finished with {status}")
    return status


def shell_command(args: Sequence[str]) -> tuple[str, list[str]]:
    """
    Turn the user's command line into a program and its arguments.

    A single argument is a shell command line. Several arguments are run as
    is, so their boundaries are preserved.
    """
    if os.name == "nt":
        return "cmd", ["/c", *args]
    if len(args) == 1:
        return "/bin/sh", ["-c", args[0]]
    return args[0], list(args[1:])


def is_process_alive(pid: int) -> bool:
    """
    Return True when a process id appears to be alive on this host.

    A killed process that its parent has not reaped yet still answers
    ``kill(pid, 0)``; on Linux it is reported dead once it is a zombie.
    """
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False
    try:
        stat = Path(f"/proc/{pid}/stat").read_text()
    except OSError:
        return True
    # the command name in parentheses may contain spaces
    state = stat.rsplit(")", 1)[-1].split()[:1]
    return state != ["Z"]
