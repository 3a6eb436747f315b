from __future__ import annotations

import dataclasses
import enum
import logging
import math
import os
import re
import subprocess
import threading
from concurrent.futures import Future, InvalidStateError
from concurrent.futures import TimeoutError as FutureTimeoutError
from types import TracebackType
from typing import Protocol, Type

from retry.api import retry, retry_call

from .db_config import ConnectionDescriptor, ServerConfig
from .errors import BootError, PgCtlError, StopError
from .options import fmt_option_string
from .process import ExitStatus, is_process_alive, run, spawn
from .readiness import ReadinessProber

logger = logging.getLogger(__name__)

DEFAULT_BOOT_TIMEOUT = 60.0
DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_STOP_TIMEOUT = 30.0
KILL_POLL_INTERVAL = 0.1


class ServerKind(str, enum.Enum):
    PG_CTL = "pg_ctl"
    RAW = "raw"


class OutcomeKind(enum.Enum):
    READY = "ready"
    TERMINATED_EARLY = "terminated_early"
    PROBE_ERROR = "probe_error"
    TIMED_OUT = "timed_out"


@dataclasses.dataclass(frozen=True)
class BootOutcome:
    """
    How the boot of a server ended.
    """

    kind: OutcomeKind
    cause: str = ""

    @property
    def ready(self) -> bool:
        return self.kind is OutcomeKind.READY

    def __str__(self) -> str:
        if self.cause:
            return f"{self.kind.value}: {self.cause}"
        return self.kind.value


@dataclasses.dataclass(frozen=True)
class ServerStatus:
    """
    The status of a postgres server as reported by pg_ctl.
    """

    running: bool
    pid: int | None


class PostgresServer(Protocol):
    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...

    def connection_descriptor(self) -> ConnectionDescriptor:
        ...


class _ServerContext:
    config: ServerConfig

    def connection_descriptor(self) -> ConnectionDescriptor:
        return self.config.connection_descriptor

    def __enter__(self):
        self.start()
        return self

    def __exit__(
        self,
        exc_type: Type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.stop()


class RawPostgresServer(_ServerContext):
    """
    Runs the postgres executable directly and decides by itself when it is
    ready to accept connections.
    """

    def __init__(
        self,
        config: ServerConfig,
        prober: ReadinessProber,
        boot_timeout: float = DEFAULT_BOOT_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        stop_timeout: float = DEFAULT_STOP_TIMEOUT,
        env: dict[str, str] | None = None,
    ):
        self.config = config
        self.prober = prober
        self.boot_timeout = boot_timeout
        self.poll_interval = poll_interval
        self.stop_timeout = stop_timeout
        self.env = env
        self.proc: subprocess.Popen | None = None
        self.clean_launch = False

    def start(self) -> None:
        """
        Start postgres and wait until it accepts connections.

        Raises BootError if postgres exits, the readiness check fails or
        ``boot_timeout`` elapses first. The process is killed before the
        error is raised.
        """
        args = [*self.config.postgres_options(), "-D", str(self.config.data_dir)]
        logger.debug(f"Starting postgres at {self.config.data_dir}")
        self.clean_launch = False
        self.proc = spawn(
            self.config.bin_dir / "postgres",
            args,
            env=self.env,
            log_path=self.config.log_path,
        )
        try:
            outcome = self._boot_race(self.proc)
            if outcome.ready:
                logger.info(f"postgres server ready at {self.connection_descriptor().uri}")
                self.clean_launch = True
                return
            logger.error(f"postgres server failed to boot: {outcome}")
            raise BootError(outcome)
        finally:
            if not self.clean_launch:
                self.stop()

    def _boot_race(self, proc: subprocess.Popen) -> BootOutcome:
        outcome: Future = Future()
        done = threading.Event()

        def resolve(result: BootOutcome) -> None:
            try:
                outcome.set_result(result)
            except InvalidStateError:
                logger.debug(f"Discarding boot outcome {result}")

        def watch_termination() -> None:
            status = ExitStatus.from_returncode(proc.wait())
            resolve(BootOutcome(OutcomeKind.TERMINATED_EARLY, str(status)))

        def poll_readiness() -> None:
            descriptor = self.connection_descriptor()
            while not done.is_set():
                try:
                    result = self.prober.poll(descriptor)
                except Exception as e:
                    resolve(BootOutcome(OutcomeKind.PROBE_ERROR, repr(e)))
                    return
                except BaseException as e:
                    # KeyboardInterrupt and friends are re-raised by start
                    try:
                        outcome.set_exception(e)
                    except InvalidStateError:
                        logger.debug(f"Discarding {e!r} raised after boot")
                    return
                if result.ready:
                    resolve(BootOutcome(OutcomeKind.READY))
                    return
                if not result.retryable:
                    resolve(BootOutcome(OutcomeKind.PROBE_ERROR, result.detail))
                    return
                logger.debug(f"postgres not ready yet: {result.status.value}")
                done.wait(self.poll_interval)

        for target, name in (
            (watch_termination, "pgvenv-termination-watcher"),
            (poll_readiness, "pgvenv-readiness-poller"),
        ):
            threading.Thread(target=target, name=name, daemon=True).start()

        try:
            return outcome.result(timeout=self.boot_timeout)
        except FutureTimeoutError:
            resolve(
                BootOutcome(
                    OutcomeKind.TIMED_OUT,
                    f"server not ready after {self.boot_timeout}s",
                )
            )
            return outcome.result()
        finally:
            done.set()

    def stop(self) -> None:
        """
        Kill postgres and wait for it to exit. Does nothing if it is not
        running.
        """
        if self.proc is None:
            return
        logger.debug(f"Killing postgres (PID: {self.proc.pid})")
        try:
            self.proc.kill()
        except OSError as e:
            raise StopError(f"could not kill postgres (PID: {self.proc.pid}): {e}") from e
        try:
            self.proc.wait(timeout=self.stop_timeout)
        except subprocess.TimeoutExpired as e:
            raise StopError(
                f"postgres (PID: {self.proc.pid}) still running "
                f"{self.stop_timeout}s after kill"
            ) from e
        self.proc = None


class PgCtlPostgresServer(_ServerContext):
    """
    Runs postgres through pg_ctl, which also waits for it to be ready.
    """

    STATUS_PATTERN = re.compile(
        r"^pg_ctl: server is running \(PID: (?P<pid>\d+)\).*",
        re.MULTILINE | re.IGNORECASE,
    )
    START_TIMEOUT_MESSAGE = "server did not start in time"

    def __init__(
        self,
        config: ServerConfig,
        boot_timeout: float = DEFAULT_BOOT_TIMEOUT,
        stop_timeout: float = DEFAULT_STOP_TIMEOUT,
        env: dict[str, str] | None = None,
    ):
        self.config = config
        self.boot_timeout = boot_timeout
        self.stop_timeout = stop_timeout
        self.env = env
        self.pg_ctl = config.bin_dir / "pg_ctl"
        self.started = False

    def _run(self, args: list[str]) -> str:
        """
        Run a pg_ctl command.
        :param args: The arguments to pass to pg_ctl.
        :return: The output of the pg_ctl command.
        """
        out, status = run(self.pg_ctl, args, env=self.env)
        if not status.success:
            logger.error(out)
            raise PgCtlError(f"pg_ctl {args[0]} failed with {status}: {out}")
        return out

    def start(self) -> None:
        """
        Start postgres with ``pg_ctl start -w``. The server output goes to
        the log file, pg_ctl's own output to our logger.
        """
        args = [
            "start",
            "-w",
            "-t",
            str(max(1, int(self.boot_timeout))),
            "-o",
            fmt_option_string(*self.config.postgres_options()),
            "-D",
            str(self.config.data_dir),
        ]
        if self.config.log_path is not None:
            args += ["-l", str(self.config.log_path)]
        logger.debug(f"Starting database at {self.config.data_dir}")
        try:
            out, status = run(self.pg_ctl, args, env=self.env)
        except KeyboardInterrupt:
            self.kill()
            raise
        if status.success:
            self.started = True
            logger.info(f"postgres server ready at {self.connection_descriptor().uri}")
            return
        if self.START_TIMEOUT_MESSAGE in out:
            kind = OutcomeKind.TIMED_OUT
        else:
            kind = OutcomeKind.TERMINATED_EARLY
        outcome = BootOutcome(kind, f"pg_ctl start {status}: {out.strip()}")
        logger.error(f"postgres server failed to boot: {outcome}")
        self.kill()
        raise BootError(outcome)

    @retry(PgCtlError, tries=3, delay=1, logger=logger)
    def _stop(self) -> str:
        return self._run(["stop", "-D", str(self.config.data_dir), "-m", "fast"])

    def stop(self) -> None:
        """
        Stop postgres with pg_ctl, killing it if that keeps failing. Does
        nothing if it was not started.
        """
        if not self.started:
            return
        logger.debug(f"Stopping database at {self.config.data_dir}")
        try:
            self._stop()
        except PgCtlError:
            self.kill()
        self.started = False

    def status(self) -> ServerStatus:
        """
        Get the status of the server using pg_ctl.
        """
        out, _ = run(self.pg_ctl, ["status", "-D", str(self.config.data_dir)], env=self.env)
        match = self.STATUS_PATTERN.search(out)
        pid = int(match.group("pid")) if match else None
        return ServerStatus(running="server is running" in out, pid=pid)

    def _is_running(self, pid: int) -> bool:
        # pg_ctl status still sees a killed postmaster until it is reaped
        if not self.status().running:
            return False
        return os.name == "nt" or is_process_alive(pid)

    def _wait_for_exit(self, pid: int) -> None:
        def check() -> None:
            if self._is_running(pid):
                raise StopError(
                    f"postgres (PID: {pid}) still running {self.stop_timeout}s after kill"
                )

        retry_call(
            check,
            exceptions=StopError,
            tries=max(1, math.ceil(self.stop_timeout / KILL_POLL_INTERVAL)),
            delay=KILL_POLL_INTERVAL,
            logger=None,
        )

    def kill(self) -> ServerStatus:
        """
        Kill the server with SIGKILL and wait until it is gone, at most
        ``stop_timeout`` seconds.
        :return: The status before the kill.
        """
        status = self.status()
        if status.pid is None:
            return status
        logger.info(f"Killing database at {self.config.data_dir}")
        try:
            self._run(["kill", "KILL", str(status.pid)])
        except PgCtlError as e:
            raise StopError(f"could not kill postgres (PID: {status.pid})") from e
        self._wait_for_exit(status.pid)
        return status


def create_server(
    kind: ServerKind,
    config: ServerConfig,
    prober: ReadinessProber,
    boot_timeout: float = DEFAULT_BOOT_TIMEOUT,
    poll_interval: float = DEFAULT_POLL_INTERVAL,
    stop_timeout: float = DEFAULT_STOP_TIMEOUT,
    env: dict[str, str] | None = None,
) -> RawPostgresServer | PgCtlPostgresServer:
    """
    Create the server variant selected by ``kind``.
    """
    if kind is ServerKind.RAW:
        return RawPostgresServer(
            config,
            prober,
            boot_timeout=boot_timeout,
            poll_interval=poll_interval,
            stop_timeout=stop_timeout,
            env=env,
        )
    return PgCtlPostgresServer(
        config, boot_timeout=boot_timeout, stop_timeout=stop_timeout, env=env
    )
