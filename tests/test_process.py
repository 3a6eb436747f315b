import os
import subprocess
import sys
import time

import pytest

from pgvenv.errors import SpawnError
from pgvenv.process import (
    ExitStatus,
    StatusKind,
    is_process_alive,
    run,
    run_attached,
    shell_command,
    spawn,
)

posix_only = pytest.mark.skipif(os.name != "posix", reason="posix signals")


def test_exit_status_from_returncode():
    assert ExitStatus.from_returncode(0) == ExitStatus(StatusKind.SUCCESS, 0)
    assert ExitStatus.from_returncode(3) == ExitStatus(StatusKind.EXIT_CODE, 3)
    assert ExitStatus.from_returncode(-9) == ExitStatus(StatusKind.EXIT_CODE, 137)
    assert ExitStatus.from_returncode(None).kind is StatusKind.UNKNOWN


def test_exit_status_str():
    assert str(ExitStatus.from_returncode(2)) == "exit code 2"
    assert str(ExitStatus.from_returncode(None)) == "unknown exit status"


def test_run_captures_combined_output():
    out, status = run(
        sys.executable,
        ["-c", "import sys; print('out'); sys.stdout.flush(); print('err', file=sys.stderr)"],
    )

    assert status.success
    assert "out" in out
    assert "err" in out


def test_run_reports_exit_code():
    _, status = run(sys.executable, ["-c", "import sys; sys.exit(3)"])

    assert status == ExitStatus(StatusKind.EXIT_CODE, 3)


def test_run_passes_environment():
    env = {**os.environ, "PGVENV_TEST_VALUE": "hello"}
    out, _ = run(
        sys.executable,
        ["-c", "import os; print(os.environ['PGVENV_TEST_VALUE'])"],
        env=env,
    )

    assert out.strip() == "hello"


def test_run_missing_program(tmp_path):
    with pytest.raises(SpawnError):
        run(tmp_path / "missing", [])


@posix_only
def test_run_attached_killed_by_signal():
    status = run_attached(
        sys.executable, ["-c", "import os, signal; os.kill(os.getpid(), signal.SIGKILL)"]
    )

    assert status == ExitStatus(StatusKind.EXIT_CODE, 137)


def test_run_attached_streams_output(capfd):
    status = run_attached(sys.executable, ["-c", "print('streamed')"])

    assert status.success
    assert "streamed" in capfd.readouterr().out


def test_spawn_writes_to_log(tmp_path):
    log_path = tmp_path / "server.log"
    proc = spawn(sys.executable, ["-c", "print('to the log')"], log_path=log_path)
    proc.wait()

    assert "to the log" in log_path.read_text()


def test_spawn_missing_program(tmp_path):
    with pytest.raises(SpawnError):
        spawn(tmp_path / "missing", [])


@posix_only
def test_shell_command_single_argument_goes_through_shell():
    assert shell_command(["echo $PGURL"]) == ("/bin/sh", ["-c", "echo $PGURL"])


@posix_only
def test_shell_command_keeps_argument_boundaries():
    assert shell_command(["foo", " ", "  "]) == ("foo", [" ", "  "])


@posix_only
def test_is_process_alive():
    proc = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(60)"])
    try:
        assert is_process_alive(proc.pid)
    finally:
        proc.kill()
        proc.wait()

    assert not is_process_alive(proc.pid)
    assert not is_process_alive(0)


@pytest.mark.skipif(not sys.platform.startswith("linux"), reason="reads /proc")
def test_unreaped_process_is_not_alive():
    proc = subprocess.Popen([sys.executable, "-c", "import time; time.sleep(60)"])
    proc.kill()
    try:
        deadline = time.monotonic() + 5
        while is_process_alive(proc.pid) and time.monotonic() < deadline:
            time.sleep(0.05)

        assert not is_process_alive(proc.pid)
        assert proc.returncode is None
    finally:
        proc.wait()
