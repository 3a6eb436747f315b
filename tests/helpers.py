import stat
import sys
import textwrap
from pathlib import Path

from pgvenv.db_config import ConnectionDescriptor
from pgvenv.readiness import ProbeResult, ProbeStatus


def write_script(path: Path, body: str) -> Path:
    """Write an executable python script."""
    path.write_text(f"#!{sys.executable}\n" + textwrap.dedent(body))
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


class ScriptedProber:
    """Prober returning a fixed sequence of results, repeating the last one."""

    def __init__(self, *statuses: ProbeStatus):
        self.statuses = list(statuses)
        self.calls: list[ConnectionDescriptor] = []

    def poll(self, descriptor: ConnectionDescriptor) -> ProbeResult:
        index = min(len(self.calls), len(self.statuses) - 1)
        self.calls.append(descriptor)
        return ProbeResult(self.statuses[index], f"poll {len(self.calls)}")
