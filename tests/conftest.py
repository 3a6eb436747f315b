from pathlib import Path

import pytest

from helpers import write_script


@pytest.fixture
def fake_bin_dir(tmp_path: Path) -> Path:
    """A bin dir whose postgres records its argv, then exits or sleeps."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    write_script(
        bin_dir / "postgres",
        """
        import json, os, sys, time
        argv_file = os.environ.get("FAKE_PG_ARGV")
        if argv_file:
            with open(argv_file, "w") as f:
                json.dump(sys.argv[1:], f)
        code = os.environ.get("FAKE_PG_EXIT")
        if code:
            sys.exit(int(code))
        time.sleep(60)
        """,
    )
    return bin_dir
