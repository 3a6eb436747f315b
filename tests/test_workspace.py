from pathlib import Path

import pytest

from pgvenv.errors import SetupError
from pgvenv.workspace import Workspace


def test_workspace_layout(tmp_path: Path):
    with Workspace(dir=tmp_path) as workspace:
        root = workspace.root

        assert root.parent == tmp_path
        assert root.name.startswith("pgvenv_")
        assert workspace.data_dir.is_dir()
        assert workspace.sock_dir.is_dir()
        assert workspace.log_path.is_file()

    assert not root.exists()
    assert workspace.root is None


def test_workspace_removed_on_exception(tmp_path: Path):
    with pytest.raises(RuntimeError):
        with Workspace(dir=tmp_path) as workspace:
            (workspace.data_dir / "PG_VERSION").write_text("16")
            raise RuntimeError("boom")

    assert list(tmp_path.iterdir()) == []


def test_workspace_remove_is_idempotent(tmp_path: Path):
    workspace = Workspace(dir=tmp_path).create()

    workspace.remove()
    workspace.remove()

    assert list(tmp_path.iterdir()) == []


def test_workspace_not_creatable(tmp_path: Path):
    with pytest.raises(SetupError):
        Workspace(dir=tmp_path / "missing").create()
