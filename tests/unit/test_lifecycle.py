from pathlib import Path

import pytest

from projsync.core.lifecycle import remove_project_dir


@pytest.mark.asyncio
async def test_remove_project_dir(tmp_path: Path) -> None:
    project_dir = tmp_path / "demo"
    project_dir.mkdir()
    (project_dir / "package.json").write_text("{}\n", encoding="utf-8")

    assert await remove_project_dir(project_dir)
    assert not project_dir.exists()


@pytest.mark.asyncio
async def test_remove_missing_dir_is_a_no_op(tmp_path: Path) -> None:
    assert not await remove_project_dir(tmp_path / "missing")
    assert not await remove_project_dir(None)
