"""Tests for the local file system adapter."""

from pathlib import Path

import pytest

from todosync.sync.filesystem import LocalFileSystem


class TestLocalFileSystem:
    """Test async file access."""

    async def test_write_and_read(self, tmp_path: Path):
        """Test text round-trips through write and read."""
        fs = LocalFileSystem()
        path = tmp_path / "TODO.md"
        await fs.write_file(path, "# 予定\n- [ ] タスク\n")
        assert await fs.read_file(path) == "# 予定\n- [ ] タスク\n"

    async def test_write_creates_parents(self, tmp_path: Path):
        """Test missing parent directories are created."""
        path = tmp_path / "a" / "b" / "TODO.md"
        await LocalFileSystem().write_file(path, "x")
        assert path.read_text() == "x"

    async def test_write_replaces_atomically(self, tmp_path: Path):
        """Test overwriting leaves no temp files behind."""
        fs = LocalFileSystem()
        path = tmp_path / "TODO.md"
        await fs.write_file(path, "first")
        await fs.write_file(path, "second")

        assert path.read_text() == "second"
        assert [p.name for p in tmp_path.iterdir()] == ["TODO.md"]

    async def test_line_endings_preserved(self, tmp_path: Path):
        """Test newlines are written as given."""
        path = tmp_path / "TODO.md"
        await LocalFileSystem().write_file(path, "a\nb\n")
        assert path.read_bytes() == b"a\nb\n"

    async def test_stat(self, tmp_path: Path):
        """Test size and modification time."""
        path = tmp_path / "TODO.md"
        path.write_text("12345")
        stats = await LocalFileSystem().stat(path)
        assert stats.size == 5
        assert stats.mtime.tzinfo is not None

    async def test_stat_missing_raises(self, tmp_path: Path):
        """Test stat on a missing file raises."""
        with pytest.raises(FileNotFoundError):
            await LocalFileSystem().stat(tmp_path / "missing.md")

    async def test_exists(self, tmp_path: Path):
        """Test existence checks."""
        fs = LocalFileSystem()
        path = tmp_path / "TODO.md"
        assert not await fs.exists(path)
        path.write_text("x")
        assert await fs.exists(path)
