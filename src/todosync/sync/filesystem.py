"""Local disk implementation of the FileSystem interface."""

import asyncio
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from todosync.sync.models import FileStats


class LocalFileSystem:
    """Reads and writes UTF-8 files on local disk off the event loop."""

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    async def read_file(self, path: Path) -> str:
        """Read a file's text."""
        return await asyncio.to_thread(Path(path).read_text, encoding=self.encoding)

    async def write_file(self, path: Path, content: str) -> None:
        """Write text atomically (temp file in the same directory, then replace)."""
        await asyncio.to_thread(self._write_atomic, Path(path), content)

    def _write_atomic(self, path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding=self.encoding, newline="") as f:
                f.write(content)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def stat(self, path: Path) -> FileStats:
        """Size and modification time of a file."""
        st = await asyncio.to_thread(os.stat, path)
        return FileStats(
            size=st.st_size,
            mtime=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        )

    async def exists(self, path: Path) -> bool:
        """Check whether a file exists."""
        return await asyncio.to_thread(Path(path).exists)
