"""Path validation against a sandbox base directory.

Every path the sync engine reads or writes goes through ``PathValidator``
first. ``validate`` catches ``..`` traversal and NUL bytes lexically;
``validate_async`` additionally resolves symlinks so a link inside the
sandbox cannot point outside it.
"""

import asyncio
import os
import sys
from pathlib import Path

import structlog

from todosync.errors import FileTooLargeError, SecurityError

log = structlog.get_logger()


def _is_within(path: str, base: str) -> bool:
    """Check that ``path`` is ``base`` or lies beneath it."""
    if path == base:
        return True
    prefix = base if base.endswith(os.sep) else base + os.sep
    return path.startswith(prefix)


class PathValidator:
    """Confines file access to an allowed base directory.

    Example:
        >>> validator = PathValidator("/srv/todos")
        >>> validator.validate("TODO.md")
        PosixPath('/srv/todos/TODO.md')
        >>> validator.validate("../../etc/passwd")
        Traceback (most recent call last):
        ...
        todosync.errors.SecurityError: Path traversal detected: ...
    """

    def __init__(self, base_path: Path | str | None = None):
        """Initialize the validator.

        Args:
            base_path: Allowed base directory (default: current directory).
        """
        self._base = os.path.abspath(base_path if base_path is not None else os.getcwd())
        self._real_base: str | None = None

    @property
    def allowed_base_path(self) -> Path:
        """The absolute, lexically normalized base directory."""
        return Path(self._base)

    async def _get_real_base(self) -> str:
        """Symlink-resolved base path, computed once."""
        if self._real_base is None:
            try:
                self._real_base = await asyncio.to_thread(
                    os.path.realpath, self._base, strict=True
                )
            except OSError:
                self._real_base = self._base
        return self._real_base

    def validate(self, file_path: str | Path) -> Path:
        """Validate a path and return it as an absolute path under the base.

        Args:
            file_path: Path relative to the base (absolute paths are allowed
                if they lie under the base).

        Returns:
            Validated absolute path.

        Raises:
            SecurityError: On empty input, NUL bytes, traversal outside the
                base, or Windows alternate data streams.
        """
        if isinstance(file_path, Path):
            file_path = str(file_path)
        if not file_path or not isinstance(file_path, str):
            raise SecurityError("Invalid file path: path must be a non-empty string")

        if "\0" in file_path:
            raise SecurityError("Invalid file path: null byte detected")

        resolved = os.path.abspath(os.path.join(self._base, file_path))

        # Real paths returned by validate_async live under the resolved base
        if not _is_within(resolved, self._base) and not (
            self._real_base and _is_within(resolved, self._real_base)
        ):
            log.warning("path_traversal_rejected", path=file_path, base=self._base)
            raise SecurityError(
                f"Path traversal detected: {file_path} resolves outside allowed base path"
            )

        if sys.platform == "win32" and resolved.count(":") > 1:
            raise SecurityError("Invalid file path: alternate data streams not allowed")

        return Path(resolved)

    async def validate_async(self, file_path: str | Path) -> Path:
        """Validate a path and resolve symlinks on it.

        A path that does not exist yet is returned unresolved so new files can
        be created, provided any existing symlinked parents stay inside the
        base.

        Args:
            file_path: Path relative to the base.

        Returns:
            Real path of an existing file, or the validated path of a new one.

        Raises:
            SecurityError: If validation fails or a symlink escapes the base.
            OSError: For filesystem errors other than a missing file.
        """
        resolved = str(self.validate(file_path))
        real_base = await self._get_real_base()

        try:
            real_path = await asyncio.to_thread(os.path.realpath, resolved, strict=True)
        except FileNotFoundError:
            # Follows symlinked parents and dangling links without requiring the target
            partial = await asyncio.to_thread(os.path.realpath, resolved)
            if not _is_within(partial, real_base):
                raise SecurityError(
                    f"Symbolic link traversal detected: {file_path} resolves to "
                    f"{partial} which is outside allowed base path"
                ) from None
            return Path(resolved)

        if not _is_within(real_path, real_base):
            log.warning("symlink_traversal_rejected", path=str(file_path), real_path=real_path)
            raise SecurityError(
                f"Symbolic link traversal detected: {file_path} resolves to "
                f"{real_path} which is outside allowed base path"
            )

        return Path(real_path)

    async def validate_file_size(self, file_path: str | Path, max_size_mb: float = 5) -> None:
        """Check a file against a size limit.

        Raises:
            FileTooLargeError: If the file is larger than ``max_size_mb``.
        """
        stats = await asyncio.to_thread(os.stat, file_path)
        max_bytes = max_size_mb * 1024 * 1024
        if stats.st_size > max_bytes:
            size_mb = round(stats.st_size / 1024 / 1024, 2)
            raise FileTooLargeError(f"File size exceeds {max_size_mb}MB limit: {size_mb}MB")

    async def exists(self, file_path: str | Path) -> bool:
        """Check whether a path exists."""
        return await asyncio.to_thread(os.access, file_path, os.F_OK)

    async def is_readable(self, file_path: str | Path) -> bool:
        """Check whether a path is readable."""
        return await asyncio.to_thread(os.access, file_path, os.R_OK)

    async def is_writable(self, file_path: str | Path) -> bool:
        """Check whether a path is writable."""
        return await asyncio.to_thread(os.access, file_path, os.W_OK)
