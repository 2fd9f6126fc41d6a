"""
File-system accessor.

The change detector, extractor, lock probe and health check read the
workbook share only through this interface, so tests can inject a fake.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import BinaryIO, Protocol, runtime_checkable


@runtime_checkable
class FileSystem(Protocol):
    """Read-only view of the workbook share (plus disk metrics)."""

    def exists(self, path: str) -> bool: ...

    def is_dir(self, path: str) -> bool: ...

    def list_files(self, base: str, pattern: str) -> list[str]: ...

    def modified_time(self, path: str) -> float: ...

    def open_binary(self, path: str) -> BinaryIO: ...

    def disk_free_bytes(self, path: str) -> int: ...


class LocalFileSystem:
    """``FileSystem`` backed by pathlib."""

    def exists(self, path: str) -> bool:
        return Path(path).exists()

    def is_dir(self, path: str) -> bool:
        return Path(path).is_dir()

    def list_files(self, base: str, pattern: str) -> list[str]:
        """Recursive glob under ``base``, files only, sorted."""
        return sorted(str(p) for p in Path(base).rglob(pattern) if p.is_file())

    def modified_time(self, path: str) -> float:
        return Path(path).stat().st_mtime

    def open_binary(self, path: str) -> BinaryIO:
        return open(path, "rb")  # pylint: disable=consider-using-with

    def disk_free_bytes(self, path: str) -> int:
        target = Path(path)
        # Walk up to an existing ancestor so a not-yet-created dir still reports
        while not target.exists() and target.parent != target:
            target = target.parent
        return shutil.disk_usage(target).free
