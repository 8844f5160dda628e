"""File system capability used by the workflow engine.

The engine never touches ``os`` or ``pathlib`` directly; it receives a
``FileSystem`` so it can run against the real disk or an in-memory double.
"""

import os
from abc import ABC, abstractmethod
from pathlib import Path

from storymatrix.config import DIR_MODE, FILE_MODE


class FileSystem(ABC):
    """Minimal set of file operations the engine relies on."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Return True if a file or directory exists at ``path``."""

    @abstractmethod
    def read_file(self, path: str) -> bytes:
        """Read a whole file.

        Raises:
            OSError: If the file is missing or unreadable
        """

    @abstractmethod
    def write_file(self, path: str, data: bytes) -> None:
        """Create or overwrite a file.

        Raises:
            OSError: If the file cannot be written
        """

    @abstractmethod
    def mkdir_all(self, path: str) -> None:
        """Create a directory and any missing parents."""

    @abstractmethod
    def replace(self, source: str, destination: str) -> None:
        """Atomically move ``source`` over ``destination``."""

    @abstractmethod
    def remove(self, path: str) -> None:
        """Delete a file."""


class LocalFileSystem(FileSystem):
    """FileSystem backed by the operating system."""

    def exists(self, path: str) -> bool:
        return Path(path).exists()

    def read_file(self, path: str) -> bytes:
        return Path(path).read_bytes()

    def write_file(self, path: str, data: bytes) -> None:
        target = Path(path)
        target.write_bytes(data)
        os.chmod(target, FILE_MODE)

    def mkdir_all(self, path: str) -> None:
        Path(path).mkdir(mode=DIR_MODE, parents=True, exist_ok=True)

    def replace(self, source: str, destination: str) -> None:
        os.replace(source, destination)

    def remove(self, path: str) -> None:
        Path(path).unlink()


class MemoryFileSystem(FileSystem):
    """In-memory FileSystem for tests and dry runs.

    Paths are normalized with ``os.path.normpath``. Writing into a directory
    that was never created fails like it would on disk.

    Attributes:
        files: Normalized path to content
        directories: Normalized directory paths
        unreadable: Paths whose reads raise PermissionError
        read_only: Paths whose writes raise PermissionError
    """

    def __init__(self, files: dict[str, bytes | str] | None = None):
        self.files: dict[str, bytes] = {}
        self.directories: set[str] = set()
        self.unreadable: set[str] = set()
        self.read_only: set[str] = set()
        self.write_count = 0
        for path, content in (files or {}).items():
            self.add_file(path, content)

    @staticmethod
    def _norm(path: str) -> str:
        return os.path.normpath(path)

    def _has_directory(self, path: str) -> bool:
        return path in (".", os.sep, "") or path in self.directories

    def add_file(self, path: str, content: bytes | str) -> None:
        """Seed a file, creating its parent directories."""
        norm = self._norm(path)
        parent = os.path.dirname(norm)
        if parent:
            self.mkdir_all(parent)
        self.files[norm] = content.encode("utf-8") if isinstance(content, str) else content

    def exists(self, path: str) -> bool:
        norm = self._norm(path)
        return norm in self.files or self._has_directory(norm)

    def read_file(self, path: str) -> bytes:
        norm = self._norm(path)
        if norm in self.unreadable:
            raise PermissionError(f"Permission denied: {path}")
        if norm not in self.files:
            raise FileNotFoundError(f"No such file: {path}")
        return self.files[norm]

    def write_file(self, path: str, data: bytes) -> None:
        norm = self._norm(path)
        if norm in self.read_only:
            raise PermissionError(f"Permission denied: {path}")
        parent = os.path.dirname(norm)
        if parent and not self._has_directory(parent):
            raise FileNotFoundError(f"No such directory: {parent}")
        self.files[norm] = bytes(data)
        self.write_count += 1

    def mkdir_all(self, path: str) -> None:
        norm = self._norm(path)
        while norm and not self._has_directory(norm):
            if norm in self.files:
                raise FileExistsError(f"Not a directory: {norm}")
            self.directories.add(norm)
            norm = os.path.dirname(norm)

    def replace(self, source: str, destination: str) -> None:
        src = self._norm(source)
        dst = self._norm(destination)
        if src not in self.files:
            raise FileNotFoundError(f"No such file: {source}")
        if dst in self.read_only:
            raise PermissionError(f"Permission denied: {destination}")
        self.files[dst] = self.files.pop(src)

    def remove(self, path: str) -> None:
        norm = self._norm(path)
        if norm not in self.files:
            raise FileNotFoundError(f"No such file: {path}")
        del self.files[norm]

    def text(self, path: str) -> str:
        """Decoded content of a file (test helper)."""
        return self.read_file(path).decode("utf-8")
