"""File-system access used by the note store and sync engine."""

import os
import tempfile
from pathlib import Path


class FileSystem:
    """Operations the core needs from a file system.

    Subclass this to keep documents somewhere other than the local disk.
    """

    def read_text(self, path: Path) -> str:
        raise NotImplementedError

    def write_text(self, path: Path, text: str) -> None:
        """Replace the whole file so readers never see a partial write."""
        raise NotImplementedError

    def exists(self, path: Path) -> bool:
        raise NotImplementedError

    def make_dirs(self, path: Path) -> None:
        raise NotImplementedError

    def list_dir(self, path: Path) -> list[str]:
        raise NotImplementedError


class LocalFileSystem(FileSystem):
    """The local disk."""

    def read_text(self, path: Path) -> str:
        return Path(path).read_text(encoding="utf-8")

    def write_text(self, path: Path, text: str) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        # Temp file in the same directory so the rename stays on one filesystem
        fd, temp_path = tempfile.mkstemp(
            dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, path)
        except BaseException:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    def exists(self, path: Path) -> bool:
        return Path(path).exists()

    def make_dirs(self, path: Path) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    def list_dir(self, path: Path) -> list[str]:
        return sorted(os.listdir(path))
