"""
Filesystem collaborators used by the generation orchestrator.

Paths handed to a filesystem are relative to its root and always use
forward slashes, as produced by the planner's layout patterns.
"""

import logging
import os
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional, Set

logger = logging.getLogger(__name__)


class FileSystem:
    """Minimal file API the orchestrator writes through."""

    def exists(self, path: str) -> bool:
        raise NotImplementedError

    def read(self, path: str) -> str:
        raise NotImplementedError

    def write(self, path: str, content: str) -> List[str]:
        """Write a file and return the directories created for it, outermost first."""
        raise NotImplementedError

    def delete(self, path: str) -> None:
        raise NotImplementedError

    def remove_dir(self, path: str) -> bool:
        """Remove an empty directory; return False if it is not empty."""
        raise NotImplementedError


class LocalFileSystem(FileSystem):
    """Files on disk under a project root directory."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def _resolve(self, path: str) -> Path:
        return self.root / PurePosixPath(path)

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def read(self, path: str) -> str:
        # newline="" keeps line endings exactly as stored so restores are byte-for-byte
        with open(self._resolve(path), "r", encoding="utf-8", newline="") as f:
            return f.read()

    def write(self, path: str, content: str) -> List[str]:
        target = self._resolve(path)
        created: List[str] = []
        missing = []
        parent = target.parent
        while not parent.exists():
            missing.append(parent)
            parent = parent.parent
        temp_path = target.with_name(f".{target.name}.tmp")
        try:
            for directory in reversed(missing):
                directory.mkdir()
                created.append(directory.relative_to(self.root).as_posix())

            # The target is only replaced once the new content is fully on disk
            with open(temp_path, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            os.replace(temp_path, target)
        except OSError:
            temp_path.unlink(missing_ok=True)
            for directory in reversed(created):
                self.remove_dir(directory)
            raise
        logger.debug(f"Wrote {target}")
        return created

    def delete(self, path: str) -> None:
        os.remove(self._resolve(path))
        logger.debug(f"Deleted {self._resolve(path)}")

    def remove_dir(self, path: str) -> bool:
        try:
            self._resolve(path).rmdir()
        except OSError:
            return False
        return True


class InMemoryFileSystem(FileSystem):
    """Dictionary-backed filesystem for tests and dry runs."""

    def __init__(self, files: Optional[Dict[str, str]] = None):
        self.files: Dict[str, str] = dict(files or {})
        self.directories: Set[str] = set()
        for path in self.files:
            self.directories.update(self._parents(path))

    @staticmethod
    def _parents(path: str) -> List[str]:
        parents = [parent.as_posix() for parent in PurePosixPath(path).parents]
        return [parent for parent in reversed(parents) if parent != "."]

    def exists(self, path: str) -> bool:
        return path in self.files

    def read(self, path: str) -> str:
        try:
            return self.files[path]
        except KeyError:
            raise FileNotFoundError(path) from None

    def write(self, path: str, content: str) -> List[str]:
        created = [parent for parent in self._parents(path) if parent not in self.directories]
        self.directories.update(created)
        self.files[path] = content
        return created

    def delete(self, path: str) -> None:
        try:
            del self.files[path]
        except KeyError:
            raise FileNotFoundError(path) from None

    def remove_dir(self, path: str) -> bool:
        prefix = path.rstrip("/") + "/"
        in_use = any(existing.startswith(prefix) for existing in self.files) or any(
            directory.startswith(prefix) for directory in self.directories
        )
        if in_use:
            return False
        self.directories.discard(path)
        return True

    def snapshot(self) -> Dict[str, str]:
        return dict(self.files)
