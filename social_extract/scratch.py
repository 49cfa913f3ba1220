from __future__ import annotations

import contextlib
import itertools
import shutil
import tempfile
import time
from pathlib import Path
from typing import Iterator

from .errors import ResourceCleanupError
from .run_log import RunLogger


def _remove(path: Path) -> None:
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        elif path.exists() or path.is_symlink():
            path.unlink()
    except FileNotFoundError:
        return
    except OSError as e:
        raise ResourceCleanupError(f"Failed to remove {path}: {e}") from e


class ScratchSpace:
    """
    Call-scoped temporary namespace for downloaded media, extracted audio and frames.

    Each extraction call owns one directory. Paths handed out by file_path() combine
    a millisecond timestamp, a per-space counter and an optional item index, so
    concurrent sub-tasks never collide. cleanup() removes the whole namespace and
    never raises; failures are logged as resource_cleanup_failed.
    """

    def __init__(self, root: Path, *, logger: RunLogger | None = None) -> None:
        self._root = Path(root)
        self._log = logger or RunLogger.disabled()
        self._counter = itertools.count(1)
        self._closed = False

    @classmethod
    def create(
        cls,
        *,
        root_dir: str | Path | None = None,
        prefix: str = "social_extract_",
        logger: RunLogger | None = None,
    ) -> "ScratchSpace":
        parent = Path(root_dir) if root_dir else Path(tempfile.gettempdir())
        parent.mkdir(parents=True, exist_ok=True)
        stamp = int(time.time() * 1000)
        path = tempfile.mkdtemp(prefix=f"{prefix}{stamp}_", dir=parent)
        return cls(Path(path), logger=logger)

    @property
    def root(self) -> Path:
        return self._root

    @property
    def name(self) -> str:
        return self._root.name

    @property
    def closed(self) -> bool:
        return self._closed

    def file_path(self, stem: str, suffix: str = "", *, index: int | None = None) -> Path:
        if self._closed:
            raise RuntimeError("scratch space already cleaned up")
        clean_stem = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in stem) or "file"
        ext = suffix if not suffix or suffix.startswith(".") else f".{suffix}"
        parts = [clean_stem, str(int(time.time() * 1000)), str(next(self._counter))]
        if index is not None:
            parts.append(str(index))
        return self._root / ("_".join(parts) + ext)

    def make_dir(self, stem: str) -> Path:
        path = self.file_path(stem)
        path.mkdir(parents=True, exist_ok=False)
        return path

    def discard(self, path: Path | None) -> bool:
        """Remove a file or directory. Returns False (and logs) when removal fails."""
        if path is None:
            return True
        try:
            _remove(Path(path))
        except ResourceCleanupError as e:
            self._log.warning("resource_cleanup_failed", path=str(path), error=str(e))
            return False
        return True

    @contextlib.contextmanager
    def scoped_file(self, stem: str, suffix: str = "", *, index: int | None = None) -> Iterator[Path]:
        path = self.file_path(stem, suffix, index=index)
        try:
            yield path
        finally:
            self.discard(path)

    @contextlib.contextmanager
    def scoped_dir(self, stem: str) -> Iterator[Path]:
        path = self.make_dir(stem)
        try:
            yield path
        finally:
            self.discard(path)

    def cleanup(self) -> bool:
        self._closed = True
        ok = self.discard(self._root)
        if ok:
            self._log.debug("scratch_cleaned", path=str(self._root))
        return ok

    def __enter__(self) -> "ScratchSpace":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.cleanup()
