"""Filesystem Asset Store Adapter."""
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Iterator

from atrest.domain.assets.ports import AssetStore
from atrest.errors import AssetNotFoundError

logger = logging.getLogger(__name__)


class LocalAssetStore(AssetStore):
    """Stores assets as plain files under a root directory."""

    def __init__(self, root: str):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def full_path(self, path: str) -> Path:
        full = (self.root / path).resolve()
        # Refuse paths that escape the root (e.g. "../secret")
        if full != self.root and self.root not in full.parents:
            raise AssetNotFoundError(path, f"Path escapes storage root: {path}")
        return full

    def exists(self, path: str) -> bool:
        try:
            return self.full_path(path).is_file()
        except AssetNotFoundError:
            return False

    def size(self, path: str) -> int:
        try:
            return self.full_path(path).stat().st_size
        except FileNotFoundError:
            raise AssetNotFoundError(path) from None

    @contextmanager
    def open_read(self, path: str) -> Iterator[BinaryIO]:
        try:
            f = open(self.full_path(path), "rb")
        except FileNotFoundError:
            raise AssetNotFoundError(path) from None
        try:
            yield f
        finally:
            f.close()

    @contextmanager
    def write_atomic(self, path: str) -> Iterator[BinaryIO]:
        target = self.full_path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".atrest-", suffix=".tmp", dir=target.parent)
        try:
            with os.fdopen(fd, "wb") as f:
                yield f
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def delete(self, path: str) -> None:
        try:
            self.full_path(path).unlink()
        except FileNotFoundError:
            logger.warning(f"Delete of missing asset ignored: {path}")

    def write_bytes(self, path: str, data: bytes) -> None:
        """Convenience for uploads and fixtures."""
        with self.write_atomic(path) as f:
            f.write(data)
