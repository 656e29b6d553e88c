"""Asset Domain Ports (Interfaces)."""
from abc import ABC, abstractmethod
from typing import BinaryIO, ContextManager


class AssetStore(ABC):
    """Abstract Port for the host's binary storage."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Return True if an object is stored at ``path``."""
        ...

    @abstractmethod
    def size(self, path: str) -> int:
        """Stored byte length. Raises AssetNotFoundError if missing."""
        ...

    @abstractmethod
    def open_read(self, path: str) -> ContextManager[BinaryIO]:
        """Open for streaming reads. Raises AssetNotFoundError if missing."""
        ...

    @abstractmethod
    def write_atomic(self, path: str) -> ContextManager[BinaryIO]:
        """Open a staging handle that replaces ``path`` only when the block exits cleanly."""
        ...

    @abstractmethod
    def delete(self, path: str) -> None:
        """Remove the object at ``path``."""
        ...
