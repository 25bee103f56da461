from abc import ABC, abstractmethod
from typing import Optional


class KeyValueStorage(ABC):
    """Abstract base class for local key-value persistence."""

    @abstractmethod
    async def get_item(self, key: str) -> Optional[str]:
        """Return the stored string for ``key``, or None when absent."""
        pass

    @abstractmethod
    async def set_item(self, key: str, value: str) -> None:
        """Store a string under ``key``, replacing any previous value."""
        pass

    @abstractmethod
    async def remove_item(self, key: str) -> None:
        """Delete ``key`` if present."""
        pass
