# carbonledger/storage/__init__.py
"""
Storage backends for persistent credit ledgers.
"""

from abc import ABC, abstractmethod
from typing import List
from pathlib import Path
from carbonledger.core.types import Credit, LedgerEvent


class StorageBackend(ABC):
    """Abstract base for all persistent storage implementations."""

    @abstractmethod
    def commit(self, credit: Credit, next_id: int, event: LedgerEvent) -> None:
        """Persist one accepted mutation atomically: credit row, counter, journal entry."""

    @abstractmethod
    def load_credits(self) -> List[Credit]:
        pass

    @abstractmethod
    def load_counter(self) -> int:
        pass

    @abstractmethod
    def load_events(self) -> List[LedgerEvent]:
        pass

    @abstractmethod
    def close(self) -> None:
        pass


def create_storage(uri: str) -> StorageBackend:
    if uri.startswith("sqlite://"):
        from .sqlite import SQLiteStorage
        raw_path = uri[len("sqlite://"):]
        if not raw_path:
            raise ValueError(f"Missing database path in storage URI: {uri}")
        return SQLiteStorage(Path(raw_path).expanduser().resolve())

    elif uri.startswith("memory://"):
        from .sqlite import SQLiteStorage
        return SQLiteStorage(":memory:")
    else:
        raise ValueError(f"Unsupported storage URI: {uri}")


from .sqlite import SQLiteStorage

__all__ = ["StorageBackend", "create_storage", "SQLiteStorage"]
