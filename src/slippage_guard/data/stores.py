# ============================================
# SlippageGuard - src/slippage_guard/data/stores.py
# Injectable key-value stores and the bounded report log
# ============================================

import threading
from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Callable, Dict, Generic, List, TypeVar

from ..utils.exceptions import InvalidInputError
from ..utils.logger import get_logger

logger = get_logger('data.stores')

T = TypeVar('T')

# ============================================
# Key-Value Store Contract
# ============================================

class KeyValueStore(ABC):
    """Capability contract for stores holding per-user and per-symbol state"""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove a key; returns whether it existed"""
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

class InMemoryStore(KeyValueStore):
    """Thread-safe dictionary-backed store"""

    def __init__(self, name: str = "memory"):
        self.name = name
        self._entries: Dict[str, Any] = {}
        self.lock = threading.RLock()

    def get(self, key: str, default: Any = None) -> Any:
        with self.lock:
            return self._entries.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self.lock:
            self._entries[key] = value

    def delete(self, key: str) -> bool:
        with self.lock:
            if key in self._entries:
                del self._entries[key]
                return True
            return False

    def clear(self) -> None:
        with self.lock:
            count = len(self._entries)
            self._entries.clear()
        logger.debug(f"Cleared {count} entries from store '{self.name}'")

    def __len__(self) -> int:
        with self.lock:
            return len(self._entries)

# ============================================
# Bounded Report Log
# ============================================

class ReportLog(Generic[T]):
    """
    Append-only log with a fixed capacity.

    Once full, each append evicts the oldest entry. Entries are never
    modified in place.
    """

    def __init__(self, capacity: int = 1000):
        if capacity <= 0:
            raise InvalidInputError("Report log capacity must be positive",
                                    parameter_name='capacity', provided_value=capacity)
        self.capacity = capacity
        self._entries: deque = deque(maxlen=capacity)
        self.lock = threading.Lock()

    def append(self, entry: T) -> bool:
        """Add an entry; returns True when the oldest entry was evicted to make room"""
        with self.lock:
            evicted = len(self._entries) == self.capacity
            self._entries.append(entry)
        return evicted

    def snapshot(self) -> List[T]:
        """Entries oldest first"""
        with self.lock:
            return list(self._entries)

    def filter(self, predicate: Callable[[T], bool]) -> List[T]:
        return [entry for entry in self.snapshot() if predicate(entry)]

    def clear(self) -> None:
        with self.lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self.lock:
            return len(self._entries)
