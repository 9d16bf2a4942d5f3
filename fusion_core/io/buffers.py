"""
Bounded, time-swept sample buffers.

Every buffer in the core is bounded twice: by count (oldest entries are
evicted first) and by age (purge() drops entries older than the
retention window).
"""

from collections import deque
from typing import Callable, Deque, Generic, List, Optional, TypeVar

T = TypeVar('T')


def _timestamp_of(item) -> float:
    return item.timestamp


class TimedBuffer(Generic[T]):
    """
    Ring buffer of timestamped items.

    Not locked: the owner serializes access (see LocationEngine).

    Usage:
        buffer = TimedBuffer(max_size=200, retention_s=300.0)
        buffer.append(sample)
        buffer.purge(now)
        recent = buffer.latest(5)
    """

    def __init__(
        self,
        max_size: int,
        retention_s: Optional[float] = None,
        timestamp_of: Callable[[T], float] = _timestamp_of,
    ):
        """
        Initialize buffer.

        Args:
            max_size: Maximum number of items kept (FIFO eviction)
            retention_s: Maximum item age for purge() (None = count bound only)
            timestamp_of: Extracts an item's timestamp in seconds
        """
        if max_size <= 0:
            raise ValueError(f"max_size must be positive: {max_size}")

        self.max_size = max_size
        self.retention_s = retention_s
        self._timestamp_of = timestamp_of
        self._items: Deque[T] = deque(maxlen=max_size)
        self.evicted = 0

    def append(self, item: T):
        """Add an item; the oldest one is evicted when full."""
        if len(self._items) == self.max_size:
            self.evicted += 1
        self._items.append(item)

    def drain(self) -> List[T]:
        """Remove and return every item, oldest first."""
        items = list(self._items)
        self._items.clear()
        return items

    def latest(self, n: int = 1) -> List[T]:
        """Return up to the n most recent items, oldest first."""
        if n <= 0:
            return []
        return list(self._items)[-n:]

    def last(self) -> Optional[T]:
        return self._items[-1] if self._items else None

    def values(self) -> List[T]:
        return list(self._items)

    def purge(self, now: float, retention_s: Optional[float] = None) -> int:
        """
        Drop items older than the retention window.

        Args:
            now: Current time (s)
            retention_s: Override for the buffer's retention window

        Returns:
            Number of items removed
        """
        window = self.retention_s if retention_s is None else retention_s
        if window is None:
            return 0

        cutoff = now - window
        removed = 0
        # Items arrive in time order, so stale ones sit at the left
        while self._items and self._timestamp_of(self._items[0]) < cutoff:
            self._items.popleft()
            removed += 1

        # Out-of-order arrivals can leave stale items behind the head
        if any(self._timestamp_of(item) < cutoff for item in self._items):
            kept = [item for item in self._items if self._timestamp_of(item) >= cutoff]
            removed += len(self._items) - len(kept)
            self._items = deque(kept, maxlen=self.max_size)

        return removed

    def resize(self, max_size: int):
        """Change the count bound, keeping the newest items."""
        if max_size <= 0:
            raise ValueError(f"max_size must be positive: {max_size}")
        self.max_size = max_size
        self._items = deque(self._items, maxlen=max_size)

    def clear(self):
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def __iter__(self):
        return iter(list(self._items))
