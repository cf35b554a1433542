"""
Indexed min-priority queue shared by the graph and grid planners.
"""

import heapq
import itertools
from typing import Dict, Generic, Hashable, List, Optional, Tuple, TypeVar

T = TypeVar("T", bound=Hashable)

_REMOVED = object()


class PriorityQueue(Generic[T]):
    """
    Binary heap keyed by item with decrease/increase-key.

    push() on an item already queued replaces its priority (the stale heap
    entry is invalidated lazily). Ties pop in insertion order of the latest
    push, which keeps searches deterministic.
    """

    def __init__(self):
        self._heap: List[list] = []
        self._entries: Dict[T, list] = {}
        self._counter = itertools.count()

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __contains__(self, item: T) -> bool:
        return item in self._entries

    def push(self, item: T, priority: float) -> None:
        existing = self._entries.pop(item, None)
        if existing is not None:
            existing[2] = _REMOVED
        entry = [priority, next(self._counter), item]
        self._entries[item] = entry
        heapq.heappush(self._heap, entry)

    def priority(self, item: T) -> Optional[float]:
        entry = self._entries.get(item)
        return entry[0] if entry is not None else None

    def pop(self) -> Optional[T]:
        """Remove and return the lowest-priority item, or None when empty."""
        popped = self.pop_with_priority()
        return popped[0] if popped is not None else None

    def pop_with_priority(self) -> Optional[Tuple[T, float]]:
        while self._heap:
            priority, _, item = heapq.heappop(self._heap)
            if item is not _REMOVED:
                del self._entries[item]
                return item, priority
        return None

    def discard(self, item: T) -> None:
        entry = self._entries.pop(item, None)
        if entry is not None:
            entry[2] = _REMOVED
