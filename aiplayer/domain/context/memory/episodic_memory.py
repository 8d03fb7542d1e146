from typing import Dict, List, Optional
from collections import deque
from datetime import datetime, timedelta
import threading

from aiplayer.domain.models.memory import Memory, MemoryType, utcnow


CONSOLIDATION_AGE = timedelta(hours=24)
CONSOLIDATION_IMPORTANCE = 0.3


class EpisodicMemory:
    """Bounded chronological event log with a secondary index by type"""

    def __init__(self, max_size: int = 1000):
        self.max_size = max_size
        self.memories: deque = deque()
        self.memories_by_type: Dict[MemoryType, deque] = {t: deque() for t in MemoryType}
        self._lock = threading.RLock()

    def store(self, memory: Memory) -> None:
        """Store most recent first, trimming the oldest beyond capacity"""

        with self._lock:
            self.memories.appendleft(memory)
            self.memories_by_type[memory.type].appendleft(memory)

            while len(self.memories) > self.max_size:
                removed = self.memories.pop()
                self._unindex(removed)

    def recall(self, query: str, limit: int) -> List[Memory]:
        """Case-insensitive substring match, most recent first"""

        needle = query.lower()
        with self._lock:
            snapshot = list(self.memories)

        results = []
        for memory in snapshot:
            if len(results) >= limit:
                break
            if needle in memory.content.lower():
                results.append(memory)
        return results

    def recall_by_type(self, memory_type: MemoryType, limit: int) -> List[Memory]:
        with self._lock:
            return list(self.memories_by_type[memory_type])[:max(0, limit)]

    def recall_by_time_range(self, start: datetime, end: datetime) -> List[Memory]:
        with self._lock:
            return [m for m in self.memories if start <= m.timestamp <= end]

    def get_recent(self, limit: int) -> List[Memory]:
        with self._lock:
            return list(self.memories)[:max(0, limit)]

    def get_most_important(self, limit: int) -> List[Memory]:
        with self._lock:
            snapshot = list(self.memories)
        return sorted(snapshot, key=lambda m: m.importance, reverse=True)[:max(0, limit)]

    def get_most_relevant(self, limit: int, now: Optional[datetime] = None) -> List[Memory]:
        now = now or utcnow()
        with self._lock:
            snapshot = list(self.memories)
        return sorted(snapshot, key=lambda m: m.relevance(now), reverse=True)[:max(0, limit)]

    def consolidate(self, now: Optional[datetime] = None) -> int:
        """Evict entries older than 24h with importance below 0.3"""

        now = now or utcnow()
        cutoff = now - CONSOLIDATION_AGE

        # Decide on a snapshot, then remove by identity so concurrent stores survive
        with self._lock:
            snapshot = list(self.memories)
        doomed = {
            id(m) for m in snapshot
            if m.timestamp < cutoff and m.importance < CONSOLIDATION_IMPORTANCE
        }
        if not doomed:
            return 0

        with self._lock:
            self.memories = deque(m for m in self.memories if id(m) not in doomed)
            for memory_type, entries in self.memories_by_type.items():
                self.memories_by_type[memory_type] = deque(
                    m for m in entries if id(m) not in doomed
                )
        return len(doomed)

    def size(self) -> int:
        with self._lock:
            return len(self.memories)

    def clear(self) -> None:
        with self._lock:
            self.memories.clear()
            for entries in self.memories_by_type.values():
                entries.clear()

    def _unindex(self, memory: Memory) -> None:
        entries = self.memories_by_type[memory.type]
        for index in range(len(entries) - 1, -1, -1):
            if entries[index] is memory:
                del entries[index]
                break
