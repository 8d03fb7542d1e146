from typing import List, Optional
from collections import deque
from datetime import datetime
import threading

from aiplayer.domain.models.memory import Memory, MemoryType, utcnow


class WorkingMemory:
    """Short-term recency buffer, most recent first"""

    MAX_SIZE = 20
    MAX_AGE_SECONDS = 600  # 10 minutes

    def __init__(self, max_size: int = MAX_SIZE):
        self.max_size = max_size
        self.memories: deque = deque(maxlen=max_size)
        self._lock = threading.RLock()

    def add(self, memory: Memory) -> None:
        """Add to the front; the oldest entry falls off past capacity"""

        with self._lock:
            self.memories.appendleft(memory)

    def get_recent(self, limit: int) -> List[Memory]:
        with self._lock:
            return list(self.memories)[:max(0, limit)]

    def get_by_type(self, memory_type: MemoryType, limit: int) -> List[Memory]:
        with self._lock:
            matches = [m for m in self.memories if m.type == memory_type]
        return matches[:max(0, limit)]

    def get_all(self) -> List[Memory]:
        with self._lock:
            return list(self.memories)

    def cleanup(self, now: Optional[datetime] = None) -> int:
        """Drop items older than ten minutes, return how many were removed"""

        now = now or utcnow()
        with self._lock:
            kept = [m for m in self.memories if m.age_seconds(now) <= self.MAX_AGE_SECONDS]
            removed = len(self.memories) - len(kept)
            self.memories = deque(kept, maxlen=self.max_size)
            return removed

    def size(self) -> int:
        with self._lock:
            return len(self.memories)

    def clear(self) -> None:
        with self._lock:
            self.memories.clear()
