from typing import Dict, Any, List, Optional
import structlog
from datetime import datetime

from aiplayer.domain.models.memory import Memory, MemoryType
from aiplayer.infrastructure.observability.logging import AgentLogger
from .working_memory import WorkingMemory
from .episodic_memory import EpisodicMemory
from .semantic_memory import SemanticMemory

logger = structlog.get_logger(__name__)


WORKING_MEMORY_IMPORTANCE = 0.5


class MemorySystem:
    """Facade over working, episodic and semantic memory for one agent"""

    def __init__(self, max_episodic_memories: int = 1000, agent_id: Optional[str] = None):
        self.agent_id = agent_id
        self.episodic = EpisodicMemory(max_episodic_memories)
        self.semantic = SemanticMemory()
        self.working = WorkingMemory()
        self._events = AgentLogger(__name__)

    def store(self, memory: Memory) -> Memory:
        """Always log episodically; keep in working memory if important or recent"""

        self.episodic.store(memory)

        if memory.importance >= WORKING_MEMORY_IMPORTANCE or memory.is_recent():
            self.working.add(memory)

        logger.debug(
            "Stored memory",
            agent_id=self.agent_id,
            memory_type=memory.type.value,
            importance=memory.importance
        )
        return memory

    def store_observation(self, content: str, importance: float) -> Memory:
        return self.store(Memory(type=MemoryType.OBSERVATION, content=content, importance=importance))

    def store_action(self, content: str, importance: float) -> Memory:
        return self.store(Memory(type=MemoryType.ACTION, content=content, importance=importance))

    def store_learning(self, content: str, importance: float) -> Memory:
        return self.store(Memory(type=MemoryType.LEARNING, content=content, importance=importance))

    def recall(self, query: str, limit: int = 10) -> List[Memory]:
        return self.episodic.recall(query, limit)

    def recall_recent(self, limit: int = 10) -> List[Memory]:
        return self.working.get_recent(limit)

    def recall_by_type(self, memory_type: MemoryType, limit: int = 10) -> List[Memory]:
        return self.episodic.recall_by_type(memory_type, limit)

    def recall_by_time_range(self, start: datetime, end: datetime) -> List[Memory]:
        return self.episodic.recall_by_time_range(start, end)

    # Semantic knowledge

    def learn(self, key: str, value: str) -> None:
        self.semantic.learn(key, value)

    def retrieve(self, key: str) -> Optional[str]:
        return self.semantic.retrieve(key)

    def update_relationship(self, player_name: str, delta: int) -> int:
        return self.semantic.update_relationship(player_name, delta)

    def get_relationship(self, player_name: str) -> int:
        return self.semantic.get_relationship(player_name)

    def update_strategy(self, strategy: str, success: bool) -> None:
        self.semantic.update_strategy_rating(strategy, success)

    def get_strategy_rating(self, strategy: str) -> float:
        return self.semantic.get_strategy_rating(strategy)

    def total_memories(self) -> int:
        return self.episodic.size()

    def consolidate(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Evict stale episodic entries and purge old working memory"""

        evicted = self.episodic.consolidate(now)
        purged = self.working.cleanup(now)

        self._events.log_memory_update(
            self.agent_id or "unknown",
            "episodic",
            "consolidate",
            {"episodic_evicted": evicted, "working_purged": purged}
        )
        return {"episodic_evicted": evicted, "working_purged": purged}

    def stats(self) -> Dict[str, Any]:
        return {
            "episodic": self.episodic.size(),
            "semantic": self.semantic.fact_count(),
            "working": self.working.size()
        }

    def format_recent_for_context(self, limit: int = 5) -> str:
        recent = self.recall_recent(limit)
        if not recent:
            return "No recent memories."

        lines = ["Recent memories:"]
        lines.extend(f"- {memory.format()}" for memory in recent)
        return "\n".join(lines) + "\n"

    def format_by_type_for_context(self, memory_type: MemoryType, limit: int = 5) -> str:
        memories = self.recall_by_type(memory_type, limit)
        label = memory_type.name
        if not memories:
            return f"No {label} memories."

        lines = [f"{label} memories:"]
        lines.extend(f"- {memory.format()}" for memory in memories)
        return "\n".join(lines) + "\n"
