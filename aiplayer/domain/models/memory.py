from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field, field_validator
from datetime import datetime, timezone
from enum import Enum
import math
import uuid


RECENT_SECONDS = 300  # 5 minutes


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemoryType(str, Enum):
    """Categories of remembered experience"""
    OBSERVATION = "observation"
    ACTION = "action"
    CONVERSATION = "conversation"
    GOAL_COMPLETION = "goal_completion"
    GOAL_FAILURE = "goal_failure"
    LEARNING = "learning"
    RELATIONSHIP = "relationship"
    DISCOVERY = "discovery"
    EVENT = "event"
    PLANNING = "planning"
    ACHIEVEMENT = "achievement"
    FAILURE = "failure"
    EXPERIENCE = "experience"


class Memory(BaseModel):
    """A single remembered event, observation, action or learning"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=utcnow)
    type: MemoryType
    content: str
    importance: float = Field(0.5, description="Clamped to [0, 1]")
    metadata: Dict[str, Any] = Field(default_factory=dict)
    embedding: Optional[List[float]] = None

    @field_validator("importance", mode="before")
    @classmethod
    def clamp_importance(cls, value: Any) -> float:
        return max(0.0, min(1.0, float(value)))

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        """Age in seconds, never negative"""
        now = now or utcnow()
        return max(0.0, (now - self.timestamp).total_seconds())

    def age_minutes(self, now: Optional[datetime] = None) -> int:
        return int(self.age_seconds(now) // 60)

    def is_recent(self, now: Optional[datetime] = None) -> bool:
        """Less than five minutes old"""
        return self.age_seconds(now) < RECENT_SECONDS

    def relevance(self, now: Optional[datetime] = None) -> float:
        """Importance decayed logarithmically by age in minutes"""
        decay = 1.0 / (1.0 + math.log(1.0 + self.age_minutes(now)))
        return self.importance * decay

    def format(self, now: Optional[datetime] = None) -> str:
        """Render for display or LLM context"""
        minutes = self.age_minutes(now)
        if minutes < 1:
            when = "just now"
        elif minutes < 60:
            when = f"{minutes} minutes ago"
        else:
            when = f"{minutes // 60} hours ago"
        return f"[{self.type.name} {when}] {self.content}"

    def __str__(self) -> str:
        return (
            f"Memory(type={self.type.name}, content='{self.content}', "
            f"importance={self.importance:.2f}, age={self.age_minutes()}min)"
        )
