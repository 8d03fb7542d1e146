from typing import Dict, List, Optional, Tuple
from collections import deque
from datetime import datetime, timedelta
from enum import Enum
import threading

import structlog
from pydantic import BaseModel, Field

from aiplayer.domain.models.goal import Goal
from aiplayer.domain.models.memory import Memory, MemoryType, utcnow
from aiplayer.domain.models.world_state import WorldState
from .memory_system import MemorySystem

logger = structlog.get_logger(__name__)


ANALYSIS_INTERVAL = 10  # experiences between insight refreshes
MAX_EXPERIENCES = 500
MIN_PATTERN_SUCCESSES = 3
HIGH_SUCCESS_RATE = 0.8
LOW_SUCCESS_RATE = 0.3
MIN_PROMPT_CONFIDENCE = 0.5
CONTEXT_RATE_DECAY = 0.95
GOAL_RATE_DECAY = 0.9
LOW_VITAL_THRESHOLD = 6


class InsightType(str, Enum):
    SUCCESS_PATTERN = "success_pattern"
    FAILURE_PATTERN = "failure_pattern"
    PREREQUISITE = "prerequisite"
    OPTIMIZATION = "optimization"


class ExperienceRecord(BaseModel):
    """One attempted action and how it went, in the situation it was tried"""
    context: str
    action: str
    success: bool
    outcome: str = ""
    timestamp: datetime = Field(default_factory=utcnow)


class LearningInsight(BaseModel):
    type: InsightType
    description: str
    confidence: float = Field(ge=0.0, le=1.0)
    supporting_experiences: int = 0

    def __str__(self) -> str:
        return (
            f"[{self.type.name}] {self.description} "
            f"(confidence: {self.confidence * 100:.0f}%, samples: {self.supporting_experiences})"
        )


class RunningRate:
    """Exponential moving success rate seeded by the first sample"""

    def __init__(self, decay: float):
        self.decay = decay
        self.rate: Optional[float] = None
        self.samples = 0

    def record(self, success: bool) -> float:
        outcome = 1.0 if success else 0.0
        if self.rate is None:
            self.rate = outcome
        else:
            self.rate = self.rate * self.decay + (1.0 - self.decay) * outcome
        self.samples += 1
        return self.rate


def describe_context(world_state: Optional[WorldState]) -> str:
    """Short situation label experiences are grouped by, e.g. 'overworld, low health'"""

    if world_state is None:
        return "unknown"

    parts = [world_state.dimension]
    if world_state.health < LOW_VITAL_THRESHOLD:
        parts.append("low health")
    if world_state.hunger < LOW_VITAL_THRESHOLD:
        parts.append("hungry")
    if world_state.hostile_entities():
        parts.append("hostiles nearby")
    return ", ".join(parts)


class LearningSystem:
    """Experience log with rule-based pattern mining.

    Successful (context, action) pairs are counted, and success rates are kept
    per context and per goal type. Every `analysis_interval` experiences the
    insight list is rebuilt from those tallies. Each experience is also written
    to memory as an EXPERIENCE entry; failures are stored as more important.
    """

    def __init__(
        self,
        memory_system: MemorySystem,
        max_experiences: int = MAX_EXPERIENCES,
        analysis_interval: int = ANALYSIS_INTERVAL
    ):
        self.memory_system = memory_system
        self.analysis_interval = analysis_interval
        self.experiences: deque = deque(maxlen=max_experiences)
        self.insights: List[LearningInsight] = []
        self.action_patterns: Dict[Tuple[str, str], int] = {}
        self.context_rates: Dict[str, RunningRate] = {}
        self.goal_rates: Dict[str, RunningRate] = {}
        self._recorded = 0
        self._lock = threading.RLock()

    def record_experience(self, context: str, action: str, success: bool, outcome: str = "") -> ExperienceRecord:
        record = ExperienceRecord(context=context, action=action, success=success, outcome=outcome)

        with self._lock:
            self.experiences.append(record)
            self._recorded += 1
            if success:
                key = (context, action)
                self.action_patterns[key] = self.action_patterns.get(key, 0) + 1
            self.context_rates.setdefault(context, RunningRate(CONTEXT_RATE_DECAY)).record(success)
            due = self._recorded % self.analysis_interval == 0

        self.memory_system.store(Memory(
            type=MemoryType.EXPERIENCE,
            content=f"{action} -> {'SUCCESS' if success else 'FAILURE'} ({outcome})",
            importance=0.6 if success else 0.8
        ))
        logger.debug("Recorded experience", context=context, action=action, success=success)

        if due:
            self.analyze()
        return record

    def record_goal_completion(self, goal: Goal, success: bool, context: str) -> ExperienceRecord:
        goal_type = goal.type.value
        with self._lock:
            self.goal_rates.setdefault(goal_type, RunningRate(GOAL_RATE_DECAY)).record(success)

        return self.record_experience(
            context,
            f"Complete goal: {goal_type}",
            success,
            "Goal achieved" if success else "Goal failed"
        )

    def analyze(self) -> List[LearningInsight]:
        """Rebuild insights from the current tallies"""

        insights: List[LearningInsight] = []
        with self._lock:
            for (context, action), successes in self.action_patterns.items():
                if successes >= MIN_PATTERN_SUCCESSES:
                    insights.append(LearningInsight(
                        type=InsightType.SUCCESS_PATTERN,
                        description=f"{context} -> {action} works well",
                        confidence=min(0.95, successes / 10.0),
                        supporting_experiences=successes
                    ))

            for label, rates in (("in", self.context_rates), ("with goal", self.goal_rates)):
                for key, rate in rates.items():
                    insight = _rate_insight(f"{label}: {key}", rate)
                    if insight is not None:
                        insights.append(insight)

            self.insights = insights

        logger.debug("Generated learning insights", count=len(insights))
        return list(insights)

    def get_recommendations(self, context: str) -> List[str]:
        """Actions that worked in matching contexts, most successful first"""

        with self._lock:
            matches = [
                (successes, action)
                for (pattern_context, action), successes in self.action_patterns.items()
                if pattern_context.startswith(context)
            ]
        matches.sort(key=lambda match: match[0], reverse=True)

        recommendations: List[str] = []
        for _, action in matches:
            if action not in recommendations:
                recommendations.append(action)
        return recommendations

    def get_insights(self) -> List[LearningInsight]:
        with self._lock:
            return list(self.insights)

    def format_insights_for_llm(self, max_insights: int = 5) -> str:
        confident = sorted(
            (i for i in self.get_insights() if i.confidence >= MIN_PROMPT_CONFIDENCE),
            key=lambda i: i.confidence,
            reverse=True
        )[:max_insights]
        if not confident:
            return ""

        lines = ["## Learned Insights"]
        lines.extend(f"- {insight.description}" for insight in confident)
        return "\n".join(lines) + "\n"

    def goal_success_rate(self, goal_type: str) -> Optional[float]:
        with self._lock:
            rate = self.goal_rates.get(goal_type)
            return rate.rate if rate else None

    def experience_count(self) -> int:
        with self._lock:
            return len(self.experiences)

    def cleanup_old_experiences(self, max_age: timedelta, now: Optional[datetime] = None) -> int:
        """Drop experiences older than max_age; tallies are kept"""

        cutoff = (now or utcnow()) - max_age
        with self._lock:
            kept = [record for record in self.experiences if record.timestamp >= cutoff]
            removed = len(self.experiences) - len(kept)
            self.experiences.clear()
            self.experiences.extend(kept)

        logger.debug("Cleaned up old experiences", removed=removed, remaining=len(kept))
        return removed

    def stats(self) -> Dict[str, float]:
        with self._lock:
            total = len(self.experiences)
            successes = sum(1 for record in self.experiences if record.success)
            return {
                "experiences": total,
                "success_rate": successes / total if total else 0.0,
                "insights": len(self.insights),
                "patterns": len(self.action_patterns)
            }


def _rate_insight(subject: str, rate: RunningRate) -> Optional[LearningInsight]:
    if rate.rate is None:
        return None
    if rate.rate > HIGH_SUCCESS_RATE:
        return LearningInsight(
            type=InsightType.SUCCESS_PATTERN,
            description=f"High success {subject}",
            confidence=rate.rate,
            supporting_experiences=rate.samples
        )
    if rate.rate < LOW_SUCCESS_RATE:
        return LearningInsight(
            type=InsightType.FAILURE_PATTERN,
            description=f"Low success {subject}",
            confidence=1.0 - rate.rate,
            supporting_experiences=rate.samples
        )
    return None
