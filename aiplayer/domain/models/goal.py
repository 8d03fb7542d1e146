from typing import Dict, Any, List, Optional, Callable
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator
from datetime import datetime
from enum import Enum
import threading
import uuid

from aiplayer.domain.models.memory import utcnow
from aiplayer.domain.models.world_state import WorldState


MIN_PRIORITY = 1
MAX_PRIORITY = 10
DEFAULT_PRIORITY = 5


class GoalType(str, Enum):
    """Nature of an objective"""
    SURVIVAL = "survival"
    EXPLORATION = "exploration"
    RESOURCE = "resource"
    BUILDING = "building"
    SOCIAL = "social"
    COMBAT = "combat"
    CRAFTING = "crafting"
    PLAYER_REQUEST = "player_request"
    AUTONOMOUS = "autonomous"


class GoalStatus(str, Enum):
    """Goal lifecycle status"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({GoalStatus.COMPLETED, GoalStatus.FAILED, GoalStatus.ABANDONED})


class TaskStatus(str, Enum):
    """Task execution status"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    ABANDONED = "abandoned"


def clamp_priority(value: Any) -> int:
    try:
        priority = int(value)
    except (TypeError, ValueError):
        return DEFAULT_PRIORITY
    return max(MIN_PRIORITY, min(MAX_PRIORITY, priority))


class Task(BaseModel):
    """One executable action sequence serving a goal"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    description: str
    actions: List[Any] = Field(default_factory=list, description="Opaque to the core")
    success_condition: Optional[Callable[[WorldState], bool]] = Field(None, exclude=True)
    status: TaskStatus = Field(default=TaskStatus.PENDING)
    current_action_index: int = 0
    failure_reason: Optional[str] = None

    def set_status(self, status: TaskStatus) -> bool:
        """Apply a transition; terminal states are final"""
        if self.status in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.ABANDONED):
            return False
        self.status = status
        return True

    def fail(self, reason: str) -> bool:
        if not self.set_status(TaskStatus.FAILED):
            return False
        self.failure_reason = reason
        return True

    @property
    def current_action(self) -> Optional[Any]:
        if 0 <= self.current_action_index < len(self.actions):
            return self.actions[self.current_action_index]
        return None

    def advance(self) -> None:
        """Move the cursor to the next action"""
        self.current_action_index += 1

    @property
    def has_more_actions(self) -> bool:
        return self.current_action_index < len(self.actions)

    def is_complete(self, world_state: Optional[WorldState] = None) -> bool:
        """Success predicate against a fresh snapshot, else cursor at end"""
        if self.success_condition is not None:
            if world_state is None:
                return False
            return bool(self.success_condition(world_state))
        return self.current_action_index >= len(self.actions)

    @property
    def progress(self) -> int:
        """Percent of actions executed"""
        if not self.actions:
            return 100
        return min(100, (self.current_action_index * 100) // len(self.actions))

    @property
    def is_active(self) -> bool:
        return self.status in (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)

    def __str__(self) -> str:
        return f"Task({self.description}, status={self.status.name}, progress={self.progress}%)"


class Goal(BaseModel):
    """A prioritised objective with an owned tree of subgoals.

    Assignments are validated, so `priority` stays clamped however it is set, and
    a status write on a terminal goal is ignored just like `set_status`.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True, validate_assignment=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    description: str
    type: GoalType = GoalType.AUTONOMOUS
    priority: int = Field(default=DEFAULT_PRIORITY, description="Clamped to [1, 10]")
    status: GoalStatus = Field(default=GoalStatus.PENDING)
    requested_by: Optional[str] = None
    subgoals: List["Goal"] = Field(default_factory=list)
    tasks: List[Task] = Field(default_factory=list)
    completion_check: Optional[Callable[[WorldState], bool]] = Field(None, exclude=True)
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    _lock: threading.Lock = PrivateAttr(default_factory=threading.Lock)

    @field_validator("priority", mode="before")
    @classmethod
    def _clamp_priority(cls, value: Any) -> int:
        return clamp_priority(value)

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "status" and self.status.is_terminal:
            return
        super().__setattr__(name, value)

    def set_status(self, status: GoalStatus) -> bool:
        """Apply a transition; writes after a terminal state are no-ops"""
        with self._lock:
            if self.status.is_terminal:
                return False
            self.status = status
            if status.is_terminal:
                self.completed_at = utcnow()
            return True

    def fail(self, reason: str) -> bool:
        with self._lock:
            if self.status.is_terminal:
                return False
            self.status = GoalStatus.FAILED
            self.completed_at = utcnow()
            self.failure_reason = reason
            return True

    def add_subgoal(self, subgoal: "Goal") -> None:
        self.subgoals.append(subgoal)

    def add_task(self, task: Task) -> None:
        self.tasks.append(task)

    @property
    def is_active(self) -> bool:
        return self.status in (GoalStatus.PENDING, GoalStatus.IN_PROGRESS)

    @property
    def is_complete(self) -> bool:
        return self.status == GoalStatus.COMPLETED

    @property
    def has_failed(self) -> bool:
        return self.status == GoalStatus.FAILED

    @property
    def is_player_requested(self) -> bool:
        return self.requested_by is not None

    def age_seconds(self) -> float:
        return (utcnow() - self.created_at).total_seconds()

    def duration_seconds(self) -> float:
        """Time from creation to the terminal transition, 0 while active"""
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.created_at).total_seconds()

    def are_all_subgoals_complete(self) -> bool:
        return all(subgoal.is_complete for subgoal in self.subgoals)

    def next_subgoal(self) -> Optional["Goal"]:
        for subgoal in self.subgoals:
            if subgoal.status == GoalStatus.PENDING:
                return subgoal
        return None

    def is_satisfied_by(self, world_state: Optional[WorldState]) -> bool:
        """Completion predicate, if one was attached"""
        if self.completion_check is None or world_state is None:
            return False
        return bool(self.completion_check(world_state))

    def detailed_status(self) -> str:
        lines = [
            f"Goal: {self.description} [{self.status.name}]",
            f"  Type: {self.type.name}, Priority: {self.priority}",
            f"  Age: {self.age_seconds():.1f}s",
        ]
        if self.requested_by:
            lines.append(f"  Requested by: {self.requested_by}")
        if self.subgoals:
            pending = sum(1 for g in self.subgoals if g.status == GoalStatus.PENDING)
            complete = sum(1 for g in self.subgoals if g.is_complete)
            lines.append(
                f"  Subgoals: {len(self.subgoals)} total, {pending} pending, {complete} complete"
            )
        if self.failure_reason:
            lines.append(f"  Failure: {self.failure_reason}")
        return "\n".join(lines)

    def __str__(self) -> str:
        return (
            f"Goal({self.description}, type={self.type.name}, "
            f"status={self.status.name}, priority={self.priority})"
        )
