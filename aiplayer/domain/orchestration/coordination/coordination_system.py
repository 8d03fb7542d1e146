from typing import Callable, Dict, Any, List, Optional, Set
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator
import threading
import time
import uuid

import structlog

from aiplayer.domain.models.world_state import Vec3
from aiplayer.infrastructure.config.settings import CoordinationSettings
from aiplayer.infrastructure.observability.logging import MetricsCollector

logger = structlog.get_logger(__name__)


class SharedGoal(BaseModel):
    """An objective several agents pursue together"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    description: str
    priority: float = Field(0.5, description="Clamped to [0, 1]")
    required_participants: int = 1
    participants: Set[str] = Field(default_factory=set)
    created_at: float = Field(default_factory=time.monotonic)

    _lock: threading.Lock = PrivateAttr(default_factory=threading.Lock)

    @field_validator("priority", mode="before")
    @classmethod
    def clamp_priority(cls, value: Any) -> float:
        return max(0.0, min(1.0, float(value)))

    @field_validator("required_participants", mode="before")
    @classmethod
    def at_least_one(cls, value: Any) -> int:
        return max(1, int(value))

    def add_participant(self, agent_id: str) -> bool:
        """Returns False if already a participant"""
        with self._lock:
            if agent_id in self.participants:
                return False
            self.participants.add(agent_id)
            return True

    def remove_participant(self, agent_id: str) -> None:
        with self._lock:
            self.participants.discard(agent_id)

    def participant_ids(self) -> Set[str]:
        with self._lock:
            return set(self.participants)

    @property
    def is_ready(self) -> bool:
        with self._lock:
            return len(self.participants) >= self.required_participants

    def __str__(self) -> str:
        return (
            f"SharedGoal({self.description}, participants={len(self.participant_ids())}/"
            f"{self.required_participants}, priority={self.priority:.2f})"
        )


class Team(BaseModel):
    """A named group of agents with a leader"""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    leader: str
    purpose: str = ""
    members: List[str] = Field(default_factory=list, description="Join order preserved")
    created_at: float = Field(default_factory=time.monotonic)

    def __str__(self) -> str:
        return f"Team({self.name}, members={len(self.members)}, purpose={self.purpose})"


class CoordinationSystem:
    """Cross-agent registry of positions, shared goals and teams"""

    def __init__(
        self,
        settings: Optional[CoordinationSettings] = None,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.settings = settings or CoordinationSettings()
        self.metrics = metrics
        self._clock = clock
        self.agent_positions: Dict[str, Vec3] = {}
        self.shared_goals: Dict[str, SharedGoal] = {}
        self.goal_assignments: Dict[str, Set[str]] = {}
        self.teams: Dict[str, Team] = {}
        self._lock = threading.RLock()

    # Agent registry

    def register_agent(self, agent_id: str, position: Optional[Vec3] = None) -> None:
        with self._lock:
            self.agent_positions[agent_id] = position or Vec3()
            self.goal_assignments.setdefault(agent_id, set())
            total = len(self.agent_positions)

        logger.info("Registered agent", agent_id=agent_id, total=total)
        self._gauge("coordination.agents", total)

    def unregister_agent(self, agent_id: str) -> bool:
        """Remove an agent and release all of its shared-goal assignments"""

        with self._lock:
            if self.agent_positions.pop(agent_id, None) is None:
                return False
            for goal_id in self.goal_assignments.pop(agent_id, set()):
                goal = self.shared_goals.get(goal_id)
                if goal is not None:
                    goal.remove_participant(agent_id)
            total = len(self.agent_positions)

        logger.info("Unregistered agent", agent_id=agent_id)
        self._gauge("coordination.agents", total)
        return True

    def update_position(self, agent_id: str, position: Vec3) -> None:
        with self._lock:
            if agent_id in self.agent_positions:
                self.agent_positions[agent_id] = position

    def is_registered(self, agent_id: str) -> bool:
        with self._lock:
            return agent_id in self.agent_positions

    def assignment_count(self, agent_id: str) -> int:
        with self._lock:
            return len(self.goal_assignments.get(agent_id, ()))

    # Shared goals

    def create_shared_goal(self, description: str, priority: float, required_participants: int) -> str:
        goal = SharedGoal(
            description=description,
            priority=priority,
            required_participants=required_participants,
            created_at=self._clock()
        )
        with self._lock:
            self.shared_goals[goal.id] = goal

        logger.info(
            "Created shared goal",
            goal_id=goal.id,
            description=description,
            required_participants=goal.required_participants
        )
        self._count("coordination.shared_goal_created")
        return goal.id

    def get_shared_goal(self, goal_id: str) -> Optional[SharedGoal]:
        with self._lock:
            return self.shared_goals.get(goal_id)

    def assign_to_goal(self, agent_id: str, goal_id: str) -> bool:
        """Idempotent; returns True only when the agent was newly added"""

        with self._lock:
            goal = self.shared_goals.get(goal_id)
            if goal is None:
                logger.warning("Cannot assign to non-existent goal", goal_id=goal_id)
                return False
            if agent_id not in self.agent_positions:
                logger.warning("Cannot assign unregistered agent to goal", agent_id=agent_id)
                return False

            added = goal.add_participant(agent_id)
            if added:
                self.goal_assignments.setdefault(agent_id, set()).add(goal_id)

        if added:
            logger.debug("Assigned agent to goal", agent_id=agent_id, goal=goal.description)
            if goal.is_ready:
                logger.info(
                    "Shared goal ready",
                    goal=goal.description,
                    participants=len(goal.participant_ids())
                )
        return added

    def unassign_from_goal(self, agent_id: str, goal_id: str) -> None:
        with self._lock:
            goal = self.shared_goals.get(goal_id)
            if goal is not None:
                goal.remove_participant(agent_id)
            assignments = self.goal_assignments.get(agent_id)
            if assignments is not None:
                assignments.discard(goal_id)

    def complete_goal(self, goal_id: str, success: bool) -> bool:
        """Remove a shared goal and release every participant's assignment"""

        with self._lock:
            goal = self.shared_goals.pop(goal_id, None)
            if goal is None:
                return False
            participants = goal.participant_ids()
            for agent_id in participants:
                assignments = self.goal_assignments.get(agent_id)
                if assignments is not None:
                    assignments.discard(goal_id)

        logger.info(
            "Completed shared goal",
            goal=goal.description,
            success=success,
            participants=len(participants)
        )
        self._count("coordination.shared_goal_succeeded" if success else "coordination.shared_goal_failed")
        return True

    def all_shared_goals(self) -> List[SharedGoal]:
        with self._lock:
            return list(self.shared_goals.values())

    def goals_needing_help(self) -> List[SharedGoal]:
        """Goals short of participants, highest priority first"""

        return sorted(
            (goal for goal in self.all_shared_goals() if not goal.is_ready),
            key=lambda goal: goal.priority,
            reverse=True
        )

    def cleanup_expired_goals(self) -> int:
        """Force-complete, as failed, every shared goal older than the timeout"""

        timeout = self.settings.goal_timeout_minutes * 60.0
        now = self._clock()
        expired = [goal.id for goal in self.all_shared_goals() if now - goal.created_at > timeout]

        for goal_id in expired:
            self.complete_goal(goal_id, False)
            logger.debug("Removed expired shared goal", goal_id=goal_id)
        return len(expired)

    # Collaborator search

    def find_collaborators(self, near: Vec3, max_distance: float, max_agents: int) -> List[str]:
        """Nearby agents under the collaborator load limit, nearest first"""

        return self._nearby_available(
            near,
            max_distance,
            self.settings.collaborator_load_limit,
            max_agents
        )

    def request_help(self, requester_id: str, help_type: str, position: Vec3) -> List[str]:
        helpers = self._nearby_available(
            position,
            self.settings.collaboration_distance,
            self.settings.helper_load_limit,
            self.settings.max_helpers,
            exclude=requester_id
        )
        logger.info("Found agents to help", requester=requester_id, help_type=help_type, helpers=len(helpers))
        return helpers

    def should_coordinate(self, agent_a: str, agent_b: str) -> bool:
        """True when two agents share a goal or a team"""

        with self._lock:
            goals_a = self.goal_assignments.get(agent_a)
            goals_b = self.goal_assignments.get(agent_b)
            if goals_a is None or goals_b is None:
                return False
            if goals_a & goals_b:
                return True
            return any(agent_a in team.members and agent_b in team.members for team in self.teams.values())

    # Teams

    def create_team(self, name: str, leader: str, purpose: str = "") -> str:
        team = Team(name=name, leader=leader, purpose=purpose, members=[leader], created_at=self._clock())
        with self._lock:
            self.teams[team.id] = team

        logger.info("Created team", team=name, leader=leader)
        return team.id

    def get_team(self, team_id: str) -> Optional[Team]:
        with self._lock:
            return self.teams.get(team_id)

    def add_to_team(self, team_id: str, agent_id: str) -> bool:
        """Rejected, not truncated, once the team is at its size cap"""

        with self._lock:
            team = self.teams.get(team_id)
            if team is None:
                return False
            if agent_id in team.members:
                return False
            if len(team.members) >= self.settings.max_team_size:
                logger.warning("Team is full", team=team.name, max_size=self.settings.max_team_size)
                return False
            team.members.append(agent_id)

        logger.debug("Added agent to team", agent_id=agent_id, team=team.name)
        return True

    def remove_from_team(self, team_id: str, agent_id: str) -> None:
        with self._lock:
            team = self.teams.get(team_id)
            if team is not None and agent_id in team.members:
                team.members.remove(agent_id)

    def distribute_task(self, team_id: str, task: str) -> Dict[str, str]:
        """Round-robin labelling of sub-tasks; no skill-aware balancing"""

        with self._lock:
            team = self.teams.get(team_id)
            if team is None:
                return {}
            members = list(team.members)

        total = len(members)
        assignments = {
            member: f"{task} (part {index}/{total})"
            for index, member in enumerate(members, start=1)
        }
        logger.info("Distributed task", task=task, members=total)
        return assignments

    def all_teams(self) -> List[Team]:
        with self._lock:
            return list(self.teams.values())

    def stats(self) -> Dict[str, int]:
        with self._lock:
            goals = list(self.shared_goals.values())
            return {
                "active_shared_goals": len(goals),
                "ready_goals": sum(1 for goal in goals if goal.is_ready),
                "active_teams": len(self.teams),
                "registered_agents": len(self.agent_positions)
            }

    def _nearby_available(
        self,
        near: Vec3,
        max_distance: float,
        load_limit: int,
        limit: int,
        exclude: Optional[str] = None
    ) -> List[str]:
        with self._lock:
            candidates = [
                (position.distance_to(near), agent_id)
                for agent_id, position in self.agent_positions.items()
                if agent_id != exclude
                and position.distance_to(near) <= max_distance
                and len(self.goal_assignments.get(agent_id, ())) < load_limit
            ]
        candidates.sort()
        return [agent_id for _, agent_id in candidates[:max(0, limit)]]

    def _count(self, name: str) -> None:
        if self.metrics:
            self.metrics.increment_counter(name)

    def _gauge(self, name: str, value: float) -> None:
        if self.metrics:
            self.metrics.set_gauge(name, value)
