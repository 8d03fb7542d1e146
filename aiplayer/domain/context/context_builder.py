from typing import List, Optional

import structlog

from aiplayer.domain.context.memory.learning_system import LearningSystem
from aiplayer.domain.context.memory.memory_system import MemorySystem
from aiplayer.domain.models.goal import Goal
from aiplayer.domain.models.world_state import WorldState

logger = structlog.get_logger(__name__)


MAX_CONTEXT_ENTITIES = 5
MAX_CONTEXT_MEMORIES = 5

PLANNING_SYSTEM_PROMPT = (
    "You are an AI assistant helping a Minecraft player make decisions. "
    "Your job is to analyze the current situation and suggest goals and tasks. "
    "Be strategic and prioritize survival (health, food) over exploration. "
    "Keep goals concrete and achievable. "
    "Available actions: move, mine, build, fight, collect items, eat, craft."
)

RESPONSE_FORMAT_INSTRUCTIONS = (
    "Based on the current situation, what should I do next?\n"
    "Provide your response in this format:\n"
    "THOUGHT: <your reasoning about the situation>\n"
    "GOAL: <high-level goal description>\n"
    "PRIORITY: <1-10>\n"
    "TASKS: <list of specific tasks to complete the goal>\n"
)


class PlanningContextBuilder:
    """Assembles the planning prompt from perception, memory and active goals"""

    def __init__(self, memory_system: MemorySystem, learning: Optional[LearningSystem] = None):
        self.memory_system = memory_system
        self.learning = learning

    def build(self, world_state: WorldState, active_goals: Optional[List[Goal]] = None) -> str:
        sections = [
            self._status_section(world_state),
            self._entities_section(world_state),
            self._memories_section(),
            self._goals_section(active_goals or []),
            self.learning.format_insights_for_llm() if self.learning else "",
            "## Task\n" + RESPONSE_FORMAT_INSTRUCTIONS,
        ]
        context = "\n".join(section for section in sections if section)

        logger.debug("Built planning context", chars=len(context))
        return context

    def _status_section(self, world_state: WorldState) -> str:
        position = world_state.position
        return (
            "## Current Status\n"
            f"Position: {position.x:.1f}, {position.y:.1f}, {position.z:.1f}\n"
            f"Health: {world_state.health:.1f}/20\n"
            f"Hunger: {world_state.hunger:.1f}/20\n"
        )

    def _entities_section(self, world_state: WorldState) -> str:
        if not world_state.nearby_entities:
            return ""
        lines = ["## Nearby Entities"]
        for entity in world_state.nearby_entities[:MAX_CONTEXT_ENTITIES]:
            lines.append(f"- {entity.name} (distance: {entity.distance:.1f})")
        return "\n".join(lines) + "\n"

    def _memories_section(self) -> str:
        recent = self.memory_system.working.get_recent(MAX_CONTEXT_MEMORIES)
        lines = ["## Recent Memories"]
        if not recent:
            lines.append("(none)")
        for memory in recent:
            lines.append(f"- [{memory.type.name}] {memory.content}")
        return "\n".join(lines) + "\n"

    def _goals_section(self, goals: List[Goal]) -> str:
        if not goals:
            return ""
        lines = ["## Current Goals"]
        for goal in goals:
            lines.append(f"- [{goal.status.name}] {goal.description} (priority: {goal.priority})")
        return "\n".join(lines) + "\n"
