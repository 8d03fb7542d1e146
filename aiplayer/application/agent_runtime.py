from typing import Dict, Any, Optional

import structlog

from aiplayer.application.context import ApplicationContext
from aiplayer.domain.communication.inbound import InboundMessage
from aiplayer.domain.context.knowledge.world_knowledge import KnowledgeSnapshot, WorldKnowledge
from aiplayer.domain.context.memory.learning_system import LearningSystem, describe_context
from aiplayer.domain.context.memory.memory_system import MemorySystem
from aiplayer.domain.llm.options import LLMOptions
from aiplayer.domain.models.goal import Goal, GoalType
from aiplayer.domain.models.memory import Memory, MemoryType
from aiplayer.domain.models.world_state import WorldState
from aiplayer.domain.orchestration.core.planning_engine import PlanningEngine
from aiplayer.infrastructure.observability.logging import AgentLogger

logger = structlog.get_logger(__name__)


PERCEPTION_INTERVAL_TICKS = 20  # about once a second
LOW_VITAL_THRESHOLD = 6
DANGER_HEALTH_THRESHOLD = 4
EXPLORED_RADIUS = 16
DANGER_RADIUS = 10


class AgentRuntime:
    """Per-agent tick driver wiring perception, memory, planning and coordination"""

    def __init__(
        self,
        agent_id: str,
        context: ApplicationContext,
        knowledge: Optional[KnowledgeSnapshot] = None
    ):
        self.agent_id = agent_id
        self.context = context
        settings = context.settings

        self.memory = MemorySystem(settings.memory.max_episodic_memories, agent_id=agent_id)
        self.learning = LearningSystem(self.memory)
        self.world_knowledge = WorldKnowledge(self.memory, agent_id=agent_id)
        if knowledge is not None:
            self.world_knowledge.load_snapshot(knowledge)

        planning_options = LLMOptions.planning().with_temperature(settings.llm.temperature)
        planning_options = planning_options.with_max_tokens(settings.llm.max_tokens)
        self.planning = PlanningEngine(
            context.provider,
            self.memory,
            agent_id=agent_id,
            planning_interval=settings.planning.interval_ticks,
            max_goals=settings.planning.max_active_goals,
            metrics=context.metrics,
            loop=context.loop,
            autonomous=settings.planning.autonomous_goal_generation,
            planning_options=planning_options,
            learning=self.learning
        )
        self.consolidation_interval = settings.memory.consolidation_interval_ticks
        self.tick_count = 0
        self.last_world_state: Optional[WorldState] = None
        self._events = AgentLogger(__name__)

        context.attach(agent_id, self)
        context.coordination.register_agent(agent_id)
        self._unsubscribe = context.message_bus.subscribe(self.on_message)

        self._events.log_agent_event("agent_started", agent_id, {"provider": context.provider.name})

    def tick(self, world_state: WorldState) -> None:
        """One host tick; never blocks on the LLM"""

        self.tick_count += 1
        world_state = self._with_knowledge_probes(world_state)
        self.last_world_state = world_state

        self.context.coordination.update_position(self.agent_id, world_state.position)

        if self.tick_count % PERCEPTION_INTERVAL_TICKS == 0:
            self._store_perception_memories(world_state)
            self._update_world_knowledge(world_state)

        self.planning.update(world_state)

        if self.tick_count % self.consolidation_interval == 0:
            self.memory.consolidate()

    def request_goal(
        self,
        description: str,
        requested_by: str,
        priority: int = 8,
        goal_type: GoalType = GoalType.PLAYER_REQUEST
    ) -> Optional[Goal]:
        """Queue a goal asked for by a player or another agent"""

        goal = Goal(description=description, type=goal_type, priority=priority, requested_by=requested_by)
        if not self.planning.add_goal(goal):
            return None

        self.memory.store(Memory(
            type=MemoryType.CONVERSATION,
            content=f"{requested_by} asked me to: {description}",
            importance=0.8
        ))
        logger.info("Accepted requested goal", agent_id=self.agent_id, goal=description, requested_by=requested_by)
        return goal

    def report_goal_result(self, goal_id: str, success: bool, detail: str = "") -> bool:
        """Executor feedback: status transition, memory, strategy rating and experience"""

        goal = self.planning.get_goal(goal_id)
        if goal is None:
            logger.warning("Result for unknown goal", agent_id=self.agent_id, goal_id=goal_id)
            return False

        if success:
            changed = self.planning.complete_goal(goal_id)
        else:
            changed = self.planning.fail_goal(goal_id, detail or "unknown reason")

        if changed:
            self.memory.update_strategy(goal.type.value, success)
            self.learning.record_goal_completion(goal, success, describe_context(self.last_world_state))
            if goal.requested_by and success:
                self.memory.update_relationship(goal.requested_by, 5)
        return changed

    def record_action(self, description: str, success: bool) -> Memory:
        """Executor feedback for a single action"""

        outcome = "succeeded" if success else "failed"
        self.learning.record_experience(describe_context(self.last_world_state), description, success, outcome)
        return self.memory.store_action(f"{description} ({outcome})", 0.4 if success else 0.6)

    def on_message(self, message: InboundMessage) -> None:
        if message.sender == self.agent_id:
            return
        if message.recipient is not None and message.recipient != self.agent_id:
            return

        self.memory.store(Memory(
            type=MemoryType.CONVERSATION,
            content=f"{message.sender} said: {message.content}",
            importance=0.9,
            metadata={"channel": message.channel}
        ))

    def export_knowledge(self) -> KnowledgeSnapshot:
        return self.world_knowledge.export_snapshot()

    def stats(self) -> Dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "ticks": self.tick_count,
            "memory": self.memory.stats(),
            "knowledge": self.world_knowledge.stats(),
            "learning": self.learning.stats(),
            "planning": self.planning.stats()
        }

    async def shutdown(self) -> KnowledgeSnapshot:
        """Stop receiving messages, wait for planning and hand back knowledge to persist"""

        self._unsubscribe()
        await self.planning.drain()
        self.context.coordination.unregister_agent(self.agent_id)
        self.context.detach(self.agent_id)
        self._events.log_agent_event("agent_stopped", self.agent_id, self.memory.stats())
        return self.export_knowledge()

    def _with_knowledge_probes(self, world_state: WorldState) -> WorldState:
        # Perception may leave the position queries to us
        updates: Dict[str, Any] = {}
        if world_state.danger_probe is None:
            updates["danger_probe"] = lambda position: self.world_knowledge.danger_at(position) is not None
        if world_state.known_probe is None:
            updates["known_probe"] = self.world_knowledge.is_explored
        return world_state.with_updates(**updates) if updates else world_state

    def _store_perception_memories(self, world_state: WorldState) -> None:
        if world_state.health < LOW_VITAL_THRESHOLD:
            self.memory.store_observation(f"Low health: {world_state.health:.1f}/20", 0.9)

        if world_state.hunger < LOW_VITAL_THRESHOLD:
            self.memory.store_observation(f"Low hunger: {world_state.hunger:.1f}/20", 0.8)

        for hostile in world_state.hostile_entities():
            self.memory.store_observation(f"Hostile {hostile.name} nearby ({hostile.distance:.1f} blocks)", 0.7)

    def _update_world_knowledge(self, world_state: WorldState) -> None:
        block = world_state.position.block()
        if not self.world_knowledge.is_explored(block):
            self.world_knowledge.mark_explored(block, EXPLORED_RADIUS, world_state.dimension)

        if world_state.health < DANGER_HEALTH_THRESHOLD:
            self.world_knowledge.register_danger_zone("Recently took damage here", block, DANGER_RADIUS, 0.7)
