from typing import Dict, Any, List, Optional, Set
import asyncio
import concurrent.futures
import threading

import structlog

from aiplayer.domain.context.context_builder import PLANNING_SYSTEM_PROMPT, PlanningContextBuilder
from aiplayer.domain.context.memory.learning_system import LearningSystem
from aiplayer.domain.context.memory.memory_system import MemorySystem
from aiplayer.domain.llm.base_provider import LLMProvider
from aiplayer.domain.llm.errors import CapacityExceededError, CognitionError, ParseFailureError
from aiplayer.domain.llm.options import LLMOptions
from aiplayer.domain.models.goal import Goal, GoalStatus
from aiplayer.domain.models.memory import Memory, MemoryType
from aiplayer.domain.models.world_state import WorldState
from aiplayer.domain.orchestration.core.goal_queue import GoalQueue
from aiplayer.domain.orchestration.core.plan_parser import parse_plan, plan_to_goal
from aiplayer.infrastructure.observability.logging import SLOW_LLM_CALL_MS, AgentLogger, MetricsCollector

logger = structlog.get_logger(__name__)


DEFAULT_PLANNING_INTERVAL = 100  # ticks, about 5 seconds
DEFAULT_MAX_GOALS = 5


class PlanningEngine:
    """ReAct-style loop: observe, ask the LLM, parse a goal, remember the outcome.

    `update` is called from a synchronous tick driver. When the planning interval
    has elapsed it renders the context on the calling thread and hands the LLM
    round trip to an event loop, so the tick never blocks on the network. Any
    failure in that round trip costs one planning cycle and nothing more.
    """

    def __init__(
        self,
        provider: LLMProvider,
        memory_system: MemorySystem,
        agent_id: str = "agent",
        planning_interval: int = DEFAULT_PLANNING_INTERVAL,
        max_goals: int = DEFAULT_MAX_GOALS,
        metrics: Optional[MetricsCollector] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        autonomous: bool = True,
        planning_options: Optional[LLMOptions] = None,
        learning: Optional[LearningSystem] = None
    ):
        self.provider = provider
        self.memory_system = memory_system
        self.agent_id = agent_id
        self.planning_interval = planning_interval
        self.metrics = metrics or MetricsCollector("planning")
        self.loop = loop
        self.autonomous = autonomous
        self.planning_options = (planning_options or LLMOptions.planning()).with_system_prompt(PLANNING_SYSTEM_PROMPT)
        self.goals = GoalQueue(max_goals)
        self.context_builder = PlanningContextBuilder(memory_system, learning)
        self.ticks_since_last_plan = 0
        self._in_flight: Set[Any] = set()
        self._in_flight_lock = threading.Lock()
        self._events = AgentLogger(__name__)

    def update(self, world_state: WorldState) -> None:
        """One scheduling tick"""

        self.ticks_since_last_plan += 1

        if self.autonomous and self.ticks_since_last_plan >= self.planning_interval:
            self.ticks_since_last_plan = 0
            if self.in_flight:
                # Cycles stay ordered: the previous one must land first
                logger.debug("Previous planning cycle still in flight; skipping", agent_id=self.agent_id)
                self.metrics.increment_counter("planning.cycle_skipped")
            else:
                self._dispatch_replan(world_state)

        self._update_active_goals(world_state)

    async def replan(self, world_state: WorldState) -> Optional[Goal]:
        """Run one planning cycle; returns the admitted goal or None"""

        context = self.context_builder.build(world_state, self.goals.snapshot())
        return await self._plan_from_context(context)

    async def _plan_from_context(self, context: str) -> Optional[Goal]:
        with structlog.contextvars.bound_contextvars(agent_id=self.agent_id):
            return await self._run_cycle(context)

    async def _run_cycle(self, context: str) -> Optional[Goal]:
        try:
            with self.metrics.timed("planning.llm_call", tags={"agent_id": self.agent_id}, slow_ms=SLOW_LLM_CALL_MS):
                response = await self.provider.complete(context, self.planning_options)
            plan = parse_plan(response)
        except ParseFailureError as e:
            logger.warning("Failed to parse goal from response", agent_id=self.agent_id, error=str(e))
            self.metrics.increment_counter("planning.parse_failure")
            return None
        except CognitionError as e:
            logger.error("Planning failed", agent_id=self.agent_id, error=str(e))
            self.metrics.increment_counter("planning.llm_failure")
            return None

        if plan.thought:
            logger.debug("LLM reasoning", agent_id=self.agent_id, thought=plan.thought)
        if plan.tasks:
            logger.debug("Planned tasks", agent_id=self.agent_id, tasks=plan.tasks)

        goal = plan_to_goal(plan)
        if not self.add_goal(goal):
            return None

        logger.info(
            "Generated new goal",
            agent_id=self.agent_id,
            goal=goal.description,
            goal_type=goal.type.value,
            priority=goal.priority
        )
        self.metrics.increment_counter("planning.goal_generated")
        self.memory_system.store(Memory(
            type=MemoryType.PLANNING,
            content=f"Planned: {goal.description}",
            importance=0.7
        ))
        return goal

    def add_goal(self, goal: Goal) -> bool:
        """Admit a goal; a full queue drops it unless it outranks the weakest goal"""

        try:
            evicted = self.goals.admit(goal)
        except CapacityExceededError as e:
            logger.warning(
                "Cannot add goal - at max capacity and no lower priority goals",
                agent_id=self.agent_id,
                goal=goal.description,
                priority=goal.priority,
                lowest_priority=e.lowest_priority
            )
            self.metrics.increment_counter("planning.goal_dropped")
            return False

        if evicted is not None:
            self._events.log_goal_transition(
                self.agent_id, evicted.id, "active", evicted.status.value, evicted.description
            )
            self.metrics.increment_counter("planning.goal_evicted")
        self.metrics.set_gauge("planning.active_goals", len(self.goals))
        return True

    def current_goal(self) -> Optional[Goal]:
        return self.goals.current()

    def active_goals(self) -> List[Goal]:
        return self.goals.snapshot()

    def get_goal(self, goal_id: str) -> Optional[Goal]:
        return self.goals.get(goal_id)

    def complete_goal(self, goal_id: str) -> bool:
        goal = self.goals.get(goal_id)
        if goal is None:
            return False

        previous = goal.status
        changed = goal.set_status(GoalStatus.COMPLETED)
        self.goals.remove(goal_id)
        if not changed:
            return False

        logger.info("Completed goal", agent_id=self.agent_id, goal=goal.description)
        self._events.log_goal_transition(self.agent_id, goal.id, previous.value, goal.status.value, goal.description)
        self.memory_system.store(Memory(
            type=MemoryType.ACHIEVEMENT,
            content=f"Completed: {goal.description}",
            importance=0.9
        ))
        return True

    def fail_goal(self, goal_id: str, reason: str) -> bool:
        goal = self.goals.get(goal_id)
        if goal is None:
            return False

        previous = goal.status
        changed = goal.fail(reason)
        self.goals.remove(goal_id)
        if not changed:
            return False

        logger.warning("Failed goal", agent_id=self.agent_id, goal=goal.description, reason=reason)
        self._events.log_goal_transition(self.agent_id, goal.id, previous.value, goal.status.value, goal.description)
        self.memory_system.store(Memory(
            type=MemoryType.FAILURE,
            content=f"Failed: {goal.description} - {reason}",
            importance=0.6
        ))
        return True

    def clear_goals(self) -> None:
        self.goals.clear()

    async def drain(self) -> None:
        """Wait for planning cycles already dispatched"""

        with self._in_flight_lock:
            pending = list(self._in_flight)
        awaitables = [
            asyncio.wrap_future(handle) if isinstance(handle, concurrent.futures.Future) else handle
            for handle in pending
        ]
        # Crashes were already logged by the done callback
        await asyncio.gather(*awaitables, return_exceptions=True)

    @property
    def in_flight(self) -> int:
        with self._in_flight_lock:
            return len(self._in_flight)

    def stats(self) -> Dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "active_goals": len(self.goals),
            "ticks_since_last_plan": self.ticks_since_last_plan,
            "in_flight": self.in_flight
        }

    def _dispatch_replan(self, world_state: WorldState) -> None:
        # Context is rendered now so the cycle sees this tick's snapshot
        context = self.context_builder.build(world_state, self.goals.snapshot())
        coro = self._plan_from_context(context)

        if self.loop is not None:
            handle = asyncio.run_coroutine_threadsafe(coro, self.loop)
        else:
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                coro.close()
                logger.warning("No event loop for planning; skipping cycle", agent_id=self.agent_id)
                return
            handle = running.create_task(coro)

        with self._in_flight_lock:
            self._in_flight.add(handle)
        handle.add_done_callback(self._on_cycle_done)

    def _on_cycle_done(self, handle: Any) -> None:
        with self._in_flight_lock:
            self._in_flight.discard(handle)
        if handle.cancelled():
            return
        error = handle.exception()
        if error is not None:
            logger.error(
                "Planning cycle crashed",
                agent_id=self.agent_id,
                error=str(error),
                error_type=type(error).__name__
            )

    def _update_active_goals(self, world_state: WorldState) -> None:
        completed, retired = self.goals.advance(world_state)

        for goal in completed:
            logger.info("Goal completed", agent_id=self.agent_id, goal=goal.description)
        for goal in retired:
            logger.debug("Goal retired", agent_id=self.agent_id, goal=goal.description, status=goal.status.value)
        if completed or retired:
            self.metrics.set_gauge("planning.active_goals", len(self.goals))
