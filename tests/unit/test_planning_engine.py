"""
Unit tests for the planning engine: tick scheduling, LLM round trips,
goal admission and outcome memories
"""
import asyncio

import pytest

from aiplayer.domain.context.context_builder import PLANNING_SYSTEM_PROMPT, PlanningContextBuilder
from aiplayer.domain.llm.errors import RequestFailureError
from aiplayer.domain.llm.options import LLMOptions
from aiplayer.domain.models.goal import Goal, GoalStatus
from aiplayer.domain.models.memory import MemoryType
from aiplayer.domain.models.world_state import EntityInfo, Vec3, WorldState
from aiplayer.domain.orchestration.core.planning_engine import PlanningEngine
from aiplayer.infrastructure.observability.logging import MetricsCollector
from tests.conftest import ScriptedProvider


@pytest.fixture
def metrics():
    return MetricsCollector("test")


@pytest.fixture
def world():
    return WorldState(
        position=Vec3(x=10.25, y=64, z=-3.5),
        health=15,
        hunger=12.5,
        nearby_entities=[EntityInfo(name="Zombie", distance=8.0), EntityInfo(name="Steve", distance=3.0, is_player=True)]
    )


def _engine(provider, memory_system, metrics, **kwargs):
    return PlanningEngine(provider, memory_system, agent_id="tester", metrics=metrics, **kwargs)


class TestContextBuilder:

    def test_sections(self, memory_system, world):
        memory_system.store_observation("Saw a village", 0.8)
        goals = [Goal(description="Gather wood", priority=6)]

        context = PlanningContextBuilder(memory_system).build(world, goals)

        assert "## Current Status\nPosition: 10.2, 64.0, -3.5\nHealth: 15.0/20\nHunger: 12.5/20" in context
        assert "- Zombie (distance: 8.0)" in context
        assert "- [OBSERVATION] Saw a village" in context
        assert "- [PENDING] Gather wood (priority: 6)" in context
        assert context.index("## Current Goals") < context.index("## Task")
        assert "GOAL: <high-level goal description>" in context

    def test_empty_sections(self, memory_system):
        context = PlanningContextBuilder(memory_system).build(WorldState())

        assert "## Nearby Entities" not in context
        assert "## Current Goals" not in context
        assert "## Recent Memories\n(none)" in context

    def test_entities_capped_at_five(self, memory_system):
        entities = [EntityInfo(name=f"Cow{i}", distance=float(i)) for i in range(8)]
        context = PlanningContextBuilder(memory_system).build(WorldState(nearby_entities=entities))

        assert "Cow4" in context
        assert "Cow5" not in context


class TestReplan:

    async def test_successful_cycle_admits_goal_and_remembers(self, memory_system, metrics, world):
        provider = ScriptedProvider()
        engine = _engine(provider, memory_system, metrics)

        goal = await engine.replan(world)

        assert goal is not None
        assert goal.description == "Build a small shelter near the river"
        assert engine.active_goals() == [goal]
        assert metrics.get_counter("planning.goal_generated") == 1

        planning = memory_system.recall_by_type(MemoryType.PLANNING, 5)
        assert planning[0].content == "Planned: Build a small shelter near the river"
        assert planning[0].importance == pytest.approx(0.7)

        prompt, options = provider.calls[0]
        assert "## Current Status" in prompt
        assert options.system_prompt == PLANNING_SYSTEM_PROMPT
        assert options.max_tokens == 1500

    async def test_reply_without_goal_is_a_no_op(self, memory_system, metrics, world):
        engine = _engine(ScriptedProvider(["THOUGHT: nothing to do"]), memory_system, metrics)

        assert await engine.replan(world) is None

        assert engine.active_goals() == []
        assert memory_system.total_memories() == 0
        assert metrics.get_counter("planning.parse_failure") == 1

    async def test_provider_failure_is_a_no_op(self, memory_system, metrics, world):
        provider = ScriptedProvider(error=RequestFailureError("scripted", "boom", 500, "oops"))
        engine = _engine(provider, memory_system, metrics)

        assert await engine.replan(world) is None

        assert engine.active_goals() == []
        assert metrics.get_counter("planning.llm_failure") == 1


class TestAdmission:

    def _filled(self, memory_system, metrics):
        engine = _engine(ScriptedProvider(), memory_system, metrics)
        for priority in (3, 4, 5, 6, 7):
            assert engine.add_goal(Goal(description=f"p{priority}", priority=priority))
        return engine

    def test_higher_priority_evicts_lowest(self, memory_system, metrics):
        engine = self._filled(memory_system, metrics)
        lowest = min(engine.active_goals(), key=lambda g: g.priority)

        assert engine.add_goal(Goal(description="p8", priority=8))

        assert lowest.status == GoalStatus.ABANDONED
        assert sorted(g.priority for g in engine.active_goals()) == [4, 5, 6, 7, 8]
        assert metrics.get_counter("planning.goal_evicted") == 1

    def test_lower_priority_is_dropped(self, memory_system, metrics):
        engine = self._filled(memory_system, metrics)

        assert not engine.add_goal(Goal(description="p2", priority=2))

        assert sorted(g.priority for g in engine.active_goals()) == [3, 4, 5, 6, 7]
        assert metrics.get_counter("planning.goal_dropped") == 1


class TestOutcomes:

    def test_complete_goal_stores_achievement(self, memory_system, metrics):
        engine = _engine(ScriptedProvider(), memory_system, metrics)
        goal = Goal(description="Mine iron")
        engine.add_goal(goal)

        assert engine.complete_goal(goal.id)
        assert not engine.complete_goal(goal.id)

        assert goal.status == GoalStatus.COMPLETED
        assert engine.active_goals() == []
        achievement = memory_system.recall_by_type(MemoryType.ACHIEVEMENT, 5)
        assert [m.content for m in achievement] == ["Completed: Mine iron"]
        assert achievement[0].importance == pytest.approx(0.9)

    def test_fail_goal_stores_failure(self, memory_system, metrics):
        engine = _engine(ScriptedProvider(), memory_system, metrics)
        goal = Goal(description="Mine iron")
        engine.add_goal(goal)

        assert engine.fail_goal(goal.id, "no pickaxe")

        assert goal.failure_reason == "no pickaxe"
        failure = memory_system.recall_by_type(MemoryType.FAILURE, 5)
        assert [m.content for m in failure] == ["Failed: Mine iron - no pickaxe"]
        assert failure[0].importance == pytest.approx(0.6)

    def test_unknown_goal(self, memory_system, metrics):
        engine = _engine(ScriptedProvider(), memory_system, metrics)
        assert not engine.complete_goal("missing")
        assert not engine.fail_goal("missing", "x")


class TestUpdate:

    async def test_replans_every_interval_without_blocking(self, memory_system, metrics, world):
        provider = ScriptedProvider()
        engine = _engine(provider, memory_system, metrics, planning_interval=3)

        engine.update(world)
        engine.update(world)
        assert engine.in_flight == 0

        engine.update(world)
        assert engine.ticks_since_last_plan == 0
        await engine.drain()

        assert len(provider.calls) == 1
        assert engine.in_flight == 0
        assert engine.current_goal().description == "Build a small shelter near the river"

    async def test_update_moves_pending_goals_in_progress(self, memory_system, metrics, world):
        engine = _engine(ScriptedProvider(), memory_system, metrics, planning_interval=1000)
        goal = Goal(description="Climb", completion_check=lambda ws: ws.position.y > 100)
        engine.add_goal(goal)

        engine.update(world)
        assert goal.status == GoalStatus.IN_PROGRESS

        engine.update(world.with_updates(position=Vec3(x=0, y=120, z=0)))
        assert goal.status == GoalStatus.COMPLETED
        assert engine.active_goals() == []

    async def test_autonomous_generation_can_be_disabled(self, memory_system, metrics, world):
        provider = ScriptedProvider()
        engine = _engine(provider, memory_system, metrics, planning_interval=1, autonomous=False)

        engine.update(world)
        await engine.drain()

        assert provider.calls == []

    def test_update_without_event_loop_skips_cycle(self, memory_system, metrics, world):
        provider = ScriptedProvider()
        engine = _engine(provider, memory_system, metrics, planning_interval=1)

        engine.update(world)

        assert engine.in_flight == 0
        assert provider.calls == []

    async def test_update_from_worker_thread_uses_injected_loop(self, memory_system, metrics, world):
        provider = ScriptedProvider()
        engine = _engine(provider, memory_system, metrics, planning_interval=1, loop=asyncio.get_running_loop())

        await asyncio.to_thread(engine.update, world)
        await engine.drain()

        assert len(provider.calls) == 1
        assert len(engine.active_goals()) == 1

    async def test_no_overlapping_cycles(self, memory_system, metrics, world):
        release = asyncio.Event()

        class SlowProvider(ScriptedProvider):
            async def complete(self, prompt, options=None):
                await release.wait()
                return await super().complete(prompt, options)

        provider = SlowProvider()
        engine = _engine(provider, memory_system, metrics, planning_interval=1)

        engine.update(world)
        await asyncio.sleep(0)
        engine.update(world)
        engine.update(world)

        assert engine.in_flight == 1
        assert metrics.get_counter("planning.cycle_skipped") == 2

        release.set()
        await engine.drain()
        assert len(provider.calls) == 1

    async def test_custom_planning_options_keep_system_prompt(self, memory_system, metrics, world):
        provider = ScriptedProvider()
        engine = _engine(
            provider, memory_system, metrics,
            planning_options=LLMOptions.planning().with_temperature(0.2)
        )

        await engine.replan(world)

        _, options = provider.calls[0]
        assert options.temperature == pytest.approx(0.2)
        assert options.system_prompt == PLANNING_SYSTEM_PROMPT
