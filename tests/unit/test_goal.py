"""
Unit tests for the Goal/Task state machine and the bounded goal queue
"""
import pytest

from aiplayer.domain.llm.errors import CapacityExceededError
from aiplayer.domain.models.goal import Goal, GoalStatus, GoalType, Task, TaskStatus
from aiplayer.domain.models.world_state import Vec3, WorldState
from aiplayer.domain.orchestration.core.goal_queue import GoalQueue


def _world(y: float = 64.0) -> WorldState:
    return WorldState(position=Vec3(x=0, y=y, z=0))


class TestGoal:

    @pytest.mark.parametrize("raw, expected", [(0, 1), (-3, 1), (1, 1), (7, 7), (10, 10), (42, 10), ("9", 9), ("high", 5)])
    def test_priority_is_clamped(self, raw, expected):
        assert Goal(description="x", priority=raw).priority == expected

    def test_terminal_status_is_final(self):
        goal = Goal(description="Mine iron")

        assert goal.set_status(GoalStatus.IN_PROGRESS)
        assert goal.set_status(GoalStatus.COMPLETED)
        assert goal.completed_at is not None

        assert not goal.set_status(GoalStatus.IN_PROGRESS)
        assert not goal.fail("too late")
        assert goal.status == GoalStatus.COMPLETED
        assert goal.failure_reason is None

    def test_assignment_keeps_invariants(self):
        goal = Goal(description="Mine iron")

        goal.priority = 99
        assert goal.priority == 10
        goal.priority = -4
        assert goal.priority == 1

        goal.status = GoalStatus.IN_PROGRESS
        assert goal.status == GoalStatus.IN_PROGRESS
        assert goal.set_status(GoalStatus.COMPLETED)

        goal.status = GoalStatus.PENDING
        assert goal.status == GoalStatus.COMPLETED
        assert not goal.is_active

    def test_fail_records_reason(self):
        goal = Goal(description="Mine iron")

        assert goal.fail("no pickaxe")

        assert goal.has_failed
        assert goal.failure_reason == "no pickaxe"
        assert goal.duration_seconds() >= 0.0

    def test_subgoals(self):
        parent = Goal(description="Build a house")
        walls = Goal(description="Build walls")
        roof = Goal(description="Build roof")
        parent.add_subgoal(walls)
        parent.add_subgoal(roof)

        assert parent.next_subgoal() is walls
        walls.set_status(GoalStatus.COMPLETED)
        assert parent.next_subgoal() is roof
        assert not parent.are_all_subgoals_complete()

        roof.set_status(GoalStatus.COMPLETED)
        assert parent.are_all_subgoals_complete()
        assert "2 complete" in parent.detailed_status()

    def test_completion_check(self):
        goal = Goal(description="Climb", completion_check=lambda ws: ws.position.y > 100)

        assert not goal.is_satisfied_by(None)
        assert not goal.is_satisfied_by(_world(64))
        assert goal.is_satisfied_by(_world(120))

    def test_player_requested(self):
        assert Goal(description="x", requested_by="Steve").is_player_requested
        assert not Goal(description="x").is_player_requested


class TestTask:

    def test_progress_and_cursor(self):
        task = Task(description="Chop", actions=["walk", "swing", "pick up", "store"])

        assert task.progress == 0
        assert task.current_action == "walk"
        task.advance()
        task.advance()

        assert task.progress == 50
        assert task.current_action == "pick up"
        assert not task.is_complete()

        task.advance()
        task.advance()
        assert task.progress == 100
        assert task.current_action is None
        assert task.is_complete()

    def test_task_without_actions_is_done(self):
        task = Task(description="Think")
        assert task.progress == 100
        assert task.is_complete()
        assert not task.has_more_actions

    def test_success_condition_overrides_cursor(self):
        task = Task(description="Get high", success_condition=lambda ws: ws.position.y > 80)

        assert not task.is_complete(_world(64))
        assert task.is_complete(_world(90))

    def test_terminal_task_status_is_final(self):
        task = Task(description="Chop")
        assert task.fail("axe broke")
        assert not task.set_status(TaskStatus.IN_PROGRESS)
        assert task.failure_reason == "axe broke"
        assert not task.is_active


class TestGoalQueue:

    def _full_queue(self) -> GoalQueue:
        queue = GoalQueue(max_size=5)
        for priority in (3, 4, 5, 6, 7):
            queue.admit(Goal(description=f"p{priority}", priority=priority))
        return queue

    def test_higher_priority_evicts_lowest(self):
        queue = self._full_queue()

        evicted = queue.admit(Goal(description="p8", priority=8))

        assert evicted is not None
        assert evicted.priority == 3
        assert evicted.status == GoalStatus.ABANDONED
        assert sorted(g.priority for g in queue.snapshot()) == [4, 5, 6, 7, 8]
        assert queue.snapshot()[0].description == "p8"

    def test_lower_priority_is_rejected(self):
        queue = self._full_queue()

        with pytest.raises(CapacityExceededError) as exc_info:
            queue.admit(Goal(description="p2", priority=2))

        assert exc_info.value.lowest_priority == 3
        assert len(queue) == 5

    def test_equal_priority_is_rejected(self):
        queue = self._full_queue()
        with pytest.raises(CapacityExceededError):
            queue.admit(Goal(description="another p3", priority=3))

    def test_advance_moves_pending_and_retires_finished(self):
        queue = GoalQueue()
        done_when_high = Goal(description="Climb", completion_check=lambda ws: ws.position.y > 100)
        doomed = Goal(description="Doomed")
        ongoing = Goal(description="Ongoing", type=GoalType.EXPLORATION)
        for goal in (done_when_high, doomed, ongoing):
            queue.admit(goal)
        doomed.fail("lava")

        completed, retired = queue.advance(_world(120))

        assert completed == [done_when_high]
        assert retired == [doomed]
        assert ongoing.status == GoalStatus.IN_PROGRESS
        assert queue.snapshot() == [ongoing]
        assert queue.current() is ongoing
        assert queue.get(doomed.id) is doomed

    def test_finished_goals_do_not_accumulate(self):
        queue = GoalQueue(max_size=5, history_size=10)
        goals = []

        for i in range(2000):
            goal = Goal(description=f"g{i}", completion_check=lambda ws: True)
            queue.admit(goal)
            queue.advance(_world())
            goals.append(goal)

        assert len(queue) == 0
        assert queue.all_goals == {}
        assert len(queue.finished) == 10
        assert queue.get(goals[-1].id) is goals[-1]
        assert queue.get(goals[0].id) is None

    def test_active_and_evicted_goals_stay_reachable(self):
        queue = self._full_queue()
        lowest = min(queue.snapshot(), key=lambda g: g.priority)

        queue.admit(Goal(description="p9", priority=9))

        assert lowest.id not in queue.all_goals
        assert queue.get(lowest.id) is lowest
        assert all(queue.get(g.id) is g for g in queue.snapshot())
