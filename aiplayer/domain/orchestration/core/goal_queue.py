from typing import Dict, List, Optional, Tuple
from collections import OrderedDict, deque
import threading

from aiplayer.domain.llm.errors import CapacityExceededError
from aiplayer.domain.models.goal import Goal, GoalStatus
from aiplayer.domain.models.world_state import WorldState


FINISHED_HISTORY_SIZE = 50  # late executor reports still find their goal


class GoalQueue:
    """Bounded active-goal queue with priority-based admission.

    `all_goals` indexes only goals still in the queue. Goals that leave it
    (evicted, completed, failed or removed) move to a small LRU history so a
    late lookup by id still resolves, while memory stays bounded.
    """

    def __init__(self, max_size: int = 5, history_size: int = FINISHED_HISTORY_SIZE):
        self.max_size = max_size
        self.history_size = history_size
        self.active: deque = deque()
        self.all_goals: Dict[str, Goal] = {}
        self.finished: "OrderedDict[str, Goal]" = OrderedDict()
        self._lock = threading.Lock()

    def admit(self, goal: Goal) -> Optional[Goal]:
        """Push a goal to the front, returning the evicted goal if any.

        When full, the lowest-priority goal is evicted (and abandoned) only if the
        new goal strictly outranks it; otherwise CapacityExceededError is raised
        and the queue is left unchanged.
        """

        evicted = None
        with self._lock:
            if len(self.active) >= self.max_size:
                lowest = min(self.active, key=lambda g: g.priority)
                if lowest.priority >= goal.priority:
                    raise CapacityExceededError(goal, lowest.priority)
                self._retire_locked(lowest)
                evicted = lowest

            self.active.appendleft(goal)
            self.all_goals[goal.id] = goal

        if evicted is not None:
            evicted.set_status(GoalStatus.ABANDONED)
        return evicted

    def get(self, goal_id: str) -> Optional[Goal]:
        with self._lock:
            goal = self.all_goals.get(goal_id)
            if goal is None:
                goal = self.finished.get(goal_id)
            return goal

    def remove(self, goal_id: str) -> Optional[Goal]:
        """Drop from the active queue; the goal stays briefly known by id"""

        with self._lock:
            goal = self.all_goals.get(goal_id)
            if goal is None:
                return self.finished.get(goal_id)
            self._retire_locked(goal)
            return goal

    def snapshot(self) -> List[Goal]:
        with self._lock:
            return list(self.active)

    def current(self) -> Optional[Goal]:
        """First goal still pending or in progress"""

        for goal in self.snapshot():
            if goal.is_active:
                return goal
        return None

    def advance(self, world_state: Optional[WorldState] = None) -> Tuple[List[Goal], List[Goal]]:
        """Move pending goals to in-progress and retire finished ones.

        Returns (completed, retired) where retired holds goals removed because
        they were failed or abandoned from outside.
        """

        completed: List[Goal] = []
        retired: List[Goal] = []

        for goal in self.snapshot():
            if goal.status == GoalStatus.PENDING:
                goal.set_status(GoalStatus.IN_PROGRESS)

            if goal.is_satisfied_by(world_state):
                goal.set_status(GoalStatus.COMPLETED)

            if goal.status == GoalStatus.COMPLETED:
                completed.append(goal)
            elif goal.status in (GoalStatus.FAILED, GoalStatus.ABANDONED):
                retired.append(goal)

        finished = completed + retired
        if finished:
            with self._lock:
                for goal in finished:
                    if goal.id in self.all_goals:
                        self._retire_locked(goal)
        return completed, retired

    def clear(self) -> None:
        with self._lock:
            self.active.clear()
            self.all_goals.clear()
            self.finished.clear()

    def _retire_locked(self, goal: Goal) -> None:
        if goal in self.active:
            self.active.remove(goal)
        self.all_goals.pop(goal.id, None)

        self.finished[goal.id] = goal
        self.finished.move_to_end(goal.id)
        while len(self.finished) > self.history_size:
            self.finished.popitem(last=False)

    def __len__(self) -> int:
        with self._lock:
            return len(self.active)
