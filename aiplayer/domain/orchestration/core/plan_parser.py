from typing import List, Optional
from pydantic import BaseModel, Field
import re

import structlog

from aiplayer.domain.llm.errors import ParseFailureError
from aiplayer.domain.models.goal import DEFAULT_PRIORITY, Goal, GoalType, Task, clamp_priority

logger = structlog.get_logger(__name__)


# Checked in order; the first matching keyword wins
GOAL_TYPE_KEYWORDS = [
    (GoalType.SURVIVAL, ("food", "eat", "hunger")),
    (GoalType.RESOURCE, ("mine", "collect", "gather")),
    (GoalType.BUILDING, ("build", "craft", "construct")),
    (GoalType.COMBAT, ("fight", "kill", "attack")),
    (GoalType.EXPLORATION, ("explore", "find", "search")),
    (GoalType.SOCIAL, ("interact", "talk", "player")),
]

_LIST_MARKER = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")


class ParsedPlan(BaseModel):
    """Labelled fields pulled out of a planning reply"""
    thought: Optional[str] = None
    goal: str
    priority: int = DEFAULT_PRIORITY
    tasks: List[str] = Field(default_factory=list)
    goal_type: GoalType = GoalType.EXPLORATION


def extract_field(text: str, field_name: str) -> Optional[str]:
    """Value after FIELD: up to the next line starting with an upper-case label"""

    pattern = re.compile(
        rf"(?<![A-Z]){re.escape(field_name)}:[ \t]*(.*?)(?=\n[A-Z]+:|$)",
        re.DOTALL
    )
    match = pattern.search(text)
    if match is None:
        return None
    value = match.group(1).strip()
    return value or None


def parse_priority(raw: Optional[str]) -> int:
    if raw is None:
        return DEFAULT_PRIORITY
    match = re.match(r"\s*(-?\d+)", raw)
    if match is None:
        logger.warning("Failed to parse priority", raw=raw[:40])
        return DEFAULT_PRIORITY
    return clamp_priority(match.group(1))


def infer_goal_type(description: str) -> GoalType:
    lowered = description.lower()
    for goal_type, keywords in GOAL_TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return goal_type
    return GoalType.EXPLORATION


def split_tasks(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    lines = [_LIST_MARKER.sub("", line).strip() for line in raw.splitlines()]
    items = [line for line in lines if line]
    if len(items) == 1 and ";" in items[0]:
        items = [part.strip() for part in items[0].split(";") if part.strip()]
    return items


def parse_plan(response: Optional[str]) -> ParsedPlan:
    """Parse THOUGHT/GOAL/PRIORITY/TASKS; raises ParseFailureError without a GOAL"""

    if not response or not response.strip():
        raise ParseFailureError("Empty planning response", response)

    goal = extract_field(response, "GOAL")
    if goal is None:
        raise ParseFailureError("Planning response has no GOAL field", response)

    return ParsedPlan(
        thought=extract_field(response, "THOUGHT"),
        goal=goal,
        priority=parse_priority(extract_field(response, "PRIORITY")),
        tasks=split_tasks(extract_field(response, "TASKS")),
        goal_type=infer_goal_type(goal)
    )


def plan_to_goal(plan: ParsedPlan) -> Goal:
    goal = Goal(description=plan.goal, type=plan.goal_type, priority=plan.priority)
    for description in plan.tasks:
        goal.add_task(Task(description=description))
    if plan.thought:
        goal.metadata["thought"] = plan.thought
    return goal
