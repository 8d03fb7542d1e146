import pytest

from aiplayer.domain.llm.errors import ParseFailureError
from aiplayer.domain.models.goal import GoalType
from aiplayer.domain.orchestration.core.plan_parser import (
    extract_field,
    infer_goal_type,
    parse_plan,
    parse_priority,
    plan_to_goal,
    split_tasks,
)
from tests.conftest import PLAN_REPLY


def test_parse_full_reply():
    plan = parse_plan(PLAN_REPLY)

    assert plan.thought == "It is getting dark and I have no shelter."
    assert plan.goal == "Build a small shelter near the river"
    assert plan.priority == 7
    assert plan.tasks == ["Collect 20 wood", "Craft planks", "Build walls"]
    assert plan.goal_type == GoalType.BUILDING


def test_multiline_field_stops_at_next_label():
    reply = "THOUGHT: first line\nsecond line\nGOAL: Explore the cave\nPRIORITY: 4"

    assert extract_field(reply, "THOUGHT") == "first line\nsecond line"
    assert extract_field(reply, "GOAL") == "Explore the cave"


def test_empty_field_does_not_swallow_next_label():
    reply = "THOUGHT:\nGOAL: Explore the cave"

    assert extract_field(reply, "THOUGHT") is None
    assert extract_field(reply, "GOAL") == "Explore the cave"


@pytest.mark.parametrize("reply", [
    "",
    "   ",
    None,
    "THOUGHT: I am not sure\nPRIORITY: 3",
    "GOAL:   \nPRIORITY: 3",
])
def test_missing_goal_raises(reply):
    with pytest.raises(ParseFailureError):
        parse_plan(reply)


@pytest.mark.parametrize("raw, expected", [
    (None, 5),
    ("8", 8),
    ("9 (urgent)", 9),
    ("15", 10),
    ("0", 1),
    ("-4", 1),
    ("high", 5),
])
def test_parse_priority(raw, expected):
    assert parse_priority(raw) == expected


@pytest.mark.parametrize("description, expected", [
    ("Find food before nightfall", GoalType.SURVIVAL),
    ("Mine some iron ore", GoalType.RESOURCE),
    ("Construct a bridge", GoalType.BUILDING),
    ("Attack the zombie", GoalType.COMBAT),
    ("Explore the northern forest", GoalType.EXPLORATION),
    ("Talk to Steve", GoalType.SOCIAL),
    ("Wait for sunrise", GoalType.EXPLORATION),
])
def test_infer_goal_type(description, expected):
    assert infer_goal_type(description) == expected


def test_split_tasks_markers_and_semicolons():
    assert split_tasks("- dig\n* place torch\n2) go home") == ["dig", "place torch", "go home"]
    assert split_tasks("dig down; find diamonds; return") == ["dig down", "find diamonds", "return"]
    assert split_tasks(None) == []


def test_plan_to_goal_builds_tasks_and_keeps_thought():
    goal = plan_to_goal(parse_plan(PLAN_REPLY))

    assert goal.description == "Build a small shelter near the river"
    assert goal.priority == 7
    assert [task.description for task in goal.tasks] == ["Collect 20 wood", "Craft planks", "Build walls"]
    assert goal.metadata["thought"].startswith("It is getting dark")
