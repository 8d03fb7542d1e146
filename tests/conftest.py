from typing import List, Optional
from datetime import timedelta

import pytest
import structlog

from aiplayer.domain.context.memory.memory_system import MemorySystem
from aiplayer.domain.llm.base_provider import LLMProvider
from aiplayer.domain.llm.options import LLMOptions
from aiplayer.domain.models.memory import Memory, MemoryType, utcnow


PLAN_REPLY = (
    "THOUGHT: It is getting dark and I have no shelter.\n"
    "GOAL: Build a small shelter near the river\n"
    "PRIORITY: 7\n"
    "TASKS:\n"
    "1. Collect 20 wood\n"
    "2. Craft planks\n"
    "3. Build walls"
)


class ScriptedProvider(LLMProvider):
    """In-process provider replaying canned replies"""

    def __init__(
        self,
        responses: Optional[List[str]] = None,
        error: Optional[Exception] = None,
        available: bool = True,
        model: str = "scripted-model"
    ):
        super().__init__(name="scripted", model=model, base_url="http://scripted.invalid")
        self.responses = list(responses or [PLAN_REPLY])
        self.error = error
        self.available = available
        self.calls: List[tuple] = []
        self.probes = 0

    async def complete(self, prompt: str, options: Optional[LLMOptions] = None) -> str:
        self.calls.append((prompt, options))
        if self.error is not None:
            raise self.error
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]

    async def is_available(self) -> bool:
        self.probes += 1
        return self.available


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def aged_memory(
    content: str,
    importance: float,
    age: timedelta,
    memory_type: MemoryType = MemoryType.OBSERVATION
) -> Memory:
    return Memory(type=memory_type, content=content, importance=importance, timestamp=utcnow() - age)


@pytest.fixture
def memory_system():
    return MemorySystem(max_episodic_memories=1000, agent_id="test-agent")


@pytest.fixture
def scripted_provider():
    return ScriptedProvider()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def reset_structlog():
    """ApplicationContext.create reconfigures structlog globally"""
    yield
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()
