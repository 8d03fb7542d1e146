from typing import Dict, Any, Optional
import asyncio
import threading

import httpx
import structlog

from aiplayer.domain.communication.inbound import InboundMessageBus
from aiplayer.domain.llm.base_provider import LLMProvider
from aiplayer.domain.llm.factory import create_provider
from aiplayer.domain.orchestration.coordination.coordination_system import CoordinationSystem
from aiplayer.infrastructure.config.settings import Settings
from aiplayer.infrastructure.observability.logging import MetricsCollector, setup_logging

logger = structlog.get_logger(__name__)


class ApplicationContext:
    """Everything shared by the agents of one host, built once and passed by reference.

    Holds the settings, the metrics collector, the (cached) LLM provider, the
    coordination registry and the inbound message bus. `loop` is the event
    loop planning cycles are dispatched to when ticks arrive from a thread
    that has no running loop of its own.
    """

    def __init__(
        self,
        settings: Settings,
        provider: LLMProvider,
        metrics: Optional[MetricsCollector] = None,
        coordination: Optional[CoordinationSystem] = None,
        message_bus: Optional[InboundMessageBus] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None
    ):
        self.settings = settings
        self.provider = provider
        self.metrics = metrics or MetricsCollector("aiplayer")
        self.coordination = coordination or CoordinationSystem(settings.coordination, self.metrics)
        self.message_bus = message_bus or InboundMessageBus()
        self.loop = loop
        self.agents: Dict[str, Any] = {}
        self._lock = threading.Lock()

    @classmethod
    async def create(
        cls,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None
    ) -> "ApplicationContext":
        """Configure logging, validate settings, then build and probe the provider"""

        settings = settings or Settings()
        setup_logging(settings.logging.level, settings.logging.format, settings.service_name)
        settings.validate_for_runtime()

        metrics = MetricsCollector(settings.service_name)
        provider = await create_provider(settings.llm, metrics=metrics, transport=transport)

        logger.info(
            "Application context ready",
            provider=provider.name,
            model=provider.model,
            max_active_goals=settings.planning.max_active_goals
        )
        return cls(settings, provider, metrics=metrics, loop=loop)

    def attach(self, agent_id: str, runtime: Any) -> None:
        with self._lock:
            if agent_id in self.agents:
                raise ValueError(f"Agent already attached: {agent_id}")
            self.agents[agent_id] = runtime

    def detach(self, agent_id: str) -> Optional[Any]:
        with self._lock:
            return self.agents.pop(agent_id, None)

    def get_agent(self, agent_id: str) -> Optional[Any]:
        with self._lock:
            return self.agents.get(agent_id)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            agent_count = len(self.agents)
        return {
            "agents": agent_count,
            "provider": self.provider.get_info(),
            "coordination": self.coordination.stats(),
            "metrics": self.metrics.get_metrics_summary()
        }

    async def aclose(self) -> None:
        await self.provider.aclose()
        logger.info("Application context closed")
