from typing import Callable, Dict, Optional
from enum import Enum
import time

import httpx
import structlog

from aiplayer.domain.llm.base_provider import LLMProvider
from aiplayer.domain.llm.claude_provider import ClaudeProvider
from aiplayer.domain.llm.errors import ProviderUnavailableError, UnknownProviderError
from aiplayer.domain.llm.ollama_provider import OllamaProvider
from aiplayer.domain.llm.openai_provider import OpenAIProvider
from aiplayer.domain.llm.response_cache import CachedLLMProvider
from aiplayer.infrastructure.config.settings import LLMSettings
from aiplayer.infrastructure.observability.logging import MetricsCollector

logger = structlog.get_logger(__name__)


class ProviderType(str, Enum):
    """Supported LLM backends"""
    OPENAI = "openai"
    CLAUDE = "claude"
    OLLAMA = "ollama"

    @classmethod
    def parse(cls, tag: str) -> "ProviderType":
        """Map a configuration tag (aliases included) to a backend"""

        normalized = (tag or "").strip().lower()
        provider_type = PROVIDER_ALIASES.get(normalized)
        if provider_type is None:
            raise UnknownProviderError(tag)
        return provider_type


PROVIDER_ALIASES: Dict[str, ProviderType] = {
    "openai": ProviderType.OPENAI,
    "claude": ProviderType.CLAUDE,
    "anthropic": ProviderType.CLAUDE,
    "ollama": ProviderType.OLLAMA,
    "local": ProviderType.OLLAMA,
}


def _build_openai(settings: LLMSettings, transport: Optional[httpx.AsyncBaseTransport]) -> LLMProvider:
    return OpenAIProvider(
        settings.api_key,
        model=settings.model,
        base_url=settings.base_url,
        connect_timeout=settings.timeout_seconds,
        read_timeout=settings.read_timeout_seconds,
        transport=transport
    )


def _build_claude(settings: LLMSettings, transport: Optional[httpx.AsyncBaseTransport]) -> LLMProvider:
    return ClaudeProvider(
        settings.api_key,
        model=settings.model,
        base_url=settings.base_url,
        connect_timeout=settings.timeout_seconds,
        read_timeout=settings.read_timeout_seconds,
        transport=transport
    )


def _build_ollama(settings: LLMSettings, transport: Optional[httpx.AsyncBaseTransport]) -> LLMProvider:
    return OllamaProvider(
        model=settings.model,
        base_url=settings.base_url,
        connect_timeout=settings.timeout_seconds,
        read_timeout=settings.read_timeout_seconds,
        transport=transport
    )


PROVIDER_BUILDERS: Dict[ProviderType, Callable[[LLMSettings, Optional[httpx.AsyncBaseTransport]], LLMProvider]] = {
    ProviderType.OPENAI: _build_openai,
    ProviderType.CLAUDE: _build_claude,
    ProviderType.OLLAMA: _build_ollama,
}


def build_provider(
    settings: LLMSettings,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> LLMProvider:
    """Construct the raw provider for the configured tag, without probing it"""

    provider_type = ProviderType.parse(settings.provider)
    return PROVIDER_BUILDERS[provider_type](settings, transport)


async def create_provider(
    settings: LLMSettings,
    metrics: Optional[MetricsCollector] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    clock: Callable[[], float] = time.monotonic
) -> LLMProvider:
    """Build, probe once and optionally wrap the provider in the response cache"""

    provider = build_provider(settings, transport)

    available = await provider.is_available()
    if not available:
        logger.error("LLM provider unavailable", provider=provider.name, model=provider.model)
        await provider.aclose()
        raise ProviderUnavailableError(provider.name)

    logger.info(
        "LLM provider ready",
        provider=provider.name,
        model=provider.model,
        cache_enabled=settings.enable_cache
    )

    if not settings.enable_cache:
        return provider

    return CachedLLMProvider(
        provider,
        available=True,
        max_size=settings.cache_max_size,
        ttl_minutes=settings.cache_ttl_minutes,
        metrics=metrics,
        clock=clock
    )
