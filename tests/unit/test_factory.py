import httpx
import pytest

from aiplayer.domain.llm.claude_provider import ClaudeProvider
from aiplayer.domain.llm.errors import ProviderUnavailableError, UnknownProviderError
from aiplayer.domain.llm.factory import ProviderType, build_provider, create_provider
from aiplayer.domain.llm.ollama_provider import OllamaProvider
from aiplayer.domain.llm.openai_provider import OpenAIProvider
from aiplayer.domain.llm.response_cache import CachedLLMProvider
from aiplayer.infrastructure.config.settings import LLMSettings


def _tags_transport(*names):
    return httpx.MockTransport(
        lambda request: httpx.Response(200, json={"models": [{"name": name} for name in names]})
    )


@pytest.mark.parametrize("tag, expected", [
    ("openai", ProviderType.OPENAI),
    ("OpenAI", ProviderType.OPENAI),
    ("claude", ProviderType.CLAUDE),
    ("anthropic", ProviderType.CLAUDE),
    (" ollama ", ProviderType.OLLAMA),
    ("local", ProviderType.OLLAMA),
])
def test_parse_tag(tag, expected):
    assert ProviderType.parse(tag) == expected


@pytest.mark.parametrize("tag", ["gemini", "", "gpt"])
def test_unknown_tag_raises(tag):
    with pytest.raises(UnknownProviderError):
        ProviderType.parse(tag)


@pytest.mark.parametrize("provider, cls", [
    ("openai", OpenAIProvider),
    ("anthropic", ClaudeProvider),
    ("local", OllamaProvider),
])
def test_build_provider_selects_backend(provider, cls):
    built = build_provider(LLMSettings(provider=provider, api_key="k", model="custom"))

    assert isinstance(built, cls)
    assert built.model == "custom"


async def test_create_provider_wraps_in_cache():
    settings = LLMSettings(provider="ollama", cache_max_size=7)

    provider = await create_provider(settings, transport=_tags_transport("mistral:latest"))

    assert isinstance(provider, CachedLLMProvider)
    assert provider.max_size == 7
    assert await provider.is_available()
    await provider.aclose()


async def test_create_provider_without_cache():
    settings = LLMSettings(provider="ollama", enable_cache=False)

    provider = await create_provider(settings, transport=_tags_transport("mistral"))

    assert isinstance(provider, OllamaProvider)


async def test_create_provider_fails_fast_when_unavailable():
    settings = LLMSettings(provider="ollama", model="llama3")

    with pytest.raises(ProviderUnavailableError):
        await create_provider(settings, transport=_tags_transport("mistral"))


async def test_remote_provider_without_key_is_unavailable():
    with pytest.raises(ProviderUnavailableError):
        await create_provider(LLMSettings(provider="openai"))


def test_timeouts_follow_settings():
    tuned = build_provider(LLMSettings(provider="openai", api_key="k", timeout_seconds=3, read_timeout_seconds=12))
    local = build_provider(LLMSettings(provider="ollama"))

    assert tuned._timeout.connect == 3
    assert tuned._timeout.read == 12
    assert local._timeout.read == 120.0
