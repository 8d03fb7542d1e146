import pytest

from aiplayer.domain.llm.errors import ProviderUnavailableError, RequestFailureError
from aiplayer.domain.llm.options import LLMOptions
from aiplayer.domain.llm.response_cache import CachedLLMProvider, cache_key
from aiplayer.infrastructure.observability.logging import MetricsCollector
from tests.conftest import ScriptedProvider


def _cached(provider, fake_clock, **kwargs):
    return CachedLLMProvider(provider, available=True, clock=fake_clock, **kwargs)


def test_cache_key_rounds_temperature_to_one_decimal():
    assert cache_key("m", None, "p", 0.71) == cache_key("m", None, "p", 0.70)
    assert cache_key("m", None, "p", 0.7) != cache_key("m", None, "p", 0.8)
    assert cache_key("m", None, "p", 0.7) == cache_key("m", "", "p", 0.7)
    assert cache_key("m", "sys", "p", 0.7) != cache_key("m", None, "p", 0.7)
    assert cache_key("m1", None, "p", 0.7) != cache_key("m2", None, "p", 0.7)


async def test_identical_requests_hit_the_cache(fake_clock):
    provider = ScriptedProvider(["first", "second"])
    metrics = MetricsCollector("test")
    cached = _cached(provider, fake_clock, metrics=metrics)
    options = LLMOptions.planning().with_system_prompt("sys")

    assert await cached.complete("hello", options) == "first"
    assert await cached.complete("hello", options.with_temperature(0.71)) == "first"

    assert len(provider.calls) == 1
    assert cached.stats() == {"hits": 1, "misses": 1, "size": 1, "max_size": 1000, "hit_rate": 0.5}
    assert metrics.get_counter("llm.cache.hit") == 1
    assert metrics.get_counter("llm.cache.miss") == 1


async def test_different_system_prompt_misses(fake_clock):
    provider = ScriptedProvider(["first", "second"])
    cached = _cached(provider, fake_clock)

    await cached.complete("hello", LLMOptions().with_system_prompt("a"))
    result = await cached.complete("hello", LLMOptions().with_system_prompt("b"))

    assert result == "second"
    assert cached.misses == 2


async def test_entries_expire_after_ttl(fake_clock):
    provider = ScriptedProvider(["first", "second"])
    cached = _cached(provider, fake_clock, ttl_minutes=1)

    await cached.complete("hello")
    fake_clock.advance(59)
    assert await cached.complete("hello") == "first"

    fake_clock.advance(61)
    assert await cached.complete("hello") == "second"
    assert len(provider.calls) == 2


async def test_least_recently_used_entry_is_evicted(fake_clock):
    provider = ScriptedProvider(["a", "b", "c", "a again"])
    cached = _cached(provider, fake_clock, max_size=2)

    await cached.complete("A")
    await cached.complete("B")
    await cached.complete("A")
    await cached.complete("C")

    assert cached.stats()["size"] == 2
    assert await cached.complete("A") == "a"
    assert await cached.complete("B") == "a again"


async def test_failures_are_not_cached(fake_clock):
    provider = ScriptedProvider(["ok"], error=RequestFailureError("scripted", "boom"))
    cached = _cached(provider, fake_clock)

    with pytest.raises(RequestFailureError):
        await cached.complete("hello")

    provider.error = None
    assert await cached.complete("hello") == "ok"
    assert cached.stats()["size"] == 1


async def test_unavailable_provider_refuses_without_calling_delegate():
    provider = ScriptedProvider(available=False)
    cached = await CachedLLMProvider.create(provider)

    assert provider.probes == 1
    assert not await cached.is_available()
    with pytest.raises(ProviderUnavailableError):
        await cached.complete("hello")
    with pytest.raises(ProviderUnavailableError):
        await cached.complete_batch(["hello"])
    assert provider.calls == []
    assert provider.probes == 1


async def test_batch_bypasses_cache(fake_clock):
    provider = ScriptedProvider(["x"])
    cached = _cached(provider, fake_clock)

    assert await cached.complete_batch(["one", "two"]) == ["x", "x"]
    assert await cached.complete_batch(["one"]) == ["x"]

    assert len(provider.calls) == 3
    assert cached.stats()["size"] == 0


async def test_clear_resets_entries_and_counters(fake_clock):
    cached = _cached(ScriptedProvider(["x"]), fake_clock)
    await cached.complete("hello")
    await cached.complete("hello")

    cached.clear()

    assert cached.stats() == {"hits": 0, "misses": 0, "size": 0, "max_size": 1000, "hit_rate": 0.0}
    assert cached.hit_rate == 0.0
