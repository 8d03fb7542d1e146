from typing import Dict, Any, Callable, List, Optional
from collections import OrderedDict
import hashlib
import threading
import time

import structlog

from aiplayer.domain.llm.base_provider import LLMProvider
from aiplayer.domain.llm.errors import ProviderUnavailableError
from aiplayer.domain.llm.options import LLMOptions
from aiplayer.infrastructure.observability.logging import MetricsCollector

logger = structlog.get_logger(__name__)


DEFAULT_MAX_SIZE = 1000
DEFAULT_TTL_MINUTES = 60
STATS_LOG_EVERY_HITS = 10


def cache_key(model: str, system_prompt: Optional[str], prompt: str, temperature: float) -> str:
    """sha256 over model, system prompt, prompt and temperature to one decimal"""

    raw = f"{model}|{system_prompt or ''}|{prompt}|{temperature:.1f}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class CachedLLMProvider(LLMProvider):
    """Caching decorator over any provider, with LRU eviction and a fixed TTL"""

    def __init__(
        self,
        delegate: LLMProvider,
        available: bool,
        max_size: int = DEFAULT_MAX_SIZE,
        ttl_minutes: float = DEFAULT_TTL_MINUTES,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        super().__init__(name=delegate.name, model=delegate.model, base_url=delegate.base_url)
        self.delegate = delegate
        # Availability is fixed at construction, never re-probed per call
        self.available = available
        self.max_size = max_size
        self.ttl_seconds = ttl_minutes * 60.0
        self.metrics = metrics
        self._clock = clock
        self.cache: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        self.hits = 0
        self.misses = 0
        self._lock = threading.Lock()

    @classmethod
    async def create(
        cls,
        delegate: LLMProvider,
        max_size: int = DEFAULT_MAX_SIZE,
        ttl_minutes: float = DEFAULT_TTL_MINUTES,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.monotonic
    ) -> "CachedLLMProvider":
        """Probe the delegate once and wrap it"""

        available = await delegate.is_available()
        return cls(delegate, available, max_size=max_size, ttl_minutes=ttl_minutes, metrics=metrics, clock=clock)

    async def complete(self, prompt: str, options: Optional[LLMOptions] = None) -> str:
        if not self.available:
            raise ProviderUnavailableError(self.name, "flagged unavailable at creation")

        options = options or LLMOptions()
        key = cache_key(self.delegate.model, options.system_prompt, prompt, options.temperature)

        cached = self._get(key)
        if cached is not None:
            self._record_hit()
            return cached

        self._record_miss()
        # Only successful replies are stored
        result = await self.delegate.complete(prompt, options)
        self._put(key, result)
        return result

    async def complete_batch(self, prompts: List[str], options: Optional[LLMOptions] = None) -> List[str]:
        """Batches bypass the cache"""

        if not self.available:
            raise ProviderUnavailableError(self.name, "flagged unavailable at creation")
        return await self.delegate.complete_batch(prompts, options)

    async def is_available(self) -> bool:
        return self.available

    async def aclose(self) -> None:
        await self.delegate.aclose()

    def _get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self.cache.get(key)
            if entry is None:
                return None
            if self._clock() - entry["stored_at"] > self.ttl_seconds:
                del self.cache[key]
                return None
            self.cache.move_to_end(key)
            return entry["value"]

    def _put(self, key: str, value: str) -> None:
        with self._lock:
            self.cache[key] = {"value": value, "stored_at": self._clock()}
            self.cache.move_to_end(key)
            while len(self.cache) > self.max_size:
                self.cache.popitem(last=False)

    def _record_hit(self) -> None:
        with self._lock:
            self.hits += 1
            hits = self.hits
        if self.metrics:
            self.metrics.increment_counter("llm.cache.hit")
        if hits % STATS_LOG_EVERY_HITS == 0:
            logger.info("LLM cache stats", **self.stats())

    def _record_miss(self) -> None:
        with self._lock:
            self.misses += 1
        if self.metrics:
            self.metrics.increment_counter("llm.cache.miss")

    @property
    def hit_rate(self) -> float:
        with self._lock:
            total = self.hits + self.misses
            return self.hits / total if total > 0 else 0.0

    def clear(self) -> None:
        with self._lock:
            self.cache.clear()
            self.hits = 0
            self.misses = 0
        logger.info("LLM cache cleared", provider=self.name)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self.hits + self.misses
            return {
                "hits": self.hits,
                "misses": self.misses,
                "size": len(self.cache),
                "max_size": self.max_size,
                "hit_rate": self.hits / total if total > 0 else 0.0
            }

    def __str__(self) -> str:
        return f"CachedLLMProvider({self.delegate})"
