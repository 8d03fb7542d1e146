from typing import Dict, Optional
import threading


NEUTRAL_RELATIONSHIP = 50
TRUSTED_RELATIONSHIP = 70
UNKNOWN_STRATEGY_RATE = 0.5


class StrategyRating:
    """Success/failure accumulator for one strategy"""

    def __init__(self):
        self.successes = 0
        self.failures = 0

    def record(self, success: bool) -> None:
        if success:
            self.successes += 1
        else:
            self.failures += 1

    @property
    def total_uses(self) -> int:
        return self.successes + self.failures

    @property
    def success_rate(self) -> float:
        total = self.total_uses
        return self.successes / total if total > 0 else UNKNOWN_STRATEGY_RATE


class SemanticMemory:
    """Durable facts, player relationships and strategy ratings"""

    def __init__(self):
        self.facts: Dict[str, str] = {}
        self.player_relationships: Dict[str, int] = {}
        self.strategy_ratings: Dict[str, StrategyRating] = {}
        self._lock = threading.RLock()

    def learn(self, key: str, value: str) -> None:
        with self._lock:
            self.facts[key] = value

    def retrieve(self, key: str) -> Optional[str]:
        with self._lock:
            return self.facts.get(key)

    def knows(self, key: str) -> bool:
        with self._lock:
            return key in self.facts

    def update_relationship(self, player_name: str, delta: int) -> int:
        """Apply a signed delta, clamp to [0, 100] and return the new score"""

        with self._lock:
            current = self.player_relationships.get(player_name, NEUTRAL_RELATIONSHIP)
            updated = max(0, min(100, current + delta))
            self.player_relationships[player_name] = updated
            return updated

    def get_relationship(self, player_name: str) -> int:
        with self._lock:
            return self.player_relationships.get(player_name, NEUTRAL_RELATIONSHIP)

    def is_trusted(self, player_name: str) -> bool:
        return self.get_relationship(player_name) >= TRUSTED_RELATIONSHIP

    def update_strategy_rating(self, strategy: str, success: bool) -> None:
        with self._lock:
            rating = self.strategy_ratings.setdefault(strategy, StrategyRating())
            rating.record(success)

    def get_strategy_rating(self, strategy: str) -> float:
        with self._lock:
            rating = self.strategy_ratings.get(strategy)
            return rating.success_rate if rating else UNKNOWN_STRATEGY_RATE

    def get_strategy_usage_count(self, strategy: str) -> int:
        with self._lock:
            rating = self.strategy_ratings.get(strategy)
            return rating.total_uses if rating else 0

    def all_facts(self) -> Dict[str, str]:
        with self._lock:
            return dict(self.facts)

    def all_relationships(self) -> Dict[str, int]:
        with self._lock:
            return dict(self.player_relationships)

    def fact_count(self) -> int:
        with self._lock:
            return len(self.facts) + len(self.player_relationships) + len(self.strategy_ratings)

    def clear(self) -> None:
        with self._lock:
            self.facts.clear()
            self.player_relationships.clear()
            self.strategy_ratings.clear()
