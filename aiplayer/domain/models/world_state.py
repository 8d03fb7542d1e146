from typing import Any, Callable, List, Optional
from pydantic import BaseModel, ConfigDict, Field
import math


HOSTILE_ENTITY_NAMES = ("zombie", "skeleton", "creeper", "spider")


class Vec3(BaseModel):
    """A position in world coordinates"""
    model_config = ConfigDict(frozen=True)

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def distance_to(self, other: "Vec3") -> float:
        return math.sqrt(
            (self.x - other.x) ** 2 + (self.y - other.y) ** 2 + (self.z - other.z) ** 2
        )

    def block(self) -> "Vec3":
        """Position snapped to the containing block"""
        return Vec3(x=math.floor(self.x), y=math.floor(self.y), z=math.floor(self.z))

    def __str__(self) -> str:
        return f"({self.x:.1f}, {self.y:.1f}, {self.z:.1f})"


class EntityInfo(BaseModel):
    """A nearby entity or player as reported by perception"""
    model_config = ConfigDict(frozen=True)

    name: str
    distance: float
    position: Optional[Vec3] = None
    is_player: bool = False

    @property
    def is_hostile(self) -> bool:
        lowered = self.name.lower()
        return any(hostile in lowered for hostile in HOSTILE_ENTITY_NAMES)


class WorldState(BaseModel):
    """Immutable perception snapshot consumed by planning and task checks"""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    position: Vec3 = Field(default_factory=Vec3)
    health: float = 20.0
    hunger: float = 20.0
    nearby_entities: List[EntityInfo] = Field(default_factory=list)
    dimension: str = "overworld"
    danger_probe: Optional[Callable[[Vec3], bool]] = Field(None, exclude=True)
    known_probe: Optional[Callable[[Vec3], bool]] = Field(None, exclude=True)

    def is_dangerous(self, position: Vec3) -> bool:
        if self.danger_probe is None:
            return False
        return bool(self.danger_probe(position))

    def is_known(self, position: Vec3) -> bool:
        if self.known_probe is None:
            return False
        return bool(self.known_probe(position))

    def nearest_entities(self, limit: int = 5) -> List[EntityInfo]:
        return sorted(self.nearby_entities, key=lambda e: e.distance)[:limit]

    def hostile_entities(self) -> List[EntityInfo]:
        return [entity for entity in self.nearby_entities if entity.is_hostile]

    def players(self) -> List[EntityInfo]:
        return [entity for entity in self.nearby_entities if entity.is_player]

    def with_updates(self, **changes: Any) -> "WorldState":
        """Copy of this snapshot with some fields replaced"""
        return self.model_copy(update=changes)
