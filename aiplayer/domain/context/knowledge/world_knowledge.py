from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from enum import Enum
import structlog
import threading

from aiplayer.domain.context.memory.memory_system import MemorySystem
from aiplayer.domain.models.memory import Memory, MemoryType, utcnow
from aiplayer.domain.models.world_state import Vec3

logger = structlog.get_logger(__name__)


MAX_LANDMARKS = 100
MAX_RESOURCES_PER_TYPE = 50
RESOURCE_MERGE_DISTANCE = 5.0
SIGNIFICANT_RESOURCE_QUANTITY = 10


def _clamp_unit(value: Any) -> float:
    return max(0.0, min(1.0, float(value)))


class LandmarkType(str, Enum):
    """Kinds of navigational landmark"""
    VILLAGE = "village"
    STRUCTURE = "structure"
    PLAYER_BASE = "player_base"
    MEETING_POINT = "meeting_point"
    SPAWN_POINT = "spawn_point"
    PORTAL = "portal"
    FARM = "farm"
    MINE = "mine"
    WAYPOINT = "waypoint"
    NATURAL_FEATURE = "natural_feature"


class Landmark(BaseModel):
    name: str
    type: LandmarkType
    position: Vec3
    significance: float = 0.5
    discovered_at: datetime = Field(default_factory=utcnow)
    last_visited: datetime = Field(default_factory=utcnow)
    visit_count: int = 0

    @field_validator("significance", mode="before")
    @classmethod
    def clamp_significance(cls, value: Any) -> float:
        return _clamp_unit(value)

    def visit(self) -> None:
        self.last_visited = utcnow()
        self.visit_count += 1


class ResourceLocation(BaseModel):
    resource_type: str
    position: Vec3
    quantity: int = 0
    discovered_at: datetime = Field(default_factory=utcnow)
    last_seen: datetime = Field(default_factory=utcnow)

    def update_quantity(self, quantity: int) -> None:
        self.quantity = quantity
        self.last_seen = utcnow()


class DangerZone(BaseModel):
    description: str
    center: Vec3
    radius: float
    threat_level: float = 0.5
    identified_at: datetime = Field(default_factory=utcnow)

    @field_validator("threat_level", mode="before")
    @classmethod
    def clamp_threat(cls, value: Any) -> float:
        return _clamp_unit(value)

    def contains(self, position: Vec3) -> bool:
        return self.center.distance_to(position) < self.radius


class ExploredRegion(BaseModel):
    center: Vec3
    radius: float
    biome: str = "unknown"
    explored_at: datetime = Field(default_factory=utcnow)

    def contains(self, position: Vec3) -> bool:
        return self.center.distance_to(position) < self.radius


class KnowledgeSnapshot(BaseModel):
    """Persisted knowledge for one agent"""
    agent_id: str
    landmarks: List[Landmark] = Field(default_factory=list)
    resources: Dict[str, List[ResourceLocation]] = Field(default_factory=dict)
    saved_at: datetime = Field(default_factory=utcnow)


class WorldKnowledge:
    """Spatial knowledge: landmarks, resources, dangers and explored regions"""

    def __init__(self, memory_system: MemorySystem, agent_id: str = "agent"):
        self.memory_system = memory_system
        self.agent_id = agent_id
        self.landmarks: Dict[str, Landmark] = {}
        self.resources: Dict[str, List[ResourceLocation]] = {}
        self.danger_zones: Dict[str, DangerZone] = {}
        self.explored_regions: List[ExploredRegion] = []
        self.landmarks_discovered = 0
        self.resources_discovered = 0
        self.last_update: datetime = utcnow()
        self._lock = threading.RLock()

    def discover_landmark(
        self,
        name: str,
        position: Vec3,
        landmark_type: LandmarkType,
        significance: float
    ) -> Landmark:
        """Record a landmark, evicting the least significant one when full"""

        landmark = Landmark(name=name, type=landmark_type, position=position, significance=significance)

        with self._lock:
            if name not in self.landmarks and len(self.landmarks) >= MAX_LANDMARKS:
                self._remove_least_significant_landmark()
            self.landmarks[name] = landmark
            self.landmarks_discovered += 1
            self.last_update = utcnow()

        logger.info(
            "Discovered landmark",
            agent_id=self.agent_id,
            name=name,
            position=str(position),
            landmark_type=landmark_type.value
        )

        self.memory_system.store(Memory(
            type=MemoryType.DISCOVERY,
            content=f"Landmark discovered: {name} at {position} - {landmark_type.name}",
            importance=max(0.5, landmark.significance)
        ))
        return landmark

    def visit_landmark(self, name: str) -> Optional[Landmark]:
        with self._lock:
            landmark = self.landmarks.get(name)
            if landmark:
                landmark.visit()
            return landmark

    def discover_resource(self, resource_type: str, position: Vec3, quantity: int) -> ResourceLocation:
        """Record a resource find, merging with a known location within 5 blocks"""

        with self._lock:
            locations = self.resources.setdefault(resource_type, [])

            for existing in locations:
                if existing.position.distance_to(position) < RESOURCE_MERGE_DISTANCE:
                    existing.update_quantity(quantity)
                    return existing

            if len(locations) >= MAX_RESOURCES_PER_TYPE:
                oldest = min(locations, key=lambda r: r.last_seen)
                locations.remove(oldest)

            resource = ResourceLocation(resource_type=resource_type, position=position, quantity=quantity)
            locations.append(resource)
            self.resources_discovered += 1
            self.last_update = utcnow()

        logger.debug(
            "Discovered resource",
            agent_id=self.agent_id,
            resource_type=resource_type,
            position=str(position),
            quantity=quantity
        )

        if quantity > SIGNIFICANT_RESOURCE_QUANTITY:
            self.memory_system.store(Memory(
                type=MemoryType.DISCOVERY,
                content=f"Found {quantity} {resource_type} at {position}",
                importance=0.6
            ))
        return resource

    def register_danger_zone(self, name: str, position: Vec3, radius: float, threat: float) -> DangerZone:
        zone = DangerZone(description=name, center=position, radius=radius, threat_level=threat)

        with self._lock:
            self.danger_zones[self._danger_key(position)] = zone
            self.last_update = utcnow()

        logger.warning(
            "Danger zone registered",
            agent_id=self.agent_id,
            name=name,
            position=str(position),
            radius=radius,
            threat=zone.threat_level
        )

        self.memory_system.store(Memory(
            type=MemoryType.EVENT,
            content=f"Danger: {name} at {position} - avoid this area!",
            importance=max(0.7, zone.threat_level)
        ))
        return zone

    def mark_explored(self, center: Vec3, radius: float, biome: str = "unknown") -> ExploredRegion:
        region = ExploredRegion(center=center, radius=radius, biome=biome)
        with self._lock:
            self.explored_regions.append(region)

        logger.debug("Marked region as explored", agent_id=self.agent_id, center=str(center), radius=radius)
        return region

    def find_nearest_landmark(self, from_position: Vec3, landmark_type: LandmarkType) -> Optional[Landmark]:
        with self._lock:
            candidates = [l for l in self.landmarks.values() if l.type == landmark_type]
        if not candidates:
            return None
        return min(candidates, key=lambda l: l.position.distance_to(from_position))

    def find_nearest_resource(self, from_position: Vec3, resource_type: str) -> Optional[ResourceLocation]:
        """Nearest known location that still has some quantity"""

        with self._lock:
            candidates = [r for r in self.resources.get(resource_type, []) if r.quantity > 0]
        if not candidates:
            return None
        return min(candidates, key=lambda r: r.position.distance_to(from_position))

    def danger_at(self, position: Vec3) -> Optional[DangerZone]:
        with self._lock:
            zones = list(self.danger_zones.values())
        for zone in zones:
            if zone.contains(position):
                return zone
        return None

    def is_explored(self, position: Vec3) -> bool:
        with self._lock:
            regions = list(self.explored_regions)
        return any(region.contains(position) for region in regions)

    def all_landmarks(self) -> List[Landmark]:
        with self._lock:
            return list(self.landmarks.values())

    def landmarks_by_type(self, landmark_type: LandmarkType) -> List[Landmark]:
        with self._lock:
            return [l for l in self.landmarks.values() if l.type == landmark_type]

    def resource_locations(self, resource_type: str) -> List[ResourceLocation]:
        with self._lock:
            return list(self.resources.get(resource_type, []))

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "known_landmarks": len(self.landmarks),
                "known_resources": sum(len(r) for r in self.resources.values()),
                "known_dangers": len(self.danger_zones),
                "explored_regions": len(self.explored_regions),
                "total_landmarks_discovered": self.landmarks_discovered,
                "total_resources_discovered": self.resources_discovered
            }

    def export_snapshot(self) -> KnowledgeSnapshot:
        """Landmarks and resources in their persisted shape"""

        with self._lock:
            return KnowledgeSnapshot(
                agent_id=self.agent_id,
                landmarks=[l.model_copy() for l in self.landmarks.values()],
                resources={
                    kind: [r.model_copy() for r in locations]
                    for kind, locations in self.resources.items()
                }
            )

    def load_snapshot(self, snapshot: KnowledgeSnapshot) -> None:
        """Replace landmarks and resources with persisted data, without new memories"""

        with self._lock:
            self.landmarks = {l.name: l.model_copy() for l in snapshot.landmarks[-MAX_LANDMARKS:]}
            self.resources = {
                kind: [r.model_copy() for r in locations[-MAX_RESOURCES_PER_TYPE:]]
                for kind, locations in snapshot.resources.items()
            }
            self.last_update = utcnow()

        logger.info(
            "Loaded world knowledge",
            agent_id=self.agent_id,
            landmarks=len(snapshot.landmarks),
            resource_types=len(snapshot.resources)
        )

    def _remove_least_significant_landmark(self) -> None:
        if not self.landmarks:
            return
        weakest = min(self.landmarks.values(), key=lambda l: l.significance)
        del self.landmarks[weakest.name]
        logger.debug("Removed least significant landmark", agent_id=self.agent_id, name=weakest.name)

    @staticmethod
    def _danger_key(position: Vec3) -> str:
        block = position.block()
        return f"{int(block.x)}_{int(block.y)}_{int(block.z)}"
