"""Building model produced by a mapping session.

The ``Building`` aggregate is mutated by the room mapper while a session is
running and frozen when the session completes. Frozen objects reject
attribute assignment and hold their collections as tuples.
"""
from __future__ import annotations

import copy
import math
from dataclasses import dataclass, field, asdict, FrozenInstanceError
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

Point2D = Tuple[float, float]
Point3D = Tuple[float, float, float]


class _Freezable:
    """Mixin that makes a mutable dataclass read-only after ``freeze()``."""

    _frozen = False

    def __setattr__(self, name: str, value: Any) -> None:
        if self._frozen:
            raise FrozenInstanceError(f"cannot assign to field {name!r} of a completed {type(self).__name__}")
        super().__setattr__(name, value)

    def _freeze_fields(self, **values: Any) -> None:
        for name, value in values.items():
            object.__setattr__(self, name, value)
        object.__setattr__(self, "_frozen", True)

    @property
    def frozen(self) -> bool:
        return self._frozen


def polygon_area(points: Sequence[Point2D]) -> float:
    """Unsigned shoelace area."""
    if len(points) < 3:
        return 0.0
    xy = np.asarray(points, dtype=float)
    x, y = xy[:, 0], xy[:, 1]
    return float(abs(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))) / 2.0)


def polygon_centroid(points: Sequence[Point2D]) -> Point2D:
    """Mean of the corner points."""
    if not points:
        return (0.0, 0.0)
    xy = np.asarray(points, dtype=float)
    cx, cy = xy.mean(axis=0)
    return (float(cx), float(cy))


def point_distance(p1: Sequence[float], p2: Sequence[float]) -> float:
    return math.hypot(p2[0] - p1[0], p2[1] - p1[1])


@dataclass
class Boundary(_Freezable):
    """Room outline: ordered corners (clockwise) and ceiling height."""
    corners: List[Point2D]
    height: float

    @property
    def centroid(self) -> Point2D:
        return polygon_centroid(self.corners)

    @property
    def area(self) -> float:
        return polygon_area(self.corners)

    def edges(self) -> Iterator[Tuple[Point2D, Point2D]]:
        """Consecutive corner pairs, closing back to the first corner."""
        n = len(self.corners)
        for i in range(n):
            yield self.corners[i], self.corners[(i + 1) % n]

    def freeze(self) -> None:
        self._freeze_fields(corners=tuple(self.corners))


@dataclass
class Door(_Freezable):
    """Door opening between two points on a wall."""
    start: Point2D
    end: Point2D
    is_open: bool = True

    @property
    def width(self) -> float:
        return point_distance(self.start, self.end)

    def freeze(self) -> None:
        self._freeze_fields()


@dataclass
class Window(_Freezable):
    """Window opening between two points on a wall."""
    start: Point2D
    end: Point2D
    sill_height: float = 0.0

    @property
    def width(self) -> float:
        return point_distance(self.start, self.end)

    def freeze(self) -> None:
        self._freeze_fields()


@dataclass
class Room(_Freezable):
    """Room on one floor."""
    id: str
    floor_level: int
    boundary: Boundary
    doors: List[Door] = field(default_factory=list)
    windows: List[Window] = field(default_factory=list)
    ceiling_height: float = 0.0
    entry_position: Point3D = (0.0, 0.0, 0.0)  # dead-reckoned position when the room was entered
    created_ms: float = 0.0
    detections: int = 1  # boundary detections merged into this room

    @property
    def centroid(self) -> Point2D:
        return self.boundary.centroid

    def freeze(self) -> None:
        self.boundary.freeze()
        for opening in [*self.doors, *self.windows]:
            opening.freeze()
        self._freeze_fields(doors=tuple(self.doors), windows=tuple(self.windows))


@dataclass
class Floor(_Freezable):
    """One storey of the building."""
    level: int
    elevation_m: float = 0.0
    rooms: List[Room] = field(default_factory=list)

    def freeze(self) -> None:
        for room in self.rooms:
            room.freeze()
        self._freeze_fields(rooms=tuple(self.rooms))


@dataclass
class GeoLocation(_Freezable):
    latitude: float
    longitude: float
    elevation_m: float

    def freeze(self) -> None:
        self._freeze_fields()


@dataclass
class Building(_Freezable):
    """Root aggregate of a mapping session."""
    id: str
    name: Optional[str] = None
    location: Optional[GeoLocation] = None  # pending until the first valid GNSS fix
    floors: List[Floor] = field(default_factory=list)

    def get_floor(self, level: int) -> Optional[Floor]:
        for floor in self.floors:
            if floor.level == level:
                return floor
        return None

    def ensure_floor(self, level: int, elevation_m: float = 0.0) -> Floor:
        """Return the floor at ``level``, creating it if needed."""
        floor = self.get_floor(level)
        if floor is None:
            floor = Floor(level=level, elevation_m=elevation_m)
            self.floors.append(floor)
            self.floors.sort(key=lambda f: f.level)
        return floor

    def rooms(self) -> Iterator[Room]:
        for floor in self.floors:
            yield from floor.rooms

    def find_room(self, room_id: str) -> Optional[Room]:
        for room in self.rooms():
            if room.id == room_id:
                return room
        return None

    @property
    def room_count(self) -> int:
        return sum(len(f.rooms) for f in self.floors)

    @property
    def floor_count(self) -> int:
        return len(self.floors)

    def snapshot(self) -> 'Building':
        """Deep, unfrozen copy for read-only projections of an in-progress session."""
        return copy.deepcopy(self)

    def freeze(self) -> None:
        for floor in self.floors:
            floor.freeze()
        if self.location is not None:
            self.location.freeze()
        self._freeze_fields(floors=tuple(self.floors))

    def to_dict(self) -> dict:
        return asdict(self)


class TransitionKind(str, Enum):
    DOOR = "door"
    PASSAGE = "passage"
    FLOOR_CHANGE = "floor_change"


@dataclass(frozen=True)
class Transition:
    """Inspector's move from one room to another."""
    kind: TransitionKind
    from_room_id: str
    from_floor: int
    to_room_id: str
    to_floor: int
    points: Tuple[Point3D, ...] = ()
    timestamp_ms: float = 0.0


@dataclass(frozen=True)
class BuildingMap:
    """Result of a completed mapping session."""
    building: Building
    transitions: Tuple[Transition, ...]
    completed_ms: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)
