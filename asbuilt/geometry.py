"""2D sketch and 3D model generation from a Building.

The sketch holds one layer each for walls, doors and windows at a fixed
scale of 50 px/m. The model extrudes every room boundary from its floor
elevation to the ceiling:

- vertices: floor ring then ceiling ring per room
- faces: floor fan, ceiling fan, one quad per wall
- normals: one unit normal per face, from its first three vertices
"""
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np

from .building import Building, Floor, Point2D, Point3D, Room, point_distance
from .faults import SensorFault, now_ms


def convert_value(v):
    """Convert numpy types (recursively) to Python native types."""
    if isinstance(v, (np.bool_,)):
        return bool(v)
    elif isinstance(v, np.integer):
        return int(v)
    elif isinstance(v, np.floating):
        return float(v)
    elif isinstance(v, np.ndarray):
        return v.tolist()
    elif isinstance(v, dict):
        return {k: convert_value(vv) for k, vv in v.items()}
    elif isinstance(v, (list, tuple)):
        return [convert_value(vv) for vv in v]
    return v


@dataclass
class ViewBox:
    min_x: float = 0.0
    min_y: float = 0.0
    width: float = 0.0
    height: float = 0.0


@dataclass
class Layer:
    """Drawing layer; ``data`` holds plain dicts."""
    id: str
    name: str
    type: str
    data: List[Dict[str, Any]] = field(default_factory=list)
    visible: bool = True
    locked: bool = False
    opacity: float = 1.0


@dataclass
class Sketch2D:
    id: str
    floor_level: int
    view_box: ViewBox
    layers: List[Layer]
    scale: float = 50.0  # pixels per meter
    rotation: float = 0.0

    def layer(self, layer_type: str) -> Optional[Layer]:
        for layer in self.layers:
            if layer.type == layer_type:
                return layer
        return None


@dataclass
class Model3D:
    id: str
    vertices: List[Point3D] = field(default_factory=list)
    faces: List[List[int]] = field(default_factory=list)
    normals: List[Point3D] = field(default_factory=list)
    bounding_box: Dict[str, Point3D] = field(default_factory=dict)


@dataclass
class RoomLabel:
    room_id: str
    text: str
    position: Point2D
    area_m2: float
    floor_level: int = 0


@dataclass
class Dimension:
    start: Point2D
    end: Point2D
    length_m: float
    room_id: str = ""
    floor_level: int = 0


@dataclass
class SketchResult:
    """Renderable projections of a building plus summary metadata."""
    sketch: Sketch2D
    model: Model3D
    labels: List[RoomLabel] = field(default_factory=list)
    dimensions: List[Dimension] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return convert_value(asdict(self))


def face_normal(a: Point3D, b: Point3D, c: Point3D) -> Point3D:
    """Unit normal of triangle abc; zero vector when degenerate."""
    a, b, c = np.asarray(a, float), np.asarray(b, float), np.asarray(c, float)
    n = np.cross(b - a, c - a)
    length = np.linalg.norm(n)
    if length < 1e-12:
        return (0.0, 0.0, 0.0)
    n = n / length
    return (float(n[0]), float(n[1]), float(n[2]))


@dataclass
class GeometryBuilder:
    """Build Sketch2D, Model3D and annotations for a building."""

    scale: float = 50.0
    rotation: float = 0.0

    def _floors(self, building: Building, floor_level: Optional[int] = None) -> List[Floor]:
        if floor_level is None:
            return list(building.floors)
        return [f for f in building.floors if f.level == floor_level]

    def _rooms(self, building: Building, floor_level: Optional[int] = None) -> Iterable[Room]:
        for floor in self._floors(building, floor_level):
            yield from floor.rooms

    def view_box(self, points: List[Point2D]) -> ViewBox:
        """Bounding box of the given points; all zeros when empty."""
        if not points:
            return ViewBox()
        xy = np.asarray(points, dtype=float)
        lo = xy.min(axis=0)
        hi = xy.max(axis=0)
        return ViewBox(
            min_x=float(lo[0]), min_y=float(lo[1]),
            width=float(hi[0] - lo[0]), height=float(hi[1] - lo[1]),
        )

    def build_sketch(self, building: Building, floor_level: Optional[int] = None) -> Sketch2D:
        """Walls, doors and windows of one floor (or all floors when None)."""
        walls, doors, windows, points = [], [], [], []

        for room in self._rooms(building, floor_level):
            corners = [tuple(c) for c in room.boundary.corners]
            points.extend(corners)
            walls.append({
                'room_id': room.id,
                'floor_level': room.floor_level,
                'points': corners,
                'height': room.ceiling_height,
            })
            for door in room.doors:
                doors.append({
                    'room_id': room.id,
                    'start': tuple(door.start),
                    'end': tuple(door.end),
                    'width': door.width,
                    'is_open': door.is_open,
                })
            for window in room.windows:
                windows.append({
                    'room_id': room.id,
                    'start': tuple(window.start),
                    'end': tuple(window.end),
                    'width': window.width,
                    'sill_height': window.sill_height,
                })

        return Sketch2D(
            id=f"sketch_{building.id}",
            floor_level=floor_level if floor_level is not None else 0,
            view_box=self.view_box(points),
            layers=[
                Layer(id='walls', name='Walls', type='walls', data=walls),
                Layer(id='doors', name='Doors', type='doors', data=doors),
                Layer(id='windows', name='Windows', type='windows', data=windows),
            ],
            scale=self.scale,
            rotation=self.rotation,
        )

    def build_model(self, building: Building) -> Model3D:
        """Extrude each room boundary from floor elevation to ceiling."""
        vertices: List[Point3D] = []
        faces: List[List[int]] = []

        for floor in building.floors:
            base = floor.elevation_m
            for room in floor.rooms:
                corners = list(room.boundary.corners)
                n = len(corners)
                top = base + room.ceiling_height
                start = len(vertices)

                vertices.extend((float(x), float(y), base) for x, y in corners)
                vertices.extend((float(x), float(y), top) for x, y in corners)

                for i in range(2, n):
                    faces.append([start, start + i - 1, start + i])
                    faces.append([start + n, start + n + i - 1, start + n + i])

                for i in range(n):
                    nxt = (i + 1) % n
                    faces.append([start + i, start + nxt, start + n + nxt, start + n + i])

        normals = [face_normal(vertices[f[0]], vertices[f[1]], vertices[f[2]]) for f in faces]

        if vertices:
            v = np.asarray(vertices, dtype=float)
            lo, hi = v.min(axis=0), v.max(axis=0)
            bounding_box = {'min': tuple(float(c) for c in lo), 'max': tuple(float(c) for c in hi)}
        else:
            bounding_box = {'min': (0.0, 0.0, 0.0), 'max': (0.0, 0.0, 0.0)}

        return Model3D(
            id=f"model_{building.id}",
            vertices=vertices,
            faces=faces,
            normals=normals,
            bounding_box=bounding_box,
        )

    def build_labels(self, building: Building) -> List[RoomLabel]:
        labels = []
        for room in building.rooms():
            area = room.boundary.area
            labels.append(RoomLabel(
                room_id=room.id,
                text=f"{room.id} ({area:.1f} m²)",
                position=room.boundary.centroid,
                area_m2=area,
                floor_level=room.floor_level,
            ))
        return labels

    def build_dimensions(self, building: Building) -> List[Dimension]:
        dimensions = []
        for room in building.rooms():
            for start, end in room.boundary.edges():
                dimensions.append(Dimension(
                    start=tuple(start),
                    end=tuple(end),
                    length_m=point_distance(start, end),
                    room_id=room.id,
                    floor_level=room.floor_level,
                ))
        return dimensions

    def count_points(self, building: Building) -> int:
        """Boundary corner count over all rooms."""
        return sum(len(room.boundary.corners) for room in building.rooms())

    def build_result(
        self,
        building: Building,
        faults: Iterable[SensorFault] = (),
        partial: bool = False,
        extra_metadata: Optional[Dict[str, Any]] = None,
    ) -> SketchResult:
        """Assemble sketch, model, annotations and summary metadata.

        A partial result (mid-session snapshot) carries accuracy 0.5, a
        completed one 1.0.
        """
        metadata = {
            'generated_ms': now_ms(),
            'point_count': self.count_points(building),
            'room_count': building.room_count,
            'floor_count': building.floor_count,
            'accuracy': 0.5 if partial else 1.0,
            'partial': partial,
        }
        if extra_metadata:
            metadata.update(extra_metadata)

        return SketchResult(
            sketch=self.build_sketch(building),
            model=self.build_model(building),
            labels=self.build_labels(building),
            dimensions=self.build_dimensions(building),
            errors=[f.to_dict() for f in faults],
            metadata=metadata,
        )
