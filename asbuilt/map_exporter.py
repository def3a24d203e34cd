"""Export a SketchResult to files.

Formats:
- json: the full result (sketch, model, labels, dimensions, errors, metadata)
- geojson: room polygons and opening lines in local meters
- obj: the extruded 3D model
- dxf: the 2D plan for CAD software

DXF layers:
- WALLS: Room outlines as closed polylines
- DOORS: Door openings
- WINDOWS: Window openings
- ANNOTATIONS: Room labels and optional dimension annotations
"""
from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

import ezdxf

from .config import ExportConfig
from .geometry import Dimension, Model3D, RoomLabel, Sketch2D, SketchResult, convert_value

logger = logging.getLogger(__name__)


# Layer configuration
LAYER_WALLS = "WALLS"
LAYER_DOORS = "DOORS"
LAYER_WINDOWS = "WINDOWS"
LAYER_ANNOTATIONS = "ANNOTATIONS"

# Colors (AutoCAD Color Index)
COLOR_WALLS = 7  # White
COLOR_DOORS = 5  # Blue
COLOR_WINDOWS = 4  # Cyan
COLOR_ANNOTATIONS = 3  # Green

SUPPORTED_FORMATS = ("json", "geojson", "obj", "dxf")


@dataclass
class DxfPlanWriter:
    """Write a floor plan sketch to DXF.

    Parameters:
        include_dimensions: Whether to draw wall dimension annotations
        label_height: Text height for room labels in meters
        dimension_offset: Distance of dimension lines from the wall in meters
    """

    include_dimensions: bool = True
    label_height: float = 0.25  # meters
    dimension_offset: float = 0.5  # meters

    _doc: object = field(default=None, repr=False)
    _msp: object = field(default=None, repr=False)

    def __post_init__(self):
        """Initialize DXF document."""
        self._doc = ezdxf.new(dxfversion="R2010")
        self._msp = self._doc.modelspace()

        for name, color in (
            (LAYER_WALLS, COLOR_WALLS),
            (LAYER_DOORS, COLOR_DOORS),
            (LAYER_WINDOWS, COLOR_WINDOWS),
            (LAYER_ANNOTATIONS, COLOR_ANNOTATIONS),
        ):
            self._doc.layers.add(name, color=color, linetype="CONTINUOUS")

    def add_sketch(self, sketch: Sketch2D) -> None:
        """Add walls, doors and windows from the sketch layers."""
        walls = sketch.layer("walls")
        if walls is not None:
            for wall in walls.data:
                points = [tuple(p) for p in wall['points']]
                if len(points) >= 2:
                    self._msp.add_lwpolyline(points, close=True, dxfattribs={"layer": LAYER_WALLS})

        for layer_type, layer_name in (("doors", LAYER_DOORS), ("windows", LAYER_WINDOWS)):
            layer = sketch.layer(layer_type)
            if layer is None:
                continue
            for opening in layer.data:
                self._msp.add_line(
                    tuple(opening['start']),
                    tuple(opening['end']),
                    dxfattribs={"layer": layer_name},
                )

    def add_labels(self, labels: Sequence[RoomLabel]) -> None:
        for label in labels:
            self._msp.add_text(
                label.text,
                height=self.label_height,
                dxfattribs={
                    "layer": LAYER_ANNOTATIONS,
                    "insert": tuple(label.position),
                },
            )

    def add_dimension(
        self,
        p1: Tuple[float, float],
        p2: Tuple[float, float],
        offset: float = 0.5
    ) -> None:
        """Add a linear dimension annotation.

        Args:
            p1: Start point (x, y)
            p2: End point (x, y)
            offset: Distance to offset dimension line from points
        """
        dx = p2[0] - p1[0]
        dy = p2[1] - p1[1]
        length = math.sqrt(dx*dx + dy*dy)

        if length < 0.01:
            return

        # Perpendicular direction
        perp_x = -dy / length
        perp_y = dx / length

        d1 = (p1[0] + offset * perp_x, p1[1] + offset * perp_y)
        d2 = (p2[0] + offset * perp_x, p2[1] + offset * perp_y)

        # Extension lines
        self._msp.add_line(p1, d1, dxfattribs={"layer": LAYER_ANNOTATIONS})
        self._msp.add_line(p2, d2, dxfattribs={"layer": LAYER_ANNOTATIONS})

        # Dimension line
        self._msp.add_line(d1, d2, dxfattribs={"layer": LAYER_ANNOTATIONS})

        mid = ((d1[0] + d2[0]) / 2, (d1[1] + d2[1]) / 2)
        self._msp.add_text(
            f"{length:.2f}m",
            height=0.1,
            dxfattribs={
                "layer": LAYER_ANNOTATIONS,
                "insert": mid,
                "rotation": math.degrees(math.atan2(dy, dx)),
            },
        )

    def add_dimensions(self, dimensions: Sequence[Dimension]) -> None:
        if not self.include_dimensions:
            return
        for dim in dimensions:
            self.add_dimension(tuple(dim.start), tuple(dim.end), offset=self.dimension_offset)

    def save(self, path: Path | str) -> None:
        self._doc.saveas(path)


def _ring(points: Sequence[Sequence[float]]) -> List[List[float]]:
    ring = [[float(p[0]), float(p[1])] for p in points]
    if ring and ring[0] != ring[-1]:
        ring.append(list(ring[0]))
    return ring


def to_geojson(result: SketchResult) -> dict:
    """FeatureCollection of rooms (Polygon) and openings (LineString)."""
    features = []
    walls = result.sketch.layer("walls")
    for wall in (walls.data if walls else []):
        features.append({
            "type": "Feature",
            "geometry": {"type": "Polygon", "coordinates": [_ring(wall['points'])]},
            "properties": {
                "type": "room",
                "room_id": wall['room_id'],
                "floor_level": wall['floor_level'],
                "height": wall['height'],
            },
        })

    for layer_type in ("doors", "windows"):
        layer = result.sketch.layer(layer_type)
        for opening in (layer.data if layer else []):
            properties = {k: v for k, v in opening.items() if k not in ("start", "end")}
            properties["type"] = layer_type[:-1]
            features.append({
                "type": "Feature",
                "geometry": {
                    "type": "LineString",
                    "coordinates": [list(opening['start']), list(opening['end'])],
                },
                "properties": properties,
            })

    return convert_value({
        "type": "FeatureCollection",
        "features": features,
        "properties": {
            "units": "m",
            "scale": result.sketch.scale,
            "metadata": result.metadata,
        },
    })


def to_obj(model: Model3D) -> str:
    """Wavefront OBJ text with one normal per face."""
    lines = [f"# {model.id}", f"o {model.id}"]
    lines.extend(f"v {x:.6f} {y:.6f} {z:.6f}" for x, y, z in model.vertices)
    lines.extend(f"vn {x:.6f} {y:.6f} {z:.6f}" for x, y, z in model.normals)
    for n, face in enumerate(model.faces, start=1):
        lines.append("f " + " ".join(f"{i + 1}//{n}" for i in face))
    return "\n".join(lines) + "\n"


@dataclass
class MapExporter:
    """Default exporter: writes the selected formats into ``output_dir``."""

    config: ExportConfig = field(default_factory=ExportConfig)

    def _target(self, output_dir: Path, base_name: str, fmt: str) -> Path:
        directory = output_dir / fmt if self.config.create_subdirs else output_dir
        directory.mkdir(parents=True, exist_ok=True)
        return directory / f"{base_name}.{fmt}"

    def export(self, result: SketchResult, output_dir: Path | str, base_name: str) -> List[Path]:
        """Write every configured format and return the written paths.

        Existing files are skipped unless ``overwrite`` is set. I/O errors
        propagate to the caller.
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        unknown = [f for f in self.config.formats if f not in SUPPORTED_FORMATS]
        if unknown:
            raise ValueError(f"Unsupported export formats: {unknown}")

        written = []
        for fmt in self.config.formats:
            path = self._target(output_dir, base_name, fmt)
            if path.exists() and not self.config.overwrite:
                logger.warning(f"File exists and overwrite is off, skipping: {path}")
                continue

            self._writers()[fmt](result, path)
            written.append(path)
            logger.info(f"Wrote {fmt}: {path}")

        return written

    def _writers(self) -> Dict[str, object]:
        return {
            "json": self.write_json,
            "geojson": self.write_geojson,
            "obj": self.write_obj,
            "dxf": self.write_dxf,
        }

    def write_json(self, result: SketchResult, path: Path) -> None:
        with open(path, "w") as f:
            json.dump(result.to_dict(), f, indent=2, default=str)

    def write_geojson(self, result: SketchResult, path: Path) -> None:
        with open(path, "w") as f:
            json.dump(to_geojson(result), f, indent=2)

    def write_obj(self, result: SketchResult, path: Path) -> None:
        with open(path, "w") as f:
            f.write(to_obj(result.model))

    def write_dxf(self, result: SketchResult, path: Path) -> None:
        writer = DxfPlanWriter(include_dimensions=self.config.include_dimensions)
        writer.add_sketch(result.sketch)
        writer.add_labels(result.labels)
        writer.add_dimensions(result.dimensions)
        writer.save(path)
