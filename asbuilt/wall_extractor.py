"""Wall, corner and opening extraction from a LiDAR point cloud.

This module implements room feature extraction using:
1. RANSAC line fitting on the 2D projection, one wall at a time
2. Clockwise wall ordering around the room center
3. Corners from intersections of consecutive walls
4. Door/window detection from gaps between consecutive wall points
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Tuple, Optional

import numpy as np

from .building import Boundary, Door, Window, Point2D
from .config import LidarConfig


@dataclass
class LineSegment:
    """2D line segment."""
    x1: float
    y1: float
    x2: float
    y2: float

    @property
    def length(self) -> float:
        """Segment length."""
        return math.sqrt((self.x2 - self.x1)**2 + (self.y2 - self.y1)**2)

    @property
    def angle(self) -> float:
        """Angle in radians from +X axis."""
        return math.atan2(self.y2 - self.y1, self.x2 - self.x1)

    @property
    def midpoint(self) -> Tuple[float, float]:
        """Segment midpoint."""
        return ((self.x1 + self.x2) / 2, (self.y1 + self.y2) / 2)

    @property
    def direction(self) -> Tuple[float, float]:
        """Unit direction from start to end."""
        length = self.length
        if length < 1e-12:
            return (1.0, 0.0)
        return ((self.x2 - self.x1) / length, (self.y2 - self.y1) / length)

    def distances(self, xy: np.ndarray) -> np.ndarray:
        """Perpendicular distances from Nx2 points to the infinite line."""
        ux, uy = self.direction
        return np.abs(ux * (xy[:, 1] - self.y1) - uy * (xy[:, 0] - self.x1))

    def project(self, xy: np.ndarray) -> np.ndarray:
        """Position of Nx2 points along the line, measured from the start point."""
        ux, uy = self.direction
        return (xy[:, 0] - self.x1) * ux + (xy[:, 1] - self.y1) * uy

    def intersection(self, other: 'LineSegment') -> Optional[Point2D]:
        """Intersection of the two infinite lines, None if they are parallel."""
        x1, y1, x2, y2 = self.to_tuple()
        x3, y3, x4, y4 = other.to_tuple()

        denominator = (x1 - x2) * (y3 - y4) - (y1 - y2) * (x3 - x4)
        if abs(denominator) < 1e-12:
            return None

        t = ((x1 - x3) * (y3 - y4) - (y1 - y3) * (x3 - x4)) / denominator
        return (x1 + t * (x2 - x1), y1 + t * (y2 - y1))

    def to_tuple(self) -> Tuple[float, float, float, float]:
        """Return as (x1, y1, x2, y2) tuple."""
        return (self.x1, self.y1, self.x2, self.y2)


@dataclass
class Wall:
    """A detected wall: its model line and the inlier points (Nx3)."""
    line: LineSegment
    points: np.ndarray = field(repr=False)

    @property
    def centroid(self) -> Tuple[float, float]:
        cx, cy = self.points[:, :2].mean(axis=0)
        return (float(cx), float(cy))

    @classmethod
    def from_inliers(cls, p1: np.ndarray, p2: np.ndarray, inliers: np.ndarray) -> 'Wall':
        """Span the model line through p1, p2 over the extent of the inliers."""
        model = LineSegment(float(p1[0]), float(p1[1]), float(p2[0]), float(p2[1]))
        t = model.project(inliers[:, :2])
        ux, uy = model.direction
        t_min, t_max = float(np.min(t)), float(np.max(t))
        line = LineSegment(
            x1=model.x1 + t_min * ux, y1=model.y1 + t_min * uy,
            x2=model.x1 + t_max * ux, y2=model.y1 + t_max * uy,
        )
        return cls(line=line, points=inliers)


@dataclass
class Gap:
    """Gap between two consecutive wall points along a wall."""
    wall: Wall = field(repr=False)
    start: Point2D
    end: Point2D
    t_start: float
    t_end: float

    @property
    def length(self) -> float:
        return math.hypot(self.end[0] - self.start[0], self.end[1] - self.start[1])


@dataclass
class RoomFeatures:
    """Everything the extractor found in one point cloud."""
    boundary: Optional[Boundary] = None
    doors: List[Door] = field(default_factory=list)
    windows: List[Window] = field(default_factory=list)
    wall_count: int = 0


@dataclass
class WallExtractor:
    """Extract room walls, corners and openings from a 3D point cloud.

    Pipeline:
    1. Project points to 2D and peel off walls with RANSAC until fewer than
       ``min_points_for_wall`` points remain
    2. Order walls clockwise around the centroid of the wall centroids
    3. Intersect consecutive walls to get corners
    4. Scan gaps between consecutive wall points for doors and windows

    Openings are looked for in the horizontal section band
    [section_min_z, section_max_z] above the floor of the cloud (its lowest
    point), the cut height of a drawn floor plan.
    Wall points below the band inside a gap are sill points: a gap with
    enough of them is a window, otherwise a door. Door and window width
    ranges overlap; the sill test decides which one a gap becomes.
    """

    # RANSAC parameters
    ransac_iterations: int = 100
    seed: Optional[int] = None
    wall_thickness: float = 0.3  # meters - max distance from line to be inlier
    min_points_for_wall: int = 10
    min_walls: int = 3

    # Opening parameters
    door_width_range: Tuple[float, float] = (0.7, 2.0)  # meters
    window_width_range: Tuple[float, float] = (0.6, 2.1)  # meters
    section_min_z: float = 1.0
    section_max_z: float = 2.0
    min_sill_points: int = 10

    @classmethod
    def from_config(cls, config: LidarConfig) -> 'WallExtractor':
        return cls(
            ransac_iterations=config.ransac_iterations,
            seed=config.ransac_seed,
            wall_thickness=config.wall_thickness_m,
            min_points_for_wall=config.min_points_for_wall,
            min_walls=config.min_walls,
            door_width_range=tuple(config.door_width_range),
            window_width_range=tuple(config.window_width_range),
            section_min_z=config.section_min_z,
            section_max_z=config.section_max_z,
            min_sill_points=config.min_sill_points,
        )

    def fit_wall_ransac(
        self,
        xy: np.ndarray,
        rng: np.random.Generator,
    ) -> Optional[Tuple[np.ndarray, np.ndarray, np.ndarray]]:
        """Find the best-supported line through two sampled points.

        Args:
            xy: Nx2 array of (x, y) points
            rng: Random generator used for sampling

        Returns:
            (p1, p2, inlier_mask) or None if every sample was degenerate
        """
        n = len(xy)
        if n < 2:
            return None

        best = None
        best_count = 0

        for _ in range(self.ransac_iterations):
            i, j = rng.integers(0, n, size=2)
            p1, p2 = xy[i], xy[j]
            dx, dy = p2[0] - p1[0], p2[1] - p1[1]
            length = math.hypot(dx, dy)
            if length < 1e-9:
                continue

            distances = np.abs(dx * (xy[:, 1] - p1[1]) - dy * (xy[:, 0] - p1[0])) / length
            mask = distances < self.wall_thickness
            count = int(np.count_nonzero(mask))

            if count > best_count:
                best_count = count
                best = (p1.copy(), p2.copy(), mask)

        return best

    def detect_walls(self, points: np.ndarray) -> List[Wall]:
        """Peel walls off the point cloud one RANSAC fit at a time.

        Args:
            points: Nx3 array of (x, y, z) points

        Returns:
            Walls in discovery order
        """
        points = np.asarray(points, dtype=float)
        rng = np.random.default_rng(self.seed)

        walls = []
        remaining = points

        while len(remaining) >= self.min_points_for_wall:
            result = self.fit_wall_ransac(remaining[:, :2], rng)
            if result is None:
                break

            p1, p2, mask = result
            if np.count_nonzero(mask) < self.min_points_for_wall:
                break

            walls.append(Wall.from_inliers(p1, p2, remaining[mask]))
            remaining = remaining[~mask]

        return walls

    def order_walls_clockwise(self, walls: List[Wall]) -> List[Wall]:
        """Sort walls clockwise by the angle of their centroid around the room center."""
        if not walls:
            return []

        centroids = np.array([w.centroid for w in walls])
        center = centroids.mean(axis=0)
        angles = np.arctan2(centroids[:, 1] - center[1], centroids[:, 0] - center[0])

        # Descending angle = clockwise
        order = np.argsort(-angles, kind="stable")
        return [walls[i] for i in order]

    def extract_corners(self, ordered_walls: List[Wall]) -> List[Point2D]:
        """Intersect each wall with the next one; parallel pairs are skipped."""
        corners = []
        n = len(ordered_walls)
        for i in range(n):
            current = ordered_walls[i].line
            following = ordered_walls[(i + 1) % n].line
            corner = current.intersection(following)
            if corner is not None:
                corners.append(corner)
        return corners

    def estimate_room_height(self, points: np.ndarray) -> float:
        """Highest point of the scan, taken as the ceiling."""
        if len(points) == 0:
            return 0.0
        return float(np.max(points[:, 2]))

    def detect_boundary(self, points: np.ndarray, walls: Optional[List[Wall]] = None) -> Optional[Boundary]:
        """Room outline, or None with fewer than ``min_walls`` walls or corners."""
        points = np.asarray(points, dtype=float)
        if walls is None:
            walls = self.detect_walls(points)
        if len(walls) < self.min_walls:
            return None

        corners = self.extract_corners(self.order_walls_clockwise(walls))
        if len(corners) < 3:
            return None

        return Boundary(corners=corners, height=self.estimate_room_height(points))

    def find_gaps(self, wall: Wall, size_range: Tuple[float, float], floor_z: float = 0.0) -> List[Gap]:
        """Gaps between consecutive section-band points along a wall."""
        z = wall.points[:, 2] - floor_z
        section = wall.points[(z >= self.section_min_z) & (z <= self.section_max_z)]
        if len(section) < 2:
            section = wall.points

        t = wall.line.project(section[:, :2])
        order = np.argsort(t, kind="stable")
        xy = section[order, :2]
        t = t[order]

        low, high = size_range
        gaps = []
        for k in range(len(xy) - 1):
            length = math.hypot(xy[k + 1, 0] - xy[k, 0], xy[k + 1, 1] - xy[k, 1])
            if low <= length <= high:
                gaps.append(Gap(
                    wall=wall,
                    start=(float(xy[k, 0]), float(xy[k, 1])),
                    end=(float(xy[k + 1, 0]), float(xy[k + 1, 1])),
                    t_start=float(t[k]),
                    t_end=float(t[k + 1]),
                ))
        return gaps

    def footprint_points(self, gap: Gap, points: np.ndarray) -> np.ndarray:
        """Scan points strictly between the gap ends and within wall thickness of the wall."""
        line = gap.wall.line
        xy = points[:, :2]
        t = line.project(xy)
        eps = 1e-6
        mask = ((t > gap.t_start + eps) & (t < gap.t_end - eps)
                & (line.distances(xy) < self.wall_thickness))
        return points[mask]

    def _sill_points(self, footprint: np.ndarray, floor_z: float) -> np.ndarray:
        return footprint[footprint[:, 2] - floor_z < self.section_min_z]

    def _floor_z(self, points: np.ndarray) -> float:
        return float(np.min(points[:, 2])) if len(points) else 0.0

    def detect_doors(self, points: np.ndarray, walls: Optional[List[Wall]] = None) -> List[Door]:
        """Door-width gaps with no wall below the section band.

        A door is open when fewer than ``min_points_for_wall`` points fill its
        footprint up to the top of the section band.
        """
        points = np.asarray(points, dtype=float)
        if walls is None:
            walls = self.detect_walls(points)
        floor_z = self._floor_z(points)

        doors = []
        for wall in walls:
            for gap in self.find_gaps(wall, self.door_width_range, floor_z):
                footprint = self.footprint_points(gap, points)
                if len(self._sill_points(footprint, floor_z)) >= self.min_sill_points:
                    continue
                filled = np.count_nonzero(footprint[:, 2] - floor_z <= self.section_max_z)
                doors.append(Door(
                    start=gap.start,
                    end=gap.end,
                    is_open=bool(filled < self.min_points_for_wall),
                ))
        return doors

    def detect_windows(self, points: np.ndarray, walls: Optional[List[Wall]] = None) -> List[Window]:
        """Window-width gaps with a sill wall below the section band.

        The sill height is the lowest footprint point above the cloud floor.
        """
        points = np.asarray(points, dtype=float)
        if walls is None:
            walls = self.detect_walls(points)
        floor_z = self._floor_z(points)

        windows = []
        for wall in walls:
            for gap in self.find_gaps(wall, self.window_width_range, floor_z):
                footprint = self.footprint_points(gap, points)
                if len(self._sill_points(footprint, floor_z)) < self.min_sill_points:
                    continue
                windows.append(Window(
                    start=gap.start,
                    end=gap.end,
                    sill_height=float(np.min(footprint[:, 2])) - floor_z,
                ))
        return windows

    def extract_room(self, points: np.ndarray) -> RoomFeatures:
        """Full extraction pipeline on one point cloud.

        Args:
            points: Nx3 array of (x, y, z) points

        Returns:
            RoomFeatures; boundary is None when too few walls were found
        """
        points = np.asarray(points, dtype=float)
        if len(points) < self.min_points_for_wall:
            return RoomFeatures()

        walls = self.detect_walls(points)
        boundary = self.detect_boundary(points, walls)
        if boundary is None:
            return RoomFeatures(wall_count=len(walls))

        return RoomFeatures(
            boundary=boundary,
            doors=self.detect_doors(points, walls),
            windows=self.detect_windows(points, walls),
            wall_count=len(walls),
        )


def extract_room(points: np.ndarray, **kwargs) -> RoomFeatures:
    """Convenience function for room feature extraction.

    Args:
        points: Nx3 array of (x, y, z) points
        **kwargs: Parameters for WallExtractor

    Returns:
        RoomFeatures
    """
    extractor = WallExtractor(**kwargs)
    return extractor.extract_room(points)
