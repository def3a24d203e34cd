"""Tests for wall, corner and opening extraction."""
import math

import numpy as np
import pytest

from asbuilt.building import polygon_area
from asbuilt.wall_extractor import (
    LineSegment, RoomFeatures, Wall, WallExtractor, extract_room
)
from simulation.generate_synthetic import BOTTOM, TOP, Opening, SyntheticRoom


def signed_area(corners):
    xy = np.asarray(corners, dtype=float)
    x, y = xy[:, 0], xy[:, 1]
    return float(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))) / 2.0


# =============================================================================
# LineSegment
# =============================================================================

class TestLineSegment:
    """Tests for LineSegment dataclass."""

    def test_length(self):
        line = LineSegment(0, 0, 3, 4)
        assert line.length == pytest.approx(5.0)

    def test_angle(self):
        assert LineSegment(0, 0, 1, 0).angle == pytest.approx(0.0)
        assert LineSegment(0, 0, 0, 1).angle == pytest.approx(math.pi / 2)

    def test_midpoint(self):
        assert LineSegment(0, 0, 2, 4).midpoint == (1.0, 2.0)

    def test_direction(self):
        assert LineSegment(1, 1, 1, 3).direction == pytest.approx((0.0, 1.0))
        assert LineSegment(1, 1, 1, 1).direction == (1.0, 0.0)

    def test_distances_and_projection(self):
        line = LineSegment(0, 0, 4, 0)
        xy = np.array([[1.0, 2.0], [3.0, -0.5], [-1.0, 0.0]])

        assert line.distances(xy) == pytest.approx([2.0, 0.5, 0.0])
        assert line.project(xy) == pytest.approx([1.0, 3.0, -1.0])

    def test_intersection(self):
        horizontal = LineSegment(0, 4, 5, 4)
        vertical = LineSegment(5, 0, 5, 1)
        assert horizontal.intersection(vertical) == pytest.approx((5.0, 4.0))

    def test_intersection_outside_segments(self):
        a = LineSegment(0, 0, 1, 1)
        b = LineSegment(4, 0, 3, 1)
        assert a.intersection(b) == pytest.approx((2.0, 2.0))

    def test_parallel_lines(self):
        assert LineSegment(0, 0, 1, 0).intersection(LineSegment(0, 1, 1, 1)) is None

    def test_to_tuple(self):
        assert LineSegment(1, 2, 3, 4).to_tuple() == (1, 2, 3, 4)


# =============================================================================
# Wall detection and boundary
# =============================================================================

class TestWallDetection:
    """Tests for RANSAC wall peeling and corner extraction."""

    def test_detects_four_walls(self, extractor, plain_room):
        walls = extractor.detect_walls(plain_room.point_cloud())
        assert len(walls) == 4
        assert all(isinstance(w, Wall) for w in walls)
        assert sum(len(w.points) for w in walls) == len(plain_room.point_cloud())

    def test_seeded_detection_is_reproducible(self, room_points):
        first = WallExtractor(seed=3).detect_boundary(room_points)
        second = WallExtractor(seed=3).detect_boundary(room_points)
        assert first.corners == second.corners

    def test_boundary_corners(self, extractor, room_points):
        boundary = extractor.detect_boundary(room_points)

        assert len(boundary.corners) == 4
        expected = [(0.0, 0.0), (5.0, 0.0), (5.0, 4.0), (0.0, 4.0)]
        for corner in expected:
            assert any(
                math.hypot(c[0] - corner[0], c[1] - corner[1]) < 1e-6 for c in boundary.corners
            ), f"missing corner {corner}"

    def test_corners_are_clockwise(self, extractor, room_points):
        boundary = extractor.detect_boundary(room_points)
        assert signed_area(boundary.corners) < 0
        assert polygon_area(boundary.corners) == pytest.approx(20.0)

    def test_room_height_is_highest_point(self, extractor, room_points):
        assert extractor.estimate_room_height(room_points) == pytest.approx(2.5)
        assert extractor.estimate_room_height(np.empty((0, 3))) == 0.0

    def test_too_few_walls(self, extractor):
        room = SyntheticRoom()
        points = room.point_cloud()
        # Keep only the bottom and right walls
        two_walls = points[(points[:, 1] < 0.01) | (points[:, 0] > 4.99)]

        assert extractor.detect_boundary(two_walls) is None
        features = extractor.extract_room(two_walls)
        assert features.boundary is None
        assert features.wall_count == 2
        assert features.doors == []

    def test_too_few_points(self, extractor):
        assert extractor.extract_room(np.zeros((5, 3))) == RoomFeatures()

    def test_order_walls_clockwise_empty(self, extractor):
        assert extractor.order_walls_clockwise([]) == []

    def test_extract_corners_skips_parallel_pairs(self, extractor):
        walls = [
            Wall(LineSegment(0, 0, 5, 0), np.zeros((1, 3))),
            Wall(LineSegment(0, 4, 5, 4), np.zeros((1, 3))),
        ]
        assert extractor.extract_corners(walls) == []


# =============================================================================
# Openings
# =============================================================================

class TestOpenings:
    """Tests for door and window detection."""

    def test_room_with_door_and_window(self, extractor, room_points):
        features = extractor.extract_room(room_points)

        assert len(features.boundary.corners) == 4
        assert features.wall_count == 4
        assert len(features.doors) == 1
        assert len(features.windows) == 1

    def test_door_on_bottom_wall(self, extractor, room_points):
        door = extractor.detect_doors(room_points)[0]

        assert door.start[1] == pytest.approx(0.0)
        assert door.end[1] == pytest.approx(0.0)
        assert sorted([door.start[0], door.end[0]]) == pytest.approx([1.0, 1.9], abs=0.11)
        assert door.is_open is True

    def test_window_on_top_wall(self, extractor, room_points):
        window = extractor.detect_windows(room_points)[0]

        assert window.start[1] == pytest.approx(4.0)
        assert window.end[1] == pytest.approx(4.0)
        assert sorted([window.start[0], window.end[0]]) == pytest.approx([2.0, 3.2], abs=0.11)
        assert window.sill_height == pytest.approx(0.0)

    def test_closed_room_has_no_openings(self, extractor, plain_room):
        features = extractor.extract_room(plain_room.point_cloud())
        assert features.doors == []
        assert features.windows == []

    def test_openings_relative_to_cloud_floor(self, extractor, room_points):
        raised = room_points + np.array([0.0, 0.0, 3.0])
        features = extractor.extract_room(raised)

        assert len(features.doors) == 1
        assert len(features.windows) == 1
        assert features.windows[0].sill_height == pytest.approx(0.0)
        assert features.boundary.height == pytest.approx(5.5)

    def test_narrow_gap_is_ignored(self, extractor):
        room = SyntheticRoom(openings=[Opening.door(BOTTOM, start=2.0, width=0.4)])
        features = extractor.extract_room(room.point_cloud())
        assert features.doors == []
        assert features.windows == []

    def test_low_sill_window(self, extractor):
        room = SyntheticRoom(openings=[Opening.window(TOP, start=1.5, width=1.0, sill=0.6, head=2.1)])
        features = extractor.extract_room(room.point_cloud())

        assert features.doors == []
        assert len(features.windows) == 1
        assert features.windows[0].sill_height == pytest.approx(0.0)

    def test_sill_height_is_lowest_point_under_window(self, extractor):
        # Rows at z 0 and 0.25 missing below the window span
        room = SyntheticRoom(openings=[
            Opening.window(TOP, start=1.8, width=1.2),
            Opening(wall=TOP, start=1.8, end=3.0, bottom=-1.0, top=0.3),
        ])
        windows = extractor.detect_windows(room.point_cloud())

        assert len(windows) == 1
        assert windows[0].sill_height == pytest.approx(0.5)

    def test_find_gaps_uses_section_band(self, extractor, room_points):
        walls = extractor.detect_walls(room_points)
        bottom = next(w for w in walls if abs(w.centroid[1]) < 0.01)

        gaps = extractor.find_gaps(bottom, extractor.door_width_range)

        assert len(gaps) == 1
        assert gaps[0].length == pytest.approx(0.9, abs=0.11)
        assert gaps[0].t_end > gaps[0].t_start

    def test_footprint_points(self, extractor, room_points):
        walls = extractor.detect_walls(room_points)
        top = next(w for w in walls if abs(w.centroid[1] - 4.0) < 0.01)
        gap = extractor.find_gaps(top, extractor.window_width_range)[0]

        footprint = extractor.footprint_points(gap, room_points)

        assert len(footprint) > 0
        assert np.all(np.abs(footprint[:, 1] - 4.0) < extractor.wall_thickness)
        assert footprint[:, 0].min() > min(gap.start[0], gap.end[0])
        assert footprint[:, 0].max() < max(gap.start[0], gap.end[0])


class TestExtractRoomFunction:

    def test_convenience_function(self, room_points):
        features = extract_room(room_points, seed=7, ransac_iterations=150)
        assert len(features.boundary.corners) == 4
        assert len(features.doors) == 1
        assert len(features.windows) == 1
