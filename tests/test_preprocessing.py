"""Tests for point-cloud preprocessing and floor segmentation."""
import numpy as np
import pytest

from asbuilt.config import PreprocessConfig, SegmenterConfig
from asbuilt.floor_segmenter import FloorSegmenter
from asbuilt.preprocessor import PointCloudPreprocessor
from asbuilt.samples import LidarScan
from asbuilt.wall_extractor import WallExtractor


@pytest.fixture
def grid_with_outlier():
    """20 x 5 grid at 0.1 m spacing on z = 0 plus one point about 3 m above it."""
    xs, ys = np.meshgrid(np.arange(20) * 0.1, np.arange(5) * 0.1)
    grid = np.column_stack([xs.ravel(), ys.ravel(), np.zeros(xs.size)])
    outlier = np.array([[1.0, 0.2, 3.0]])
    return np.vstack([grid, outlier])


# =============================================================================
# Preprocessor
# =============================================================================

class TestPointCloudPreprocessor:
    """Tests for PointCloudPreprocessor."""

    def test_from_config(self):
        pre = PointCloudPreprocessor.from_config(
            PreprocessConfig(altitude_offset_m=1.5, outlier_neighbors=6, outlier_std_ratio=3.0)
        )
        assert pre.altitude_offset == 1.5
        assert pre.neighbors == 6
        assert pre.std_ratio == 3.0

    def test_merge_scans(self):
        a = LidarScan.from_array("a", np.zeros((3, 3)))
        b = LidarScan.from_array("b", np.ones((2, 3)))
        empty = LidarScan(scan_id="c")

        merged = PointCloudPreprocessor().merge_scans([a, empty, b])

        assert merged.shape == (5, 3)
        assert merged[-1].tolist() == [1.0, 1.0, 1.0]

    def test_merge_no_scans(self):
        assert PointCloudPreprocessor().merge_scans([]).shape == (0, 3)

    def test_mean_neighbor_distances(self):
        points = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [3.0, 0.0, 0.0]])
        distances = PointCloudPreprocessor(neighbors=1).mean_neighbor_distances(points)
        assert distances == pytest.approx([1.0, 1.0, 2.0])

    def test_neighbors_capped_by_point_count(self):
        points = np.array([[0.0, 0.0, 0.0], [2.0, 0.0, 0.0]])
        distances = PointCloudPreprocessor(neighbors=10).mean_neighbor_distances(points)
        assert distances == pytest.approx([2.0, 2.0])

    def test_remove_outliers_drops_far_point(self, grid_with_outlier):
        filtered = PointCloudPreprocessor().remove_outliers(grid_with_outlier)

        assert len(filtered) == len(grid_with_outlier) - 1
        assert filtered[:, 2].max() == 0.0

    def test_remove_outliers_keeps_order(self, grid_with_outlier):
        filtered = PointCloudPreprocessor().remove_outliers(grid_with_outlier)
        assert np.array_equal(filtered, grid_with_outlier[:-1])

    def test_remove_outliers_small_input(self):
        single = np.array([[5.0, 5.0, 5.0]])
        assert np.array_equal(PointCloudPreprocessor().remove_outliers(single), single)

    def test_uniform_cloud_unchanged(self):
        xs, ys = np.meshgrid(np.arange(10) * 0.1, np.arange(10) * 0.1)
        grid = np.column_stack([xs.ravel(), ys.ravel(), np.zeros(xs.size)])
        # Edge and corner points sit about 2.5 sigma out
        pre = PointCloudPreprocessor(std_ratio=5.0)
        assert len(pre.remove_outliers(grid)) == 100

    def test_normalize(self):
        points = np.array([[2.0, -1.0, 10.0], [4.0, 3.0, 12.0]])
        normalized = PointCloudPreprocessor().normalize(points)
        assert normalized.tolist() == [[0.0, 0.0, 0.0], [2.0, 4.0, 2.0]]

    def test_normalize_empty(self):
        assert PointCloudPreprocessor().normalize(np.empty((0, 3))).shape == (0, 3)

    def test_process(self, grid_with_outlier):
        shifted = grid_with_outlier + np.array([10.0, 20.0, 30.0])
        scan = LidarScan.from_array("s", shifted)

        points = PointCloudPreprocessor(altitude_offset=2.0).process([scan])

        assert len(points) == len(grid_with_outlier) - 1
        assert points.min(axis=0).tolist() == [0.0, 0.0, 0.0]
        assert points[:, 0].max() == pytest.approx(1.9)

    def test_process_offset_override(self):
        scan = LidarScan.from_array("s", np.array([[0.0, 0.0, 1.0], [1.0, 0.0, 1.0]]))
        pre = PointCloudPreprocessor(altitude_offset=5.0)

        merged = pre.merge_scans([scan])
        assert pre.process([scan], altitude_offset=0.0).tolist() == (merged - merged.min(axis=0)).tolist()


# =============================================================================
# Floor segmentation
# =============================================================================

class TestFloorSegmenter:
    """Tests for FloorSegmenter."""

    def test_from_config(self):
        extractor = WallExtractor(seed=1)
        segmenter = FloorSegmenter.from_config(SegmenterConfig(floor_height_m=3.1), extractor)
        assert segmenter.floor_height == 3.1
        assert segmenter.extractor is extractor

    def test_levels_round_half_up(self):
        segmenter = FloorSegmenter(floor_height=2.7)
        points = np.array([[0, 0, 0.0], [0, 0, 1.3], [0, 0, 1.4], [0, 0, 2.7], [0, 0, 4.0], [0, 0, 4.1], [0, 0, -1.4]])
        assert segmenter.levels(points).tolist() == [0, 0, 1, 1, 1, 2, -1]

    def test_segment_splits_at_half_storey(self):
        points = np.array([[0, 0, 0.2], [1, 0, 1.5], [2, 0, 2.0]])

        buckets = FloorSegmenter(floor_height=2.7).segment(points)

        assert list(buckets) == [0, 1]
        assert buckets[0][:, 2].tolist() == [0.2]
        assert buckets[1][:, 2].tolist() == [1.5, 2.0]

    def test_segment(self):
        segmenter = FloorSegmenter(floor_height=2.7)
        points = np.array([[0, 0, 3.0], [1, 0, 0.5], [2, 0, 2.0]], dtype=float)

        buckets = segmenter.segment(points)

        assert list(buckets) == [0, 1]
        assert buckets[0][:, 0].tolist() == [1.0]
        assert buckets[1][:, 0].tolist() == [0.0, 2.0]

    def test_segment_empty(self):
        assert FloorSegmenter().segment(np.empty((0, 3))) == {}

    @pytest.mark.parametrize("min_z,level", [(0.0, 0), (1.3, 0), (1.4, 1), (2.7, 1), (3.0, 1), (5.4, 2)])
    def test_base_level(self, min_z, level):
        points = np.array([[0, 0, min_z], [0, 0, min_z + 2.5]])
        assert FloorSegmenter(floor_height=2.7).base_level(points) == level

    def test_base_level_empty(self):
        assert FloorSegmenter().base_level(np.empty((0, 3))) is None

    def test_detect_rooms_per_storey(self, plain_room, room_points):
        upper = room_points + np.array([0.0, 0.0, 2.7])
        points = np.vstack([plain_room.point_cloud(), upper])
        segmenter = FloorSegmenter(floor_height=2.7, extractor=WallExtractor(seed=7))

        rooms = segmenter.detect_rooms(points)

        # Bucket edges at 1.35 m and 4.05 m: z 0-1.25, 1.5-3.95 and 4.2-5.2
        assert list(rooms) == [0, 1, 2]
        for features in rooms.values():
            assert len(features.boundary.corners) == 4
        assert rooms[0].doors == []
        assert rooms[0].boundary.height == pytest.approx(1.25)
        assert rooms[1].boundary.height == pytest.approx(2.45)
        assert rooms[2].boundary.height == pytest.approx(1.0)

    def test_detect_rooms_without_boundary(self):
        points = np.column_stack([np.arange(20) * 0.1, np.zeros(20), np.zeros(20)])
        rooms = FloorSegmenter(extractor=WallExtractor(seed=1)).detect_rooms(points)
        assert rooms[0].boundary is None
