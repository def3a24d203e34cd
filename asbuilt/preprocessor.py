"""Point-cloud preprocessing for offline reconstruction.

Steps:
1. Merge all scans into one Nx3 array
2. Apply a constant altitude offset to z
3. Statistical outlier removal (mean distance to k nearest neighbours)
4. Translate so the bounding-box minimum sits at the origin

The neighbour search is brute force and O(n²) in the number of points.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np
from sklearn.neighbors import NearestNeighbors

from .config import PreprocessConfig
from .samples import LidarScan

logger = logging.getLogger(__name__)


@dataclass
class PointCloudPreprocessor:
    """Merge, calibrate, filter and normalize LiDAR scans."""

    altitude_offset: float = 0.0  # meters added to every z
    neighbors: int = 10
    std_ratio: float = 2.0

    @classmethod
    def from_config(cls, config: PreprocessConfig) -> 'PointCloudPreprocessor':
        return cls(
            altitude_offset=config.altitude_offset_m,
            neighbors=config.outlier_neighbors,
            std_ratio=config.outlier_std_ratio,
        )

    def merge_scans(self, scans: Iterable[LidarScan]) -> np.ndarray:
        """Concatenate scan points into one Nx3 array."""
        arrays = [scan.as_array() for scan in scans if scan.points]
        if not arrays:
            return np.empty((0, 3))
        return np.vstack(arrays)

    def mean_neighbor_distances(self, points: np.ndarray) -> np.ndarray:
        """Per point, mean Euclidean distance to its k nearest other points."""
        k = min(self.neighbors, len(points) - 1)
        nn = NearestNeighbors(n_neighbors=k + 1, algorithm="brute")
        nn.fit(points)
        distances, _ = nn.kneighbors(points)
        # Column 0 is the point itself
        return distances[:, 1:].mean(axis=1)

    def remove_outliers(self, points: np.ndarray) -> np.ndarray:
        """Drop points whose mean neighbour distance is more than std_ratio σ from the mean.

        Args:
            points: Nx3 array

        Returns:
            Filtered Nx3 array (input order kept)
        """
        points = np.asarray(points, dtype=float)
        if len(points) < 2:
            return points

        mean_distances = self.mean_neighbor_distances(points)
        mean = mean_distances.mean()
        std = mean_distances.std()

        keep = np.abs(mean_distances - mean) <= self.std_ratio * std
        removed = len(points) - int(np.count_nonzero(keep))
        if removed:
            logger.info(f"Outlier removal dropped {removed}/{len(points)} points")
        return points[keep]

    def normalize(self, points: np.ndarray) -> np.ndarray:
        """Translate points so the bounding-box minimum is the origin."""
        if len(points) == 0:
            return points
        return points - points.min(axis=0)

    def process(self, scans: Iterable[LidarScan], altitude_offset: Optional[float] = None) -> np.ndarray:
        """Run the full preprocessing chain.

        Args:
            scans: LiDAR scans to merge
            altitude_offset: Override for the configured z offset

        Returns:
            Nx3 array of cleaned points
        """
        points = self.merge_scans(scans)
        offset = self.altitude_offset if altitude_offset is None else altitude_offset
        if offset != 0.0 and len(points):
            points = points.copy()
            points[:, 2] += offset

        points = self.remove_outliers(points)
        return self.normalize(points)
