"""Floor segmentation by height clusters.

Points are bucketed into storeys by z / floor_height rounded half up, so
points more than half a floor height above a slab fall into the next bucket
and a full-height storey spans two buckets. A single scan is assigned the
level of its lowest point, rounded the same way. The point-cloud storey
height (2.7 m) is a separate setting from the barometric one (3.0 m).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import numpy as np

from .config import SegmenterConfig
from .wall_extractor import RoomFeatures, WallExtractor

logger = logging.getLogger(__name__)


@dataclass
class FloorSegmenter:
    """Group points into floor levels and extract room features per level."""

    floor_height: float = 2.7
    extractor: WallExtractor = field(default_factory=WallExtractor)

    @classmethod
    def from_config(cls, config: SegmenterConfig, extractor: Optional[WallExtractor] = None) -> 'FloorSegmenter':
        return cls(floor_height=config.floor_height_m, extractor=extractor or WallExtractor())

    def levels(self, points: np.ndarray) -> np.ndarray:
        """Storey index for each point."""
        return np.floor(points[:, 2] / self.floor_height + 0.5).astype(int)

    def segment(self, points: np.ndarray) -> Dict[int, np.ndarray]:
        """Split an Nx3 array into {level: points}, ordered by level."""
        points = np.asarray(points, dtype=float)
        if len(points) == 0:
            return {}

        levels = self.levels(points)
        return {int(level): points[levels == level] for level in np.unique(levels)}

    def base_level(self, points: np.ndarray) -> Optional[int]:
        """Level of the lowest point, i.e. the floor a single scan was taken on."""
        points = np.asarray(points, dtype=float)
        if len(points) == 0:
            return None
        return int(np.floor(points[:, 2].min() / self.floor_height + 0.5))

    def detect_rooms(self, points: np.ndarray) -> Dict[int, RoomFeatures]:
        """Room features for each floor level.

        Each bucket is re-based so its lowest point sits at z = 0 before
        extraction; boundary heights are then ceiling heights above that floor.
        """
        features = {}
        for level, bucket in self.segment(points).items():
            rebased = bucket.copy()
            rebased[:, 2] -= rebased[:, 2].min()
            features[level] = self.extractor.extract_room(rebased)
            if features[level].boundary is None:
                logger.warning(f"No room boundary found on level {level} ({len(bucket)} points)")
        return features
