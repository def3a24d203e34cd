"""Synthetic walkthrough generator.

This module generates synthetic room point clouds and complete walkthrough
recordings for development, testing, and CI purposes. The recordings can be
replayed through the full mapping pipeline.

Features:
- Rectangular rooms sampled as vertical wall grids
- Door and window openings cut into walls
- GNSS, barometer and IMU streams for a multi-room, multi-floor walk
- Optional range noise

Usage:
    python -m simulation.generate_synthetic --out walk.jsonl --floors 2
"""
from __future__ import annotations

import argparse
import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import numpy as np

from asbuilt.replay import Frame, write_frames
from asbuilt.samples import (
    BarometricSample, GnssSample, InertialSample, LidarScan, Orientation, Vec3,
)

# Wall indices, counter-clockwise from the bottom wall
BOTTOM, RIGHT, TOP, LEFT = range(4)

SEA_LEVEL_HPA = 1013.25
HPA_PER_METER = 0.12  # pressure drop per meter of climb near sea level
GRAVITY = 9.81


@dataclass
class Opening:
    """Hole cut into a wall.

    ``start``/``end`` are distances along the wall from its first corner;
    points with ``bottom < z < top`` (above the floor) are removed.
    """
    wall: int
    start: float
    end: float
    bottom: float
    top: float

    @classmethod
    def door(cls, wall: int, start: float, width: float = 0.9, height: float = 2.1) -> 'Opening':
        return cls(wall=wall, start=start, end=start + width, bottom=-1.0, top=height)

    @classmethod
    def window(cls, wall: int, start: float, width: float = 1.2,
               sill: float = 0.9, head: float = 2.1) -> 'Opening':
        return cls(wall=wall, start=start, end=start + width, bottom=sill, top=head)


@dataclass
class SyntheticRoom:
    """Axis-aligned rectangular room sampled as a grid of wall points.

    Wall points stop ``corner_clearance`` short of each corner so that no
    corner point is shared between two walls.
    """
    width: float = 5.0
    depth: float = 4.0
    height: float = 2.5
    origin: Tuple[float, float] = (0.0, 0.0)
    floor_z: float = 0.0
    spacing: float = 0.1  # horizontal sample spacing (m)
    z_step: float = 0.25  # vertical sample spacing (m)
    corner_clearance: float = 0.4
    openings: List[Opening] = field(default_factory=list)

    def walls(self) -> List[Tuple[float, float, float, float]]:
        """Wall segments (x1, y1, x2, y2): bottom, right, top, left."""
        x0, y0 = self.origin
        x1, y1 = x0 + self.width, y0 + self.depth
        return [
            (x0, y0, x1, y0),  # Bottom
            (x1, y0, x1, y1),  # Right
            (x1, y1, x0, y1),  # Top
            (x0, y1, x0, y0),  # Left
        ]

    def corners(self) -> List[Tuple[float, float]]:
        return [(w[0], w[1]) for w in self.walls()]

    @property
    def centroid(self) -> Tuple[float, float]:
        return (self.origin[0] + self.width / 2, self.origin[1] + self.depth / 2)

    def _levels(self) -> np.ndarray:
        n = int(round(self.height / self.z_step))
        return np.round(np.arange(n + 1) * self.z_step, 6)

    def point_cloud(self, noise: float = 0.0, rng: Optional[np.random.Generator] = None) -> np.ndarray:
        """Nx3 points on the four walls with openings removed."""
        levels = self._levels()
        points = []

        for index, (x1, y1, x2, y2) in enumerate(self.walls()):
            length = math.hypot(x2 - x1, y2 - y1)
            ux, uy = (x2 - x1) / length, (y2 - y1) / length
            usable = length - 2 * self.corner_clearance
            n = int(round(usable / self.spacing))
            along = np.round(self.corner_clearance + np.arange(n + 1) * self.spacing, 6)
            openings = [o for o in self.openings if o.wall == index]

            for s in along:
                x = round(x1 + s * ux, 6)
                y = round(y1 + s * uy, 6)
                for z in levels:
                    if any(o.start < s < o.end and o.bottom < z < o.top for o in openings):
                        continue
                    points.append((x, y, self.floor_z + z))

        cloud = np.array(points, dtype=float)
        if noise > 0:
            rng = rng or np.random.default_rng()
            cloud[:, :2] += rng.normal(0.0, noise, size=(len(cloud), 2))
        return cloud


def room_with_door_and_window() -> SyntheticRoom:
    """5 x 4 m room with a door in the bottom wall and a window in the top wall."""
    return SyntheticRoom(openings=[
        Opening.door(BOTTOM, start=1.0, width=0.9),
        Opening.window(TOP, start=1.8, width=1.2),
    ])


@dataclass
class WalkthroughGenerator:
    """Generate the frames of an inspector walking through a small building.

    Layout: room A with a door into room B on the ground floor; the
    inspector visits A, B, returns to A, then climbs to room C directly
    above A for each additional floor.
    """
    floors: int = 2
    storey_height: float = 3.0
    latitude: float = -33.8688
    longitude: float = 151.2093
    elevation_m: float = 20.0
    start_ms: float = 1_700_000_000_000.0
    imu_rate_hz: float = 10.0
    noise: float = 0.0
    seed: Optional[int] = None

    _t: float = 0.0
    _altitude: float = 0.0
    _scan_count: int = 0

    def rooms(self) -> List[Tuple[str, SyntheticRoom]]:
        """Visit order: (name, room)."""
        room_a = SyntheticRoom(openings=[Opening.door(RIGHT, start=1.5, width=0.9)])
        # B's left wall runs from its top-left corner down, so the shared door lines up
        room_b = SyntheticRoom(origin=(5.0, 0.0), openings=[
            Opening.door(LEFT, start=1.6, width=0.9),
            Opening.window(RIGHT, start=1.4, width=1.2),
        ])
        visits = [("A", room_a), ("B", room_b), ("A", room_a)]
        for level in range(1, self.floors):
            upper = SyntheticRoom(
                floor_z=level * self.storey_height,
                openings=[Opening.window(TOP, start=1.8, width=1.2)],
            )
            visits.append((f"C{level}", upper))
        return visits

    def _now(self) -> float:
        return self.start_ms + self._t * 1000.0

    def _barometer(self) -> BarometricSample:
        return BarometricSample(
            pressure_hpa=SEA_LEVEL_HPA - HPA_PER_METER * self._altitude,
            temperature_c=21.5,
            relative_altitude_m=self._altitude,
            timestamp_ms=self._now(),
        )

    def _imu(self, ax: float = 0.0) -> InertialSample:
        return InertialSample(
            acceleration=Vec3(ax, 0.0, -GRAVITY),
            gyroscope=Vec3(0.0, 0.0, 0.0),
            orientation=Orientation(0.0, 0.0, 0.0),
            timestamp_ms=self._now(),
            magnetometer=Vec3(22.0, 5.0, -40.0),
        )

    def _gnss(self) -> GnssSample:
        return GnssSample(
            latitude=self.latitude,
            longitude=self.longitude,
            elevation_m=self.elevation_m,
            horizontal_accuracy_m=4.5,
            timestamp_ms=self._now(),
        )

    def _walk(self, accel: float = 0.5, seconds: float = 1.0) -> List[Frame]:
        """Accelerate then decelerate along x; net velocity returns to zero."""
        frames = []
        steps = int(seconds * self.imu_rate_hz)
        dt = 1.0 / self.imu_rate_hz
        for a in (accel, -accel):
            for _ in range(steps):
                self._t += dt
                frames.append(Frame(imu=self._imu(a)))
        self._t += dt
        frames.append(Frame(imu=self._imu(0.0), barometer=self._barometer()))
        return frames

    def _scan(self, room: SyntheticRoom, rng: np.random.Generator) -> LidarScan:
        self._scan_count += 1
        return LidarScan.from_array(
            f"scan_{self._scan_count:03d}",
            room.point_cloud(noise=self.noise, rng=rng),
            timestamp_ms=self._now(),
        )

    def frames(self) -> List[Frame]:
        """All frames of the walkthrough, in time order."""
        rng = np.random.default_rng(self.seed)
        self._t = 0.0
        self._altitude = 0.0
        self._scan_count = 0

        frames = [Frame(gnss=self._gnss(), barometer=self._barometer(), imu=self._imu())]

        for name, room in self.rooms():
            target = room.floor_z
            if target != self._altitude:
                # Stairs: climb in one storey step
                self._altitude = target
                frames.extend(self._walk())
            elif len(frames) > 1:
                frames.extend(self._walk())

            self._t += 0.5
            frames.append(Frame(
                barometer=self._barometer(),
                imu=self._imu(),
                lidar=self._scan(room, rng),
            ))

        return frames

    def generate(self, output_path: Path | str) -> Dict[str, Any]:
        """Write the walkthrough as a JSON-lines recording.

        Args:
            output_path: Output .jsonl path

        Returns:
            Summary dictionary
        """
        frames = self.frames()
        count = write_frames(frames, output_path)
        summary = {
            "status": "ok",
            "recording": str(output_path),
            "frames": count,
            "scans": sum(1 for f in frames if f.lidar is not None),
            "rooms": len({name for name, _ in self.rooms()}),
            "floors": self.floors,
        }
        print(json.dumps(summary))
        return summary


if __name__ == "__main__":
    parser = argparse.ArgumentParser(
        description="Generate a synthetic walkthrough recording for testing"
    )
    parser.add_argument(
        "--out",
        required=True,
        help="Output JSON-lines recording path"
    )
    parser.add_argument(
        "--floors",
        type=int,
        default=2,
        help="Number of floors (default: 2)"
    )
    parser.add_argument(
        "--noise",
        type=float,
        default=0.0,
        help="Wall point noise stddev in meters (default: 0.0)"
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Random seed for noise"
    )

    args = parser.parse_args()

    generator = WalkthroughGenerator(floors=args.floors, noise=args.noise, seed=args.seed)
    generator.generate(args.out)
