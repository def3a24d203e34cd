"""Walkthrough recording replay.

A recording is a JSON-lines file, one frame per line:

    {"gnss": {...}, "barometer": {...}, "imu": {...}, "lidar": {...}}

Any key may be missing or null; each present value is the dictionary form of
that sample (see ``samples.sample_to_dict``).

Usage:
    python -m asbuilt.replay --session walk.jsonl --out artifacts/walk

The replay feeds every frame through a BuildingMapper session, completes it,
writes the artifacts and the fault log, and prints a summary.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

from .building_mapper import BuildingMapper
from .config import MapperConfig, load_config
from .geometry import convert_value
from .samples import (
    BarometricSample, GnssSample, InertialSample, LidarScan, SensorKind,
    sample_from_dict, sample_to_dict,
)

logger = logging.getLogger(__name__)


@dataclass
class Frame:
    """Samples captured in one processing tick."""
    gnss: Optional[GnssSample] = None
    barometer: Optional[BarometricSample] = None
    imu: Optional[InertialSample] = None
    lidar: Optional[LidarScan] = None

    def to_dict(self) -> Dict[str, Optional[dict]]:
        return {
            kind.value: None if sample is None else sample_to_dict(sample)
            for kind, sample in (
                (SensorKind.GNSS, self.gnss),
                (SensorKind.BAROMETER, self.barometer),
                (SensorKind.IMU, self.imu),
                (SensorKind.LIDAR, self.lidar),
            )
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Frame':
        samples = {}
        for kind in SensorKind:
            value = data.get(kind.value)
            if value is not None:
                samples[kind.value] = sample_from_dict(kind.value, value)
        return cls(**samples)


def write_frames(frames: Iterable[Frame], path: Path | str) -> int:
    """Write frames as JSON lines. Returns the number of frames written."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with open(path, "w") as f:
        for frame in frames:
            f.write(json.dumps(frame.to_dict()) + "\n")
            count += 1
    return count


def read_frames(path: Path | str) -> Iterator[Frame]:
    """Yield frames from a JSON-lines recording; blank lines are skipped."""
    with open(path) as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield Frame.from_dict(json.loads(line))
            except (KeyError, TypeError, ValueError) as e:
                raise ValueError(f"{path}:{line_number}: malformed frame: {e}") from e


@dataclass
class ReplaySummary:
    """Outcome of replaying one recording."""

    success: bool
    session_path: str
    output_path: str

    frames: int = 0
    rooms: int = 0
    floors: int = 0
    transitions: int = 0
    located: bool = False

    artifacts: List[str] = field(default_factory=list)
    faults: List[dict] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    processing_time_sec: float = 0.0

    def to_dict(self) -> dict:
        return convert_value(asdict(self))


def replay_session(
    session_path: Path | str,
    output_dir: Path | str,
    config: Optional[MapperConfig] = None,
    session_id: Optional[str] = None,
) -> ReplaySummary:
    """Feed a recording through a mapping session and export the result."""
    start = time.time()
    session_path = Path(session_path)
    output_dir = Path(output_dir)
    summary = ReplaySummary(success=False, session_path=str(session_path), output_path=str(output_dir))

    mapper = BuildingMapper(config=config or MapperConfig())
    mapper.start_mapping(session_id or session_path.stem, name=session_path.stem)

    try:
        for frame in read_frames(session_path):
            mapper.process_sensor_data(
                gnss=frame.gnss, barometer=frame.barometer, imu=frame.imu, lidar=frame.lidar,
            )
            summary.frames += 1
    except (OSError, ValueError) as e:
        logger.error(f"Failed to read recording: {e}")
        summary.errors.append(str(e))

    building_map = mapper.complete_mapping(output_dir)
    building = building_map.building
    mapper.export_error_log(output_dir / "faults.json")

    summary.rooms = building.room_count
    summary.floors = building.floor_count
    summary.transitions = len(building_map.transitions)
    summary.located = building.location is not None
    summary.artifacts = [str(p) for p in mapper.exported_paths]
    summary.faults = [f.to_dict() for f in mapper.get_errors()]
    summary.success = not summary.errors and building.room_count > 0
    if building.room_count == 0:
        summary.errors.append("No rooms detected")
    summary.processing_time_sec = time.time() - start
    return summary


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Replay a walkthrough recording into an as-built floor plan"
    )
    parser.add_argument(
        "--session",
        required=True,
        help="Path to JSON-lines walkthrough recording"
    )
    parser.add_argument(
        "--out",
        required=True,
        help="Path to output directory"
    )
    parser.add_argument(
        "--config",
        help="Path to mapper config JSON (default: search standard locations)"
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="RANSAC seed for reproducible wall detection"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )

    config = load_config(args.config)
    if args.seed is not None:
        config.lidar.ransac_seed = args.seed

    summary = replay_session(args.session, args.out, config=config)

    print("\n" + "=" * 60)
    print("REPLAY SUMMARY")
    print("=" * 60)
    print(f"Status: {'SUCCESS' if summary.success else 'FAILED'}")
    print(f"Frames: {summary.frames}")
    print(f"Rooms: {summary.rooms}")
    print(f"Floors: {summary.floors}")
    print(f"Transitions: {summary.transitions}")
    print(f"Located: {'yes' if summary.located else 'no'}")
    print(f"Time: {summary.processing_time_sec:.2f}s")

    if summary.artifacts:
        print(f"\nArtifacts ({len(summary.artifacts)}):")
        for path in summary.artifacts:
            print(f"  - {path}")

    if summary.faults:
        print(f"\nFaults ({len(summary.faults)}):")
        for fault in summary.faults:
            print(f"  - [{fault['sensor_kind']}] {fault['code']}: {fault['message']}")

    if summary.errors:
        print(f"\nErrors ({len(summary.errors)}):")
        for e in summary.errors:
            print(f"  - {e}")

    return 0 if summary.success else 1


if __name__ == "__main__":
    sys.exit(main())
