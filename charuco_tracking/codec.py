"""Measurement documents: spot, trajectory and displacement comparison.

Key names and nesting are a stable external format; documents written by
older exporters must keep loading.
"""

from __future__ import annotations

import json
import logging
import math
import time
from pathlib import Path
from typing import IO, Any, Optional, Union

import yaml

from .pose_types import (
    Displacement,
    PoseRecord,
    Rotation,
    SpotMeasurement,
    StdDev,
    TrajectoryData,
    Translation,
)

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"

Target = Union[str, Path, IO[str]]


def _now() -> str:
    return time.strftime(TIMESTAMP_FORMAT)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:  # int beyond float range
        return False


def _num(value: Any, default: float = 0.0) -> float:
    return float(value) if _is_number(value) else default


def _int(value: Any, default: int = 0) -> int:
    return int(value) if _is_number(value) else default


def _translation_dict(t: Translation) -> dict[str, float]:
    return {"x": float(t.x), "y": float(t.y), "z": float(t.z)}


def _rotation_dict(r: Rotation) -> dict[str, float]:
    return {"roll": float(r.roll), "pitch": float(r.pitch), "yaw": float(r.yaw)}


def displacement_block(d: Displacement) -> dict[str, Any]:
    return {
        "displacement": {
            "x_mm": float(d.dx),
            "y_mm": float(d.dy),
            "z_mm": float(d.dz),
            "yaw_deg": float(d.dyaw),
        },
        "distance_2d_mm": float(d.distance_2d),
        "distance_3d_mm": float(d.distance_3d),
    }


def spot_to_dict(m: SpotMeasurement) -> dict[str, Any]:
    pose = m.pose
    return {
        "metadata": {"timestamp": _now(), "measurement_type": "spot"},
        "pose": {
            "translation": _translation_dict(pose.translation),
            "rotation": _rotation_dict(pose.rotation),
            "quality": float(pose.quality),
            "num_samples": int(m.num_samples),
            "std_dev": {
                "x_mm": float(m.std_dev.x_mm),
                "y_mm": float(m.std_dev.y_mm),
                "z_mm": float(m.std_dev.z_mm),
            },
        },
    }


def trajectory_to_dict(t: TrajectoryData) -> dict[str, Any]:
    return {
        "metadata": {
            "num_poses": t.num_poses,
            "duration_sec": float(t.duration_sec),
            "timestamp": _now(),
        },
        "trajectory": [
            {
                "timestamp": float(p.timestamp),
                "translation": _translation_dict(p.translation),
                "rotation": _rotation_dict(p.rotation),
                "quality": float(p.quality),
                "num_corners": int(p.num_corners),
            }
            for p in t.poses
        ],
        "total_displacement": displacement_block(t.total_displacement),
    }


def displacement_to_dict(
    d: Displacement, file1: str, file2: str, comparison_type: str
) -> dict[str, Any]:
    return {
        "metadata": {
            "comparison_type": comparison_type,
            "file1": file1,
            "file2": file2,
            "timestamp": _now(),
        },
        "displacement": displacement_block(d),
    }


def _parse_pose(
    data: dict, num_corners: Optional[int] = None, timestamp: Optional[float] = None
) -> Optional[PoseRecord]:
    t = data.get("translation")
    r = data.get("rotation")
    if not isinstance(t, dict) or not isinstance(r, dict):
        return None
    return PoseRecord(
        translation=Translation(_num(t.get("x")), _num(t.get("y")), _num(t.get("z"))),
        rotation=Rotation(
            _num(r.get("roll")), _num(r.get("pitch")), _num(r.get("yaw"))
        ),
        # Out-of-range values from other writers are clamped, not rejected.
        quality=min(max(_num(data.get("quality")), 0.0), 1.0),
        num_corners=max(_int(data.get("num_corners")), 0) if num_corners is None else num_corners,
        timestamp=_num(data.get("timestamp")) if timestamp is None else timestamp,
    )


def _parse_displacement(block: dict) -> Displacement:
    d = block.get("displacement")
    if not isinstance(d, dict):
        d = {}
    return Displacement(
        dx=_num(d.get("x_mm")),
        dy=_num(d.get("y_mm")),
        dz=_num(d.get("z_mm")),
        dyaw=_num(d.get("yaw_deg")),
        distance_2d=_num(block.get("distance_2d_mm")),
        distance_3d=_num(block.get("distance_3d_mm")),
    )


def spot_from_dict(data: Any) -> Optional[SpotMeasurement]:
    if not isinstance(data, dict):
        return None
    pose_block = data.get("pose")
    if not isinstance(pose_block, dict):
        return None
    # Spot documents carry neither a corner count nor a pose timestamp.
    pose = _parse_pose(pose_block, num_corners=0, timestamp=time.time())
    if pose is None:
        return None

    sd = pose_block.get("std_dev")
    if isinstance(sd, dict):
        std = StdDev(_num(sd.get("x_mm")), _num(sd.get("y_mm")), _num(sd.get("z_mm")))
    else:
        std = StdDev()

    return SpotMeasurement(
        pose=pose, num_samples=_int(pose_block.get("num_samples")), std_dev=std
    )


def trajectory_from_dict(data: Any) -> Optional[TrajectoryData]:
    if not isinstance(data, dict):
        return None
    items = data.get("trajectory")
    if not isinstance(items, list):
        return None

    poses = [p for p in (_parse_pose(i) for i in items if isinstance(i, dict)) if p]
    if not poses:
        return None

    block = data.get("total_displacement")
    if isinstance(block, dict):
        total = _parse_displacement(block)
    else:
        total = poses[-1].displacement_from(poses[0])

    # metadata.timestamp is the export wall clock; session bounds come from
    # the poses themselves. Pose timestamps are not required to be ordered.
    start_time = poses[0].timestamp
    return TrajectoryData(
        poses=tuple(poses),
        start_time=start_time,
        end_time=max(start_time, poses[-1].timestamp),
        total_displacement=total,
    )


class MeasurementCodec:
    """
    Reads and writes measurement documents.

    YAML by default; paths ending in ``.json`` are written and read as JSON.
    Loaders never raise on bad input, they log and return None.
    """

    def export_spot(self, measurement: SpotMeasurement, target: Target) -> None:
        self._dump(spot_to_dict(measurement), target)

    def export_trajectory(self, trajectory: TrajectoryData, target: Target) -> None:
        self._dump(trajectory_to_dict(trajectory), target)

    def export_displacement(
        self,
        displacement: Displacement,
        file1: str,
        file2: str,
        comparison_type: str,
        target: Target,
    ) -> None:
        self._dump(displacement_to_dict(displacement, file1, file2, comparison_type), target)

    def load_spot(self, source: Target) -> Optional[SpotMeasurement]:
        return self._load(source, spot_from_dict, "spot")

    def load_trajectory(self, source: Target) -> Optional[TrajectoryData]:
        return self._load(source, trajectory_from_dict, "trajectory")

    @staticmethod
    def _is_json(target: Target) -> bool:
        return isinstance(target, (str, Path)) and Path(target).suffix.lower() == ".json"

    def _dump(self, data: dict[str, Any], target: Target) -> None:
        if isinstance(target, (str, Path)):
            path = Path(target)
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("w", encoding="utf-8") as fp:
                self._write(data, fp, self._is_json(path))
            logger.info("exported %s", path)
        else:
            self._write(data, target, False)

    @staticmethod
    def _write(data: dict[str, Any], fp: IO[str], as_json: bool) -> None:
        if as_json:
            json.dump(data, fp, indent=2)
        else:
            yaml.safe_dump(data, fp, sort_keys=False, default_flow_style=False)

    def _load(self, source: Target, parse, kind: str):
        try:
            if isinstance(source, (str, Path)):
                with Path(source).open("r", encoding="utf-8") as fp:
                    data = json.load(fp) if self._is_json(source) else yaml.safe_load(fp)
            else:
                data = yaml.safe_load(source)
            result = parse(data)
        except (OSError, yaml.YAMLError, ValueError, TypeError, OverflowError) as e:
            logger.warning("failed to load %s from %s: %s", kind, source, e)
            return None

        if result is None:
            logger.warning("failed to load %s from %s: missing required block", kind, source)
        return result
