"""Comparison of spot measurements against a reference spot."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import numpy as np

from .pose_types import Displacement, SpotMeasurement

AXES: dict[str, Callable[[SpotMeasurement], float]] = {
    "X": lambda s: s.pose.translation.x,
    "Y": lambda s: s.pose.translation.y,
    "Z": lambda s: s.pose.translation.z,
    "ROLL": lambda s: s.pose.rotation.roll,
    "PITCH": lambda s: s.pose.rotation.pitch,
    "YAW": lambda s: s.pose.rotation.yaw,
}


def axis_unit(axis: str) -> str:
    return "mm" if axis.upper() in ("X", "Y", "Z") else "deg"


@dataclass(frozen=True)
class AxisStats:
    axis: str
    mean: float
    variance: float  # population
    min: float
    max: float


def spot_displacement(reference: SpotMeasurement, other: SpotMeasurement) -> Displacement:
    return other.pose.displacement_from(reference.pose)


def compare_spots(
    reference: SpotMeasurement, others: Sequence[SpotMeasurement], axis: str
) -> Optional[AxisStats]:
    """Statistics of ``other - reference`` along one axis."""
    key = axis.upper()
    if key not in AXES:
        raise ValueError(f"unknown axis {axis!r}, expected one of {sorted(AXES)}")
    if not others:
        return None

    value = AXES[key]
    diffs = np.array([value(s) - value(reference) for s in others], dtype=np.float64)
    return AxisStats(
        axis=key,
        mean=float(diffs.mean()),
        variance=float(diffs.var(ddof=0)),
        min=float(diffs.min()),
        max=float(diffs.max()),
    )
