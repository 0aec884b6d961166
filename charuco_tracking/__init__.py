"""ChArUco board pose calibration, spot measurement and trajectory recording."""

from .calibration import CalibrationAccumulator
from .codec import MeasurementCodec
from .config import TrackingConfig
from .pose_types import (
    CalibrationResult,
    Displacement,
    PoseRecord,
    SpotMeasurement,
    TrajectoryData,
)
from .spot import SpotMeasurer
from .trajectory import TrajectoryRecorder

__all__ = [
    "CalibrationAccumulator",
    "CalibrationResult",
    "Displacement",
    "MeasurementCodec",
    "PoseRecord",
    "SpotMeasurement",
    "SpotMeasurer",
    "TrackingConfig",
    "TrajectoryData",
    "TrajectoryRecorder",
]
