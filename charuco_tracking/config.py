from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field
from pathlib import Path
from typing import Any, Optional

import numpy as np
import yaml


@dataclass
class BoardConfig:
    """Physical layout of the ChArUco board."""

    dictionary: str = "DICT_5X5_100"
    squares_x: int = 7
    squares_y: int = 7
    square_length_m: float = 0.04
    marker_length_m: float = 0.03

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class TransformConfig:
    """Rigid board -> target offset (meters). Identity while disabled."""

    enabled: bool = False
    matrix: Optional[list[list[float]]] = None

    def offset_matrix(self) -> np.ndarray:
        if not self.enabled or self.matrix is None:
            return np.eye(4)
        m = np.asarray(self.matrix, dtype=np.float64)
        if m.shape != (4, 4):
            raise ValueError(f"Transform matrix must be 4x4, got {m.shape}")
        return m

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class TrackingConfig:
    session_name: str = "charuco"
    device: int | str = 0
    width: int = 1920
    height: int = 1280
    fps: int = 30
    tracking_fps: int = 10
    min_calibration_frames: int = 30
    target_samples: int = 30
    calibration_path: str = "calibration_params.yml"
    save_dir: str = "data/measurements"
    board: BoardConfig = field(default_factory=BoardConfig)
    transform: TransformConfig = field(default_factory=TransformConfig)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    def apply_overrides(self, **kwargs: Any) -> "TrackingConfig":
        for key, value in kwargs.items():
            if value is not None and hasattr(self, key):
                setattr(self, key, value)
        return self


def _load_yaml(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp) or {}
    if not isinstance(data, dict):
        raise ValueError("YAML config root must be a mapping")
    return data


def _load_board(raw: Any) -> BoardConfig:
    if not isinstance(raw, dict):
        raise ValueError("board must be a mapping")
    board = BoardConfig()
    board.dictionary = str(raw.get("dictionary", board.dictionary))
    board.squares_x = int(raw.get("squares_x", board.squares_x))
    board.squares_y = int(raw.get("squares_y", board.squares_y))
    board.square_length_m = float(raw.get("square_length_m", board.square_length_m))
    board.marker_length_m = float(raw.get("marker_length_m", board.marker_length_m))
    if board.squares_x < 2 or board.squares_y < 2:
        raise ValueError("board needs at least 2x2 squares")
    if board.marker_length_m >= board.square_length_m:
        raise ValueError("marker_length_m must be smaller than square_length_m")
    return board


def _load_transform(raw: Any) -> TransformConfig:
    if not isinstance(raw, dict):
        raise ValueError("transform must be a mapping")
    tf = TransformConfig()
    tf.enabled = bool(raw.get("enabled", tf.enabled))
    matrix = raw.get("matrix")
    if matrix is not None:
        tf.matrix = [[float(v) for v in row] for row in matrix]
        # Validates shape even while disabled.
        TransformConfig(enabled=True, matrix=tf.matrix).offset_matrix()
    return tf


def load_config(path: str | Path) -> TrackingConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")

    if p.suffix.lower() in {".yaml", ".yml"}:
        raw = _load_yaml(p)
    else:
        with p.open("r", encoding="utf-8") as fp:
            raw = json.load(fp)

    if not isinstance(raw, dict):
        raise ValueError("Config root must be a JSON/YAML object")

    cfg = TrackingConfig()
    cfg.session_name = str(raw.get("session_name", cfg.session_name))
    cfg.device = raw.get("device", cfg.device)
    cfg.width = int(raw.get("width", cfg.width))
    cfg.height = int(raw.get("height", cfg.height))
    cfg.fps = int(raw.get("fps", cfg.fps))
    cfg.tracking_fps = int(raw.get("tracking_fps", cfg.tracking_fps))
    cfg.min_calibration_frames = int(
        raw.get("min_calibration_frames", cfg.min_calibration_frames)
    )
    cfg.target_samples = int(raw.get("target_samples", cfg.target_samples))
    if cfg.target_samples < 1:
        raise ValueError("target_samples must be >= 1")
    cfg.calibration_path = str(raw.get("calibration_path", cfg.calibration_path))
    cfg.save_dir = str(raw.get("save_dir", cfg.save_dir))

    if raw.get("board") is not None:
        cfg.board = _load_board(raw["board"])
    if raw.get("transform") is not None:
        cfg.transform = _load_transform(raw["transform"])

    return cfg
