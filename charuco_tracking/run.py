import argparse
import logging
import signal
import sys
import threading
import time
from pathlib import Path
from typing import Optional

import cv2

from .board import BoardLayout
from .calibration import CalibrationAccumulator
from .capture import BaseCapture, OpenCVCapture
from .codec import MeasurementCodec
from .compare import AXES, axis_unit, compare_spots, spot_displacement
from .config import TrackingConfig, load_config
from .estimator import PoseEstimator
from .logging_utils import add_file_handler, setup_logger
from .pose_types import CalibrationResult, SpotMeasurement, TrajectoryData
from .services.calib import load_calibration, save_calibration
from .spot import SpotMeasurer
from .trajectory import TrajectoryRecorder
from .vision import OpenCVCharucoProvider, VisionProvider
from .worker import PoseWorker

logger = logging.getLogger(__name__)

POLL_SEC = 0.1


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="ChArUco pose calibration and measurement")
    ap.add_argument("--config", help="Path to JSON/YAML config")
    ap.add_argument("--device")
    ap.add_argument("--calib", help="Calibration file (overrides config)")
    ap.add_argument("-v", "--verbose", action="store_true")
    ap.add_argument("--log-file", help="Also append log records to this file")

    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("calibrate", help="Collect board frames and calibrate the camera")
    p.add_argument("--every", type=int, default=5, help="Capture every Nth processed frame")
    p.add_argument("--min-frames", type=int)

    p = sub.add_parser("spot", help="Average a burst of poses into one measurement")
    p.add_argument("--out")
    p.add_argument("--samples", type=int)

    p = sub.add_parser("track", help="Record a trajectory until stopped")
    p.add_argument("--out")
    p.add_argument("--duration", type=float, help="Seconds (default: until Ctrl+C)")

    p = sub.add_parser("compare", help="Compare spot measurements against a reference")
    p.add_argument("reference")
    p.add_argument("others", nargs="+")
    p.add_argument("--axes", nargs="+", default=["X", "Y"], choices=sorted(AXES))
    p.add_argument("--export", help="Write the reference -> first-other displacement here")

    p = sub.add_parser("board", help="Render the configured board to an image")
    p.add_argument("--out", default="charuco_board.png")
    p.add_argument("--size", type=int, default=1000)

    return ap


def _default_out(cfg: TrackingConfig, kind: str) -> Path:
    return Path(cfg.save_dir) / f"{kind}_{time.strftime('%Y%m%d_%H%M%S')}.yaml"


def _make_capture(cfg: TrackingConfig) -> BaseCapture:
    return OpenCVCapture(cfg.device, cfg.fps, cfg.width, cfg.height)


def _make_estimator(
    cfg: TrackingConfig,
    provider: VisionProvider,
    calibration: Optional[CalibrationResult],
) -> PoseEstimator:
    if calibration is None:
        calibration = load_calibration(cfg.calibration_path)
    if calibration is None:
        raise RuntimeError(
            f"No calibration at {cfg.calibration_path}; run the 'calibrate' command first"
        )
    return PoseEstimator(
        provider,
        BoardLayout.from_config(cfg.board),
        calibration,
        offset=cfg.transform.offset_matrix(),
    )


def _wait(worker: PoseWorker, done: threading.Event) -> None:
    while not done.wait(POLL_SEC):
        if not worker.running:
            break
    worker.stop()
    worker.join()


def run_calibrate(
    cfg: TrackingConfig,
    capture: Optional[BaseCapture] = None,
    provider: Optional[VisionProvider] = None,
    every: int = 5,
    workers: Optional[list] = None,
) -> Optional[CalibrationResult]:
    provider = provider or OpenCVCharucoProvider(cfg.board)
    acc = CalibrationAccumulator(
        provider, BoardLayout.from_config(cfg.board), cfg.min_calibration_frames
    )
    worker = PoseWorker(
        capture or _make_capture(cfg),
        calibration=acc,
        capture_every=every,
        tracking_fps=cfg.tracking_fps,
    )
    if workers is not None:
        workers.append(worker)

    worker.start()
    while worker.running and not acc.is_ready:
        time.sleep(POLL_SEC)
    worker.stop()
    worker.join()

    result = acc.calibrate()
    if result is None:
        logger.error(
            "calibration needs %d frames, only %d captured", acc.min_frames, acc.num_frames
        )
        return None
    save_calibration(result, cfg.calibration_path)
    return result


def run_spot(
    cfg: TrackingConfig,
    out: Optional[str] = None,
    capture: Optional[BaseCapture] = None,
    provider: Optional[VisionProvider] = None,
    calibration: Optional[CalibrationResult] = None,
    workers: Optional[list] = None,
) -> Optional[SpotMeasurement]:
    provider = provider or OpenCVCharucoProvider(cfg.board)
    estimator = _make_estimator(cfg, provider, calibration)
    measurer = SpotMeasurer(cfg.target_samples)
    worker = PoseWorker(capture or _make_capture(cfg), estimator, tracking_fps=cfg.tracking_fps)
    if workers is not None:
        workers.append(worker)

    done = threading.Event()

    def _on_pose(pose) -> None:
        if measurer.add_sample(pose):
            worker.stop()
            done.set()

    worker.add_listener(_on_pose)
    measurer.start()
    worker.start()
    _wait(worker, done)

    measurement = measurer.stop()
    if measurement is None:
        logger.error("no board detections, nothing to save")
        return None

    path = Path(out) if out else _default_out(cfg, "spot")
    MeasurementCodec().export_spot(measurement, path)
    t = measurement.pose.translation
    logger.info(
        "spot x=%.2f y=%.2f z=%.2f mm samples=%d -> %s",
        t.x, t.y, t.z, measurement.num_samples, path,
    )
    return measurement


def run_track(
    cfg: TrackingConfig,
    out: Optional[str] = None,
    duration: Optional[float] = None,
    capture: Optional[BaseCapture] = None,
    provider: Optional[VisionProvider] = None,
    calibration: Optional[CalibrationResult] = None,
    max_frames: Optional[int] = None,
    workers: Optional[list] = None,
) -> Optional[TrajectoryData]:
    provider = provider or OpenCVCharucoProvider(cfg.board)
    estimator = _make_estimator(cfg, provider, calibration)
    recorder = TrajectoryRecorder()
    worker = PoseWorker(
        capture or _make_capture(cfg),
        estimator,
        tracking_fps=cfg.tracking_fps,
        duration_sec=duration,
        max_frames=max_frames,
    )
    if workers is not None:
        workers.append(worker)
    worker.add_listener(recorder.add_pose)

    recorder.start()
    worker.start()
    _wait(worker, threading.Event())

    trajectory = recorder.stop()
    if trajectory is None:
        logger.error("no board detections, nothing to save")
        return None

    path = Path(out) if out else _default_out(cfg, "trajectory")
    MeasurementCodec().export_trajectory(trajectory, path)
    d = trajectory.total_displacement
    logger.info(
        "trajectory poses=%d duration=%.1fs distance_3d=%.2f mm -> %s",
        trajectory.num_poses, trajectory.duration_sec, d.distance_3d, path,
    )
    return trajectory


def run_compare(
    reference: str,
    others: list[str],
    axes: list[str],
    export: Optional[str] = None,
    stream=None,
) -> int:
    stream = stream or sys.stdout
    codec = MeasurementCodec()
    ref = codec.load_spot(reference)
    if ref is None:
        print(f"failed to load {reference}", file=stream)
        return 1

    spots = []
    for path in others:
        spot = codec.load_spot(path)
        if spot is None:
            print(f"failed to load {path}", file=stream)
            return 1
        spots.append((path, spot))

    for path, spot in spots:
        d = spot_displacement(ref, spot)
        print(
            f"{path}: dx={d.dx:.4f} dy={d.dy:.4f} dz={d.dz:.4f} mm "
            f"dyaw={d.dyaw:.4f} deg 2d={d.distance_2d:.4f} 3d={d.distance_3d:.4f} mm",
            file=stream,
        )

    for axis in axes:
        stats = compare_spots(ref, [s for _, s in spots], axis)
        unit = axis_unit(axis)
        print(
            f"{stats.axis}: mean={stats.mean:.4f}{unit} variance={stats.variance:.4f} "
            f"min={stats.min:.4f}{unit} max={stats.max:.4f}{unit}",
            file=stream,
        )

    if export:
        first_path, first = spots[0]
        codec.export_displacement(
            spot_displacement(ref, first),
            Path(reference).name,
            Path(first_path).name,
            "spot",
            export,
        )
    return 0


def run_board(cfg: TrackingConfig, out: str, size: int) -> None:
    image = OpenCVCharucoProvider(cfg.board).generate_board_image(size)
    if not cv2.imwrite(out, image):
        raise RuntimeError(f"Failed to write {out}")
    logger.info("board written: %s", out)


def main(argv: Optional[list[str]] = None) -> int:
    ap = _build_parser()
    args = ap.parse_args(argv)

    cfg = load_config(args.config) if args.config else TrackingConfig()
    device = args.device
    if isinstance(device, str) and device.isdigit():
        device = int(device)
    cfg.apply_overrides(device=device, calibration_path=args.calib)

    log = setup_logger(cfg.session_name, logging.DEBUG if args.verbose else logging.INFO)
    if args.log_file:
        add_file_handler(log, cfg.session_name, args.log_file)

    workers: list[PoseWorker] = []

    def _handle_signal(_sig, _frame):
        for w in workers:
            w.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _handle_signal)

    if args.command == "compare":
        return run_compare(args.reference, args.others, args.axes, args.export)
    if args.command == "board":
        run_board(cfg, args.out, args.size)
        return 0
    if args.command == "calibrate":
        if args.min_frames:
            cfg.min_calibration_frames = args.min_frames
        result = run_calibrate(cfg, every=args.every, workers=workers)
        return 0 if result is not None else 1
    if args.command == "spot":
        if args.samples:
            cfg.target_samples = args.samples
        return 0 if run_spot(cfg, args.out, workers=workers) is not None else 1
    if args.command == "track":
        return 0 if run_track(cfg, args.out, args.duration, workers=workers) is not None else 1
    return 2


if __name__ == "__main__":
    sys.exit(main())
