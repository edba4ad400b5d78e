from __future__ import annotations

"""
Mapping service: camera/video → ArUco poses → tile map, saved on exit.

Examples:
  # Live camera (first of indices 0,1,2 that opens), composite autosave every 30 s
  python -m capture.service --config config/params.yaml --autosave-s 30

  # Replay a recording, stop after 500 frames, write into ./maps
  python -m capture.service --video data/run1.mp4 --max-frames 500 --out maps
"""

import argparse
import threading
from pathlib import Path
from typing import Iterable, Optional

import cv2

from capture.camera import CameraFrameSource, annotate_frame
from capture.detector import ArucoDetector, annotate_detections
from common.config import AppConfig, load_config
from common.logging_setup import get_logger, reset_logging, setup_logging
from common.types import ImageFrame
from common.utils import RateTimer
from mapping.render import render_overview
from mapping.tile_store import TileStore
from tracking.localizer import FrameLocalizer, LocalizerConfig
from tracking.report import SessionResult, save_session


log = get_logger("capture.service")

OVERVIEW_NAME = "overview.png"
COMPOSITE_NAME = "composite.png"


def build_pipeline(cfg: AppConfig) -> tuple[TileStore, FrameLocalizer]:
    store = TileStore(cfg.map.tile_size, cfg.map.background)
    localizer = FrameLocalizer(store, LocalizerConfig.from_settings(cfg.localization))
    return store, localizer


def session_meta(cfg: AppConfig) -> dict:
    return {
        "Tile size (px)": cfg.map.tile_size,
        "Map scale (px/m)": f"{cfg.localization.map_scale:g}",
        "Marker length (m)": f"{cfg.camera.marker_length_m:g}",
    }


def write_overview(path: Path, store: TileStore, localizer: FrameLocalizer, grid_px: int) -> bool:
    img = render_overview(store, localizer.registry.all(), localizer.trajectory.samples(), grid_px=grid_px)
    path.parent.mkdir(parents=True, exist_ok=True)
    ok = bool(cv2.imwrite(str(path), img))
    if not ok:
        log.warning("Overview write failed", extra={"extra": {"path": str(path)}})
    return ok


def _autosave_loop(stop: threading.Event, period_s: float, out_dir: Path, store: TileStore) -> None:
    # Only the locked store is read here; registry and trajectory belong to the frame loop.
    path = out_dir / COMPOSITE_NAME
    while not stop.wait(period_s):
        try:
            out_dir.mkdir(parents=True, exist_ok=True)
            if not cv2.imwrite(str(path), store.composite()):
                log.warning("Autosave write failed", extra={"extra": {"path": str(path)}})
        except (cv2.error, OSError):
            log.exception("Autosave failed")


def run(
    frames: Iterable[ImageFrame],
    detector: ArucoDetector,
    localizer: FrameLocalizer,
    *,
    debug_dir: Optional[Path] = None,
    log_every: int = 100,
) -> int:
    """Process frames until the iterable ends. Returns the number of frames handled."""
    rt = RateTimer()
    n = 0
    changed = 0
    for frame in frames:
        detections = detector.detect(frame)
        res = localizer.process(detections)
        hz = rt.tick()
        n += 1
        if res.changed:
            changed += 1
            log.debug(
                "Map updated",
                extra={"extra": {
                    "frame": frame.to_meta(),
                    "proxy": res.proxy_id,
                    "position": res.position,
                    "appended": res.appended,
                }},
            )

        if debug_dir is not None and detections:
            img = annotate_detections(frame.frame, detections)
            img = annotate_frame(img, f"#{frame.index} markers={len(localizer.registry)} pos={res.position}")
            cv2.imwrite(str(debug_dir / f"frame_{frame.index:06d}.png"), img)

        if log_every and n % log_every == 0:
            log.info(
                "Progress",
                extra={"extra": {
                    "frames": n,
                    "changed": changed,
                    "fps": round(hz, 1),
                    "markers": len(localizer.registry),
                    "samples": len(localizer.trajectory),
                    "tiles": len(localizer.store),
                }},
            )
    return n


def main(argv: Optional[list] = None) -> SessionResult:
    ap = argparse.ArgumentParser(description="ArUco marker mapper")
    ap.add_argument("--config", default="config/params.yaml")
    src = ap.add_mutually_exclusive_group()
    src.add_argument("--video", help="Replay a video file instead of a camera")
    src.add_argument("--device", type=int, help="Camera index (overrides capture.device_indices)")
    ap.add_argument("--max-frames", type=int, default=None, help="Stop after N frames")
    ap.add_argument("--fps", type=float, default=None, help="Frame rate cap (Hz)")
    ap.add_argument("--out", default=None, help="Root directory for saved maps")
    ap.add_argument("--autosave-s", type=float, default=None, help="Composite autosave period; 0 disables")
    ap.add_argument("--debug-frames", default=None, help="Directory for annotated frames with detections")
    args = ap.parse_args(argv)

    cfg = load_config(args.config)
    reset_logging()
    setup_logging(cfg.logging.level, fmt=cfg.logging.format, log_file=cfg.logging.file)

    out_root = Path(args.out or cfg.export.root_dir)
    autosave_s = cfg.export.autosave_s if args.autosave_s is None else args.autosave_s
    debug_dir = Path(args.debug_frames) if args.debug_frames else None
    if debug_dir is not None:
        debug_dir.mkdir(parents=True, exist_ok=True)

    source = CameraFrameSource(
        path=args.video,
        device_indices=[args.device] if args.device is not None else list(cfg.capture.device_indices),
        size=(cfg.capture.width, cfg.capture.height),
        max_fps=args.fps if args.fps is not None else (None if args.video else cfg.capture.fps),
        max_frames=args.max_frames,
    )
    detector = ArucoDetector(cfg.camera)
    store, localizer = build_pipeline(cfg)

    stop = threading.Event()
    saver: Optional[threading.Thread] = None
    if autosave_s and autosave_s > 0:
        saver = threading.Thread(
            target=_autosave_loop,
            args=(stop, float(autosave_s), out_root, store),
            daemon=True,
        )
        saver.start()

    log.info("Mapping started", extra={"extra": {"source": args.video or "camera", "out": str(out_root)}})
    try:
        run(source.frames(), detector, localizer, debug_dir=debug_dir)
    except KeyboardInterrupt:
        log.info("Interrupted; saving map")
    finally:
        stop.set()
        if saver is not None:
            saver.join(timeout=2.0)

    result = save_session(out_root, store, localizer, session_meta(cfg))
    if result.tiles.ok:
        write_overview(result.directory / OVERVIEW_NAME, store, localizer, cfg.map.grid_px)
    return result


if __name__ == "__main__":
    main()
