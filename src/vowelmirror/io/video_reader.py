from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

import cv2
import numpy as np

SUPPORTED_VIDEO_EXTENSIONS = {".mp4", ".avi", ".mov", ".mkv", ".m4v", ".webm"}


@dataclass(frozen=True)
class VideoInfo:
    path: Path
    fps: float
    frame_count: int
    width: int
    height: int


@dataclass(frozen=True)
class VideoFrame:
    idx: int
    timestamp_ms: int
    image_rgb: np.ndarray


def _check_video_path(path: str | Path) -> Path:
    video_path = Path(path)
    if not video_path.is_file():
        raise FileNotFoundError(f"Video file does not exist: {video_path}")
    if video_path.suffix.lower() not in SUPPORTED_VIDEO_EXTENSIONS:
        supported = ", ".join(sorted(SUPPORTED_VIDEO_EXTENSIONS))
        raise ValueError(f"Unsupported video extension '{video_path.suffix}'. Supported: {supported}")
    return video_path


def _open_capture(video_path: Path) -> cv2.VideoCapture:
    cap = cv2.VideoCapture(str(video_path))
    if not cap.isOpened():
        cap.release()
        raise RuntimeError(f"Failed to open video file with OpenCV: {video_path}")
    return cap


def probe_video(path: str | Path) -> VideoInfo:
    video_path = _check_video_path(path)
    cap = _open_capture(video_path)
    try:
        fps = float(cap.get(cv2.CAP_PROP_FPS))
        info = VideoInfo(
            path=video_path,
            fps=fps,
            frame_count=int(cap.get(cv2.CAP_PROP_FRAME_COUNT)),
            width=int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            height=int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
        )
    finally:
        cap.release()

    if info.fps <= 0:
        raise RuntimeError(f"Invalid FPS from video metadata: {video_path}")
    if info.width <= 0 or info.height <= 0:
        raise RuntimeError(f"Invalid frame size from video metadata: {video_path}")
    return info


def iter_frames(path: str | Path, *, stride: int = 1) -> Iterator[VideoFrame]:
    """Yield RGB frames in order; timestamps are derived from the container FPS."""
    if stride < 1:
        raise ValueError(f"stride must be >= 1, got: {stride}")

    info = probe_video(path)
    cap = _open_capture(info.path)
    try:
        frame_idx = 0
        while True:
            ok, image_bgr = cap.read()
            if not ok:
                break
            if frame_idx % stride == 0:
                yield VideoFrame(
                    idx=frame_idx,
                    timestamp_ms=round(frame_idx * 1000 / info.fps),
                    image_rgb=cv2.cvtColor(image_bgr, cv2.COLOR_BGR2RGB),
                )
            frame_idx += 1
    finally:
        cap.release()
