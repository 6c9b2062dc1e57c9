from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

import numpy as np

from vowelmirror.analysis.overlay import OverlayResult, OverlayTracker
from vowelmirror.calibration import load_calibration
from vowelmirror.config import OverlayConfig, artifact_paths_for_video
from vowelmirror.io.video_reader import VideoFrame, iter_frames
from vowelmirror.landmarks.indices import MOUTH_LANDMARKS, TARGET_BLENDSHAPES
from vowelmirror.landmarks.mediapipe_face_landmarker import DEFAULT_MODEL_PATH, MediaPipeLandmarkProvider
from vowelmirror.landmarks.provider_base import LandmarkProvider


def collect_overlay_series(
    frames: Iterable[VideoFrame],
    provider: LandmarkProvider,
    tracker: OverlayTracker,
) -> dict[str, np.ndarray]:
    timestamps: list[int] = []
    frame_indices: list[int] = []
    presence: list[bool] = []
    skipped: list[bool] = []
    targets: list[np.ndarray] = []
    features: list[np.ndarray] = []
    scores: list[np.ndarray] = []

    empty_target = np.full((len(MOUTH_LANDMARKS), 3), np.nan, dtype=np.float64)
    empty_features = np.full((3,), np.nan, dtype=np.float64)
    empty_scores = np.full((len(TARGET_BLENDSHAPES),), np.nan, dtype=np.float64)

    for frame in frames:
        detected = provider.detect(frame.image_rgb, frame.timestamp_ms)
        result: OverlayResult | None = tracker.track(detected)

        timestamps.append(frame.timestamp_ms)
        frame_indices.append(frame.idx)
        presence.append(detected is not None)
        if result is None:
            skipped.append(True)
            targets.append(empty_target)
            features.append(empty_features)
            scores.append(empty_scores)
            continue

        skipped.append(result.skipped)
        targets.append(result.target_array())
        features.append(result.features.as_array())
        scores.append(np.asarray([result.scores.get(name, np.nan) for name in TARGET_BLENDSHAPES]))

    frame_count = len(timestamps)
    return {
        "timestamps_ms": np.asarray(timestamps, dtype=np.int64),
        "frame_indices": np.asarray(frame_indices, dtype=np.int64),
        "presence": np.asarray(presence, dtype=bool),
        "skipped": np.asarray(skipped, dtype=bool),
        "target_xyz": (
            np.stack(targets, axis=0).astype(np.float32)
            if frame_count
            else np.empty((0, len(MOUTH_LANDMARKS), 3), dtype=np.float32)
        ),
        "features_awp": (
            np.stack(features, axis=0).astype(np.float32) if frame_count else np.empty((0, 3), dtype=np.float32)
        ),
        "blendshapes_smoothed": (
            np.stack(scores, axis=0).astype(np.float32)
            if frame_count
            else np.empty((0, len(TARGET_BLENDSHAPES)), dtype=np.float32)
        ),
    }


def save_overlay_artifacts(
    *,
    series: dict[str, np.ndarray],
    config: OverlayConfig,
    video_path: str | Path,
    extract_time: str | None = None,
) -> tuple[Path, Path]:
    paths = artifact_paths_for_video(video_path, artifact_root=config.artifact_root)
    paths["artifact_dir"].mkdir(parents=True, exist_ok=True)

    np.savez_compressed(
        paths["overlay_npz"],
        mouth_indices=np.asarray(MOUTH_LANDMARKS, dtype=np.int64),
        **series,
    )

    total = int(series["timestamps_ms"].shape[0])
    summary = {
        "video_path": str(video_path),
        "config": config.as_summary(),
        "mouth_indices": MOUTH_LANDMARKS,
        "blendshape_names": TARGET_BLENDSHAPES,
        "extract_time": extract_time or datetime.now(timezone.utc).isoformat(),
        "quality_stats": {
            "total_frames": total,
            "present_frames": int(np.sum(series["presence"])),
            "skipped_frames": int(np.sum(series["skipped"])),
            "tracked_frames": int(total - np.sum(series["skipped"])),
        },
    }
    paths["overlay_json"].write_text(json.dumps(summary, indent=2, ensure_ascii=False), encoding="utf-8")
    return paths["overlay_npz"], paths["overlay_json"]


def run_video_overlay(
    *,
    video_path: str | Path,
    config: OverlayConfig,
    model_path: str | Path = DEFAULT_MODEL_PATH,
    stride: int = 1,
    provider: LandmarkProvider | None = None,
) -> dict[str, Any]:
    # Calibration problems surface here, before any frame is decoded.
    calibration = load_calibration(config.calibration_path)
    tracker = OverlayTracker(
        calibration,
        config.vowel,
        alpha=config.smoothing_alpha,
        history_size=config.history_size,
        hold_last=config.hold_last_overlay,
    )

    detector = provider if provider is not None else MediaPipeLandmarkProvider(model_path)
    started_at = datetime.now(timezone.utc).isoformat()
    with detector:
        series = collect_overlay_series(iter_frames(video_path, stride=stride), detector, tracker)

    npz_path, json_path = save_overlay_artifacts(
        series=series,
        config=config,
        video_path=video_path,
        extract_time=started_at,
    )
    payload = json.loads(json_path.read_text(encoding="utf-8"))
    return {
        "overlay_npz_path": str(npz_path),
        "overlay_json_path": str(json_path),
        "quality_stats": payload["quality_stats"],
    }
