from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest

from vowelmirror.calibration import CalibrationFrame, CalibrationSet, calibration_to_payload
from vowelmirror.landmarks.indices import (
    INNER_LIP,
    LANDMARK_COUNT,
    LEFT_EYE_INNER,
    NOSE_TIP,
    OUTER_LIP,
    RIGHT_EYE_INNER,
)

NOSE = np.asarray([0.50, 0.55, -0.05])
LEFT_EYE = np.asarray([0.45, 0.40, 0.00])
RIGHT_EYE = np.asarray([0.55, 0.40, 0.00])
MOUTH_CENTER = np.asarray([0.50, 0.66, -0.01])

MOUTH_SHAPES = {
    "neutral": {"rx": 0.040, "ry": 0.008, "dz": 0.000},
    "a": {"rx": 0.038, "ry": 0.030, "dz": 0.002},
    "u": {"rx": 0.024, "ry": 0.014, "dz": -0.012},
    "i": {"rx": 0.056, "ry": 0.006, "dz": 0.001},
}
BLENDSHAPES = {
    "neutral": {"jawOpen": 0.02, "mouthPucker": 0.05, "mouthSmileLeft": 0.01, "mouthSmileRight": 0.01},
    "a": {"jawOpen": 0.71, "mouthPucker": 0.04, "mouthSmileLeft": 0.02, "mouthSmileRight": 0.02},
    "u": {"jawOpen": 0.12, "mouthPucker": 0.88, "mouthFunnel": 0.41},
    "i": {"jawOpen": 0.05, "mouthSmileLeft": 0.64, "mouthSmileRight": 0.61},
}


def _contour(indices: list[int], rx: float, ry: float, dz: float) -> dict[int, np.ndarray]:
    points: dict[int, np.ndarray] = {}
    count = len(indices)
    for k, idx in enumerate(indices):
        theta = np.pi - (2.0 * np.pi * k / count)
        points[idx] = MOUTH_CENTER + np.asarray(
            [rx * np.cos(theta), -ry * np.sin(theta), dz + 0.004 * np.cos(theta) ** 2]
        )
    return points


def make_face(rx: float = 0.040, ry: float = 0.008, dz: float = 0.0) -> dict[int, np.ndarray]:
    landmarks = {
        NOSE_TIP: NOSE.copy(),
        LEFT_EYE_INNER: LEFT_EYE.copy(),
        RIGHT_EYE_INNER: RIGHT_EYE.copy(),
    }
    landmarks.update(_contour(OUTER_LIP, rx, ry, dz))
    landmarks.update(_contour(INNER_LIP, rx * 0.8, ry * 0.6, dz))
    return landmarks


def rotation_matrix(yaw_deg: float, pitch_deg: float, roll_deg: float) -> np.ndarray:
    yaw, pitch, roll = np.deg2rad([yaw_deg, pitch_deg, roll_deg])
    ry = np.asarray([[np.cos(yaw), 0.0, np.sin(yaw)], [0.0, 1.0, 0.0], [-np.sin(yaw), 0.0, np.cos(yaw)]])
    rx = np.asarray([[1.0, 0.0, 0.0], [0.0, np.cos(pitch), -np.sin(pitch)], [0.0, np.sin(pitch), np.cos(pitch)]])
    rz = np.asarray([[np.cos(roll), -np.sin(roll), 0.0], [np.sin(roll), np.cos(roll), 0.0], [0.0, 0.0, 1.0]])
    return rz @ rx @ ry


def move_face(
    landmarks: dict[int, np.ndarray],
    rotation: np.ndarray | None = None,
    scale: float = 1.0,
    translation: tuple[float, float, float] = (0.0, 0.0, 0.0),
) -> dict[int, np.ndarray]:
    """Apply a similarity transform about the nose tip."""
    rot = np.eye(3) if rotation is None else rotation
    pivot = landmarks[NOSE_TIP]
    shift = np.asarray(translation, dtype=np.float64)
    return {idx: pivot + shift + scale * (rot @ (point - pivot)) for idx, point in landmarks.items()}


def to_full_array(landmarks: dict[int, np.ndarray]) -> np.ndarray:
    array = np.full((LANDMARK_COUNT, 3), np.nan, dtype=np.float64)
    for idx, point in landmarks.items():
        array[idx] = point
    return array


@pytest.fixture()
def calibration() -> CalibrationSet:
    frames = {
        name: CalibrationFrame.from_mappings(make_face(**shape), BLENDSHAPES[name])
        for name, shape in MOUTH_SHAPES.items()
    }
    return CalibrationSet(**frames)


@pytest.fixture()
def calibration_path(tmp_path: Path, calibration: CalibrationSet) -> Path:
    path = tmp_path / "vowel_calibration.json"
    path.write_text(json.dumps(calibration_to_payload(calibration)), encoding="utf-8")
    return path


def write_dummy_video(tmp_path: Path, frame_count: int = 6, width: int = 64, height: int = 48) -> Path:
    import cv2

    for name, codec in (("dummy.mp4", "mp4v"), ("dummy.avi", "MJPG")):
        path = tmp_path / name
        writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*codec), 10.0, (width, height))
        if not writer.isOpened():
            continue
        try:
            for idx in range(frame_count):
                writer.write(np.full((height, width, 3), (idx * 40) % 255, dtype=np.uint8))
        finally:
            writer.release()
        if path.exists() and path.stat().st_size > 0:
            return path
    pytest.skip("No available OpenCV writer codec for test video generation")
