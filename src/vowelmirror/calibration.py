from __future__ import annotations

import json
import math
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Sequence

import numpy as np
from pydantic import BaseModel, Field, ValidationError, field_validator

from vowelmirror.analysis.errors import CalibrationError, MissingLandmark, VowelMirrorError
from vowelmirror.analysis.features import Landmarks, compute_features
from vowelmirror.analysis.head_pose import head_pose_from_landmarks
from vowelmirror.landmarks.indices import ALL_TRACKED_LANDMARKS, TARGET_BLENDSHAPES

CALIBRATION_KEYS = ("neutral", "a", "u", "i")
DEFAULT_CALIBRATION_FILENAME = "vowel_calibration.json"


def _frozen_point(value: Sequence[float]) -> np.ndarray:
    point = np.array(value, dtype=np.float64)
    point.setflags(write=False)
    return point


@dataclass(frozen=True)
class CalibrationFrame:
    """One captured landmark + blendshape snapshot for a calibration pose."""

    landmarks: Mapping[int, np.ndarray]
    blendshapes: Mapping[str, float]

    @classmethod
    def from_mappings(
        cls,
        landmarks: Mapping[int, Sequence[float]],
        blendshapes: Mapping[str, float] | None = None,
    ) -> CalibrationFrame:
        points = {int(idx): _frozen_point(value) for idx, value in landmarks.items()}
        scores = {str(name): float(score) for name, score in (blendshapes or {}).items()}
        return cls(landmarks=MappingProxyType(points), blendshapes=MappingProxyType(scores))

    def points(self, indices: Iterable[int]) -> np.ndarray:
        rows = []
        for idx in indices:
            if idx not in self.landmarks:
                raise MissingLandmark(idx)
            rows.append(self.landmarks[idx])
        return np.stack(rows, axis=0)


@dataclass(frozen=True)
class CalibrationSet:
    neutral: CalibrationFrame
    a: CalibrationFrame
    u: CalibrationFrame
    i: CalibrationFrame

    def frame_for(self, name: str) -> CalibrationFrame:
        if name not in CALIBRATION_KEYS:
            valid = ", ".join(CALIBRATION_KEYS)
            raise ValueError(f"Unsupported calibration frame '{name}'. Expected one of: {valid}")
        return getattr(self, name)

    def frames(self) -> dict[str, CalibrationFrame]:
        return {name: self.frame_for(name) for name in CALIBRATION_KEYS}


class CalibrationFrameModel(BaseModel):
    landmarks: dict[int, tuple[float, float, float]]
    blendshapes: dict[str, float] = Field(default_factory=dict)

    @field_validator("landmarks")
    @classmethod
    def validate_landmarks(
        cls, value: dict[int, tuple[float, float, float]]
    ) -> dict[int, tuple[float, float, float]]:
        for idx, point in value.items():
            if idx < 0:
                raise ValueError(f"Landmark index must be >= 0, got: {idx}")
            if not all(math.isfinite(coord) for coord in point):
                raise ValueError(f"Landmark {idx} has non-finite coordinates: {list(point)}")
        return value


class CalibrationModel(BaseModel):
    neutral: CalibrationFrameModel
    a: CalibrationFrameModel
    u: CalibrationFrameModel
    i: CalibrationFrameModel


def _format_validation_error(exc: ValidationError) -> list[str]:
    problems: list[str] = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        message = error.get("msg", "Invalid value")
        problems.append(f"{location}: {message}" if location else message)
    return problems


def validate_calibration(calibration: CalibrationSet) -> list[str]:
    """Return every problem that would make per-frame processing fail."""
    problems: list[str] = []
    for name, frame in calibration.frames().items():
        missing = [idx for idx in ALL_TRACKED_LANDMARKS if idx not in frame.landmarks]
        if missing:
            problems.append(f"{name}: missing tracked landmarks {missing}")
            continue
        try:
            compute_features(frame.landmarks, context=name)
        except VowelMirrorError as exc:
            problems.append(f"{name}: {exc}")

    try:
        head_pose_from_landmarks(calibration.neutral.landmarks, context="neutral")
    except VowelMirrorError as exc:
        problems.append(f"neutral: {exc}")
    return problems


def calibration_from_payload(payload: Mapping[str, Any], *, source: str | None = None) -> CalibrationSet:
    try:
        model = CalibrationModel.model_validate(payload)
    except ValidationError as exc:
        raise CalibrationError(_format_validation_error(exc), source=source) from exc

    calibration = CalibrationSet(
        **{
            name: CalibrationFrame.from_mappings(frame.landmarks, frame.blendshapes)
            for name, frame in ((key, getattr(model, key)) for key in CALIBRATION_KEYS)
        }
    )
    problems = validate_calibration(calibration)
    if problems:
        raise CalibrationError(problems, source=source)
    return calibration


def load_calibration(path: str | Path) -> CalibrationSet:
    resolved = Path(path)
    if not resolved.exists():
        raise FileNotFoundError(
            f"Calibration file not found: {resolved}\n"
            f"Capture neutral, a, u and i poses and save them as {DEFAULT_CALIBRATION_FILENAME}"
        )
    try:
        payload = json.loads(resolved.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise CalibrationError([f"not valid JSON: {exc.msg} (line {exc.lineno})"], source=str(resolved)) from exc
    if not isinstance(payload, dict):
        raise CalibrationError(["top-level value must be an object"], source=str(resolved))
    return calibration_from_payload(payload, source=str(resolved))


def calibration_to_payload(calibration: CalibrationSet) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for name, frame in calibration.frames().items():
        payload[name] = {
            "landmarks": {
                str(idx): [float(coord) for coord in point] for idx, point in sorted(frame.landmarks.items())
            },
            "blendshapes": {key: float(score) for key, score in frame.blendshapes.items()},
        }
    return payload


def save_calibration(calibration: CalibrationSet, path: str | Path) -> Path:
    out_path = Path(path)
    if out_path.suffix.lower() != ".json":
        raise ValueError(f"Calibration output must be a .json file: {out_path}")
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(json.dumps(calibration_to_payload(calibration), indent=2), encoding="utf-8")
    return out_path


def capture_calibration_frame(
    landmarks: Landmarks,
    blendshapes: Mapping[str, float] | None = None,
) -> CalibrationFrame:
    """Snapshot the tracked landmarks and target blendshapes of one detector frame."""
    captured: dict[int, Sequence[float]] = {}
    for idx in ALL_TRACKED_LANDMARKS:
        if idx not in landmarks:
            raise MissingLandmark(idx, context="captured frame")
        captured[idx] = landmarks[idx]

    scores = {name: float(score) for name, score in (blendshapes or {}).items() if name in TARGET_BLENDSHAPES}
    return CalibrationFrame.from_mappings(captured, scores)
