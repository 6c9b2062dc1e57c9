from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping

import numpy as np

from vowelmirror.landmarks.indices import MIN_LANDMARK_COUNT


@dataclass(frozen=True)
class LandmarkFrame:
    """Detector output for one video frame, normalized once at ingestion."""

    landmarks: Mapping[int, np.ndarray]
    blendshapes: Mapping[str, float] = field(default_factory=dict)
    timestamp_ms: int = 0


def landmark_frame_from_array(
    landmarks_xyz: np.ndarray,
    blendshapes: Mapping[str, float] | None = None,
    timestamp_ms: int = 0,
) -> LandmarkFrame:
    points = np.asarray(landmarks_xyz, dtype=np.float64)
    if points.ndim != 2 or points.shape[1] != 3:
        raise ValueError(f"landmarks_xyz must have shape (N, 3), got {points.shape}")
    if points.shape[0] < MIN_LANDMARK_COUNT:
        raise ValueError(f"landmarks_xyz must contain at least {MIN_LANDMARK_COUNT} points, got {points.shape[0]}")

    # Non-finite rows are left out so lookups fail as missing landmarks.
    finite = np.isfinite(points).all(axis=1)
    landmarks = {int(idx): points[idx].copy() for idx in np.flatnonzero(finite)}
    scores = {str(name): float(score) for name, score in (blendshapes or {}).items()}
    return LandmarkFrame(landmarks=landmarks, blendshapes=scores, timestamp_ms=int(timestamp_ms))


class LandmarkProvider(ABC):
    """Interface for frame-level facial landmark detection."""

    @abstractmethod
    def detect(self, image_rgb: np.ndarray, timestamp_ms: int) -> LandmarkFrame | None:
        """Return the first face in ``image_rgb``, or ``None`` when no face is found."""

    def close(self) -> None:
        """Release detector resources."""

    def __enter__(self) -> LandmarkProvider:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
