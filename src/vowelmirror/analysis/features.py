from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

import numpy as np

from vowelmirror.analysis.errors import DegenerateNormalization, MissingLandmark
from vowelmirror.landmarks.indices import (
    FEATURE_REQUIRED_LANDMARKS,
    LEFT_EYE_INNER,
    LOWER_LIP_SAMPLES,
    MOUTH_CORNERS,
    RIGHT_EYE_INNER,
    UPPER_LIP_SAMPLES,
)

EPSILON = 1e-6

Landmarks = Mapping[int, Sequence[float]]


@dataclass(frozen=True)
class FeatureVector:
    """Normalized articulatory descriptor of a mouth shape.

    ``A`` is the vertical aperture, ``W`` the corner-to-corner width and ``P``
    the pucker (inverse width). ``A`` and ``W`` are divided by the inter-eye
    distance so they do not depend on how far the face is from the camera.
    """

    A: float
    W: float
    P: float

    def as_array(self) -> np.ndarray:
        return np.asarray([self.A, self.W, self.P], dtype=np.float64)

    @classmethod
    def from_array(cls, values: Sequence[float]) -> FeatureVector:
        arr = np.asarray(values, dtype=np.float64)
        if arr.shape != (3,):
            raise ValueError(f"Feature array must have shape (3,), got {arr.shape}")
        return cls(A=float(arr[0]), W=float(arr[1]), P=float(arr[2]))

    def __sub__(self, other: FeatureVector) -> np.ndarray:
        return self.as_array() - other.as_array()


def require_landmarks(
    landmarks: Landmarks,
    indices: Iterable[int],
    context: str | None = None,
) -> None:
    for idx in indices:
        if idx not in landmarks:
            raise MissingLandmark(idx, context=context)


def landmark_point(landmarks: Landmarks, idx: int) -> np.ndarray:
    if idx not in landmarks:
        raise MissingLandmark(idx)
    point = np.asarray(landmarks[idx], dtype=np.float64)
    if point.shape != (3,):
        raise ValueError(f"Landmark {idx} must have 3 coordinates, got shape {point.shape}")
    return point


def _mean_y(landmarks: Landmarks, indices: Sequence[int]) -> float:
    return float(np.mean([landmark_point(landmarks, idx)[1] for idx in indices]))


def compute_features(landmarks: Landmarks, *, context: str | None = None) -> FeatureVector:
    require_landmarks(landmarks, FEATURE_REQUIRED_LANDMARKS, context=context)

    eye_distance = float(
        np.linalg.norm(landmark_point(landmarks, RIGHT_EYE_INNER) - landmark_point(landmarks, LEFT_EYE_INNER))
    )
    if eye_distance < EPSILON:
        raise DegenerateNormalization(f"Eye distance too small for normalization: {eye_distance:.3g}")

    left_corner, right_corner = MOUTH_CORNERS
    mouth_width = float(
        np.linalg.norm(landmark_point(landmarks, right_corner) - landmark_point(landmarks, left_corner))
    )
    width = mouth_width / eye_distance

    upper = _mean_y(landmarks, UPPER_LIP_SAMPLES)
    lower = _mean_y(landmarks, LOWER_LIP_SAMPLES)
    aperture = (lower - upper) / eye_distance
    pucker = 1.0 / max(width, EPSILON)

    return FeatureVector(A=aperture, W=width, P=pucker)
