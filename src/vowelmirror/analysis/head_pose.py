from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from vowelmirror.analysis.errors import DegenerateGeometry
from vowelmirror.analysis.features import EPSILON, Landmarks, landmark_point, require_landmarks
from vowelmirror.landmarks.indices import FACE_ANCHORS, LEFT_EYE_INNER, NOSE_TIP, RIGHT_EYE_INNER


@dataclass(frozen=True, eq=False)
class HeadPoseFrame:
    """Orthonormal head coordinate frame anchored at the nose tip.

    ``scale`` is the inter-eye distance in the same units as the input points.
    Frames are rebuilt for every video frame and never mutated.
    """

    origin: np.ndarray
    right: np.ndarray
    up: np.ndarray
    forward: np.ndarray
    scale: float

    def basis(self) -> np.ndarray:
        """Return the 3x3 matrix whose rows are (right, up, forward)."""
        return np.stack([self.right, self.up, self.forward], axis=0)

    def to_local(self, points: np.ndarray) -> np.ndarray:
        offsets = np.asarray(points, dtype=np.float64) - self.origin
        return offsets @ self.basis().T

    def to_world(self, local_points: np.ndarray) -> np.ndarray:
        return self.origin + np.asarray(local_points, dtype=np.float64) @ self.basis()

    def is_close(self, other: HeadPoseFrame, atol: float = 1e-9) -> bool:
        """Compare two frames axis by axis within ``atol``."""
        return (
            np.allclose(self.origin, other.origin, atol=atol)
            and np.allclose(self.basis(), other.basis(), atol=atol)
            and abs(self.scale - other.scale) <= atol
        )

    def as_dict(self) -> dict[str, list[float] | float]:
        return {
            "origin": self.origin.tolist(),
            "right": self.right.tolist(),
            "up": self.up.tolist(),
            "forward": self.forward.tolist(),
            "scale": self.scale,
        }


def _as_point(value: Sequence[float], name: str) -> np.ndarray:
    point = np.array(value, dtype=np.float64)
    if point.shape != (3,):
        raise ValueError(f"{name} must have shape (3,), got {point.shape}")
    if not np.isfinite(point).all():
        raise ValueError(f"{name} must be finite")
    point.setflags(write=False)
    return point


def _normalize(vector: np.ndarray, name: str) -> tuple[np.ndarray, float]:
    length = float(np.linalg.norm(vector))
    if length < EPSILON:
        raise DegenerateGeometry(f"Degenerate head pose: {name} vector length {length:.3g} is below {EPSILON}")
    unit = vector / length
    unit.setflags(write=False)
    return unit, length


def build_head_pose_frame(
    nose: Sequence[float],
    left_eye: Sequence[float],
    right_eye: Sequence[float],
) -> HeadPoseFrame:
    nose_pt = _as_point(nose, "nose")
    left_pt = _as_point(left_eye, "left_eye")
    right_pt = _as_point(right_eye, "right_eye")

    right_vec, scale = _normalize(right_pt - left_pt, "right")
    eye_center = (left_pt + right_pt) / 2.0
    down_vec, _ = _normalize(nose_pt - eye_center, "down")
    forward_vec, _ = _normalize(np.cross(right_vec, down_vec), "forward")
    up_vec, _ = _normalize(np.cross(forward_vec, right_vec), "up")

    return HeadPoseFrame(
        origin=nose_pt,
        right=right_vec,
        up=up_vec,
        forward=forward_vec,
        scale=scale,
    )


def head_pose_from_landmarks(landmarks: Landmarks, *, context: str | None = None) -> HeadPoseFrame:
    require_landmarks(landmarks, FACE_ANCHORS, context=context)
    return build_head_pose_frame(
        landmark_point(landmarks, NOSE_TIP),
        landmark_point(landmarks, LEFT_EYE_INNER),
        landmark_point(landmarks, RIGHT_EYE_INNER),
    )
