from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Mapping

import numpy as np

from vowelmirror.analysis.errors import FRAME_ERRORS
from vowelmirror.analysis.features import FeatureVector, compute_features
from vowelmirror.analysis.head_pose import HeadPoseFrame, head_pose_from_landmarks
from vowelmirror.analysis.smoothing import DEFAULT_ALPHA, DEFAULT_HISTORY_SIZE, ScoreSmoother
from vowelmirror.analysis.vowel_model import (
    VowelBasis,
    compute_vowel_basis,
    resolve_vowel,
    synthesize_vowel_target,
)
from vowelmirror.calibration import CalibrationSet
from vowelmirror.landmarks.indices import MOUTH_LANDMARKS, TARGET_BLENDSHAPES
from vowelmirror.landmarks.provider_base import LandmarkFrame


def transform_points(
    points: np.ndarray,
    calibrated_frame: HeadPoseFrame,
    live_frame: HeadPoseFrame,
) -> np.ndarray:
    """Re-express points captured under ``calibrated_frame`` in ``live_frame``.

    Each point is projected onto the calibrated basis, scaled by the ratio of
    inter-eye distances and rebuilt from the live basis around the live origin.
    """
    pts = np.asarray(points, dtype=np.float64)
    if pts.ndim != 2 or pts.shape[1] != 3:
        raise ValueError(f"points must have shape (N, 3), got {pts.shape}")

    local = calibrated_frame.to_local(pts)
    scale_ratio = live_frame.scale / calibrated_frame.scale
    return live_frame.to_world(local * scale_ratio)


def transform_target_shape(
    target: Mapping[int, np.ndarray],
    calibrated_frame: HeadPoseFrame,
    live_frame: HeadPoseFrame,
) -> dict[int, np.ndarray]:
    indices = list(target)
    if not indices:
        return {}
    stacked = np.stack([np.asarray(target[idx], dtype=np.float64) for idx in indices], axis=0)
    transformed = transform_points(stacked, calibrated_frame, live_frame)
    return {idx: transformed[row] for row, idx in enumerate(indices)}


@dataclass(frozen=True)
class OverlayResult:
    target: dict[int, np.ndarray]
    head_pose: HeadPoseFrame
    features: FeatureVector
    scores: dict[str, float]
    timestamp_ms: int
    skipped: bool = False

    def target_array(self, indices: list[int] | None = None) -> np.ndarray:
        order = MOUTH_LANDMARKS if indices is None else indices
        return np.stack([self.target[idx] for idx in order], axis=0)


class OverlayTracker:
    """Runs the per-frame pass for one tracked face stream.

    Calibration-derived state (vowel basis, calibrated head pose, static target)
    is computed once at construction and treated as read-only afterwards. The
    score smoother and the last good overlay belong to this instance; feed
    frames to it from a single caller, in order.
    """

    def __init__(
        self,
        calibration: CalibrationSet,
        vowel: str,
        *,
        alpha: float = DEFAULT_ALPHA,
        history_size: int = DEFAULT_HISTORY_SIZE,
        hold_last: bool = True,
    ) -> None:
        self.calibration = calibration
        self.basis: VowelBasis = compute_vowel_basis(calibration)
        self.calibrated_frame = head_pose_from_landmarks(calibration.neutral.landmarks, context="neutral")
        self.hold_last = hold_last
        self.score_smoother = ScoreSmoother(TARGET_BLENDSHAPES, alpha=alpha, history_size=history_size)
        self._last_good: OverlayResult | None = None
        self.set_vowel(vowel)

    @property
    def last_good(self) -> OverlayResult | None:
        return self._last_good

    def set_vowel(self, vowel: str) -> None:
        self.vowel = resolve_vowel(vowel)
        self.static_target = synthesize_vowel_target(self.vowel, self.calibration)

    def reset(self) -> None:
        self.score_smoother.reset()
        self._last_good = None

    def process(self, frame: LandmarkFrame) -> OverlayResult:
        # Everything that can fail runs before the smoother is touched.
        features = compute_features(frame.landmarks)
        live_frame = head_pose_from_landmarks(frame.landmarks)
        target = transform_target_shape(self.static_target, self.calibrated_frame, live_frame)

        scores = self.score_smoother.update(frame.blendshapes)
        result = OverlayResult(
            target=target,
            head_pose=live_frame,
            features=features,
            scores=scores,
            timestamp_ms=frame.timestamp_ms,
        )
        self._last_good = result
        return result

    def track(self, frame: LandmarkFrame | None) -> OverlayResult | None:
        """Process ``frame``, falling back to the last good overlay when it is unusable."""
        if frame is not None:
            try:
                return self.process(frame)
            except FRAME_ERRORS:
                if not self.hold_last:
                    raise
        if not self.hold_last or self._last_good is None:
            return None
        timestamp_ms = frame.timestamp_ms if frame is not None else self._last_good.timestamp_ms
        return replace(self._last_good, timestamp_ms=timestamp_ms, skipped=True)
