from __future__ import annotations

import numpy as np
import pytest
from conftest import NOSE, make_face, move_face, rotation_matrix, to_full_array

from vowelmirror.analysis.errors import DegenerateGeometry, MissingLandmark, UnknownVowel
from vowelmirror.analysis.head_pose import head_pose_from_landmarks
from vowelmirror.analysis.overlay import OverlayTracker, transform_points, transform_target_shape
from vowelmirror.analysis.vowel_model import synthesize_vowel_target
from vowelmirror.calibration import CalibrationSet
from vowelmirror.landmarks.indices import LEFT_EYE_INNER, MOUTH_LANDMARKS, RIGHT_EYE_INNER
from vowelmirror.landmarks.provider_base import LandmarkFrame, landmark_frame_from_array


def _static_points(calibration: CalibrationSet, vowel: str = "ㅔ") -> np.ndarray:
    target = synthesize_vowel_target(vowel, calibration)
    return np.stack([target[idx] for idx in MOUTH_LANDMARKS], axis=0)


def _live_frame(landmarks: dict[int, np.ndarray], timestamp_ms: int = 0, **scores: float) -> LandmarkFrame:
    return landmark_frame_from_array(to_full_array(landmarks), blendshapes=scores, timestamp_ms=timestamp_ms)


def test_identity_transform_returns_points_unchanged(calibration: CalibrationSet) -> None:
    calibrated = head_pose_from_landmarks(calibration.neutral.landmarks)
    points = _static_points(calibration)

    assert np.allclose(transform_points(points, calibrated, calibrated), points, atol=1e-12)


def test_rigid_head_motion_carries_the_overlay(calibration: CalibrationSet) -> None:
    rotation = rotation_matrix(20.0, -12.0, 9.0)
    translation = np.asarray([0.04, -0.03, 0.02])
    calibrated = head_pose_from_landmarks(calibration.neutral.landmarks)
    live = head_pose_from_landmarks(
        move_face(make_face(), rotation=rotation, scale=1.3, translation=tuple(translation))
    )
    points = _static_points(calibration)

    result = transform_points(points, calibrated, live)
    expected = NOSE + translation + 1.3 * (points - NOSE) @ rotation.T
    assert np.allclose(result, expected, atol=1e-9)

    # Shape is preserved up to scale: pairwise distances scale by 1.3.
    before = np.linalg.norm(points[0] - points[10])
    after = np.linalg.norm(result[0] - result[10])
    assert np.isclose(after, 1.3 * before)


def test_scaling_live_anchors_scales_displacement(calibration: CalibrationSet) -> None:
    calibrated = head_pose_from_landmarks(calibration.neutral.landmarks)
    live_landmarks = move_face(make_face(), rotation=rotation_matrix(-15.0, 4.0, 6.0))
    live = head_pose_from_landmarks(live_landmarks)
    scaled = head_pose_from_landmarks({idx: 2.5 * point for idx, point in live_landmarks.items()})
    points = _static_points(calibration)

    base_disp = transform_points(points, calibrated, live) - live.origin
    scaled_disp = transform_points(points, calibrated, scaled) - scaled.origin
    assert np.allclose(scaled_disp, 2.5 * base_disp, atol=1e-12)
    assert np.allclose(scaled.right, live.right)
    assert np.allclose(scaled.forward, live.forward)


def test_transform_target_shape_keeps_indices(calibration: CalibrationSet) -> None:
    calibrated = head_pose_from_landmarks(calibration.neutral.landmarks)
    target = synthesize_vowel_target("ㅏ", calibration)

    moved = transform_target_shape(target, calibrated, calibrated)
    assert list(moved) == list(target)
    assert transform_target_shape({}, calibrated, calibrated) == {}
    with pytest.raises(ValueError):
        transform_points(np.zeros((3, 2)), calibrated, calibrated)


def test_tracker_reproduces_target_when_pose_matches_calibration(calibration: CalibrationSet) -> None:
    tracker = OverlayTracker(calibration, "ㅣ", alpha=0.5)
    result = tracker.process(_live_frame(make_face(), timestamp_ms=33, jawOpen=0.2))

    assert not result.skipped
    assert result.timestamp_ms == 33
    assert result.target_array().shape == (40, 3)
    for idx in MOUTH_LANDMARKS:
        assert np.allclose(result.target[idx], calibration.i.landmarks[idx], atol=1e-12)
    assert result.scores == {"jawOpen": 0.2}


def test_tracker_smooths_blendshape_scores(calibration: CalibrationSet) -> None:
    tracker = OverlayTracker(calibration, "ㅓ", alpha=0.75)
    tracker.process(_live_frame(make_face(), jawOpen=0.0))
    second = tracker.process(_live_frame(make_face(), jawOpen=1.0))

    assert second.scores["jawOpen"] == pytest.approx(0.25)


def test_tracker_holds_last_overlay_without_touching_state(calibration: CalibrationSet) -> None:
    tracker = OverlayTracker(calibration, "ㅗ", alpha=0.5)
    assert tracker.track(None) is None

    good = tracker.track(_live_frame(make_face(), timestamp_ms=0, jawOpen=0.4))
    assert good is not None and not good.skipped

    broken = make_face()
    broken[RIGHT_EYE_INNER] = broken[LEFT_EYE_INNER].copy()
    held = tracker.track(_live_frame(broken, timestamp_ms=66, jawOpen=1.0))
    assert held is not None and held.skipped
    assert held.timestamp_ms == 66
    assert held.target is good.target

    missing = tracker.track(None)
    assert missing is not None and missing.skipped

    # Skipped frames did not feed the smoother.
    after = tracker.track(_live_frame(make_face(), timestamp_ms=99, jawOpen=0.4))
    assert after is not None
    assert after.scores["jawOpen"] == pytest.approx(0.4)


def test_tracker_without_hold_propagates_frame_errors(calibration: CalibrationSet) -> None:
    tracker = OverlayTracker(calibration, "ㅗ", hold_last=False)
    landmarks = make_face()
    del landmarks[61]

    with pytest.raises(MissingLandmark):
        tracker.track(LandmarkFrame(landmarks=landmarks))
    assert tracker.track(None) is None


def test_degenerate_live_pose_propagates(calibration: CalibrationSet) -> None:
    tracker = OverlayTracker(calibration, "ㅗ")
    landmarks = make_face()
    landmarks[1] = (landmarks[LEFT_EYE_INNER] + landmarks[RIGHT_EYE_INNER]) / 2.0

    with pytest.raises(DegenerateGeometry):
        tracker.process(LandmarkFrame(landmarks=landmarks))
    assert tracker.last_good is None


def test_set_vowel_and_reset(calibration: CalibrationSet) -> None:
    tracker = OverlayTracker(calibration, "a")
    assert tracker.vowel == "ㅏ"

    tracker.set_vowel("yu")
    assert tracker.vowel == "ㅠ"
    expected = synthesize_vowel_target("ㅠ", calibration)
    assert all(np.array_equal(tracker.static_target[idx], expected[idx]) for idx in MOUTH_LANDMARKS)

    tracker.process(_live_frame(make_face(), jawOpen=0.3))
    tracker.reset()
    assert tracker.last_good is None
    assert tracker.score_smoother.history == []

    with pytest.raises(UnknownVowel):
        tracker.set_vowel("ㅢ")
