from __future__ import annotations

from pathlib import Path
from typing import Any

import numpy as np

from vowelmirror.landmarks.indices import LANDMARK_COUNT
from vowelmirror.landmarks.provider_base import LandmarkFrame, LandmarkProvider, landmark_frame_from_array

OFFICIAL_FACE_LANDMARKER_MODEL_URL = (
    "https://storage.googleapis.com/mediapipe-models/face_landmarker/"
    "face_landmarker/float16/1/face_landmarker.task"
)
DEFAULT_MODEL_PATH = Path("models/face_landmarker.task")


def _build_missing_model_message(model_path: Path) -> str:
    return (
        f"Model file not found: {model_path}\n"
        f"Official model URL: {OFFICIAL_FACE_LANDMARKER_MODEL_URL}\n"
        "Download example:\n"
        f'mkdir -p "{model_path.parent}"\n'
        f'curl -L -o "{model_path}" "{OFFICIAL_FACE_LANDMARKER_MODEL_URL}"'
    )


def _require_model_file(model_path: str | Path) -> Path:
    resolved = Path(model_path)
    if not resolved.exists() or not resolved.is_file():
        raise FileNotFoundError(_build_missing_model_message(resolved))
    return resolved


def _import_mediapipe() -> Any:
    try:
        import mediapipe as mp  # type: ignore
    except ImportError as exc:
        raise ImportError(
            "mediapipe is required for landmark detection. Install with: pip install mediapipe"
        ) from exc
    return mp


def _to_blendshape_scores(result: Any) -> dict[str, float]:
    scores: dict[str, float] = {}
    if not getattr(result, "face_blendshapes", None):
        return scores

    first = result.face_blendshapes[0]
    categories = getattr(first, "categories", first)
    if categories is None:
        return scores

    for category in categories:
        name = getattr(category, "category_name", None) or getattr(category, "display_name", None) or ""
        score = getattr(category, "score", None)
        if name and score is not None:
            scores[str(name)] = float(score)
    return scores


def _to_landmark_array(face: Any) -> np.ndarray:
    points = np.full((max(len(face), LANDMARK_COUNT), 3), np.nan, dtype=np.float64)
    for idx, landmark in enumerate(face):
        points[idx] = (landmark.x, landmark.y, landmark.z)
    return points


def landmark_frame_from_result(result: Any, timestamp_ms: int = 0) -> LandmarkFrame | None:
    """Normalize a Face Landmarker result into a :class:`LandmarkFrame`.

    Only the first face is used. Returns ``None`` when no face was detected.
    """
    faces = getattr(result, "face_landmarks", None)
    if not faces:
        return None
    return landmark_frame_from_array(
        _to_landmark_array(faces[0]),
        blendshapes=_to_blendshape_scores(result),
        timestamp_ms=timestamp_ms,
    )


class MediaPipeLandmarkProvider(LandmarkProvider):
    """Face Landmarker in VIDEO mode with blendshape output enabled."""

    def __init__(
        self,
        model_path: str | Path = DEFAULT_MODEL_PATH,
        *,
        use_gpu_delegate: bool = False,
        min_detection_confidence: float = 0.5,
        min_presence_confidence: float = 0.5,
    ) -> None:
        model_file = _require_model_file(model_path)
        mp = _import_mediapipe()
        base_options_kwargs: dict[str, Any] = {"model_asset_path": str(model_file)}
        if use_gpu_delegate:
            base_options_kwargs["delegate"] = mp.tasks.BaseOptions.Delegate.GPU
        options = mp.tasks.vision.FaceLandmarkerOptions(
            base_options=mp.tasks.BaseOptions(**base_options_kwargs),
            running_mode=mp.tasks.vision.RunningMode.VIDEO,
            num_faces=1,
            min_face_detection_confidence=min_detection_confidence,
            min_face_presence_confidence=min_presence_confidence,
            output_face_blendshapes=True,
        )
        self._mp = mp
        self._landmarker = mp.tasks.vision.FaceLandmarker.create_from_options(options)

    def detect(self, image_rgb: np.ndarray, timestamp_ms: int) -> LandmarkFrame | None:
        mp_image = self._mp.Image(
            image_format=self._mp.ImageFormat.SRGB,
            data=np.ascontiguousarray(image_rgb),
        )
        result = self._landmarker.detect_for_video(mp_image, int(timestamp_ms))
        return landmark_frame_from_result(result, timestamp_ms=timestamp_ms)

    def close(self) -> None:
        self._landmarker.close()
