from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from vowelmirror.analysis.errors import UnknownVowel
from vowelmirror.analysis.smoothing import DEFAULT_ALPHA, DEFAULT_HISTORY_SIZE
from vowelmirror.analysis.vowel_model import resolve_vowel

DEFAULT_ARTIFACT_ROOT = Path("artifacts")


class OverlayConfig(BaseModel):
    calibration_path: Path = Field(description="Vowel calibration JSON file")
    vowel: str = Field(description="Target vowel symbol or romanized alias")
    smoothing_alpha: float = Field(default=DEFAULT_ALPHA, ge=0.0, lt=1.0)
    history_size: int = Field(default=DEFAULT_HISTORY_SIZE, ge=0)
    hold_last_overlay: bool = True
    artifact_root: Path = Field(default=DEFAULT_ARTIFACT_ROOT, description="Output root directory")

    @field_validator("calibration_path")
    @classmethod
    def validate_calibration_path(cls, value: Path) -> Path:
        if not value.exists():
            raise ValueError(f"Calibration file does not exist: {value}")
        if not value.is_file():
            raise ValueError(f"Calibration path is not a file: {value}")
        return value

    @field_validator("vowel")
    @classmethod
    def validate_vowel(cls, value: str) -> str:
        try:
            return resolve_vowel(value)
        except UnknownVowel as exc:
            raise ValueError(str(exc)) from exc

    @field_validator("artifact_root")
    @classmethod
    def validate_artifact_root(cls, value: Path) -> Path:
        if value.exists() and not value.is_dir():
            raise ValueError(f"Output path is not a directory: {value}")
        return value

    def as_summary(self) -> dict[str, str | float | int | bool]:
        return {
            "calibration_path": str(self.calibration_path),
            "vowel": self.vowel,
            "smoothing_alpha": self.smoothing_alpha,
            "history_size": self.history_size,
            "hold_last_overlay": self.hold_last_overlay,
            "artifact_root": str(self.artifact_root),
        }


def artifact_dir_for_video(video_path: str | Path, artifact_root: str | Path = DEFAULT_ARTIFACT_ROOT) -> Path:
    return Path(artifact_root) / Path(video_path).stem


def artifact_paths_for_video(
    video_path: str | Path,
    artifact_root: str | Path = DEFAULT_ARTIFACT_ROOT,
) -> dict[str, Path]:
    artifact_dir = artifact_dir_for_video(video_path=video_path, artifact_root=artifact_root)
    return {
        "artifact_dir": artifact_dir,
        "overlay_npz": artifact_dir / "overlay.npz",
        "overlay_json": artifact_dir / "overlay.json",
    }
