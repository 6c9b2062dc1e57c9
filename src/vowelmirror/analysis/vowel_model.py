"""Korean monophthong model built on top of vowel calibration data.

Three vowels are captured directly during calibration (basis vowels): ㅏ (jaw
opening), ㅜ (lip rounding) and ㅣ (lip spreading). Every other monophthong is
described as neutral plus a linear combination of those three movements.

Two views of the same model are provided:

* the per-landmark path (:func:`synthesize_vowel_target`) mixes the captured
  mouth coordinates point by point and drives the rendered overlay;
* the feature-space path (:func:`compute_vowel_basis`, :func:`vowel_feature_target`)
  mixes aggregate (A, W, P) descriptors and is used for diagnostics only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

import numpy as np

from vowelmirror.analysis.errors import UnknownVowel
from vowelmirror.analysis.features import FeatureVector, compute_features
from vowelmirror.calibration import CalibrationSet
from vowelmirror.landmarks.indices import MOUTH_LANDMARKS

# Assumed transition time (seconds) used to turn basis magnitudes into rates.
T0 = 0.2


@dataclass(frozen=True)
class Coefficients:
    open: float
    round: float
    spread: float


BASIS_VOWELS: dict[str, str] = {
    "ㅏ": "a",
    "ㅜ": "u",
    "ㅣ": "i",
}

VOWEL_COEFFS_MONO: dict[str, Coefficients] = {
    "ㅓ": Coefficients(open=0.55, round=0.0, spread=0.0),
    "ㅔ": Coefficients(open=0.40, round=0.0, spread=0.70),
    "ㅐ": Coefficients(open=0.42, round=0.0, spread=0.68),
    "ㅗ": Coefficients(open=0.35, round=0.85, spread=-0.15),
    "ㅛ": Coefficients(open=0.25, round=0.90, spread=-0.10),
    "ㅠ": Coefficients(open=0.12, round=0.98, spread=0.15),
    "ㅡ": Coefficients(open=0.20, round=0.0, spread=0.0),
}

# Equivalent coefficients of the basis vowels, used by the feature-space view.
BASIS_COEFFS: dict[str, Coefficients] = {
    "ㅏ": Coefficients(open=1.0, round=0.0, spread=0.0),
    "ㅜ": Coefficients(open=0.0, round=1.0, spread=0.0),
    "ㅣ": Coefficients(open=0.0, round=0.0, spread=1.0),
}

VOWEL_ORDER = ["ㅏ", "ㅓ", "ㅗ", "ㅜ", "ㅡ", "ㅣ", "ㅐ", "ㅔ", "ㅛ", "ㅠ"]

VOWEL_ALIASES: dict[str, str] = {
    "a": "ㅏ",
    "eo": "ㅓ",
    "o": "ㅗ",
    "u": "ㅜ",
    "eu": "ㅡ",
    "i": "ㅣ",
    "ae": "ㅐ",
    "e": "ㅔ",
    "yo": "ㅛ",
    "yu": "ㅠ",
}


def resolve_vowel(symbol: str) -> str:
    """Return the canonical Hangul symbol for ``symbol`` or its romanized alias."""
    text = str(symbol).strip()
    canonical = VOWEL_ALIASES.get(text.lower(), text)
    if canonical not in BASIS_VOWELS and canonical not in VOWEL_COEFFS_MONO:
        raise UnknownVowel(symbol, VOWEL_ORDER)
    return canonical


def is_basis_vowel(symbol: str) -> bool:
    return resolve_vowel(symbol) in BASIS_VOWELS


def coefficients_for(symbol: str) -> Coefficients:
    canonical = resolve_vowel(symbol)
    if canonical in BASIS_COEFFS:
        return BASIS_COEFFS[canonical]
    return VOWEL_COEFFS_MONO[canonical]


@dataclass(frozen=True)
class VowelBasis:
    open: np.ndarray
    round: np.ndarray
    spread: np.ndarray
    features: dict[str, FeatureVector]
    open_rate: float
    round_rate: float
    spread_rate: float

    @property
    def neutral(self) -> FeatureVector:
        return self.features["neutral"]

    def rates(self) -> dict[str, float]:
        return {"open": self.open_rate, "round": self.round_rate, "spread": self.spread_rate}


def compute_vowel_basis(calibration: CalibrationSet, *, t0: float = T0) -> VowelBasis:
    if t0 <= 0:
        raise ValueError(f"t0 must be > 0, got: {t0}")

    features = {
        name: compute_features(frame.landmarks, context=name) for name, frame in calibration.frames().items()
    }
    # Deltas are always taken against neutral, never against each other.
    open_delta = features["a"] - features["neutral"]
    round_delta = features["u"] - features["neutral"]
    spread_delta = features["i"] - features["neutral"]

    return VowelBasis(
        open=open_delta,
        round=round_delta,
        spread=spread_delta,
        features=features,
        open_rate=float(np.linalg.norm(open_delta) / t0),
        round_rate=float(np.linalg.norm(round_delta) / t0),
        spread_rate=float(np.linalg.norm(spread_delta) / t0),
    )


def vowel_feature_target(symbol: str, basis: VowelBasis) -> FeatureVector:
    coeffs = coefficients_for(symbol)
    target = (
        basis.neutral.as_array()
        + coeffs.open * basis.open
        + coeffs.round * basis.round
        + coeffs.spread * basis.spread
    )
    return FeatureVector.from_array(target)


def mix_landmarks(
    calibration: CalibrationSet,
    coeffs: Coefficients,
    indices: Iterable[int] = MOUTH_LANDMARKS,
) -> dict[int, np.ndarray]:
    index_list = list(indices)
    neutral = calibration.neutral.points(index_list)
    mixed = (
        neutral
        + coeffs.open * (calibration.a.points(index_list) - neutral)
        + coeffs.round * (calibration.u.points(index_list) - neutral)
        + coeffs.spread * (calibration.i.points(index_list) - neutral)
    )
    return {idx: mixed[row] for row, idx in enumerate(index_list)}


def synthesize_vowel_target(
    symbol: str,
    calibration: CalibrationSet,
    indices: Iterable[int] = MOUTH_LANDMARKS,
) -> dict[int, np.ndarray]:
    """Static target mouth shape for ``symbol`` in calibration coordinates."""
    canonical = resolve_vowel(symbol)
    index_list = list(indices)
    if canonical in BASIS_VOWELS:
        frame = calibration.frame_for(BASIS_VOWELS[canonical])
        points = frame.points(index_list)
        return {idx: points[row].copy() for row, idx in enumerate(index_list)}
    return mix_landmarks(calibration, VOWEL_COEFFS_MONO[canonical], index_list)


def describe_vowels(basis: VowelBasis) -> list[dict[str, float | str]]:
    rows: list[dict[str, float | str]] = []
    for symbol in VOWEL_ORDER:
        coeffs = coefficients_for(symbol)
        features = vowel_feature_target(symbol, basis)
        rows.append(
            {
                "vowel": symbol,
                "mode": "basis" if symbol in BASIS_VOWELS else "derived",
                "open": coeffs.open,
                "round": coeffs.round,
                "spread": coeffs.spread,
                "A": features.A,
                "W": features.W,
                "P": features.P,
            }
        )
    return rows
