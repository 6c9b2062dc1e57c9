from __future__ import annotations

from typing import Iterable, Sequence


class VowelMirrorError(ValueError):
    """Base class for value-level failures raised by the overlay engine."""


class MissingLandmark(VowelMirrorError):
    def __init__(self, index: int, context: str | None = None) -> None:
        self.index = int(index)
        self.context = context
        where = f" in {context}" if context else ""
        super().__init__(f"Missing required landmark: {self.index}{where}")


class DegenerateGeometry(VowelMirrorError):
    """Raised when a head-pose frame cannot be built from the anchor points."""


class DegenerateNormalization(VowelMirrorError):
    """Raised when the inter-eye distance is too small to normalize features."""


class UnknownVowel(VowelMirrorError):
    def __init__(self, symbol: str, choices: Iterable[str] = ()) -> None:
        self.symbol = symbol
        valid = ", ".join(choices)
        message = f"Unknown vowel: {symbol!r}"
        if valid:
            message += f". Must be one of: {valid}"
        super().__init__(message)


class CalibrationError(VowelMirrorError):
    """Calibration data is unusable; reported once, before any frame is processed."""

    def __init__(self, problems: Sequence[str], source: str | None = None) -> None:
        self.problems = list(problems)
        self.source = source
        header = f"Invalid calibration data: {source}" if source else "Invalid calibration data"
        super().__init__("\n".join([header, *(f"- {problem}" for problem in self.problems)]))


# Failures that only invalidate the current frame.
FRAME_ERRORS = (MissingLandmark, DegenerateGeometry, DegenerateNormalization)
