from __future__ import annotations

from typing import Iterable

LANDMARK_COUNT = 478
MIN_LANDMARK_COUNT = 468

NOSE_TIP = 1
LEFT_EYE_INNER = 133
RIGHT_EYE_INNER = 362
FACE_ANCHORS = [NOSE_TIP, LEFT_EYE_INNER, RIGHT_EYE_INNER]

OUTER_LIP = [
    61,
    185,
    40,
    39,
    37,
    0,
    267,
    269,
    270,
    409,
    291,
    375,
    321,
    405,
    314,
    17,
    84,
    181,
    91,
    146,
]
INNER_LIP = [
    78,
    191,
    80,
    81,
    82,
    13,
    312,
    311,
    310,
    415,
    308,
    324,
    318,
    402,
    317,
    14,
    87,
    178,
    88,
    95,
]
MOUTH_LANDMARKS = OUTER_LIP + INNER_LIP
ALL_TRACKED_LANDMARKS = FACE_ANCHORS + MOUTH_LANDMARKS

MOUTH_CORNERS = (61, 291)
UPPER_LIP_SAMPLES = (13, 81, 178)
LOWER_LIP_SAMPLES = (14, 311, 405)

# fmt: off
FEATURE_REQUIRED_LANDMARKS = [1, 133, 362, 61, 291, 0, 13, 14, 17, 39, 81, 269, 311, 402, 405, 178, 181]  # noqa: E501
# fmt: on

TARGET_BLENDSHAPES = ["jawOpen", "mouthPucker", "mouthSmileLeft", "mouthSmileRight", "mouthFunnel"]


def dedupe_preserve_order(values: Iterable[int]) -> list[int]:
    seen: set[int] = set()
    out: list[int] = []
    for value in values:
        idx = int(value)
        if idx not in seen:
            seen.add(idx)
            out.append(idx)
    return out


def _validate_landmark_tables() -> None:
    if len(FACE_ANCHORS) != 3:
        raise ValueError("FACE_ANCHORS must have length 3")
    if len(OUTER_LIP) != 20 or len(INNER_LIP) != 20:
        raise ValueError("OUTER_LIP and INNER_LIP must each have length 20")
    if dedupe_preserve_order(ALL_TRACKED_LANDMARKS) != ALL_TRACKED_LANDMARKS:
        raise ValueError("Tracked landmark indices must not contain duplicates")

    tables = [
        ("ALL_TRACKED_LANDMARKS", ALL_TRACKED_LANDMARKS),
        ("FEATURE_REQUIRED_LANDMARKS", FEATURE_REQUIRED_LANDMARKS),
    ]
    for name, values in tables:
        if not all(isinstance(value, int) for value in values):
            raise TypeError(f"{name} must contain integers only")
        if not all(0 <= value < MIN_LANDMARK_COUNT for value in values):
            raise ValueError(f"{name} values must be in range 0..{MIN_LANDMARK_COUNT - 1}")

    # Feature samples must be part of what calibration capture stores.
    tracked = set(ALL_TRACKED_LANDMARKS)
    for idx in FEATURE_REQUIRED_LANDMARKS:
        if idx not in tracked:
            raise ValueError(f"Feature landmark {idx} is not a tracked landmark")


_validate_landmark_tables()
