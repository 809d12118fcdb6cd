"""
Data types shared across the affect pipeline.

This module defines the base expression categories produced by the upstream
detector, the four output affect labels, and the GeometricFeatures dataclass
holding the per-frame facial geometry measurements.
"""

import math
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

import numpy as np


# Base expression categories emitted by the upstream classifier
BASE_EXPRESSIONS: Tuple[str, ...] = (
    "neutral",
    "happy",
    "sad",
    "angry",
    "fearful",
    "disgusted",
    "surprised",
)

# Output labels, in selection priority order (ties go to the earlier label)
AFFECT_LABELS: Tuple[str, ...] = ("happy", "focused", "confused", "frustrated")

DEFAULT_LABEL = "focused"

ExpressionDistribution = Dict[str, float]


def read_probability(distribution: Optional[Mapping[str, float]], name: str) -> float:
    """
    Read one category from a per-frame distribution.

    Missing categories and non-numeric or non-finite values read as 0.
    Values are clamped into [0, 1].
    """
    if not distribution:
        return 0.0
    value = distribution.get(name, 0.0)
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return min(1.0, max(0.0, value))


def has_probability_mass(distribution: Optional[Mapping[str, float]]) -> bool:
    """True if any base category reads as a positive probability."""
    return any(read_probability(distribution, name) > 0 for name in BASE_EXPRESSIONS)


def validate_label(label: str) -> str:
    """Raise ValueError unless label is one of AFFECT_LABELS."""
    if label not in AFFECT_LABELS:
        raise ValueError(
            f"Invalid affect label '{label}'. Must be one of: {list(AFFECT_LABELS)}"
        )
    return label


@dataclass(frozen=True)
class GeometricFeatures:
    """Per-frame facial geometry measurements.

    Attributes:
        furrow: Brow-together intensity [0, 1], relative to calibration.
        corner_drop: Mouth-corner downturn over mouth width, >= 0 (unscaled).
        mouth_open: Inner-lip gap over mouth width, >= 0 (unscaled).
        squint: Eye narrowing below the calibrated EAR [0, 1].
    """

    furrow: float = 0.0
    corner_drop: float = 0.0
    mouth_open: float = 0.0
    squint: float = 0.0

    NUM_FEATURES = 4

    @classmethod
    def neutral(cls) -> "GeometricFeatures":
        """Features used when no face is available."""
        return cls()

    def to_array(self) -> np.ndarray:
        """Return [furrow, corner_drop, mouth_open, squint] as float64."""
        return np.array(
            [self.furrow, self.corner_drop, self.mouth_open, self.squint],
            dtype=np.float64,
        )

    def to_dict(self) -> Dict[str, float]:
        return {
            "furrow": self.furrow,
            "corner_drop": self.corner_drop,
            "mouth_open": self.mouth_open,
            "squint": self.squint,
        }

    def is_finite(self) -> bool:
        return bool(np.all(np.isfinite(self.to_array())))
