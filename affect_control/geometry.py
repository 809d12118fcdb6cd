"""
Geometric feature extraction from facial landmarks.

This module converts one frame's landmark array into the four scalar
features used by affect scoring: brow furrow, mouth-corner drop, mouth
opening and eye squint. All distances are normalized by a facial scale
(inter-eye distance or mouth width) so the features are invariant to the
face's size in the image.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import numpy as np

from .features import GeometricFeatures
from .topology import IBUG_68, LandmarkTopology

if TYPE_CHECKING:
    from .calibration import CalibrationBaseline

logger = logging.getLogger(__name__)


@dataclass
class GeometryConfig:
    """Tunable constants for geometric feature extraction.

    Attributes:
        epsilon: Added to every ratio denominator.
        spacing_pivot: Inner-brow spacing / inter-eye distance assumed for a
            relaxed face before calibration has seen any frame.
        ear_pivot: Eye aspect ratio assumed before calibration.
        furrow_spacing_span: Spacing decrease (below baseline) mapped to a
            closeness of 1.
        brow_gap_relaxed: Brow-to-nose-bridge gap / inter-eye distance of a
            relaxed brow; smaller gaps count as brow drop.
        brow_gap_span: Gap decrease (below relaxed) mapped to a drop of 1.
        furrow_closeness_weight: Weight of brow closeness in furrow.
        furrow_drop_weight: Weight of brow drop in furrow.
        squint_sensitivity: EAR decrease (below baseline) mapped to squint 1.
    """

    epsilon: float = 1e-6
    spacing_pivot: float = 0.45
    ear_pivot: float = 0.28
    furrow_spacing_span: float = 0.15
    brow_gap_relaxed: float = 0.30
    brow_gap_span: float = 0.15
    furrow_closeness_weight: float = 0.75
    furrow_drop_weight: float = 0.25
    squint_sensitivity: float = 0.10

    def __post_init__(self):
        if self.epsilon <= 0:
            raise ValueError(f"epsilon must be > 0, got {self.epsilon}")
        for name in ("furrow_spacing_span", "brow_gap_span", "squint_sensitivity"):
            value = getattr(self, name)
            if value <= 0:
                raise ValueError(f"{name} must be > 0, got {value}")


def _clamp01(value: float) -> float:
    return float(min(1.0, max(0.0, value)))


def as_points(landmarks, topology: LandmarkTopology = IBUG_68) -> Optional[np.ndarray]:
    """
    Coerce a landmark set into an (N, 2) float array.

    Args:
        landmarks: Array-like of shape (N, 2) or (N, 3), or None.
        topology: Topology whose anchors must all be present.

    Returns:
        The x/y coordinates, or None when the landmarks are absent or
        malformed (wrong shape, too few points, non-finite coordinates).
    """
    if landmarks is None:
        return None

    try:
        points = np.asarray(landmarks, dtype=np.float64)
    except (TypeError, ValueError):
        logger.warning("Landmarks could not be converted to an array")
        return None

    if points.ndim != 2 or points.shape[1] < 2:
        logger.warning(f"Unexpected landmark shape {points.shape}")
        return None
    if points.shape[0] <= topology.max_index():
        logger.warning(
            f"Got {points.shape[0]} landmarks, topology '{topology.name}' "
            f"needs {topology.max_index() + 1}"
        )
        return None

    points = points[:, :2]
    if not np.all(np.isfinite(points)):
        logger.warning("Landmarks contain non-finite coordinates")
        return None

    return points


class GeometryExtractor:
    """Computes GeometricFeatures from landmarks of one topology.

    Every public method accepts raw landmarks (or None) and returns the
    neutral value 0.0 when no usable face is present.
    """

    def __init__(
        self,
        topology: LandmarkTopology = IBUG_68,
        config: Optional[GeometryConfig] = None,
    ):
        self.topology = topology
        self.config = config or GeometryConfig()

    def points(self, landmarks) -> Optional[np.ndarray]:
        return as_points(landmarks, self.topology)

    # ------------------------------------------------------------------
    # Raw measurements
    # ------------------------------------------------------------------

    def _dist(self, a: np.ndarray, b: np.ndarray) -> float:
        return float(np.linalg.norm(a - b))

    def inter_eye_distance(self, points: np.ndarray) -> float:
        """Distance between the two eye centres (mean of each eye's points)."""
        left = points[list(self.topology.left_eye)].mean(axis=0)
        right = points[list(self.topology.right_eye)].mean(axis=0)
        return self._dist(left, right)

    def brow_spacing(self, landmarks) -> Optional[float]:
        """Inner-brow distance over inter-eye distance."""
        points = self.points(landmarks)
        if points is None:
            return None
        t = self.topology
        between = self._dist(points[t.left_inner_brow], points[t.right_inner_brow])
        return between / (self.inter_eye_distance(points) + self.config.epsilon)

    def brow_gap(self, landmarks) -> Optional[float]:
        """Vertical gap from inner-brow midpoint down to the nose bridge,
        over inter-eye distance. Lowered brows shrink the gap."""
        points = self.points(landmarks)
        if points is None:
            return None
        t = self.topology
        brow_y = (points[t.left_inner_brow, 1] + points[t.right_inner_brow, 1]) / 2
        gap = points[t.nose_bridge, 1] - brow_y
        return float(gap / (self.inter_eye_distance(points) + self.config.epsilon))

    def eye_aspect_ratio(self, landmarks) -> Optional[float]:
        """Six-point eye aspect ratio averaged over both eyes."""
        points = self.points(landmarks)
        if points is None:
            return None

        eps = self.config.epsilon
        ratios = []
        for eye in (self.topology.left_eye, self.topology.right_eye):
            p = points[list(eye)]
            vertical = self._dist(p[1], p[5]) + self._dist(p[2], p[4])
            horizontal = self._dist(p[0], p[3])
            ratios.append(vertical / (2.0 * horizontal + eps))
        return float(np.mean(ratios))

    # ------------------------------------------------------------------
    # Features
    # ------------------------------------------------------------------

    def furrow(
        self, landmarks, baseline: Optional["CalibrationBaseline"] = None
    ) -> float:
        """
        Brow furrow intensity in [0, 1].

        Closeness compares the current inner-brow spacing to the calibrated
        spacing (or the fixed pivot); drop measures how far the brows sit
        below their relaxed height relative to the nose bridge.
        """
        spacing = self.brow_spacing(landmarks)
        if spacing is None:
            return 0.0

        cfg = self.config
        reference = cfg.spacing_pivot
        if baseline is not None and baseline.frames > 0:
            reference = baseline.brow_spacing

        closeness = _clamp01((reference - spacing) / cfg.furrow_spacing_span)
        drop = _clamp01((cfg.brow_gap_relaxed - self.brow_gap(landmarks)) / cfg.brow_gap_span)

        return _clamp01(
            cfg.furrow_closeness_weight * closeness + cfg.furrow_drop_weight * drop
        )

    def corner_drop(self, landmarks) -> float:
        """Mouth corners below the lip-centre midpoint, over mouth width (>= 0).

        Image y grows downward, so a positive offset is a downturn.
        ~0.00 for neutral or smiling, 0.05-0.15+ for a strong downturn.
        """
        points = self.points(landmarks)
        if points is None:
            return 0.0

        t = self.topology
        left = points[t.mouth_left]
        right = points[t.mouth_right]
        center_y = (points[t.outer_lip_top, 1] + points[t.outer_lip_bottom, 1]) / 2

        drop = ((left[1] - center_y) + (right[1] - center_y)) / 2
        width = self._dist(left, right) + self.config.epsilon
        return float(max(0.0, drop) / width)

    def mouth_open(self, landmarks) -> float:
        """Inner-lip vertical gap over mouth width."""
        points = self.points(landmarks)
        if points is None:
            return 0.0

        t = self.topology
        gap = self._dist(points[t.inner_lip_top], points[t.inner_lip_bottom])
        width = self._dist(points[t.mouth_left], points[t.mouth_right])
        return float(gap / (width + self.config.epsilon))

    def squint(
        self, landmarks, baseline: Optional["CalibrationBaseline"] = None
    ) -> float:
        """Eye narrowing below the calibrated EAR, in [0, 1]."""
        ear = self.eye_aspect_ratio(landmarks)
        if ear is None:
            return 0.0

        reference = self.config.ear_pivot
        if baseline is not None and baseline.frames > 0:
            reference = baseline.eye_aspect_ratio

        return _clamp01((reference - ear) / self.config.squint_sensitivity)

    def extract(
        self, landmarks, baseline: Optional["CalibrationBaseline"] = None
    ) -> GeometricFeatures:
        """
        Compute all four features for one frame.

        Args:
            landmarks: Landmark array in this extractor's topology, or None.
            baseline: Current calibration baseline (partial estimates allowed).

        Returns:
            GeometricFeatures; GeometricFeatures.neutral() when no usable face.
        """
        points = self.points(landmarks)
        if points is None:
            return GeometricFeatures.neutral()

        return GeometricFeatures(
            furrow=self.furrow(points, baseline),
            corner_drop=self.corner_drop(points),
            mouth_open=self.mouth_open(points),
            squint=self.squint(points, baseline),
        )
