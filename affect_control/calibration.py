"""Per-session calibration of the user's neutral face geometry.

The tracker learns running means of the inner-brow spacing and the eye
aspect ratio over the first frames of a session. Furrow and squint are then
measured relative to these means, so detection is person-relative rather
than absolute.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .geometry import GeometryConfig, GeometryExtractor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalibrationBaseline:
    """Read-only snapshot of the calibration state.

    Attributes:
        brow_spacing: Baseline inner-brow spacing / inter-eye distance.
        eye_aspect_ratio: Baseline eye aspect ratio.
        frames: Number of frames averaged so far (0 = uncalibrated).
    """

    brow_spacing: float
    eye_aspect_ratio: float
    frames: int = 0


class CalibrationTracker:
    """Incremental-mean estimator of the neutral face.

    The estimate converges to the sample mean over the calibration horizon
    without storing history:

        mean[n] = mean[n-1] * (1 - 1/n) + sample * (1/n)

    Once `calibration_frames` frames with a face have been seen the baseline
    is frozen until reset().
    """

    def __init__(
        self,
        extractor: Optional[GeometryExtractor] = None,
        calibration_frames: int = 90,
    ):
        """
        Args:
            extractor: Geometry extractor used to measure spacing and EAR.
            calibration_frames: Calibration horizon in frames (>= 1).

        Raises:
            ValueError: If calibration_frames < 1.
        """
        if calibration_frames < 1:
            raise ValueError(
                f"calibration_frames must be >= 1, got {calibration_frames}"
            )

        self.extractor = extractor or GeometryExtractor()
        self.calibration_frames = calibration_frames

        self._spacing_mean = 0.0
        self._ear_mean = 0.0
        self._frames = 0

    @property
    def config(self) -> GeometryConfig:
        return self.extractor.config

    def update(self, landmarks) -> bool:
        """
        Fold one frame into the running means.

        Returns:
            True if the baseline changed, False for absent landmarks or once
            the horizon has been reached.
        """
        if self._frames >= self.calibration_frames:
            return False

        points = self.extractor.points(landmarks)
        if points is None:
            return False

        spacing = self.extractor.brow_spacing(points)
        ear = self.extractor.eye_aspect_ratio(points)

        self._frames += 1
        weight = 1.0 / self._frames
        self._spacing_mean = self._spacing_mean * (1.0 - weight) + spacing * weight
        self._ear_mean = self._ear_mean * (1.0 - weight) + ear * weight

        if self._frames == self.calibration_frames:
            logger.info(
                f"Calibration complete after {self._frames} frames: "
                f"spacing={self._spacing_mean:.3f}, ear={self._ear_mean:.3f}"
            )
        return True

    def reset(self) -> None:
        """Zero both means and the frame counter."""
        self._spacing_mean = 0.0
        self._ear_mean = 0.0
        self._frames = 0

    @property
    def baseline(self) -> CalibrationBaseline:
        """Current baseline, falling back to the fixed pivots when empty."""
        if self._frames == 0:
            return CalibrationBaseline(
                brow_spacing=self.config.spacing_pivot,
                eye_aspect_ratio=self.config.ear_pivot,
                frames=0,
            )
        return CalibrationBaseline(
            brow_spacing=self._spacing_mean,
            eye_aspect_ratio=self._ear_mean,
            frames=self._frames,
        )

    @property
    def frames(self) -> int:
        return self._frames

    @property
    def spacing_mean(self) -> float:
        return self._spacing_mean

    @property
    def ear_mean(self) -> float:
        return self._ear_mean

    @property
    def is_calibrated(self) -> bool:
        return self._frames >= self.calibration_frames
