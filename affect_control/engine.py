"""
Affect engine: one detection session's classification and stabilization.

This module provides the EngineConfig dataclass and the AffectEngine class
that integrates the per-frame pipeline:
landmarks -> calibration + geometry -> window -> scoring -> stabilizer.

Each engine instance owns its window, calibration baseline and
stabilization state, so independent sessions never share state.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

from .calibration import CalibrationTracker
from .features import (
    DEFAULT_LABEL,
    GeometricFeatures,
    has_probability_mass,
    validate_label,
)
from .geometry import GeometryConfig, GeometryExtractor
from .scoring import AffectScorer, Decision, ScoringConfig
from .stabilizer import Stabilizer
from .topology import get_topology
from .window import RollingWindow

logger = logging.getLogger(__name__)


@dataclass
class EngineConfig:
    """Configuration for the affect engine.

    Attributes:
        window_size: Number of expression distributions averaged
        warmup_fraction: Fraction of window_size needed before scoring
        confidence_threshold: Minimum candidate confidence for a switch
        dwell_ms: Time a candidate must persist before it is committed
        cooldown_ms: Time after a commit during which candidates are ignored
        calibration_frames: Frames with a face used to learn the neutral face
        default_label: Stable label at start and after reset
        topology: Landmark topology name ("ibug68" or "mediapipe478")
        geometry: Geometric feature constants
        scoring: Fusion/scoring weights and thresholds
    """
    window_size: int = 15
    warmup_fraction: float = 0.6
    confidence_threshold: float = 0.40
    dwell_ms: float = 1000.0
    cooldown_ms: float = 4000.0
    calibration_frames: int = 90
    default_label: str = DEFAULT_LABEL
    topology: str = "ibug68"

    geometry: GeometryConfig = field(default_factory=GeometryConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)

    def __post_init__(self):
        validate_label(self.default_label)
        get_topology(self.topology)


@dataclass(frozen=True)
class AffectReport:
    """Per-cycle observability payload (read-only).

    Attributes:
        label: Stable label after this cycle
        confidence: Candidate confidence this cycle
        scores: Normalized ScoreVector (empty during warm-up)
        cooling_ms: Milliseconds remaining in the cooldown
        features: Raw geometric features of this frame
        candidate: Candidate label this cycle
        changed: True if the stable label switched this cycle
        warming_up: True while the window is below its warm-up size
        override: True if the furrow priority override fired
        face_detected: True if usable landmarks were present
        calibrated: True once the calibration horizon has been reached
        timestamp_ms: The cycle's time in milliseconds
    """
    label: str
    confidence: float
    scores: Dict[str, float]
    cooling_ms: float
    features: GeometricFeatures
    candidate: str
    changed: bool = False
    warming_up: bool = False
    override: bool = False
    face_detected: bool = False
    calibrated: bool = False
    timestamp_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "confidence": self.confidence,
            "scores": dict(self.scores),
            "cooling_ms": self.cooling_ms,
            "features": self.features.to_dict(),
            "candidate": self.candidate,
            "changed": self.changed,
            "warming_up": self.warming_up,
            "override": self.override,
            "face_detected": self.face_detected,
            "calibrated": self.calibrated,
            "timestamp_ms": self.timestamp_ms,
        }


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class AffectEngine:
    """Classification and stabilization core for one detection session.

    Usage:
        engine = AffectEngine(EngineConfig(), on_change=hub.apply)
        report = engine.process(expressions, landmarks)
        ...
        engine.reset()  # camera re-acquired / new session
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        on_change: Optional[Callable[[str], None]] = None,
        clock: Callable[[], float] = monotonic_ms,
    ):
        """
        Initialize the engine and all of its components.

        Args:
            config: Engine configuration
            on_change: Adaptation callback, called with the new stable label
                on every committed switch
            clock: Millisecond clock used when process() gets no timestamp
        """
        self.config = config or EngineConfig()
        self._clock = clock

        self.topology = get_topology(self.config.topology)
        self.extractor = GeometryExtractor(self.topology, self.config.geometry)
        self.calibration = CalibrationTracker(
            self.extractor, calibration_frames=self.config.calibration_frames
        )
        self.window = RollingWindow(
            window_size=self.config.window_size,
            warmup_fraction=self.config.warmup_fraction,
        )
        self.scorer = AffectScorer(self.config.scoring)
        self.stabilizer = Stabilizer(
            threshold=self.config.confidence_threshold,
            dwell_ms=self.config.dwell_ms,
            cooldown_ms=self.config.cooldown_ms,
            default_label=self.config.default_label,
            on_change=on_change,
        )

        # Serializes cycles if callers drive the engine from several threads
        self._lock = threading.Lock()
        self._frame_count = 0

    @property
    def on_change(self) -> Optional[Callable[[str], None]]:
        return self.stabilizer.on_change

    @on_change.setter
    def on_change(self, callback: Optional[Callable[[str], None]]) -> None:
        self.stabilizer.on_change = callback

    @property
    def current_label(self) -> str:
        return self.stabilizer.current_label

    @property
    def frame_count(self) -> int:
        return self._frame_count

    def now(self) -> float:
        """Current time in milliseconds on the engine clock."""
        return self._clock()

    def decide(self, features: GeometricFeatures) -> Decision:
        """Score the current window, or hold the stable label during warm-up."""
        if not self.window.is_warm:
            return Decision.hold(self.stabilizer.current_label)
        return self.scorer.score(self.window.average(), features)

    def process(
        self,
        expressions: Optional[Mapping[str, float]],
        landmarks=None,
        now_ms: Optional[float] = None,
    ) -> AffectReport:
        """
        Run one decision cycle.

        Args:
            expressions: This frame's base expression distribution, or None
                when the detector found no face; only pushed when usable
                landmarks are present and some base category is positive
            landmarks: This frame's landmark array, or None
            now_ms: Cycle time in milliseconds (defaults to the engine clock)

        Returns:
            AffectReport for this cycle
        """
        with self._lock:
            now = self._clock() if now_ms is None else float(now_ms)

            points = self.extractor.points(landmarks)
            if points is not None:
                self.calibration.update(points)
            features = self.extractor.extract(points, self.calibration.baseline)

            # Missed or empty detections are not pushed, so they cannot drag
            # the average to 0
            if points is not None and has_probability_mass(expressions):
                self.window.push(expressions)

            decision = self.decide(features)
            changed = self.stabilizer.update(decision.label, decision.confidence, now)
            self._frame_count += 1

            report = AffectReport(
                label=self.stabilizer.current_label,
                confidence=decision.confidence,
                scores=decision.scores,
                cooling_ms=self.stabilizer.cooling_ms(now),
                features=features,
                candidate=decision.label,
                changed=changed,
                warming_up=decision.warming_up,
                override=decision.override,
                face_detected=points is not None,
                calibrated=self.calibration.is_calibrated,
                timestamp_ms=now,
            )

        logger.debug(
            f"cycle={self._frame_count} label={report.label} "
            f"candidate={report.candidate} conf={report.confidence:.2f} "
            f"furrow={features.furrow:.3f} drop={features.corner_drop:.3f}"
        )
        return report

    def reset(self) -> None:
        """Start a new session: clear window, stabilizer and calibration."""
        with self._lock:
            self.window.clear()
            self.stabilizer.reset()
            self.calibration.reset()
            self._frame_count = 0
        logger.info("Affect engine reset")
