"""
Fusion of averaged expression probabilities and facial geometry into affect
scores.

The scorer maps the 7-class averaged distribution plus the current frame's
geometric features onto four output labels with hand-tuned linear rules,
a neutral/happy damping step, and a priority override for an isolated brow
furrow. All weights live in ScoringConfig.
"""

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from .features import AFFECT_LABELS, GeometricFeatures, read_probability


def _clamp01(value: float) -> float:
    return float(min(1.0, max(0.0, value)))


def _default_override_scores() -> Dict[str, float]:
    return {"happy": 0.04, "focused": 0.12, "confused": 0.76, "frustrated": 0.08}


@dataclass
class ScoringConfig:
    """Weights and thresholds for affect scoring."""

    # Geometry normalization
    corner_drop_floor: float = 0.03
    corner_drop_span: float = 0.10
    mouth_open_span: float = 0.6

    # Neutral/happy damping
    dominance_threshold: float = 0.7
    dominance_neutral_scale: float = 0.8
    dominance_happy_scale: float = 0.85
    think_furrow_weight: float = 0.5
    think_squint_weight: float = 0.3
    think_corner_drop_weight: float = 0.2
    think_mouth_open_weight: float = 0.3
    think_neutral_damping: float = 0.6
    think_happy_damping: float = 0.5

    # Priority override ("pure thinking" furrow)
    override_furrow_min: float = 0.65
    override_mouth_open_max: float = 0.2
    override_corner_drop_max: float = 0.15
    override_scores: Dict[str, float] = field(default_factory=_default_override_scores)
    override_confidence_base: float = 0.5
    override_confidence_gain: float = 0.4
    override_confidence_floor: float = 0.78

    # Frustrated
    frustrated_gate: float = 0.15
    frustrated_floor: float = 0.01
    frustrated_corner_drop: float = 0.90
    frustrated_angry: float = 0.35
    frustrated_disgusted: float = 0.30
    frustrated_sad: float = 0.20
    frustrated_happy_penalty: float = 0.10
    frustrated_furrow_penalty: float = 0.30

    # Confused
    confused_furrow: float = 1.2
    confused_squint: float = 0.5
    confused_mouth_open_penalty: float = 0.4
    confused_fear_surprise: float = 0.15
    confused_neutral: float = 0.03
    confused_furrow_floor: float = 0.6

    # Focused
    focused_neutral: float = 0.90
    focused_furrow_squint_damping: float = 0.5
    focused_arousal_penalty: float = 0.10

    # Happy
    happy_weight: float = 1.0
    happy_negative_penalty: float = 0.10
    happy_geometry_penalty: float = 0.30

    def __post_init__(self):
        if self.corner_drop_span <= 0:
            raise ValueError(f"corner_drop_span must be > 0, got {self.corner_drop_span}")
        if self.mouth_open_span <= 0:
            raise ValueError(f"mouth_open_span must be > 0, got {self.mouth_open_span}")
        unknown = set(self.override_scores) - set(AFFECT_LABELS)
        if unknown:
            raise ValueError(f"override_scores has unknown labels: {sorted(unknown)}")


@dataclass(frozen=True)
class NormalizedGeometry:
    """Geometric features scaled to [0, 1] for scoring."""

    furrow: float
    corner_drop: float
    mouth_open: float
    squint: float


@dataclass(frozen=True)
class Decision:
    """Candidate label for one decision cycle.

    Attributes:
        label: Winning label (or the held label during warm-up).
        confidence: Winning normalized score; 1.0 during warm-up.
        scores: Normalized ScoreVector; empty during warm-up.
        warming_up: True when scoring was skipped for lack of history.
        override: True when the furrow priority override fired.
    """

    label: str
    confidence: float
    scores: Dict[str, float] = field(default_factory=dict)
    warming_up: bool = False
    override: bool = False

    @classmethod
    def hold(cls, label: str) -> "Decision":
        """Warm-up decision: keep the previous stable label."""
        return cls(label=label, confidence=1.0, scores={}, warming_up=True)


class AffectScorer:
    """
    Rule-based fusion of averaged expressions and geometry.

    Usage:
        scorer = AffectScorer()
        decision = scorer.score(window.average(), features)
    """

    def __init__(self, config: Optional[ScoringConfig] = None):
        self.config = config or ScoringConfig()

    def normalize_geometry(self, features: GeometricFeatures) -> NormalizedGeometry:
        cfg = self.config
        return NormalizedGeometry(
            furrow=_clamp01(features.furrow),
            corner_drop=_clamp01(
                (features.corner_drop - cfg.corner_drop_floor) / cfg.corner_drop_span
            ),
            mouth_open=_clamp01(features.mouth_open / cfg.mouth_open_span),
            squint=_clamp01(features.squint),
        )

    def thinking_composite(self, geo: NormalizedGeometry) -> float:
        """Weighted furrow + squint + corner drop - mouth opening, in [0, 1]."""
        cfg = self.config
        return _clamp01(
            cfg.think_furrow_weight * geo.furrow
            + cfg.think_squint_weight * geo.squint
            + cfg.think_corner_drop_weight * geo.corner_drop
            - cfg.think_mouth_open_weight * geo.mouth_open
        )

    def damp(
        self, neutral: float, happy: float, geo: NormalizedGeometry
    ) -> Tuple[float, float]:
        """Scale down neutral and happy so geometric signals can compete."""
        cfg = self.config

        if neutral + happy > cfg.dominance_threshold:
            neutral *= cfg.dominance_neutral_scale
            happy *= cfg.dominance_happy_scale

        think = self.thinking_composite(geo)
        neutral *= max(0.0, 1.0 - cfg.think_neutral_damping * think)
        happy *= max(0.0, 1.0 - cfg.think_happy_damping * think)

        return neutral, happy

    def override_applies(self, geo: NormalizedGeometry) -> bool:
        cfg = self.config
        return (
            geo.furrow >= cfg.override_furrow_min
            and geo.mouth_open <= cfg.override_mouth_open_max
            and geo.corner_drop <= cfg.override_corner_drop_max
        )

    def raw_scores(
        self,
        average: Mapping[str, float],
        geo: NormalizedGeometry,
    ) -> Dict[str, float]:
        """Un-normalized per-label scores (may be negative or exceed 1)."""
        cfg = self.config

        neutral, happy = self.damp(
            read_probability(average, "neutral"),
            read_probability(average, "happy"),
            geo,
        )
        happy_raw = read_probability(average, "happy")
        sad = read_probability(average, "sad")
        angry = read_probability(average, "angry")
        fearful = read_probability(average, "fearful")
        disgusted = read_probability(average, "disgusted")
        surprised = read_probability(average, "surprised")

        # Furrow is subtracted so a frown of concentration does not leak here
        if geo.corner_drop >= cfg.frustrated_gate:
            frustrated = (
                cfg.frustrated_corner_drop * geo.corner_drop
                + cfg.frustrated_angry * angry
                + cfg.frustrated_disgusted * disgusted
                + cfg.frustrated_sad * sad
                - cfg.frustrated_happy_penalty * happy
                - cfg.frustrated_furrow_penalty * geo.furrow
            )
        else:
            frustrated = cfg.frustrated_floor

        confused_core = (
            cfg.confused_furrow * geo.furrow
            + cfg.confused_squint * geo.squint
            - cfg.confused_mouth_open_penalty * geo.mouth_open
            + cfg.confused_fear_surprise * (fearful + surprised)
            + cfg.confused_neutral * neutral
        )
        confused = max(confused_core, cfg.confused_furrow_floor * geo.furrow)

        focused = (
            cfg.focused_neutral
            * neutral
            * (1.0 - cfg.focused_furrow_squint_damping * min(1.0, geo.furrow + geo.squint))
            - cfg.focused_arousal_penalty * (surprised + fearful + angry)
        )

        happy_score = (
            cfg.happy_weight * happy_raw
            - cfg.happy_negative_penalty * (angry + sad + disgusted)
            - cfg.happy_geometry_penalty * (geo.squint + geo.furrow)
        )

        return {
            "happy": happy_score,
            "focused": focused,
            "confused": confused,
            "frustrated": frustrated,
        }

    def score(
        self,
        average: Mapping[str, float],
        features: GeometricFeatures,
    ) -> Decision:
        """
        Score one decision cycle.

        Args:
            average: Time-averaged expression distribution.
            features: Current frame's raw geometric features.

        Returns:
            Decision with the winning label, its confidence and the
            normalized ScoreVector.
        """
        cfg = self.config
        geo = self.normalize_geometry(features)

        if self.override_applies(geo):
            scores = normalize_scores(cfg.override_scores)
            confidence = min(
                1.0,
                max(
                    cfg.override_confidence_base + cfg.override_confidence_gain * geo.furrow,
                    cfg.override_confidence_floor,
                ),
            )
            return Decision(
                label="confused", confidence=confidence, scores=scores, override=True
            )

        scores = normalize_scores(self.raw_scores(average, geo))
        label, confidence = select_label(scores)
        return Decision(label=label, confidence=confidence, scores=scores)


def normalize_scores(raw: Mapping[str, float]) -> Dict[str, float]:
    """Clamp every label score to >= 0 and divide by the sum (or 1 if 0)."""
    clamped = {label: max(0.0, float(raw.get(label, 0.0))) for label in AFFECT_LABELS}
    total = sum(clamped.values()) or 1.0
    return {label: value / total for label, value in clamped.items()}


def select_label(scores: Mapping[str, float]) -> Tuple[str, float]:
    """Strictly-greatest score in AFFECT_LABELS order; ties keep the earlier label."""
    best_label = AFFECT_LABELS[0]
    best_score = scores.get(best_label, 0.0)
    for label in AFFECT_LABELS[1:]:
        value = scores.get(label, 0.0)
        if value > best_score:
            best_label, best_score = label, value
    return best_label, best_score


def score_affect(
    average: Mapping[str, float],
    features: GeometricFeatures,
    config: Optional[ScoringConfig] = None,
) -> Decision:
    """Functional shortcut for AffectScorer(config).score(average, features)."""
    return AffectScorer(config).score(average, features)
