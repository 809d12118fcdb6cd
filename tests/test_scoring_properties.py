"""
Property-based tests for affect scoring.

These tests verify normalization of the score vector, precedence of the
furrow override, tie-breaking and the reference fusion scenarios.
"""

import pytest
from hypothesis import assume, given, settings
import hypothesis.strategies as st

from affect_control.features import AFFECT_LABELS, BASE_EXPRESSIONS, GeometricFeatures
from affect_control.scoring import (
    AffectScorer,
    ScoringConfig,
    normalize_scores,
    score_affect,
    select_label,
)


probability = st.floats(min_value=0.0, max_value=1.0, allow_nan=False, allow_infinity=False)


@st.composite
def distribution_strategy(draw):
    """Averaged distribution over the base categories, summing to 1."""
    values = [draw(probability) for _ in BASE_EXPRESSIONS]
    total = sum(values)
    assume(total > 1e-6)
    return {name: v / total for name, v in zip(BASE_EXPRESSIONS, values)}


features_strategy = st.builds(
    GeometricFeatures,
    furrow=probability,
    corner_drop=st.floats(min_value=0.0, max_value=0.3),
    mouth_open=st.floats(min_value=0.0, max_value=1.0),
    squint=probability,
)


class TestScoreNormalization:
    """
    **Feature: affect-control, Property 8: Score Normalization**

    *For any* averaged distribution and geometric features, the four scores
    SHALL each be >= 0 and sum to 1, and the decision confidence SHALL be
    the winning label's score.
    """

    @settings(max_examples=200)
    @given(average=distribution_strategy(), features=features_strategy)
    def test_scores_normalized(self, average, features):
        scorer = AffectScorer()
        raw = scorer.raw_scores(average, scorer.normalize_geometry(features))
        assume(sum(max(0.0, v) for v in raw.values()) > 0)

        decision = scorer.score(average, features)

        assert set(decision.scores) == set(AFFECT_LABELS)
        assert all(v >= 0.0 for v in decision.scores.values())
        assert sum(decision.scores.values()) == pytest.approx(1.0, abs=1e-9)
        assert not decision.warming_up
        if not decision.override:
            assert decision.confidence == decision.scores[decision.label]
            assert decision.confidence == max(decision.scores.values())

    def test_all_non_positive_scores(self):
        scores = normalize_scores({"happy": -1.0, "focused": 0.0, "confused": -0.5, "frustrated": 0.0})
        assert scores == {label: 0.0 for label in AFFECT_LABELS}

    def test_confused_raw_above_one_is_normalized(self):
        """Saturated furrow, squint and fear push confused past 1 before normalization."""
        scorer = AffectScorer()
        average = {"fearful": 0.5, "surprised": 0.5}
        # Wide-open mouth keeps the override from firing
        features = GeometricFeatures(furrow=1.0, corner_drop=0.0, mouth_open=0.6, squint=1.0)

        geo = scorer.normalize_geometry(features)
        assert not scorer.override_applies(geo)
        raw = scorer.raw_scores(average, geo)
        assert raw["confused"] > 1.0

        decision = scorer.score(average, features)
        assert decision.label == "confused"
        assert 0.0 <= decision.scores["confused"] <= 1.0
        assert sum(decision.scores.values()) == pytest.approx(1.0)


class TestOverridePrecedence:
    """
    **Feature: affect-control, Property 9: Furrow Override**

    *For any* averaged distribution, an isolated strong furrow (high furrow,
    small mouth opening and corner drop) SHALL yield `confused` with
    confidence >= the override floor, even when `angry` dominates.
    """

    @settings(max_examples=200)
    @given(
        average=distribution_strategy(),
        furrow=st.floats(min_value=0.65, max_value=1.0),
        mouth_open=st.floats(min_value=0.0, max_value=0.12),
        corner_drop=st.floats(min_value=0.0, max_value=0.045),
        squint=probability,
    )
    def test_override_yields_confused(self, average, furrow, mouth_open, corner_drop, squint):
        features = GeometricFeatures(
            furrow=furrow, corner_drop=corner_drop, mouth_open=mouth_open, squint=squint
        )
        decision = score_affect(average, features)

        assert decision.override
        assert decision.label == "confused"
        assert 0.78 <= decision.confidence <= 1.0
        assert sum(decision.scores.values()) == pytest.approx(1.0)

    def test_override_beats_dominant_anger(self):
        features = GeometricFeatures(furrow=0.8, corner_drop=0.035, mouth_open=0.06)
        decision = score_affect({"angry": 0.95, "disgusted": 0.05}, features)
        assert decision.label == "confused"
        assert decision.confidence == pytest.approx(0.82)
        assert decision.scores["confused"] == pytest.approx(0.76)

    def test_open_mouth_disables_override(self):
        features = GeometricFeatures(furrow=0.9, mouth_open=0.3)
        decision = score_affect({"neutral": 1.0}, features)
        assert not decision.override


class TestReferenceScenarios:
    """Hand-computed outcomes of the default weights."""

    def test_neutral_face_is_focused(self):
        decision = score_affect({"neutral": 1.0}, GeometricFeatures())
        assert decision.label == "focused"
        # 0.72 / (0.72 + 0.024 + 0.01)
        assert decision.confidence == pytest.approx(0.72 / 0.754)
        assert decision.confidence > 0.9

    def test_drooping_corners_with_anger_is_frustrated(self):
        average = {"angry": 0.6, "neutral": 0.3, "sad": 0.1}
        # Scored corner drop of 0.5, no furrow
        features = GeometricFeatures(corner_drop=0.08)
        decision = score_affect(average, features)

        assert decision.label == "frustrated"
        assert max(decision.scores, key=decision.scores.get) == "frustrated"
        assert decision.confidence == pytest.approx(0.68 / 0.88226, rel=1e-4)

    def test_small_corner_drop_keeps_frustrated_at_floor(self):
        scorer = AffectScorer()
        geo = scorer.normalize_geometry(GeometricFeatures(corner_drop=0.04))
        raw = scorer.raw_scores({"angry": 1.0}, geo)
        assert raw["frustrated"] == pytest.approx(0.01)

    def test_happy_face(self):
        decision = score_affect({"happy": 0.9, "neutral": 0.1}, GeometricFeatures())
        assert decision.label == "happy"

    def test_missing_categories_read_as_zero(self):
        # Only the frustrated floor survives an empty distribution
        for average in ({}, {"bogus": 1.0}):
            decision = score_affect(average, GeometricFeatures())
            assert decision.label == "frustrated"
            assert decision.scores["frustrated"] == 1.0

    def test_custom_weights(self):
        config = ScoringConfig(focused_neutral=0.0)
        decision = score_affect({"neutral": 1.0}, GeometricFeatures(), config)
        assert decision.label == "confused"

    def test_invalid_config(self):
        with pytest.raises(ValueError):
            ScoringConfig(corner_drop_span=0.0)
        with pytest.raises(ValueError):
            ScoringConfig(override_scores={"bored": 1.0})


class TestLabelSelection:
    """Ties resolve to the earliest label in happy, focused, confused, frustrated."""

    def test_all_equal_picks_happy(self):
        assert select_label({label: 0.25 for label in AFFECT_LABELS}) == ("happy", 0.25)

    def test_tie_between_focused_and_confused(self):
        scores = {"happy": 0.1, "focused": 0.4, "confused": 0.4, "frustrated": 0.1}
        assert select_label(scores) == ("focused", 0.4)

    @settings(max_examples=100)
    @given(values=st.lists(probability, min_size=4, max_size=4))
    def test_selects_a_maximum(self, values):
        scores = dict(zip(AFFECT_LABELS, values))
        label, value = select_label(scores)
        assert value == max(values)
        assert AFFECT_LABELS.index(label) == values.index(max(values))
