"""
Property-based tests for CalibrationTracker.

These tests verify that the incremental-mean calibration converges to the
sample mean, stops at its horizon and resets completely.
"""

import numpy as np
import pytest
from hypothesis import given, settings
import hypothesis.strategies as st

from affect_control.calibration import CalibrationTracker
from affect_control.geometry import GeometryConfig, GeometryExtractor

from synthetic import relaxed_face, synthetic_face


face_params = st.tuples(
    st.floats(min_value=0.2, max_value=0.7),    # brow spacing
    st.floats(min_value=0.1, max_value=0.45),   # ear
)


class TestIncrementalMean:
    """
    **Feature: affect-control, Property 4: Calibration Mean**

    *For any* sequence of n <= horizon faces, the calibration baseline SHALL
    equal the arithmetic mean of the per-frame brow spacing and eye aspect
    ratio, without storing the history.
    """

    @settings(max_examples=100)
    @given(samples=st.lists(face_params, min_size=1, max_size=30))
    def test_baseline_equals_sample_mean(self, samples):
        tracker = CalibrationTracker(calibration_frames=90)
        extractor = tracker.extractor

        spacings, ears = [], []
        for spacing, ear in samples:
            face = synthetic_face(brow_spacing=spacing, ear=ear)
            spacings.append(extractor.brow_spacing(face))
            ears.append(extractor.eye_aspect_ratio(face))
            assert tracker.update(face) is True

        baseline = tracker.baseline
        assert baseline.frames == len(samples)
        assert baseline.brow_spacing == pytest.approx(np.mean(spacings), rel=1e-9)
        assert baseline.eye_aspect_ratio == pytest.approx(np.mean(ears), rel=1e-9)

    @settings(max_examples=50)
    @given(
        horizon=st.integers(min_value=1, max_value=20),
        extra=st.integers(min_value=1, max_value=20),
    )
    def test_horizon_freezes_baseline(self, horizon, extra):
        tracker = CalibrationTracker(calibration_frames=horizon)
        for _ in range(horizon):
            tracker.update(relaxed_face())
        frozen = tracker.baseline
        assert tracker.is_calibrated

        for _ in range(extra):
            assert tracker.update(synthetic_face(brow_spacing=0.2, ear=0.1)) is False

        assert tracker.baseline == frozen
        assert tracker.frames == horizon


class TestCalibrationEdgeCases:
    """Absent faces, pivots and reset."""

    def test_absent_landmarks_are_not_counted(self):
        tracker = CalibrationTracker()
        assert tracker.update(None) is False
        assert tracker.update(np.zeros((5, 2))) is False
        assert tracker.frames == 0

    def test_uncalibrated_baseline_uses_pivots(self):
        config = GeometryConfig(spacing_pivot=0.5, ear_pivot=0.25)
        tracker = CalibrationTracker(GeometryExtractor(config=config))
        baseline = tracker.baseline
        assert baseline.frames == 0
        assert baseline.brow_spacing == 0.5
        assert baseline.eye_aspect_ratio == 0.25
        assert not tracker.is_calibrated

    def test_reset_zeros_means_and_counter(self):
        tracker = CalibrationTracker(calibration_frames=3)
        for _ in range(3):
            tracker.update(relaxed_face())
        assert tracker.is_calibrated

        tracker.reset()
        assert tracker.frames == 0
        assert tracker.spacing_mean == 0.0
        assert tracker.ear_mean == 0.0
        assert not tracker.is_calibrated

        # Calibrates again after reset
        assert tracker.update(synthetic_face(brow_spacing=0.3)) is True
        assert tracker.baseline.brow_spacing == pytest.approx(0.3, abs=1e-6)

    def test_invalid_horizon(self):
        with pytest.raises(ValueError):
            CalibrationTracker(calibration_frames=0)
