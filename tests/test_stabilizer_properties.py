"""
Property-based tests for the dwell/cooldown Stabilizer.

These tests verify that short-lived candidates never switch the stable
label, that a committed switch locks out further switches for the
cooldown, and that a failing adaptation callback cannot undo a commit.
"""

from unittest.mock import Mock

import pytest
from hypothesis import given, settings
import hypothesis.strategies as st

from affect_control.features import AFFECT_LABELS
from affect_control.stabilizer import PendingCandidate, StabilizationState, Stabilizer


# Sessions start well after time 0 so the initial cooldown_until of 0 has passed
START = 10_000.0

step_ms = st.floats(min_value=1.0, max_value=100.0)
other_label = st.sampled_from([label for label in AFFECT_LABELS if label != "focused"])
confidence = st.floats(min_value=0.40, max_value=1.0)


class TestDwellDebounce:
    """
    **Feature: affect-control, Property 10: Dwell Debounce**

    *For any* confident candidate that reverts to the current label before
    the dwell time elapses, the stable label SHALL never change.
    """

    @settings(max_examples=100)
    @given(
        label=other_label,
        steps=st.lists(step_ms, min_size=1, max_size=50),
        conf=confidence,
    )
    def test_short_candidate_never_commits(self, label, steps, conf):
        callback = Mock()
        stabilizer = Stabilizer(on_change=callback)

        now = START
        for dt in steps:
            if now + dt - START >= stabilizer.dwell_ms:
                break
            now += dt
            assert stabilizer.update(label, conf, now) is False
            assert stabilizer.current_label == "focused"

        # Reverting clears the pending switch
        stabilizer.update("focused", conf, now + 1)
        assert stabilizer.pending is None
        assert stabilizer.current_label == "focused"
        callback.assert_not_called()

    @settings(max_examples=100)
    @given(label=other_label, dt=step_ms, conf=confidence)
    def test_persistent_candidate_commits_after_dwell(self, label, dt, conf):
        callback = Mock()
        stabilizer = Stabilizer(on_change=callback)

        now = START
        commits = 0
        while now <= START + stabilizer.dwell_ms + dt:
            if stabilizer.update(label, conf, now):
                commits += 1
                assert now - START >= stabilizer.dwell_ms
            now += dt

        assert commits == 1
        assert stabilizer.current_label == label
        callback.assert_called_once_with(label)

    def test_alternating_candidates_restart_dwell(self):
        stabilizer = Stabilizer()
        t = START
        for i in range(40):
            label = "confused" if i % 2 == 0 else "happy"
            assert stabilizer.update(label, 0.9, t + i * 100) is False
        assert stabilizer.current_label == "focused"

    def test_low_confidence_keeps_pending(self):
        stabilizer = Stabilizer()
        stabilizer.update("confused", 0.9, START)
        stabilizer.update("confused", 0.1, START + 500)
        assert stabilizer.pending == PendingCandidate("confused", START)
        assert stabilizer.update("confused", 0.9, START + 1000) is True


class TestCooldownLockout:
    """
    **Feature: affect-control, Property 11: Cooldown Lockout**

    *For any* time within the cooldown after a committed switch, no
    candidate SHALL trigger another switch, even at confidence 1.
    """

    @settings(max_examples=100)
    @given(
        eps=st.floats(min_value=0.0, max_value=4000.0),
        label=st.sampled_from(AFFECT_LABELS),
    )
    def test_no_switch_during_cooldown(self, eps, label):
        stabilizer = Stabilizer()
        stabilizer.update("confused", 1.0, START)
        assert stabilizer.update("confused", 1.0, START + 1000) is True
        committed_at = START + 1000

        assert stabilizer.update(label, 1.0, committed_at + eps) is False
        assert stabilizer.current_label == "confused"
        assert stabilizer.pending is None

    def test_switch_possible_after_cooldown(self):
        stabilizer = Stabilizer(dwell_ms=0.0, cooldown_ms=100.0)
        stabilizer.update("happy", 1.0, START)
        assert stabilizer.update("happy", 1.0, START) is True
        assert stabilizer.cooldown_until == START + 100

        stabilizer.update("confused", 1.0, START + 101)
        assert stabilizer.update("confused", 1.0, START + 101) is True
        assert stabilizer.current_label == "confused"

    def test_cooling_ms(self):
        stabilizer = Stabilizer()
        assert stabilizer.cooling_ms(START) == 0.0
        stabilizer.update("happy", 1.0, START)
        stabilizer.update("happy", 1.0, START + 1000)
        assert stabilizer.cooling_ms(START + 1500) == pytest.approx(3500.0)


class TestStabilizerThreshold:
    """Candidates below the confidence threshold are ignored."""

    @settings(max_examples=100)
    @given(conf=st.floats(min_value=0.0, max_value=0.3999), label=other_label)
    def test_low_confidence_never_switches(self, conf, label):
        stabilizer = Stabilizer()
        for i in range(50):
            assert stabilizer.update(label, conf, START + i * 100) is False
        assert stabilizer.current_label == "focused"
        assert stabilizer.pending is None


class TestCallbackIsolation:
    """A failing adaptation callback does not roll back or halt the commit."""

    def test_callback_exception_is_swallowed(self, caplog):
        callback = Mock(side_effect=RuntimeError("renderer crashed"))
        stabilizer = Stabilizer(on_change=callback)

        stabilizer.update("frustrated", 0.9, START)
        assert stabilizer.update("frustrated", 0.9, START + 1000) is True

        callback.assert_called_once_with("frustrated")
        assert stabilizer.current_label == "frustrated"
        assert stabilizer.cooldown_until == START + 1000 + 4000
        assert stabilizer.pending is None
        assert "renderer crashed" in caplog.text


class TestStabilizerReset:
    def test_reset_restores_defaults(self):
        stabilizer = Stabilizer(default_label="happy")
        stabilizer.update("confused", 0.9, START)
        stabilizer.update("confused", 0.9, START + 1000)
        stabilizer.update("focused", 0.9, START + 6000)

        stabilizer.reset()
        assert stabilizer.state == StabilizationState("happy", 0.0, None)

    @pytest.mark.parametrize(
        "kwargs",
        [
            dict(threshold=1.5),
            dict(dwell_ms=-1),
            dict(cooldown_ms=-1),
            dict(default_label="bored"),
        ],
    )
    def test_invalid_arguments(self, kwargs):
        with pytest.raises(ValueError):
            Stabilizer(**kwargs)
