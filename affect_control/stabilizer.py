"""
Dwell-time / cooldown state machine for the stable affect label.

Instantaneous candidates are noisy; the stabilizer only switches the
externally visible label when a candidate is confident and persistently the
best for a full dwell period, and then ignores all candidates for a
cooldown period.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .features import DEFAULT_LABEL, validate_label

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingCandidate:
    """A candidate label waiting out its dwell period."""

    label: str
    since: float


@dataclass(frozen=True)
class StabilizationState:
    """Observable state: (current_label, cooldown_until, pending)."""

    current_label: str = DEFAULT_LABEL
    cooldown_until: float = 0.0
    pending: Optional[PendingCandidate] = None


class Stabilizer:
    """Two-timer debounce over candidate labels.

    Transition rule, evaluated once per decision cycle:

    - still cooling down, or confidence below threshold, or candidate equals
      the current label: no label change; a candidate equal to the current
      label also clears any pending switch.
    - otherwise a new or different candidate starts a pending switch, and a
      pending switch that has persisted for dwell_ms is committed.

    On commit the cooldown starts and the on_change callback is notified.
    Times are milliseconds from any monotonic clock.
    """

    def __init__(
        self,
        threshold: float = 0.40,
        dwell_ms: float = 1000.0,
        cooldown_ms: float = 4000.0,
        default_label: str = DEFAULT_LABEL,
        on_change: Optional[Callable[[str], None]] = None,
    ):
        """
        Args:
            threshold: Minimum candidate confidence in [0, 1].
            dwell_ms: How long a candidate must persist before committing.
            cooldown_ms: How long after a commit all candidates are ignored.
            default_label: Initial and post-reset stable label.
            on_change: Called with the new label after every commit.

        Raises:
            ValueError: On out-of-range arguments or an unknown label.
        """
        if not (0 <= threshold <= 1):
            raise ValueError(f"threshold must be in range [0, 1], got {threshold}")
        if dwell_ms < 0:
            raise ValueError(f"dwell_ms must be >= 0, got {dwell_ms}")
        if cooldown_ms < 0:
            raise ValueError(f"cooldown_ms must be >= 0, got {cooldown_ms}")

        self.threshold = threshold
        self.dwell_ms = dwell_ms
        self.cooldown_ms = cooldown_ms
        self.default_label = validate_label(default_label)
        self.on_change = on_change

        self._current = self.default_label
        self._cooldown_until = 0.0
        self._pending: Optional[PendingCandidate] = None

    def update(self, label: str, confidence: float, now: float) -> bool:
        """
        Evaluate one candidate.

        Args:
            label: Candidate label.
            confidence: Candidate confidence.
            now: Current time in milliseconds.

        Returns:
            True if the stable label was switched this cycle.
        """
        if now <= self._cooldown_until or confidence < self.threshold or label == self._current:
            if label == self._current:
                self._pending = None
            return False

        if self._pending is None or self._pending.label != label:
            self._pending = PendingCandidate(label=label, since=now)
            logger.debug(f"Pending switch {self._current} -> {label} at {now:.0f}ms")
            return False

        if now - self._pending.since < self.dwell_ms:
            return False

        previous = self._current
        self._current = label
        self._cooldown_until = now + self.cooldown_ms
        self._pending = None
        logger.info(f"Affect label switched {previous} -> {label}")

        self._notify(label)
        return True

    def _notify(self, label: str) -> None:
        # The commit above stands even if the callback fails
        if self.on_change is None:
            return
        try:
            self.on_change(label)
        except Exception:
            logger.exception(f"Adaptation callback failed for label '{label}'")

    def cooling_ms(self, now: float) -> float:
        """Milliseconds remaining in the cooldown (0 when not cooling)."""
        return max(0.0, self._cooldown_until - now)

    def reset(self) -> None:
        """Restore the default label and clear cooldown and pending state."""
        self._current = self.default_label
        self._cooldown_until = 0.0
        self._pending = None

    @property
    def current_label(self) -> str:
        return self._current

    @property
    def cooldown_until(self) -> float:
        return self._cooldown_until

    @property
    def pending(self) -> Optional[PendingCandidate]:
        return self._pending

    @property
    def state(self) -> StabilizationState:
        return StabilizationState(
            current_label=self._current,
            cooldown_until=self._cooldown_until,
            pending=self._pending,
        )
