"""Rolling-window aggregation of per-frame expression distributions.

This module buffers the most recent expression distributions and produces
their time average, which smooths the upstream classifier's frame-to-frame
jitter before affect scoring.
"""

import math
from collections import deque
from typing import Deque, Dict, Mapping

from .features import BASE_EXPRESSIONS, read_probability


class RollingWindow:
    """Bounded FIFO of expression distributions (oldest evicted first).

    Attributes:
        window_size: Maximum number of buffered distributions.
        warmup_fraction: Fraction of window_size that must be buffered
            before the average is considered meaningful.
    """

    def __init__(self, window_size: int = 15, warmup_fraction: float = 0.6):
        """Initialize the window.

        Args:
            window_size: Maximum number of buffered distributions (>= 1).
            warmup_fraction: Warm-up fraction in range (0, 1].

        Raises:
            ValueError: If window_size < 1 or warmup_fraction not in (0, 1].
        """
        if window_size < 1:
            raise ValueError(f"window_size must be >= 1, got {window_size}")
        if not (0 < warmup_fraction <= 1):
            raise ValueError(
                f"warmup_fraction must be in range (0, 1], got {warmup_fraction}"
            )

        self.window_size = window_size
        self.warmup_fraction = warmup_fraction
        self._buffer: Deque[Dict[str, float]] = deque(maxlen=window_size)

    @property
    def warmup_size(self) -> int:
        """Minimum buffered entries before scoring: floor(size * fraction)."""
        return int(math.floor(self.window_size * self.warmup_fraction))

    def push(self, distribution: Mapping[str, float]) -> None:
        """Append one frame's distribution, evicting the oldest if full.

        Only the base categories are kept; missing or invalid values are
        stored as 0.
        """
        self._buffer.append(
            {name: read_probability(distribution, name) for name in BASE_EXPRESSIONS}
        )

    def average(self) -> Dict[str, float]:
        """Per-category mean over the buffered distributions.

        The mean is renormalized to sum to 1 whenever its total is positive.
        An empty window averages to all zeros.
        """
        if not self._buffer:
            return {name: 0.0 for name in BASE_EXPRESSIONS}

        count = len(self._buffer)
        avg = {
            name: sum(row[name] for row in self._buffer) / count
            for name in BASE_EXPRESSIONS
        }

        total = sum(avg.values())
        if total > 0:
            avg = {name: value / total for name, value in avg.items()}
        return avg

    def clear(self) -> None:
        """Empty the buffer."""
        self._buffer.clear()

    @property
    def is_warm(self) -> bool:
        """True once at least warmup_size entries are buffered."""
        return len(self._buffer) >= self.warmup_size

    def __len__(self) -> int:
        return len(self._buffer)
