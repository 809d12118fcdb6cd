"""
Adaptation collaborator: maps stable affect labels to UI decisions.

The engine notifies an AdaptationHub whenever the stable label changes.
The hub tracks the active mode, exposes the matching AdaptationProfile and
fans the change out to subscribers (e.g. a renderer).
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List

from .features import DEFAULT_LABEL, validate_label

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HelpOptions:
    inline_tips: bool = False
    hint_button: bool = False
    guided_overlay: bool = False


@dataclass(frozen=True)
class AdaptationProfile:
    """Concrete UI decisions for one affect label."""

    theme: str
    density: str
    notifications: bool
    help: HelpOptions
    chrome: str
    highlight_next: bool
    micro_interactions: bool


ADAPTATION: Dict[str, AdaptationProfile] = {
    # Simplified UI: sidebar hides, colors mute
    "frustrated": AdaptationProfile(
        theme="muted",
        density="relaxed",
        notifications=False,
        help=HelpOptions(hint_button=True),
        chrome="minimal",
        highlight_next=False,
        micro_interactions=False,
    ),
    # Inline hint chip near the term, zoom + line-height
    "confused": AdaptationProfile(
        theme="neutral",
        density="normal",
        notifications=True,
        help=HelpOptions(inline_tips=True, hint_button=True, guided_overlay=True),
        chrome="normal",
        highlight_next=True,
        micro_interactions=False,
    ),
    # Chrome dims, minimal distractions
    "focused": AdaptationProfile(
        theme="neutral",
        density="compact",
        notifications=False,
        help=HelpOptions(),
        chrome="minimal",
        highlight_next=False,
        micro_interactions=False,
    ),
    "happy": AdaptationProfile(
        theme="vibrant",
        density="normal",
        notifications=True,
        help=HelpOptions(),
        chrome="normal",
        highlight_next=False,
        micro_interactions=True,
    ),
}

Subscriber = Callable[[str], None]


class AdaptationHub:
    """
    Holds the active UI mode and notifies subscribers when it changes.

    Usage:
        hub = AdaptationHub()
        unsubscribe = hub.subscribe(lambda mode: print(mode))
        engine = AffectEngine(on_change=hub.apply)
    """

    def __init__(self, initial_mode: str = DEFAULT_LABEL):
        self._mode = validate_label(initial_mode)
        self._subscribers: List[Subscriber] = []
        self.locked = False

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def profile(self) -> AdaptationProfile:
        return ADAPTATION[self._mode]

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback invoked with the new mode on every change.

        Returns:
            A function that removes the callback again.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def apply(self, label: str) -> bool:
        """
        Engine-driven change. Ignored while the hub is locked.

        Returns:
            True if the mode changed.
        """
        label = validate_label(label)
        logger.info(f"[adaptation] {label}")
        if self.locked:
            logger.debug(f"Adaptation locked, ignoring '{label}'")
            return False
        return self._set_mode(label)

    def force_mode(self, label: str) -> bool:
        """Manual preview: set the mode regardless of the lock."""
        return self._set_mode(validate_label(label))

    def _set_mode(self, label: str) -> bool:
        if label == self._mode:
            return False
        self._mode = label
        for callback in list(self._subscribers):
            try:
                callback(label)
            except Exception:
                logger.exception(f"Adaptation subscriber failed for mode '{label}'")
        return True
