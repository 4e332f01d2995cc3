"""
Combo Resolver Module

Recognizes gesture combos (two channels active at the same time) and keeps the
combo's action alive for a short grace window after the AND condition breaks.

Combos look at raw channel activity, not hold-met state: the grace window is
their debounce. While a combo is detected, or its grace countdown is still
running, single-channel actions are suppressed for the frame.

The grace countdown is reset to its ceiling on every detecting frame and only
counts down with elapsed time, so it never exceeds the ceiling.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

import config
from utils.profile_models import Channel, FaceAction, GestureCombo

logger = logging.getLogger(__name__)


@dataclass
class ComboResolution:
    """Combo outcome for one frame."""
    action: Optional[FaceAction] = None
    combo: Optional[GestureCombo] = None
    detected: bool = False
    sustaining: bool = False

    @property
    def suppress_singles(self) -> bool:
        return self.detected or self.sustaining


class ComboResolver:

    def __init__(self, grace_sec: Optional[float] = None):
        self.grace_sec = max(0.0, float(config.COMBO_GRACE_SEC if grace_sec is None else grace_sec))
        self._remaining = 0.0
        self._action: Optional[FaceAction] = None
        self._combo: Optional[GestureCombo] = None

    @property
    def remaining(self) -> float:
        """Seconds left in the grace window (0 when no combo is remembered)."""
        return self._remaining

    @property
    def active_action(self) -> Optional[FaceAction]:
        return self._action

    def reset(self) -> None:
        self._remaining = 0.0
        self._action = None
        self._combo = None

    def resolve(
        self,
        active: Iterable[Channel],
        combos: Sequence[GestureCombo],
        dt: float,
    ) -> ComboResolution:
        """
        Evaluate all enabled combos for this frame.

        When several combos match, the last one in list order wins.
        """
        active = set(active)
        matched: Optional[GestureCombo] = None
        for combo in combos:
            if not combo.enabled or combo.action == FaceAction.NONE:
                continue
            if combo.primary in active and combo.secondary in active:
                matched = combo

        if matched is not None:
            if self._combo is not matched:
                logger.debug(
                    "Combo detected: %s + %s -> %s",
                    matched.primary.value, matched.secondary.value, matched.action.value,
                )
            self._action = matched.action
            self._combo = matched
            self._remaining = self.grace_sec
            return ComboResolution(action=matched.action, combo=matched, detected=True)

        if self._action is not None:
            self._remaining = max(0.0, self._remaining - max(float(dt), 0.0))
            if self._remaining > 0.0:
                return ComboResolution(action=self._action, combo=self._combo, sustaining=True)
            logger.debug("Combo grace expired: %s", self._action.value)
        self.reset()
        return ComboResolution()
