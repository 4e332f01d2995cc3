"""
Expression Evaluator Module

Per-channel threshold test plus hold-duration gating.

A channel is *active* on a frame when its smoothed value crosses the channel
threshold in the configured direction (value > threshold, or value < threshold
when trigger_below is set). The eye_closed channel is active when either eye
on its own satisfies the test.

A channel is *met* (allowed to drive its action) once it has stayed active for
at least its hold duration:
  - the frame on which a channel turns active starts its timer at 0
  - every further active frame adds that frame's dt
  - met when accumulated >= hold_duration
  - the timer drops to 0 on the first inactive frame
Timers are driven by wall-clock dt, never by frame counts, so irregular frame
rates and dropped frames do not change how long a gesture must be held.
"""

import logging
from typing import Dict, Iterable, Mapping, Set

from utils.normalizer import ExpressionState
from utils.profile_models import Channel, TriggerConfig

logger = logging.getLogger(__name__)

HOLD_EPSILON = 1e-9


def effective_threshold(cfg: TriggerConfig) -> float:
    """Threshold clamped to [0, 1]."""
    return min(max(float(cfg.threshold), 0.0), 1.0)


def effective_hold(cfg: TriggerConfig) -> float:
    """Hold duration clamped to >= 0."""
    return max(float(cfg.hold_duration), 0.0)


def crosses(value: float, cfg: TriggerConfig) -> bool:
    threshold = effective_threshold(cfg)
    if cfg.trigger_below:
        return value < threshold
    return value > threshold


def channel_active(state: ExpressionState, channel: Channel, cfg: TriggerConfig) -> bool:
    if channel == Channel.EYE_CLOSED:
        return crosses(state.left_eye_openness, cfg) or crosses(state.right_eye_openness, cfg)
    return crosses(state.value(channel), cfg)


class ExpressionEvaluator:
    """
    Holds one hold timer per channel.

    Usage per frame:
        active = evaluator.active_channels(state, profile.triggers)
        ...combo resolution...
        met = evaluator.update_holds(active, dt, profile.triggers, suppressed=...)
    """

    def __init__(self):
        self._elapsed: Dict[Channel, float] = {}

    def reset(self) -> None:
        self._elapsed.clear()

    def hold_elapsed(self, channel: Channel) -> float:
        """Seconds the channel has been continuously active (0 when inactive)."""
        return self._elapsed.get(channel, 0.0)

    def active_channels(
        self, state: ExpressionState, triggers: Mapping[Channel, TriggerConfig]
    ) -> Set[Channel]:
        return {
            ch for ch in Channel
            if ch in triggers and channel_active(state, ch, triggers[ch])
        }

    def update_holds(
        self,
        active: Iterable[Channel],
        dt: float,
        triggers: Mapping[Channel, TriggerConfig],
        suppressed: bool = False,
    ) -> Set[Channel]:
        """
        Advance hold timers and return the channels whose hold is met.

        When suppressed (a combo owns this frame) every timer is reset and
        nothing is met, so a single gesture cannot fire the moment a combo
        lets go.
        """
        if suppressed:
            self._elapsed.clear()
            return set()

        dt = max(float(dt), 0.0)
        active = set(active)
        met: Set[Channel] = set()
        for ch in Channel:
            if ch not in active:
                self._elapsed.pop(ch, None)
                continue
            if ch in self._elapsed:
                self._elapsed[ch] += dt
            else:
                self._elapsed[ch] = 0.0
            cfg = triggers.get(ch)
            if cfg is not None and self._elapsed[ch] + HOLD_EPSILON >= effective_hold(cfg):
                met.add(ch)
        return met
