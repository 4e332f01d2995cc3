"""
Expression Smoother Module

Exponential moving average over ExpressionState, one previous value per field:

    smoothed = (1 - f) * new + f * previous_smoothed,   f in [0, 0.95]

f = 0 passes values through unchanged; larger f trades latency for less
landmark jitter. The first sample seeds the filter.
"""

import math
from dataclasses import fields
from typing import Dict, Optional

from utils.normalizer import ExpressionState, clamp01

MAX_SMOOTH_FACTOR = 0.95


def clamp_smooth_factor(value: float) -> float:
    try:
        f = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(f):
        return 0.0
    return min(max(f, 0.0), MAX_SMOOTH_FACTOR)


class ExpressionSmoother:
    """Stateful per-channel EMA. Update it every frame a face is present."""

    def __init__(self):
        self._previous: Optional[Dict[str, float]] = None

    @property
    def has_history(self) -> bool:
        return self._previous is not None

    def reset(self) -> None:
        self._previous = None

    def update(self, state: ExpressionState, smooth_factor: float) -> ExpressionState:
        factor = clamp_smooth_factor(smooth_factor)
        current = state.as_dict()
        if self._previous is None:
            smoothed = current
        else:
            smoothed = {
                name: clamp01((1.0 - factor) * value + factor * self._previous.get(name, value))
                for name, value in current.items()
            }
        self._previous = smoothed
        return ExpressionState(**{f.name: smoothed[f.name] for f in fields(ExpressionState)})
