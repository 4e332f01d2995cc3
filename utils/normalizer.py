"""
Normalizer Module

Turns RawMetrics into per-channel intensities in [0, 1] using the neutral
baseline and the profile gains. Every formula is clamped, and non-finite
intermediate values map to 0, so the output range holds for any input.

Channel formulas:
  eye openness   min(raw / max(baseline, 0.01), 1)       1.0 at neutral
  mouth open     (height - baseline height) * height gain
  smile          (width - baseline width) * width gain
  pucker         (height/width - baseline ratio) * 2.0    fixed, not tunable
  mouth L/R      diff = (right - left) - baseline diff, deadzone 0.01, x20
  eyebrow raise  max(0, distance - offset) * brow gain    offset 0.04 if uncalibrated
  squint         max(0, base - gap) * brow gain           base 0.15 if uncalibrated
  lips pressed   1 - height / 0.05                        fixed reference

Mouth direction polarity: a positive diff (right-lip distance larger than
left) is reported as mouth_left. This mapping was chosen empirically during
calibration with users and must stay as is.
"""

import math
from dataclasses import dataclass, fields
from typing import Dict

from utils.landmark_provider_interface import INNER_LIPS
from utils.metric_extractor import RawMetrics
from utils.profile_models import BaselineProfile, Channel, GainConfig

MIN_EYE_BASELINE = 0.01
PUCKER_MULTIPLIER = 2.0
MOUTH_DIRECTION_SENSITIVITY = 20.0
MOUTH_DIRECTION_DEADZONE = 0.01
DEFAULT_BROW_OFFSET = 0.04
DEFAULT_SQUINT_BASE = 0.15
LIPS_PRESSED_REFERENCE = 0.05


def clamp01(value: float) -> float:
    """Clamp to [0, 1]; NaN and infinities map to 0."""
    if value is None or not math.isfinite(value):
        return 0.0
    return min(max(value, 0.0), 1.0)


@dataclass
class ExpressionState:
    """Normalized (and, after the smoother, smoothed) intensity per channel, all in [0, 1]."""
    left_eye_openness: float = 1.0
    right_eye_openness: float = 1.0
    mouth_open: float = 0.0
    smile: float = 0.0
    pucker: float = 0.0
    mouth_left: float = 0.0
    mouth_right: float = 0.0
    eyebrow_raise: float = 0.0
    squint: float = 0.0
    lips_pressed: float = 0.0

    def value(self, channel: Channel) -> float:
        """Value driving a trigger channel (eye_closed uses the lower openness)."""
        if channel == Channel.EYE_CLOSED:
            return min(self.left_eye_openness, self.right_eye_openness)
        return getattr(self, _CHANNEL_FIELDS[channel])

    def as_dict(self) -> Dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


_CHANNEL_FIELDS: Dict[Channel, str] = {
    Channel.MOUTH_OPEN: "mouth_open",
    Channel.SMILE: "smile",
    Channel.PUCKER: "pucker",
    Channel.MOUTH_LEFT: "mouth_left",
    Channel.MOUTH_RIGHT: "mouth_right",
    Channel.EYEBROW_RAISE: "eyebrow_raise",
    Channel.SQUINT: "squint",
    Channel.LIPS_PRESSED: "lips_pressed",
}


def normalize_eye(raw: float, baseline: float) -> float:
    return clamp01(min(raw / max(baseline, MIN_EYE_BASELINE), 1.0))


def normalize_mouth_direction(diff: float) -> "tuple[float, float]":
    """
    Map a baseline-corrected lateral diff to (mouth_left, mouth_right).

    diff > deadzone reports mouth_left; diff < -deadzone reports mouth_right.
    """
    if not math.isfinite(diff):
        return 0.0, 0.0
    if diff > MOUTH_DIRECTION_DEADZONE:
        return clamp01((diff - MOUTH_DIRECTION_DEADZONE) * MOUTH_DIRECTION_SENSITIVITY), 0.0
    if diff < -MOUTH_DIRECTION_DEADZONE:
        return 0.0, clamp01((-diff - MOUTH_DIRECTION_DEADZONE) * MOUTH_DIRECTION_SENSITIVITY)
    return 0.0, 0.0


def normalize_eyebrow_raise(distance: float, baseline: float, gain: float) -> float:
    offset = baseline if baseline != 0 else DEFAULT_BROW_OFFSET
    return clamp01(max(0.0, distance - offset) * gain)


def normalize_squint(gap: float, baseline: float, gain: float) -> float:
    base = baseline if baseline != 0 else DEFAULT_SQUINT_BASE
    return clamp01(max(0.0, base - gap) * gain)


def normalize_pucker(height: float, width: float, baseline_ratio: float) -> float:
    if width <= 0:
        return 0.0
    return clamp01((height / width - baseline_ratio) * PUCKER_MULTIPLIER)


def normalize(raw: RawMetrics, baseline: BaselineProfile, gains: GainConfig) -> ExpressionState:
    """
    Compute the unsmoothed ExpressionState for one frame.

    Channels whose source regions were missing report their neutral value
    (eyes 1.0, everything else 0.0).
    """
    if raw.has_mouth_direction:
        mouth_left, mouth_right = normalize_mouth_direction(raw.mouth_diff - baseline.mouth_diff)
    else:
        mouth_left, mouth_right = 0.0, 0.0

    return ExpressionState(
        left_eye_openness=normalize_eye(raw.left_eye_openness, baseline.eye_openness),
        right_eye_openness=normalize_eye(raw.right_eye_openness, baseline.eye_openness),
        mouth_open=clamp01((raw.inner_lip_height - baseline.mouth_height) * gains.mouth_height_gain),
        smile=clamp01((raw.outer_lip_width - baseline.mouth_width) * gains.mouth_width_gain),
        pucker=normalize_pucker(raw.inner_lip_height, raw.outer_lip_width, baseline.mouth_ratio),
        mouth_left=mouth_left,
        mouth_right=mouth_right,
        eyebrow_raise=(
            normalize_eyebrow_raise(raw.brow_eye_distance, baseline.brow_raise, gains.eyebrow_gain)
            if raw.has_brow_distance else 0.0
        ),
        squint=(
            normalize_squint(raw.brow_gap, baseline.squint, gains.eyebrow_gain)
            if raw.has_brow_gap else 0.0
        ),
        lips_pressed=(
            clamp01(1.0 - raw.inner_lip_height / LIPS_PRESSED_REFERENCE)
            if INNER_LIPS in raw.present else 0.0
        ),
    )
