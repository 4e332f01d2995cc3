"""
Calibrator Module

Captures the user's neutral face. While Calibrating, every frame with a face
adds its RawMetrics to a sample list; once the window (3 s by default) has
elapsed since the first sample, the per-field means become a new
BaselineProfile and the calibrator moves to Calibrated.

State machine:
    UNCALIBRATED ──(request)──> CALIBRATING ──(window elapsed)──> CALIBRATED
         ^                          |  ^                               |
         └── any state ── request ──┘  └─────────── request ───────────┘

A request always restarts the window and discards samples in flight. There
are no retries and no failure state: with no face, no samples arrive and the
window simply has not started yet.
"""

import logging
from enum import Enum
from typing import Iterable, List, Optional
import numpy as np

import config
from utils.landmark_provider_interface import INNER_LIPS, OUTER_LIPS, LEFT_EYE, RIGHT_EYE
from utils.metric_extractor import RawMetrics, mouth_ratio
from utils.profile_models import BaselineProfile

logger = logging.getLogger(__name__)


class CalibrationState(Enum):
    UNCALIBRATED = "uncalibrated"
    CALIBRATING = "calibrating"
    CALIBRATED = "calibrated"


def _mean(values: List[float]) -> float:
    return float(np.mean(values)) if values else 0.0


def compute_baseline(samples: Iterable[RawMetrics]) -> BaselineProfile:
    """
    Derive a BaselineProfile from calibration samples.

    Each field is the mean over the samples whose source regions were present,
    so a region dropped for a few frames does not drag the baseline to zero.
    The mouth ratio is derived from the mean height and width (0 if width <= 0).
    """
    eyes: List[float] = []
    heights: List[float] = []
    widths: List[float] = []
    diffs: List[float] = []
    brows: List[float] = []
    gaps: List[float] = []
    for s in samples:
        open_eyes = []
        if LEFT_EYE in s.present:
            open_eyes.append(s.left_eye_openness)
        if RIGHT_EYE in s.present:
            open_eyes.append(s.right_eye_openness)
        if open_eyes:
            eyes.append(sum(open_eyes) / len(open_eyes))
        if INNER_LIPS in s.present:
            heights.append(s.inner_lip_height)
        if OUTER_LIPS in s.present:
            widths.append(s.outer_lip_width)
        if s.has_mouth_direction:
            diffs.append(s.mouth_diff)
        if s.has_brow_distance:
            brows.append(s.brow_eye_distance)
        if s.has_brow_gap:
            gaps.append(s.brow_gap)

    height = _mean(heights)
    width = _mean(widths)
    return BaselineProfile(
        eye_openness=_mean(eyes),
        mouth_height=height,
        mouth_width=width,
        mouth_ratio=mouth_ratio(height, width),
        mouth_diff=_mean(diffs),
        brow_raise=_mean(brows),
        squint=_mean(gaps),
    )


class Calibrator:
    """
    Stateful neutral-face capture.

    Usage:
        calibrator = Calibrator()
        calibrator.request_calibration()
        for raw, now in frames:
            baseline = calibrator.add_sample(raw, now)
            if baseline is not None:
                profile.baseline = baseline
    """

    def __init__(
        self,
        duration_sec: Optional[float] = None,
        initial_state: CalibrationState = CalibrationState.UNCALIBRATED,
    ):
        self.duration_sec = max(0.0, float(config.CALIBRATION_DURATION_SEC if duration_sec is None else duration_sec))
        self._state = initial_state
        self._start_time: Optional[float] = None
        self._samples: List[RawMetrics] = []

    @property
    def state(self) -> CalibrationState:
        return self._state

    @property
    def is_calibrating(self) -> bool:
        return self._state == CalibrationState.CALIBRATING

    @property
    def is_calibrated(self) -> bool:
        return self._state == CalibrationState.CALIBRATED

    @property
    def sample_count(self) -> int:
        return len(self._samples)

    def request_calibration(self) -> None:
        """Enter Calibrating from any state, discarding any window in progress."""
        self._state = CalibrationState.CALIBRATING
        self._start_time = None
        self._samples = []
        logger.info("Calibration requested; hold a neutral face")

    def progress(self, timestamp: float) -> float:
        """Fraction (0-1) of the window elapsed; 0 before the first sample."""
        if not self.is_calibrating or self._start_time is None:
            return 0.0
        if self.duration_sec <= 0:
            return 1.0
        return min(1.0, max(0.0, (timestamp - self._start_time) / self.duration_sec))

    def add_sample(self, raw: RawMetrics, timestamp: float) -> Optional[BaselineProfile]:
        """
        Feed one face frame.

        Returns:
            The new BaselineProfile on the frame that completes the window,
            otherwise None (also None when not calibrating).
        """
        if not self.is_calibrating:
            return None
        if self._start_time is None:
            self._start_time = timestamp
            logger.info("Calibration window started (%.1fs)", self.duration_sec)
        self._samples.append(raw)
        if timestamp - self._start_time < self.duration_sec:
            return None

        baseline = compute_baseline(self._samples)
        n = len(self._samples)
        self._samples = []
        self._start_time = None
        self._state = CalibrationState.CALIBRATED
        logger.info(
            "Calibration complete (%d samples): eye=%.4f mouthH=%.4f mouthW=%.4f brow=%.4f squint=%.4f",
            n, baseline.eye_openness, baseline.mouth_height, baseline.mouth_width,
            baseline.brow_raise, baseline.squint,
        )
        return baseline
