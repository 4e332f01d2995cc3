"""
Metric Extractor Module

Pure, stateless conversion of one LandmarkFrame into the raw geometric scalars
the rest of the pipeline works with (no history, no calibration).

Every metric is total: a missing region maps to a neutral default (eye
openness 1.0, heights/widths/distances 0.0) and zero-width boxes use guarded
division, so a dropped region degrades one channel instead of halting output.
The set of regions that were actually present travels with the metrics so the
normalizer can zero channels whose inputs were missing.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Tuple
import numpy as np

from utils.landmark_provider_interface import (
    LandmarkFrame,
    LEFT_EYE, RIGHT_EYE, INNER_LIPS, OUTER_LIPS,
    LEFT_EYEBROW, RIGHT_EYEBROW, NOSE,
)

EYE_METRIC_HEIGHT = "height"
EYE_METRIC_ASPECT_RATIO = "aspect_ratio"

NEUTRAL_EYE_OPENNESS = 1.0


@dataclass
class RawMetrics:
    """Per-frame raw scalars. Transient; recomputed every frame, never persisted."""
    left_eye_openness: float = NEUTRAL_EYE_OPENNESS
    right_eye_openness: float = NEUTRAL_EYE_OPENNESS
    inner_lip_height: float = 0.0
    outer_lip_width: float = 0.0
    mouth_ratio: float = 0.0  # inner_lip_height / outer_lip_width, 0 when width <= 0
    brow_eye_distance: float = 0.0  # mean brow y - mean eye y, averaged over sides
    brow_gap: float = 0.0  # right brow innermost x - left brow innermost x
    mouth_left_distance: float = 0.0  # |nose center x - outer lips min x|
    mouth_right_distance: float = 0.0  # |outer lips max x - nose center x|
    present: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def mean_eye_openness(self) -> float:
        return (self.left_eye_openness + self.right_eye_openness) / 2.0

    @property
    def mouth_diff(self) -> float:
        """Right minus left lateral distance (positive = right distance larger)."""
        return self.mouth_right_distance - self.mouth_left_distance

    @property
    def has_brow_distance(self) -> bool:
        return ((LEFT_EYEBROW in self.present and LEFT_EYE in self.present)
                or (RIGHT_EYEBROW in self.present and RIGHT_EYE in self.present))

    @property
    def has_brow_gap(self) -> bool:
        return LEFT_EYEBROW in self.present and RIGHT_EYEBROW in self.present

    @property
    def has_mouth_direction(self) -> bool:
        return OUTER_LIPS in self.present and NOSE in self.present


def _clean(pts: Optional[np.ndarray]) -> Optional[np.ndarray]:
    """Drop non-finite rows; None when nothing usable is left."""
    if pts is None:
        return None
    arr = np.asarray(pts, dtype=np.float64).reshape(-1, 2)
    arr = arr[np.all(np.isfinite(arr), axis=1)]
    return arr if len(arr) else None


def _extent(pts: np.ndarray, axis: int) -> float:
    return float(np.max(pts[:, axis]) - np.min(pts[:, axis]))


def _box(pts: np.ndarray) -> Tuple[float, float]:
    """(width, height) of the region's bounding box."""
    return _extent(pts, 0), _extent(pts, 1)


def eye_openness(pts: Optional[np.ndarray], metric: str = EYE_METRIC_HEIGHT) -> float:
    """
    Openness of one eye region.

    "height": normalized box height clamped to [0, 1] (gain 1.0).
    "aspect_ratio": box height / box width, 0 when the width is degenerate.
    Missing region -> 1.0 (fully open).
    """
    pts = _clean(pts)
    if pts is None:
        return NEUTRAL_EYE_OPENNESS
    width, height = _box(pts)
    if metric == EYE_METRIC_ASPECT_RATIO:
        return height / width if width > 0 else 0.0
    return min(max(height, 0.0), 1.0)


def inner_lip_height(pts: Optional[np.ndarray]) -> float:
    pts = _clean(pts)
    return _extent(pts, 1) if pts is not None else 0.0


def outer_lip_width(pts: Optional[np.ndarray]) -> float:
    pts = _clean(pts)
    return _extent(pts, 0) if pts is not None else 0.0


def mouth_ratio(height: float, width: float) -> float:
    """Height / width, guarded to 0 for a degenerate width."""
    return height / width if width > 0 else 0.0


def brow_eye_distance(frame: LandmarkFrame) -> float:
    """Mean brow y minus mean eye y per side, averaged over the sides present."""
    sides = []
    for brow_name, eye_name in ((LEFT_EYEBROW, LEFT_EYE), (RIGHT_EYEBROW, RIGHT_EYE)):
        brow = _clean(frame.region(brow_name))
        eye = _clean(frame.region(eye_name))
        if brow is None or eye is None:
            continue
        sides.append(float(np.mean(brow[:, 1]) - np.mean(eye[:, 1])))
    if not sides:
        return 0.0
    return sum(sides) / len(sides)


def brow_gap(frame: LandmarkFrame) -> float:
    """
    Horizontal gap between the inner ends of the brows.

    The innermost point of each brow is the one closest to the face midline:
    max x for the left brow, min x for the right brow.
    """
    left = _clean(frame.region(LEFT_EYEBROW))
    right = _clean(frame.region(RIGHT_EYEBROW))
    if left is None or right is None:
        return 0.0
    return float(np.min(right[:, 0]) - np.max(left[:, 0]))


def mouth_lateral_distances(frame: LandmarkFrame) -> Tuple[float, float]:
    """(left, right) distances from the nose center x to the outer lip corners."""
    lips = _clean(frame.region(OUTER_LIPS))
    nose = _clean(frame.region(NOSE))
    if lips is None or nose is None:
        return 0.0, 0.0
    nose_center_x = (float(np.min(nose[:, 0])) + float(np.max(nose[:, 0]))) / 2.0
    left = abs(nose_center_x - float(np.min(lips[:, 0])))
    right = abs(float(np.max(lips[:, 0])) - nose_center_x)
    return left, right


def extract_metrics(frame: Optional[LandmarkFrame], eye_metric: str = EYE_METRIC_HEIGHT) -> RawMetrics:
    """
    Compute RawMetrics for one frame.

    Args:
        frame: landmark regions of the primary face (None -> all defaults)
        eye_metric: "height" or "aspect_ratio" for the eye openness form

    Returns:
        RawMetrics (never raises)
    """
    if frame is None:
        return RawMetrics()

    present = frozenset(
        name for name in frame.regions if _clean(frame.region(name)) is not None
    )
    height = inner_lip_height(frame.region(INNER_LIPS))
    width = outer_lip_width(frame.region(OUTER_LIPS))
    left_dist, right_dist = mouth_lateral_distances(frame)

    return RawMetrics(
        left_eye_openness=eye_openness(frame.region(LEFT_EYE), eye_metric),
        right_eye_openness=eye_openness(frame.region(RIGHT_EYE), eye_metric),
        inner_lip_height=height,
        outer_lip_width=width,
        mouth_ratio=mouth_ratio(height, width),
        brow_eye_distance=brow_eye_distance(frame),
        brow_gap=brow_gap(frame),
        mouth_left_distance=left_dist,
        mouth_right_distance=right_dist,
        present=present,
    )
