"""
Landmark Provider Interface Module

This module defines the per-frame landmark schema consumed by the expression
pipeline and an abstract interface for the backends that produce it (MediaPipe
FaceMesh, or any other landmark model), so the pipeline never depends on a
specific detector.

Coordinate convention for LandmarkFrame points:
  - normalized to the face bounding box (0..1 on both axes)
  - x grows toward the image right
  - y grows UPWARD (0 = bottom of the face box, 1 = top)
"Left" regions are the ones on the image left.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
import numpy as np


# Region names (fixed schema; any region may be absent in a frame)
LEFT_EYE = "left_eye"
RIGHT_EYE = "right_eye"
INNER_LIPS = "inner_lips"
OUTER_LIPS = "outer_lips"
LEFT_EYEBROW = "left_eyebrow"
RIGHT_EYEBROW = "right_eyebrow"
NOSE = "nose"
NOSE_CREST = "nose_crest"
FACE_CONTOUR = "face_contour"

REGION_NAMES: Tuple[str, ...] = (
    LEFT_EYE, RIGHT_EYE, INNER_LIPS, OUTER_LIPS,
    LEFT_EYEBROW, RIGHT_EYEBROW, NOSE, NOSE_CREST, FACE_CONTOUR,
)


@dataclass
class LandmarkFrame:
    """
    Named 2D point regions for one face in one camera frame.

    Regions are (N, 2) float arrays in the coordinate convention described in
    the module docstring. Empty or missing regions are simply not present.
    """
    regions: Dict[str, np.ndarray] = field(default_factory=dict)
    bounding_box: Optional[Tuple[int, int, int, int]] = None  # (left, top, width, height) in pixels
    confidence: float = 1.0

    @classmethod
    def from_points(cls, regions: Dict[str, List[Tuple[float, float]]], **kwargs) -> "LandmarkFrame":
        """Build a frame from plain point lists; unknown names and empty regions are dropped."""
        out: Dict[str, np.ndarray] = {}
        for name, pts in (regions or {}).items():
            if name not in REGION_NAMES or pts is None:
                continue
            arr = np.asarray(pts, dtype=np.float64).reshape(-1, 2)
            if arr.shape[0] > 0:
                out[name] = arr
        return cls(regions=out, **kwargs)

    def region(self, name: str) -> Optional[np.ndarray]:
        """Return the region's points, or None when absent or empty."""
        pts = self.regions.get(name)
        if pts is None or len(pts) == 0:
            return None
        return pts


class LandmarkProviderInterface(ABC):
    """
    Abstract interface for landmark providers.

    A provider turns one camera image into at most one LandmarkFrame (the
    primary face). Returning None means "no face this frame"; the pipeline then
    skips the frame and keeps all of its timers and state.
    """

    @abstractmethod
    def detect(self, image: np.ndarray) -> Optional[LandmarkFrame]:
        """
        Detect the primary face in an image.

        Args:
            image: BGR image array (OpenCV format)

        Returns:
            LandmarkFrame for the first detected face, or None
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Return True if the provider can be used."""
        pass

    @abstractmethod
    def get_name(self) -> str:
        """Return the provider name (e.g. "mediapipe")."""
        pass

    def close(self) -> None:
        """Release resources. Default implementation does nothing."""
        pass
