"""
MediaPipe Landmark Provider

MediaPipe FaceMesh implementation of LandmarkProviderInterface. The 468-point
mesh of the first detected face is grouped into the named regions of
LandmarkFrame and re-expressed in face-box coordinates (0..1, y up).

Detection strategy:
1. Primary: FaceMesh in tracking mode (fast, continuous)
2. Fallback: FaceMesh in static mode (better at re-acquiring a lost face)

Requires the optional `camera` extra (mediapipe, opencv-python).
"""

import logging
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np
import mediapipe as mp

import config
from utils.landmark_provider_interface import (
    LandmarkFrame,
    LandmarkProviderInterface,
    LEFT_EYE, RIGHT_EYE, INNER_LIPS, OUTER_LIPS,
    LEFT_EYEBROW, RIGHT_EYEBROW, NOSE, NOSE_CREST, FACE_CONTOUR,
)

logger = logging.getLogger(__name__)

# FaceMesh vertex indices per region. "Left" is the image left, which is the
# subject's right side for an unmirrored camera.
REGION_INDICES: Dict[str, Tuple[int, ...]] = {
    LEFT_EYE: (33, 7, 163, 144, 145, 153, 154, 155, 133, 173, 157, 158, 159, 160, 161, 246),
    RIGHT_EYE: (362, 382, 381, 380, 374, 373, 390, 249, 263, 466, 388, 387, 386, 385, 384, 398),
    INNER_LIPS: (78, 95, 88, 178, 87, 14, 317, 402, 318, 324, 308, 415, 310, 311, 312, 13, 82, 81, 80, 191),
    OUTER_LIPS: (61, 146, 91, 181, 84, 17, 314, 405, 321, 375, 291, 409, 270, 269, 267, 0, 37, 39, 40, 185),
    LEFT_EYEBROW: (46, 53, 52, 65, 55, 70, 63, 105, 66, 107),
    RIGHT_EYEBROW: (276, 283, 282, 295, 285, 300, 293, 334, 296, 336),
    NOSE: (98, 97, 2, 326, 327, 294, 278, 344, 440, 275, 4, 45, 220, 115, 48, 64),
    NOSE_CREST: (168, 6, 197, 195, 5, 4, 1),
    FACE_CONTOUR: (
        10, 338, 297, 332, 284, 251, 389, 356, 454, 323, 361, 288, 397, 365, 379, 378,
        400, 377, 152, 148, 176, 149, 150, 136, 172, 58, 132, 93, 234, 127, 162, 21,
        54, 103, 67, 109,
    ),
}

# Re-create the tracking mesh after this many frames without a face.
TRACKING_RESET_AFTER = 5


def to_face_box(points: np.ndarray) -> Tuple[np.ndarray, Tuple[int, int, int, int]]:
    """
    Map pixel landmarks to face-box coordinates.

    Returns:
        (normalized (N, 2) array with y flipped to point up, pixel box (left, top, width, height))
    """
    xs, ys = points[:, 0], points[:, 1]
    left, top = float(np.min(xs)), float(np.min(ys))
    width = float(np.max(xs)) - left
    height = float(np.max(ys)) - top
    norm = np.empty((len(points), 2), dtype=np.float64)
    norm[:, 0] = (xs - left) / width if width > 0 else 0.0
    norm[:, 1] = 1.0 - (ys - top) / height if height > 0 else 0.0
    return norm, (int(left), int(top), int(width), int(height))


def frame_from_mesh(points: np.ndarray) -> LandmarkFrame:
    """Group a full FaceMesh point array (pixels) into a LandmarkFrame."""
    norm, bbox = to_face_box(points)
    regions: Dict[str, List[Tuple[float, float]]] = {}
    for name, indices in REGION_INDICES.items():
        valid = [i for i in indices if i < len(norm)]
        if valid:
            regions[name] = norm[valid].tolist()
    return LandmarkFrame.from_points(regions, bounding_box=bbox, confidence=1.0)


class MediaPipeLandmarkProvider(LandmarkProviderInterface):
    """MediaPipe FaceMesh landmark provider (first face only)."""

    def __init__(self, min_detection_confidence: Optional[float] = None, min_tracking_confidence: Optional[float] = None):
        det = config.MIN_FACE_CONFIDENCE if min_detection_confidence is None else min_detection_confidence
        track = config.MIN_FACE_CONFIDENCE if min_tracking_confidence is None else min_tracking_confidence
        self._det_conf = max(0.01, min(0.99, float(det)))
        self._track_conf = max(0.01, min(0.99, float(track)))

        self.mp_face_mesh = mp.solutions.face_mesh
        self.face_mesh = self._create_mesh(static=False)
        # Created on first tracking failure
        self._face_mesh_static = None

        self._consecutive_failures = 0
        self._available = True

    def _create_mesh(self, static: bool):
        return self.mp_face_mesh.FaceMesh(
            static_image_mode=static,
            max_num_faces=1,
            refine_landmarks=False,
            min_detection_confidence=self._det_conf,
            min_tracking_confidence=self._track_conf,
        )

    def detect(self, image: np.ndarray) -> Optional[LandmarkFrame]:
        if image is None or image.size == 0:
            return None

        rgb_image = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
        height, width = image.shape[:2]

        results = self.face_mesh.process(rgb_image)
        if not results.multi_face_landmarks:
            self._consecutive_failures += 1
            if self._face_mesh_static is None:
                self._face_mesh_static = self._create_mesh(static=True)
            results = self._face_mesh_static.process(rgb_image)

        if not results.multi_face_landmarks:
            if self._consecutive_failures >= TRACKING_RESET_AFTER:
                self._reset_tracking_mesh()
                self._consecutive_failures = 0
            return None

        self._consecutive_failures = 0
        face = results.multi_face_landmarks[0]
        points = np.array(
            [[lm.x * width, lm.y * height] for lm in face.landmark], dtype=np.float64
        )
        return frame_from_mesh(points)

    def _reset_tracking_mesh(self) -> None:
        logger.debug("Resetting FaceMesh tracking after %d misses", self._consecutive_failures)
        try:
            self.face_mesh.close()
        except Exception as e:
            logger.debug("FaceMesh close failed: %s", e)
        self.face_mesh = self._create_mesh(static=False)

    def is_available(self) -> bool:
        return self._available

    def get_name(self) -> str:
        return "mediapipe"

    def close(self) -> None:
        for mesh in (self.face_mesh, self._face_mesh_static):
            if mesh is None:
                continue
            try:
                mesh.close()
            except Exception as e:
                logger.debug("FaceMesh close failed: %s", e)
        self._available = False
