"""
Video Source Handler Module

Frame capture for the expression controller: the local webcam or a recorded
video file (useful for replaying a session). Requires the optional `camera`
extra (opencv-python).
"""

import logging
import sys
from enum import Enum
from typing import Optional, Tuple

import cv2
import numpy as np

import config

logger = logging.getLogger(__name__)


class VideoSourceType(Enum):
    """Enumeration of supported video source types."""
    WEBCAM = "webcam"
    FILE = "file"


def _webcam_apis():
    if sys.platform == "win32":
        return [cv2.CAP_DSHOW, cv2.CAP_MSMF, cv2.CAP_ANY]
    return [cv2.CAP_ANY]


class VideoSourceHandler:
    """
    Reads BGR frames from a webcam or a video file.

    Usage:
        handler = VideoSourceHandler()
        if handler.initialize_source(VideoSourceType.WEBCAM):
            ok, frame = handler.read_frame()
    """

    def __init__(self, mirror: Optional[bool] = None):
        self.cap: Optional[cv2.VideoCapture] = None
        self.source_type: Optional[VideoSourceType] = None
        self.source_path: Optional[str] = None
        # Mirrored frames make "left" in the image match the user's left.
        self.mirror = config.CAMERA_MIRROR if mirror is None else mirror

    def initialize_source(
        self,
        source_type: VideoSourceType,
        source_path: Optional[str] = None,
        camera_index: Optional[int] = None,
    ) -> bool:
        """
        Open a source. Returns False (and logs) when it cannot be opened.

        Args:
            source_type: WEBCAM or FILE
            source_path: video file path (required for FILE)
            camera_index: webcam index (defaults to config.CAMERA_INDEX)
        """
        self.release()
        self.source_type = source_type
        self.source_path = source_path

        try:
            if source_type == VideoSourceType.WEBCAM:
                index = config.CAMERA_INDEX if camera_index is None else camera_index
                for api in _webcam_apis():
                    cap = cv2.VideoCapture(index, api)
                    if cap.isOpened():
                        self.cap = cap
                        break
                    cap.release()
                if self.cap is not None:
                    self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, 640)
                    self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, 480)
                    self.cap.set(cv2.CAP_PROP_FPS, config.TARGET_FPS)
                    self.cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
            elif source_type == VideoSourceType.FILE:
                if not source_path:
                    raise ValueError("source_path is required for FILE source type")
                self.cap = cv2.VideoCapture(source_path)
            else:
                raise ValueError(f"Unsupported source type: {source_type}")
        except (cv2.error, ValueError) as e:
            logger.error("Error initializing video source: %s", e)
            self.release()
            return False

        if self.cap is None or not self.cap.isOpened():
            logger.error("Could not open %s source %s", source_type.value, source_path or "")
            self.release()
            return False
        logger.info("Video source opened: %s %s", source_type.value, source_path or "")
        return True

    def read_frame(self) -> Tuple[bool, Optional[np.ndarray]]:
        """Return (success, BGR frame)."""
        if not self.cap or not self.cap.isOpened():
            return False, None
        ret, frame = self.cap.read()
        if not ret or frame is None:
            return False, None
        if self.mirror:
            frame = cv2.flip(frame, 1)
        return True, frame

    def release(self) -> None:
        """Release the current video source."""
        if self.cap:
            self.cap.release()
            self.cap = None
        self.source_type = None
        self.source_path = None

    def __del__(self):
        self.release()
