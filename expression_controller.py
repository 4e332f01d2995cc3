"""
Expression Controller.

Runs the capture loop: reads camera frames, gets landmarks for the primary face
from the landmark provider, feeds them to the ExpressionPipeline and keeps the
latest PipelineResult for the operator API. Owns the safety monitor and the
actuator.

Threading: the loop runs in a daemon thread. Profile edits (ProfileManager),
calibration requests, safety releases and pointer forwarding all take the
same re-entrant lock as the per-frame process() call, so they land between
frames.
"""

import logging
import threading
import time
from collections import deque
from typing import Callable, Optional, Tuple

import numpy as np

import config
from expression_pipeline import ExpressionPipeline, PipelineResult
from services.action_arbiter import ActionArbiter
from services.actuator import ActuatorInterface
from services.profile_manager import ProfileManager
from services.safety_monitor import SafetyMonitor
from utils.landmark_provider_interface import LandmarkProviderInterface
from utils.profile_models import Profile

logger = logging.getLogger(__name__)


def _default_provider() -> LandmarkProviderInterface:
    from utils.mediapipe_detector import MediaPipeLandmarkProvider
    return MediaPipeLandmarkProvider()


def _default_actuator() -> ActuatorInterface:
    from services.actuator import PyAutoGuiActuator
    return PyAutoGuiActuator()


def _default_video_handler():
    from utils.video_source_handler import VideoSourceHandler
    return VideoSourceHandler()


class ExpressionController:
    """
    Usage:
        controller = ExpressionController(ProfileManager())
        controller.start()
        ...
        result = controller.get_current_state()
        controller.stop()
    """

    def __init__(
        self,
        manager: ProfileManager,
        actuator: Optional[ActuatorInterface] = None,
        provider_factory: Optional[Callable[[], LandmarkProviderInterface]] = None,
        video_handler_factory: Optional[Callable[[], object]] = None,
        safety_monitor_enabled: Optional[bool] = None,
    ):
        self.manager = manager
        self.lock = manager.lock
        self._actuator = actuator
        self._provider_factory = provider_factory or _default_provider
        self._video_handler_factory = video_handler_factory or _default_video_handler
        self._safety_enabled = config.SAFETY_MONITOR_ENABLED if safety_monitor_enabled is None else safety_monitor_enabled

        self.pipeline: Optional[ExpressionPipeline] = None
        self.provider: Optional[LandmarkProviderInterface] = None
        self.video_handler = None
        self.safety_monitor: Optional[SafetyMonitor] = None
        self._pending_calibration = False

        self.detection_thread: Optional[threading.Thread] = None
        self.is_running = False
        self.current_result: Optional[PipelineResult] = None
        self.fps_counter: deque = deque(maxlen=30)
        self.last_frame_time = time.monotonic()

        manager.add_listener(self._on_profile_selected)

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def ensure_pipeline(self) -> ExpressionPipeline:
        """Build the pipeline (and the actuator, if none was injected) on first use."""
        with self.lock:
            if self.pipeline is None:
                if self._actuator is None:
                    self._actuator = _default_actuator()
                self.pipeline = ExpressionPipeline(ActionArbiter(self._actuator), self.manager.active_profile)
                if self._pending_calibration:
                    self.pipeline.request_calibration()
                    self._pending_calibration = False
            return self.pipeline

    def _on_profile_selected(self, profile: Profile) -> None:
        with self.lock:
            if self.pipeline is not None:
                self.pipeline.set_profile(profile)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, source_type=None, source_path: Optional[str] = None) -> bool:
        """
        Open the camera, the landmark provider and the safety monitor, then
        start the capture thread.

        Returns:
            True if the loop started, False otherwise (reason logged)
        """
        if self.is_running:
            self.stop()

        try:
            self.ensure_pipeline()
            self.provider = self._provider_factory()
            self.video_handler = self._video_handler_factory()
        except Exception as e:
            logger.error("Could not start expression controller: %s", e)
            self._release_resources()
            return False

        if source_type is None:
            from utils.video_source_handler import VideoSourceType
            source_type = VideoSourceType.WEBCAM
        if not self.video_handler.initialize_source(source_type, source_path):
            logger.error("Failed to open video source %s %s", source_type, source_path or "")
            self._release_resources()
            return False

        if self._safety_enabled:
            self.safety_monitor = SafetyMonitor(
                is_drag_held=lambda: self.pipeline is not None and self.pipeline.arbiter.drag_held,
                on_physical_click=self.force_release,
                on_pointer_motion=self.forward_pointer_motion,
                ledger=getattr(self._actuator, "ledger", None),
            )
            self.safety_monitor.start()

        logger.info("Expression control started (provider=%s)", self.provider.get_name())
        self.is_running = True
        self.detection_thread = threading.Thread(target=self._detection_loop, daemon=True)
        self.detection_thread.start()
        return True

    def stop(self) -> None:
        """Stop the loop, release any held drag, and free camera and provider."""
        self.is_running = False
        if self.detection_thread and self.detection_thread.is_alive():
            self.detection_thread.join(timeout=2.0)
        self.detection_thread = None
        self.force_release("stop")
        self._release_resources()
        logger.info("Expression control stopped")

    def _release_resources(self) -> None:
        if self.safety_monitor is not None:
            self.safety_monitor.stop()
            self.safety_monitor = None
        if self.video_handler is not None:
            self.video_handler.release()
            self.video_handler = None
        if self.provider is not None:
            self.provider.close()
            self.provider = None

    # ------------------------------------------------------------------
    # Operator / environment hooks
    # ------------------------------------------------------------------

    def calibrate(self) -> None:
        """Request a new calibration; it starts on the next frame with a face."""
        with self.lock:
            if self.pipeline is None:
                self._pending_calibration = True
            else:
                self.pipeline.request_calibration()

    def force_release(self, reason: str = "safety") -> int:
        """Release every held button. Returns the number of release events issued."""
        with self.lock:
            if self.pipeline is None:
                return 0
            return len(self.pipeline.arbiter.force_release_all(reason))

    def forward_pointer_motion(self, position: Tuple[float, float]) -> None:
        with self.lock:
            if self.pipeline is not None:
                self.pipeline.arbiter.forward_pointer_motion(position, time.monotonic())

    def get_current_state(self) -> Optional[PipelineResult]:
        with self.lock:
            return self.current_result

    def get_fps(self) -> float:
        if not self.fps_counter:
            return 0.0
        return float(np.mean(self.fps_counter))

    def status(self) -> dict:
        with self.lock:
            pipeline = self.pipeline
            return {
                "running": self.is_running,
                "provider": self.provider.get_name() if self.provider else None,
                "fps": round(self.get_fps(), 1),
                "calibrationState": pipeline.calibrator.state.value if pipeline else None,
                "dragHeld": pipeline.arbiter.drag_held if pipeline else False,
                "safetyMonitor": self.safety_monitor is not None and self.safety_monitor.running,
                "activeProfileId": self.manager.active_profile_id,
            }

    # ------------------------------------------------------------------
    # Frame processing
    # ------------------------------------------------------------------

    def process_image(self, image: np.ndarray, timestamp: Optional[float] = None) -> PipelineResult:
        """Detect landmarks in one image and run the pipeline on them."""
        pipeline = self.ensure_pipeline()
        frame = self.provider.detect(image) if self.provider is not None else None
        now = time.monotonic() if timestamp is None else timestamp
        with self.lock:
            result = pipeline.process(frame, now)
            if result.calibration_completed and result.baseline is not None:
                self.manager.set_baseline(result.baseline)
            self.current_result = result
        return result

    def _detection_loop(self) -> None:
        frame_budget = 1.0 / max(1.0, config.TARGET_FPS)
        missed = 0
        while self.is_running:
            try:
                ret, image = self.video_handler.read_frame()
                if not ret:
                    missed += 1
                    if missed > int(config.TARGET_FPS * 2):
                        logger.warning("Video source not providing frames")
                        missed = 0
                    time.sleep(frame_budget)
                    continue
                missed = 0

                self.process_image(image)

                current_time = time.monotonic()
                frame_time = current_time - self.last_frame_time
                self.last_frame_time = current_time
                if frame_time > 0:
                    self.fps_counter.append(1.0 / frame_time)
                if 0 < frame_time < frame_budget:
                    time.sleep(frame_budget - frame_time)
            except Exception:
                logger.exception("Error in detection loop")
                time.sleep(0.1)
