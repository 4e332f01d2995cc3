"""
Expression Pipeline.

One pass per landmark frame:

    LandmarkFrame → metrics → (calibration) → normalize → smooth
        → per-channel threshold/hold → combo resolution → action arbitration

process() returns a PipelineResult carrying the latest ExpressionState and the
action events issued on that frame; consumers poll the result (the controller
keeps the latest one for the API) instead of subscribing to global state.

Timing: every timer (hold durations, combo grace, cooldowns) runs on the
wall-clock delta between processed frames. A "no face" frame is skipped
entirely and leaves all state, including the last timestamp, untouched; the
first frame has dt = 0.

During calibration the state is still computed and reported (normalized
against the previous baseline), but no channel is evaluated and no action is
issued. The frame that completes calibration is processed normally with the
new baseline.

Not re-entrant: the caller serializes process() calls and profile edits.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

import config
from services.action_arbiter import ActionArbiter, ActionEvent, ActionRequest
from utils.calibrator import CalibrationState, Calibrator
from utils.combo_resolver import ComboResolution, ComboResolver
from utils.expression_evaluator import ExpressionEvaluator, effective_threshold
from utils.expression_smoother import ExpressionSmoother
from utils.landmark_provider_interface import LandmarkFrame
from utils.metric_extractor import RawMetrics, extract_metrics
from utils.normalizer import ExpressionState, normalize
from utils.profile_models import BaselineProfile, Channel, FaceAction, Profile

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Outcome of one process() call."""
    timestamp: float
    face_detected: bool
    state: Optional[ExpressionState] = None
    raw: Optional[RawMetrics] = None
    events: List[ActionEvent] = field(default_factory=list)
    active_channels: Set[Channel] = field(default_factory=set)
    met_channels: Set[Channel] = field(default_factory=set)
    combo_action: Optional[FaceAction] = None
    calibration_state: CalibrationState = CalibrationState.UNCALIBRATED
    calibration_progress: float = 0.0
    calibration_completed: bool = False
    baseline: Optional[BaselineProfile] = None  # set on the completing frame
    performing_action: bool = False
    last_triggered_action: Optional[FaceAction] = None
    drag_held: bool = False

    @property
    def calibrating(self) -> bool:
        return self.calibration_state == CalibrationState.CALIBRATING

    @property
    def calibrated(self) -> bool:
        return self.calibration_state == CalibrationState.CALIBRATED

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "faceDetected": self.face_detected,
            "state": self.state.as_dict() if self.state else None,
            "events": [e.to_dict() for e in self.events],
            "activeChannels": sorted(c.value for c in self.active_channels),
            "metChannels": sorted(c.value for c in self.met_channels),
            "comboAction": self.combo_action.value if self.combo_action else None,
            "calibrationState": self.calibration_state.value,
            "calibrationProgress": self.calibration_progress,
            "calibrating": self.calibrating,
            "calibrated": self.calibrated,
            "calibrationCompleted": self.calibration_completed,
            "performingAction": self.performing_action,
            "lastTriggeredAction": self.last_triggered_action.value if self.last_triggered_action else None,
            "dragHeld": self.drag_held,
        }


def channel_excess(state: ExpressionState, channel: Channel, profile: Profile) -> float:
    """How far a channel's value is past its threshold in the trigger direction (>= 0)."""
    cfg = profile.trigger(channel)
    threshold = effective_threshold(cfg)
    if channel == Channel.EYE_CLOSED:
        eyes = (state.left_eye_openness, state.right_eye_openness)
        value = min(eyes) if cfg.trigger_below else max(eyes)
    else:
        value = state.value(channel)
    excess = threshold - value if cfg.trigger_below else value - threshold
    return max(0.0, excess)


def build_requests(
    state: ExpressionState,
    met: Set[Channel],
    combo: ComboResolution,
    profile: Profile,
) -> Dict[FaceAction, ActionRequest]:
    """
    Collect the actions requested this frame.

    Met channels contribute their mapped action (the strongest channel wins
    when two map to the same action). A combo action is requested at full
    intensity.
    """
    requests: Dict[FaceAction, ActionRequest] = {}
    for ch in Channel:
        if ch not in met:
            continue
        cfg = profile.trigger(ch)
        if cfg.action == FaceAction.NONE:
            continue
        excess = channel_excess(state, ch, profile)
        current = requests.get(cfg.action)
        if current is None or excess > current.excess:
            requests[cfg.action] = ActionRequest(
                action=cfg.action, excess=excess, threshold=effective_threshold(cfg)
            )
    if combo.action is not None and combo.action != FaceAction.NONE:
        requests[combo.action] = ActionRequest(action=combo.action, full_intensity=True)
    return requests


class ExpressionPipeline:
    """
    Wires metric extraction through action arbitration for one profile.

    Usage:
        pipeline = ExpressionPipeline(ActionArbiter(actuator), profile)
        result = pipeline.process(frame, time.monotonic())
    """

    def __init__(
        self,
        arbiter: ActionArbiter,
        profile: Optional[Profile] = None,
        calibrator: Optional[Calibrator] = None,
        auto_calibrate: Optional[bool] = None,
        eye_metric: Optional[str] = None,
    ):
        self.arbiter = arbiter
        self.profile = profile or Profile()
        self.eye_metric = eye_metric or config.EYE_OPENNESS_METRIC
        self.smoother = ExpressionSmoother()
        self.evaluator = ExpressionEvaluator()
        self.resolver = ComboResolver()

        if calibrator is None:
            auto = config.AUTO_CALIBRATE_ON_START if auto_calibrate is None else auto_calibrate
            if auto:
                initial = CalibrationState.CALIBRATING
            elif not self.profile.baseline.is_empty():
                initial = CalibrationState.CALIBRATED
            else:
                initial = CalibrationState.UNCALIBRATED
            calibrator = Calibrator(initial_state=initial)
        self.calibrator = calibrator

        self._last_timestamp: Optional[float] = None
        self._last_state: Optional[ExpressionState] = None
        self._last_diag_time = 0.0
        self.last_triggered_action: Optional[FaceAction] = None

    @property
    def last_state(self) -> Optional[ExpressionState]:
        return self._last_state

    def set_profile(self, profile: Profile) -> None:
        """Switch the active profile between frames."""
        self.profile = profile
        self.evaluator.reset()
        self.resolver.reset()
        self.smoother.reset()

    def request_calibration(self) -> None:
        """Start (or restart) the calibration window. Releases a held drag."""
        self.calibrator.request_calibration()
        self.evaluator.reset()
        self.resolver.reset()
        self.arbiter.force_release_all("calibration")

    def process(self, frame: Optional[LandmarkFrame], timestamp: Optional[float] = None) -> PipelineResult:
        now = time.monotonic() if timestamp is None else timestamp
        if frame is None:
            return PipelineResult(
                timestamp=now,
                face_detected=False,
                state=self._last_state,
                calibration_state=self.calibrator.state,
                calibration_progress=self.calibrator.progress(now),
                last_triggered_action=self.last_triggered_action,
                drag_held=self.arbiter.drag_held,
            )

        dt = 0.0 if self._last_timestamp is None else max(0.0, now - self._last_timestamp)
        self._last_timestamp = now
        profile = self.profile

        raw = extract_metrics(frame, self.eye_metric)

        new_baseline: Optional[BaselineProfile] = None
        if self.calibrator.is_calibrating:
            new_baseline = self.calibrator.add_sample(raw, now)
            if new_baseline is not None:
                profile.baseline = new_baseline

        state = self.smoother.update(normalize(raw, profile.baseline, profile.gains), profile.smooth_factor)
        self._last_state = state

        active: Set[Channel] = set()
        met: Set[Channel] = set()
        combo = ComboResolution()
        if self.calibrator.is_calibrating:
            events = self.arbiter.update({}, now, profile.continuous)
            requests: Dict[FaceAction, ActionRequest] = {}
        else:
            active = self.evaluator.active_channels(state, profile.triggers)
            combo = self.resolver.resolve(active, profile.combos, dt)
            met = self.evaluator.update_holds(
                active, dt, profile.triggers, suppressed=combo.suppress_singles
            )
            requests = build_requests(state, met, combo, profile)
            events = self.arbiter.update(requests, now, profile.continuous)

        if events:
            self.last_triggered_action = events[-1].action

        self._diagnostic_log(state, now)

        return PipelineResult(
            timestamp=now,
            face_detected=True,
            state=state,
            raw=raw,
            events=events,
            active_channels=active,
            met_channels=met,
            combo_action=combo.action,
            calibration_state=self.calibrator.state,
            calibration_progress=self.calibrator.progress(now),
            calibration_completed=new_baseline is not None,
            baseline=new_baseline,
            performing_action=bool(requests) or self.arbiter.drag_held,
            last_triggered_action=self.last_triggered_action,
            drag_held=self.arbiter.drag_held,
        )

    def _diagnostic_log(self, state: ExpressionState, now: float) -> None:
        if not config.DIAGNOSTIC_LOGGING:
            return
        if now - self._last_diag_time < config.DIAGNOSTIC_LOG_INTERVAL_SEC:
            return
        self._last_diag_time = now
        logger.info(
            "eyes L=%.2f R=%.2f mouth=%.2f smile=%.2f pucker=%.2f left=%.2f right=%.2f brow=%.2f squint=%.2f pressed=%.2f",
            state.left_eye_openness, state.right_eye_openness, state.mouth_open, state.smile,
            state.pucker, state.mouth_left, state.mouth_right, state.eyebrow_raise,
            state.squint, state.lips_pressed,
        )
