"""
Action Arbiter

Turns the set of actions requested on a frame into Actuator calls.

Action kinds:
  - continuous (scroll, relative pointer move): issued on every frame the
    action is requested, magnitude from ContinuousSettings
  - discrete (clicks, keys): fired once per rising edge, then held off by a
    cooldown (0.5 s per key action; 0.1 s shared by all pointer-button actions)
  - toggle (left drag): a rising edge presses or releases the left button;
    while held, pointer motion reported by the environment is forwarded as drag

A rising edge is an action requested this frame that was not requested on the
previous frame. A left click while a drag is held releases the drag instead of
clicking. force_release_all() releases a held drag unconditionally and is what
the safety monitor calls when it sees a physical click during a drag.

Every event carries the synthetic marker. Actuator failures are logged and
never propagate to the caller.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Set, Tuple

import config
from services.actuator import ActuatorInterface, BUTTON_LEFT, BUTTON_RIGHT, PRIMARY_MODIFIER
from utils.profile_models import (
    ActionKind,
    ContinuousSettings,
    FaceAction,
    INTENSITY_FLAT,
    INTENSITY_PROPORTIONAL_RANGE,
    INTENSITY_PROPORTIONAL_THRESHOLD,
    POINTER_BUTTON_ACTIONS,
)

logger = logging.getLogger(__name__)

# Fraction of the threshold used as the normalization range in proportional_threshold mode.
THRESHOLD_RANGE_FACTOR = 0.8

KEY_BINDINGS: Dict[FaceAction, Tuple[str, Tuple[str, ...]]] = {
    FaceAction.ENTER: ("enter", ()),
    FaceAction.ESCAPE: ("esc", ()),
    FaceAction.SPACE: ("space", ()),
    FaceAction.ARROW_LEFT: ("left", ()),
    FaceAction.ARROW_RIGHT: ("right", ()),
    FaceAction.ARROW_UP: ("up", ()),
    FaceAction.ARROW_DOWN: ("down", ()),
    FaceAction.COPY: ("c", (PRIMARY_MODIFIER,)),
    FaceAction.PASTE: ("v", (PRIMARY_MODIFIER,)),
    FaceAction.UNDO: ("z", (PRIMARY_MODIFIER,)),
}

# (dx, dy) unit direction per continuous action. Scroll dy > 0 is up; move dy > 0 is down.
CONTINUOUS_DIRECTIONS: Dict[FaceAction, Tuple[int, int]] = {
    FaceAction.SCROLL_UP: (0, 1),
    FaceAction.SCROLL_DOWN: (0, -1),
    FaceAction.MOVE_LEFT: (-1, 0),
    FaceAction.MOVE_RIGHT: (1, 0),
    FaceAction.MOVE_UP: (0, -1),
    FaceAction.MOVE_DOWN: (0, 1),
}

SCROLL_ACTIONS = frozenset({FaceAction.SCROLL_UP, FaceAction.SCROLL_DOWN})

PHASE_FIRE = "fire"
PHASE_PRESS = "press"
PHASE_RELEASE = "release"
PHASE_DRAG = "drag"


@dataclass
class ActionRequest:
    """
    One action requested on a frame.

    excess is how far the driving value is past its threshold (>= 0);
    combo-driven requests set full_intensity instead.
    """
    action: FaceAction
    excess: float = 0.0
    threshold: float = 0.0
    full_intensity: bool = False


@dataclass
class ActionEvent:
    """An actuator call that was issued."""
    kind: ActionKind
    action: FaceAction
    intensity: Optional[float] = None
    magnitude: Optional[float] = None
    phase: str = PHASE_FIRE
    synthetic_marker: int = config.SYNTHETIC_EVENT_MARKER
    timestamp: float = 0.0

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "action": self.action.value,
            "intensity": self.intensity,
            "magnitude": self.magnitude,
            "phase": self.phase,
            "syntheticMarker": self.synthetic_marker,
            "timestamp": self.timestamp,
        }


def continuous_intensity(request: ActionRequest, settings: ContinuousSettings) -> float:
    """Ratio in [0, 1] of how strongly a continuous action is driven (1.0 in flat mode)."""
    if request.full_intensity or settings.intensity_mode == INTENSITY_FLAT:
        return 1.0
    excess = max(0.0, float(request.excess))
    if settings.intensity_mode == INTENSITY_PROPORTIONAL_RANGE:
        span = float(settings.intensity_range)
    elif settings.intensity_mode == INTENSITY_PROPORTIONAL_THRESHOLD:
        span = float(request.threshold) * THRESHOLD_RANGE_FACTOR
    else:
        return 1.0
    if span <= 0:
        return 1.0
    return min(1.0, excess / span)


def continuous_magnitude(request: ActionRequest, settings: ContinuousSettings) -> float:
    """
    Per-frame magnitude of a continuous action.

    Flat mode uses the fixed step (scroll_step or move_step). Proportional
    modes scale max_speed by the intensity and clamp to [min_speed, max_speed].
    """
    if settings.intensity_mode == INTENSITY_FLAT:
        step = settings.scroll_step if request.action in SCROLL_ACTIONS else settings.move_step
        return max(0.0, float(step))
    lo = max(0.0, min(settings.min_speed, settings.max_speed))
    hi = max(0.0, max(settings.min_speed, settings.max_speed))
    return min(max(hi * continuous_intensity(request, settings), lo), hi)


class ActionArbiter:
    """
    Edge detection, cooldowns and toggle state in front of an Actuator.

    Not thread-safe on its own: the owner serializes update(),
    forward_pointer_motion() and force_release_all().
    """

    def __init__(
        self,
        actuator: ActuatorInterface,
        key_cooldown_sec: Optional[float] = None,
        click_cooldown_sec: Optional[float] = None,
        marker: Optional[int] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.actuator = actuator
        self.key_cooldown_sec = config.KEY_COOLDOWN_SEC if key_cooldown_sec is None else key_cooldown_sec
        self.click_cooldown_sec = config.CLICK_COOLDOWN_SEC if click_cooldown_sec is None else click_cooldown_sec
        self.marker = config.SYNTHETIC_EVENT_MARKER if marker is None else marker
        self._clock = clock
        self._previous: Set[FaceAction] = set()
        self._last_key_fire: Dict[FaceAction, float] = {}
        self._last_button_fire: Optional[float] = None
        self._drag_held = False
        self._last_time = 0.0

    @property
    def drag_held(self) -> bool:
        return self._drag_held

    def _now(self, timestamp: Optional[float]) -> float:
        if timestamp is not None:
            return timestamp
        if self._clock is not None:
            return self._clock()
        return self._last_time

    def _call(self, fn, *args) -> bool:
        try:
            fn(*args, self.marker)
            return True
        except Exception as e:
            logger.warning("Actuator call %s failed: %s", getattr(fn, "__name__", fn), e)
            return False

    def _event(self, kind: ActionKind, action: FaceAction, now: float, **kwargs) -> ActionEvent:
        return ActionEvent(kind=kind, action=action, synthetic_marker=self.marker, timestamp=now, **kwargs)

    # ------------------------------------------------------------------
    # Per-frame update
    # ------------------------------------------------------------------

    def update(
        self,
        requests: Mapping[FaceAction, ActionRequest],
        timestamp: float,
        settings: Optional[ContinuousSettings] = None,
    ) -> List[ActionEvent]:
        """
        Dispatch one frame's requested actions.

        Args:
            requests: requested actions (FaceAction.NONE is ignored)
            timestamp: frame time in seconds (drives cooldowns)
            settings: continuous-action magnitudes (defaults when None)

        Returns:
            Events actually issued to the actuator, in dispatch order
        """
        settings = settings or ContinuousSettings()
        self._last_time = timestamp
        active = {a for a in requests if a != FaceAction.NONE and a.kind is not None}
        rising = active - self._previous
        events: List[ActionEvent] = []

        for action in FaceAction:
            if action not in active:
                continue
            kind = action.kind
            if kind == ActionKind.CONTINUOUS:
                event = self._continuous(requests[action], settings, timestamp)
            elif action in rising:
                event = self._edge(action, timestamp)
            else:
                event = None
            if event is not None:
                events.append(event)

        self._previous = active
        return events

    def _continuous(self, request: ActionRequest, settings: ContinuousSettings, now: float) -> Optional[ActionEvent]:
        magnitude = continuous_magnitude(request, settings)
        if magnitude <= 0:
            return None
        ux, uy = CONTINUOUS_DIRECTIONS[request.action]
        if request.action in SCROLL_ACTIONS:
            ok = self._call(self.actuator.scroll, ux * magnitude, uy * magnitude)
        else:
            ok = self._call(self.actuator.move_relative, ux * magnitude, uy * magnitude)
        if not ok:
            return None
        return self._event(
            ActionKind.CONTINUOUS, request.action, now,
            intensity=continuous_intensity(request, settings), magnitude=magnitude,
        )

    def _cooling_down(self, action: FaceAction, now: float) -> bool:
        if action in POINTER_BUTTON_ACTIONS:
            last = self._last_button_fire
            cooldown = self.click_cooldown_sec
        else:
            last = self._last_key_fire.get(action)
            cooldown = self.key_cooldown_sec
        return last is not None and now - last < cooldown

    def _mark_fired(self, action: FaceAction, now: float) -> None:
        if action in POINTER_BUTTON_ACTIONS:
            self._last_button_fire = now
        else:
            self._last_key_fire[action] = now

    def _edge(self, action: FaceAction, now: float) -> Optional[ActionEvent]:
        if action == FaceAction.RELEASE_DRAG and not self._drag_held:
            return None
        if self._cooling_down(action, now):
            logger.debug("Action %s ignored (cooldown)", action.value)
            return None

        if action == FaceAction.LEFT_DRAG_TOGGLE:
            event = self._toggle_drag(action, now)
        elif action == FaceAction.RELEASE_DRAG or (action == FaceAction.LEFT_CLICK and self._drag_held):
            event = self._release_drag(action, now)
        elif action in (FaceAction.LEFT_CLICK, FaceAction.RIGHT_CLICK):
            button = BUTTON_LEFT if action == FaceAction.LEFT_CLICK else BUTTON_RIGHT
            ok = self._call(self.actuator.click, button, True) and self._call(self.actuator.click, button, False)
            event = self._event(ActionKind.DISCRETE, action, now) if ok else None
        else:
            code, modifiers = KEY_BINDINGS[action]
            ok = self._call(self.actuator.key, code, modifiers)
            event = self._event(ActionKind.DISCRETE, action, now) if ok else None

        if event is not None:
            self._mark_fired(action, now)
        return event

    def _toggle_drag(self, action: FaceAction, now: float) -> Optional[ActionEvent]:
        if self._drag_held:
            return self._release_drag(action, now)
        if not self._call(self.actuator.click, BUTTON_LEFT, True):
            return None
        self._drag_held = True
        logger.info("Drag started")
        return self._event(ActionKind.TOGGLE, action, now, phase=PHASE_PRESS)

    def _release_drag(self, action: FaceAction, now: float) -> ActionEvent:
        # Marked released even when the actuator call fails.
        self._call(self.actuator.click, BUTTON_LEFT, False)
        self._drag_held = False
        logger.info("Drag released (%s)", action.value)
        return self._event(ActionKind.TOGGLE, action, now, phase=PHASE_RELEASE)

    # ------------------------------------------------------------------
    # Environment hooks
    # ------------------------------------------------------------------

    def forward_pointer_motion(self, position: Tuple[float, float], timestamp: Optional[float] = None) -> Optional[ActionEvent]:
        """Forward an observed pointer position as a drag while the toggle is held."""
        if not self._drag_held:
            return None
        now = self._now(timestamp)
        if not self._call(self.actuator.drag, position, BUTTON_LEFT):
            return None
        return self._event(ActionKind.TOGGLE, FaceAction.LEFT_DRAG_TOGGLE, now, phase=PHASE_DRAG)

    def force_release_all(self, reason: str = "safety", timestamp: Optional[float] = None) -> List[ActionEvent]:
        """
        Release every held button. Safe to call at any time; a no-op when
        nothing is held. Edge memory is kept, so a gesture that is still held
        does not immediately re-engage.
        """
        if not self._drag_held:
            return []
        now = self._now(timestamp)
        self._call(self.actuator.click, BUTTON_LEFT, False)
        self._drag_held = False
        logger.warning("Force release (%s): drag released", reason)
        return [self._event(ActionKind.TOGGLE, FaceAction.RELEASE_DRAG, now, phase=PHASE_RELEASE)]
