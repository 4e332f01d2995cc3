"""
Profile Models

Data types shared by the pipeline, the arbiter and the profile store:
expression channels, face actions and their kinds, per-channel trigger
configuration, gains, gesture combos, the calibration baseline, and the named
Profile that bundles them.

Profiles serialize to plain dicts (JSON-safe). Deserialization is lenient:
unknown or malformed fields fall back to defaults instead of failing, since
the store may hold documents written by older versions.
"""

import uuid
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional


class Channel(Enum):
    """Trigger channels (one per facial expression the operator can map)."""
    EYE_CLOSED = "eye_closed"
    MOUTH_OPEN = "mouth_open"
    SMILE = "smile"
    PUCKER = "pucker"
    MOUTH_LEFT = "mouth_left"
    MOUTH_RIGHT = "mouth_right"
    EYEBROW_RAISE = "eyebrow_raise"
    SQUINT = "squint"
    LIPS_PRESSED = "lips_pressed"

    @classmethod
    def parse(cls, value: Any) -> "Channel":
        if isinstance(value, Channel):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown channel: {value!r}")


class ActionKind(Enum):
    CONTINUOUS = "continuous"
    DISCRETE = "discrete"
    TOGGLE = "toggle"


class FaceAction(Enum):
    """Actions a channel or combo can drive. Declaration order is dispatch order."""
    NONE = "none"
    SCROLL_UP = "scroll_up"
    SCROLL_DOWN = "scroll_down"
    MOVE_LEFT = "move_left"
    MOVE_RIGHT = "move_right"
    MOVE_UP = "move_up"
    MOVE_DOWN = "move_down"
    LEFT_CLICK = "left_click"
    RIGHT_CLICK = "right_click"
    LEFT_DRAG_TOGGLE = "left_drag_toggle"
    RELEASE_DRAG = "release_drag"
    ENTER = "enter"
    ESCAPE = "escape"
    SPACE = "space"
    ARROW_LEFT = "arrow_left"
    ARROW_RIGHT = "arrow_right"
    ARROW_UP = "arrow_up"
    ARROW_DOWN = "arrow_down"
    COPY = "copy"
    PASTE = "paste"
    UNDO = "undo"

    @classmethod
    def parse(cls, value: Any) -> "FaceAction":
        if isinstance(value, FaceAction):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown action: {value!r}")

    @property
    def kind(self) -> Optional[ActionKind]:
        return ACTION_KINDS.get(self)


ACTION_KINDS: Dict[FaceAction, ActionKind] = {
    FaceAction.SCROLL_UP: ActionKind.CONTINUOUS,
    FaceAction.SCROLL_DOWN: ActionKind.CONTINUOUS,
    FaceAction.MOVE_LEFT: ActionKind.CONTINUOUS,
    FaceAction.MOVE_RIGHT: ActionKind.CONTINUOUS,
    FaceAction.MOVE_UP: ActionKind.CONTINUOUS,
    FaceAction.MOVE_DOWN: ActionKind.CONTINUOUS,
    FaceAction.LEFT_CLICK: ActionKind.DISCRETE,
    FaceAction.RIGHT_CLICK: ActionKind.DISCRETE,
    FaceAction.LEFT_DRAG_TOGGLE: ActionKind.TOGGLE,
    FaceAction.RELEASE_DRAG: ActionKind.DISCRETE,
    FaceAction.ENTER: ActionKind.DISCRETE,
    FaceAction.ESCAPE: ActionKind.DISCRETE,
    FaceAction.SPACE: ActionKind.DISCRETE,
    FaceAction.ARROW_LEFT: ActionKind.DISCRETE,
    FaceAction.ARROW_RIGHT: ActionKind.DISCRETE,
    FaceAction.ARROW_UP: ActionKind.DISCRETE,
    FaceAction.ARROW_DOWN: ActionKind.DISCRETE,
    FaceAction.COPY: ActionKind.DISCRETE,
    FaceAction.PASTE: ActionKind.DISCRETE,
    FaceAction.UNDO: ActionKind.DISCRETE,
}

# Actions that press a pointer button; they share the click cooldown.
POINTER_BUTTON_ACTIONS = frozenset({
    FaceAction.LEFT_CLICK,
    FaceAction.RIGHT_CLICK,
    FaceAction.LEFT_DRAG_TOGGLE,
    FaceAction.RELEASE_DRAG,
})

INTENSITY_FLAT = "flat"
INTENSITY_PROPORTIONAL_RANGE = "proportional_range"
INTENSITY_PROPORTIONAL_THRESHOLD = "proportional_threshold"
INTENSITY_MODES = (INTENSITY_FLAT, INTENSITY_PROPORTIONAL_RANGE, INTENSITY_PROPORTIONAL_THRESHOLD)


def _float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


_TRUE_WORDS = ("true", "1", "yes", "on")
_FALSE_WORDS = ("false", "0", "no", "off", "")


def parse_flag(value: Any) -> bool:
    """Parse a JSON or form flag. Strings are matched by word, so "false" is False."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    raise ValueError(f"Not a boolean: {value!r}")


def _flag(value: Any, default: bool) -> bool:
    try:
        return parse_flag(value)
    except ValueError:
        return default


@dataclass
class TriggerConfig:
    """Per-channel trigger: threshold in [0,1], direction, hold duration (s), mapped action."""
    threshold: float = 0.0
    trigger_below: bool = False
    hold_duration: float = 0.0
    action: FaceAction = FaceAction.NONE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "threshold": self.threshold,
            "trigger_below": self.trigger_below,
            "hold_duration": self.hold_duration,
            "action": self.action.value,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "TriggerConfig":
        if not isinstance(data, dict):
            return cls()
        try:
            action = FaceAction.parse(data.get("action", "none"))
        except ValueError:
            action = FaceAction.NONE
        return cls(
            threshold=_float(data.get("threshold"), 0.0),
            trigger_below=_flag(data.get("trigger_below", False), False),
            hold_duration=_float(data.get("hold_duration"), 0.0),
            action=action,
        )


@dataclass
class GainConfig:
    """Normalization slopes (how fast a channel reaches 1.0 past its baseline)."""
    mouth_height_gain: float = 0.0
    mouth_width_gain: float = 0.0
    eyebrow_gain: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Any) -> "GainConfig":
        if not isinstance(data, dict):
            return cls()
        return cls(**{f.name: _float(data.get(f.name), f.default) for f in fields(cls)})


@dataclass
class ContinuousSettings:
    """Magnitudes for continuous actions (scroll units / pointer pixels per frame)."""
    scroll_step: float = 5.0
    move_step: float = 10.0
    min_speed: float = 1.0
    max_speed: float = 30.0
    intensity_mode: str = INTENSITY_FLAT
    intensity_range: float = 0.5

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Any) -> "ContinuousSettings":
        out = cls()
        if not isinstance(data, dict):
            return out
        for name in ("scroll_step", "move_step", "min_speed", "max_speed", "intensity_range"):
            setattr(out, name, _float(data.get(name), getattr(out, name)))
        mode = str(data.get("intensity_mode", out.intensity_mode)).strip().lower()
        out.intensity_mode = mode if mode in INTENSITY_MODES else INTENSITY_FLAT
        return out


@dataclass
class GestureCombo:
    """Two channels that, active together, drive one action."""
    primary: Channel
    secondary: Channel
    action: FaceAction
    enabled: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "primary": self.primary.value,
            "secondary": self.secondary.value,
            "action": self.action.value,
            "enabled": self.enabled,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional["GestureCombo"]:
        """Return None for malformed entries (they are dropped on load)."""
        if not isinstance(data, dict):
            return None
        try:
            return cls(
                primary=Channel.parse(data.get("primary")),
                secondary=Channel.parse(data.get("secondary")),
                action=FaceAction.parse(data.get("action")),
                enabled=_flag(data.get("enabled", True), True),
            )
        except ValueError:
            return None


@dataclass(frozen=True)
class BaselineProfile:
    """
    Neutral-face raw measurements captured by calibration.

    Frozen: a calibration cycle replaces the whole object, never single fields.
    """
    eye_openness: float = 0.0
    mouth_height: float = 0.0
    mouth_width: float = 0.0
    mouth_ratio: float = 0.0
    mouth_diff: float = 0.0
    brow_raise: float = 0.0
    squint: float = 0.0

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) == 0.0 for f in fields(self))

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Any) -> "BaselineProfile":
        if not isinstance(data, dict):
            return cls()
        return cls(**{f.name: _float(data.get(f.name), 0.0) for f in fields(cls)})


def default_triggers() -> Dict[Channel, TriggerConfig]:
    return {ch: TriggerConfig() for ch in Channel}


@dataclass
class Profile:
    """Named bundle of triggers, gains, combos and baseline. Exactly one is active."""
    name: str = "Default"
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    triggers: Dict[Channel, TriggerConfig] = field(default_factory=default_triggers)
    gains: GainConfig = field(default_factory=GainConfig)
    smooth_factor: float = 0.0
    continuous: ContinuousSettings = field(default_factory=ContinuousSettings)
    combos: List[GestureCombo] = field(default_factory=list)
    baseline: BaselineProfile = field(default_factory=BaselineProfile)

    def trigger(self, channel: Channel) -> TriggerConfig:
        cfg = self.triggers.get(channel)
        if cfg is None:
            cfg = TriggerConfig()
            self.triggers[channel] = cfg
        return cfg

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "triggers": {ch.value: self.trigger(ch).to_dict() for ch in Channel},
            "gains": self.gains.to_dict(),
            "smooth_factor": self.smooth_factor,
            "continuous": self.continuous.to_dict(),
            "combos": [c.to_dict() for c in self.combos],
            "baseline": self.baseline.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional["Profile"]:
        if not isinstance(data, dict):
            return None
        triggers = default_triggers()
        raw_triggers = data.get("triggers")
        if isinstance(raw_triggers, dict):
            for key, value in raw_triggers.items():
                try:
                    triggers[Channel.parse(key)] = TriggerConfig.from_dict(value)
                except ValueError:
                    continue
        combos = [c for c in (GestureCombo.from_dict(x) for x in data.get("combos") or []) if c is not None]
        name = str(data.get("name") or "Default").strip() or "Default"
        profile_id = str(data.get("id") or "").strip() or str(uuid.uuid4())
        return cls(
            name=name,
            id=profile_id,
            triggers=triggers,
            gains=GainConfig.from_dict(data.get("gains")),
            smooth_factor=_float(data.get("smooth_factor"), 0.0),
            continuous=ContinuousSettings.from_dict(data.get("continuous")),
            combos=combos,
            baseline=BaselineProfile.from_dict(data.get("baseline")),
        )
