"""
Profile manager: the operator surface over the profile set.

Owns the list of profiles and the active profile id, persists every edit
through ProfileStore, and notifies listeners when the active profile changes.

All operations take the shared lock. The expression controller holds the same
lock around each pipeline.process() call, so an edit is applied between frames
and never mid-frame.

Operator errors (unknown id, unknown channel or action, empty name, bad combo
index) raise ValueError; ProfileNotFoundError marks the "no such profile" case.
"""

import copy
import logging
import threading
import uuid
from typing import Any, Callable, Dict, List, Optional

from services.profile_store import ProfileStore
from utils.profile_models import (
    BaselineProfile,
    Channel,
    ContinuousSettings,
    FaceAction,
    GainConfig,
    GestureCombo,
    INTENSITY_MODES,
    Profile,
    parse_flag,
)

logger = logging.getLogger(__name__)

DEFAULT_PROFILE_NAME = "Default"


class ProfileNotFoundError(ValueError):
    pass


def _clean_name(name: Any) -> str:
    cleaned = str(name or "").strip()
    if not cleaned:
        raise ValueError("Profile name must not be empty")
    return cleaned


def _number(value: Any, label: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{label} must be a number")


def _flag_arg(value: Any, label: str) -> bool:
    try:
        return parse_flag(value)
    except ValueError:
        raise ValueError(f"{label} must be true or false")


class ProfileManager:
    """
    Usage:
        manager = ProfileManager(ProfileStore("profiles.json"))
        manager.add_listener(pipeline.set_profile)
        manager.update_channel("mouth_open", threshold=0.3, action="scroll_down")
    """

    def __init__(self, store: Optional[ProfileStore] = None, lock: Optional[threading.RLock] = None):
        self.store = store or ProfileStore()
        self.lock = lock or threading.RLock()
        self._listeners: List[Callable[[Profile], None]] = []
        self._profiles: List[Profile] = []
        self._active_id: Optional[str] = None
        self._load()

    # ------------------------------------------------------------------
    # Loading / persistence
    # ------------------------------------------------------------------

    def _load(self) -> None:
        profiles, active_id = self.store.load()
        self._profiles = profiles
        created = False
        if not self._profiles:
            self._profiles.append(Profile(name=DEFAULT_PROFILE_NAME))
            created = True
        if active_id is None or self._find(active_id) is None:
            active_id = self._profiles[0].id
        self._active_id = active_id
        logger.info(
            "Loaded %d profile(s); active '%s'", len(self._profiles), self.active_profile.name
        )
        if created:
            self._persist()

    def _persist(self) -> None:
        self.store.save(self._profiles, self._active_id)

    def _find(self, profile_id: str) -> Optional[Profile]:
        for p in self._profiles:
            if p.id == profile_id:
                return p
        return None

    def _require(self, profile_id: str) -> Profile:
        profile = self._find(str(profile_id))
        if profile is None:
            raise ProfileNotFoundError(f"Unknown profile id: {profile_id}")
        return profile

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, callback: Callable[[Profile], None]) -> None:
        """Register a callback invoked with the new active profile on every switch."""
        self._listeners.append(callback)

    def _notify(self) -> None:
        profile = self.active_profile
        for cb in list(self._listeners):
            try:
                cb(profile)
            except Exception as e:
                logger.warning("Profile listener failed: %s", e)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def active_profile(self) -> Profile:
        profile = self._find(self._active_id) if self._active_id else None
        return profile if profile is not None else self._profiles[0]

    @property
    def active_profile_id(self) -> str:
        return self.active_profile.id

    def list_profiles(self) -> List[Dict[str, Any]]:
        with self.lock:
            active_id = self.active_profile_id
            return [{"id": p.id, "name": p.name, "active": p.id == active_id} for p in self._profiles]

    def get_profile(self, profile_id: str) -> Dict[str, Any]:
        with self.lock:
            return self._require(profile_id).to_dict()

    # ------------------------------------------------------------------
    # Profile set operations
    # ------------------------------------------------------------------

    def select_profile(self, profile_id: str) -> Profile:
        with self.lock:
            profile = self._require(profile_id)
            self._active_id = profile.id
            self._persist()
            logger.info("Profile '%s' selected", profile.name)
            self._notify()
            return profile

    def save_profile(self, name: str) -> Profile:
        """
        Save the active profile's settings under a name and make it active.

        An existing profile with the same name (case-insensitive) is replaced
        in place and keeps its id; otherwise a new profile is appended.
        """
        with self.lock:
            cleaned = _clean_name(name)
            snapshot = Profile.from_dict(copy.deepcopy(self.active_profile.to_dict()))
            snapshot.name = cleaned
            for i, existing in enumerate(self._profiles):
                if existing.name.lower() == cleaned.lower():
                    snapshot.id = existing.id
                    self._profiles[i] = snapshot
                    logger.info("Profile '%s' updated", cleaned)
                    break
            else:
                snapshot.id = str(uuid.uuid4())
                self._profiles.append(snapshot)
                logger.info("Profile '%s' created", cleaned)
            self._active_id = snapshot.id
            self._persist()
            self._notify()
            return snapshot

    def rename_profile(self, profile_id: str, name: str) -> Profile:
        with self.lock:
            profile = self._require(profile_id)
            cleaned = _clean_name(name)
            for other in self._profiles:
                if other is not profile and other.name.lower() == cleaned.lower():
                    raise ValueError(f"A profile named '{cleaned}' already exists")
            profile.name = cleaned
            self._persist()
            return profile

    def delete_profile(self, profile_id: str) -> None:
        """
        Delete a profile. The set is never left empty: deleting the active
        profile selects the first remaining one, or a fresh "Default".
        """
        with self.lock:
            profile = self._require(profile_id)
            self._profiles.remove(profile)
            logger.info("Profile '%s' deleted", profile.name)
            switched = False
            if not self._profiles:
                self._profiles.append(Profile(name=DEFAULT_PROFILE_NAME))
            if self._active_id == profile.id or self._find(self._active_id) is None:
                self._active_id = self._profiles[0].id
                switched = True
            self._persist()
            if switched:
                self._notify()

    # ------------------------------------------------------------------
    # Active profile edits
    # ------------------------------------------------------------------

    def update_channel(
        self,
        channel: Any,
        threshold: Any = None,
        trigger_below: Any = None,
        hold_duration: Any = None,
        action: Any = None,
    ) -> Dict[str, Any]:
        """Edit one channel's trigger on the active profile. None leaves a field unchanged."""
        with self.lock:
            ch = Channel.parse(channel)
            cfg = self.active_profile.trigger(ch)
            if threshold is not None:
                cfg.threshold = _number(threshold, "threshold")
            if trigger_below is not None:
                cfg.trigger_below = _flag_arg(trigger_below, "trigger_below")
            if hold_duration is not None:
                cfg.hold_duration = _number(hold_duration, "hold_duration")
            if action is not None:
                cfg.action = FaceAction.parse(action)
            self._persist()
            return cfg.to_dict()

    def set_gains(self, **gains: Any) -> GainConfig:
        with self.lock:
            target = self.active_profile.gains
            for name, value in gains.items():
                if value is None:
                    continue
                if not hasattr(target, name):
                    raise ValueError(f"Unknown gain: {name}")
                setattr(target, name, _number(value, name))
            self._persist()
            return target

    def set_smooth_factor(self, value: Any) -> float:
        with self.lock:
            self.active_profile.smooth_factor = _number(value, "smooth_factor")
            self._persist()
            return self.active_profile.smooth_factor

    def set_continuous(self, **settings: Any) -> ContinuousSettings:
        with self.lock:
            target = self.active_profile.continuous
            for name, value in settings.items():
                if value is None:
                    continue
                if name == "intensity_mode":
                    mode = str(value).strip().lower()
                    if mode not in INTENSITY_MODES:
                        raise ValueError(f"Unknown intensity mode: {value}")
                    target.intensity_mode = mode
                elif hasattr(target, name):
                    setattr(target, name, _number(value, name))
                else:
                    raise ValueError(f"Unknown continuous setting: {name}")
            self._persist()
            return target

    def add_combo(self, primary: Any, secondary: Any, action: Any, enabled: Any = True) -> GestureCombo:
        with self.lock:
            combo = GestureCombo(
                primary=Channel.parse(primary),
                secondary=Channel.parse(secondary),
                action=FaceAction.parse(action),
                enabled=_flag_arg(enabled, "enabled"),
            )
            self.active_profile.combos.append(combo)
            self._persist()
            return combo

    def _combo_index(self, index: Any) -> int:
        combos = self.active_profile.combos
        try:
            i = int(index)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid combo index: {index}")
        if not 0 <= i < len(combos):
            raise ValueError(f"Combo index out of range: {index}")
        return i

    def remove_combo(self, index: Any) -> GestureCombo:
        with self.lock:
            removed = self.active_profile.combos.pop(self._combo_index(index))
            self._persist()
            return removed

    def set_combo_enabled(self, index: Any, enabled: Any) -> GestureCombo:
        with self.lock:
            combo = self.active_profile.combos[self._combo_index(index)]
            combo.enabled = _flag_arg(enabled, "enabled")
            self._persist()
            return combo

    def set_baseline(self, baseline: BaselineProfile) -> None:
        """Store a completed calibration on the active profile."""
        with self.lock:
            self.active_profile.baseline = baseline
            self._persist()
