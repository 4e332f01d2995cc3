"""
Profile model, store and manager tests.

Each test works on its own temporary store file.
"""

import json
import sys
import os
import tempfile

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import unittest


class TestProfileModels(unittest.TestCase):

    def test_profile_round_trips_through_dict(self):
        from utils.profile_models import (
            BaselineProfile, Channel, FaceAction, GestureCombo, Profile, TriggerConfig,
        )
        p = Profile(name="Gaming")
        p.triggers[Channel.SMILE] = TriggerConfig(0.4, False, 0.2, FaceAction.SCROLL_UP)
        p.combos.append(GestureCombo(Channel.SMILE, Channel.SQUINT, FaceAction.COPY, enabled=False))
        p.baseline = BaselineProfile(eye_openness=0.05, mouth_width=0.3)
        p.smooth_factor = 0.4
        restored = Profile.from_dict(json.loads(json.dumps(p.to_dict())))
        self.assertEqual(restored.to_dict(), p.to_dict())

    def test_lenient_deserialization(self):
        """Unknown channels/actions and malformed combos fall back or are dropped."""
        from utils.profile_models import Channel, FaceAction, Profile
        p = Profile.from_dict({
            "name": "",
            "triggers": {"wiggle_ears": {}, "smile": {"threshold": "bad", "action": "teleport"}},
            "combos": [{"primary": "smile"}, "junk", {"primary": "smile", "secondary": "pucker", "action": "undo"}],
            "continuous": {"intensity_mode": "wild", "max_speed": 12},
        })
        self.assertEqual(p.name, "Default")
        self.assertTrue(p.id)
        self.assertEqual(p.trigger(Channel.SMILE).threshold, 0.0)
        self.assertEqual(p.trigger(Channel.SMILE).action, FaceAction.NONE)
        self.assertEqual(len(p.combos), 1)
        self.assertEqual(p.continuous.intensity_mode, "flat")
        self.assertEqual(p.continuous.max_speed, 12.0)
        self.assertIsNone(Profile.from_dict("nope"))

    def test_action_kinds(self):
        from utils.profile_models import ActionKind, FaceAction
        self.assertEqual(FaceAction.SCROLL_UP.kind, ActionKind.CONTINUOUS)
        self.assertEqual(FaceAction.LEFT_DRAG_TOGGLE.kind, ActionKind.TOGGLE)
        self.assertEqual(FaceAction.UNDO.kind, ActionKind.DISCRETE)
        self.assertIsNone(FaceAction.NONE.kind)

    def test_string_flags_parse_by_word(self):
        """"false" in a stored profile is False; unreadable flags take the default."""
        from utils.profile_models import Channel, Profile, parse_flag
        p = Profile.from_dict({
            "triggers": {"smile": {"trigger_below": "false"}, "squint": {"trigger_below": "True"},
                         "pucker": {"trigger_below": "maybe"}},
            "combos": [{"primary": "smile", "secondary": "pucker", "action": "undo", "enabled": "false"}],
        })
        self.assertFalse(p.trigger(Channel.SMILE).trigger_below)
        self.assertTrue(p.trigger(Channel.SQUINT).trigger_below)
        self.assertFalse(p.trigger(Channel.PUCKER).trigger_below)
        self.assertFalse(p.combos[0].enabled)
        self.assertTrue(parse_flag(1))
        self.assertFalse(parse_flag(" off "))
        with self.assertRaises(ValueError):
            parse_flag(2)
        with self.assertRaises(ValueError):
            parse_flag(None)

    def test_parse_errors(self):
        from utils.profile_models import Channel, FaceAction
        self.assertEqual(Channel.parse(" Smile "), Channel.SMILE)
        with self.assertRaises(ValueError):
            Channel.parse("nose_wiggle")
        with self.assertRaises(ValueError):
            FaceAction.parse("teleport")


class TestProfileStore(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self._tmp.name, "profiles.json")

    def tearDown(self):
        self._tmp.cleanup()

    def test_missing_file_is_empty(self):
        from services.profile_store import ProfileStore
        self.assertEqual(ProfileStore(self.path).load(), ([], None))

    def test_save_and_load(self):
        from services.profile_store import ProfileStore
        from utils.profile_models import Profile
        store = ProfileStore(self.path)
        a, b = Profile(name="A"), Profile(name="B")
        self.assertTrue(store.save([a, b], b.id))
        profiles, active = store.load()
        self.assertEqual([p.name for p in profiles], ["A", "B"])
        self.assertEqual(active, b.id)
        with open(self.path, encoding="utf-8") as f:
            doc = json.load(f)
        self.assertEqual(set(doc), {"profiles", "active_profile_id"})

    def test_corrupt_file_is_empty(self):
        from services.profile_store import ProfileStore
        with open(self.path, "w", encoding="utf-8") as f:
            f.write("{not json")
        with self.assertLogs("services.profile_store", level="WARNING"):
            self.assertEqual(ProfileStore(self.path).load(), ([], None))

    def test_unexpected_shape_is_empty(self):
        from services.profile_store import ProfileStore
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump([1, 2, 3], f)
        self.assertEqual(ProfileStore(self.path).load(), ([], None))


class TestProfileManager(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self._tmp.name, "profiles.json")

    def tearDown(self):
        self._tmp.cleanup()

    def _manager(self):
        from services.profile_manager import ProfileManager
        from services.profile_store import ProfileStore
        return ProfileManager(ProfileStore(self.path))

    def test_empty_store_creates_default(self):
        manager = self._manager()
        self.assertEqual(manager.active_profile.name, "Default")
        self.assertTrue(os.path.exists(self.path))
        self.assertEqual(len(manager.list_profiles()), 1)

    def test_invalid_active_id_falls_back_to_first(self):
        from services.profile_store import ProfileStore
        from utils.profile_models import Profile
        a, b = Profile(name="A"), Profile(name="B")
        ProfileStore(self.path).save([a, b], "missing")
        self.assertEqual(self._manager().active_profile_id, a.id)

    def test_save_profile_creates_and_upserts(self):
        from utils.profile_models import Channel, FaceAction
        manager = self._manager()
        manager.update_channel("mouth_open", threshold=0.3, action="scroll_down")
        first = manager.save_profile("Reading")
        self.assertEqual(manager.active_profile_id, first.id)
        self.assertEqual(first.trigger(Channel.MOUTH_OPEN).action, FaceAction.SCROLL_DOWN)

        manager.update_channel("mouth_open", threshold=0.5)
        second = manager.save_profile("reading")
        self.assertEqual(second.id, first.id)
        self.assertEqual(len(manager.list_profiles()), 2)
        self.assertEqual(self._manager().get_profile(first.id)["triggers"]["mouth_open"]["threshold"], 0.5)

    def test_save_notifies_listeners(self):
        manager = self._manager()
        seen = []
        manager.add_listener(seen.append)
        saved = manager.save_profile("X")
        self.assertEqual(seen, [saved])

    def test_listener_failure_is_logged(self):
        manager = self._manager()

        def broken(profile):
            raise RuntimeError("boom")

        manager.add_listener(broken)
        with self.assertLogs("services.profile_manager", level="WARNING"):
            manager.save_profile("Y")

    def test_select_and_unknown_id(self):
        from services.profile_manager import ProfileNotFoundError
        manager = self._manager()
        default_id = manager.active_profile_id
        other = manager.save_profile("Other")
        manager.select_profile(default_id)
        self.assertEqual(manager.active_profile_id, default_id)
        with self.assertRaises(ProfileNotFoundError):
            manager.select_profile("nope")
        self.assertNotEqual(other.id, default_id)

    def test_rename_rejects_duplicates_and_empty(self):
        manager = self._manager()
        other = manager.save_profile("Other")
        with self.assertRaises(ValueError):
            manager.rename_profile(other.id, "default")
        with self.assertRaises(ValueError):
            manager.rename_profile(other.id, "   ")
        self.assertEqual(manager.rename_profile(other.id, "Renamed").name, "Renamed")

    def test_delete_active_falls_back(self):
        manager = self._manager()
        default_id = manager.active_profile_id
        other = manager.save_profile("Other")
        seen = []
        manager.add_listener(seen.append)
        manager.delete_profile(other.id)
        self.assertEqual(manager.active_profile_id, default_id)
        self.assertEqual(len(seen), 1)

    def test_delete_last_profile_recreates_default(self):
        manager = self._manager()
        only = manager.active_profile_id
        manager.delete_profile(only)
        self.assertEqual(len(manager.list_profiles()), 1)
        self.assertNotEqual(manager.active_profile_id, only)
        self.assertEqual(manager.active_profile.name, "Default")

    def test_channel_edits_validate(self):
        manager = self._manager()
        result = manager.update_channel("eye_closed", threshold="0.25", trigger_below=True,
                                        hold_duration=0.1, action="left_click")
        self.assertEqual(result, {"threshold": 0.25, "trigger_below": True,
                                  "hold_duration": 0.1, "action": "left_click"})
        with self.assertRaises(ValueError):
            manager.update_channel("ears", threshold=0.1)
        with self.assertRaises(ValueError):
            manager.update_channel("smile", threshold="high")
        with self.assertRaises(ValueError):
            manager.update_channel("smile", action="teleport")
        result = manager.update_channel("eye_closed", trigger_below="false")
        self.assertFalse(result["trigger_below"])
        with self.assertRaises(ValueError):
            manager.update_channel("eye_closed", trigger_below="sometimes")

    def test_gains_smoothing_continuous(self):
        manager = self._manager()
        gains = manager.set_gains(mouth_height_gain=12, eyebrow_gain=None)
        self.assertEqual(gains.mouth_height_gain, 12.0)
        self.assertEqual(gains.eyebrow_gain, 0.0)
        self.assertEqual(manager.set_smooth_factor("0.5"), 0.5)
        settings = manager.set_continuous(intensity_mode="PROPORTIONAL_RANGE", max_speed=40)
        self.assertEqual(settings.intensity_mode, "proportional_range")
        self.assertEqual(settings.max_speed, 40.0)
        with self.assertRaises(ValueError):
            manager.set_continuous(intensity_mode="turbo")
        with self.assertRaises(ValueError):
            manager.set_gains(nose_gain=1)

    def test_combos(self):
        manager = self._manager()
        combo = manager.add_combo("mouth_open", "eyebrow_raise", "enter")
        self.assertTrue(combo.enabled)
        self.assertFalse(manager.set_combo_enabled(0, False).enabled)
        with self.assertRaises(ValueError):
            manager.remove_combo(3)
        with self.assertRaises(ValueError):
            manager.add_combo("mouth_open", "ears", "enter")
        self.assertEqual(manager.remove_combo("0").action.value, "enter")
        self.assertEqual(manager.active_profile.combos, [])

    def test_edits_persist(self):
        from utils.profile_models import BaselineProfile
        manager = self._manager()
        manager.add_combo("smile", "squint", "copy")
        manager.set_baseline(BaselineProfile(eye_openness=0.05))
        reloaded = self._manager().active_profile
        self.assertEqual(len(reloaded.combos), 1)
        self.assertEqual(reloaded.baseline.eye_openness, 0.05)


if __name__ == "__main__":
    unittest.main()
