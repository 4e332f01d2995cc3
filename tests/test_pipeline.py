"""
End-to-end pipeline tests.

Synthetic landmark frames go in; the recording actuator shows which OS events
would have been issued.
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import unittest

FPS_DT = 1.0 / 30.0


def _profile(**trigger_overrides):
    """Calibrated profile matching the neutral synthetic face."""
    from utils.profile_models import BaselineProfile, GainConfig, Profile
    profile = Profile(name="Test")
    profile.baseline = BaselineProfile(
        eye_openness=0.04, mouth_height=0.02, mouth_width=0.30,
        mouth_ratio=0.02 / 0.30, brow_raise=0.08, squint=0.15,
    )
    profile.gains = GainConfig(mouth_height_gain=10, mouth_width_gain=10, eyebrow_gain=10)
    return profile


def _set_trigger(profile, channel, threshold, action, hold=0.0, below=False):
    from utils.profile_models import Channel, FaceAction, TriggerConfig
    profile.triggers[Channel(channel)] = TriggerConfig(
        threshold=threshold, trigger_below=below, hold_duration=hold, action=FaceAction(action),
    )


def _pipeline(profile, **kwargs):
    from expression_pipeline import ExpressionPipeline
    from services.action_arbiter import ActionArbiter
    from tests.fixtures.recording_actuator import RecordingActuator
    actuator = RecordingActuator()
    arbiter = ActionArbiter(actuator, key_cooldown_sec=0.5, click_cooldown_sec=0.1)
    kwargs.setdefault("auto_calibrate", False)
    return ExpressionPipeline(arbiter, profile, **kwargs), actuator


class TestHoldToScroll(unittest.TestCase):

    def test_mouth_open_scrolls_after_hold(self):
        """mouth_open 0.6 with threshold 0.3 and hold 0.3 s starts scrolling on frame 10."""
        from tests.fixtures.synthetic_landmarks import mouth_open_frame
        profile = _profile()
        _set_trigger(profile, "mouth_open", 0.3, "scroll_down", hold=0.3)
        pipeline, act = _pipeline(profile)

        first_scroll = None
        for i in range(15):
            result = pipeline.process(mouth_open_frame(0.08), i * FPS_DT)
            self.assertAlmostEqual(result.state.mouth_open, 0.6, places=6)
            if result.events and first_scroll is None:
                first_scroll = i + 1
        self.assertEqual(first_scroll, 10)
        self.assertEqual(len(act.of("scroll")), 6)
        self.assertTrue(result.performing_action)

    def test_neutral_face_issues_nothing(self):
        from tests.fixtures.synthetic_landmarks import neutral_frame
        profile = _profile()
        _set_trigger(profile, "mouth_open", 0.3, "scroll_down")
        _set_trigger(profile, "eye_closed", 0.3, "left_click", below=True)
        pipeline, act = _pipeline(profile)
        for i in range(10):
            result = pipeline.process(neutral_frame(), i * FPS_DT)
        self.assertEqual(act.calls, [])
        self.assertFalse(result.performing_action)

    def test_wink_clicks_once(self):
        """One closed eye activates eye_closed; the click fires on the edge only."""
        from tests.fixtures.synthetic_landmarks import make_frame
        profile = _profile()
        _set_trigger(profile, "eye_closed", 0.3, "left_click", below=True)
        pipeline, act = _pipeline(profile)
        for i in range(5):
            pipeline.process(make_frame(left_eye_height=0.004), i * FPS_DT)
        self.assertEqual(len(act.of("click")), 2)
        self.assertEqual(pipeline.last_triggered_action.value, "left_click")


class TestNoFace(unittest.TestCase):

    def test_no_face_frame_changes_nothing(self):
        """A missing face yields no events and keeps the last state and timers."""
        from utils.profile_models import Channel
        from tests.fixtures.synthetic_landmarks import mouth_open_frame
        profile = _profile()
        _set_trigger(profile, "mouth_open", 0.3, "enter", hold=0.3)
        pipeline, act = _pipeline(profile)

        first = pipeline.process(mouth_open_frame(), 0.0)
        skipped = pipeline.process(None, 0.1)
        self.assertFalse(skipped.face_detected)
        self.assertIs(skipped.state, first.state)
        self.assertEqual(skipped.events, [])
        self.assertEqual(pipeline.evaluator.hold_elapsed(Channel.MOUTH_OPEN), 0.0)

        pipeline.process(mouth_open_frame(), 0.3)
        self.assertEqual(len(act.of("key")), 1)

    def test_first_frame_without_face(self):
        pipeline, act = _pipeline(_profile())
        result = pipeline.process(None, 0.0)
        self.assertIsNone(result.state)
        self.assertEqual(result.to_dict()["state"], None)


class TestCombos(unittest.TestCase):

    def _setup(self):
        from utils.profile_models import Channel, FaceAction, GestureCombo
        profile = _profile()
        _set_trigger(profile, "mouth_open", 0.3, "scroll_down")
        _set_trigger(profile, "eyebrow_raise", 0.3, "none")
        profile.combos.append(GestureCombo(Channel.MOUTH_OPEN, Channel.EYEBROW_RAISE, FaceAction.ENTER))
        return _pipeline(profile)

    def test_combo_suppresses_single_action(self):
        from tests.fixtures.synthetic_landmarks import make_frame
        pipeline, act = self._setup()
        result = pipeline.process(make_frame(inner_lip_height=0.08, brow_offset=0.14), 0.0)
        self.assertEqual(result.combo_action.value, "enter")
        self.assertEqual([c[1] for c in act.of("key")], ["enter"])
        self.assertEqual(act.of("scroll"), [])

    def test_grace_window_then_single_resumes(self):
        from tests.fixtures.synthetic_landmarks import make_frame, mouth_open_frame
        pipeline, act = self._setup()
        pipeline.process(make_frame(inner_lip_height=0.08, brow_offset=0.14), 0.0)

        result = pipeline.process(mouth_open_frame(), 0.05)
        self.assertEqual(result.combo_action.value, "enter")
        self.assertEqual(act.of("scroll"), [])

        result = pipeline.process(mouth_open_frame(), 0.25)
        self.assertIsNone(result.combo_action)
        self.assertEqual(len(act.of("scroll")), 1)
        self.assertEqual(len(act.of("key")), 1)


class TestCalibrationFlow(unittest.TestCase):

    def test_calibration_blocks_actions_then_sets_baseline(self):
        from utils.calibrator import Calibrator, CalibrationState
        from utils.profile_models import BaselineProfile
        from tests.fixtures.synthetic_landmarks import neutral_frame, mouth_open_frame
        profile = _profile()
        profile.baseline = BaselineProfile()
        _set_trigger(profile, "mouth_open", 0.1, "enter")
        calibrator = Calibrator(duration_sec=1.0, initial_state=CalibrationState.CALIBRATING)
        pipeline, act = _pipeline(profile, calibrator=calibrator)

        completed = None
        for i in range(5):
            result = pipeline.process(neutral_frame(), i * 0.25)
            if result.calibration_completed:
                completed = result
            else:
                self.assertTrue(result.calibrating)
                self.assertTrue(profile.baseline.is_empty())
                self.assertIsNotNone(result.state)
        self.assertIsNotNone(completed)
        self.assertTrue(completed.calibrated)
        self.assertAlmostEqual(profile.baseline.mouth_height, 0.02, places=9)
        self.assertEqual(completed.baseline, profile.baseline)
        self.assertEqual(act.calls, [])

        pipeline.process(mouth_open_frame(), 1.5)
        self.assertEqual(len(act.of("key")), 1)

    def test_auto_calibrate_start_state(self):
        from utils.calibrator import CalibrationState
        from utils.profile_models import Profile
        pipeline, _ = _pipeline(Profile(), auto_calibrate=True)
        self.assertEqual(pipeline.calibrator.state, CalibrationState.CALIBRATING)
        pipeline, _ = _pipeline(Profile(), auto_calibrate=False)
        self.assertEqual(pipeline.calibrator.state, CalibrationState.UNCALIBRATED)
        pipeline, _ = _pipeline(_profile(), auto_calibrate=False)
        self.assertEqual(pipeline.calibrator.state, CalibrationState.CALIBRATED)

    def test_recalibration_releases_drag(self):
        from tests.fixtures.synthetic_landmarks import mouth_open_frame
        profile = _profile()
        _set_trigger(profile, "mouth_open", 0.3, "left_drag_toggle")
        pipeline, act = _pipeline(profile)
        result = pipeline.process(mouth_open_frame(), 0.0)
        self.assertTrue(result.drag_held)
        pipeline.request_calibration()
        self.assertFalse(pipeline.arbiter.drag_held)
        self.assertEqual(act.calls[-1][:3], ("click", "left", False))
        result = pipeline.process(mouth_open_frame(), 0.1)
        self.assertTrue(result.calibrating)
        self.assertFalse(result.drag_held)


class TestProfileSwitch(unittest.TestCase):

    def test_set_profile_resets_hold_timers(self):
        from tests.fixtures.synthetic_landmarks import mouth_open_frame
        profile = _profile()
        _set_trigger(profile, "mouth_open", 0.3, "enter", hold=0.3)
        pipeline, act = _pipeline(profile)
        pipeline.process(mouth_open_frame(), 0.0)
        pipeline.process(mouth_open_frame(), 0.2)
        pipeline.set_profile(profile)
        pipeline.process(mouth_open_frame(), 0.4)
        self.assertEqual(act.of("key"), [])

    def test_result_to_dict(self):
        from tests.fixtures.synthetic_landmarks import neutral_frame
        pipeline, _ = _pipeline(_profile())
        data = pipeline.process(neutral_frame(), 0.0).to_dict()
        for key in ("state", "events", "activeChannels", "calibrationState", "dragHeld", "performingAction"):
            self.assertIn(key, data)
        self.assertEqual(data["calibrationState"], "calibrated")


if __name__ == "__main__":
    unittest.main()
