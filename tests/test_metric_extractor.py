"""
Metric extractor tests.

Checks each raw metric against synthetic frames with known geometry, and the
neutral defaults for missing or degenerate regions.
"""

import math
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import unittest


class TestRawMetrics(unittest.TestCase):
    """Raw metric values on known geometry."""

    def test_neutral_frame_metrics(self):
        """Eye height, lip height/width, ratio, brow distance and gap match the layout."""
        from utils.metric_extractor import extract_metrics
        from tests.fixtures.synthetic_landmarks import neutral_frame
        m = extract_metrics(neutral_frame())
        self.assertAlmostEqual(m.left_eye_openness, 0.04, places=9)
        self.assertAlmostEqual(m.right_eye_openness, 0.04, places=9)
        self.assertAlmostEqual(m.inner_lip_height, 0.02, places=9)
        self.assertAlmostEqual(m.outer_lip_width, 0.30, places=9)
        self.assertAlmostEqual(m.mouth_ratio, 0.02 / 0.30, places=9)
        self.assertAlmostEqual(m.brow_eye_distance, 0.08, places=9)
        self.assertAlmostEqual(m.brow_gap, 0.15, places=9)

    def test_mouth_lateral_distances(self):
        """Lips shifted right of the nose: right distance grows, left shrinks."""
        from utils.metric_extractor import extract_metrics
        from tests.fixtures.synthetic_landmarks import mouth_shifted_frame
        m = extract_metrics(mouth_shifted_frame(mouth_shift=0.04, outer_lip_width=0.32))
        self.assertAlmostEqual(m.mouth_left_distance, 0.12, places=9)
        self.assertAlmostEqual(m.mouth_right_distance, 0.20, places=9)
        self.assertAlmostEqual(m.mouth_diff, 0.08, places=9)

    def test_eye_aspect_ratio_form(self):
        """aspect_ratio form reports height / width of the eye box."""
        from utils.metric_extractor import extract_metrics, EYE_METRIC_ASPECT_RATIO
        from tests.fixtures.synthetic_landmarks import neutral_frame
        m = extract_metrics(neutral_frame(eye_height=0.06, eye_width=0.12), EYE_METRIC_ASPECT_RATIO)
        self.assertAlmostEqual(m.left_eye_openness, 0.5, places=9)

    def test_per_eye_values(self):
        """Left and right eye openness are measured independently."""
        from utils.metric_extractor import extract_metrics
        from tests.fixtures.synthetic_landmarks import make_frame
        m = extract_metrics(make_frame(left_eye_height=0.01, right_eye_height=0.05))
        self.assertAlmostEqual(m.left_eye_openness, 0.01, places=9)
        self.assertAlmostEqual(m.right_eye_openness, 0.05, places=9)

    def test_brow_distance_uses_available_side(self):
        """With one eyebrow missing, the other side alone gives the distance."""
        from utils.metric_extractor import extract_metrics
        from utils.landmark_provider_interface import LEFT_EYEBROW
        from tests.fixtures.synthetic_landmarks import make_frame
        m = extract_metrics(make_frame(brow_offset=0.1, omit=[LEFT_EYEBROW]))
        self.assertAlmostEqual(m.brow_eye_distance, 0.1, places=9)
        self.assertTrue(m.has_brow_distance)
        self.assertFalse(m.has_brow_gap)
        self.assertEqual(m.brow_gap, 0.0)


class TestMissingAndDegenerate(unittest.TestCase):
    """Missing regions and zero-width boxes never raise and never produce NaN."""

    def test_none_frame_gives_defaults(self):
        """No frame -> eyes fully open, everything else 0."""
        from utils.metric_extractor import extract_metrics
        m = extract_metrics(None)
        self.assertEqual(m.left_eye_openness, 1.0)
        self.assertEqual(m.right_eye_openness, 1.0)
        self.assertEqual(m.inner_lip_height, 0.0)
        self.assertEqual(m.outer_lip_width, 0.0)
        self.assertEqual(m.present, frozenset())

    def test_missing_eyes_are_open(self):
        """Missing eye regions report openness 1.0."""
        from utils.metric_extractor import extract_metrics
        from utils.landmark_provider_interface import LEFT_EYE, RIGHT_EYE
        from tests.fixtures.synthetic_landmarks import make_frame
        m = extract_metrics(make_frame(omit=[LEFT_EYE, RIGHT_EYE]))
        self.assertEqual(m.left_eye_openness, 1.0)
        self.assertEqual(m.right_eye_openness, 1.0)

    def test_missing_nose_zeroes_lateral_distances(self):
        """Without a nose there is no lateral reference."""
        from utils.metric_extractor import extract_metrics
        from utils.landmark_provider_interface import NOSE
        from tests.fixtures.synthetic_landmarks import mouth_shifted_frame
        m = extract_metrics(mouth_shifted_frame(omit=[NOSE]))
        self.assertEqual(m.mouth_left_distance, 0.0)
        self.assertEqual(m.mouth_right_distance, 0.0)
        self.assertFalse(m.has_mouth_direction)

    def test_zero_width_boxes_are_finite(self):
        """Single-point regions give zero sizes and a guarded ratio."""
        from utils.metric_extractor import extract_metrics, EYE_METRIC_ASPECT_RATIO
        from tests.fixtures.synthetic_landmarks import zero_width_frame
        for metric in ("height", EYE_METRIC_ASPECT_RATIO):
            m = extract_metrics(zero_width_frame(), metric)
            for value in (m.left_eye_openness, m.inner_lip_height, m.outer_lip_width,
                          m.mouth_ratio, m.brow_eye_distance, m.brow_gap):
                self.assertTrue(math.isfinite(value))
            self.assertEqual(m.mouth_ratio, 0.0)
        self.assertEqual(extract_metrics(zero_width_frame(), EYE_METRIC_ASPECT_RATIO).left_eye_openness, 0.0)

    def test_non_finite_points_are_ignored(self):
        """NaN rows are dropped before measuring."""
        from utils.metric_extractor import extract_metrics
        from utils.landmark_provider_interface import LandmarkFrame, INNER_LIPS
        frame = LandmarkFrame.from_points({
            INNER_LIPS: [(0.4, 0.2), (0.5, float("nan")), (0.6, 0.25)],
        })
        m = extract_metrics(frame)
        self.assertAlmostEqual(m.inner_lip_height, 0.05, places=9)

    def test_unknown_regions_dropped(self):
        """LandmarkFrame.from_points ignores names outside the schema and empty regions."""
        from utils.landmark_provider_interface import LandmarkFrame, NOSE
        frame = LandmarkFrame.from_points({"ears": [(0.1, 0.1)], NOSE: []})
        self.assertEqual(frame.regions, {})
        self.assertIsNone(frame.region(NOSE))


if __name__ == "__main__":
    unittest.main()
