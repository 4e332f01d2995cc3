"""
Utilities package for Facial Expression Control.

This package contains the per-frame expression stages (landmark schema, metric
extraction, calibration, normalization, smoothing, threshold evaluation and
combo resolution) and the profile data types they share.

The camera modules (video_source_handler, mediapipe_detector) need the
optional `camera` extra and are not imported here.
"""

from .landmark_provider_interface import LandmarkFrame, LandmarkProviderInterface
from .metric_extractor import RawMetrics, extract_metrics
from .calibrator import Calibrator, CalibrationState
from .normalizer import ExpressionState, normalize
from .expression_smoother import ExpressionSmoother
from .expression_evaluator import ExpressionEvaluator
from .combo_resolver import ComboResolver, ComboResolution
from .profile_models import (
    BaselineProfile,
    Channel,
    FaceAction,
    GainConfig,
    GestureCombo,
    Profile,
    TriggerConfig,
)

__all__ = [
    'LandmarkFrame',
    'LandmarkProviderInterface',
    'RawMetrics',
    'extract_metrics',
    'Calibrator',
    'CalibrationState',
    'ExpressionState',
    'normalize',
    'ExpressionSmoother',
    'ExpressionEvaluator',
    'ComboResolver',
    'ComboResolution',
    'BaselineProfile',
    'Channel',
    'FaceAction',
    'GainConfig',
    'GestureCombo',
    'Profile',
    'TriggerConfig',
]
