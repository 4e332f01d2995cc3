"""
=============================================================================
CONFIGURATION FOR FACIAL EXPRESSION CONTROL (config.py)
=============================================================================

WHAT THIS FILE DOES (in plain language):
----------------------------------------
This file holds the process-wide settings for the project in one place. Other
files read from it. Values come from the environment (e.g. your .env file or
system variables) so you can tune timings without changing code.

Per-user settings (thresholds, gains, combos, baseline) are NOT here: they live
in profiles, persisted by services/profile_store.py.

MAIN GROUPS OF SETTINGS:
------------------------
  1. Calibration      — Window length and whether to calibrate on startup.
  2. Timing           — Combo grace window, key and click cooldowns.
  3. Synthetic events — Marker and matching window for the safety monitor.
  4. Metrics          — Which eye-openness form the extractor reports.
  5. Capture          — Camera pacing and detection confidence.
  6. Storage          — Where profiles are stored.
  7. Server / logging — Operator API host/port, log level, diagnostics.
=============================================================================
"""

import os
from typing import Any, Dict


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: str) -> int:
    raw = (os.getenv(name) or default).strip()
    # Accept hex ("0xFACE") as well as decimal
    return int(raw, 0)


# ============================================================================
# CALIBRATION
# ============================================================================
# The user holds a relaxed face for this many seconds; the mean of the samples
# becomes the neutral baseline. The window only starts once a face is seen.
# ----------------------------------------------------------------------------
CALIBRATION_DURATION_SEC: float = float(os.getenv("CALIBRATION_DURATION_SEC", "3.0"))

# When true, the pipeline starts in the Calibrating state and captures a fresh
# baseline on the first frames with a face.
AUTO_CALIBRATE_ON_START: bool = _env_bool("AUTO_CALIBRATE_ON_START", "true")

# ============================================================================
# TIMING (combos and cooldowns)
# ============================================================================
# Combo grace window: a combo's action stays alive this long after the AND
# condition breaks, so one noisy frame does not drop it.
COMBO_GRACE_SEC: float = float(os.getenv("COMBO_GRACE_SEC", "0.15"))

# Minimum time between two firings of the same keyboard action.
KEY_COOLDOWN_SEC: float = float(os.getenv("KEY_COOLDOWN_SEC", "0.5"))

# Minimum time between two pointer-button actions (click, right click, drag
# toggle). Shared across all button actions.
CLICK_COOLDOWN_SEC: float = float(os.getenv("CLICK_COOLDOWN_SEC", "0.1"))

# ============================================================================
# SYNTHETIC EVENTS (safety kill switch)
# ============================================================================
# Every event the arbiter emits carries this marker. The actuator records
# marked button events so the safety monitor can tell them from real clicks.
SYNTHETIC_EVENT_MARKER: int = _env_int("SYNTHETIC_EVENT_MARKER", "0xFACE")

# A click seen by the monitor within this many seconds of a recorded synthetic
# press of the same button is treated as our own output.
SYNTHETIC_MATCH_WINDOW_SEC: float = float(os.getenv("SYNTHETIC_MATCH_WINDOW_SEC", "0.25"))

# Start the physical-click monitor together with the controller.
SAFETY_MONITOR_ENABLED: bool = _env_bool("SAFETY_MONITOR_ENABLED", "true")

# ============================================================================
# METRICS
# ============================================================================
#   "height"       — eye openness is the eye box height (default)
#   "aspect_ratio" — eye openness is height / width of the eye box
EYE_OPENNESS_METRIC: str = (os.getenv("EYE_OPENNESS_METRIC", "height") or "height").strip().lower()
if EYE_OPENNESS_METRIC not in ("height", "aspect_ratio"):
    EYE_OPENNESS_METRIC = "height"

# ============================================================================
# CAPTURE (camera + landmark provider)
# ============================================================================
TARGET_FPS: float = float(os.getenv("TARGET_FPS", "30"))
MIN_FACE_CONFIDENCE: float = float(os.getenv("MIN_FACE_CONFIDENCE", "0.5"))
CAMERA_INDEX: int = int(os.getenv("CAMERA_INDEX", "0"))
# Flip frames horizontally (selfie view) so image-left matches the user's left.
CAMERA_MIRROR: bool = _env_bool("CAMERA_MIRROR", "true")

# ============================================================================
# STORAGE
# ============================================================================
PROFILE_STORE_PATH: str = os.getenv("PROFILE_STORE_PATH", "profiles.json")

# ============================================================================
# SERVER AND LOGGING
# ============================================================================
FLASK_HOST: str = os.getenv("FLASK_HOST", "127.0.0.1")
FLASK_PORT: int = int(os.getenv("FLASK_PORT", "5050"))
FLASK_DEBUG: bool = _env_bool("FLASK_DEBUG", "false")

LOG_LEVEL: str = (os.getenv("LOG_LEVEL", "INFO") or "INFO").strip().upper()

# When true, log smoothed eye/mouth values at most once per interval.
DIAGNOSTIC_LOGGING: bool = _env_bool("DIAGNOSTIC_LOGGING", "false")
DIAGNOSTIC_LOG_INTERVAL_SEC: float = max(0.1, float(os.getenv("DIAGNOSTIC_LOG_INTERVAL_SEC", "1.0")))


def get_timing_config() -> Dict[str, Any]:
    """Return the timing settings as a dict (used by /status)."""
    return {
        "calibrationDurationSec": CALIBRATION_DURATION_SEC,
        "autoCalibrateOnStart": AUTO_CALIBRATE_ON_START,
        "comboGraceSec": COMBO_GRACE_SEC,
        "keyCooldownSec": KEY_COOLDOWN_SEC,
        "clickCooldownSec": CLICK_COOLDOWN_SEC,
    }


def get_capture_config() -> Dict[str, Any]:
    """Return camera/provider settings as a dict (used by /status)."""
    return {
        "targetFps": TARGET_FPS,
        "minFaceConfidence": MIN_FACE_CONFIDENCE,
        "cameraIndex": CAMERA_INDEX,
        "cameraMirror": CAMERA_MIRROR,
        "eyeOpennessMetric": EYE_OPENNESS_METRIC,
        "safetyMonitorEnabled": SAFETY_MONITOR_ENABLED,
    }
