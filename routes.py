"""
Flask routes for the facial expression control operator API.

Handles status and live state, start/stop of the capture loop, calibration,
the safety release, and profile management (profiles CRUD, per-channel
triggers, gains, smoothing, continuous speeds and gesture combos).

Errors are JSON {"error": "..."}: 400 for invalid input, 404 for unknown
profiles or missing state, 500 when the controller cannot start.
"""

import logging
from typing import Optional

from flask import Blueprint, request, jsonify

import config
from services.profile_manager import ProfileManager, ProfileNotFoundError
from services.profile_store import ProfileStore
from utils.profile_models import ACTION_KINDS, Channel, FaceAction, INTENSITY_MODES

logger = logging.getLogger(__name__)

api = Blueprint('api', __name__)

# Lazy singletons: created on first use so importing routes stays cheap.
# ExpressionController is imported lazily too (it pulls in numpy and the pipeline).
_profile_manager: Optional[ProfileManager] = None
_controller = None  # type: Optional["ExpressionController"]


def _get_profile_manager() -> ProfileManager:
    global _profile_manager
    if _profile_manager is None:
        _profile_manager = ProfileManager(ProfileStore(config.PROFILE_STORE_PATH))
    return _profile_manager


def _get_controller():
    global _controller
    if _controller is None:
        from expression_controller import ExpressionController
        _controller = ExpressionController(_get_profile_manager())
    return _controller


def _json_body() -> Optional[dict]:
    if not request.is_json:
        return None
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


def _error(e: ValueError):
    status = 404 if isinstance(e, ProfileNotFoundError) else 400
    return jsonify({"error": str(e)}), status


def register_routes(app) -> None:
    """Attach the API blueprint to a Flask app."""
    app.register_blueprint(api)


# ---------------------------------------------------------------------------
# Status and live state
# ---------------------------------------------------------------------------

@api.route("/status", methods=["GET"])
def get_status():
    """
    Controller status plus process-wide timing and capture settings.

    Returns:
        JSON: {"controller": {...} | null, "timing": {...}, "capture": {...}}
    """
    controller = _controller
    return jsonify({
        "controller": controller.status() if controller else None,
        "activeProfileId": _get_profile_manager().active_profile_id,
        "timing": config.get_timing_config(),
        "capture": config.get_capture_config(),
    })


@api.route("/state", methods=["GET"])
def get_state():
    """Latest pipeline result (expression state, events, calibration flags)."""
    controller = _controller
    if controller is None:
        return jsonify({"error": "Expression control not started"}), 404
    result = controller.get_current_state()
    if result is None:
        return jsonify({"error": "No expression data available"}), 404
    return jsonify(result.to_dict())


@api.route("/actions", methods=["GET"])
def get_action_catalogue():
    """Channels, actions (with their kind) and continuous intensity modes."""
    return jsonify({
        "channels": [c.value for c in Channel],
        "actions": [
            {"id": a.value, "kind": ACTION_KINDS[a].value if a in ACTION_KINDS else None}
            for a in FaceAction
        ],
        "intensityModes": list(INTENSITY_MODES),
    })


# ---------------------------------------------------------------------------
# Capture loop control
# ---------------------------------------------------------------------------

@api.route("/control/start", methods=["POST"])
def start_control():
    """
    Start the capture loop.

    Request Body (optional):
        {"sourceType": "webcam" | "file", "sourcePath": "path for file sources"}
    """
    data = _json_body() or {}
    source_type_str = str(data.get("sourceType", "webcam")).lower()
    source_path = data.get("sourcePath")
    if source_type_str not in ("webcam", "file"):
        return jsonify({"error": f"Invalid sourceType: {source_type_str}"}), 400
    if source_type_str == "file" and not source_path:
        return jsonify({"error": "sourcePath is required for file sources"}), 400

    from utils.video_source_handler import VideoSourceType
    source_type = VideoSourceType.WEBCAM if source_type_str == "webcam" else VideoSourceType.FILE

    controller = _get_controller()
    if not controller.start(source_type, source_path):
        return jsonify({"error": "Failed to start expression control"}), 500
    return jsonify({"success": True, "message": "Expression control started"})


@api.route("/control/stop", methods=["POST"])
def stop_control():
    """Stop the capture loop (releases any held drag)."""
    controller = _controller
    if controller is not None:
        controller.stop()
    return jsonify({"success": True, "message": "Expression control stopped"})


@api.route("/calibrate", methods=["POST"])
def calibrate():
    """Request calibration; it runs on the next frames with a face."""
    _get_controller().calibrate()
    return jsonify({"success": True, "calibrationDurationSec": config.CALIBRATION_DURATION_SEC})


@api.route("/safety/release-all", methods=["POST"])
def release_all():
    """Release every held button now."""
    controller = _controller
    released = controller.force_release("operator") if controller is not None else 0
    return jsonify({"success": True, "released": released})


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------

@api.route("/profiles", methods=["GET", "POST"])
def profiles_route():
    """
    GET: list profiles. POST {"name": "..."}: save the active settings under a
    name (replaces a profile with the same name) and make it active.
    """
    manager = _get_profile_manager()
    if request.method == "GET":
        return jsonify({"profiles": manager.list_profiles(), "activeProfileId": manager.active_profile_id})

    data = _json_body()
    if data is None:
        return jsonify({"error": "Request must be JSON"}), 400
    try:
        profile = manager.save_profile(data.get("name"))
    except ValueError as e:
        return _error(e)
    return jsonify(profile.to_dict()), 201


@api.route("/profiles/<profile_id>", methods=["GET", "PUT", "DELETE"])
def profile_route(profile_id):
    """GET a profile, PUT {"name"} to rename it, or DELETE it."""
    manager = _get_profile_manager()
    try:
        if request.method == "GET":
            return jsonify(manager.get_profile(profile_id))
        if request.method == "PUT":
            data = _json_body()
            if data is None:
                return jsonify({"error": "Request must be JSON"}), 400
            return jsonify(manager.rename_profile(profile_id, data.get("name")).to_dict())
        manager.delete_profile(profile_id)
        return jsonify({"success": True, "activeProfileId": manager.active_profile_id})
    except ValueError as e:
        return _error(e)


@api.route("/profiles/<profile_id>/select", methods=["POST"])
def select_profile(profile_id):
    try:
        profile = _get_profile_manager().select_profile(profile_id)
    except ValueError as e:
        return _error(e)
    return jsonify({"success": True, "activeProfileId": profile.id})


# ---------------------------------------------------------------------------
# Active profile edits
# ---------------------------------------------------------------------------

@api.route("/profile", methods=["GET"])
def get_active_profile():
    manager = _get_profile_manager()
    with manager.lock:
        return jsonify(manager.active_profile.to_dict())


@api.route("/profile/channels/<channel>", methods=["PUT"])
def update_channel(channel):
    """
    Edit one channel's trigger.

    Request Body (all optional):
        {"threshold": 0.3, "triggerBelow": false, "holdDuration": 0.3, "action": "scroll_down"}
    """
    data = _json_body()
    if data is None:
        return jsonify({"error": "Request must be JSON"}), 400
    try:
        trigger = _get_profile_manager().update_channel(
            channel,
            threshold=data.get("threshold"),
            trigger_below=data.get("triggerBelow"),
            hold_duration=data.get("holdDuration"),
            action=data.get("action"),
        )
    except ValueError as e:
        return _error(e)
    return jsonify({"channel": Channel.parse(channel).value, "trigger": trigger})


@api.route("/profile/gains", methods=["PUT"])
def update_gains():
    """Request Body: {"mouthHeightGain", "mouthWidthGain", "eyebrowGain"} (any subset)."""
    data = _json_body()
    if data is None:
        return jsonify({"error": "Request must be JSON"}), 400
    try:
        gains = _get_profile_manager().set_gains(
            mouth_height_gain=data.get("mouthHeightGain"),
            mouth_width_gain=data.get("mouthWidthGain"),
            eyebrow_gain=data.get("eyebrowGain"),
        )
    except ValueError as e:
        return _error(e)
    return jsonify(gains.to_dict())


@api.route("/profile/smoothing", methods=["PUT"])
def update_smoothing():
    """Request Body: {"smoothFactor": 0.0-0.95}."""
    data = _json_body()
    if data is None or "smoothFactor" not in data:
        return jsonify({"error": "Missing 'smoothFactor'"}), 400
    try:
        value = _get_profile_manager().set_smooth_factor(data.get("smoothFactor"))
    except ValueError as e:
        return _error(e)
    return jsonify({"smoothFactor": value})


@api.route("/profile/continuous", methods=["PUT"])
def update_continuous():
    """
    Request Body (any subset):
        {"scrollStep", "moveStep", "minSpeed", "maxSpeed", "intensityMode", "intensityRange"}
    """
    data = _json_body()
    if data is None:
        return jsonify({"error": "Request must be JSON"}), 400
    try:
        settings = _get_profile_manager().set_continuous(
            scroll_step=data.get("scrollStep"),
            move_step=data.get("moveStep"),
            min_speed=data.get("minSpeed"),
            max_speed=data.get("maxSpeed"),
            intensity_mode=data.get("intensityMode"),
            intensity_range=data.get("intensityRange"),
        )
    except ValueError as e:
        return _error(e)
    return jsonify(settings.to_dict())


@api.route("/profile/combos", methods=["GET", "POST"])
def combos_route():
    """GET the combos; POST {"primary", "secondary", "action", "enabled"?} to add one."""
    manager = _get_profile_manager()
    if request.method == "GET":
        with manager.lock:
            return jsonify({"combos": [c.to_dict() for c in manager.active_profile.combos]})
    data = _json_body()
    if data is None:
        return jsonify({"error": "Request must be JSON"}), 400
    try:
        combo = manager.add_combo(
            data.get("primary"), data.get("secondary"), data.get("action"),
            enabled=data.get("enabled", True),
        )
    except ValueError as e:
        return _error(e)
    return jsonify(combo.to_dict()), 201


@api.route("/profile/combos/<int:index>", methods=["PUT", "DELETE"])
def combo_route(index):
    """PUT {"enabled": bool} to toggle a combo, or DELETE it."""
    manager = _get_profile_manager()
    try:
        if request.method == "DELETE":
            removed = manager.remove_combo(index)
            return jsonify({"success": True, "removed": removed.to_dict()})
        data = _json_body()
        if data is None or "enabled" not in data:
            return jsonify({"error": "Missing 'enabled'"}), 400
        return jsonify(manager.set_combo_enabled(index, data["enabled"]).to_dict())
    except ValueError as e:
        return _error(e)
