"""
api_routes.py - API Route Handlers for the local dance coach UI bridge
"""

import logging

from flask import jsonify, request
from pydantic import ValidationError

from config import Config
from errors import DanceCoachError, PersistenceError
from schemas import (AudioChunkRequest, ImportRequest, MotionSampleRequest, PermissionReport,
                     PoseFrameRequest, ReadingRequest, RoutineRequest, SettingsUpdate,
                     StartSessionRequest, UserNameRequest)

logger = logging.getLogger(__name__)


def _parse(model):
    return model.model_validate(request.get_json(silent=True) or {})


def register_api_routes(app, coach):
    """Register all API routes with the Flask app"""

    @app.errorhandler(ValidationError)
    def handle_validation_error(e):
        return jsonify({"success": False, "error": "Invalid request", "details": e.errors(include_url=False, include_context=False)}), 400

    @app.errorhandler(PersistenceError)
    def handle_persistence_error(e):
        logger.error(f"❌ Storage error: {e}")
        return jsonify({"success": False, "error": str(e)}), 500

    @app.errorhandler(DanceCoachError)
    def handle_coach_error(e):
        logger.error(f"❌ {e}")
        return jsonify({"success": False, "error": str(e)}), 500

    # MAIN ENDPOINTS
    @app.route('/')
    def index():
        """Service info"""
        return jsonify({
            "service": Config.APP_NAME,
            "status": "running",
            "version": Config.VERSION,
            "session_in_progress": coach.session_in_progress
        })

    # ==================== SESSION LIFECYCLE ====================

    @app.route('/api/session/start', methods=['POST'])
    def start_session():
        body = _parse(StartSessionRequest)
        if not coach.start_session(body.routine_name):
            return jsonify({
                "success": False,
                "message": "A session is already in progress"
            }), 409

        return jsonify({
            "success": True,
            "message": "Session started",
            "session": coach.engine.snapshot()
        })

    @app.route('/api/session/pause', methods=['POST'])
    def pause_session():
        paused = coach.pause_session()
        return jsonify({
            "success": paused,
            "message": "Session paused" if paused else "No active session to pause",
            "session": coach.engine.snapshot() if coach.engine else None
        }), 200 if paused else 409

    @app.route('/api/session/resume', methods=['POST'])
    def resume_session():
        resumed = coach.resume_session()
        return jsonify({
            "success": resumed,
            "message": "Session resumed" if resumed else "No paused session to resume",
            "session": coach.engine.snapshot() if coach.engine else None
        }), 200 if resumed else 409

    @app.route('/api/session/end', methods=['POST'])
    def end_session():
        summary = coach.end_session()
        if summary is None:
            return jsonify({"success": False, "message": "No session to end"}), 409

        return jsonify({
            "success": True,
            "message": "Session ended",
            "summary": summary.to_dict(),
            "saved": summary.session_id is not None
        })

    @app.route('/api/session/status')
    def session_status():
        return jsonify({"success": True, **coach.status()})

    @app.route('/api/session/reading', methods=['POST'])
    def record_reading():
        body = _parse(ReadingRequest)
        accepted = coach.record(body.kind, body.value)
        return jsonify({"success": accepted, "accepted": accepted})

    # ==================== SENSOR RELAYS ====================

    @app.route('/api/sensors/pose', methods=['POST'])
    def push_pose():
        body = _parse(PoseFrameRequest)
        delivered = coach.push_poses([[kp.as_dict() for kp in pose] for pose in body.poses])
        return jsonify({"success": True, "delivered": delivered})

    @app.route('/api/sensors/motion', methods=['POST'])
    def push_motion():
        body = _parse(MotionSampleRequest)
        delivered = coach.push_motion(body.x, body.y, body.z, body.timestamp_ms)
        return jsonify({"success": True, "delivered": delivered})

    @app.route('/api/sensors/audio', methods=['POST'])
    def push_audio():
        body = _parse(AudioChunkRequest)
        delivered = coach.push_audio(body.samples)
        return jsonify({"success": True, "delivered": delivered})

    # ==================== PERMISSIONS ====================

    @app.route('/api/permissions', methods=['GET'])
    def get_permissions():
        return jsonify({"success": True, "permissions": coach.permissions.status})

    @app.route('/api/permissions', methods=['POST'])
    def report_permissions():
        body = _parse(PermissionReport)
        results = coach.report_permissions(body.model_dump())
        return jsonify({"success": True, "permissions": results})

    # ==================== HISTORY ====================

    @app.route('/api/sessions', methods=['GET'])
    def list_sessions():
        limit = request.args.get('limit', type=int)
        sessions = coach.gateway.get_recent_sessions(limit) if limit else coach.gateway.list()
        return jsonify({
            "success": True,
            "sessions": [s.to_dict() for s in sessions],
            "count": len(sessions)
        })

    @app.route('/api/sessions/<int:session_id>', methods=['GET'])
    def get_session(session_id):
        summary = coach.gateway.get(session_id)
        if summary is None:
            return jsonify({"success": False, "error": f"Session {session_id} not found"}), 404
        return jsonify({"success": True, "session": summary.to_dict()})

    @app.route('/api/sessions/<int:session_id>', methods=['DELETE'])
    def delete_session(session_id):
        if not coach.gateway.delete(session_id):
            return jsonify({"success": False, "error": f"Session {session_id} not found"}), 404
        return jsonify({"success": True, "message": f"Session {session_id} deleted"})

    @app.route('/api/sessions', methods=['DELETE'])
    def clear_sessions():
        coach.gateway.clear_all_sessions()
        return jsonify({"success": True, "message": "All sessions cleared"})

    @app.route('/api/statistics')
    def get_statistics():
        return jsonify({"success": True, "statistics": coach.gateway.get_statistics().to_dict()})

    # ==================== SETTINGS ====================

    @app.route('/api/settings', methods=['GET'])
    def get_settings():
        return jsonify({"success": True, "settings": coach.gateway.get_settings()})

    @app.route('/api/settings', methods=['PUT'])
    def save_settings():
        body = _parse(SettingsUpdate)
        coach.gateway.save_settings(body.settings)
        return jsonify({"success": True, "settings": coach.gateway.get_settings()})

    @app.route('/api/settings/<key>', methods=['DELETE'])
    def delete_setting(key):
        if not coach.gateway.delete_setting(key):
            return jsonify({"success": False, "error": f"Setting '{key}' not found"}), 404
        return jsonify({"success": True})

    @app.route('/api/user-name', methods=['GET'])
    def get_user_name():
        return jsonify({"success": True, "name": coach.gateway.get_user_name()})

    @app.route('/api/user-name', methods=['PUT'])
    def save_user_name():
        body = _parse(UserNameRequest)
        coach.gateway.save_user_name(body.name)
        return jsonify({"success": True, "name": body.name})

    @app.route('/api/routine', methods=['GET'])
    def get_routine():
        return jsonify({"success": True, "routine": coach.gateway.get_selected_routine()})

    @app.route('/api/routine', methods=['PUT'])
    def set_routine():
        body = _parse(RoutineRequest)
        coach.gateway.set_selected_routine(body.routine)
        return jsonify({"success": True, "routine": body.routine})

    # ==================== DATA MANAGEMENT ====================

    @app.route('/api/export')
    def export_data():
        return jsonify({"success": True, "data": coach.gateway.export_all_data()})

    @app.route('/api/import', methods=['POST'])
    def import_data():
        body = _parse(ImportRequest)
        imported = coach.gateway.import_data(body.model_dump())
        return jsonify({"success": True, "imported": imported})

    @app.route('/api/data', methods=['DELETE'])
    def clear_data():
        coach.gateway.clear_all_data()
        return jsonify({"success": True, "message": "All data cleared"})

    @app.route('/api/database/info')
    def database_info():
        return jsonify({"success": True, "info": coach.gateway.get_database_info()})

    return app
