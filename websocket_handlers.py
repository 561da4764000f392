"""
websocket_handlers.py - Socket.IO Event Handlers
Mirror of the session controls plus a live session_update push every tick
"""

import logging

from flask_socketio import emit
from pydantic import ValidationError

from schemas import MotionSampleRequest, PoseFrameRequest, StartSessionRequest

logger = logging.getLogger(__name__)


def register_websocket_handlers(socketio, coach):
    """Register Socket.IO event handlers and the per-tick broadcast"""

    @socketio.on('connect')
    def handle_connect():
        logger.info('✅ Client connected to dance coach')
        emit('status', {'connected': True, **coach.status()})

    @socketio.on('disconnect')
    def handle_disconnect():
        logger.info('🔌 Client disconnected')

    @socketio.on_error_default
    def default_error_handler(e):
        logger.error(f"❌ Socket.IO error: {e}")

    @socketio.on('start_session')
    def handle_start_session(data=None):
        try:
            body = StartSessionRequest.model_validate(data or {})
        except ValidationError as e:
            emit('session_error', {'error': 'Invalid request', 'details': e.errors(include_url=False, include_context=False)})
            return
        started = coach.start_session(body.routine_name)
        emit('session_state', {'started': started, **coach.status()})

    @socketio.on('pause_session')
    def handle_pause_session():
        emit('session_state', {'paused': coach.pause_session(), **coach.status()})

    @socketio.on('resume_session')
    def handle_resume_session():
        emit('session_state', {'resumed': coach.resume_session(), **coach.status()})

    @socketio.on('end_session')
    def handle_end_session():
        summary = coach.end_session()
        emit('session_ended', {'summary': summary.to_dict() if summary else None})

    @socketio.on('pose_frame')
    def handle_pose_frame(data):
        try:
            body = PoseFrameRequest.model_validate(data or {})
        except ValidationError as e:
            logger.warning(f"⚠️ Dropping malformed pose frame: {e}")
            return
        coach.push_poses([[kp.as_dict() for kp in pose] for pose in body.poses])

    @socketio.on('motion_sample')
    def handle_motion_sample(data):
        try:
            body = MotionSampleRequest.model_validate(data or {})
        except ValidationError as e:
            logger.warning(f"⚠️ Dropping malformed motion sample: {e}")
            return
        coach.push_motion(body.x, body.y, body.z, body.timestamp_ms)

    def broadcast_session_update(snapshot):
        """Push live session numbers to every connected client"""
        socketio.emit('session_update', snapshot)

    coach.add_tick_listener(broadcast_session_update)

    logger.info("✅ WebSocket handlers registered")
    return socketio
