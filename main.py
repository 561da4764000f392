#!/usr/bin/env python3
"""
main.py - Main Flask Application Entry Point
Local UI bridge for the dance practice coach
"""

import logging

from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO

from api_routes import register_api_routes
from coach import DanceCoach
from config import Config
from persistence import create_gateway
from websocket_handlers import register_websocket_handlers

logger = logging.getLogger(__name__)


def configure_logging(level: str = Config.LOG_LEVEL):
    logging.basicConfig(level=getattr(logging, str(level).upper(), logging.INFO),
                        format=Config.LOG_FORMAT)


def create_app(coach=None, database_url=None):
    """Create and configure Flask application"""
    app = Flask(__name__)
    app.config.from_object(Config)

    # CORS configuration (browser UI served from another local port)
    CORS(app)

    socketio = SocketIO(app,
        cors_allowed_origins="*",
        async_mode='threading',
        logger=False,
        engineio_logger=False
    )

    if coach is None:
        coach = DanceCoach(create_gateway(database_url))
        coach.restore_permissions()

    # Store coach in app context for access by routes
    app.coach = coach

    register_api_routes(app, coach)
    register_websocket_handlers(socketio, coach)

    return app, socketio


def main():
    """Main application entry point"""
    configure_logging()
    Config.init_directories()

    app, socketio = create_app()

    logger.info("=" * 60)
    logger.info(f"{Config.APP_NAME} v{Config.VERSION} Starting...")
    logger.info("=" * 60)
    logger.info(f"Local Access: http://{Config.HOST}:{Config.PORT}")
    logger.info(f"Database: {Config.DATABASE_URL}")
    logger.info("🎥 Session workflow:")
    logger.info("  1. POST /api/permissions          → Report granted sensors")
    logger.info("  2. POST /api/session/start        → Start practice session")
    logger.info("  3. POST /api/sensors/*            → Stream pose, motion, audio")
    logger.info("  4. POST /api/session/pause|resume → Pause and resume")
    logger.info("  5. POST /api/session/end          → Save summary")
    logger.info("=" * 60)

    try:
        socketio.run(app, host=Config.HOST, port=Config.PORT, debug=Config.DEBUG,
                     allow_unsafe_werkzeug=True)
    finally:
        app.coach.shutdown()


if __name__ == '__main__':
    main()
