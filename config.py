"""
config.py - Configuration Settings for the Dance Coach session engine
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class Config:
    """Application configuration"""
    APP_NAME = "DanceBud"
    VERSION = "1.0.0"
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dance_coach_secret_key'

    # Server Configuration (local UI bridge only)
    HOST = os.environ.get('DANCE_COACH_HOST', '127.0.0.1')
    PORT = int(os.environ.get('DANCE_COACH_PORT', '5001'))
    DEBUG = os.environ.get('DEBUG', 'False').lower() == 'true'

    # Storage Configuration
    DATA_DIR = Path(os.environ.get('DANCE_COACH_DATA_DIR', str(Path.cwd() / "dance_coach_data")))
    DATABASE_URL = os.environ.get('DATABASE_URL') or f"sqlite:///{DATA_DIR / 'dance_coach.db'}"

    # Logging Configuration
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

    # Pose Configuration (17 COCO keypoints)
    POSE_KEYPOINT_COUNT = 17
    POSE_DRAW_CONFIDENCE = 0.3  # Minimum confidence for skeleton overlay
    POSE_SCORE_CONFIDENCE = 0.5  # Minimum confidence for posture checks
    POSE_DETECTION_INTERVAL_MS = 100
    SHOULDER_RATIO_CUTOFF = 0.2
    BACK_RATIO_CUTOFF = 0.3
    HIP_RATIO_CUTOFF = 0.2
    SHOULDER_WEIGHT = 40
    BACK_WEIGHT = 35
    HIP_WEIGHT = 25

    # Motion Configuration
    STEP_THRESHOLD = 1.2  # m/s^2 change in acceleration magnitude
    STEP_DEBOUNCE_MS = 300  # caps step rate at 200/min
    TURN_THRESHOLD = 150  # degrees per second, unused by the real-sensor path
    ACTIVITY_BUFFER_SIZE = 20
    ENERGY_SCALE = 30
    SENSOR_GRACE_PERIOD_MS = 2000
    FALLBACK_INTERVAL_MS = 800
    CALIBRATION_SAMPLES = 30

    # Audio Configuration
    AUDIO_FFT_SIZE = 2048
    AUDIO_SMOOTHING = 0.8
    AUDIO_MIN_DECIBELS = -90.0
    AUDIO_MAX_DECIBELS = -10.0
    AUDIO_BASS_BINS = 20
    AUDIO_SAMPLE_RATE = 44100
    TEMPO_INTERVAL_MS = 500
    TEMPO_BASE_BPM = 110
    TEMPO_ENERGY_SPAN = 20
    TEMPO_SWING = 10

    # Session Management
    SESSION_TICK_MS = 1000
    DEFAULT_ROUTINE = "Freestyle"
    DEFAULT_USER_NAME = "Dancer"
    RECENT_SESSIONS_LIMIT = 5

    @classmethod
    def init_directories(cls):
        """Initialize required directories"""
        cls.DATA_DIR.mkdir(parents=True, exist_ok=True)
        return True

    @classmethod
    def get_pose_config(cls):
        """Get posture scoring configuration"""
        return {
            "draw_confidence": cls.POSE_DRAW_CONFIDENCE,
            "score_confidence": cls.POSE_SCORE_CONFIDENCE,
            "interval_ms": cls.POSE_DETECTION_INTERVAL_MS,
            "checks": {
                "shoulder": {"weight": cls.SHOULDER_WEIGHT, "cutoff": cls.SHOULDER_RATIO_CUTOFF},
                "back": {"weight": cls.BACK_WEIGHT, "cutoff": cls.BACK_RATIO_CUTOFF},
                "hip": {"weight": cls.HIP_WEIGHT, "cutoff": cls.HIP_RATIO_CUTOFF},
            }
        }

    @classmethod
    def get_motion_config(cls):
        """Get motion tracking configuration"""
        return {
            "step_threshold": cls.STEP_THRESHOLD,
            "debounce_ms": cls.STEP_DEBOUNCE_MS,
            "turn_threshold": cls.TURN_THRESHOLD,
            "buffer_size": cls.ACTIVITY_BUFFER_SIZE,
            "energy_scale": cls.ENERGY_SCALE,
            "grace_period_ms": cls.SENSOR_GRACE_PERIOD_MS,
            "fallback_interval_ms": cls.FALLBACK_INTERVAL_MS
        }

    @classmethod
    def get_audio_config(cls):
        """Get audio analysis configuration"""
        return {
            "fft_size": cls.AUDIO_FFT_SIZE,
            "smoothing": cls.AUDIO_SMOOTHING,
            "min_decibels": cls.AUDIO_MIN_DECIBELS,
            "max_decibels": cls.AUDIO_MAX_DECIBELS,
            "bass_bins": cls.AUDIO_BASS_BINS,
            "interval_ms": cls.TEMPO_INTERVAL_MS
        }
