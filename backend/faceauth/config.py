"""
Configuration management for the liveness and capture core
"""
import os
from pathlib import Path
from dotenv import load_dotenv

from .exceptions import ConfigurationError

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Application configuration"""

    # Blink hysteresis (eye aspect ratio). Close must stay below open.
    BLINK_CLOSE_THRESHOLD = float(os.getenv('BLINK_CLOSE_THRESHOLD', '0.22'))
    BLINK_OPEN_THRESHOLD = float(os.getenv('BLINK_OPEN_THRESHOLD', '0.26'))

    # Head turn: margin added outside the [0.45, 0.55] dead zone, and the
    # number of consecutive turned frames required to confirm
    TURN_THRESHOLD = float(os.getenv('TURN_THRESHOLD', '0.15'))
    TURN_HOLD_FRAMES = int(os.getenv('TURN_HOLD_FRAMES', '12'))
    TURN_RESET_ON_FACE_LOSS = _env_bool('TURN_RESET_ON_FACE_LOSS', 'false')
    CAMERA_MIRRORED = _env_bool('CAMERA_MIRRORED', 'true')

    # Landmark frame usability
    MIN_LANDMARK_POINTS = int(os.getenv('MIN_LANDMARK_POINTS', '380'))
    FACE_TOO_FAR_RATIO = float(os.getenv('FACE_TOO_FAR_RATIO', '0.28'))

    # Capture and enrollment
    CAPTURE_STABLE_FRAMES = int(os.getenv('CAPTURE_STABLE_FRAMES', '90'))
    ENROLLMENT_SAMPLES = int(os.getenv('ENROLLMENT_SAMPLES', '3'))
    LIVENESS_ROUNDS = int(os.getenv('LIVENESS_ROUNDS', '1'))
    RANDOMIZE_CHALLENGES = _env_bool('RANDOMIZE_CHALLENGES', 'false')

    # Matching: one metric and one threshold per deployment.
    # 0.32 cosine distance keeps a genuine user below the line while a
    # sibling measured at ~0.346 is rejected.
    MATCH_METRIC = os.getenv('MATCH_METRIC', 'cosine_distance')
    MATCH_THRESHOLD = float(os.getenv('MATCH_THRESHOLD', '0.32'))

    # Detector input
    DETECT_WIDTH = int(os.getenv('DETECT_WIDTH', '640'))
    DETECT_HEIGHT = int(os.getenv('DETECT_HEIGHT', '480'))
    MEDIAPIPE_MODEL_PATH = os.getenv(
        'MEDIAPIPE_MODEL_PATH',
        str(Path.home() / '.mediapipe_models' / 'face_landmarker.task')
    )

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    @classmethod
    def validate(cls):
        """Raise ConfigurationError when settings contradict each other"""
        if not cls.BLINK_CLOSE_THRESHOLD < cls.BLINK_OPEN_THRESHOLD:
            raise ConfigurationError(
                f"BLINK_CLOSE_THRESHOLD ({cls.BLINK_CLOSE_THRESHOLD}) must be below "
                f"BLINK_OPEN_THRESHOLD ({cls.BLINK_OPEN_THRESHOLD})"
            )
        for name in ('TURN_HOLD_FRAMES', 'CAPTURE_STABLE_FRAMES',
                     'ENROLLMENT_SAMPLES', 'LIVENESS_ROUNDS', 'MIN_LANDMARK_POINTS'):
            if getattr(cls, name) < 1:
                raise ConfigurationError(f"{name} must be at least 1")
        if cls.MATCH_METRIC not in ('cosine_distance', 'cosine_similarity'):
            raise ConfigurationError(f"Unknown MATCH_METRIC: {cls.MATCH_METRIC}")


config = Config()
