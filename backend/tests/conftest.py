"""
Shared fixtures: synthetic MediaPipe-topology landmark frames
"""
import numpy as np
import pytest

from faceauth.models.data_models import FrameObservation, LandmarkFrame
from faceauth.services.geometry import LEFT_CHEEK, LEFT_EYE, NOSE_TIP, RIGHT_CHEEK, RIGHT_EYE

EYE_WIDTH = 30.0

# Nose offsets between the cheeks
NEUTRAL = 0.5
IMAGE_RIGHT = 0.85  # "turn left" on a mirrored front camera
IMAGE_LEFT = 0.15   # "turn right" on a mirrored front camera


def build_landmarks(ear=0.30, offset=NEUTRAL, n_points=468, sequence=0, frame_size=None):
    """
    Build a landmark frame whose eyes have aspect ratio ``ear`` and whose
    nose sits at ``offset`` between the cheeks.
    """
    points = np.full((n_points, 2), 200.0)

    height = ear * EYE_WIDTH
    for indices, cx in ((LEFT_EYE, 150.0), (RIGHT_EYE, 250.0)):
        cy = 150.0
        coords = [
            (cx - EYE_WIDTH / 2, cy),
            (cx - EYE_WIDTH / 6, cy - height / 2),
            (cx + EYE_WIDTH / 6, cy - height / 2),
            (cx + EYE_WIDTH / 2, cy),
            (cx + EYE_WIDTH / 6, cy + height / 2),
            (cx - EYE_WIDTH / 6, cy + height / 2),
        ]
        for idx, coord in zip(indices, coords):
            if idx < n_points:
                points[idx] = coord

    if RIGHT_CHEEK < n_points:
        points[LEFT_CHEEK] = (100.0, 220.0)
        points[RIGHT_CHEEK] = (300.0, 220.0)
        points[NOSE_TIP] = (100.0 + offset * 200.0, 210.0)

    return LandmarkFrame(points=points, sequence=sequence, frame_size=frame_size)


def build_observation(ear=0.30, offset=NEUTRAL, **kwargs):
    return FrameObservation(landmarks=build_landmarks(ear=ear, offset=offset, **kwargs))


@pytest.fixture(scope="session")
def make_frame():
    """Factory fixture for landmark frames"""
    return build_landmarks


@pytest.fixture(scope="session")
def make_observation():
    """Factory fixture for frame observations carrying landmarks"""
    return build_observation
