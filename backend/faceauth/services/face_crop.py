"""
Crop and normalize a face for embedding models
"""
import cv2
import numpy as np

from ..models.data_models import FaceBox
from .geometry import clamp_face_box

# FaceNet-style input
DEFAULT_CROP_SIZE = 160


def crop_face(image: np.ndarray, box: FaceBox, size: int = DEFAULT_CROP_SIZE,
              to_rgb: bool = True) -> np.ndarray:
    """
    Cut the face out of a BGR frame and scale it for an embedding model.

    The box is clamped to the image first, so detector boxes that spill
    past the frame edge are safe to pass.

    Args:
        image: BGR frame, shape (H, W, 3)
        box: Face box in the frame's pixel coordinates
        size: Output edge length in pixels
        to_rgb: Convert BGR to RGB before normalizing

    Returns:
        np.ndarray: float32 array of shape (size, size, 3) with values in [-1, 1]

    Raises:
        InputContractViolation: The box is non-finite or outside the image
    """
    height, width = image.shape[:2]
    clamped = clamp_face_box(box, (width, height))

    x0 = int(np.floor(clamped.x))
    y0 = int(np.floor(clamped.y))
    x1 = max(x0 + 1, int(np.ceil(clamped.x_max)))
    y1 = max(y0 + 1, int(np.ceil(clamped.y_max)))
    face = image[y0:min(y1, height), x0:min(x1, width)]

    resized = cv2.resize(face, (size, size), interpolation=cv2.INTER_LINEAR)
    if to_rgb:
        resized = cv2.cvtColor(resized, cv2.COLOR_BGR2RGB)

    return resized.astype(np.float32) / 127.5 - 1.0
