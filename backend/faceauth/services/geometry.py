"""
Geometry signals computed from facial landmarks.

Pure functions only: eye aspect ratio for blink detection, nose position
between the cheeks for head turns, and the boundary checks that decide
whether detector output is usable at all.
"""
import math
from typing import Optional, Sequence, Tuple

import numpy as np

from ..config import config
from ..exceptions import InputContractViolation
from ..models.data_models import FaceBox, LandmarkFrame

# MediaPipe FaceMesh topology (468 points)
# Each eye: outer corner, two upper lid points, inner corner, two lower lid points
LEFT_EYE = (33, 160, 158, 133, 153, 144)
RIGHT_EYE = (263, 387, 385, 362, 380, 373)
NOSE_TIP = 1
LEFT_CHEEK = 234
RIGHT_CHEEK = 454

# Horizontal eye width below this is treated as a degenerate eye
_EPSILON = 1e-9


def _distance(a: np.ndarray, b: np.ndarray) -> float:
    return float(math.hypot(a[0] - b[0], a[1] - b[1]))


def eye_aspect_ratio(eye: Sequence) -> float:
    """
    Compute the eye aspect ratio (EAR) for one eye.

    EAR = (|p1 - p5| + |p2 - p4|) / (2 * |p0 - p3|)

    Lower values mean a more closed eye. Typical open eyes sit around
    0.25-0.35 and drop towards 0.1 during a blink.

    Args:
        eye: Six (x, y) points ordered outer corner, upper lid, upper lid,
             inner corner, lower lid, lower lid

    Returns:
        float: The ratio, or NaN when the eye has no horizontal extent.
        Callers must discard NaN rather than treat it as a reading.
    """
    pts = np.asarray(eye, dtype=np.float64)
    if pts.ndim != 2 or pts.shape[0] != 6 or pts.shape[1] < 2:
        raise InputContractViolation(f"eye_aspect_ratio needs 6 points, got shape {pts.shape}")

    vertical_1 = _distance(pts[1], pts[5])
    vertical_2 = _distance(pts[2], pts[4])
    horizontal = _distance(pts[0], pts[3])

    if horizontal < _EPSILON:
        return float('nan')
    return (vertical_1 + vertical_2) / (2.0 * horizontal)


def head_turn_offset(nose: Sequence, left_cheek: Sequence, right_cheek: Sequence) -> Optional[float]:
    """
    Horizontal position of the nose between the cheeks.

    Returns (nose.x - left.x) / (right.x - left.x): about 0.5 when facing
    the camera, towards 0 or 1 when the head turns. None when the cheek
    width is zero or negative, or any coordinate is not finite.
    """
    nose_x, left_x, right_x = float(nose[0]), float(left_cheek[0]), float(right_cheek[0])
    if not all(math.isfinite(v) for v in (nose_x, left_x, right_x)):
        return None

    width = right_x - left_x
    if width <= 0:
        return None
    return (nose_x - left_x) / width


def _has_indices(frame: LandmarkFrame, indices: Sequence[int]) -> bool:
    return len(frame) > max(indices)


def blink_signal(frame: LandmarkFrame) -> Optional[float]:
    """Mean EAR of both eyes, or None when the frame carries no valid signal"""
    if not _has_indices(frame, LEFT_EYE + RIGHT_EYE):
        return None

    left = frame.points[list(LEFT_EYE)]
    right = frame.points[list(RIGHT_EYE)]
    ear = (eye_aspect_ratio(left) + eye_aspect_ratio(right)) / 2.0

    if not math.isfinite(ear) or ear <= 0:
        return None
    return ear


def turn_signal(frame: LandmarkFrame) -> Optional[float]:
    """Head turn offset for the frame, or None"""
    if not _has_indices(frame, (NOSE_TIP, LEFT_CHEEK, RIGHT_CHEEK)):
        return None
    points = frame.points
    return head_turn_offset(points[NOSE_TIP], points[LEFT_CHEEK], points[RIGHT_CHEEK])


def face_bounds(points: np.ndarray) -> Optional[FaceBox]:
    """Bounding box of all finite landmark points"""
    pts = np.asarray(points, dtype=np.float64)
    if pts.ndim != 2 or pts.shape[0] == 0:
        return None

    finite = pts[np.all(np.isfinite(pts[:, :2]), axis=1)]
    if finite.shape[0] == 0:
        return None

    min_x, min_y = finite[:, 0].min(), finite[:, 1].min()
    max_x, max_y = finite[:, 0].max(), finite[:, 1].max()
    return FaceBox(x=float(min_x), y=float(min_y),
                   width=float(max_x - min_x), height=float(max_y - min_y))


def is_face_too_far(frame: LandmarkFrame, min_width_ratio: Optional[float] = None) -> bool:
    """
    True when the face spans less than ``min_width_ratio`` of the frame width.

    Frames without a known size are never considered too far.
    """
    ratio = config.FACE_TOO_FAR_RATIO if min_width_ratio is None else min_width_ratio
    if frame.frame_size is None or ratio <= 0:
        return False

    bounds = face_bounds(frame.points)
    if bounds is None:
        return True
    return bounds.width < frame.frame_size[0] * ratio


def validate_landmarks(
    points,
    sequence: int = 0,
    frame_size: Optional[Tuple[int, int]] = None,
    min_points: Optional[int] = None
) -> Optional[LandmarkFrame]:
    """
    Turn raw detector output into a usable LandmarkFrame.

    Short point sets, malformed arrays and non-finite coordinates all mean
    "no usable frame" and return None. A z column, if present, is dropped.

    Args:
        points: Sequence of (x, y[, z]) coordinates, or None when no face
        sequence: Frame sequence number
        frame_size: (width, height) of the analysed frame
        min_points: Minimum landmark count (defaults to MIN_LANDMARK_POINTS)

    Returns:
        LandmarkFrame or None
    """
    if points is None:
        return None

    required = config.MIN_LANDMARK_POINTS if min_points is None else min_points
    try:
        pts = np.asarray(points, dtype=np.float64)
    except (TypeError, ValueError):
        return None

    if pts.ndim != 2 or pts.shape[1] < 2 or pts.shape[0] < required:
        return None

    pts = pts[:, :2]
    if not np.all(np.isfinite(pts)):
        return None

    return LandmarkFrame(points=pts, sequence=sequence, frame_size=frame_size)


def clamp_face_box(box: FaceBox, frame_size: Optional[Tuple[int, int]] = None) -> FaceBox:
    """
    Clamp a detector face box into the frame.

    Args:
        box: Box as reported upstream
        frame_size: (width, height); without it only the origin is clamped
                    to be non-negative

    Returns:
        FaceBox: The clamped box

    Raises:
        InputContractViolation: Non-finite coordinates, or nothing of the
            box is left inside the frame
    """
    if not box.is_finite():
        raise InputContractViolation(f"Face box has non-finite coordinates: {box}")

    x = max(0.0, box.x)
    y = max(0.0, box.y)
    x_max = box.x_max
    y_max = box.y_max

    if frame_size is not None:
        frame_w, frame_h = frame_size
        x = min(x, float(frame_w))
        y = min(y, float(frame_h))
        x_max = min(x_max, float(frame_w))
        y_max = min(y_max, float(frame_h))

    width = x_max - x
    height = y_max - y
    if width <= 0 or height <= 0:
        raise InputContractViolation(f"Face box is empty after clamping: {box}")

    return FaceBox(x=x, y=y, width=width, height=height)
