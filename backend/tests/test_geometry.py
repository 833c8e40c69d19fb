"""
Unit tests for landmark geometry signals
"""
import math

import numpy as np
import pytest
from hypothesis import given, settings, strategies as st

from faceauth.exceptions import InputContractViolation
from faceauth.models.data_models import FaceBox, LandmarkFrame
from faceauth.services.geometry import (
    blink_signal,
    clamp_face_box,
    eye_aspect_ratio,
    face_bounds,
    head_turn_offset,
    is_face_too_far,
    turn_signal,
    validate_landmarks,
)


class TestEyeAspectRatio:
    """Test suite for eye_aspect_ratio"""

    def test_known_ratio(self):
        """Vertical gaps of 6 over a width of 30 give 0.2"""
        eye = [(0, 0), (10, -3), (20, -3), (30, 0), (20, 3), (10, 3)]
        assert eye_aspect_ratio(eye) == pytest.approx(0.2)

    def test_zero_width_eye_is_nan(self):
        """Test that an eye with no width gives NaN"""
        eye = [(5, 0), (5, -3), (5, -3), (5, 0), (5, 3), (5, 3)]
        assert math.isnan(eye_aspect_ratio(eye))

    def test_wrong_point_count_raises(self):
        """Test that anything but six eye points is rejected"""
        with pytest.raises(InputContractViolation):
            eye_aspect_ratio([(0, 0), (1, 1), (2, 2)])

    @given(ear=st.floats(min_value=0.01, max_value=1.0))
    @settings(max_examples=50)
    def test_synthetic_frames_report_requested_ear(self, make_frame, ear):
        """
        Property: frames built for an EAR read back that EAR
        """
        assert blink_signal(make_frame(ear=ear)) == pytest.approx(ear, rel=1e-6)


class TestHeadTurnOffset:
    """Test suite for head_turn_offset"""

    def test_centered_nose(self):
        """Test that a centered nose gives offset 0.5"""
        assert head_turn_offset((200, 0), (100, 0), (300, 0)) == pytest.approx(0.5)

    def test_nose_towards_right_cheek(self):
        """Test that a nose near the right cheek gives a high offset"""
        assert head_turn_offset((280, 0), (100, 0), (300, 0)) == pytest.approx(0.9)

    def test_zero_width_is_none(self):
        """Test that zero cheek width gives no offset"""
        assert head_turn_offset((200, 0), (100, 0), (100, 0)) is None

    def test_inverted_cheeks_is_none(self):
        """Test that inverted cheeks give no offset"""
        assert head_turn_offset((200, 0), (300, 0), (100, 0)) is None

    def test_non_finite_is_none(self):
        """Test that non-finite coordinates give no offset"""
        assert head_turn_offset((float('nan'), 0), (100, 0), (300, 0)) is None
        assert head_turn_offset((200, 0), (100, 0), (float('inf'), 0)) is None

    def test_turn_signal_from_frame(self, make_frame):
        """Test that turn_signal reads the nose and cheek landmarks"""
        assert turn_signal(make_frame(offset=0.15)) == pytest.approx(0.15)


class TestBlinkSignal:
    """Test suite for blink_signal"""

    def test_short_frame_has_no_signal(self, make_frame):
        """Frames that do not reach the eye indices carry no reading"""
        frame = LandmarkFrame(points=np.zeros((100, 2)))
        assert blink_signal(frame) is None

    def test_closed_eye_with_zero_height_has_no_signal(self, make_frame):
        """EAR of exactly 0 is not a usable reading"""
        assert blink_signal(make_frame(ear=0.0)) is None

    def test_degenerate_eye_has_no_signal(self, make_frame):
        """Test that a collapsed eye gives no blink reading"""
        frame = make_frame()
        points = frame.points.copy()
        points[[33, 133]] = (150.0, 150.0)
        assert blink_signal(LandmarkFrame(points=points)) is None


class TestValidateLandmarks:
    """Test suite for validate_landmarks"""

    def test_none_means_no_face(self):
        """Test that missing detector output means no frame"""
        assert validate_landmarks(None) is None

    def test_short_point_set_rejected(self):
        """Test that fewer than the minimum landmarks are rejected"""
        assert validate_landmarks(np.zeros((379, 2)), min_points=380) is None

    def test_minimum_point_set_accepted(self):
        """Test that exactly the minimum landmark count is accepted"""
        frame = validate_landmarks(np.zeros((380, 2)), sequence=7, min_points=380)
        assert frame is not None
        assert len(frame) == 380
        assert frame.sequence == 7

    def test_z_column_dropped(self):
        """Test that a z column is dropped"""
        frame = validate_landmarks(np.ones((468, 3)), frame_size=(640, 480), min_points=380)
        assert frame.points.shape == (468, 2)
        assert frame.frame_size == (640, 480)

    def test_non_finite_rejected(self):
        """Test that non-finite landmarks are rejected"""
        points = np.zeros((468, 2))
        points[10, 0] = float('nan')
        assert validate_landmarks(points, min_points=380) is None

    def test_malformed_input_rejected(self):
        """Test that malformed arrays are rejected"""
        assert validate_landmarks([1, 2, 3], min_points=1) is None
        assert validate_landmarks([[1, 2], [3]], min_points=1) is None


class TestFaceBounds:
    """Test suite for face_bounds and is_face_too_far"""

    def test_bounds_of_points(self):
        """Test that the bounds enclose every point"""
        box = face_bounds(np.array([[10, 20], [110, 70], [50, 40]]))
        assert box == FaceBox(x=10.0, y=20.0, width=100.0, height=50.0)

    def test_non_finite_points_skipped(self):
        """Test that non-finite points are left out of the bounds"""
        box = face_bounds(np.array([[10, 20], [float('nan'), 500], [30, 40]]))
        assert box == FaceBox(x=10.0, y=20.0, width=20.0, height=20.0)

    def test_empty_points(self):
        """Test that no points give no bounds"""
        assert face_bounds(np.zeros((0, 2))) is None

    def test_unknown_frame_size_never_too_far(self, make_frame):
        """Test that frames of unknown size are never too far"""
        assert is_face_too_far(make_frame(), 0.28) is False

    def test_small_face_too_far(self, make_frame):
        """Synthetic faces are 200 px wide"""
        assert is_face_too_far(make_frame(frame_size=(1000, 800)), 0.28) is True
        assert is_face_too_far(make_frame(frame_size=(640, 480)), 0.28) is False

    def test_zero_ratio_disables_check(self, make_frame):
        """Test that a zero ratio disables the distance check"""
        assert is_face_too_far(make_frame(frame_size=(5000, 800)), 0.0) is False


class TestClampFaceBox:
    """Test suite for clamp_face_box"""

    def test_box_inside_frame_unchanged(self):
        """Test that a box inside the frame is unchanged"""
        box = FaceBox(x=10, y=20, width=100, height=120)
        assert clamp_face_box(box, (640, 480)) == box

    def test_negative_origin_clamped(self):
        """Test that a negative origin is clamped to zero"""
        clamped = clamp_face_box(FaceBox(x=-20, y=-10, width=100, height=100), (640, 480))
        assert clamped == FaceBox(x=0.0, y=0.0, width=80.0, height=90.0)

    def test_overflow_clamped(self):
        """Test that a box past the frame edge is clamped"""
        clamped = clamp_face_box(FaceBox(x=600, y=400, width=100, height=100), (640, 480))
        assert clamped.x_max == 640
        assert clamped.y_max == 480

    def test_without_frame_size_only_origin_clamped(self):
        """Test that without a frame size only the origin is clamped"""
        clamped = clamp_face_box(FaceBox(x=-5, y=0, width=2000, height=10))
        assert clamped == FaceBox(x=0.0, y=0.0, width=1995.0, height=10.0)

    def test_non_finite_raises(self):
        """Test that a non-finite box is rejected"""
        with pytest.raises(InputContractViolation):
            clamp_face_box(FaceBox(x=float('nan'), y=0, width=10, height=10), (640, 480))

    def test_box_outside_frame_raises(self):
        """Test that a box outside the frame is rejected"""
        with pytest.raises(InputContractViolation):
            clamp_face_box(FaceBox(x=700, y=0, width=50, height=50), (640, 480))

    @given(
        x=st.floats(min_value=-1000, max_value=1000),
        y=st.floats(min_value=-1000, max_value=1000),
        w=st.floats(min_value=1, max_value=1000),
        h=st.floats(min_value=1, max_value=1000)
    )
    @settings(max_examples=100)
    def test_clamped_box_stays_inside_frame(self, x, y, w, h):
        """
        Property: whatever survives clamping lies within the frame
        """
        try:
            clamped = clamp_face_box(FaceBox(x=x, y=y, width=w, height=h), (640, 480))
        except InputContractViolation:
            return
        assert 0 <= clamped.x < clamped.x_max <= 640 + 1e-9
        assert 0 <= clamped.y < clamped.y_max <= 480 + 1e-9
