"""
Unit and property tests for CaptureGate
"""
import pytest
from hypothesis import given, settings, strategies as st

from faceauth.exceptions import ConfigurationError, InputContractViolation
from faceauth.models.data_models import FaceBox
from faceauth.services.capture_gate import CaptureGate

BOX = FaceBox(x=100, y=80, width=200, height=240)
FRAME = (640, 480)


class TestCaptureGate:
    """Test suite for CaptureGate"""

    def setup_method(self):
        self.gate = CaptureGate(required_frames=90)

    def feed(self, pattern):
        """Feed True (face) / False (no face) frames, return indices that fired"""
        fired = []
        for i, present in enumerate(pattern):
            if self.gate.observe(BOX if present else None, FRAME) is not None:
                fired.append(i)
        return fired

    def test_fires_on_the_ninetieth_stable_frame(self):
        """Test that the gate fires on the ninetieth consecutive face frame"""
        assert self.feed([True] * 90) == [89]

    def test_single_gap_restarts_count(self):
        """89 present, 1 absent, 90 present: exactly one fire, on the last frame"""
        pattern = [True] * 89 + [False] + [True] * 90
        assert self.feed(pattern) == [179]

    def test_fires_once_then_counts_again(self):
        """Test that the counter restarts after each fire"""
        assert self.feed([True] * 180) == [89, 179]
        assert self.gate.stable_frames == 0

    def test_reset_clears_progress(self):
        """Test that reset discards partial stability progress"""
        self.feed([True] * 50)
        self.gate.reset()
        assert self.gate.stable_frames == 0
        assert self.feed([True] * 89) == []

    def test_returns_clamped_box(self):
        """Test that the fired box is clamped into the frame"""
        gate = CaptureGate(required_frames=1)
        fired = gate.observe(FaceBox(x=-10, y=400, width=100, height=200), FRAME)
        assert fired == FaceBox(x=0.0, y=400.0, width=90.0, height=80.0)

    def test_non_finite_box_raises(self):
        """Test that a non-finite face box is rejected"""
        with pytest.raises(InputContractViolation):
            self.gate.observe(FaceBox(x=float('inf'), y=0, width=10, height=10), FRAME)

    def test_required_frames_must_be_positive(self):
        """Test that a zero frame requirement is a configuration error"""
        with pytest.raises(ConfigurationError):
            CaptureGate(required_frames=0)

    @given(pattern=st.lists(st.booleans(), max_size=300))
    @settings(max_examples=100)
    def test_fires_only_after_full_stable_run(self, pattern):
        """
        Property: the gate fires exactly when a run of present frames since
        the last gap or fire reaches the required count
        """
        gate = CaptureGate(required_frames=90)
        run = 0
        for present in pattern:
            fired = gate.observe(BOX if present else None, FRAME)
            run = run + 1 if present else 0
            if run == 90:
                assert fired is not None
                run = 0
            else:
                assert fired is None
