"""
Capture gate: only sample a face once the subject has held still
"""
import logging
from typing import Optional, Tuple

from ..config import config
from ..exceptions import ConfigurationError
from ..models.data_models import FaceBox
from .geometry import clamp_face_box

logger = logging.getLogger(__name__)


class CaptureGate:
    """
    Counts consecutive frames with a face present.

    The counter resets the instant a frame has no face. When it reaches
    ``required_frames`` the gate fires once, hands back the face box for
    sampling, and starts counting again for the next sample.
    """

    def __init__(self, required_frames: Optional[int] = None):
        self.required_frames = config.CAPTURE_STABLE_FRAMES if required_frames is None else required_frames
        if self.required_frames < 1:
            raise ConfigurationError("required_frames must be at least 1")
        self._stable_frames = 0

    @property
    def stable_frames(self) -> int:
        return self._stable_frames

    def reset(self) -> None:
        self._stable_frames = 0

    def observe(
        self,
        box: Optional[FaceBox],
        frame_size: Optional[Tuple[int, int]] = None
    ) -> Optional[FaceBox]:
        """
        Record one frame.

        Args:
            box: Face box for this frame, or None when no face was found
            frame_size: (width, height) used to clamp the box

        Returns:
            The clamped face box on the frame the gate fires, else None

        Raises:
            InputContractViolation: The box has non-finite coordinates or
                lies entirely outside the frame
        """
        if box is None:
            if self._stable_frames:
                logger.debug(f"Face lost after {self._stable_frames} stable frames")
            self._stable_frames = 0
            return None

        box = clamp_face_box(box, frame_size)
        self._stable_frames += 1

        if self._stable_frames < self.required_frames:
            return None

        logger.info(f"Capture gate fired after {self._stable_frames} stable frames")
        self._stable_frames = 0
        return box
