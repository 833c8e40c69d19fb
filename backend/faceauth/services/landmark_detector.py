"""
MediaPipe FaceLandmarker adapter producing FrameObservations
"""
import logging
import os
from typing import Optional, Tuple

import cv2
import numpy as np

from ..config import config
from ..exceptions import UpstreamFailure
from ..models.data_models import FrameObservation
from .geometry import face_bounds, validate_landmarks

logger = logging.getLogger(__name__)


def _load_mediapipe():
    # Imported on first use so the core runs without the mediapipe extra
    import mediapipe as mp
    return mp


class MediaPipeLandmarkDetector:
    """
    Runs MediaPipe FaceLandmarker on BGR frames.

    Landmarks come back normalized to [0, 1]; they are scaled to pixel
    coordinates of the analysed (resized) frame so eye aspect ratios and
    head-turn offsets are computed on square pixels.
    """

    def __init__(self, model_path: Optional[str] = None,
                 target_size: Optional[Tuple[int, int]] = None):
        """
        The FaceLandmarker is created lazily on first detection so the model
        file is not needed to construct the adapter.

        Configuration for FaceLandmarker (when initialized):
        - num_faces: 1 (the first detection is the subject)
        - min_face_detection_confidence / min_face_presence_confidence: 0.3
        - blendshapes and transformation matrices disabled

        Args:
            model_path: Path to face_landmarker.task. Defaults to
                        MEDIAPIPE_MODEL_PATH.
            target_size: (width, height) frames are resized to before
                         detection. Defaults to DETECT_WIDTH x DETECT_HEIGHT.
        """
        self.model_path = os.path.expanduser(model_path or config.MEDIAPIPE_MODEL_PATH)
        self.target_size = target_size or (config.DETECT_WIDTH, config.DETECT_HEIGHT)
        self._face_landmarker = None
        self._sequence = 0

    @property
    def face_landmarker(self):
        """
        Lazy initialization of MediaPipe FaceLandmarker.

        Returns None if the model cannot be loaded.
        """
        if self._face_landmarker is None:
            if not os.path.exists(self.model_path):
                logger.warning(
                    f"MediaPipe model not found at {self.model_path}. "
                    "Download it using: python download_mediapipe_model.py"
                )
                return None

            try:
                mp = _load_mediapipe()
                base_options = mp.tasks.BaseOptions(model_asset_path=self.model_path)
                options = mp.tasks.vision.FaceLandmarkerOptions(
                    base_options=base_options,
                    running_mode=mp.tasks.vision.RunningMode.IMAGE,
                    num_faces=1,
                    min_face_detection_confidence=0.3,
                    min_face_presence_confidence=0.3,
                    output_face_blendshapes=False,
                    output_facial_transformation_matrixes=False
                )
                self._face_landmarker = mp.tasks.vision.FaceLandmarker.create_from_options(options)
            except Exception as e:
                logger.error(f"Failed to initialize MediaPipe FaceLandmarker: {e}")
                return None

        return self._face_landmarker

    def preprocess_frame(self, frame: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Resize to the detection size and convert BGR to RGB.

        Returns:
            (resized BGR frame, RGB frame for MediaPipe)
        """
        resized = cv2.resize(frame, self.target_size, interpolation=cv2.INTER_LINEAR)
        rgb_frame = cv2.cvtColor(resized, cv2.COLOR_BGR2RGB)
        return resized, rgb_frame

    def detect(self, frame: np.ndarray) -> FrameObservation:
        """
        Detect the primary face in one BGR frame.

        Args:
            frame: Video frame in BGR format (OpenCV default)

        Returns:
            FrameObservation with landmarks and face box in the coordinates
            of the resized frame, or without them when no usable face

        Raises:
            UpstreamFailure: Invalid frame, model unavailable, or the
                landmarker raised
        """
        if frame is None or frame.size == 0:
            raise UpstreamFailure("Empty frame from camera")

        self._sequence += 1
        resized, rgb_frame = self.preprocess_frame(frame)

        landmarker = self.face_landmarker
        if landmarker is None:
            raise UpstreamFailure(f"Face landmarker unavailable (model path: {self.model_path})")

        mp = _load_mediapipe()
        mp_image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb_frame)

        try:
            detection_result = landmarker.detect(mp_image)
        except Exception as e:
            raise UpstreamFailure(f"FaceLandmarker.detect failed: {e}") from e

        if not detection_result.face_landmarks:
            return FrameObservation(image=resized, sequence=self._sequence)

        width, height = self.target_size
        # First face only
        points = np.array(
            [[lm.x * width, lm.y * height] for lm in detection_result.face_landmarks[0]]
        )
        landmarks = validate_landmarks(points, sequence=self._sequence, frame_size=(width, height))
        if landmarks is None:
            logger.debug(f"Frame {self._sequence}: {len(points)} landmarks, not usable")
            return FrameObservation(image=resized, sequence=self._sequence)

        return FrameObservation(
            landmarks=landmarks,
            box=face_bounds(landmarks.points),
            image=resized,
            sequence=self._sequence
        )

    def close(self) -> None:
        if getattr(self, '_face_landmarker', None) is not None:
            self._face_landmarker.close()
            self._face_landmarker = None

    def __del__(self):
        """Clean up MediaPipe resources"""
        self.close()
