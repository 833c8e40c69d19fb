"""
Data models for liveness challenges, biometric capture and matching
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np


class Challenge(Enum):
    """Liveness actions, in their canonical order"""
    BLINK = "blink"
    TURN_LEFT = "turn_left"
    TURN_RIGHT = "turn_right"


CHALLENGE_INSTRUCTIONS = {
    Challenge.BLINK: "Blink your eyes",
    Challenge.TURN_LEFT: "Turn your head to the left",
    Challenge.TURN_RIGHT: "Turn your head to the right",
}


class ChallengeStatus(Enum):
    INITIALIZING = "initializing"
    AWAITING_CHALLENGE = "awaiting_challenge"
    PASSED = "passed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ChallengeStatus.PASSED, ChallengeStatus.FAILED)


class FaceLossPolicy(Enum):
    """What a frame without a usable face does to an in-progress turn hold"""
    HOLD = "hold"
    RESET = "reset"


class MatchMetric(Enum):
    COSINE_DISTANCE = "cosine_distance"
    COSINE_SIMILARITY = "cosine_similarity"


class SessionMode(Enum):
    ENROLL = "enroll"
    VERIFY = "verify"


class SessionPhase(Enum):
    LIVENESS = "liveness"
    CAPTURE = "capture"
    AWAITING_EMBEDDING = "awaiting_embedding"
    DONE = "done"
    FAILED = "failed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionPhase.DONE, SessionPhase.FAILED, SessionPhase.ABORTED)


class SessionOutcome(Enum):
    ENROLLED = "enrolled"
    MATCH = "match"
    NO_MATCH = "no_match"
    LIVENESS_FAILED = "liveness_failed"
    CAPTURE_FAILED = "capture_failed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class FaceBox:
    """Axis-aligned face rectangle in frame pixel coordinates"""
    x: float
    y: float
    width: float
    height: float

    @property
    def x_max(self) -> float:
        return self.x + self.width

    @property
    def y_max(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    def is_finite(self) -> bool:
        return bool(np.all(np.isfinite([self.x, self.y, self.width, self.height])))


@dataclass(frozen=True, eq=False)
class LandmarkFrame:
    """
    Facial landmarks for one video frame.

    Attributes:
        points: Array of shape (N, 2) holding x, y per landmark
        sequence: Frame sequence number from the detector
        frame_size: (width, height) of the analysed frame, when known
    """
    points: np.ndarray
    sequence: int = 0
    frame_size: Optional[Tuple[int, int]] = None

    def __len__(self) -> int:
        return int(self.points.shape[0])


@dataclass(frozen=True, eq=False)
class FrameObservation:
    """Everything the detector reported for one frame"""
    landmarks: Optional[LandmarkFrame] = None
    box: Optional[FaceBox] = None
    image: Optional[np.ndarray] = None
    sequence: int = 0

    @property
    def has_face(self) -> bool:
        return self.landmarks is not None or self.box is not None

    @property
    def frame_size(self) -> Optional[Tuple[int, int]]:
        """(width, height) taken from the image, else from the landmarks"""
        if self.image is not None:
            return (int(self.image.shape[1]), int(self.image.shape[0]))
        if self.landmarks is not None:
            return self.landmarks.frame_size
        return None


@dataclass(frozen=True)
class BlinkState:
    seen_open: bool = False
    eyes_closed: bool = False


@dataclass(frozen=True)
class TurnState:
    held_frames: int = 0


@dataclass(frozen=True)
class ChallengeSession:
    """
    Progress of one liveness run through a fixed challenge sequence.

    Values are immutable; the state machine returns a new session for every
    transition. ``sequence`` is captured at creation and never regenerated.
    """
    run_id: str
    sequence: Tuple[Challenge, ...]
    index: int = 0
    status: ChallengeStatus = ChallengeStatus.INITIALIZING
    blink: BlinkState = BlinkState()
    turn: TurnState = TurnState()
    error: Optional[str] = None

    @property
    def current_challenge(self) -> Optional[Challenge]:
        if self.status.is_terminal or self.index >= len(self.sequence):
            return None
        return self.sequence[self.index]

    @property
    def completed(self) -> int:
        """Number of challenges completed so far"""
        return self.index

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


@dataclass(frozen=True, eq=False)
class StoredTemplate:
    """Canonical normalized embedding for one enrolled identity"""
    embedding: np.ndarray
    sample_count: int
    created_at: float
    run_id: Optional[str] = None

    @property
    def dimension(self) -> int:
        return int(self.embedding.shape[0])

    def to_list(self) -> list:
        """Plain list of floats for the caller's persistence layer"""
        return [float(v) for v in self.embedding]


@dataclass(frozen=True, eq=False)
class CaptureRequest:
    """
    Issued when the capture gate fires: the embedding model should describe
    ``box`` in ``observation``. ``token`` must accompany the answer.
    """
    token: str
    box: FaceBox
    observation: FrameObservation


@dataclass(frozen=True)
class MatchResult:
    distance: float
    similarity: float
    is_match: bool
    threshold: float
    metric: MatchMetric


@dataclass(frozen=True, eq=False)
class SessionResult:
    outcome: SessionOutcome
    run_id: str
    match: Optional[MatchResult] = None
    template: Optional[StoredTemplate] = None
    error: Optional[str] = None
