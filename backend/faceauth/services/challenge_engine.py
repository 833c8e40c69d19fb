"""
Challenge Engine: liveness challenge sequencing and the per-frame state machine
"""
import logging
import secrets
from dataclasses import replace
from typing import Iterable, Optional, Tuple

from ..config import config
from ..exceptions import ConfigurationError, InputContractViolation
from ..models.data_models import (
    CHALLENGE_INSTRUCTIONS,
    BlinkState,
    Challenge,
    ChallengeSession,
    ChallengeStatus,
    FaceLossPolicy,
    LandmarkFrame,
    TurnState,
)
from . import geometry

logger = logging.getLogger(__name__)

DEFAULT_SEQUENCE: Tuple[Challenge, ...] = (
    Challenge.BLINK,
    Challenge.TURN_LEFT,
    Challenge.TURN_RIGHT,
)

# Offsets inside [0.45, 0.55] count as facing forward
DEAD_ZONE_LOW = 0.45
DEAD_ZONE_HIGH = 0.55


class ChallengeEngine:
    """
    Issues run identifiers and challenge sequences.

    A sequence is chosen once when a session is created and is then stored
    in the session; it is never regenerated while frames are processed.
    """

    def generate_run_id(self) -> str:
        """
        Generate an unguessable identifier for one run.

        Returns:
            str: A 32-character hexadecimal token
        """
        return secrets.token_hex(16)

    def generate_sequence(self, randomize: Optional[bool] = None) -> Tuple[Challenge, ...]:
        """
        Pick the challenge order for a new session.

        Args:
            randomize: Shuffle the order with a CSPRNG. Defaults to
                       RANDOMIZE_CHALLENGES.

        Returns:
            Tuple of challenges, fixed for the lifetime of the session
        """
        if randomize is None:
            randomize = config.RANDOMIZE_CHALLENGES
        if not randomize:
            return DEFAULT_SEQUENCE
        return tuple(secrets.SystemRandom().sample(DEFAULT_SEQUENCE, len(DEFAULT_SEQUENCE)))

    def instruction_for(self, challenge: Challenge) -> str:
        return CHALLENGE_INSTRUCTIONS[challenge]


class ChallengeStateMachine:
    """
    Advances a ChallengeSession one landmark frame at a time.

    The machine itself only holds thresholds; all progress lives in the
    immutable ChallengeSession it is handed, so a session has exactly one
    writer: whoever holds the latest value.

    Blink uses two-threshold hysteresis: eyes must be seen open, then
    closed, then open again. Head turns must hold outside the dead zone for
    ``hold_frames`` consecutive evaluated frames.
    """

    def __init__(
        self,
        close_threshold: Optional[float] = None,
        open_threshold: Optional[float] = None,
        turn_threshold: Optional[float] = None,
        hold_frames: Optional[int] = None,
        face_loss_policy: Optional[FaceLossPolicy] = None,
        mirrored: Optional[bool] = None,
        min_face_width_ratio: Optional[float] = None,
        engine: Optional[ChallengeEngine] = None
    ):
        """
        Args:
            close_threshold: EAR below which eyes count as closed
            open_threshold: EAR above which eyes count as open
            turn_threshold: Margin beyond the dead zone that counts as turned
            hold_frames: Consecutive turned frames required
            face_loss_policy: Whether a face-loss frame resets a turn hold
            mirrored: Front camera preview is mirrored, so "turn left"
                      moves the nose towards the image right
            min_face_width_ratio: Faces narrower than this share of the
                      frame width are ignored as too far away (0 disables)
            engine: Source of run ids
        """
        self.close_threshold = config.BLINK_CLOSE_THRESHOLD if close_threshold is None else close_threshold
        self.open_threshold = config.BLINK_OPEN_THRESHOLD if open_threshold is None else open_threshold
        self.turn_threshold = config.TURN_THRESHOLD if turn_threshold is None else turn_threshold
        self.hold_frames = config.TURN_HOLD_FRAMES if hold_frames is None else hold_frames
        if face_loss_policy is None:
            face_loss_policy = FaceLossPolicy.RESET if config.TURN_RESET_ON_FACE_LOSS else FaceLossPolicy.HOLD
        self.face_loss_policy = face_loss_policy
        self.mirrored = config.CAMERA_MIRRORED if mirrored is None else mirrored
        self.min_face_width_ratio = (
            config.FACE_TOO_FAR_RATIO if min_face_width_ratio is None else min_face_width_ratio
        )
        self.engine = engine or ChallengeEngine()

        if not self.close_threshold < self.open_threshold:
            raise ConfigurationError(
                f"close threshold {self.close_threshold} must be below open threshold {self.open_threshold}"
            )
        if self.hold_frames < 1:
            raise ConfigurationError("hold_frames must be at least 1")

    def start(
        self,
        sequence: Optional[Iterable[Challenge]] = None,
        run_id: Optional[str] = None
    ) -> ChallengeSession:
        """
        Create a session at index 0 in INITIALIZING.

        Raises:
            InputContractViolation: Empty sequence or unknown challenge
        """
        if sequence is None:
            frozen = self.engine.generate_sequence()
        else:
            frozen = tuple(sequence)
        if not frozen:
            raise InputContractViolation("Challenge sequence must not be empty")
        for item in frozen:
            if not isinstance(item, Challenge):
                raise InputContractViolation(f"Not a challenge: {item!r}")

        session = ChallengeSession(
            run_id=run_id or self.engine.generate_run_id(),
            sequence=frozen
        )
        logger.info(f"Liveness run {session.run_id} started: {[c.value for c in frozen]}")
        return session

    def activate(self, session: ChallengeSession) -> ChallengeSession:
        """INITIALIZING -> AWAITING_CHALLENGE once the detector is producing frames"""
        if session.status is not ChallengeStatus.INITIALIZING:
            return session
        return replace(session, status=ChallengeStatus.AWAITING_CHALLENGE)

    def current_challenge(self, session: ChallengeSession) -> Optional[Challenge]:
        return session.current_challenge

    def fail(self, session: ChallengeSession, reason: str) -> ChallengeSession:
        """Move a non-terminal session to FAILED, recording why"""
        if session.is_terminal:
            return session
        logger.error(f"Liveness run {session.run_id} failed: {reason}")
        return replace(session, status=ChallengeStatus.FAILED, error=reason)

    def advance(self, session: ChallengeSession, frame: Optional[LandmarkFrame]) -> ChallengeSession:
        """
        Evaluate one frame against the active challenge.

        Args:
            session: Current session value
            frame: Landmarks for this frame, or None when no usable face

        Returns:
            ChallengeSession: The next session value (the same object when
            nothing changed). Terminal sessions are returned untouched.
        """
        if session.is_terminal:
            logger.debug(f"Run {session.run_id} is {session.status.value}; frame ignored")
            return session

        session = self.activate(session)
        challenge = session.current_challenge
        if challenge is None:
            return session

        if frame is None or geometry.is_face_too_far(frame, self.min_face_width_ratio):
            return self._on_face_lost(session)

        if challenge is Challenge.BLINK:
            return self._check_blink(session, frame)
        return self._check_turn(session, frame, challenge)

    def _on_face_lost(self, session: ChallengeSession) -> ChallengeSession:
        # Blink progress always survives; turn holds only under RESET
        if (self.face_loss_policy is FaceLossPolicy.RESET
                and session.current_challenge is not Challenge.BLINK
                and session.turn.held_frames):
            return replace(session, turn=TurnState())
        return session

    def _check_blink(self, session: ChallengeSession, frame: LandmarkFrame) -> ChallengeSession:
        ear = geometry.blink_signal(frame)
        if ear is None:
            return session

        blink = session.blink
        if ear > self.open_threshold:
            if blink.eyes_closed:
                logger.info(f"Run {session.run_id}: blink confirmed (EAR={ear:.3f})")
                return self._complete_current(session)
            if not blink.seen_open:
                blink = replace(blink, seen_open=True)
        elif ear < self.close_threshold and blink.seen_open and not blink.eyes_closed:
            blink = replace(blink, eyes_closed=True)

        if blink == session.blink:
            return session
        return replace(session, blink=blink)

    def _turned_toward(self, offset: float, challenge: Challenge) -> bool:
        toward_image_left = offset < DEAD_ZONE_LOW - self.turn_threshold
        toward_image_right = offset > DEAD_ZONE_HIGH + self.turn_threshold
        wants_image_right = (challenge is Challenge.TURN_LEFT) == self.mirrored
        return toward_image_right if wants_image_right else toward_image_left

    def _check_turn(
        self,
        session: ChallengeSession,
        frame: LandmarkFrame,
        challenge: Challenge
    ) -> ChallengeSession:
        offset = geometry.turn_signal(frame)
        if offset is None:
            return self._on_face_lost(session)

        if not self._turned_toward(offset, challenge):
            if session.turn.held_frames == 0:
                return session
            return replace(session, turn=TurnState())

        held = session.turn.held_frames + 1
        if held >= self.hold_frames:
            logger.info(f"Run {session.run_id}: {challenge.value} held for {held} frames")
            return self._complete_current(session)
        return replace(session, turn=TurnState(held_frames=held))

    def _complete_current(self, session: ChallengeSession) -> ChallengeSession:
        index = session.index + 1
        status = ChallengeStatus.PASSED if index >= len(session.sequence) else session.status
        if status is ChallengeStatus.PASSED:
            logger.info(f"Liveness run {session.run_id} passed")
        return replace(
            session,
            index=index,
            status=status,
            blink=BlinkState(),
            turn=TurnState()
        )
