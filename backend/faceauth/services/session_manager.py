"""
Session orchestration: liveness, capture, then enrollment or verification.

An AuthSession is driven by one sequential loop: one frame in, at most one
transition out, before the next frame is accepted. ``run_session`` is that
loop for asyncio callers; it awaits the detector and the embedding model and
never processes two frames at once.
"""
import asyncio
import logging
from typing import AsyncIterable, Awaitable, Callable, Iterable, Optional, Set, Union

from ..config import config
from ..exceptions import (
    FaceAuthError,
    InputContractViolation,
    SessionClosedError,
    UpstreamFailure,
)
from ..models.data_models import (
    CaptureRequest,
    Challenge,
    ChallengeSession,
    ChallengeStatus,
    FrameObservation,
    SessionMode,
    SessionOutcome,
    SessionPhase,
    SessionResult,
    StoredTemplate,
)
from .capture_gate import CaptureGate
from .challenge_engine import ChallengeStateMachine
from .embeddings import EnrollmentAccumulator, MatchPolicy, normalize, verify
from .geometry import face_bounds

logger = logging.getLogger(__name__)

Embedder = Callable[[CaptureRequest], Awaitable]
CompletionCallback = Callable[[SessionResult], None]


class AuthSession:
    """
    One end-to-end run for one subject.

    The caller chooses the mode. ENROLL accumulates ``enrollment_samples``
    captures and averages them into a StoredTemplate. VERIFY takes exactly
    one capture and compares it with the supplied template.

    Every capture request carries a fresh token; an embedding is only
    accepted for the token of the request currently pending, so late or
    repeated answers from the embedding model cannot complete a run twice.
    """

    def __init__(
        self,
        mode: SessionMode,
        stored_template: Optional[StoredTemplate] = None,
        state_machine: Optional[ChallengeStateMachine] = None,
        gate: Optional[CaptureGate] = None,
        policy: Optional[MatchPolicy] = None,
        enrollment_samples: Optional[int] = None,
        liveness_rounds: Optional[int] = None,
        sequence: Optional[Iterable[Challenge]] = None,
        run_id: Optional[str] = None,
        on_complete: Optional[CompletionCallback] = None,
        accumulator: Optional[EnrollmentAccumulator] = None
    ):
        """
        Args:
            mode: ENROLL or VERIFY
            stored_template: Template to verify against (VERIFY only)
            state_machine: Liveness state machine
            gate: Capture gate
            policy: Match policy for VERIFY
            enrollment_samples: Samples needed to enroll
            liveness_rounds: How many times the challenge sequence must pass
            sequence: Challenge order, fixed for every round of this session
            run_id: Identifier for this run
            on_complete: Called exactly once with the final result
            accumulator: Samples carried over from an aborted enrollment run

        Raises:
            InputContractViolation: VERIFY without a template or ENROLL with one
        """
        if not isinstance(mode, SessionMode):
            raise InputContractViolation(f"Unknown session mode: {mode!r}")
        if mode is SessionMode.VERIFY and stored_template is None:
            raise InputContractViolation("VERIFY needs a stored template")
        if mode is SessionMode.ENROLL and stored_template is not None:
            raise InputContractViolation("ENROLL must not be given a stored template")

        self.mode = mode
        self.stored_template = stored_template
        self.state_machine = state_machine or ChallengeStateMachine()
        self.engine = self.state_machine.engine
        self.gate = gate or CaptureGate()
        self.policy = policy or MatchPolicy.from_config()
        self.liveness_rounds = config.LIVENESS_ROUNDS if liveness_rounds is None else liveness_rounds
        if self.liveness_rounds < 1:
            raise InputContractViolation("liveness_rounds must be at least 1")

        self.run_id = run_id or self.engine.generate_run_id()
        self.accumulator = accumulator or EnrollmentAccumulator(enrollment_samples)

        if sequence is None:
            self._sequence = self.engine.generate_sequence()
        else:
            self._sequence = tuple(sequence)
        self.challenge: ChallengeSession = self.state_machine.start(self._sequence, run_id=self.run_id)
        self.round = 1

        self.phase = SessionPhase.LIVENESS
        self._pending: Optional[CaptureRequest] = None
        self._used_tokens: Set[str] = set()
        self._result: Optional[SessionResult] = None
        self._on_complete = on_complete

        logger.info(f"Session {self.run_id} created in {mode.value} mode")

    @property
    def result(self) -> Optional[SessionResult]:
        return self._result

    @property
    def pending_request(self) -> Optional[CaptureRequest]:
        return self._pending

    def process(self, observation: Optional[FrameObservation]) -> Optional[CaptureRequest]:
        """
        Feed one frame.

        Args:
            observation: Detector output for the frame (None = no face)

        Returns:
            A CaptureRequest on the frame the capture gate fires, else None

        Raises:
            SessionClosedError: The session already finished
            InputContractViolation: The frame carried a malformed face box
        """
        if self.phase.is_terminal:
            raise SessionClosedError(f"Session {self.run_id} is {self.phase.value}")
        if observation is None:
            observation = FrameObservation()

        if self.phase is SessionPhase.LIVENESS:
            self._process_liveness(observation)
            return None

        if self.phase is SessionPhase.CAPTURE:
            return self._process_capture(observation)

        # AWAITING_EMBEDDING: the sampled frame is with the embedding model
        return None

    def _process_liveness(self, observation: FrameObservation) -> None:
        self.challenge = self.state_machine.advance(self.challenge, observation.landmarks)
        if self.challenge.status is not ChallengeStatus.PASSED:
            return

        if self.round < self.liveness_rounds:
            self.round += 1
            logger.info(f"Session {self.run_id}: starting liveness round {self.round}/{self.liveness_rounds}")
            self.challenge = self.state_machine.start(self._sequence, run_id=self.run_id)
            return

        logger.info(f"Session {self.run_id}: liveness passed, capturing")
        self.phase = SessionPhase.CAPTURE
        self.gate.reset()

    def _process_capture(self, observation: FrameObservation) -> Optional[CaptureRequest]:
        box = observation.box
        if box is None and observation.landmarks is not None:
            box = face_bounds(observation.landmarks.points)

        fired = self.gate.observe(box, observation.frame_size)
        if fired is None:
            return None

        token = self.engine.generate_run_id()
        self._pending = CaptureRequest(token=token, box=fired, observation=observation)
        self.phase = SessionPhase.AWAITING_EMBEDDING
        return self._pending

    def submit_embedding(self, token: str, embedding) -> Optional[SessionResult]:
        """
        Hand back the embedding for a capture request.

        Args:
            token: Token of the CaptureRequest being answered
            embedding: Descriptor produced by the embedding model

        Returns:
            The final SessionResult when this sample completes the run,
            otherwise None (more enrollment samples needed, or the token
            was stale and the embedding ignored)

        Raises:
            InputContractViolation: Malformed embedding or a length that
                does not match earlier samples or the template
        """
        if self._pending is None or token != self._pending.token:
            reason = "duplicate" if token in self._used_tokens else "unknown"
            logger.warning(f"Session {self.run_id}: ignoring embedding for {reason} token")
            return None

        live = normalize(embedding)

        if self.mode is SessionMode.VERIFY:
            match = verify(live, self.stored_template, policy=self.policy)
            self._consume_pending()
            outcome = SessionOutcome.MATCH if match.is_match else SessionOutcome.NO_MATCH
            return self._complete(SessionResult(outcome=outcome, run_id=self.run_id, match=match))

        self.accumulator.add(live)
        self._consume_pending()
        if not self.accumulator.is_complete:
            self.phase = SessionPhase.CAPTURE
            self.gate.reset()
            return None

        template = self.accumulator.finalize(run_id=self.run_id)
        return self._complete(SessionResult(
            outcome=SessionOutcome.ENROLLED,
            run_id=self.run_id,
            template=template
        ))

    def _consume_pending(self) -> None:
        self._used_tokens.add(self._pending.token)
        self._pending = None

    def fail(self, reason: Union[str, Exception]) -> SessionResult:
        """
        Terminate the run after a detector or model error.

        Liveness failures and capture-stage failures are reported as
        different outcomes; neither is ever reported as NO_MATCH.
        """
        if self._result is not None:
            return self._result

        message = str(reason)
        if self.phase is SessionPhase.LIVENESS:
            self.challenge = self.state_machine.fail(self.challenge, message)
            outcome = SessionOutcome.LIVENESS_FAILED
        else:
            logger.error(f"Session {self.run_id} failed during {self.phase.value}: {message}")
            outcome = SessionOutcome.CAPTURE_FAILED

        self._pending = None
        return self._complete(SessionResult(outcome=outcome, run_id=self.run_id, error=message))

    def stop(self) -> SessionResult:
        """
        Abort before the next frame.

        Samples already in the accumulator are kept; only
        ``reset_enrollment`` discards them.
        """
        if self._result is not None:
            return self._result
        logger.info(f"Session {self.run_id} stopped during {self.phase.value}")
        self._pending = None
        return self._complete(SessionResult(outcome=SessionOutcome.ABORTED, run_id=self.run_id))

    def reset_enrollment(self) -> None:
        self.accumulator.reset()

    def _complete(self, result: SessionResult) -> SessionResult:
        if self._result is not None:
            return self._result

        self._result = result
        if result.outcome is SessionOutcome.ABORTED:
            self.phase = SessionPhase.ABORTED
        elif result.outcome in (SessionOutcome.LIVENESS_FAILED, SessionOutcome.CAPTURE_FAILED):
            self.phase = SessionPhase.FAILED
        else:
            self.phase = SessionPhase.DONE

        logger.info(f"Session {self.run_id} finished: {result.outcome.value}")
        if self._on_complete is not None:
            self._on_complete(result)
        return result


async def run_session(
    session: AuthSession,
    frames: AsyncIterable[Optional[FrameObservation]],
    embedder: Embedder,
    stop_event: Optional[asyncio.Event] = None
) -> SessionResult:
    """
    Drive a session from an async frame source until it finishes.

    Args:
        session: The session to drive
        frames: Detector output, one observation per frame
        embedder: Coroutine function mapping a CaptureRequest to an embedding
        stop_event: External stop signal, checked before every frame

    Returns:
        SessionResult: The final result. Detector and embedding errors end
        the run as a failure carrying the error message.

    Raises:
        FaceAuthError: Contract violations (malformed box, embedding of the
            wrong length) and other non-upstream errors. The session is
            failed before the error propagates.
    """
    iterator = frames.__aiter__()

    while not session.phase.is_terminal:
        if stop_event is not None and stop_event.is_set():
            return session.stop()

        try:
            observation = await iterator.__anext__()
        except StopAsyncIteration:
            logger.warning(f"Session {session.run_id}: frame source ended")
            return session.stop()
        except Exception as e:
            logger.error(f"Session {session.run_id}: detector error: {e}")
            return session.fail(e if isinstance(e, UpstreamFailure) else UpstreamFailure(f"Detector error: {e}"))

        if stop_event is not None and stop_event.is_set():
            return session.stop()

        try:
            request = session.process(observation)
        except InputContractViolation as e:
            session.fail(e)
            raise
        if request is None:
            continue

        try:
            embedding = await embedder(request)
        except FaceAuthError as e:
            session.fail(e)
            if not isinstance(e, UpstreamFailure):
                raise
            return session.result
        except Exception as e:
            logger.error(f"Session {session.run_id}: embedding model error: {e}")
            return session.fail(UpstreamFailure(f"Embedding model error: {e}"))

        try:
            session.submit_embedding(request.token, embedding)
        except InputContractViolation as e:
            session.fail(e)
            raise

    return session.result
