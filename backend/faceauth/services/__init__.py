"""
Services for liveness challenges, capture gating and matching
"""
from .capture_gate import CaptureGate
from .challenge_engine import ChallengeEngine, ChallengeStateMachine
from .embeddings import (
    EnrollmentAccumulator,
    MatchPolicy,
    average_embeddings,
    cosine_distance,
    cosine_similarity,
    enroll,
    is_match,
    normalize,
    verify,
)
from .session_manager import AuthSession, run_session

__all__ = [
    'AuthSession',
    'CaptureGate',
    'ChallengeEngine',
    'ChallengeStateMachine',
    'EnrollmentAccumulator',
    'MatchPolicy',
    'average_embeddings',
    'cosine_distance',
    'cosine_similarity',
    'enroll',
    'is_match',
    'normalize',
    'run_session',
    'verify',
]
