"""
Error taxonomy for the liveness and biometric capture core.

A frame without a usable face is not an error: detectors hand ``None`` to
the services and the frame is ignored. Everything below is raised.
"""


class FaceAuthError(Exception):
    """Base class for all errors raised by faceauth."""


class InputContractViolation(FaceAuthError, ValueError):
    """
    A caller broke an input contract (mismatched embedding lengths, empty
    sample set, malformed face box, bad challenge sequence).

    Fatal to the call and never retried.
    """


class UpstreamFailure(FaceAuthError):
    """
    The landmark detector or the embedding model failed.

    Terminates the session into FAILED. Retrying from scratch is the
    caller's decision.
    """


class ConfigurationError(FaceAuthError, ValueError):
    """Thresholds or policies that cannot work together."""


class SessionClosedError(FaceAuthError):
    """A frame was fed to a session that already reached a terminal phase."""
