"""
Face liveness challenges and biometric capture/matching core
"""
from .exceptions import (
    ConfigurationError,
    FaceAuthError,
    InputContractViolation,
    SessionClosedError,
    UpstreamFailure,
)

__version__ = "0.1.0"
