"""
Embedding aggregation and match decisions.

Enrollment averages several captured descriptors into one L2-normalized
template. Verification compares a live descriptor with that template using
cosine distance and the single match policy configured for the deployment.
"""
import logging
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from ..config import config
from ..exceptions import ConfigurationError, InputContractViolation
from ..models.data_models import MatchMetric, MatchResult, StoredTemplate

logger = logging.getLogger(__name__)


def _as_vector(vec, name: str = "embedding") -> np.ndarray:
    arr = np.asarray(vec, dtype=np.float64)
    if arr.ndim != 1 or arr.shape[0] == 0:
        raise InputContractViolation(f"{name} must be a non-empty 1-D vector, got shape {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise InputContractViolation(f"{name} contains non-finite values")
    return arr


def normalize(vec) -> np.ndarray:
    """
    L2-normalize a vector.

    A zero vector is returned as-is rather than divided by zero.
    """
    arr = _as_vector(vec)
    norm = np.linalg.norm(arr)
    if norm == 0:
        return arr
    return arr / norm


def average_embeddings(samples: Sequence) -> np.ndarray:
    """
    Element-wise mean of the samples, then L2-normalized.

    Args:
        samples: One or more equal-length embeddings

    Returns:
        np.ndarray: The canonical template vector

    Raises:
        InputContractViolation: Empty sample set or mismatched lengths
    """
    if len(samples) == 0:
        raise InputContractViolation("Need at least one embedding")

    vectors = [_as_vector(s, f"sample {i}") for i, s in enumerate(samples)]
    length = vectors[0].shape[0]
    for i, vec in enumerate(vectors):
        if vec.shape[0] != length:
            raise InputContractViolation(
                f"Embedding length mismatch: sample {i} has {vec.shape[0]}, expected {length}"
            )

    # Sum in sample order so the same ordered input always gives the same bits
    total = np.zeros(length, dtype=np.float64)
    for vec in vectors:
        total += vec
    return normalize(total / len(vectors))


def enroll(samples: Sequence, run_id: Optional[str] = None) -> StoredTemplate:
    """Build a StoredTemplate from captured samples"""
    embedding = average_embeddings(samples)
    return StoredTemplate(
        embedding=embedding,
        sample_count=len(samples),
        created_at=time.time(),
        run_id=run_id
    )


class EnrollmentAccumulator:
    """
    Samples captured during one enrollment run.

    Owned by a single run. Samples are only discarded by ``reset()`` or by a
    successful ``finalize()``; stopping a run leaves them in place.
    """

    def __init__(self, required_samples: Optional[int] = None):
        self.required_samples = config.ENROLLMENT_SAMPLES if required_samples is None else required_samples
        if self.required_samples < 1:
            raise ConfigurationError("required_samples must be at least 1")
        self._samples: List[np.ndarray] = []

    @property
    def samples(self) -> List[np.ndarray]:
        return list(self._samples)

    @property
    def count(self) -> int:
        return len(self._samples)

    @property
    def is_complete(self) -> bool:
        return len(self._samples) >= self.required_samples

    def add(self, embedding) -> int:
        """
        Append a sample.

        Returns:
            int: Number of samples held after the append

        Raises:
            InputContractViolation: Length differs from earlier samples, or
                the accumulator is already full
        """
        vec = _as_vector(embedding)
        if self.is_complete:
            raise InputContractViolation(
                f"Enrollment already holds {self.required_samples} samples"
            )
        if self._samples and vec.shape[0] != self._samples[0].shape[0]:
            raise InputContractViolation(
                f"Embedding length mismatch: got {vec.shape[0]}, expected {self._samples[0].shape[0]}"
            )
        self._samples.append(vec)
        logger.info(f"Captured enrollment sample {len(self._samples)}/{self.required_samples}")
        return len(self._samples)

    def finalize(self, run_id: Optional[str] = None) -> StoredTemplate:
        """Aggregate the samples into a template and clear the accumulator"""
        if not self.is_complete:
            raise InputContractViolation(
                f"Enrollment needs {self.required_samples} samples, has {len(self._samples)}"
            )
        template = enroll(self._samples, run_id=run_id)
        self._samples = []
        return template

    def reset(self) -> None:
        self._samples = []


def cosine_distance(a, b) -> float:
    """
    Cosine distance between two embeddings.

    0 = identical direction, 1 = orthogonal, 2 = opposite. Returns 1.0
    when either vector has zero norm.

    Raises:
        InputContractViolation: Empty, non-finite or different-length vectors
    """
    va = _as_vector(a, "a")
    vb = _as_vector(b, "b")
    if va.shape[0] != vb.shape[0]:
        raise InputContractViolation(
            f"Embedding length mismatch: {va.shape[0]} vs {vb.shape[0]}"
        )

    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        return 1.0
    distance = 1.0 - float(np.dot(va, vb)) / float(norm)
    return float(min(max(distance, 0.0), 2.0))


def cosine_similarity(a, b) -> float:
    return 1.0 - cosine_distance(a, b)


def is_match(distance: float, threshold: float) -> bool:
    """True iff ``distance`` is strictly below ``threshold``"""
    return distance < threshold


@dataclass(frozen=True)
class MatchPolicy:
    """
    The one comparison convention used by a deployment.

    COSINE_DISTANCE matches when distance < threshold (range [0, 2]).
    COSINE_SIMILARITY matches when similarity >= threshold (range [-1, 1]).
    Mixing the two in one deployment silently flips decisions, so the
    metric travels with its threshold.
    """
    metric: MatchMetric = MatchMetric.COSINE_DISTANCE
    threshold: float = 0.32

    def __post_init__(self):
        if not isinstance(self.metric, MatchMetric):
            raise ConfigurationError(f"Unknown match metric: {self.metric!r}")
        low, high = (0.0, 2.0) if self.metric is MatchMetric.COSINE_DISTANCE else (-1.0, 1.0)
        if not low <= self.threshold <= high:
            raise ConfigurationError(
                f"Threshold {self.threshold} outside [{low}, {high}] for {self.metric.value}"
            )

    @classmethod
    def from_config(cls) -> 'MatchPolicy':
        try:
            metric = MatchMetric(config.MATCH_METRIC)
        except ValueError:
            raise ConfigurationError(f"Unknown MATCH_METRIC: {config.MATCH_METRIC}")
        return cls(metric=metric, threshold=config.MATCH_THRESHOLD)

    def decide(self, distance: float) -> bool:
        if self.metric is MatchMetric.COSINE_DISTANCE:
            return is_match(distance, self.threshold)
        return (1.0 - distance) >= self.threshold


def verify(live, stored, threshold: Optional[float] = None,
           policy: Optional[MatchPolicy] = None) -> MatchResult:
    """
    Compare a live embedding with a stored template.

    Args:
        live: Live embedding
        stored: Template embedding or StoredTemplate
        threshold: Overrides the policy threshold, same metric
        policy: Match policy (defaults to the configured one)

    Returns:
        MatchResult with distance, similarity and the decision
    """
    if isinstance(stored, StoredTemplate):
        stored = stored.embedding
    policy = policy or MatchPolicy.from_config()
    if threshold is not None:
        policy = MatchPolicy(metric=policy.metric, threshold=threshold)

    distance = cosine_distance(normalize(live), stored)
    result = MatchResult(
        distance=distance,
        similarity=1.0 - distance,
        is_match=policy.decide(distance),
        threshold=policy.threshold,
        metric=policy.metric
    )
    logger.info(
        f"Match result: distance={distance:.4f}, match={result.is_match}, "
        f"threshold={policy.threshold} ({policy.metric.value})"
    )
    return result
