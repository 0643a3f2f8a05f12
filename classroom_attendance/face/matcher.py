from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from classroom_attendance.config import DEFAULT_MATCH_THRESHOLD
from classroom_attendance.errors import InvalidInput
from classroom_attendance.face.registry import LabeledDescriptor
from classroom_attendance.utils.math import DISTANCE_FUNCTIONS


@dataclass(frozen=True)
class MatcherConfig:
    # Maximum distance accepted as a match (inclusive).
    threshold: float = DEFAULT_MATCH_THRESHOLD
    # "euclidean" or "cosine"; must match the analyzer that produced the embeddings.
    metric: str = "euclidean"


@dataclass(frozen=True)
class MatchResult:
    label: Optional[str]
    distance: float

    @property
    def is_unknown(self) -> bool:
        return self.label is None


class DistanceMatcher:
    """Immutable nearest-descriptor matcher over one registry snapshot.

    The snapshot is flattened into a (N, D) matrix once at construction;
    `row_labels[i]` is the owner of row i. Ties on the minimum distance go to
    the earliest row, i.e. the earliest registered student.
    """

    def __init__(self, snapshot: Sequence[LabeledDescriptor], config: MatcherConfig = MatcherConfig()):
        if config.metric not in DISTANCE_FUNCTIONS:
            raise ValueError(f"Unsupported metric: {config.metric}")
        self._config = config
        self._distance_fn = DISTANCE_FUNCTIONS[config.metric]

        labels: List[str] = []
        rows: List[np.ndarray] = []
        for entry in snapshot:
            if entry.label not in labels:
                labels.append(entry.label)
            for desc in entry.descriptors:
                rows.append(np.asarray(desc, dtype=np.float32).reshape(-1))

        if not rows:
            raise ValueError("Cannot build a matcher from an empty snapshot")

        dims = {int(r.shape[0]) for r in rows}
        if len(dims) != 1:
            raise InvalidInput(f"Inconsistent descriptor dimensions in snapshot: {sorted(dims)}")

        matrix = np.ascontiguousarray(np.stack(rows, axis=0))
        matrix.setflags(write=False)
        self._matrix = matrix
        self._labels: Tuple[str, ...] = tuple(labels)
        self._row_labels: Tuple[str, ...] = tuple(
            entry.label for entry in snapshot for _ in entry.descriptors
        )

    @property
    def threshold(self) -> float:
        return float(self._config.threshold)

    @property
    def metric(self) -> str:
        return self._config.metric

    @property
    def labels(self) -> Tuple[str, ...]:
        return self._labels

    @property
    def dim(self) -> int:
        return int(self._matrix.shape[1])

    def distances(self, embedding: np.ndarray) -> np.ndarray:
        q = np.asarray(embedding, dtype=np.float32).reshape(-1)
        if int(q.shape[0]) != self.dim:
            raise InvalidInput(f"Embedding dimension {q.shape[0]} does not match matcher dimension {self.dim}")
        return self._distance_fn(self._matrix, q)

    def match(self, embedding: np.ndarray) -> MatchResult:
        """Return the best label within threshold, or an unknown result."""
        dists = self.distances(embedding)
        # argmin returns the first minimum, which is the tie-break rule.
        best_row = int(np.argmin(dists))
        best_dist = float(dists[best_row])
        if best_dist <= self.threshold:
            return MatchResult(label=self._row_labels[best_row], distance=best_dist)
        return MatchResult(label=None, distance=best_dist)

    def __call__(self, embedding: np.ndarray) -> MatchResult:
        return self.match(embedding)


def build_matcher(
    snapshot: Sequence[LabeledDescriptor],
    threshold: float = DEFAULT_MATCH_THRESHOLD,
    metric: str = "euclidean",
) -> Optional[DistanceMatcher]:
    """Build a fresh matcher for `snapshot`; None when nobody is registered."""
    if not snapshot:
        return None
    return DistanceMatcher(snapshot, MatcherConfig(threshold=float(threshold), metric=str(metric)))
