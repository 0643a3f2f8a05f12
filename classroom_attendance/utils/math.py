from __future__ import annotations

import numpy as np


def l2_normalize(vec: np.ndarray, eps: float = 1e-12) -> np.ndarray:
    """L2-normalize a vector (or 2D array row-wise) safely."""
    arr = np.asarray(vec, dtype=np.float32)
    if arr.ndim == 1:
        denom = float(np.linalg.norm(arr))
        if denom < eps:
            return arr
        return arr / denom
    if arr.ndim == 2:
        norms = np.linalg.norm(arr, axis=1, keepdims=True)
        norms = np.maximum(norms, eps)
        return arr / norms
    raise ValueError(f"Unsupported ndim={arr.ndim}")


def euclidean_distances(matrix: np.ndarray, probe: np.ndarray) -> np.ndarray:
    """Row-wise Euclidean distance between an (N, D) matrix and a (D,) probe."""
    mat = np.asarray(matrix, dtype=np.float32)
    q = np.asarray(probe, dtype=np.float32).reshape(-1)
    return np.linalg.norm(mat - q[None, :], axis=1)


def cosine_distances(matrix: np.ndarray, probe: np.ndarray) -> np.ndarray:
    """Row-wise cosine distance (1 - cosine similarity), in [0, 2]."""
    mat = l2_normalize(np.asarray(matrix, dtype=np.float32).reshape(-1, np.asarray(probe).size))
    q = l2_normalize(np.asarray(probe, dtype=np.float32).reshape(-1))
    sims = mat @ q
    return np.clip(1.0 - sims, 0.0, 2.0)


DISTANCE_FUNCTIONS = {
    "euclidean": euclidean_distances,
    "cosine": cosine_distances,
}


def embedding_distance(a: np.ndarray, b: np.ndarray, metric: str = "euclidean") -> float:
    """Distance between two embeddings under the named metric."""
    fn = DISTANCE_FUNCTIONS[metric]
    vb = np.asarray(b, dtype=np.float32).reshape(1, -1)
    return float(fn(vb, a)[0])
