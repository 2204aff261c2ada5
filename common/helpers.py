import numpy as np


# region Normalization
def minmax_normalize(scores: np.ndarray) -> np.ndarray:
    """Normalize to [0, 1] range using min-max scaling."""
    scores = np.asarray(scores, dtype=np.float64)
    if scores.size == 0:
        return scores
    min_score = scores.min()
    max_score = scores.max()
    if max_score - min_score == 0:
        # a single candidate (or a flat list) keeps its clamped raw value
        return np.clip(scores, 0.0, 1.0)
    return (scores - min_score) / (max_score - min_score)


def softmax_normalize(scores: np.ndarray, temperature: float = 0.7) -> np.ndarray:
    """Normalize using softmax with temperature scaling."""
    scores = np.asarray(scores, dtype=np.float64)
    if scores.size == 0:
        return scores
    s = (scores - scores.mean()) / (scores.std() + 1e-8)
    s = s / max(temperature, 1e-4)
    e = np.exp(s - s.max())
    return e / (e.sum() + 1e-8)


def zscore_normalize(scores: np.ndarray) -> np.ndarray:
    """Normalize using z-score + sigmoid squashing."""
    scores = np.asarray(scores, dtype=np.float64)
    if scores.size == 0:
        return scores
    mu, sigma = scores.mean(), scores.std()
    if sigma < 1e-8:
        return np.ones_like(scores) * 0.5
    z = (scores - mu) / sigma
    return 1.0 / (1.0 + np.exp(-z))


def normalize_scores(scores: np.ndarray, norm: str, norm_metadata: float = None) -> np.ndarray:
    """Normalize scores using specified method."""
    if norm == "softmax":
        return softmax_normalize(scores, norm_metadata or 0.7)
    elif norm == "zscore":
        return zscore_normalize(scores)
    else:  # minmax
        return minmax_normalize(scores)


# endregion


# region Matching
def overlap_ratio(left, right) -> float:
    """|left ∩ right| / max(|left|, |right|), 0 if either side is empty."""
    if not left or not right:
        return 0.0
    return len(set(left) & set(right)) / max(len(left), len(right))


# endregion
