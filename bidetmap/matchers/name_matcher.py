from typing import Optional, Sequence, Tuple

from rapidfuzz import fuzz

from bidetmap.config import FUZZY_THRESHOLD
from bidetmap.normalizer import alpha_numeric_only, normalize

MIN_FUZZY_LENGTH = 3


def fuzzy_key(name: str) -> str:
    """Normalized name, or the alphanumeric key when normalization leaves nothing."""
    return normalize(name) or alpha_numeric_only(name)


def similarity(key_a: str, key_b: str) -> float:
    """
    Similarity of two fuzzy keys in [0, 1].

    Keys shorter than MIN_FUZZY_LENGTH never match anything.
    """
    if len(key_a) < MIN_FUZZY_LENGTH or len(key_b) < MIN_FUZZY_LENGTH:
        return 0.0
    return fuzz.ratio(key_a, key_b) / 100.0


def best_fuzzy_candidate(
    key: str,
    candidates: Sequence[Tuple[int, str]],
    threshold: float = FUZZY_THRESHOLD,
) -> Optional[Tuple[int, float]]:
    """
    Find the highest-scoring candidate whose similarity exceeds `threshold`.

    Args:
        key (str): Fuzzy key of the record being matched.
        candidates (Sequence[Tuple[int, str]]): (position, fuzzy key) pairs in index order.
        threshold (float): Score a candidate must exceed to be accepted.

    Returns:
        Optional[Tuple[int, float]]: (position, score) of the winner. Ties keep
        the earliest candidate.
    """
    best = None
    best_score = threshold
    for position, candidate_key in candidates:
        score = similarity(key, candidate_key)
        # Strictly greater, so the earliest of equal scores is kept
        if score > best_score:
            best, best_score = position, score
    if best is None:
        return None
    return best, best_score
