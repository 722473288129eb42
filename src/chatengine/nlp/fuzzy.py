"""Text normalization and Levenshtein-based fuzzy matching."""

import re

WHITESPACE = re.compile(r"\s+")

DEFAULT_THRESHOLD = 0.7
CONTAINMENT_SCORE = 0.9


def normalize_text(text: str | None) -> str:
    """Lowercase, trim and collapse whitespace.

    Examples:
        "  Hello   World " -> "hello world"
        None -> ""
    """
    if not text:
        return ""
    return WHITESPACE.sub(" ", text).strip().lower()


def levenshtein_distance(source: str, target: str) -> int:
    """Compute the edit distance between two strings.

    Uses the full dynamic-programming matrix with ``len(source) + 1`` rows
    and ``len(target) + 1`` columns and unit cost for insertion, deletion
    and substitution.
    """
    rows = len(source) + 1
    cols = len(target) + 1
    matrix = [[0] * cols for _ in range(rows)]

    for i in range(rows):
        matrix[i][0] = i
    for j in range(cols):
        matrix[0][j] = j

    for i in range(1, rows):
        for j in range(1, cols):
            cost = 0 if source[i - 1] == target[j - 1] else 1
            matrix[i][j] = min(
                matrix[i - 1][j] + 1,
                matrix[i][j - 1] + 1,
                matrix[i - 1][j - 1] + cost,
            )

    return matrix[rows - 1][cols - 1]


def similarity(
    text: str,
    target: str,
    containment_score: float = CONTAINMENT_SCORE,
) -> float:
    """Score how closely ``text`` resembles ``target``.

    Short-circuit rules are applied before the edit distance:

    - identical after normalization -> 1.0
    - either string contains the other -> ``containment_score``
    - otherwise ``1 - distance / max(len(text), len(target))``

    An empty string is contained in every string, so it scores
    ``containment_score`` against any non-empty target.

    Args:
        text: The user-supplied text.
        target: The reference phrase.
        containment_score: Score for substring matches (0.9 to 0.95).

    Returns:
        Similarity in [0, 1].
    """
    source = text.lower().strip()
    reference = target.lower().strip()

    if source == reference:
        return 1.0
    if source in reference or reference in source:
        return containment_score

    longest = max(len(source), len(reference))
    if longest == 0:
        return 1.0

    return 1 - levenshtein_distance(source, reference) / longest


def fuzzy_match(
    text: str,
    target: str,
    threshold: float = DEFAULT_THRESHOLD,
    containment_score: float = CONTAINMENT_SCORE,
) -> float:
    """Similarity of ``text`` to ``target``, or 0.0 below the threshold.

    Examples:
        fuzzy_match("paracetamol", "paracetamol") -> 1.0
        fuzzy_match("paracetamol", "paracetamol 500mg") -> 0.9
        fuzzy_match("paracetmol", "paracetamol") -> ~0.909
        fuzzy_match("insulin", "doctor") -> 0.0
    """
    score = similarity(text, target, containment_score)
    return score if score >= threshold else 0.0


def best_match(
    text: str,
    candidates: tuple[str, ...] | list[str],
    threshold: float = DEFAULT_THRESHOLD,
) -> str | None:
    """Get the candidate most similar to ``text`` above the threshold.

    The first candidate wins ties.
    """
    best: str | None = None
    best_score = 0.0
    for candidate in candidates:
        score = fuzzy_match(text, candidate, threshold)
        if score > best_score:
            best, best_score = candidate, score
    return best
