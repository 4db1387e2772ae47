"""String similarity helpers used by deduplication and thread clustering."""

from __future__ import annotations

from rapidfuzz.distance import Levenshtein


def levenshtein_distance(first: str, second: str) -> int:
    """Number of single-character edits needed to turn ``first`` into ``second``."""
    return Levenshtein.distance(first, second)


def edit_similarity(first: str, second: str) -> float:
    """Normalized edit-distance similarity in [0, 1], case-insensitive.

    ``(max_len - edits) / max_len``; two empty strings are identical.
    """
    if not first and not second:
        return 1.0
    return Levenshtein.normalized_similarity(first.lower(), second.lower())


def word_set(text: str) -> set[str]:
    return set(text.lower().split())


def jaccard_similarity(first: str, second: str) -> float:
    """Jaccard overlap of the lower-cased whitespace-separated word sets."""
    first_words = word_set(first)
    second_words = word_set(second)
    union = first_words | second_words
    if not union:
        return 0.0
    return len(first_words & second_words) / len(union)
