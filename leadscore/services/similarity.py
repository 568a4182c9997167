from __future__ import annotations

import unicodedata
from typing import Union

from rapidfuzz.distance import Levenshtein

from leadscore.services.normalization import NormalizedValue
from leadscore.services.policies import Comparator, MatchRule

Comparable = Union[NormalizedValue, str, None]

_SOUNDEX_CODES = {
    letter: digit
    for letters, digit in (
        ("BFPV", "1"),
        ("CGJKQSXZ", "2"),
        ("DT", "3"),
        ("L", "4"),
        ("MN", "5"),
        ("R", "6"),
    )
    for letter in letters
}


def _text(value: Comparable) -> str:
    if value is None:
        return ""
    if isinstance(value, NormalizedValue):
        return value.value
    return value


def soundex(word: str) -> str:
    """American Soundex code of a single word ("" when it has no letters)."""
    letters = [c for c in unicodedata.normalize("NFKD", word).upper() if "A" <= c <= "Z"]
    if not letters:
        return ""
    code = [letters[0]]
    previous = _SOUNDEX_CODES.get(letters[0], "")
    for letter in letters[1:]:
        digit = _SOUNDEX_CODES.get(letter, "")
        if digit and digit != previous:
            code.append(digit)
            if len(code) == 4:
                break
        # H and W do not separate letters with the same code; vowels do.
        if letter not in "HW":
            previous = digit
    return "".join(code).ljust(4, "0")


def phonetic_key(value: str) -> str:
    return " ".join(code for code in (soundex(token) for token in value.split()) if code)


def exact_similarity(a: str, b: str) -> float:
    if not a or not b:
        return 0.0
    return 100.0 if a == b else 0.0


def fuzzy_similarity(a: str, b: str) -> float:
    # Empty-vs-empty is 0, never a free match.
    if not a or not b:
        return 0.0
    longest = max(len(a), len(b))
    distance = Levenshtein.distance(a, b)
    # (1 - distance/longest) * 100
    return 100.0 * (longest - distance) / longest


def phonetic_similarity(a: str, b: str) -> float:
    key_a, key_b = phonetic_key(a), phonetic_key(b)
    if not key_a or not key_b:
        return 0.0
    return 100.0 if key_a == key_b else 0.0


_COMPARATORS = {
    Comparator.EXACT: exact_similarity,
    Comparator.FUZZY: fuzzy_similarity,
    Comparator.PHONETIC: phonetic_similarity,
}


def similarity(comparator: Comparator, a: Comparable, b: Comparable) -> float:
    """Similarity of two normalized values in [0, 100]."""
    score = _COMPARATORS[Comparator(comparator)](_text(a), _text(b))
    return min(max(score, 0.0), 100.0)


def passes_threshold(score: float, rule: MatchRule) -> bool:
    return score >= rule.threshold


def gated_similarity(score: float, rule: MatchRule) -> float:
    """Similarity a rule contributes: all of it at or above threshold, none below."""
    return score if passes_threshold(score, rule) else 0.0
