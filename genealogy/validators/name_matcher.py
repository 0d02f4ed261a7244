"""
Fuzzy person-name comparison.

Names from the lookup service arrive with inconsistent casing, accents and
spacing ("JOÃO  DA SILVA" vs "Joao da Silva"), so every comparison works on a
normalized form: transliterated to ASCII, upper-cased, letters and single
spaces only.
"""

import re
from typing import List, Optional

from unidecode import unidecode

NON_LETTER_RE = re.compile(r"[^A-Z ]")
SPACE_RE = re.compile(r"\s+")

DEFAULT_THRESHOLD = 0.85


def normalize_name(name: Optional[str]) -> str:
    """Return the comparison form of a name ("" for missing input)"""
    if not name:
        return ""
    value = unidecode(name).upper()
    value = SPACE_RE.sub(" ", value)
    value = NON_LETTER_RE.sub("", value)
    return SPACE_RE.sub(" ", value).strip()


def levenshtein(a: str, b: str) -> int:
    """Edit distance with unit costs, two-row dynamic programming"""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + cost,
            ))
        previous = current
    return previous[-1]


class NameMatcher:
    """
    Scores how likely two names refer to the same person.

    Rules, applied to normalized names:
    - exact match scores 1.0
    - one name contained in the other scores len(shorter) / len(longer)
    - otherwise 1 - levenshtein / max_len, never below 0
    - empty input scores 0.0
    """

    def __init__(self, threshold: float = DEFAULT_THRESHOLD):
        self.threshold = threshold

    def similarity(self, a: Optional[str], b: Optional[str]) -> float:
        norm_a = normalize_name(a)
        norm_b = normalize_name(b)
        if not norm_a or not norm_b:
            return 0.0
        if norm_a == norm_b:
            return 1.0

        shorter, longer = sorted((norm_a, norm_b), key=len)
        if shorter in longer:
            return len(shorter) / len(longer)

        distance = levenshtein(norm_a, norm_b)
        return max(0.0, 1.0 - distance / len(longer))

    def are_similar(self, a: Optional[str], b: Optional[str], threshold: Optional[float] = None) -> bool:
        limit = self.threshold if threshold is None else threshold
        return self.similarity(a, b) >= limit

    def common_parts(self, a: Optional[str], b: Optional[str]) -> List[str]:
        """Name tokens longer than two letters present in both names"""
        parts_b = set(normalize_name(b).split())
        return [
            part for part in normalize_name(a).split()
            if len(part) > 2 and part in parts_b
        ]

    @staticmethod
    def surname(name: Optional[str]) -> Optional[str]:
        """Last token of the normalized name"""
        parts = normalize_name(name).split()
        return parts[-1] if parts else None
