"""
Pairwise author similarity scoring.

compare_authors() runs an ordered cascade over two author records:

  1. exact          normalized names equal                → 100, exact   (returns)
  2. name flipped   "King, Stephen" vs "Stephen King"     →  95, high    (returns)
  3. fuzzy          Levenshtein similarity ≥ 85           → sim, high if ≥ 90 else medium
  4. initials       "J. K. Rowling" vs "Joanne K Rowling" → ≥ 85, high
  5. missing middle same first + last, middle count differs → ≥ 90, high
  6. shared ids     same Goodreads / Open Library / Hardcover id → ≥ 95, high

Rules 3–6 fold into an accumulator: score only goes up (max) and confidence
only climbs the ladder low < medium < high < exact.  Reasons accumulate.
Results scoring below 70 are dropped (None).

Inputs are duck-typed: anything with ``id`` and ``name`` works (ORM Author rows,
AuthorCandidate).  External id attributes are optional.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Optional

from rapidfuzz.distance import Levenshtein

from ibdb.utils.name_normalizer import is_initial, normalize, parse

MIN_RESULT_SCORE = 70
FUZZY_THRESHOLD = 85
FUZZY_HIGH_THRESHOLD = 90

CONFIDENCE_LEVELS = ("low", "medium", "high", "exact")
_CONFIDENCE_RANK = {c: i for i, c in enumerate(CONFIDENCE_LEVELS)}

# (attribute on the author record, catalog name stored in match_reasons)
EXTERNAL_ID_FIELDS = (
    ("goodreads_id", "goodreads"),
    ("openlibrary_id", "openlibrary"),
    ("hardcover_id", "hardcover"),
)


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------

@dataclass
class AuthorCandidate:
    """Minimal author shape accepted by compare_authors()."""
    id: Any
    name: str
    goodreads_id: Optional[str] = None
    openlibrary_id: Optional[str] = None
    hardcover_id: Optional[str] = None


@dataclass
class AuthorRef:
    id: Any
    name: str


# (attribute, JSON key) for the boolean reasons; stored keys are camelCase
_FLAG_KEYS = (
    ("exact_match", "exactMatch"),
    ("name_flipped", "nameFlipped"),
    ("normalized_match", "normalizedMatch"),
    ("phonetic_match", "phoneticMatch"),
    ("initials_match", "initialsMatch"),
    ("missing_middle", "missingMiddle"),
)


@dataclass
class MatchReasons:
    """Which rules fired.  One optional field per rule; unset fields are falsy."""
    exact_match: bool = False
    name_flipped: bool = False
    normalized_match: bool = False
    fuzzy_match: Optional[int] = None       # the similarity percentage
    phonetic_match: bool = False
    initials_match: bool = False
    missing_middle: bool = False
    shared_external_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Serialize only the reasons that fired (stored in match_reasons JSON)."""
        out: dict = {}
        for attr, key in _FLAG_KEYS:
            if getattr(self, attr):
                out[key] = True
        if self.fuzzy_match is not None:
            out["fuzzyMatch"] = self.fuzzy_match
        if self.shared_external_ids:
            out["sharedExternalIds"] = list(self.shared_external_ids)
        return out

    @classmethod
    def from_dict(cls, d: Optional[dict]) -> "MatchReasons":
        d = d or {}
        reasons = cls(
            fuzzy_match=d.get("fuzzyMatch"),
            shared_external_ids=list(d.get("sharedExternalIds") or []),
        )
        for attr, key in _FLAG_KEYS:
            setattr(reasons, attr, bool(d.get(key)))
        return reasons


@dataclass
class SimilarityResult:
    author1: AuthorRef
    author2: AuthorRef
    score: int
    confidence: str                  # exact | high | medium | low
    reasons: MatchReasons

    @property
    def pair_key(self) -> str:
        """Order-independent key for the author pair."""
        return make_pair_key(self.author1.id, self.author2.id)


def make_pair_key(a: Any, b: Any) -> str:
    return ":".join(sorted((str(a), str(b))))


# ---------------------------------------------------------------------------
# Edit distance
# ---------------------------------------------------------------------------

def levenshtein_similarity(a: str, b: str) -> int:
    """Percentage similarity: round((1 - distance / max_len) * 100).

    Classic Levenshtein (unit cost insert / delete / substitute).  Rounds half
    up.  Two empty strings are 100% similar.  Symmetric in a and b.
    """
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 100
    distance = Levenshtein.distance(a, b)
    return int(math.floor((1 - distance / max_len) * 100 + 0.5))


def initials_match(name1: str, name2: str) -> bool:
    """Token-wise initials check on raw names.

    "J. K. Rowling" vs "Joanne Kathleen Rowling" → True.
    Token counts may differ by at most one; at least one side must contain an
    initial-shaped token; and at least min(2, shorter length) positions must
    match (initial vs first letter, or case-insensitive equality).
    """
    parts1 = name1.split()
    parts2 = name2.split()

    if abs(len(parts1) - len(parts2)) > 1:
        return False
    if not any(is_initial(p) for p in parts1) and not any(is_initial(p) for p in parts2):
        return False

    matches = 0
    for p1, p2 in zip(parts1, parts2):
        if is_initial(p1):
            if p2.lower().startswith(p1[0].lower()):
                matches += 1
        elif is_initial(p2):
            if p1.lower().startswith(p2[0].lower()):
                matches += 1
        elif p1.lower() == p2.lower():
            matches += 1

    return matches >= min(2, len(parts1), len(parts2))


def shared_external_ids(a: Any, b: Any) -> list[str]:
    shared = []
    for attr, catalog in EXTERNAL_ID_FIELDS:
        value = getattr(a, attr, None)
        if value and value == getattr(b, attr, None):
            shared.append(catalog)
    return shared


# ---------------------------------------------------------------------------
# Cascade
# ---------------------------------------------------------------------------

class _Accumulator:
    def __init__(self) -> None:
        self.score = 0
        self.confidence = "low"

    def raise_to(self, score: int, confidence: str) -> None:
        self.score = max(self.score, score)
        if _CONFIDENCE_RANK[confidence] > _CONFIDENCE_RANK[self.confidence]:
            self.confidence = confidence


def compare_authors(a: Any, b: Any) -> Optional[SimilarityResult]:
    """Score two author records; None when the score stays below 70."""
    ref_a = AuthorRef(id=a.id, name=a.name)
    ref_b = AuthorRef(id=b.id, name=b.name)
    name_a = parse(a.name)
    name_b = parse(b.name)
    reasons = MatchReasons()

    if normalize(a.name) == normalize(b.name):
        reasons.exact_match = True
        return SimilarityResult(ref_a, ref_b, 100, "exact", reasons)

    if a.name != name_a.flipped or b.name != name_b.flipped:
        if (name_a.flipped.lower() == b.name.lower()
                or a.name.lower() == name_b.flipped.lower()):
            reasons.name_flipped = True
            return SimilarityResult(ref_a, ref_b, 95, "high", reasons)

    acc = _Accumulator()

    similarity = levenshtein_similarity(name_a.normalized, name_b.normalized)
    if similarity >= FUZZY_THRESHOLD:
        reasons.fuzzy_match = similarity
        acc.raise_to(similarity, "high" if similarity >= FUZZY_HIGH_THRESHOLD else "medium")

    if initials_match(a.name, b.name):
        reasons.initials_match = True
        acc.raise_to(85, "high")

    if (name_a.first == name_b.first and name_a.last == name_b.last
            and len(name_a.middle) != len(name_b.middle)):
        reasons.missing_middle = True
        acc.raise_to(90, "high")

    shared = shared_external_ids(a, b)
    if shared:
        reasons.shared_external_ids = shared
        acc.raise_to(95, "high")

    if acc.score < MIN_RESULT_SCORE:
        return None
    return SimilarityResult(ref_a, ref_b, acc.score, acc.confidence, reasons)
