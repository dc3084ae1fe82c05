"""Unit tests for the author similarity cascade.

Pure functions over AuthorCandidate records; no database.
"""
import uuid

import pytest

from ibdb.utils.similarity_scorer import (
    AuthorCandidate,
    MatchReasons,
    compare_authors,
    initials_match,
    levenshtein_similarity,
    make_pair_key,
    shared_external_ids,
)


def _author(name: str, **ids) -> AuthorCandidate:
    return AuthorCandidate(id=uuid.uuid4(), name=name, **ids)


# ── cascade ───────────────────────────────────────────────────────────────────

def test_case_difference_is_exact():
    result = compare_authors(_author("Stephen King"), _author("stephen king"))
    assert result.score == 100
    assert result.confidence == "exact"
    assert result.reasons.exact_match


def test_punctuation_difference_is_exact():
    result = compare_authors(_author("J.R.R. Tolkien"), _author("JRR Tolkien"))
    assert result.score == 100
    assert result.confidence == "exact"


def test_flipped_name():
    result = compare_authors(_author("King, Stephen"), _author("Stephen King"))
    assert result.score == 95
    assert result.confidence == "high"
    assert result.reasons.name_flipped
    assert not result.reasons.exact_match


def test_flipped_name_either_order():
    result = compare_authors(_author("Stephen King"), _author("King, Stephen"))
    assert result.score == 95
    assert result.reasons.name_flipped


def test_shared_external_id_reaches_95():
    a = _author("J.K. Rowling", goodreads_id="1077326")
    b = _author("Joanne Kathleen Rowling", goodreads_id="1077326")
    result = compare_authors(a, b)
    assert result is not None
    assert result.score >= 95
    assert result.confidence == "high"
    assert result.reasons.shared_external_ids == ["goodreads"]


def test_unrelated_names_return_none():
    assert compare_authors(_author("Stephen Hawking"), _author("George Orwell")) is None


def test_initials():
    result = compare_authors(_author("J. K. Rowling"), _author("Joanne K Rowling"))
    assert result.score == 85
    assert result.confidence == "high"
    assert result.reasons.initials_match
    assert result.reasons.fuzzy_match is None


def test_missing_middle_name():
    result = compare_authors(_author("Stephen Edwin King"), _author("Stephen King"))
    assert result.score == 90
    assert result.confidence == "high"
    assert result.reasons.missing_middle


def test_fuzzy_high():
    result = compare_authors(_author("Stephen King"), _author("Stephen Kink"))
    assert result.score == 92
    assert result.confidence == "high"
    assert result.reasons.fuzzy_match == 92


def test_fuzzy_medium():
    result = compare_authors(_author("Jonathan Franzen"), _author("Jonathon Franzan"))
    assert result.score == 88
    assert result.confidence == "medium"
    assert result.reasons.fuzzy_match == 88


def test_rules_accumulate_max_score_and_all_reasons():
    a = _author("J. K. Rowling", hardcover_id="hc-1")
    b = _author("Joanne K Rowling", hardcover_id="hc-1")
    result = compare_authors(a, b)
    assert result.score == 95
    assert result.confidence == "high"
    assert result.reasons.initials_match
    assert result.reasons.shared_external_ids == ["hardcover"]


def test_result_keeps_input_order():
    a, b = _author("Stephen King"), _author("stephen king")
    result = compare_authors(a, b)
    assert result.author1.id == a.id
    assert result.author2.id == b.id


def test_orm_like_objects_without_external_ids():
    class Row:
        def __init__(self, name):
            self.id = uuid.uuid4()
            self.name = name

    result = compare_authors(Row("Stephen King"), Row("STEPHEN KING"))
    assert result.score == 100


# ── levenshtein_similarity ────────────────────────────────────────────────────

@pytest.mark.parametrize("a,b", [
    ("stephen king", "stephen kink"),
    ("kitten", "sitting"),
    ("", "abc"),
    ("jonathan franzen", "jonathon franzan"),
])
def test_similarity_is_symmetric(a, b):
    assert levenshtein_similarity(a, b) == levenshtein_similarity(b, a)


def test_similarity_identical_and_empty():
    assert levenshtein_similarity("abc", "abc") == 100
    assert levenshtein_similarity("", "") == 100
    assert levenshtein_similarity("", "abc") == 0


def test_similarity_rounds_half_up():
    # distance 3 over length 8 → 62.5
    assert levenshtein_similarity("abcdefgh", "abcdexyz") == 63


# ── helpers ───────────────────────────────────────────────────────────────────

def test_initials_match_requires_an_initial():
    assert not initials_match("Stephen King", "Stephen King")


def test_initials_match_token_count_difference():
    assert initials_match("J. Rowling", "Joanne Rowling")
    assert not initials_match("J. Rowling", "Joanne Kathleen Mary Rowling")


def test_shared_external_ids_ignores_empty_values():
    a = _author("A", goodreads_id=None, openlibrary_id="OL1A")
    b = _author("B", goodreads_id=None, openlibrary_id="OL1A")
    assert shared_external_ids(a, b) == ["openlibrary"]


def test_pair_key_is_order_independent():
    x, y = uuid.uuid4(), uuid.uuid4()
    assert make_pair_key(x, y) == make_pair_key(y, x)


def test_match_reasons_serialize_only_fired_rules():
    reasons = MatchReasons(initials_match=True, fuzzy_match=87, shared_external_ids=["goodreads"])
    data = reasons.to_dict()
    assert data == {"initialsMatch": True, "fuzzyMatch": 87, "sharedExternalIds": ["goodreads"]}
    assert MatchReasons.from_dict(data) == reasons


def test_match_reasons_from_empty():
    assert MatchReasons.from_dict(None) == MatchReasons()


def test_match_reasons_read_stored_camel_case_rows():
    reasons = MatchReasons.from_dict({"nameFlipped": True, "missingMiddle": True, "fuzzyMatch": 91})
    assert reasons.name_flipped
    assert reasons.missing_middle
    assert reasons.fuzzy_match == 91
    assert not reasons.exact_match
