"""Unit tests for author-name normalization.

No database required: all functions are pure.
"""
import pytest

from ibdb.utils.name_normalizer import flip, is_initial, is_last_first, normalize, parse


# ── normalize ─────────────────────────────────────────────────────────────────

def test_normalize_lowercases_and_strips_punctuation():
    assert normalize("J.R.R. Tolkien") == "jrr tolkien"


def test_normalize_collapses_whitespace():
    assert normalize("  Ursula   K.  Le Guin  ") == "ursula k le guin"


def test_normalize_drops_non_ascii_letters():
    # Only [a-z0-9 ] survive; accented letters are removed, not transliterated
    assert normalize("Gabriel García Márquez") == "gabriel garca mrquez"


def test_normalize_keeps_digits():
    assert normalize("Author 42") == "author 42"


def test_normalize_empty():
    assert normalize("") == ""
    assert normalize(" ,. ") == ""


@pytest.mark.parametrize("name", [
    "Stephen King",
    "King, Stephen",
    "  J. K.   Rowling ",
    "O'Brien, Patrick",
    "Émile Zola",
    "",
])
def test_normalize_is_idempotent(name):
    once = normalize(name)
    assert normalize(once) == once


# ── flip ──────────────────────────────────────────────────────────────────────

def test_flip_last_first():
    assert flip("King, Stephen") == "Stephen King"


def test_flip_without_comma_is_noop():
    assert flip("Stephen King") == "Stephen King"


def test_flip_trims_parts():
    assert flip("King,Stephen") == "Stephen King"
    assert flip("  Le Guin ,  Ursula K. ") == "Ursula K. Le Guin"


def test_flip_multiple_commas_unchanged():
    assert flip("King, Stephen, Jr.") == "King, Stephen, Jr."


def test_is_last_first():
    assert is_last_first("King, Stephen")
    assert not is_last_first("Stephen King")


# ── parse ─────────────────────────────────────────────────────────────────────

def test_parse_first_middle_last_from_flipped_form():
    parsed = parse("King, Stephen Edwin")
    assert parsed.flipped == "Stephen Edwin King"
    assert parsed.normalized == "stephen edwin king"
    assert parsed.first == "Stephen"
    assert parsed.middle == ["Edwin"]
    assert parsed.last == "King"


def test_parse_two_tokens():
    parsed = parse("Stephen King")
    assert parsed.first == "Stephen"
    assert parsed.middle == []
    assert parsed.last == "King"


def test_parse_single_token_is_last_name():
    parsed = parse("Madonna")
    assert parsed.first is None
    assert parsed.last == "Madonna"


def test_parse_many_middles():
    parsed = parse("John Ronald Reuel Tolkien")
    assert parsed.middle == ["Ronald", "Reuel"]


def test_parse_empty():
    parsed = parse("")
    assert parsed.first is None
    assert parsed.last is None
    assert parsed.normalized == ""


# ── is_initial ────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("token,expected", [
    ("J", True),
    ("J.", True),
    ("Jo", False),
    ("J.K.", False),
    ("Joanne", False),
])
def test_is_initial(token, expected):
    assert is_initial(token) is expected
