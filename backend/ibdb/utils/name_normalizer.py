"""Author-name normalization helpers.

All functions are pure (no I/O) and suitable for unit testing.

normalize   lowercase, drop everything outside [a-z0-9 ], collapse whitespace
flip        "King, Stephen" → "Stephen King"
parse       split the flipped form into first / middle / last tokens
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize(name: str) -> str:
    """Return the comparison form of an author name.

    Idempotent: normalize(normalize(n)) == normalize(n).
    """
    text = name.lower()
    text = _NON_ALNUM_RE.sub("", text)
    text = _WHITESPACE_RE.sub(" ", text)
    return text.strip()


def is_last_first(name: str) -> bool:
    return "," in name


def flip(name: str) -> str:
    """Turn "Last, First" into "First Last".

    Names without a comma are returned unchanged.  Names with more than one
    comma are ambiguous ("King, Stephen, Jr.") and are also returned unchanged.
    """
    if not is_last_first(name):
        return name
    parts = [p.strip() for p in name.split(",")]
    if len(parts) == 2:
        return f"{parts[1]} {parts[0]}"
    return name


@dataclass
class ParsedName:
    normalized: str                   # normalize(flipped)
    flipped: str
    first: Optional[str] = None
    middle: list[str] = field(default_factory=list)
    last: Optional[str] = None


def parse(name: str) -> ParsedName:
    """Split an author name into components.

    Works on the flipped form, tokenized on whitespace:
      1 token  → last
      2 tokens → first, last
      3+       → first, middle (everything in between), last
    """
    flipped = flip(name)
    normalized = normalize(flipped)
    tokens = flipped.split()

    if len(tokens) <= 1:
        return ParsedName(normalized=normalized, flipped=flipped, last=tokens[0] if tokens else None)
    if len(tokens) == 2:
        return ParsedName(normalized=normalized, flipped=flipped, first=tokens[0], last=tokens[1])
    return ParsedName(
        normalized=normalized,
        flipped=flipped,
        first=tokens[0],
        middle=tokens[1:-1],
        last=tokens[-1],
    )


def is_initial(token: str) -> bool:
    """True for "J" or "J." style tokens."""
    return len(token) == 1 or (len(token) == 2 and token[1] == ".")
