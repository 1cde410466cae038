"""
Title normalization and token-overlap scoring.

score = |A ∩ B| / max(|A|, |B|) over word sets. Unlike Jaccard this does
not punish a short title for being a strict subset of a longer one
beyond the length ratio, and it is symmetric in its arguments.
"""
from __future__ import annotations

import re

_PARENS = re.compile(r"\([^)]*\)")
_BRACKETS = re.compile(r"\[[^\]]*\]")
_COLON_EDITION = re.compile(r":\s*[^:]*\bedition\b.*$", re.IGNORECASE)
_EDITION_SUFFIX = re.compile(
    r"\s+(?:special|deluxe|definitive|complete|collector'?s|limited|anniversary|gold|"
    r"ultimate|premium|standard|digital|enhanced|game of the year|goty)\s+edition\b.*$",
    re.IGNORECASE,
)
_GLYPHS = re.compile(r"[™®©]")
_APOSTROPHES = re.compile(r"['’`]")
_NON_WORD = re.compile(r"[^\w\s]")
_WS = re.compile(r"\s+")


def normalize_title(raw: str) -> str:
    """Strip region/revision tags, edition suffixes and trademark glyphs; lowercase."""
    s = _PARENS.sub(" ", raw or "")
    s = _BRACKETS.sub(" ", s)
    s = _GLYPHS.sub("", s)
    s = _COLON_EDITION.sub("", s)
    s = _EDITION_SUFFIX.sub("", s)
    return _WS.sub(" ", s).strip().lower()


def title_tokens(raw: str) -> frozenset[str]:
    s = normalize_title(raw).replace("&", " and ")
    s = _APOSTROPHES.sub("", s)
    s = _NON_WORD.sub(" ", s)
    return frozenset(s.split())


def overlap_score(a: frozenset[str], b: frozenset[str]) -> float:
    if not a or not b:
        return 0.0
    return len(a & b) / max(len(a), len(b))


def title_score(a: str, b: str) -> float:
    return overlap_score(title_tokens(a), title_tokens(b))
