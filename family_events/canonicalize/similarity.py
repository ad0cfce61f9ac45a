# family_events/canonicalize/similarity.py
"""
String normalization and edit-distance similarity.
Pure functions, no I/O. Shared by deduplication and anything else that
needs to compare free-text titles or venue names.
"""
from __future__ import annotations

import re
from typing import Optional

from rapidfuzz.distance import Levenshtein

_PUNCT_RE = re.compile(r"[^\w\s]", re.UNICODE)
_WS_RE = re.compile(r"\s+")


def normalize_text(text: Optional[str]) -> str:
    """
    casefold, strip punctuation, collapse whitespace.

    `\\w` is Unicode-aware, so Czech letters (á, č, ř, ž, ...) survive:
      "Koncert v parku!"  -> "koncert v parku"
      "  Divadlo   Minor" -> "divadlo minor"
    """
    if not text:
        return ""
    s = text.casefold()
    s = _PUNCT_RE.sub("", s)
    s = _WS_RE.sub(" ", s).strip()
    return s


def levenshtein_distance(a: str, b: str) -> int:
    return Levenshtein.distance(a, b)


def string_similarity(a: str, b: str) -> float:
    """
    1 - distance / max(len(a), len(b)). Returns 0.0–1.0.

    Symmetric. Two empty strings are identical (1.0).
    Callers normalize first; this function compares the strings as given.
    """
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / max_len


def text_similarity(a: Optional[str], b: Optional[str]) -> float:
    """string_similarity over normalize_text() of both inputs."""
    return string_similarity(normalize_text(a), normalize_text(b))
