"""Text helpers for catalog matching.

Spanish construction text mixes accented and unaccented spellings
("demolición" / "demolicion"), so comparisons are done on a folded form.
"""

import re
import unicodedata
from typing import List

_WORD_RE = re.compile(r"[a-z0-9]+")


def normalize_text(text: str) -> str:
    """Lowercase text and strip diacritics.

    Args:
        text: Raw text (may be None-ish).

    Returns:
        Folded text, e.g. "Cerámica Porcelánica" -> "ceramica porcelanica".
    """
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text.lower())
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def extract_keywords(text: str, min_length: int = 3) -> List[str]:
    """Split text into folded keywords of at least ``min_length`` characters."""
    return [word for word in _WORD_RE.findall(normalize_text(text)) if len(word) >= min_length]


def contains_any(text: str, needles) -> bool:
    """Accent-insensitive substring check against several needles."""
    folded = normalize_text(text)
    return any(normalize_text(needle) in folded for needle in needles)


def collapse_whitespace(text: str) -> str:
    return " ".join(text.split())
