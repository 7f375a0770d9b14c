# vigia/services/text_norm.py
"""
Text normalization shared by the guardrail and the feature extractor.

`fold` strips diacritics and lowercases. `normalize_aggressive` additionally
undoes common leet/homoglyph substitutions, and `tight_form` drops every
non-alphanumeric character so spaced or punctuated spellings collapse
(`p o l i c i a` -> `policia`).
"""
from __future__ import annotations

import re
import unicodedata
from typing import Iterable, List, Tuple

LEET_MAP = {
    "0": "o", "1": "i", "2": "z", "3": "e", "4": "a", "5": "s", "6": "g",
    "7": "t", "8": "b", "9": "g", "$": "s", "@": "a", "!": "i", "|": "i",
    "€": "e", "£": "l",
}
HOMO_MAP = {"ß": "ss", "ñ": "n", "ø": "o", "ð": "d", "þ": "p", "æ": "ae", "œ": "oe"}

_WS_RE = re.compile(r"[^\S\r\n]+")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_REPEAT_RE = re.compile(r"([a-z0-9])\1{2,}")


def _strip_marks(s: str) -> str:
    decomposed = unicodedata.normalize("NFD", s)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def fold(s: str) -> str:
    """Diacritic- and case-fold."""
    return _strip_marks(str(s or "")).lower()


def normalize_aggressive(s: str) -> str:
    out = _WS_RE.sub(" ", fold(s))
    return "".join(LEET_MAP.get(ch) or HOMO_MAP.get(ch) or ch for ch in out)


def tight_form(s: str) -> str:
    out = _NON_ALNUM_RE.sub("", normalize_aggressive(s))
    return _REPEAT_RE.sub(r"\1\1", out)


def tokens(s: str) -> List[str]:
    return [t for t in _NON_ALNUM_RE.split(normalize_aggressive(s)) if t]


def _folded_with_index(text: str) -> Tuple[str, List[int]]:
    """Folded text plus, for each folded char, its index in `text`."""
    chars: List[str] = []
    index: List[int] = []
    for i, ch in enumerate(text):
        for f in fold(ch):
            chars.append(f)
            index.append(i)
    return "".join(chars), index


def replace_folded(
    text: str,
    needles: Iterable[str],
    replacement: str,
    *,
    whole_word: bool = False,
) -> str:
    """
    Replace every diacritic/case-insensitive occurrence of each needle in
    `text`, leaving the rest of the original text (case, accents) intact.
    """
    out = str(text or "")
    for raw in needles:
        needle = fold(raw).strip()
        if not needle or not out:
            continue
        folded, index = _folded_with_index(out)
        pattern = re.escape(needle)
        if whole_word:
            pattern = rf"(?<![a-z0-9]){pattern}(?![a-z0-9])"
        spans = [(m.start(), m.end()) for m in re.finditer(pattern, folded)]
        if not spans:
            continue
        pieces: List[str] = []
        cursor = 0
        for start, end in spans:
            o_start = index[start]
            o_end = index[end - 1] + 1
            pieces.append(out[cursor:o_start])
            pieces.append(replacement)
            cursor = o_end
        pieces.append(out[cursor:])
        out = "".join(pieces)
    return out
