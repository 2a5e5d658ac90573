"""Local IAST to Hunterian romanization."""

from __future__ import annotations

import unicodedata
from typing import Dict

# Every source character is distinct, so the order of application is irrelevant.
IAST_TO_HUNTERIAN: Dict[str, str] = {
    "ā": "a",
    "ī": "i",
    "ū": "u",
    "ṛ": "ri",
    "ṝ": "ri",
    "ḷ": "l",
    "ē": "e",
    "ō": "o",
    "ṃ": "m",
    "ḥ": "h",
    "ṅ": "ng",
    "ñ": "n",
    "ṭ": "t",
    "ḍ": "d",
    "ṇ": "n",
    "ś": "sh",
    "ṣ": "sh",
    "'": "",
}

_TRANSLATION_TABLE = str.maketrans(IAST_TO_HUNTERIAN)


def _is_latin(char: str) -> bool:
    return unicodedata.name(char, "").startswith("LATIN")


def strip_combining_marks(text: str) -> str:
    """Drop combining diacritics carried by Latin letters.

    Marks on any other script (Gujarati vowel signs, viramas) are kept.
    """

    kept = []
    latin_base = False
    for char in unicodedata.normalize("NFD", text):
        if unicodedata.category(char) == "Mn":
            if latin_base:
                continue
        else:
            latin_base = _is_latin(char)
        kept.append(char)
    return unicodedata.normalize("NFC", "".join(kept))


def iast_to_hunterian(text: str) -> str:
    """Convert IAST text to diacritic-free, lowercase Hunterian."""

    if not text:
        return text
    normalized = unicodedata.normalize("NFC", text).lower()
    return strip_combining_marks(normalized.translate(_TRANSLATION_TABLE))
