"""
Phonetic canonicalization of chant text.

Speech recognizers spell the same spoken sound in many ways ("raam", "ram",
"raama"). Canonical forms collapse these transliteration variants so they
compare equal.
"""

import re
import unicodedata

# Latin letters plus the Devanagari block
NON_LETTER_PATTERN = re.compile(r"[^a-z\u0900-\u097F]")
COMBINING_MARK_PATTERN = re.compile(r"[\u0300-\u036f]")

A_RUN_PATTERN = re.compile(r"a+")
EE_RUN_PATTERN = re.compile(r"e{2,}")
I_RUN_PATTERN = re.compile(r"i+")
OO_RUN_PATTERN = re.compile(r"o{2,}")
U_RUN_PATTERN = re.compile(r"u+")


def strip_diacritics(text: str) -> str:
    """Decompose accented characters and drop the combining marks."""
    return COMBINING_MARK_PATTERN.sub("", unicodedata.normalize("NFD", text))


def letters_only(text: str) -> str:
    """Keep only lowercase Latin letters and Devanagari characters."""
    return NON_LETTER_PATTERN.sub("", text)


def canonicalize(text: str) -> str:
    """
    Normalize text for fuzzy phonetic comparison.

    Order matters: diacritics are stripped and case folded before filtering,
    and "ee"/"oo" are rewritten before their vowel runs collapse so that the
    result is stable under a second pass.

    Args:
        text: Any text, possibly empty

    Returns:
        Canonical form containing only a-z and Devanagari characters
    """
    if not text:
        return ""

    result = letters_only(strip_diacritics(text).lower())
    result = A_RUN_PATTERN.sub("a", result)
    result = EE_RUN_PATTERN.sub("i", result)
    result = I_RUN_PATTERN.sub("i", result)
    result = OO_RUN_PATTERN.sub("u", result)
    result = U_RUN_PATTERN.sub("u", result)
    return result
