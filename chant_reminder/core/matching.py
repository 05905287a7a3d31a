"""
Match engine: decides whether a speech fragment is on chant.

Matching is substring based so partial chanting counts ("ram ram" against
"sita ram"), and canonicalization absorbs transliteration noise. Neither
function ever raises; degenerate input simply does not match.
"""

import re

from .canonical import canonicalize, letters_only
from .types import MantraIndex

WHITESPACE_PATTERN = re.compile(r"\s+")

# Mismatch heuristic thresholds
NOISE_MAX_LETTERS = 3
NOISE_MAX_CONFIDENCE = 0.5
FLAG_MIN_CONFIDENCE = 0.25
FLAG_MIN_LETTERS = 4


def is_match(fragment: str, index: MantraIndex) -> bool:
    """
    Check whether a fragment contains any mantra candidate.

    The fragment is compared twice: canonicalized with whitespace removed
    against each canonical candidate, and canonicalized with whitespace kept
    against each raw candidate. A candidate without letters (e.g. "!!!") can
    only match the lowercased fragment literally.

    Args:
        fragment: Transcript text from the recognizer
        index: Precomputed mantra index

    Returns:
        True if any candidate occurs in the fragment
    """
    if index.is_empty or not fragment:
        return False

    lowered = fragment.lower()
    merged = canonicalize(WHITESPACE_PATTERN.sub("", lowered))
    spaced = canonicalize(lowered)
    plain = WHITESPACE_PATTERN.sub(" ", lowered).strip()

    for candidate in index.candidate_set:
        canonical_candidate = canonicalize(WHITESPACE_PATTERN.sub("", candidate))
        if not canonical_candidate:
            # Would match anything canonically; compare it verbatim instead
            if candidate in plain:
                return True
            continue
        if canonical_candidate in merged or candidate in spaced:
            return True

    return False


def is_mismatch_worth_flagging(fragment: str, confidence: float, index: MantraIndex) -> bool:
    """
    Decide whether a final, non-matching fragment is real unrelated speech.

    Favors sensitivity: either a reasonable confidence or a meaningful number
    of letters is enough, but very short low-confidence fragments are treated
    as background noise.

    Args:
        fragment: Final transcript text
        confidence: Recognizer confidence in [0, 1]
        index: Precomputed mantra index

    Returns:
        True if a mismatch reminder is warranted
    """
    if is_match(fragment, index):
        return False

    letter_count = len(letters_only(fragment.lower()))
    if letter_count < NOISE_MAX_LETTERS and confidence < NOISE_MAX_CONFIDENCE:
        return False

    return confidence >= FLAG_MIN_CONFIDENCE or letter_count >= FLAG_MIN_LETTERS
