"""
Mantra index construction.

The index holds every raw and canonical variant of the saved phrase so the
match engine can run plain substring checks against a noisy fragment.
"""

from typing import Optional

from .canonical import canonicalize
from .timing import timer
from .types import MantraIndex


@timer
def build_index(phrase: Optional[str]) -> MantraIndex:
    """
    Build the comparison candidates for a saved phrase.

    Args:
        phrase: The saved mantra; None or blank yields the empty index

    Returns:
        Immutable MantraIndex
    """
    raw_phrase = (phrase or "").strip().lower()
    tokens = tuple(raw_phrase.split())
    concatenated = "".join(tokens)
    canonical_tokens = frozenset(canonicalize(token) for token in tokens)
    canonical_phrase = canonicalize(concatenated)

    candidates = {*tokens, concatenated, raw_phrase, canonical_phrase, *canonical_tokens}
    # Empty variants would match every fragment
    candidates.discard("")

    return MantraIndex(
        raw_phrase=raw_phrase,
        tokens=tokens,
        concatenated=concatenated,
        canonical_tokens=canonical_tokens - {""},
        canonical_phrase=canonical_phrase,
        candidate_set=frozenset(candidates),
    )
