"""
Type definitions for the Chant Reminder.

This module defines the data structures shared by the matching engine, the
session controller and the speech sources: the precomputed mantra index, the
per-session state and the messages delivered to a controller's inbox.
"""

from typing import FrozenSet, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class MantraIndex(BaseModel):
    """
    Precomputed comparison candidates for a saved mantra.

    Built once per mantra change and never mutated afterwards.

    Attributes:
        raw_phrase: Saved phrase, lowercased and trimmed
        tokens: Whitespace-split words of raw_phrase
        concatenated: Tokens joined with no separator
        canonical_tokens: Canonical form of each token
        canonical_phrase: Canonical form of the concatenated phrase
        candidate_set: Every raw and canonical variant used for substring matching
    """

    model_config = ConfigDict(frozen=True)

    raw_phrase: str = Field(default="", description="Saved phrase, lowercase and trimmed")
    tokens: Tuple[str, ...] = Field(default_factory=tuple, description="Whitespace-split words")
    concatenated: str = Field(default="", description="Tokens joined without separator")
    canonical_tokens: FrozenSet[str] = Field(default_factory=frozenset, description="Canonical form of each token")
    canonical_phrase: str = Field(default="", description="Canonical form of the concatenated phrase")
    candidate_set: FrozenSet[str] = Field(default_factory=frozenset, description="Candidates for substring matching")

    @property
    def is_empty(self) -> bool:
        """An empty index can never match."""
        return not self.candidate_set


class Fragment(BaseModel):
    """
    One unit of speech-recognition output.
    """

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="Top-choice transcript text")
    is_final: bool = Field(default=True, description="Final result (True) or interim (False)")
    confidence: float = Field(default=1.0, ge=0.0, le=1.0, description="Recognizer confidence")


class SourceEvent(BaseModel):
    """
    Lifecycle notification from a speech source.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["ended", "errored"] = Field(..., description="Why the source stopped delivering")
    detail: Optional[str] = Field(default=None, description="Error description, if any")


class Tick(BaseModel):
    """
    Periodic message posted by a scheduler.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["elapsed", "silence"] = Field(..., description="Which periodic action is due")


class SessionState(BaseModel):
    """
    Mutable state of one listening session.

    Timestamps are monotonic clock values in milliseconds. A cleared mismatch
    cooldown is represented by None (the epoch).
    """

    is_active: bool = Field(default=False)
    chant_elapsed_sec: int = Field(default=0, ge=0, description="Seconds since the last reminder")
    started_at: float = Field(default=0.0)
    last_valid_utterance_at: float = Field(default=0.0)
    last_mismatch_reminder_at: Optional[float] = Field(default=None)
    live_final_text: str = Field(default="")
    live_interim_text: str = Field(default="")
    reminder_count: int = Field(default=0, ge=0)
    last_reminder_reason: Optional[Literal["silence", "mismatch"]] = Field(default=None)
