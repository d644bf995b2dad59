"""Pydantic schema for the per-window analysis returned by the language model.

WHY: The model is asked for JSON in a fixed shape, but nothing guarantees
it complies. Every response is validated against this schema before it
reaches callers, so downstream code (batch merge, formatters, HTTP API)
can rely on field presence and bounds.

HOW: One BaseModel per JSON object. Length limits and closed vocabularies
(CEFR levels, selection reasons) are expressed with Field constraints and
Literal types. Unknown keys sent by the model are ignored.

RULES:
- schema_version is always "dillo.window.v1"
- Each sentence has 1–3 alternatives at B2, C1, or C2 level
- counts is optional on input; WindowAnalysis.with_counts() overwrites it
  with the real list lengths
- Python 3.9+ compatible (no PEP 604 unions in pydantic models)
"""

from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

SCHEMA_VERSION = "dillo.window.v1"


class Alternative(BaseModel):
    """A higher-level rewrite of a student sentence."""

    level: Literal["B2", "C1", "C2"] = Field(description="Target CEFR level.")
    phrase: str = Field(min_length=1, max_length=220, description="Rewritten sentence.")
    explanation: str = Field(
        min_length=3, max_length=180, description="Why this rewrite is better."
    )


class SelectionReason(BaseModel):
    """Why a sentence was picked for feedback."""

    type: Literal["grammar", "natural", "concise"] = Field(
        description="Impact category of the issue."
    )
    note: str = Field(min_length=3, max_length=240, description="Short description of the issue.")


class Sentence(BaseModel):
    """A student sentence selected for improvement, with alternatives."""

    timestamp: Optional[str] = Field(description="HH:MM:SS of the sentence, or null.")
    original: str = Field(min_length=1, max_length=400, description="Sentence as spoken.")
    level_detected: Optional[Literal["A2", "B1", "B2", "C1"]] = Field(
        default=None, description="Estimated CEFR level of the original."
    )
    selection_reason: SelectionReason
    alternatives: List[Alternative] = Field(min_length=1, max_length=3)


class VocabEntry(BaseModel):
    """A vocabulary item with American English IPA and a short definition."""

    word: str = Field(min_length=1, max_length=60)
    IPA: str = Field(min_length=1, max_length=64)
    definition: str = Field(min_length=3, max_length=160)


class Counts(BaseModel):
    sentence_count: int = Field(ge=0)
    vocab_count: int = Field(ge=0)


class WindowAnalysis(BaseModel):
    """The complete analysis of one transcript window."""

    schema_version: Literal["dillo.window.v1"]
    sentences: List[Sentence]
    vocabulary: List[VocabEntry]
    counts: Optional[Counts] = None

    def with_counts(self) -> WindowAnalysis:
        """Return a copy whose counts match the sentence and vocabulary lists."""
        return self.model_copy(update={
            "counts": Counts(
                sentence_count=len(self.sentences),
                vocab_count=len(self.vocabulary),
            ),
        })
