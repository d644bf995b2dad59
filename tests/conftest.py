"""Shared test fixtures for the lesson_review test suite.

WHY: Windowing, batch, formatter, server, and CLI tests all need the same
sample transcript and the same well-formed model output. Centralizing
them here keeps the expected windows consistent across modules.

HOW: Pytest fixtures provide a raw transcript with a header, CRLF line
endings, and a gap between windows; a valid WindowAnalysis payload as the
model would return it; and a FakeAnalyzer that answers per window text
without any network access.

RULES:
- SAMPLE_TRANSCRIPT produces exactly two 20-minute windows (index 0 and 2)
- ANALYSIS_PAYLOAD validates against WindowAnalysis unchanged
- No test in the suite talks to a real vendor
"""

from __future__ import annotations

import copy
from typing import Any, Dict, Optional

import pytest

from lesson_review.api.analyzer import AnalysisError
from lesson_review.api.schemas import WindowAnalysis


# ---------------------------------------------------------------------------
# Sample transcript
# ---------------------------------------------------------------------------

SAMPLE_TRANSCRIPT = (
    "Class 12 - Travel English\r\n"
    "Teacher: Ana\r\n"
    "00:00:05\r\n"
    "Ana: Good morning everyone.\r\n"
    "Leo: Good morning, I am go to Lisbon next week.\r\n"
    "\r\n"
    "\r\n"
    "00:12:40\r\n"
    "Ana: What will you visit?\r\n"
    "00:45:10\r\n"
    "Mia: I have visited the castle yesterday.\r\n"
)


# ---------------------------------------------------------------------------
# Model output
# ---------------------------------------------------------------------------

ANALYSIS_PAYLOAD: Dict[str, Any] = {
    "schema_version": "dillo.window.v1",
    "sentences": [
        {
            "timestamp": "00:00:05",
            "original": "I am go to Lisbon next week.",
            "level_detected": "A2",
            "selection_reason": {"type": "grammar", "note": "Wrong verb form after am."},
            "alternatives": [
                {
                    "level": "B2",
                    "phrase": "I'm going to Lisbon next week.",
                    "explanation": "Present continuous for a fixed plan.",
                },
            ],
        },
    ],
    "vocabulary": [
        {"word": "itinerary", "IPA": "aɪˈtɪnəˌrɛri", "definition": "A planned route for a trip."},
        {"word": "layover", "IPA": "ˈleɪˌoʊvɚ", "definition": "A short stop between two flights."},
    ],
    "counts": {"sentence_count": 99, "vocab_count": 99},
}


def make_analysis(
    original: str = "I am go to Lisbon next week.",
    words: Optional[list] = None,
) -> WindowAnalysis:
    """Build a WindowAnalysis with one sentence and the given vocabulary words."""
    payload = copy.deepcopy(ANALYSIS_PAYLOAD)
    payload["sentences"][0]["original"] = original
    if words is not None:
        payload["vocabulary"] = [
            {"word": w, "IPA": "ipa", "definition": "Definition of {}.".format(w)}
            for w in words
        ]
    return WindowAnalysis.model_validate(payload).with_counts()


class FakeAnalyzer:
    """Async analyzer stand-in keyed by window text.

    responses maps a window's text to either a WindowAnalysis or an
    exception instance to raise. Unknown text gets make_analysis().
    Also works as an async context manager, like WindowAnalyzer.
    """

    def __init__(self, responses: Optional[Dict[str, Any]] = None) -> None:
        self.responses = responses or {}
        self.calls: list = []

    async def __aenter__(self) -> FakeAnalyzer:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        return None

    async def analyze(self, window_text: str, objectives: str = "") -> WindowAnalysis:
        self.calls.append((window_text, objectives))
        if not window_text:
            raise AnalysisError("windowText must be a non-empty string", code="invalid_input")
        response = self.responses.get(window_text)
        if isinstance(response, Exception):
            raise response
        if response is None:
            return make_analysis()
        return response


@pytest.fixture
def sample_transcript() -> str:
    return SAMPLE_TRANSCRIPT


@pytest.fixture
def analysis_payload() -> Dict[str, Any]:
    return copy.deepcopy(ANALYSIS_PAYLOAD)


@pytest.fixture
def fake_analyzer() -> FakeAnalyzer:
    return FakeAnalyzer()


@pytest.fixture
def build_analysis():
    """The make_analysis() helper, for tests that need custom sentences or words."""
    return make_analysis


@pytest.fixture
def analyzer_cls():
    """The FakeAnalyzer class, for tests that configure per-window responses."""
    return FakeAnalyzer
