"""Configuration constants, vendor endpoints, and .env loading.

WHY: Centralizes all configurable values so they are easy to find,
update, and override. Window sizing, concurrency, input limits, model
priority, and vendor URLs are plain data — not buried in logic.

HOW: python-dotenv loads the .env file on import. Constants are defined
as module-level values read from the environment with defaults. The
load_*_api_key() functions provide a clear error when a key is missing.

RULES:
- API keys are loaded from .env via python-dotenv, never hardcoded
- All defaults can be overridden via environment variables
- Missing keys raise MissingAPIKeyError (a ValueError) with the variable name
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

# Load .env from the project root (where the script is run from)
load_dotenv()

# ---------------------------------------------------------------------------
# Windowing and batch defaults
# ---------------------------------------------------------------------------

DEFAULT_WINDOW_MINUTES = int(os.getenv("DEFAULT_WINDOW_MINUTES", "20"))
ANALYSIS_CONCURRENCY = int(os.getenv("ANALYSIS_CONCURRENCY", "3"))

MAX_WINDOW_CHARS = 50_000
"""Longest window text accepted by the analysis collaborator."""

# ---------------------------------------------------------------------------
# Window analysis (OpenAI)
# ---------------------------------------------------------------------------

OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
OPENAI_TIMEOUT_S = float(os.getenv("OPENAI_TIMEOUT_S", "60"))

_DEFAULT_MODELS = "gpt-4.1,gpt-4o-2024-08-06,gpt-4o-mini"
OPENAI_MODELS: list[str] = [
    m.strip() for m in os.getenv("OPENAI_MODELS", _DEFAULT_MODELS).split(",") if m.strip()
]
"""Model priority, most capable first. Later entries are fallbacks."""

TEACHER_NAME = os.getenv("TEACHER_NAME", "").strip() or None
"""Display name of the teacher in transcripts; their lines are not corrected."""

# ---------------------------------------------------------------------------
# Pronunciation scoring (Language Confidence)
# ---------------------------------------------------------------------------

LC_BASE_URL = os.getenv("LC_BASE_URL", "https://apis.languageconfidence.ai")
SPEECH_TIMEOUT_S = float(os.getenv("SPEECH_TIMEOUT_S", "15"))
SPEECH_MAX_DURATION_MS = 10_000
SPEECH_MAX_TEXT_CHARS = 500


class MissingAPIKeyError(ValueError):
    """Raised when a required API key is not configured."""


def load_openai_api_key() -> str:
    """Load the OpenAI API key from the environment.

    RULES:
    - Raises MissingAPIKeyError if OPENAI_API_KEY is missing or empty
    - Never returns a default/placeholder value
    """
    key = os.getenv("OPENAI_API_KEY", "").strip()
    if not key:
        raise MissingAPIKeyError(
            "OpenAI API key not configured. "
            "Add OPENAI_API_KEY to the .env file in the app folder."
        )
    return key


def load_speech_api_key() -> str:
    """Load the Language Confidence API key from the environment.

    Both LC_API_KEY and LANGUAGE_CONFIDENCE_API_KEY are accepted; the
    short name wins when both are set.
    """
    key = (
        os.getenv("LC_API_KEY", "").strip()
        or os.getenv("LANGUAGE_CONFIDENCE_API_KEY", "").strip()
    )
    if not key:
        raise MissingAPIKeyError(
            "Language Confidence API key not configured. "
            "Add LC_API_KEY to the .env file in the app folder."
        )
    return key
