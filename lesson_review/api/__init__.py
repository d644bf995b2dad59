"""External collaborator clients — window analysis and pronunciation scoring.

WHY: The windowing engine produces windows; turning them into feedback
needs two vendor services. This package encapsulates all vendor HTTP
communication behind async client classes.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. WindowAnalyzer talks to
the chat model; SpeechScoreClient talks to the pronunciation vendor.
Model output is validated with the pydantic schemas in schemas.py; vendor
scores are normalized by the dataclasses in models.py.

RULES:
- All vendor HTTP calls go through these clients (no direct httpx elsewhere)
- Every client error carries a coarse, client-facing code
"""

from lesson_review.api.analyzer import AnalysisError, WindowAnalyzer
from lesson_review.api.schemas import WindowAnalysis
from lesson_review.api.speech import SpeechScoreClient, SpeechScoreError

__all__ = [
    "AnalysisError",
    "SpeechScoreClient",
    "SpeechScoreError",
    "WindowAnalysis",
    "WindowAnalyzer",
]
