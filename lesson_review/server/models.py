"""Pydantic request/response models for the HTTP API.

WHY: The FastAPI endpoints need typed schemas for request parsing,
response serialization, and automatic OpenAPI documentation.

HOW: Each endpoint pair (request + response) has its own model. All
models include Field descriptions for rich OpenAPI docs. The collaborator
routes (/analyze-window, /speech-score) keep the camelCase field names
their browser clients already send.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Fields that the route validates itself (windowText, expectedText,
  audio) are typed Any, so bad input is answered with the route's own
  {ok: false, code} body instead of FastAPI's generic 422
- Python 3.9+ compatible (no PEP 604 unions, use Optional from typing)
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from lesson_review.config import DEFAULT_WINDOW_MINUTES


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class WindowsRequest(BaseModel):
    """A raw transcript to split into windows."""

    transcript: str = Field(description="Raw transcript text with HH:MM:SS marker lines.")
    window_minutes: int = Field(
        default=DEFAULT_WINDOW_MINUTES,
        ge=1,
        description="Window duration in minutes.",
    )


class AnalyzeWindowRequest(BaseModel):
    """One window of text to analyze."""

    windowText: Any = Field(default=None, description="The window's text (1–50,000 chars).")
    objectives: Any = Field(default="", description="Learning objectives for the class.")


class SpeechAudioPayload(BaseModel):
    mime: Any = Field(default=None, description="Audio MIME type, e.g. 'audio/webm'.")
    base64: Any = Field(default=None, description="Base64-encoded audio bytes.")
    durationMs: Any = Field(default=None, description="Recording length in ms (max 10,000).")


class SpeechScoreRequest(BaseModel):
    """A recording to score against the sentence the learner meant to say."""

    expectedText: Any = Field(default=None, description="Target sentence (1–500 chars).")
    audio: Optional[SpeechAudioPayload] = Field(default=None, description="The recording.")
    accent: Optional[str] = Field(default=None, description="Accent hint: 'en-us', 'gb', 'au', ...")
    userId: Optional[str] = Field(default=None, description="Forwarded to the vendor as x-user-id.")


class AnalysisRequest(BaseModel):
    """A whole transcript to window and analyze in the background."""

    transcript: str = Field(description="Raw transcript text with HH:MM:SS marker lines.")
    objectives: str = Field(default="", description="Learning objectives for the class.")
    window_minutes: int = Field(
        default=DEFAULT_WINDOW_MINUTES,
        ge=1,
        description="Window duration in minutes.",
    )
    source_name: str = Field(
        default="transcript",
        description="Name used for report filenames.",
    )


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class WindowModel(BaseModel):
    index: int = Field(description="Bucket index: floor(seconds / window_seconds).")
    from_: str = Field(alias="from", description="Window start, HH:MM:SS.")
    to: str = Field(description="Window end (inclusive), HH:MM:SS.")
    text: str = Field(description="Cleaned window text.")

    model_config = {"populate_by_name": True}


class FailureResponse(BaseModel):
    """Error body of the collaborator routes.

    RULES:
    - ok is always false
    - code is one of invalid_input, input_too_large, audio_too_long,
      bad_model_output, vendor_error, timeout, missing_openai_key,
      server_error
    """

    ok: bool = Field(default=False)
    code: str = Field(description="Coarse error classification.")
    message: Optional[str] = Field(default=None, description="Human-readable detail.")


class AnalyzeWindowResponse(BaseModel):
    ok: bool = Field(default=True)
    data: Dict[str, Any] = Field(description="WindowAnalysis (schema dillo.window.v1).")


class SpeechScoreResponse(BaseModel):
    ok: bool = Field(default=True)
    data: Dict[str, Any] = Field(description="Normalized pronunciation score.")


class AnalysisCreatedResponse(BaseModel):
    """Response returned when a new analysis job is submitted."""

    id: str = Field(description="Unique job identifier for polling status.")
    status: str = Field(description="Initial job status (always 'pending').")
    window_count: int = Field(description="Number of windows that will be analyzed.")

    model_config = {"json_schema_extra": {
        "examples": [
            {"id": "550e8400e29b41d4a716446655440000", "status": "pending", "window_count": 3}
        ]
    }}


class AnalysisJobResponse(BaseModel):
    """Analysis job status response.

    RULES:
    - progress and window_jobs are updated as each window finishes
    - sentences/vocabulary are only present when status is 'completed'
    - error is only set when status is 'failed'
    """

    id: str = Field(description="Unique job identifier.")
    status: str = Field(description="Current job status.")
    created_at: float = Field(description="Job creation timestamp (Unix epoch seconds).")
    config: Dict[str, Any] = Field(description="Source name, objectives, and window size.")
    windows: List[WindowModel] = Field(description="Windows being analyzed.")
    progress: Dict[str, int] = Field(description="Counters: total, done, failed.")
    window_jobs: List[Dict[str, Any]] = Field(description="Per-window status.")
    error: Optional[str] = Field(default=None, description="Error message when failed.")
    sentences: Optional[List[Dict[str, Any]]] = Field(
        default=None, description="Merged sentences, when completed."
    )
    vocabulary: Optional[List[Dict[str, Any]]] = Field(
        default=None, description="Deduplicated vocabulary, when completed."
    )


class FormatInfo(BaseModel):
    key: str = Field(description="Format identifier used in report URLs.")
    name: str = Field(description="Human-readable format name.")
    suffix: str = Field(description="File suffix produced (e.g. '-report.json').")


class ErrorResponse(BaseModel):
    """Standard error response body for job routes."""

    detail: str = Field(description="Human-readable error description.")


class HealthResponse(BaseModel):
    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="API version string.", json_schema_extra={"example": "0.1.0"})
