"""Async client for the Language Confidence pronunciation-scoring API.

WHY: Learners practise the suggested rewrites aloud. The recording and
the expected sentence are scored by an external vendor; this module
validates the request, talks to the vendor, and maps its response onto
the normalized SpeechScore.

HOW: Uses httpx.AsyncClient. SpeechScoreClient is an async context
manager. score() validates input, maps the MIME type to the vendor's
audio_format, normalizes the accent into the URL path, POSTs the audio,
and builds a SpeechScore via SpeechScore.from_vendor().

RULES:
- expected_text: 1–500 characters
- audio: mime, base64 and numeric duration_ms are required
- duration_ms > 10,000 → code "audio_too_long"
- MIME parameters are ignored; an unsupported base type → "invalid_input"
- Vendor non-2xx → VendorError ("vendor_error")
- Vendor timeout (15 s) → VendorTimeoutError ("timeout")
- The api-key header carries the key; x-user-id is forwarded when known
"""

from __future__ import annotations

import logging
import time
from urllib.parse import quote

import httpx

from lesson_review.api.models import SpeechAudio, SpeechScore
from lesson_review.config import (
    LC_BASE_URL,
    SPEECH_MAX_DURATION_MS,
    SPEECH_MAX_TEXT_CHARS,
    SPEECH_TIMEOUT_S,
    load_speech_api_key,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Format and accent mapping
# ---------------------------------------------------------------------------

MIME_TO_FORMAT: dict[str, str] = {
    "audio/wav": "wav",
    "audio/mpeg": "mp3",
    "audio/ogg": "ogg",
    "audio/m4a": "m4a",
    "audio/webm": "webm",
    "audio/mp4": "mp4",
    "audio/aac": "aac",
}

_MIME_ALIASES: dict[str, str] = {
    "audio/x-wav": "audio/wav",
    "audio/x-m4a": "audio/m4a",
    "audio/mp3": "audio/mpeg",
}

_ACCENT_ALIASES: dict[str, str] = {
    "en-us": "us",
    "en-gb": "gb",
    "gb-en": "gb",
    "uk": "gb",
    "en-uk": "gb",
    "en-au": "au",
    "au-en": "au",
}

_LOG_BODY_MAX_CHARS = 2000


class SpeechScoreError(Exception):
    """Base class for pronunciation-scoring failures.

    RULES:
    - code is a stable, client-facing classification string
    """

    code = "server_error"

    def __init__(self, message: str, code: str | None = None) -> None:
        if code is not None:
            self.code = code
        self.message = message
        super().__init__(message)


class InvalidSpeechInputError(SpeechScoreError):
    code = "invalid_input"


class VendorError(SpeechScoreError):
    """Raised when the vendor answers with a non-2xx status."""

    code = "vendor_error"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class VendorTimeoutError(SpeechScoreError):
    code = "timeout"


def canonicalize_mime(mime: str) -> str:
    """Reduce a recorder MIME type to its canonical base type.

    Parameters are dropped and aliases resolved, so
    "audio/webm;codecs=opus" → "audio/webm" and "audio/x-wav" → "audio/wav".
    Unknown base types come back unchanged (lowercased) for the caller to
    reject.
    """
    base = mime.split(";")[0].strip().lower()
    return _MIME_ALIASES.get(base, base)


def normalize_accent(accent: str | None) -> str:
    """Map accent spellings onto the vendor's path parameter (us, gb, au, ...)."""
    if not accent:
        return "us"
    value = accent.lower()
    return _ACCENT_ALIASES.get(value, value)


def validate_request(expected_text: str, audio: SpeechAudio) -> str:
    """Validate a scoring request and return the vendor audio_format.

    MIME parameters and aliases are accepted ("audio/webm;codecs=opus",
    "audio/x-wav"); a base type outside MIME_TO_FORMAT is rejected.

    Raises:
        InvalidSpeechInputError: with code "invalid_input" or "audio_too_long".
    """
    if (
        not isinstance(expected_text, str)
        or not expected_text
        or len(expected_text) > SPEECH_MAX_TEXT_CHARS
    ):
        raise InvalidSpeechInputError(
            "expectedText (1–{} chars) required".format(SPEECH_MAX_TEXT_CHARS)
        )
    duration = audio.duration_ms
    if (
        not isinstance(audio.base64, str)
        or not audio.base64
        or not isinstance(audio.mime, str)
        or not audio.mime
        or isinstance(duration, bool)
        or not isinstance(duration, (int, float))
    ):
        raise InvalidSpeechInputError("audio {mime, base64, durationMs} required")
    if duration > SPEECH_MAX_DURATION_MS:
        raise InvalidSpeechInputError(
            "Max {} seconds".format(SPEECH_MAX_DURATION_MS // 1000),
            code="audio_too_long",
        )
    audio_format = MIME_TO_FORMAT.get(canonicalize_mime(audio.mime))
    if audio_format is None:
        raise InvalidSpeechInputError("Unsupported audio MIME")
    return audio_format


class SpeechScoreClient:
    """Async client for pronunciation scoring.

    RULES:
    - Use as: async with SpeechScoreClient() as client: ...
    - api_key defaults to load_speech_api_key() from .env
    - transport is for tests (httpx.MockTransport)
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key or load_speech_api_key()
        self._base_url = (base_url or LC_BASE_URL).rstrip("/")
        self._timeout_s = timeout_s if timeout_s is not None else SPEECH_TIMEOUT_S
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> SpeechScoreClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Accept": "application/json",
                "api-key": self._api_key,
            },
            timeout=httpx.Timeout(self._timeout_s),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(
                "SpeechScoreClient must be used as an async context manager: "
                "async with SpeechScoreClient() as client: ..."
            )
        return self._client

    async def score(
        self,
        expected_text: str,
        audio: SpeechAudio,
        accent: str | None = None,
        user_id: str | None = None,
    ) -> SpeechScore:
        """Score a recording against the sentence the learner meant to say.

        Args:
            expected_text: The target sentence.
            audio: The recording (≤ 10 s).
            accent: Accent hint such as "en-us", "gb", "au".
            user_id: Optional caller identity, forwarded as x-user-id.

        Returns:
            Normalized SpeechScore.
        """
        client = self._ensure_client()
        audio_format = validate_request(expected_text, audio)
        accent_key = normalize_accent(accent)

        headers = {"x-user-id": user_id} if user_id else None
        started = time.monotonic()

        try:
            resp = await client.post(
                "/pronunciation/{}".format(quote(accent_key, safe="")),
                json={
                    "audio_base64": audio.base64,
                    "audio_format": audio_format,
                    "expected_text": expected_text,
                    "user_metadata": {},
                },
                headers=headers,
            )
        except httpx.TimeoutException as exc:
            raise VendorTimeoutError("Request timeout") from exc

        if not resp.is_success:
            body = resp.text
            if len(body) > _LOG_BODY_MAX_CHARS:
                body = body[:_LOG_BODY_MAX_CHARS] + "…[truncated]"
            logger.error("Vendor error %s: %s", resp.status_code, body)
            raise VendorError(
                "Vendor HTTP {}".format(resp.status_code),
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        processing_ms = int((time.monotonic() - started) * 1000)
        return SpeechScore.from_vendor(data, accent=accent_key, processing_ms=processing_ms)
