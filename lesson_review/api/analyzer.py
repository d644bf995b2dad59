"""Async client that asks a language model to analyze one transcript window.

WHY: Each window needs student-sentence feedback and vocabulary, produced
by a chat model as strict JSON. Models occasionally rate-limit, fail, or
return malformed output, so the call is wrapped in model fallback, one
retry for transient errors, and schema validation.

HOW: Uses httpx.AsyncClient against the OpenAI Chat Completions API in
JSON mode. WindowAnalyzer is an async context manager — enter it to get
an authenticated client, exit to close the connection pool. analyze()
walks the model priority list; for each model it makes up to two
attempts, sleeping briefly before retrying a 429/5xx. The first response
that parses and validates against WindowAnalysis wins.

RULES:
- Always use the async context manager (async with WindowAnalyzer() as a: ...)
- Empty window text → InvalidInputError; > MAX_WINDOW_CHARS → InputTooLargeError
- Retry the same model once only for HTTP 429 and 5xx
- Bad JSON, schema violations, network errors → move to the next model
- All models exhausted → BadModelOutputError
- Every AnalysisError carries a coarse, client-facing code
- counts in the returned analysis always match the list lengths
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
import time
import uuid
from typing import Any

import httpx
from pydantic import ValidationError

from lesson_review.api.schemas import SCHEMA_VERSION, WindowAnalysis
from lesson_review.config import (
    MAX_WINDOW_CHARS,
    OPENAI_BASE_URL,
    OPENAI_MODELS,
    OPENAI_TIMEOUT_S,
    TEACHER_NAME,
    MissingAPIKeyError,
    load_openai_api_key,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_ATTEMPTS_PER_MODEL = 2
_RETRY_DELAY_RANGE_S = (0.8, 1.5)
_LOG_BODY_MAX_CHARS = 3000


class AnalysisError(Exception):
    """Base class for window analysis failures.

    RULES:
    - code is a stable, client-facing classification string
    - message is human-readable and may include vendor details
    """

    code = "server_error"

    def __init__(self, message: str, code: str | None = None) -> None:
        if code is not None:
            self.code = code
        self.message = message
        super().__init__(message)


class InvalidInputError(AnalysisError):
    code = "invalid_input"


class InputTooLargeError(AnalysisError):
    code = "input_too_large"


class MissingOpenAIKeyError(AnalysisError):
    code = "missing_openai_key"


class BadModelOutputError(AnalysisError):
    """Raised when every model in the priority list failed."""

    code = "bad_model_output"


class ModelCallError(Exception):
    """One failed attempt against one model.

    Internal to the fallback loop; never escapes analyze().
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        code = self.status_code
        return code is not None and (code == 429 or 500 <= code < 600)


def _cut(text: str, max_len: int = _LOG_BODY_MAX_CHARS) -> str:
    return text[:max_len] + "..." if len(text) > max_len else text


def build_system_prompt(teacher_name: str | None = None) -> str:
    """Build the instruction prompt sent with every window."""
    teacher_rule = (
        '- The teacher is "{}". Their lines are context only.\n'.format(teacher_name)
        if teacher_name else
        "- The teacher is whoever leads the class. Their lines are context only.\n"
    )
    return (
        "Return ONLY a single JSON object. No prose, no markdown, no code fences.\n"
        "\n"
        "Rules:\n"
        + teacher_rule +
        "- Consider teacher and students when selecting vocabulary (B2–C2 range).\n"
        "- Sentences must be student-only. Few student lines means few sentences, even 0.\n"
        "- For each sentence give selection_reason {type, note} where type is one of\n"
        "  grammar, natural, concise, and 1–3 alternatives {level, phrase, explanation}\n"
        "  at levels B2, C1 or C2. Keep the meaning; explanations under 160 chars.\n"
        "- No IPA for sentences. Vocabulary uses American English IPA, definitions\n"
        "  of at most 15 words, no named entities, no duplicates.\n"
        "\n"
        "Shape:\n"
        '{"schema_version":"' + SCHEMA_VERSION + '",'
        '"sentences":[{"timestamp":"HH:MM:SS or null","original":"...",'
        '"level_detected":"A2|B1|B2|C1","selection_reason":{"type":"grammar","note":"..."},'
        '"alternatives":[{"level":"B2","phrase":"...","explanation":"..."}]}],'
        '"vocabulary":[{"word":"...","IPA":"...","definition":"..."}],'
        '"counts":{"sentence_count":0,"vocab_count":0}}'
    )


class WindowAnalyzer:
    """Async client for per-window language analysis.

    WHY: Gives the batch runner, the HTTP API, and the CLI one call —
    analyze(text, objectives) — that hides model selection, retries, and
    validation.

    HOW: Wraps httpx.AsyncClient with Bearer auth. Use as an async context
    manager so the connection pool is closed.

    RULES:
    - api_key defaults to load_openai_api_key() from .env
    - models defaults to OPENAI_MODELS from config (priority order)
    - transport is for tests (httpx.MockTransport)
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        models: list[str] | None = None,
        teacher_name: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        try:
            self._api_key = api_key or load_openai_api_key()
        except MissingAPIKeyError as exc:
            raise MissingOpenAIKeyError(str(exc)) from exc
        self._base_url = (base_url or OPENAI_BASE_URL).rstrip("/")
        self._models = list(models or OPENAI_MODELS)
        self._system_prompt = build_system_prompt(teacher_name or TEACHER_NAME)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> WindowAnalyzer:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Authorization": f"Bearer {self._api_key}"},
            timeout=httpx.Timeout(OPENAI_TIMEOUT_S, connect=10.0),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "WindowAnalyzer must be used as an async context manager: "
                "async with WindowAnalyzer() as analyzer: ..."
            )
        return self._client

    async def analyze(self, window_text: str, objectives: str = "") -> WindowAnalysis:
        """Analyze one window of transcript text.

        Args:
            window_text: The window's cleaned text.
            objectives: Free-text learning objectives for the class.

        Returns:
            A validated WindowAnalysis with counts filled in.

        Raises:
            InvalidInputError: window_text is empty or not a string.
            InputTooLargeError: window_text exceeds MAX_WINDOW_CHARS.
            BadModelOutputError: every model failed.
        """
        client = self._ensure_client()

        if not isinstance(window_text, str) or not window_text.strip():
            raise InvalidInputError("windowText must be a non-empty string")
        if len(window_text) > MAX_WINDOW_CHARS:
            raise InputTooLargeError(
                "windowText is {:,} characters (limit {:,})".format(
                    len(window_text), MAX_WINDOW_CHARS
                )
            )
        if not isinstance(objectives, str):
            objectives = ""

        request_id = uuid.uuid4().hex[:12]
        request_start = time.monotonic()
        logger.info(
            "request_received request=%s input_chars=%d objectives_len=%d",
            request_id, len(window_text), len(objectives),
        )

        for model in self._models:
            for attempt in range(1, _ATTEMPTS_PER_MODEL + 1):
                attempt_start = time.monotonic()
                logger.info(
                    "llm_attempt_start request=%s model=%s attempt=%d",
                    request_id, model, attempt,
                )
                try:
                    analysis = await self._request(client, model, window_text, objectives)
                except ModelCallError as exc:
                    logger.error(
                        "llm_attempt_error request=%s model=%s attempt=%d "
                        "elapsed_ms=%d status=%s message=%s",
                        request_id, model, attempt,
                        (time.monotonic() - attempt_start) * 1000,
                        exc.status_code, exc,
                    )
                    if exc.retryable and attempt < _ATTEMPTS_PER_MODEL:
                        await asyncio.sleep(random.uniform(*_RETRY_DELAY_RANGE_S))
                        continue
                    break

                logger.info(
                    "llm_attempt_success request=%s model=%s attempt=%d elapsed_ms=%d "
                    "sentences=%d vocabulary=%d total_ms=%d",
                    request_id, model, attempt,
                    (time.monotonic() - attempt_start) * 1000,
                    len(analysis.sentences), len(analysis.vocabulary),
                    (time.monotonic() - request_start) * 1000,
                )
                return analysis

        logger.error("request_failure request=%s all models failed after retries", request_id)
        raise BadModelOutputError("All models failed after retries")

    async def _request(
        self,
        client: httpx.AsyncClient,
        model: str,
        window_text: str,
        objectives: str,
    ) -> WindowAnalysis:
        """Make a single chat completion call and validate its JSON."""
        body: dict[str, Any] = {
            "model": model,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": self._system_prompt},
                {
                    "role": "user",
                    "content": json.dumps(
                        {"window": window_text, "objectives": objectives},
                        ensure_ascii=False,
                    ),
                },
            ],
        }

        try:
            resp = await client.post("/chat/completions", json=body)
        except httpx.HTTPError as exc:
            raise ModelCallError("{}: {}".format(type(exc).__name__, exc)) from exc

        if resp.status_code != 200:
            raise ModelCallError(_cut(resp.text), status_code=resp.status_code)

        try:
            content = resp.json()["choices"][0]["message"]["content"]
            payload = json.loads(content)
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ModelCallError("Unparseable model output: {}".format(exc)) from exc

        try:
            analysis = WindowAnalysis.model_validate(payload)
        except ValidationError as exc:
            issues = "; ".join(
                "{}: {}".format(".".join(str(p) for p in err["loc"]), err["msg"])
                for err in exc.errors()[:8]
            )
            raise ModelCallError("Schema validation failed: {}".format(issues)) from exc

        return analysis.with_counts()
