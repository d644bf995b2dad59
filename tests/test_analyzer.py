"""Tests for the window analysis client.

WHY: The analyzer hides model fallback, retries, and output validation
behind one call. A regression here either burns vendor quota (too many
retries) or leaks malformed model output to the batch and the API.

HOW: WindowAnalyzer is driven through httpx.MockTransport, so every
request is answered by a local handler that records which model was
asked. Retry sleeps are patched to zero. Async calls run via
asyncio.run() inside ordinary synchronous tests.

RULES:
- No test reaches the network
- Each handler counts requests per model to check retry/fallback order
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Dict, List

import httpx
import pytest

from lesson_review.api import analyzer as analyzer_module
from lesson_review.api.analyzer import (
    AnalysisError,
    BadModelOutputError,
    InputTooLargeError,
    InvalidInputError,
    MissingOpenAIKeyError,
    ModelCallError,
    WindowAnalyzer,
    build_system_prompt,
)
from lesson_review.config import MAX_WINDOW_CHARS

MODELS = ["model-a", "model-b", "model-c"]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _no_retry_delay(monkeypatch):
    monkeypatch.setattr(analyzer_module, "_RETRY_DELAY_RANGE_S", (0.0, 0.0))


def _completion(payload: Any) -> httpx.Response:
    content = payload if isinstance(payload, str) else json.dumps(payload)
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


class _Recorder:
    """MockTransport handler that answers from a per-model script."""

    def __init__(self, script: Dict[str, List[Callable[[], httpx.Response]]]) -> None:
        self.script = {model: list(steps) for model, steps in script.items()}
        self.models: List[str] = []
        self.bodies: List[Dict[str, Any]] = []
        self.headers: List[httpx.Headers] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.models.append(body["model"])
        self.bodies.append(body)
        self.headers.append(request.headers)
        steps = self.script.get(body["model"]) or []
        if not steps:
            return httpx.Response(500, text="no scripted response")
        return steps.pop(0)()


def _analyze(recorder: _Recorder, text: str = "Leo: I am go to Lisbon.", objectives: str = ""):
    async def _run():
        async with WindowAnalyzer(
            api_key="sk-test",
            base_url="https://llm.test/v1",
            models=MODELS,
            transport=httpx.MockTransport(recorder),
        ) as analyzer:
            return await analyzer.analyze(text, objectives)

    return asyncio.run(_run())


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


class TestAnalyzeSuccess:

    def test_first_model_success(self, analysis_payload):
        recorder = _Recorder({"model-a": [lambda: _completion(analysis_payload)]})
        analysis = _analyze(recorder)

        assert recorder.models == ["model-a"]
        assert analysis.schema_version == "dillo.window.v1"
        assert analysis.sentences[0].original == "I am go to Lisbon next week."
        assert [v.word for v in analysis.vocabulary] == ["itinerary", "layover"]

    def test_counts_are_overwritten(self, analysis_payload):
        recorder = _Recorder({"model-a": [lambda: _completion(analysis_payload)]})
        analysis = _analyze(recorder)
        assert analysis.counts.sentence_count == 1
        assert analysis.counts.vocab_count == 2

    def test_counts_filled_when_missing(self, analysis_payload):
        del analysis_payload["counts"]
        recorder = _Recorder({"model-a": [lambda: _completion(analysis_payload)]})
        analysis = _analyze(recorder)
        assert analysis.counts.sentence_count == 1

    def test_request_shape(self, analysis_payload):
        recorder = _Recorder({"model-a": [lambda: _completion(analysis_payload)]})
        _analyze(recorder, text="Leo: hello", objectives="past simple")

        body = recorder.bodies[0]
        assert body["response_format"] == {"type": "json_object"}
        assert body["messages"][0]["role"] == "system"
        user = json.loads(body["messages"][1]["content"])
        assert user == {"window": "Leo: hello", "objectives": "past simple"}
        assert recorder.headers[0]["authorization"] == "Bearer sk-test"

    def test_non_string_objectives_sent_as_empty(self, analysis_payload):
        recorder = _Recorder({"model-a": [lambda: _completion(analysis_payload)]})
        _analyze(recorder, objectives=None)
        user = json.loads(recorder.bodies[0]["messages"][1]["content"])
        assert user["objectives"] == ""

    def test_empty_sentence_list_is_valid(self, analysis_payload):
        analysis_payload["sentences"] = []
        recorder = _Recorder({"model-a": [lambda: _completion(analysis_payload)]})
        analysis = _analyze(recorder)
        assert analysis.sentences == []
        assert analysis.counts.sentence_count == 0


# ---------------------------------------------------------------------------
# Retries and fallback
# ---------------------------------------------------------------------------


class TestRetryAndFallback:

    def test_rate_limit_retries_same_model(self, analysis_payload):
        recorder = _Recorder({"model-a": [
            lambda: httpx.Response(429, text="slow down"),
            lambda: _completion(analysis_payload),
        ]})
        _analyze(recorder)
        assert recorder.models == ["model-a", "model-a"]

    def test_server_error_retries_then_falls_back(self, analysis_payload):
        recorder = _Recorder({
            "model-a": [
                lambda: httpx.Response(503, text="unavailable"),
                lambda: httpx.Response(502, text="bad gateway"),
            ],
            "model-b": [lambda: _completion(analysis_payload)],
        })
        _analyze(recorder)
        assert recorder.models == ["model-a", "model-a", "model-b"]

    def test_client_error_skips_retry(self, analysis_payload):
        recorder = _Recorder({
            "model-a": [lambda: httpx.Response(400, text="bad request")],
            "model-b": [lambda: _completion(analysis_payload)],
        })
        _analyze(recorder)
        assert recorder.models == ["model-a", "model-b"]

    def test_invalid_json_falls_back(self, analysis_payload):
        recorder = _Recorder({
            "model-a": [lambda: _completion("not json {")],
            "model-b": [lambda: _completion(analysis_payload)],
        })
        _analyze(recorder)
        assert recorder.models == ["model-a", "model-b"]

    def test_schema_violation_falls_back(self, analysis_payload):
        broken = dict(analysis_payload, schema_version="other.v2")
        recorder = _Recorder({
            "model-a": [lambda: _completion(broken)],
            "model-b": [lambda: _completion(analysis_payload)],
        })
        _analyze(recorder)
        assert recorder.models == ["model-a", "model-b"]

    def test_too_many_alternatives_falls_back(self, analysis_payload):
        broken = json.loads(json.dumps(analysis_payload))
        alt = broken["sentences"][0]["alternatives"][0]
        broken["sentences"][0]["alternatives"] = [alt, alt, alt, alt]
        recorder = _Recorder({
            "model-a": [lambda: _completion(broken)],
            "model-b": [lambda: _completion(analysis_payload)],
        })
        _analyze(recorder)
        assert recorder.models == ["model-a", "model-b"]

    def test_missing_choices_falls_back(self, analysis_payload):
        recorder = _Recorder({
            "model-a": [lambda: httpx.Response(200, json={"choices": []})],
            "model-b": [lambda: _completion(analysis_payload)],
        })
        _analyze(recorder)
        assert recorder.models == ["model-a", "model-b"]

    def test_network_error_falls_back(self, analysis_payload):
        def _boom():
            raise httpx.ConnectError("connection refused")

        recorder = _Recorder({
            "model-a": [_boom],
            "model-b": [lambda: _completion(analysis_payload)],
        })
        _analyze(recorder)
        assert recorder.models == ["model-a", "model-b"]

    def test_all_models_fail(self):
        recorder = _Recorder({})
        with pytest.raises(BadModelOutputError) as exc_info:
            _analyze(recorder)
        assert exc_info.value.code == "bad_model_output"
        # Two attempts per model on 5xx
        assert recorder.models == [
            "model-a", "model-a", "model-b", "model-b", "model-c", "model-c",
        ]


# ---------------------------------------------------------------------------
# Input validation and configuration
# ---------------------------------------------------------------------------


class TestInputValidation:

    @pytest.mark.parametrize("text", ["", "   \n ", None, 42])
    def test_invalid_window_text(self, text):
        recorder = _Recorder({})
        with pytest.raises(InvalidInputError) as exc_info:
            _analyze(recorder, text=text)
        assert exc_info.value.code == "invalid_input"
        assert recorder.models == []

    def test_window_text_too_large(self):
        recorder = _Recorder({})
        with pytest.raises(InputTooLargeError) as exc_info:
            _analyze(recorder, text="x" * (MAX_WINDOW_CHARS + 1))
        assert exc_info.value.code == "input_too_large"
        assert recorder.models == []

    def test_window_text_at_limit_is_accepted(self, analysis_payload):
        recorder = _Recorder({"model-a": [lambda: _completion(analysis_payload)]})
        _analyze(recorder, text="x" * MAX_WINDOW_CHARS)
        assert recorder.models == ["model-a"]

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(MissingOpenAIKeyError) as exc_info:
            WindowAnalyzer()
        assert exc_info.value.code == "missing_openai_key"
        assert isinstance(exc_info.value, AnalysisError)

    def test_requires_context_manager(self):
        analyzer = WindowAnalyzer(api_key="sk-test")
        with pytest.raises(RuntimeError):
            asyncio.run(analyzer.analyze("hello"))


class TestHelpers:

    @pytest.mark.parametrize("status,retryable", [
        (429, True), (500, True), (503, True), (599, True),
        (400, False), (401, False), (404, False), (None, False),
    ])
    def test_model_call_error_retryable(self, status, retryable):
        assert ModelCallError("x", status_code=status).retryable is retryable

    def test_prompt_names_teacher(self):
        prompt = build_system_prompt("Ana")
        assert '"Ana"' in prompt
        assert "dillo.window.v1" in prompt

    def test_prompt_without_teacher(self):
        prompt = build_system_prompt(None)
        assert "whoever leads the class" in prompt

    def test_analysis_error_default_code(self):
        exc = AnalysisError("boom")
        assert exc.code == "server_error"
        assert exc.message == "boom"
        assert AnalysisError("boom", code="custom").code == "custom"
