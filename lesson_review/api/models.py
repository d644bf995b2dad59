"""Pronunciation-scoring request and result dataclasses.

WHY: The scoring vendor returns loosely shaped JSON whose field names
vary (word_text vs text, phoneme_score vs score) and whose scores use
different scales (0–1, 0–100, PTE 0–90, IELTS 1–9). Typed dataclasses
give callers one normalized shape with every score on 0–100.

HOW: SpeechAudio describes the client's recording. SpeechScore and its
parts are built by SpeechScore.from_vendor(), which applies the
normalization helpers in this module. to_dict() produces the camelCase
JSON the HTTP API returns.

RULES:
- Every score is an int in 0–100
- label thresholds: poor < 40 ≤ fair < 60 ≤ good < 75 ≤ very-good < 90 ≤ excellent
- Missing or non-numeric vendor scores count as 0
- Phonemes with an empty IPA label are dropped
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

PROVIDER = "language-confidence"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def to_0_100(value: Any) -> int:
    """Normalize a vendor score to an int in 0–100.

    Values ≤ 1 are treated as fractions; everything is clamped.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value != value:
        return 0
    if value <= 1:
        return _round_half_up(min(1.0, max(0.0, value)) * 100)
    return _round_half_up(min(100.0, max(0.0, value)))


def score_label(score: int) -> str:
    if score < 40:
        return "poor"
    if score < 60:
        return "fair"
    if score < 75:
        return "good"
    if score < 90:
        return "very-good"
    return "excellent"


def scale_pte(value: float) -> int:
    """PTE (0–90) → 0–100."""
    return _round_half_up(max(0.0, min(90.0, value)) / 90 * 100)


def scale_ielts(value: float) -> int:
    """IELTS band (up to 9) → 0–100."""
    return _round_half_up(max(0.0, min(9.0, value)) / 9 * 100)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _first_text(data: dict, *keys: str) -> str:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return str(value)
    return ""


@dataclass
class SpeechAudio:
    """A short recording sent for scoring.

    RULES:
    - mime: one of the canonical audio MIME types (see speech.MIME_TO_FORMAT)
    - base64: the encoded audio bytes
    - duration_ms: recording length; the API rejects anything over 10 s
    """

    mime: str
    base64: str
    duration_ms: float


@dataclass
class PhonemeScore:
    ipa: str
    score: int


@dataclass
class WordScore:
    text: str
    score: int
    start_ms: int | None = None
    end_ms: int | None = None
    phonemes: list[PhonemeScore] = field(default_factory=list)

    @classmethod
    def from_vendor(cls, data: dict) -> WordScore:
        if _is_number(data.get("word_score")):
            score = to_0_100(data["word_score"])
        elif _is_number(data.get("score")):
            score = to_0_100(data["score"])
        else:
            score = 0

        phonemes: list[PhonemeScore] = []
        for p in data.get("phonemes") or []:
            if not isinstance(p, dict):
                continue
            ipa = _first_text(p, "ipa_label", "ipa", "symbol")
            if not ipa:
                continue
            if _is_number(p.get("phoneme_score")):
                ps = to_0_100(p["phoneme_score"])
            elif _is_number(p.get("score")):
                ps = to_0_100(p["score"])
            else:
                ps = 0
            phonemes.append(PhonemeScore(ipa=ipa, score=ps))

        return cls(
            text=_first_text(data, "word_text", "text", "word"),
            score=score,
            start_ms=data.get("start_ms"),
            end_ms=data.get("end_ms"),
            phonemes=phonemes,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"text": self.text, "score": self.score}
        if self.start_ms is not None:
            out["startMs"] = self.start_ms
        if self.end_ms is not None:
            out["endMs"] = self.end_ms
        if self.phonemes:
            out["phonemes"] = [{"ipa": p.ipa, "score": p.score} for p in self.phonemes]
        return out


@dataclass
class LowPhoneme:
    phoneme: str
    score: int | None = None


@dataclass
class SpeechScore:
    """Normalized pronunciation assessment for one recording.

    WHY: Callers (HTTP API, CLI) should never see vendor field names or
    scales.

    RULES:
    - overall_score: 0–100, overall_label derived from it
    - details: optional sub-scores (pte, ielts) scaled to 0–100
    - cefr: vendor's mock CEFR prediction (e.g. "B2"), if any
    - processing_ms: wall time of the vendor round trip
    """

    accent: str
    overall_score: int
    overall_label: str
    details: dict[str, int] = field(default_factory=dict)
    cefr: str | None = None
    words: list[WordScore] = field(default_factory=list)
    lowest_phonemes: list[LowPhoneme] | None = None
    expected_text: str | None = None
    warnings: dict[str, Any] | None = None
    processing_ms: int = 0
    provider: str = PROVIDER

    @classmethod
    def from_vendor(cls, data: dict, accent: str, processing_ms: int = 0) -> SpeechScore:
        """Map a raw vendor response onto the normalized result."""
        overall_raw = data.get("overall_score")
        if overall_raw is None:
            overall_raw = data.get("overallScore")
        if overall_raw is None:
            overall_raw = data.get("score")
        overall = to_0_100(overall_raw)

        details: dict[str, int] = {}
        cefr = None
        eps = data.get("english_proficiency_scores")
        if isinstance(eps, dict):
            cefr_pred = (eps.get("mock_cefr") or {}).get("prediction")
            if isinstance(cefr_pred, str) and cefr_pred:
                cefr = cefr_pred
            pte_pred = (eps.get("mock_pte") or {}).get("prediction")
            if _is_number(pte_pred):
                details["pte"] = scale_pte(pte_pred)
            ielts_pred = (eps.get("mock_ielts") or {}).get("prediction")
            if _is_number(ielts_pred):
                details["ielts"] = scale_ielts(ielts_pred)

        words = [
            WordScore.from_vendor(w)
            for w in data.get("words") or []
            if isinstance(w, dict)
        ]

        lowest = None
        if isinstance(data.get("lowest_scoring_phonemes"), list):
            lowest = [
                LowPhoneme(
                    phoneme=_first_text(p, "ipa_label", "phoneme", "symbol"),
                    score=to_0_100(p["phoneme_score"]) if _is_number(p.get("phoneme_score")) else None,
                )
                for p in data["lowest_scoring_phonemes"]
                if isinstance(p, dict)
            ]

        expected = data.get("expected_text")
        warnings = data.get("warnings")

        return cls(
            accent=accent,
            overall_score=overall,
            overall_label=score_label(overall),
            details=details,
            cefr=cefr,
            words=words,
            lowest_phonemes=lowest,
            expected_text=expected if isinstance(expected, str) else None,
            warnings=warnings if isinstance(warnings, dict) else None,
            processing_ms=processing_ms,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "provider": self.provider,
            "accent": self.accent,
            "overall": {"score": self.overall_score, "label": self.overall_label},
            "details": dict(self.details),
            "words": [w.to_dict() for w in self.words],
            "timings": {"processingMs": self.processing_ms},
        }
        if self.cefr:
            out["englishProficiency"] = {"cefr": self.cefr}
        if self.lowest_phonemes is not None:
            out["lowestPhonemes"] = [
                {"phoneme": p.phoneme, "score": p.score} if p.score is not None
                else {"phoneme": p.phoneme}
                for p in self.lowest_phonemes
            ]
        if self.expected_text is not None:
            out["expectedText"] = self.expected_text
        if self.warnings is not None:
            out["warnings"] = self.warnings
        return out
