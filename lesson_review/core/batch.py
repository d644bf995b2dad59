"""Bounded-concurrency analysis of transcript windows with per-window status.

WHY: A long class yields several windows, and each one is an independent,
slow model call. Running them all at once hits vendor rate limits; running
them one by one is needlessly slow. A failed window must not discard the
windows that already succeeded.

HOW: analyze_windows() starts one task per window, gated by an
asyncio.Semaphore so at most `concurrency` calls are in flight. Each task
records its own WindowJob status and bumps the shared Progress counters.
After all tasks finish, sentences are concatenated in window order and
vocabulary is deduplicated case-insensitively.

RULES:
- WindowJob.index is the window's position in the input list;
  window_index is the Window's bucket index
- An AnalysisError records its code; any other exception → "network_error"
- No retries at this layer (the analyzer owns retry policy)
- Completed windows are never rolled back
- Vocabulary dedup keeps the first occurrence of each lowercased word
- on_progress(progress, job) is called after every window finishes
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from lesson_review.api.analyzer import AnalysisError
from lesson_review.api.schemas import Sentence, VocabEntry, WindowAnalysis
from lesson_review.config import ANALYSIS_CONCURRENCY
from lesson_review.core.windows import Window

logger = logging.getLogger(__name__)

NETWORK_ERROR = "network_error"


class Analyzer(Protocol):
    async def analyze(self, window_text: str, objectives: str = "") -> WindowAnalysis: ...


@dataclass
class WindowJob:
    """Status of one window's analysis.

    RULES:
    - status: "pending", "ok", or "error"
    - error_code: set only when status is "error"
    """

    index: int
    window_index: int
    status: str = "pending"
    error_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "index": self.index,
            "window_index": self.window_index,
            "status": self.status,
        }
        if self.error_code is not None:
            out["error_code"] = self.error_code
        return out


@dataclass
class Progress:
    total: int
    done: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"total": self.total, "done": self.done, "failed": self.failed}


@dataclass
class BatchResult:
    """Outcome of analyzing a list of windows."""

    jobs: list[WindowJob]
    progress: Progress
    sentences: list[Sentence] = field(default_factory=list)
    vocabulary: list[VocabEntry] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "progress": self.progress.to_dict(),
            "jobs": [job.to_dict() for job in self.jobs],
            "sentences": [s.model_dump() for s in self.sentences],
            "vocabulary": [v.model_dump() for v in self.vocabulary],
        }


def merge_vocabulary(entries: Sequence[VocabEntry]) -> list[VocabEntry]:
    """Drop repeated words (case-insensitive), keeping the first occurrence."""
    seen: set[str] = set()
    merged: list[VocabEntry] = []
    for entry in entries:
        key = entry.word.lower()
        if key in seen:
            continue
        seen.add(key)
        merged.append(entry)
    return merged


async def analyze_windows(
    windows: Sequence[Window],
    analyzer: Analyzer,
    objectives: str = "",
    concurrency: int = ANALYSIS_CONCURRENCY,
    on_progress: Callable[[Progress, WindowJob], None] | None = None,
) -> BatchResult:
    """Analyze every window with at most `concurrency` calls in flight.

    Args:
        windows: Windows from split_into_windows(), in order.
        analyzer: Anything with an async analyze(text, objectives) method,
                  normally an entered WindowAnalyzer.
        objectives: Learning objectives forwarded with every window.
        concurrency: Maximum simultaneous analyze() calls (≥ 1).
        on_progress: Optional callback after each window finishes.

    Returns:
        BatchResult with per-window jobs, counters, and merged results.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be at least 1, got {}".format(concurrency))

    jobs = [WindowJob(index=i, window_index=w.index) for i, w in enumerate(windows)]
    progress = Progress(total=len(windows))
    results: list[WindowAnalysis | None] = [None] * len(windows)
    semaphore = asyncio.Semaphore(concurrency)

    async def _run_one(position: int, window: Window) -> None:
        job = jobs[position]
        async with semaphore:
            try:
                analysis = await analyzer.analyze(window.text, objectives)
            except AnalysisError as exc:
                job.status = "error"
                job.error_code = exc.code
                progress.failed += 1
                logger.warning(
                    "Window %d (%s-%s) failed: %s %s",
                    window.index, window.from_time, window.to_time, exc.code, exc,
                )
            except Exception as exc:
                job.status = "error"
                job.error_code = NETWORK_ERROR
                progress.failed += 1
                logger.warning(
                    "Window %d (%s-%s) failed: %s: %s",
                    window.index, window.from_time, window.to_time,
                    type(exc).__name__, exc,
                )
            else:
                results[position] = analysis
                job.status = "ok"
                progress.done += 1
        if on_progress:
            on_progress(progress, job)

    await asyncio.gather(*(_run_one(i, w) for i, w in enumerate(windows)))

    sentences: list[Sentence] = []
    vocabulary: list[VocabEntry] = []
    for analysis in results:
        if analysis is None:
            continue
        sentences.extend(analysis.sentences)
        vocabulary.extend(analysis.vocabulary)

    logger.info(
        "Analyzed %d windows: %d ok, %d failed",
        progress.total, progress.done, progress.failed,
    )
    return BatchResult(
        jobs=jobs,
        progress=progress,
        sentences=sentences,
        vocabulary=merge_vocabulary(vocabulary),
    )
