"""The analysis report — the contract between the pipeline and formatters.

WHY: Formatters (JSON report, vocabulary list, window text) and the HTTP
API all need the same bundle: where the transcript came from, how it was
windowed, the windows themselves, and the batch outcome. One dataclass
decouples producing results from rendering them.

RULES:
- windows are in ascending index order (as split_into_windows returns them)
- batch is None when only windowing was performed
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from lesson_review.core.batch import BatchResult
from lesson_review.core.windows import Window


@dataclass
class AnalysisReport:
    source_name: str
    window_minutes: int
    windows: list[Window]
    batch: BatchResult | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "source": self.source_name,
            "window_minutes": self.window_minutes,
            "windows": [w.to_dict() for w in self.windows],
        }
        if self.batch is not None:
            out.update(self.batch.to_dict())
        return out
