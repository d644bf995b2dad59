"""Vocabulary list formatter — one "word — IPA — definition" line per entry.

WHY: Learners paste the collected vocabulary into flashcard apps and
notes. A plain line-per-word list is the most portable shape.

RULES:
- Entries keep the batch's (deduplicated, window-ordered) order
- Separator is " — " (em dash with spaces)
- Trailing newline only when there is at least one entry
- Output suffix: "-vocabulary.txt"
"""

from __future__ import annotations

from lesson_review.core.report import AnalysisReport
from lesson_review.formatters.base import BaseFormatter, FormatterOutput


class VocabularyListFormatter(BaseFormatter):

    @property
    def name(self) -> str:
        return "Vocabulary List"

    def format(self, report: AnalysisReport) -> list[FormatterOutput]:
        entries = report.batch.vocabulary if report.batch else []
        content = "\n".join(
            "{} — {} — {}".format(v.word, v.IPA, v.definition) for v in entries
        )
        if content:
            content += "\n"
        return [
            FormatterOutput(
                suffix="-vocabulary.txt",
                content=content,
                media_type="text/plain",
            )
        ]
