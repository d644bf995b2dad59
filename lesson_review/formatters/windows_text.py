"""Window text formatter — the transcript as it was cut for analysis.

WHY: When a window's analysis looks wrong, the first question is what
text the model actually saw. This output shows each window under its
time range so it can be checked by eye.

HOW: For each window, a "[from – to] Window N" header line followed by
the window text. Windows are separated by a blank line.

RULES:
- Windows in ascending index order
- Header: "[HH:MM:SS – HH:MM:SS] Window {index}"
- Output suffix: "-windows.txt"
"""

from __future__ import annotations

from lesson_review.core.report import AnalysisReport
from lesson_review.formatters.base import BaseFormatter, FormatterOutput


class WindowsTextFormatter(BaseFormatter):

    @property
    def name(self) -> str:
        return "Window Text"

    def format(self, report: AnalysisReport) -> list[FormatterOutput]:
        blocks = [
            "[{} – {}] Window {}\n{}".format(w.from_time, w.to_time, w.index, w.text)
            for w in report.windows
        ]
        content = "\n\n".join(blocks)
        if content:
            content += "\n"
        return [
            FormatterOutput(
                suffix="-windows.txt",
                content=content,
                media_type="text/plain",
            )
        ]
