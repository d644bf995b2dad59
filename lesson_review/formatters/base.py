"""Formatter contract shared by every report output.

WHY: The CLI writes report files to disk and the HTTP API streams them as
downloads. Both need to drive any output format without knowing which
one it is, so each format sits behind the same small interface.

HOW: A formatter exposes a display ``name`` and renders an AnalysisReport
through ``format()``. Each rendered file comes back as a FormatterOutput:
suffix, text content and media type.

RULES:
- ``format()`` returns a list so a formatter may emit several files
- ``suffix`` starts with a hyphen, e.g. ``"-report.json"``
- Formatters never touch the filesystem; callers add the source stem
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from lesson_review.core.report import AnalysisReport


@dataclass
class FormatterOutput:
    """A single rendered report file.

    ``suffix`` is joined to the transcript stem by the caller
    (``"-report.json"`` gives ``"class-01-report.json"``); ``media_type``
    is sent as the download's Content-Type.
    """

    suffix: str
    content: str
    media_type: str


class BaseFormatter(ABC):
    """Interface for report formatters.

    New formats subclass this in their own module under formatters/ and
    are added to ``FORMATTERS`` in formatters/__init__.py.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Display name shown by GET /formats, e.g. 'Vocabulary List'."""

    @abstractmethod
    def format(self, report: AnalysisReport) -> list[FormatterOutput]:
        """Render the report into one or more output files."""
