"""Output formatter registry — pluggable report formats.

WHY: The CLI and the HTTP API need a single lookup to find the right
formatter by name. A central dict makes it trivial to add new formats:
create the formatter class, import it here, add one line.

HOW: FORMATTERS maps string keys to formatter *classes* (not instances).
Callers instantiate as needed: ``formatter = FORMATTERS["report_json"]()``.

RULES:
- Keys are snake_case identifiers (used in CLI flags and URLs)
- Values are BaseFormatter subclasses (not instances)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from lesson_review.formatters.report_json import ReportJSONFormatter
from lesson_review.formatters.vocabulary_list import VocabularyListFormatter
from lesson_review.formatters.windows_text import WindowsTextFormatter

if TYPE_CHECKING:
    from lesson_review.formatters.base import BaseFormatter

FORMATTERS: dict[str, type[BaseFormatter]] = {
    "report_json": ReportJSONFormatter,
    "vocabulary_list": VocabularyListFormatter,
    "windows_text": WindowsTextFormatter,
}
