"""Full analysis report as JSON, validated against report_schema.json.

WHY: Other tools (dashboards, spreadsheets, archival) consume the whole
result: windows, per-window status, sentences, and vocabulary. A single
schema-checked JSON document is the stable exchange format.

HOW: Serializes AnalysisReport.to_dict() and validates it with
jsonschema before returning, so a malformed report never reaches disk.

RULES:
- Output validated against report_schema.json; raises on failure
- Window keys are "from"/"to" (not from_time/to_time)
- Output suffix: "-report.json"
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema

from lesson_review.core.report import AnalysisReport
from lesson_review.formatters.base import BaseFormatter, FormatterOutput

_SCHEMA_PATH = Path(__file__).resolve().parent / "report_schema.json"

_CACHED_SCHEMA: dict[str, Any] | None = None


def get_schema() -> dict[str, Any]:
    """Load the report schema from disk, cached after the first call."""
    global _CACHED_SCHEMA
    if _CACHED_SCHEMA is None:
        with open(_SCHEMA_PATH, encoding="utf-8") as f:
            _CACHED_SCHEMA = json.load(f)
    return _CACHED_SCHEMA


class ReportJSONFormatter(BaseFormatter):

    @property
    def name(self) -> str:
        return "Report JSON"

    def format(self, report: AnalysisReport) -> list[FormatterOutput]:
        """Serialize and validate the report.

        Raises:
            jsonschema.ValidationError: If the generated JSON does not
                conform to report_schema.json.
        """
        output = report.to_dict()
        jsonschema.validate(instance=output, schema=get_schema())

        return [
            FormatterOutput(
                suffix="-report.json",
                content=json.dumps(output, indent=2, ensure_ascii=False),
                media_type="application/json",
            )
        ]
