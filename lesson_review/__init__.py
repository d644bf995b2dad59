"""Lesson Review — classroom transcript windowing and per-window analysis.

WHY: A recorded class produces one long timestamped transcript. Language
feedback (sentence rewrites, vocabulary, pronunciation practice) is only
useful when the transcript is cut into bounded, independently analyzable
pieces. This package turns a raw transcript into ordered time windows and
fans them out to an AI analysis service.

HOW: Three-stage pipeline — split (core windowing engine), analyze (API
clients, bounded concurrency), format (pluggable formatters). Each stage
is independently testable.

RULES:
- The windowing engine is pure and has no dependency on any API client
- All formatters consume the same AnalysisReport
- Per-window failures are recorded, never fatal to the batch
"""

__version__ = "0.1.0"
