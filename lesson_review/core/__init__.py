"""Core windowing, batch analysis, and report modules.

WHY: The core package holds the stable heart of the tool — the
transcript windowing engine and the bounded-concurrency batch runner.
These are consumed by the CLI, the HTTP API, and all formatters.

HOW: windows.py turns raw transcript text into Window records, batch.py
fans windows out to an analyzer, report.py bundles both for formatters.

RULES:
- windows.py is pure and imports nothing from the API layer
- Window is the contract — change with care
"""
