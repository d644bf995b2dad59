"""Transcript windowing engine: timestamp markers → fixed-duration windows.

WHY: A class transcript can run for hours. Downstream analysis works per
window, so the transcript must be cut into bounded, non-overlapping time
buckets that can be processed independently and in parallel.

HOW: The raw text is normalized and split into lines. Lines that consist
solely of an HH:MM:SS clock value are timestamp markers: they move the
"current window index" to floor(seconds / window_seconds) and contribute
no text. Every other line is appended to the bucket of the current index.
Buckets are then cleaned (blank-line runs collapsed, trimmed), empty ones
dropped, and the rest emitted as Window records sorted by index.

RULES:
- A marker line matches HH:MM:SS exactly, optionally followed by
  whitespace; leading whitespace or any other text disqualifies it
- Everything before the first marker is a header and is discarded
- No marker at all → empty list, never an exception
- Time components are not range-checked ("00:99:00" is 5940 seconds)
- Windows are keyed by bucket index, so gaps in the output are normal
- from/to are derived from the index only, never from content timestamps
- Pure function: no I/O, no shared state, safe to call concurrently
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

# Full-line match only. ASCII digits so that other Unicode digit
# characters never count as clock components.
_TIMESTAMP_RE = re.compile(r"[0-9]{2}:[0-9]{2}:[0-9]{2}\s*")


@dataclass(frozen=True)
class Window:
    """One fixed-duration time bucket of transcript content.

    RULES:
    - index: floor(timestamp_seconds / window_seconds), non-negative
    - from_time: "HH:MM:SS" of index * window_seconds
    - to_time: "HH:MM:SS" of from + window_seconds - 1 (inclusive end)
    - text: cleaned bucket content, never empty
    - Serialized with the keys "from" and "to" (see to_dict)
    """

    index: int
    from_time: str
    to_time: str
    text: str

    @property
    def from_seconds(self) -> int:
        return hhmmss_to_seconds(self.from_time)

    @property
    def to_seconds(self) -> int:
        return hhmmss_to_seconds(self.to_time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "from": self.from_time,
            "to": self.to_time,
            "text": self.text,
        }


def is_timestamp_line(line: str) -> bool:
    """Return True if the line is a bare HH:MM:SS timestamp marker."""
    return _TIMESTAMP_RE.fullmatch(line) is not None


def hhmmss_to_seconds(value: str) -> int:
    """Convert an "HH:MM:SS" string to total seconds.

    Components are not range-checked: "99:99:99" converts to
    99 * 3600 + 99 * 60 + 99.
    """
    hours, minutes, seconds = (int(part) for part in value.split(":"))
    return hours * 3600 + minutes * 60 + seconds


def seconds_to_hhmmss(seconds: int) -> str:
    """Format total seconds as zero-padded "HH:MM:SS".

    Hours are not wrapped at 24, so index 100 of a 20-minute window
    formats as "33:20:00".
    """
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    return "{:02d}:{:02d}:{:02d}".format(hours, minutes, secs)


def _collapse_blank_runs(lines: list[str]) -> list[str]:
    """Replace each run of blank lines with a single empty line."""
    collapsed: list[str] = []
    last_was_blank = False
    for line in lines:
        if line.strip() == "":
            if not last_was_blank:
                collapsed.append("")
            last_was_blank = True
        else:
            collapsed.append(line)
            last_was_blank = False
    return collapsed


def split_into_windows(raw: str, window_minutes: int = 20) -> list[Window]:
    """Split a raw timestamped transcript into ordered time windows.

    WHY: Each window is sent to the analysis service on its own, so the
    split must be deterministic and must never leak header or marker
    lines into window text.

    HOW: Normalize line endings, find the first marker, then walk the
    remaining lines tracking the current bucket index. Buckets live in a
    dict keyed by index and are sorted on output.

    RULES:
    - window_minutes must be a positive int (ValueError / TypeError)
    - "\\r\\n" and "\\r" are treated as "\\n"
    - A leading byte-order mark is ignored
    - A bucket that only ever saw markers or blank lines is omitted
    - Output is sorted by index with no duplicates

    Args:
        raw: Transcript text, possibly with a title/header before the
             first timestamp.
        window_minutes: Window duration in minutes (default 20).

    Returns:
        List of Window records in ascending index order.
    """
    if isinstance(window_minutes, bool) or not isinstance(window_minutes, int):
        raise TypeError(
            "window_minutes must be an int, got {}".format(type(window_minutes).__name__)
        )
    if window_minutes <= 0:
        raise ValueError("window_minutes must be positive, got {}".format(window_minutes))

    # str.strip() leaves a leading byte-order mark in place
    normalized = raw.lstrip("\ufeff")
    normalized = normalized.replace("\r\n", "\n").replace("\r", "\n").strip()
    lines = normalized.split("\n")

    first_marker = next(
        (i for i, line in enumerate(lines) if is_timestamp_line(line)), None
    )
    if first_marker is None:
        return []

    window_seconds = window_minutes * 60
    buckets: dict[int, list[str]] = {}
    current_index = 0

    for line in lines[first_marker:]:
        if is_timestamp_line(line):
            current_index = hhmmss_to_seconds(line.strip()) // window_seconds
        else:
            buckets.setdefault(current_index, []).append(line)

    windows: list[Window] = []
    for index, bucket in buckets.items():
        text = "\n".join(_collapse_blank_runs(bucket)).strip()
        if not text:
            continue
        from_seconds = index * window_seconds
        windows.append(Window(
            index=index,
            from_time=seconds_to_hhmmss(from_seconds),
            to_time=seconds_to_hhmmss(from_seconds + window_seconds - 1),
            text=text,
        ))

    return sorted(windows, key=lambda w: w.index)
