"""Command-line interface for Lesson Review.

WHY: Teachers and developers need to check how a transcript is windowed,
run the full analysis on a class, or score a practice recording without
starting the web app.

HOW: argparse with four subcommands:
  windows  — split a transcript file and print the windows
  analyze  — split, analyze every window, save formatter outputs
  score    — score one audio file against an expected sentence
  serve    — run the HTTP API with uvicorn
Async work runs via asyncio.run(). Status messages go to stderr; data
(windows, scores) goes to stdout so it can be piped.

RULES:
- Output naming: {stem}{suffix}, numeric suffix on conflict (-report-2.json)
- A transcript with no timestamp markers is an error for analyze
  (exit 1) and an empty result for windows (exit 0)
- Config errors (missing API key) and collaborator errors → exit 1
- Ctrl-C → exit 130
"""

from __future__ import annotations

import argparse
import asyncio
import base64
import json
import sys
import wave
from pathlib import Path
from typing import List, Optional

from lesson_review.api.analyzer import AnalysisError, WindowAnalyzer
from lesson_review.api.models import SpeechAudio
from lesson_review.api.speech import SpeechScoreClient, SpeechScoreError
from lesson_review.config import ANALYSIS_CONCURRENCY, DEFAULT_WINDOW_MINUTES
from lesson_review.core.batch import Progress, WindowJob, analyze_windows
from lesson_review.core.report import AnalysisReport
from lesson_review.core.windows import split_into_windows
from lesson_review.formatters import FORMATTERS
from lesson_review.formatters.base import FormatterOutput

_AUDIO_MIME_BY_SUFFIX = {
    ".wav": "audio/wav",
    ".mp3": "audio/mpeg",
    ".ogg": "audio/ogg",
    ".m4a": "audio/m4a",
    ".webm": "audio/webm",
    ".mp4": "audio/mp4",
    ".aac": "audio/aac",
}


def _status(msg: str) -> None:
    """Print a status message to stderr."""
    print(msg, file=sys.stderr, flush=True)


def _read_transcript(path_str: str) -> str:
    path = Path(path_str)
    if not path.is_file():
        _status("Error: File not found: {}".format(path))
        sys.exit(1)
    return path.read_text(encoding="utf-8-sig")


def _resolve_output_path(stem: str, suffix: str, output_dir: Path) -> Path:
    """Resolve the output file path, adding a numeric suffix on conflict.

    RULES:
    - First attempt: {stem}{suffix} (e.g. class-01-report.json)
    - Conflict: counter inserted before the extension (class-01-report-2.json)
    - Counter starts at 2 and increments
    """
    base_path = output_dir / "{}{}".format(stem, suffix)
    if not base_path.exists():
        return base_path

    dot_idx = suffix.rfind(".")
    if dot_idx > 0:
        suffix_name, suffix_ext = suffix[:dot_idx], suffix[dot_idx:]
    else:
        suffix_name, suffix_ext = suffix, ""

    counter = 2
    while True:
        candidate = output_dir / "{}{}-{}{}".format(stem, suffix_name, counter, suffix_ext)
        if not candidate.exists():
            return candidate
        counter += 1


def _save_output(output: FormatterOutput, stem: str, output_dir: Path) -> Path:
    path = _resolve_output_path(stem, output.suffix, output_dir)
    path.write_text(output.content, encoding="utf-8")
    return path


def _parse_formats(value: Optional[str]) -> List[str]:
    if not value:
        return list(FORMATTERS.keys())
    keys = [k.strip() for k in value.split(",") if k.strip()]
    for key in keys:
        if key not in FORMATTERS:
            _status("Error: Unknown format '{}'. Available: {}".format(
                key, ", ".join(sorted(FORMATTERS))
            ))
            sys.exit(1)
    return keys


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------


def _cmd_windows(args: argparse.Namespace) -> None:
    raw = _read_transcript(args.input_file)
    windows = split_into_windows(raw, args.window_minutes)

    if args.json:
        print(json.dumps([w.to_dict() for w in windows], indent=2, ensure_ascii=False))
        return

    if not windows:
        _status("No timestamps found.")
        return
    for i, w in enumerate(windows):
        if i:
            print()
        print("[{} – {}] Window {}".format(w.from_time, w.to_time, w.index))
        print(w.text)
    _status("{} window(s)".format(len(windows)))


async def _run_analysis(args: argparse.Namespace) -> None:
    input_path = Path(args.input_file)
    raw = _read_transcript(args.input_file)
    format_keys = _parse_formats(args.formats)
    output_dir = Path(args.output_dir) if args.output_dir else input_path.parent
    if not output_dir.is_dir():
        _status("Error: Output directory not found: {}".format(output_dir))
        sys.exit(1)

    windows = split_into_windows(raw, args.window_minutes)
    if not windows:
        _status("Error: No timestamps found in {}".format(input_path.name))
        sys.exit(1)
    _status("Split {} into {} window(s) of {} min".format(
        input_path.name, len(windows), args.window_minutes
    ))

    def _on_progress(progress: Progress, job: WindowJob) -> None:
        window = windows[job.index]
        outcome = "ok" if job.status == "ok" else "failed ({})".format(job.error_code)
        _status("  [{}/{}] {}–{} {}".format(
            progress.done + progress.failed, progress.total,
            window.from_time, window.to_time, outcome,
        ))

    try:
        async with WindowAnalyzer() as analyzer:
            batch = await analyze_windows(
                windows,
                analyzer,
                objectives=args.objectives,
                concurrency=args.concurrency,
                on_progress=_on_progress,
            )
    except (AnalysisError, ValueError) as e:
        _status("Error: {}".format(e))
        sys.exit(1)

    report = AnalysisReport(
        source_name=input_path.name,
        window_minutes=args.window_minutes,
        windows=windows,
        batch=batch,
    )

    _status("Formatting output...")
    saved: List[Path] = []
    for key in format_keys:
        for output in FORMATTERS[key]().format(report):
            saved.append(_save_output(output, input_path.stem, output_dir))

    _status("")
    _status("Done! {} sentence(s), {} vocabulary item(s), {} failed window(s)".format(
        len(batch.sentences), len(batch.vocabulary), batch.progress.failed,
    ))
    for path in saved:
        _status("  Saved: {}".format(path))
    if batch.progress.failed == batch.progress.total:
        sys.exit(1)


def _audio_duration_ms(path: Path) -> Optional[float]:
    """Read a WAV file's duration; None for formats the stdlib can't parse."""
    if path.suffix.lower() != ".wav":
        return None
    with wave.open(str(path), "rb") as wav:
        return wav.getnframes() / float(wav.getframerate()) * 1000


async def _run_score(args: argparse.Namespace) -> None:
    path = Path(args.audio_file)
    if not path.is_file():
        _status("Error: File not found: {}".format(path))
        sys.exit(1)

    mime = _AUDIO_MIME_BY_SUFFIX.get(path.suffix.lower())
    if mime is None:
        _status("Error: Unsupported audio file type '{}'. Supported: {}".format(
            path.suffix, ", ".join(sorted(_AUDIO_MIME_BY_SUFFIX))
        ))
        sys.exit(1)

    duration_ms = args.duration_ms
    if duration_ms is None:
        duration_ms = _audio_duration_ms(path)
    if duration_ms is None:
        _status("Error: --duration-ms is required for {} files".format(path.suffix))
        sys.exit(1)

    audio = SpeechAudio(
        mime=mime,
        base64=base64.b64encode(path.read_bytes()).decode("ascii"),
        duration_ms=duration_ms,
    )

    try:
        async with SpeechScoreClient() as client:
            score = await client.score(args.text, audio, accent=args.accent)
    except (SpeechScoreError, ValueError) as e:
        _status("Error: {}".format(e))
        sys.exit(1)

    print(json.dumps(score.to_dict(), indent=2, ensure_ascii=False))


def _cmd_serve(args: argparse.Namespace) -> None:
    from lesson_review.server.app import run_api
    run_api(host=args.host, port=args.port)


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError("must be a positive integer")
    return number


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    Separate from main() so tests can inspect the parser without
    running anything.
    """
    parser = argparse.ArgumentParser(
        prog="lesson_review",
        description="Split timestamped class transcripts into time windows "
                    "and analyze them for language feedback.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_windows = sub.add_parser("windows", help="Print the windows of a transcript.")
    p_windows.add_argument("input_file", help="Path to the transcript text file.")
    p_windows.add_argument(
        "--window-minutes",
        type=_positive_int,
        default=DEFAULT_WINDOW_MINUTES,
        help="Window duration in minutes (default: %(default)s).",
    )
    p_windows.add_argument("--json", action="store_true", help="Print windows as JSON.")

    p_analyze = sub.add_parser("analyze", help="Analyze every window of a transcript.")
    p_analyze.add_argument("input_file", help="Path to the transcript text file.")
    p_analyze.add_argument(
        "--objectives",
        default="",
        help="Learning objectives sent with every window.",
    )
    p_analyze.add_argument(
        "--window-minutes",
        type=_positive_int,
        default=DEFAULT_WINDOW_MINUTES,
        help="Window duration in minutes (default: %(default)s).",
    )
    p_analyze.add_argument(
        "--concurrency",
        type=_positive_int,
        default=ANALYSIS_CONCURRENCY,
        help="Windows analyzed at the same time (default: %(default)s).",
    )
    p_analyze.add_argument(
        "--formats",
        default=None,
        help="Comma-separated list of output formats. "
             "Available: {}. Default: all.".format(", ".join(sorted(FORMATTERS.keys()))),
    )
    p_analyze.add_argument(
        "--output-dir",
        default=None,
        help="Directory to save output files (default: same as input file).",
    )

    p_score = sub.add_parser("score", help="Score a pronunciation recording.")
    p_score.add_argument("audio_file", help="Path to the recording (max 10 s).")
    p_score.add_argument("--text", required=True, help="The sentence the speaker meant to say.")
    p_score.add_argument("--accent", default="us", help="Accent (default: %(default)s).")
    p_score.add_argument(
        "--duration-ms",
        type=float,
        default=None,
        help="Recording length in ms (read from the file for .wav).",
    )

    p_serve = sub.add_parser("serve", help="Run the HTTP API.")
    p_serve.add_argument("--host", default="0.0.0.0")
    p_serve.add_argument("--port", type=int, default=8000)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for ``python -m lesson_review`` and the console script.

    argv=None means use sys.argv; explicit argv is for testing.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        if args.command == "windows":
            _cmd_windows(args)
        elif args.command == "analyze":
            asyncio.run(_run_analysis(args))
        elif args.command == "score":
            asyncio.run(_run_score(args))
        elif args.command == "serve":
            _cmd_serve(args)
    except KeyboardInterrupt:
        _status("\nCancelled by user.")
        sys.exit(130)


if __name__ == "__main__":
    main()
