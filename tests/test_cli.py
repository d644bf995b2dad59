"""Tests for the command-line interface.

WHY: The CLI is how transcripts get checked and analyzed outside the web
app. Exit codes, stdout/stderr separation, and output file naming are
what scripts depend on.

HOW: main(argv) is called directly with tmp_path files. Collaborator
clients are patched in the lesson_review.cli namespace, so no network
is touched. stdout/stderr are captured with capsys.

RULES:
- Data goes to stdout, status messages to stderr
- Error paths are asserted through SystemExit codes
"""

from __future__ import annotations

import json
import wave
from unittest.mock import patch

import pytest

from lesson_review.api.analyzer import BadModelOutputError, MissingOpenAIKeyError
from lesson_review.api.models import SpeechScore
from lesson_review.api.speech import VendorError
from lesson_review.cli import _read_transcript, _resolve_output_path, build_parser, main


@pytest.fixture
def transcript_file(tmp_path, sample_transcript):
    path = tmp_path / "class-12.txt"
    path.write_text(sample_transcript, encoding="utf-8")
    return path


def _write_wav(path, seconds: float = 1.0, rate: int = 16000):
    with wave.open(str(path), "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(2)
        wav.setframerate(rate)
        wav.writeframes(b"\x00\x00" * int(rate * seconds))


class _FakeSpeechClient:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return None

    async def score(self, expected_text, audio, accent=None, user_id=None):
        self.calls.append((expected_text, audio, accent))
        if self.error is not None:
            raise self.error
        return SpeechScore.from_vendor({"overall_score": 0.5}, accent="us")


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class TestParser:

    def test_subcommand_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_analyze_defaults(self):
        args = build_parser().parse_args(["analyze", "class.txt"])
        assert args.window_minutes == 20
        assert args.concurrency == 3
        assert args.objectives == ""
        assert args.formats is None
        assert args.output_dir is None

    @pytest.mark.parametrize("value", ["0", "-3", "abc"])
    def test_window_minutes_must_be_positive(self, value):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["windows", "class.txt", "--window-minutes", value])

    def test_score_requires_text(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["score", "take.wav"])


# ---------------------------------------------------------------------------
# windows
# ---------------------------------------------------------------------------


class TestWindowsCommand:

    def test_prints_windows(self, transcript_file, capsys):
        main(["windows", str(transcript_file)])
        out, err = capsys.readouterr()
        assert out.startswith("[00:00:00 – 00:19:59] Window 0\nAna: Good morning everyone.\n")
        assert "[00:40:00 – 00:59:59] Window 2" in out
        assert "2 window(s)" in err

    def test_json_output(self, transcript_file, capsys):
        main(["windows", str(transcript_file), "--json", "--window-minutes", "60"])
        data = json.loads(capsys.readouterr().out)
        assert len(data) == 1
        assert data[0]["from"] == "00:00:00"
        assert data[0]["to"] == "00:59:59"

    def test_no_timestamps(self, tmp_path, capsys):
        path = tmp_path / "plain.txt"
        path.write_text("nothing to see", encoding="utf-8")
        main(["windows", str(path), "--json"])
        assert json.loads(capsys.readouterr().out) == []

    def test_file_saved_with_byte_order_mark(self, tmp_path, capsys):
        path = tmp_path / "bom.txt"
        path.write_text("00:00:00\nHello\n00:20:00\nB\n", encoding="utf-8-sig")
        main(["windows", str(path), "--json"])
        data = json.loads(capsys.readouterr().out)
        assert [(w["index"], w["text"]) for w in data] == [(0, "Hello"), (1, "B")]
        assert _read_transcript(str(path)).startswith("00:00:00")

    def test_missing_file(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["windows", str(tmp_path / "nope.txt")])
        assert exc_info.value.code == 1
        assert "File not found" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# analyze
# ---------------------------------------------------------------------------


class TestAnalyzeCommand:

    def test_writes_all_formats(self, transcript_file, analyzer_cls, capsys):
        with patch("lesson_review.cli.WindowAnalyzer", return_value=analyzer_cls()):
            main(["analyze", str(transcript_file), "--objectives", "travel"])

        folder = transcript_file.parent
        assert (folder / "class-12-report.json").is_file()
        assert (folder / "class-12-vocabulary.txt").is_file()
        assert (folder / "class-12-windows.txt").is_file()

        report = json.loads((folder / "class-12-report.json").read_text(encoding="utf-8"))
        assert report["source"] == "class-12.txt"
        assert report["progress"] == {"total": 2, "done": 2, "failed": 0}

        err = capsys.readouterr().err
        assert "Split class-12.txt into 2 window(s) of 20 min" in err
        assert "Done!" in err

    def test_selected_formats_and_output_dir(self, transcript_file, analyzer_cls, tmp_path):
        out_dir = tmp_path / "out"
        out_dir.mkdir()
        with patch("lesson_review.cli.WindowAnalyzer", return_value=analyzer_cls()):
            main([
                "analyze", str(transcript_file),
                "--formats", "vocabulary_list",
                "--output-dir", str(out_dir),
            ])
        assert [p.name for p in out_dir.iterdir()] == ["class-12-vocabulary.txt"]

    def test_existing_output_gets_numeric_suffix(self, transcript_file, analyzer_cls):
        folder = transcript_file.parent
        (folder / "class-12-windows.txt").write_text("older run", encoding="utf-8")
        with patch("lesson_review.cli.WindowAnalyzer", return_value=analyzer_cls()):
            main(["analyze", str(transcript_file), "--formats", "windows_text"])
        assert (folder / "class-12-windows.txt").read_text(encoding="utf-8") == "older run"
        assert (folder / "class-12-windows-2.txt").is_file()

    def test_partial_failure_exits_zero(self, transcript_file, analyzer_cls, capsys):
        analyzer = analyzer_cls({
            "Mia: I have visited the castle yesterday.": BadModelOutputError("nope"),
        })
        with patch("lesson_review.cli.WindowAnalyzer", return_value=analyzer):
            main(["analyze", str(transcript_file), "--formats", "report_json"])
        err = capsys.readouterr().err
        assert "failed (bad_model_output)" in err
        assert "1 failed window(s)" in err

    def test_all_windows_failed_exits_one(self, tmp_path, analyzer_cls):
        path = tmp_path / "short.txt"
        path.write_text("00:00:01\nhello", encoding="utf-8")
        analyzer = analyzer_cls({"hello": BadModelOutputError("nope")})
        with patch("lesson_review.cli.WindowAnalyzer", return_value=analyzer):
            with pytest.raises(SystemExit) as exc_info:
                main(["analyze", str(path), "--formats", "report_json"])
        assert exc_info.value.code == 1

    def test_no_timestamps_exits_one(self, tmp_path, capsys):
        path = tmp_path / "plain.txt"
        path.write_text("no markers", encoding="utf-8")
        with pytest.raises(SystemExit) as exc_info:
            main(["analyze", str(path)])
        assert exc_info.value.code == 1
        assert "No timestamps found" in capsys.readouterr().err

    def test_unknown_format_exits_one(self, transcript_file, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(["analyze", str(transcript_file), "--formats", "pdf"])
        assert exc_info.value.code == 1
        assert "Unknown format 'pdf'" in capsys.readouterr().err

    def test_missing_api_key_exits_one(self, transcript_file, capsys):
        with patch(
            "lesson_review.cli.WindowAnalyzer",
            side_effect=MissingOpenAIKeyError("OpenAI API key not configured."),
        ):
            with pytest.raises(SystemExit) as exc_info:
                main(["analyze", str(transcript_file)])
        assert exc_info.value.code == 1
        assert "OpenAI API key not configured" in capsys.readouterr().err

    def test_missing_output_dir(self, transcript_file, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            main(["analyze", str(transcript_file), "--output-dir", str(tmp_path / "missing")])
        assert exc_info.value.code == 1


# ---------------------------------------------------------------------------
# score
# ---------------------------------------------------------------------------


class TestScoreCommand:

    def test_scores_wav(self, tmp_path, capsys):
        audio_path = tmp_path / "take.wav"
        _write_wav(audio_path, seconds=1.5)
        client = _FakeSpeechClient()

        with patch("lesson_review.cli.SpeechScoreClient", return_value=client):
            main(["score", str(audio_path), "--text", "Hello there.", "--accent", "gb"])

        data = json.loads(capsys.readouterr().out)
        assert data["overall"] == {"score": 50, "label": "fair"}
        expected_text, audio, accent = client.calls[0]
        assert expected_text == "Hello there."
        assert audio.mime == "audio/wav"
        assert audio.duration_ms == pytest.approx(1500)
        assert accent == "gb"

    def test_duration_required_for_non_wav(self, tmp_path, capsys):
        audio_path = tmp_path / "take.mp3"
        audio_path.write_bytes(b"ID3fake")
        with pytest.raises(SystemExit) as exc_info:
            main(["score", str(audio_path), "--text", "Hello."])
        assert exc_info.value.code == 1
        assert "--duration-ms is required" in capsys.readouterr().err

    def test_explicit_duration(self, tmp_path, capsys):
        audio_path = tmp_path / "take.mp3"
        audio_path.write_bytes(b"ID3fake")
        client = _FakeSpeechClient()
        with patch("lesson_review.cli.SpeechScoreClient", return_value=client):
            main(["score", str(audio_path), "--text", "Hello.", "--duration-ms", "2400"])
        assert client.calls[0][1].mime == "audio/mpeg"
        assert client.calls[0][1].duration_ms == 2400

    def test_unsupported_extension(self, tmp_path, capsys):
        audio_path = tmp_path / "take.flac"
        audio_path.write_bytes(b"fLaC")
        with pytest.raises(SystemExit) as exc_info:
            main(["score", str(audio_path), "--text", "Hello."])
        assert exc_info.value.code == 1
        assert "Unsupported audio file type" in capsys.readouterr().err

    def test_vendor_error_exits_one(self, tmp_path, capsys):
        audio_path = tmp_path / "take.wav"
        _write_wav(audio_path)
        client = _FakeSpeechClient(error=VendorError("Vendor HTTP 500", status_code=500))
        with patch("lesson_review.cli.SpeechScoreClient", return_value=client):
            with pytest.raises(SystemExit) as exc_info:
                main(["score", str(audio_path), "--text", "Hello."])
        assert exc_info.value.code == 1
        assert "Vendor HTTP 500" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# Output naming
# ---------------------------------------------------------------------------


class TestResolveOutputPath:

    def test_no_conflict(self, tmp_path):
        assert _resolve_output_path("class", "-report.json", tmp_path) == tmp_path / "class-report.json"

    def test_counter_increments(self, tmp_path):
        (tmp_path / "class-report.json").write_text("1")
        (tmp_path / "class-report-2.json").write_text("2")
        assert _resolve_output_path("class", "-report.json", tmp_path) == (
            tmp_path / "class-report-3.json"
        )
