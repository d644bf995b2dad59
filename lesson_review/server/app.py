"""FastAPI application: windowing, per-window analysis, scoring, and jobs.

WHY: The browser front end and scripts need HTTP access to the windowing
engine and to both collaborators, plus a way to analyze a whole class in
the background and poll for per-window progress.

HOW: A single FastAPI app exposes endpoints grouped by tags.
/analyze-window and /speech-score are thin adapters around WindowAnalyzer
and SpeechScoreClient that map each error code to an HTTP status.
POST /analyses splits the transcript, creates a job, and runs the batch
via FastAPI BackgroundTasks; progress lands in the job store as each
window finishes.

RULES:
- Collaborator routes answer failures with {ok: false, code, message}
- Job routes answer failures with {detail} (HTTPException)
- Client factories are FastAPI dependencies so tests can override them
- The job store is a module-level singleton; cleanup runs every 5 minutes
- Python 3.9+ compatible (no match/case, no PEP 604 unions)
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Callable, Dict, List, Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header, HTTPException
from fastapi.responses import JSONResponse, Response

from lesson_review import __version__
from lesson_review.api.analyzer import AnalysisError, WindowAnalyzer
from lesson_review.api.models import SpeechAudio
from lesson_review.api.speech import SpeechScoreClient, SpeechScoreError, validate_request
from lesson_review.config import ANALYSIS_CONCURRENCY, MissingAPIKeyError
from lesson_review.core.batch import Progress, WindowJob, analyze_windows
from lesson_review.core.report import AnalysisReport
from lesson_review.core.windows import split_into_windows
from lesson_review.formatters import FORMATTERS
from lesson_review.server.jobs import Job, JobStatus, JobStore
from lesson_review.server.models import (
    AnalysisCreatedResponse,
    AnalysisJobResponse,
    AnalysisRequest,
    AnalyzeWindowRequest,
    AnalyzeWindowResponse,
    ErrorResponse,
    FailureResponse,
    FormatInfo,
    HealthResponse,
    SpeechScoreRequest,
    SpeechScoreResponse,
    WindowModel,
    WindowsRequest,
)

logger = logging.getLogger(__name__)

# HTTP status for each collaborator error code
_STATUS_BY_CODE: Dict[str, int] = {
    "invalid_input": 422,
    "input_too_large": 413,
    "bad_model_output": 502,
    "missing_openai_key": 500,
    "server_error": 500,
    "audio_too_long": 400,
    "vendor_error": 502,
    "timeout": 504,
}

# ---------------------------------------------------------------------------
# App and store setup
# ---------------------------------------------------------------------------

job_store = JobStore()


async def _periodic_cleanup() -> None:
    """Run job cleanup every 5 minutes."""
    while True:
        await asyncio.sleep(300)
        job_store.cleanup_expired()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start periodic cleanup on startup, cancel on shutdown."""
    task = asyncio.create_task(_periodic_cleanup())
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


app = FastAPI(
    lifespan=lifespan,
    title="Lesson Review API",
    description=(
        "Split timestamped class transcripts into fixed time windows, "
        "analyze each window for student sentence rewrites and vocabulary, "
        "and score pronunciation practice recordings."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_analyzer_factory() -> Callable[[], WindowAnalyzer]:
    return WindowAnalyzer


def get_speech_client_factory() -> Callable[[], SpeechScoreClient]:
    return SpeechScoreClient


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _failure(code: str, message: Optional[str] = None, status: Optional[int] = None) -> JSONResponse:
    body = FailureResponse(code=code, message=message).model_dump(exclude_none=True)
    return JSONResponse(body, status_code=status or _STATUS_BY_CODE.get(code, 500))


def _job_to_response(job: Job) -> AnalysisJobResponse:
    """Convert an internal Job dataclass to an AnalysisJobResponse."""
    result = job.result if job.status == JobStatus.COMPLETED else None
    return AnalysisJobResponse(
        id=job.id,
        status=job.status.value,
        created_at=job.created_at,
        config=job.config,
        windows=[WindowModel(**w.to_dict()) for w in job.windows],
        progress=job.progress,
        window_jobs=job.window_jobs,
        error=job.error,
        sentences=[s.model_dump() for s in result.sentences] if result else None,
        vocabulary=[v.model_dump() for v in result.vocabulary] if result else None,
    )


def _get_job_or_404(job_id: str) -> Job:
    job = job_store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found: {}".format(job_id))
    return job


async def _run_analysis_pipeline(
    job_id: str,
    store: JobStore,
    analyzer_factory: Callable[[], WindowAnalyzer],
) -> None:
    """Analyze every window of a job and record progress in the store.

    RULES:
    - Status goes ANALYZING → COMPLETED, even when some windows failed
    - A failure of the batch as a whole (missing key, bad config) → FAILED
    """
    job = store.get_job(job_id)
    if job is None:
        return

    def _on_progress(progress: Progress, window_job: WindowJob) -> None:
        store.update_job(
            job_id,
            progress=progress.to_dict(),
            window_job=window_job.to_dict(),
        )

    try:
        store.update_job(job_id, status=JobStatus.ANALYZING)
        async with analyzer_factory() as analyzer:
            result = await analyze_windows(
                job.windows,
                analyzer,
                objectives=job.config.get("objectives", ""),
                concurrency=ANALYSIS_CONCURRENCY,
                on_progress=_on_progress,
            )
        store.update_job(job_id, status=JobStatus.COMPLETED, result=result)
    except Exception as exc:
        logger.exception("Analysis pipeline failed for job %s", job_id)
        store.update_job(job_id, status=JobStatus.FAILED, error=str(exc))


def _run_analysis_sync(
    job_id: str,
    store: JobStore,
    analyzer_factory: Callable[[], WindowAnalyzer],
) -> None:
    """Synchronous wrapper for the async pipeline (BackgroundTasks runs it in a thread)."""
    asyncio.run(_run_analysis_pipeline(job_id, store, analyzer_factory))


# ---------------------------------------------------------------------------
# Endpoints: Windows
# ---------------------------------------------------------------------------


@app.post(
    "/windows",
    response_model=List[WindowModel],
    tags=["windows"],
    summary="Split a transcript into time windows",
    description=(
        "Returns the ordered, non-overlapping windows of the transcript. "
        "A transcript without any HH:MM:SS marker line yields an empty list."
    ),
)
async def create_windows(body: WindowsRequest) -> List[WindowModel]:
    windows = split_into_windows(body.transcript, body.window_minutes)
    return [WindowModel(**w.to_dict()) for w in windows]


# ---------------------------------------------------------------------------
# Endpoints: Collaborators
# ---------------------------------------------------------------------------


@app.post(
    "/analyze-window",
    response_model=AnalyzeWindowResponse,
    tags=["analysis"],
    summary="Analyze a single window",
    responses={
        413: {"model": FailureResponse, "description": "Window text too large"},
        422: {"model": FailureResponse, "description": "Missing or empty window text"},
        500: {"model": FailureResponse, "description": "Missing API key or server error"},
        502: {"model": FailureResponse, "description": "All models failed"},
    },
)
async def analyze_window(
    body: AnalyzeWindowRequest,
    analyzer_factory: Callable[[], WindowAnalyzer] = Depends(get_analyzer_factory),
):
    try:
        async with analyzer_factory() as analyzer:
            analysis = await analyzer.analyze(body.windowText, body.objectives or "")
    except AnalysisError as exc:
        return _failure(exc.code, exc.message)
    except Exception:
        logger.exception("analyze-window failed")
        return _failure("server_error")
    return AnalyzeWindowResponse(data=analysis.model_dump())


@app.post(
    "/speech-score",
    response_model=SpeechScoreResponse,
    tags=["analysis"],
    summary="Score a pronunciation recording",
    responses={
        400: {"model": FailureResponse, "description": "Invalid input or audio too long"},
        500: {"model": FailureResponse, "description": "Server error"},
        502: {"model": FailureResponse, "description": "Vendor error"},
        504: {"model": FailureResponse, "description": "Vendor timeout"},
    },
)
async def speech_score(
    body: SpeechScoreRequest,
    x_user_id: Optional[str] = Header(default=None),
    client_factory: Callable[[], SpeechScoreClient] = Depends(get_speech_client_factory),
):
    payload = body.audio
    if payload is None:
        return _failure("invalid_input", "audio {mime, base64, durationMs} required", 400)
    audio = SpeechAudio(mime=payload.mime, base64=payload.base64, duration_ms=payload.durationMs)

    try:
        validate_request(body.expectedText, audio)
        async with client_factory() as client:
            score = await client.score(
                body.expectedText,
                audio,
                accent=body.accent,
                user_id=body.userId or x_user_id,
            )
    except SpeechScoreError as exc:
        status = 400 if exc.code in ("invalid_input", "audio_too_long") else None
        return _failure(exc.code, exc.message, status)
    except MissingAPIKeyError:
        logger.error("speech-score: Language Confidence API key not configured")
        return _failure("server_error")
    except Exception:
        logger.exception("speech-score failed")
        return _failure("server_error")
    return SpeechScoreResponse(data=score.to_dict())


# ---------------------------------------------------------------------------
# Endpoints: Analysis jobs
# ---------------------------------------------------------------------------


@app.post(
    "/analyses",
    response_model=AnalysisCreatedResponse,
    status_code=201,
    tags=["analyses"],
    summary="Submit a transcript for background analysis",
    description=(
        "Splits the transcript into windows and analyzes each one in the "
        "background. Poll GET /analyses/{id} for per-window progress."
    ),
    responses={
        422: {"model": ErrorResponse, "description": "Transcript has no timestamp markers"},
        429: {"model": ErrorResponse, "description": "Too many stored jobs"},
    },
)
async def create_analysis(
    body: AnalysisRequest,
    background_tasks: BackgroundTasks,
    analyzer_factory: Callable[[], WindowAnalyzer] = Depends(get_analyzer_factory),
) -> AnalysisCreatedResponse:
    windows = split_into_windows(body.transcript, body.window_minutes)
    if not windows:
        raise HTTPException(
            status_code=422,
            detail="No timestamps found. Add HH:MM:SS marker lines to the transcript.",
        )

    config = {
        "source_name": body.source_name,
        "objectives": body.objectives,
        "window_minutes": body.window_minutes,
    }
    try:
        job = job_store.create_job(windows=windows, config=config)
    except ValueError as exc:
        raise HTTPException(status_code=429, detail=str(exc))

    background_tasks.add_task(_run_analysis_sync, job.id, job_store, analyzer_factory)

    return AnalysisCreatedResponse(
        id=job.id,
        status=job.status.value,
        window_count=len(windows),
    )


@app.get(
    "/analyses/{job_id}",
    response_model=AnalysisJobResponse,
    tags=["analyses"],
    summary="Get analysis job status",
    responses={404: {"model": ErrorResponse, "description": "Job not found"}},
)
async def get_analysis(job_id: str) -> AnalysisJobResponse:
    return _job_to_response(_get_job_or_404(job_id))


@app.delete(
    "/analyses/{job_id}",
    status_code=204,
    tags=["analyses"],
    summary="Delete an analysis job",
    responses={404: {"model": ErrorResponse, "description": "Job not found"}},
)
async def delete_analysis(job_id: str) -> Response:
    if not job_store.delete_job(job_id):
        raise HTTPException(status_code=404, detail="Job not found: {}".format(job_id))
    return Response(status_code=204)


@app.get(
    "/analyses/{job_id}/report/{format_key}",
    tags=["analyses"],
    summary="Download a completed job's report in one format",
    responses={
        404: {"model": ErrorResponse, "description": "Job or format not found"},
        409: {"model": ErrorResponse, "description": "Job not yet completed"},
    },
)
async def download_report(job_id: str, format_key: str) -> Response:
    job = _get_job_or_404(job_id)

    formatter_cls = FORMATTERS.get(format_key)
    if formatter_cls is None:
        raise HTTPException(
            status_code=404,
            detail="Unknown format '{}'. Available: {}".format(
                format_key, ", ".join(sorted(FORMATTERS))
            ),
        )

    if job.status != JobStatus.COMPLETED:
        raise HTTPException(
            status_code=409,
            detail="Job is not completed (current status: {}).".format(job.status.value),
        )

    source_name = job.config.get("source_name", "transcript")
    report = AnalysisReport(
        source_name=source_name,
        window_minutes=job.config.get("window_minutes", 20),
        windows=job.windows,
        batch=job.result,
    )
    output = formatter_cls().format(report)[0]
    filename = "{}{}".format(source_name, output.suffix)

    return Response(
        content=output.content,
        media_type=output.media_type,
        headers={"Content-Disposition": 'attachment; filename="{}"'.format(filename)},
    )


# ---------------------------------------------------------------------------
# Endpoints: Formats and health
# ---------------------------------------------------------------------------


@app.get(
    "/formats",
    response_model=List[FormatInfo],
    tags=["formats"],
    summary="List available report formats",
)
async def list_formats() -> List[FormatInfo]:
    empty = AnalysisReport(source_name="example", window_minutes=20, windows=[])
    result = []
    for key, formatter_cls in sorted(FORMATTERS.items()):
        formatter = formatter_cls()
        outputs = formatter.format(empty)
        result.append(FormatInfo(
            key=key,
            name=formatter.name,
            suffix=outputs[0].suffix if outputs else "",
        ))
    return result


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__)


def run_api(host: str = "0.0.0.0", port: int = 8000) -> None:
    """Entry point for the lesson-review-api console script."""
    import uvicorn
    uvicorn.run(app, host=host, port=port)
