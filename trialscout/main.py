"""
TrialScout - FastAPI Application

API endpoints for:
- Health checks
- Pipeline stage reference
- Clinical trial matching (single response or server-sent progress stream)
"""
import asyncio
import json
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from trialscout import __version__
from trialscout.config import settings
from trialscout.core.execution import CancellationToken
from trialscout.core.pipeline import STAGE_WEIGHTS, calculate_overall_progress, initial_stages, status_message
from trialscout.core.records import STAGE_ORDER, PipelineRun, PipelineStageState
from trialscout.models.matching import HealthResponse, MatchResponse, ProfileRequest, StageInfo
from trialscout.services.matching import MatchingService
from trialscout.utils import (
    DiscoveryFailedError,
    PipelineCancelledError,
    TrialScoutError,
    get_logger,
    setup_logging,
)

logger = get_logger(__name__)

START_TIME = datetime.now()

# How often the stream checks for a disconnected client while waiting
_DISCONNECT_POLL_SECONDS = 1.0


# ---- Application Lifespan ----

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the shared matching service on startup and close it on shutdown."""
    setup_logging(level=settings.log_level, log_file=settings.log_file)
    app.state.matching_service = MatchingService.from_settings(settings)
    logger.info("TrialScout API ready to accept requests")
    yield
    await app.state.matching_service.aclose()
    logger.info("TrialScout API shut down.")


# ---- FastAPI Application ----

app = FastAPI(
    title="TrialScout API",
    description="Match a patient profile against recruiting clinical trials",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_matching_service(request: Request) -> MatchingService:
    return request.app.state.matching_service


# ---- Error Handling ----

def _status_for(exc: TrialScoutError) -> int:
    if isinstance(exc, PipelineCancelledError):
        return 409
    if isinstance(exc, DiscoveryFailedError):
        return 502
    return 500


@app.exception_handler(TrialScoutError)
async def trialscout_error_handler(request: Request, exc: TrialScoutError):
    status_code = _status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def _run_response(run: PipelineRun) -> MatchResponse:
    return MatchResponse(
        **run.to_dict(),
        overall_progress=run.overall_progress,
        status_message=run.status_message,
    )


def _sse(event: Dict[str, Any]) -> str:
    return f"data: {json.dumps(event)}\n\n"


# ---- API Endpoints ----

def _health() -> HealthResponse:
    return HealthResponse(
        status="healthy",
        version=__version__,
        timestamp=datetime.now().isoformat(),
        uptime_seconds=(datetime.now() - START_TIME).total_seconds(),
    )


@app.get("/", response_model=HealthResponse, tags=["Health"])
async def root():
    """API root - health check."""
    return _health()


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    return _health()


@app.get("/api/v1/stages", response_model=List[StageInfo], tags=["Reference"])
async def list_stages():
    """The four pipeline stages in execution order with their progress weights."""
    return [
        StageInfo(id=stage_id.value, name=stage_id.display_name, weight=STAGE_WEIGHTS[stage_id])
        for stage_id in STAGE_ORDER
    ]


@app.post("/api/v1/match", response_model=MatchResponse, tags=["Matching"])
async def match(payload: ProfileRequest, service: MatchingService = Depends(get_matching_service)):
    """
    Run the full matching pipeline and return the final run.

    Returns 502 when the trial search itself fails and 409 when the run was
    cancelled. An exhausted Extraction stage still returns 200 with the
    partial run (Matching stage in ``error``).
    """
    profile = payload.to_profile()
    logger.info(f"Match request: '{profile.condition}' near {profile.location_code}")
    run = await service.run(profile)
    return _run_response(run)


async def stream_pipeline(
    service: MatchingService,
    profile,
    is_disconnected: Callable[[], Awaitable[bool]],
    token: Optional[CancellationToken] = None,
    poll_seconds: float = _DISCONNECT_POLL_SECONDS,
) -> AsyncIterator[str]:
    """
    Run the pipeline in a background task and yield its events as SSE frames.

    While no event is pending, ``is_disconnected`` is polled every
    ``poll_seconds``; a disconnect cancels the token. The background task is
    always awaited before the generator finishes, so an in-flight chunk
    settles and the run's terminal state is observed.
    """
    token = token or CancellationToken()
    queue: asyncio.Queue = asyncio.Queue()

    stages: Dict[str, PipelineStageState] = {s.stage.value: s for s in initial_stages()}
    sent_lines = 0

    async def on_progress(state: PipelineStageState, log_snapshot) -> None:
        nonlocal sent_lines
        stages[state.stage.value] = state
        new_lines = list(log_snapshot[sent_lines:])
        sent_lines = len(log_snapshot)
        await queue.put({
            "type": "progress",
            "stage": state.to_dict(),
            "overall_progress": calculate_overall_progress(stages.values()),
            "status_message": status_message(stages.values()),
            "log": new_lines,
        })

    async def run_pipeline() -> None:
        try:
            run = await service.run(profile, on_progress, token)
            await queue.put({"type": "result", "run": _run_response(run).model_dump()})
        except PipelineCancelledError as e:
            await queue.put({"type": "cancelled", **e.to_dict()})
        except TrialScoutError as e:
            await queue.put({"type": "error", **e.to_dict()})
        except Exception as e:
            logger.error(f"Match stream failed: {e}")
            await queue.put({"type": "error", "error": "INTERNAL_ERROR", "message": str(e)})
        finally:
            await queue.put(None)

    task = asyncio.create_task(run_pipeline())
    try:
        while True:
            try:
                event = await asyncio.wait_for(queue.get(), timeout=poll_seconds)
            except asyncio.TimeoutError:
                if await is_disconnected():
                    logger.info("Match stream: client disconnected, cancelling run")
                    token.cancel("Client disconnected")
                    break
                continue
            if event is None:
                break
            yield _sse(event)
    finally:
        if not task.done():
            token.cancel("Client disconnected")
        # run_pipeline turns every failure into a queued event, so this never raises
        await task


@app.post("/api/v1/match/stream", tags=["Matching"])
async def match_stream(
    payload: ProfileRequest,
    request: Request,
    service: MatchingService = Depends(get_matching_service),
):
    """
    Run the pipeline and stream progress as server-sent events.

    Events (``data:`` JSON with a ``type`` field):
        progress  - one per stage transition or intra-stage update
        result    - final run
        cancelled - the run was cancelled (client disconnect)
        error     - the run failed
    """
    profile = payload.to_profile()
    return StreamingResponse(
        stream_pipeline(service, profile, request.is_disconnected),
        media_type="text/event-stream",
    )


# ---- Run with uvicorn ----
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
