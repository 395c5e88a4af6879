"""
Video Proxy HTTP Server

FastAPI server that provides:
- POST /generate-video - Submit a text-to-video job
- POST /check-video-status - Current job status and video locator
- GET /download-video - Download a stored video as an attachment
- GET /get-video-info - Stored job details
- GET /proxy-video - Stream a video URL through the server
- GET /health - Health check
- GET / - Landing page

Every handler answers with a JSON body on failure; nothing is left to
surface as a framework error page.

Usage:
    python -m uvicorn services.gateway.server:app --host 0.0.0.0 --port 3000

    # Or via main.py
    python main.py server
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Body, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse, JSONResponse, Response, StreamingResponse
from fastapi.staticfiles import StaticFiles
from starlette.background import BackgroundTask

from core.config import Config, get_config
from core.feature_flags import StoreMode, get_store_status, polls_in_background
from services.video_generation.client import (
    ConfigurationError,
    VideoGenerationClient,
    VideoGenerationError,
)
from services.video_generation.poller import PollState, PollingSupervisor
from services.video_generation.status import TIMED_OUT, get_progress, get_status_message
from services.video_generation.store import FilesystemVideoStore, VideoStore, create_store

from .schemas import (
    CheckStatusRequest,
    ErrorResponse,
    GenerateVideoRequest,
    GenerateVideoResponse,
    VideoInfoResponse,
    VideoStatusResponse,
)

logger = logging.getLogger(__name__)

VIDEO_MEDIA_TYPE = "video/mp4"

router = APIRouter()


def _fail(error: str, status_code: int = 200) -> JSONResponse:
    return JSONResponse(ErrorResponse(error=error).to_body(), status_code=status_code)


def _client(request: Request) -> VideoGenerationClient:
    return request.app.state.client


def _store(request: Request) -> VideoStore:
    return request.app.state.store


def _supervisor(request: Request) -> PollingSupervisor:
    return request.app.state.supervisor


def _attachment(job_id: str) -> dict:
    return {"Content-Disposition": f'attachment; filename="video-{job_id}.mp4"'}


@router.get("/")
async def root(request: Request):
    """Landing page, or API info when no page is installed."""
    index = Path(request.app.state.config.server.static_dir) / "index.html"
    if index.is_file():
        return FileResponse(index, media_type="text/html")

    return {
        "service": "Video Generation Proxy",
        "version": request.app.version,
        "endpoints": {
            "POST /generate-video": "Start video generation",
            "POST /check-video-status": "Job status and video locator",
            "GET /download-video?jobId=": "Download a finished video",
            "GET /get-video-info?jobId=": "Stored job details",
            "GET /proxy-video?url=": "Stream a video through the server",
            "GET /health": "Health check",
        },
    }


@router.get("/health")
async def health(request: Request):
    """Health check endpoint."""
    client = _client(request)
    store = _store(request)

    return {
        "status": "healthy",
        "video_generation": "enabled" if client.is_configured else "disabled",
        "store_mode": store.mode.value,
        "active_polls": _supervisor(request).active_count,
        "stored_videos": len(store),
        "upstream_circuit": client.get_circuit_breaker_status()["state"],
        "message": "AI Video Generator",
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.get("/storage")
async def storage_status(request: Request):
    """Current storage strategy."""
    return get_store_status(_store(request).mode.value)


@router.post("/generate-video")
async def generate_video(
    request: Request,
    payload: Optional[GenerateVideoRequest] = Body(default=None),
):
    """
    Submit a generation job.

    Returns immediately with the upstream job id. In memory and filesystem
    modes a background poller is started for the job.
    """
    if payload is None or not (payload.prompt or "").strip():
        return _fail("Please provide a video prompt")

    client = _client(request)
    prompt = payload.prompt
    logger.info(f"Video generation request: {prompt[:80]!r}")

    if not client.is_configured:
        return _fail("Video service configuration missing")

    params = client.default_params().with_overrides(
        model=payload.model,
        height=payload.height,
        width=payload.width,
        n_seconds=payload.n_seconds,
        n_variants=payload.n_variants,
    )

    try:
        submitted = await client.submit(prompt, params)
    except ConfigurationError as e:
        return _fail(str(e))
    except Exception as e:
        logger.error(f"Video generation error: {e}")
        return _fail(f"Video generation failed: {e}")

    store = _store(request)
    if polls_in_background(store.mode):
        _supervisor(request).start(submitted.job_id, prompt)

    return GenerateVideoResponse(
        job_id=submitted.job_id,
        status=submitted.status,
        message="Video generation started successfully!",
        note="Video will be ready in 2-5 minutes.",
    ).to_body()


@router.post("/check-video-status")
async def check_video_status(
    request: Request,
    payload: Optional[CheckStatusRequest] = Body(default=None),
):
    """Report upstream status plus whether a video can be fetched yet."""
    job_id = payload.job_id if payload else None
    if not job_id:
        return _fail("Job ID is required")

    client = _client(request)
    store = _store(request)

    outcome = _supervisor(request).outcome(job_id)
    if outcome is not None and outcome.state == PollState.TIMED_OUT:
        return _status_body(store, job_id, TIMED_OUT, locator=None)

    try:
        status = await client.fetch_status(job_id)
    except VideoGenerationError as e:
        return _fail(str(e))
    except Exception as e:
        logger.error(f"Status check error for job {job_id}: {e}")
        return _fail(f"Status check failed: {e}")

    if store.mode == StoreMode.NONE:
        locator = client.resolve_video_url(status)
    else:
        locator = store.locator(job_id)

    return _status_body(store, job_id, status.status, locator)


def _status_body(store: VideoStore, job_id: str, status: str, locator: Optional[str]) -> dict:
    ready = locator is not None
    fields = dict(
        job_id=job_id,
        status=status,
        progress=get_progress(status),
        video_ready=ready,
        message=get_status_message(status, ready),
    )

    # In-memory jobs are fetched through the download endpoint; the other
    # modes hand out a URL the browser can load directly.
    if store.mode == StoreMode.MEMORY:
        fields["download_url"] = locator
    else:
        fields["video_url"] = locator

    return VideoStatusResponse(**fields).to_body()


@router.get("/download-video")
async def download_video(
    request: Request,
    job_id: Optional[str] = Query(default=None, alias="jobId"),
):
    """Serve a stored video as an attachment; 404 until it is stored."""
    if not job_id:
        return _fail("Job ID is required", status_code=400)

    entry = _store(request).lookup(job_id)
    if entry is None:
        return _fail("Video not found or not ready yet", status_code=404)

    if entry.file_path:
        return FileResponse(
            entry.file_path,
            media_type=VIDEO_MEDIA_TYPE,
            filename=f"video-{job_id}.mp4",
        )

    try:
        content = await _client(request).fetch_content(job_id, entry.generation_id)
    except Exception as e:
        logger.error(f"Download failed for job {job_id}: {e}")
        return _fail(f"Video download failed: {e}", status_code=500)

    return Response(content, media_type=VIDEO_MEDIA_TYPE, headers=_attachment(job_id))


@router.get("/get-video-info")
async def get_video_info(
    request: Request,
    job_id: Optional[str] = Query(default=None, alias="jobId"),
):
    if not job_id:
        return _fail("Job ID is required", status_code=400)

    entry = _store(request).lookup(job_id)
    if entry is None:
        return _fail("Video not found", status_code=404)

    return VideoInfoResponse(
        job_id=entry.job_id,
        status=entry.status,
        generation_id=entry.generation_id,
        prompt=entry.prompt,
    ).to_body()


@router.get("/proxy-video")
async def proxy_video(request: Request, url: Optional[str] = None):
    """Stream a remote video through this server."""
    if not url:
        return JSONResponse({"error": "URL parameter required"}, status_code=400)

    try:
        upstream = await _client(request).open_stream(url)
    except Exception as e:
        logger.error(f"Video proxy error: {e}")
        return JSONResponse({"error": "Video streaming failed"}, status_code=500)

    return StreamingResponse(
        upstream.aiter_bytes(),
        media_type=VIDEO_MEDIA_TYPE,
        headers={"Cache-Control": "public, max-age=3600"},
        background=BackgroundTask(upstream.aclose),
    )


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        where = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        detail = f"{where}: {first.get('msg')}" if where else first.get("msg")
    else:
        detail = "malformed request"
    return _fail(f"Invalid request: {detail}", status_code=400)


def create_app(
    config: Optional[Config] = None,
    client: Optional[VideoGenerationClient] = None,
    store: Optional[VideoStore] = None,
    supervisor: Optional[PollingSupervisor] = None,
) -> FastAPI:
    """
    Build the application.

    Components are created eagerly so the app works with or without a
    lifespan run; tests inject fakes through the arguments.
    """
    config = config or get_config()
    if client is None:
        client = VideoGenerationClient(config)
    if store is None:
        store = create_store(config)
    if supervisor is None:
        supervisor = PollingSupervisor(client, store, config=config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        logger.info(f"Starting video proxy (store mode: {store.mode.value})")
        for issue in config.validate():
            logger.warning(f"Configuration issue: {issue}")

        yield

        logger.info("Shutting down video proxy...")
        await supervisor.shutdown()
        await client.close()

    app = FastAPI(
        title="Video Generation Proxy",
        description="Text-to-video generation through the Azure OpenAI video API",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.client = client
    app.state.store = store
    app.state.supervisor = supervisor

    app.add_exception_handler(RequestValidationError, _validation_error)
    app.include_router(router)

    if isinstance(store, FilesystemVideoStore):
        app.mount(
            store.public_prefix,
            StaticFiles(directory=str(store.video_dir)),
            name="videos",
        )

    return app


app = create_app()
