import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from redis.asyncio import Redis
from slowapi.errors import RateLimitExceeded
from sse_starlette.sse import EventSourceResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, get_settings
from .dependencies import build_limiter, get_provider, rate_limit_handler, redis_client
from .errors import ProviderUnavailableError, ServiceError, UnsupportedOperationError
from .job_state import JobStatus, job_events_channel
from .logging_config import configure_json_logging
from .models import ConversionRequest, MediaKind
from .normalizer import VideoReference, normalize_url
from .providers import JobProvider, Provider, ProviderKind
from .schemas import (
    AvailableFormats,
    DirectDownloadResponse,
    ErrorResponse,
    JobSubmittedResponse,
    VideoInfoResponse,
    WatchResponse,
)
from .tasks import watch_job

logger = logging.getLogger(__name__)

settings = get_settings()
limiter = build_limiter(settings)
LIMIT_VALUE = f"{settings.rate_limit_per_minute}/minute"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

ERROR_RESPONSES: Dict[Union[int, str], Dict[str, Any]] = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_429_TOO_MANY_REQUESTS: {"model": ErrorResponse},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_json_logging(settings.log_level)
    yield


app = FastAPI(title="tubeconvert", version="0.1.0", lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


@app.middleware("http")
async def answer_options(request: Request, call_next):
    if request.method == "OPTIONS":
        return Response(status_code=status.HTTP_204_NO_CONTENT, headers=CORS_HEADERS)
    return await call_next(request)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    logger.warning(
        "%s on %s: %s%s",
        type(exc).__name__,
        request.url.path,
        exc.detail,
        f" (provider body: {exc.raw_body})" if exc.raw_body else "",
    )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.public_message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Invalid request parameters."})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "An unexpected error occurred."},
        headers=CORS_HEADERS,
    )


def _require_reference(url: Optional[str]) -> VideoReference:
    if not url or not url.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Video URL is required.")
    return normalize_url(url)


def _require_job_provider(provider: Provider) -> JobProvider:
    if provider.kind is not ProviderKind.JOB:
        raise UnsupportedOperationError("Progress tracking is not available for the configured provider.")
    return provider


@app.get("/api/info", response_model=VideoInfoResponse, responses=ERROR_RESPONSES)
@limiter.limit(LIMIT_VALUE)
def video_info(
    request: Request,
    url: Optional[str] = Query(default=None),
    provider: Provider = Depends(get_provider),
) -> VideoInfoResponse:
    reference = _require_reference(url)
    result = provider.fetch_info(reference)
    return VideoInfoResponse(
        videoId=result.video_id,
        title=result.title,
        duration=result.duration_seconds,
        thumbnail=result.thumbnail_url,
        availableFormats=AvailableFormats(**result.available_qualities),
    )


@app.get(
    "/api/download",
    response_model=Union[DirectDownloadResponse, JobSubmittedResponse],
    responses=ERROR_RESPONSES,
)
@limiter.limit(LIMIT_VALUE)
def download(
    request: Request,
    url: Optional[str] = Query(default=None),
    media_format: Optional[str] = Query(default=None, alias="format"),
    quality: Optional[str] = Query(default=None),
    provider: Provider = Depends(get_provider),
) -> Union[DirectDownloadResponse, JobSubmittedResponse]:
    reference = _require_reference(url)
    conversion = ConversionRequest.build(reference, MediaKind.parse(media_format), quality, provider.qualities)

    if provider.kind is ProviderKind.JOB:
        job = provider.submit(conversion)
        return JobSubmittedResponse(
            id=job.job_id,
            original_format=conversion.media_kind.value,
            original_quality=conversion.quality,
        )

    link = provider.resolve_download(conversion)
    return DirectDownloadResponse(
        quality=link.quality_label,
        downloadUrl=link.url,
        filename=link.filename,
        availableQualities=link.available_qualities,
    )


@app.get("/api/progress", responses=ERROR_RESPONSES)
@limiter.limit(LIMIT_VALUE)
def progress(
    request: Request,
    job_id: Optional[str] = Query(default=None, alias="id"),
    provider: Provider = Depends(get_provider),
) -> Dict[str, Any]:
    if not job_id or not job_id.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Job id is required.")
    job_provider = _require_job_provider(provider)
    try:
        update = job_provider.check_progress(job_id.strip())
    except ProviderUnavailableError as exc:
        logger.warning("Transient progress failure for job %s: %s", job_id, exc.detail)
        return {"success": 0, "text": "Progress check failed, retrying shortly."}

    body: Dict[str, Any] = dict(update.raw)
    body["success"] = 1 if update.status is JobStatus.SUCCEEDED else 0
    if update.text:
        body["text"] = update.text
    if update.result_url:
        body["download_url"] = update.result_url
    if update.status is JobStatus.FAILED:
        body["error"] = "The conversion failed."
    return body


@app.post(
    "/api/jobs/{job_id}/watch",
    response_model=WatchResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses=ERROR_RESPONSES,
)
@limiter.limit(LIMIT_VALUE)
def watch(
    request: Request,
    job_id: str,
    provider: Provider = Depends(get_provider),
) -> WatchResponse:
    _require_job_provider(provider)
    watch_job.apply_async(args=(job_id,))
    return WatchResponse(id=job_id)


async def _event_stream(request: Request, redis: Redis, job_id: str) -> AsyncIterator[dict]:
    channel = job_events_channel(job_id)
    pubsub = redis.pubsub()
    await pubsub.subscribe(channel)
    try:
        while True:
            if await request.is_disconnected():
                break
            message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            if message and message.get("type") == "message":
                snapshot = json.loads(message["data"])
                yield {"event": snapshot.get("event", "message"), "data": message["data"]}
                if JobStatus(snapshot.get("status", JobStatus.PENDING.value)).is_terminal:
                    break
            await asyncio.sleep(0.25)
    finally:
        await pubsub.unsubscribe(channel)
        await pubsub.aclose()


@app.get("/api/jobs/{job_id}/events")
@limiter.limit(LIMIT_VALUE)
async def stream_job_events(
    request: Request,
    job_id: str,
    settings: Settings = Depends(get_settings),
) -> EventSourceResponse:
    async def generator() -> AsyncIterator[dict]:
        async with redis_client(settings) as redis:
            async for event in _event_stream(request, redis, job_id):
                yield event

    return EventSourceResponse(generator())


@app.get("/api/health")
async def healthcheck() -> Response:
    return Response(content="ok", media_type="text/plain")


if settings.static_dir is not None and settings.static_dir.is_dir():
    app.mount("/", StaticFiles(directory=str(settings.static_dir), html=True), name="client")
