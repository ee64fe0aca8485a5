from __future__ import annotations

import logging
from typing import ClassVar, FrozenSet, Optional

import requests
from pydantic import ValidationError

from ..errors import ExtractionError, JobSubmissionError, ProviderUnavailableError
from ..job_state import Job, JobStatus
from ..models import ConversionRequest, ExtractionResult, MediaKind, ProgressUpdate, QualityTable
from ..normalizer import VideoReference
from ..schemas import LoaderProgress
from .base import ProviderKind, build_session, dump_body, exchange_json

logger = logging.getLogger(__name__)

LOADER_QUALITIES = QualityTable(
    audio=(92, 128, 256, 320),
    video=(144, 240, 360, 480, 720, 1080, 1440, 2160),
    default_audio=128,
    default_video=720,
)

AUDIO_FORMAT_TOKEN = "mp3"
ERROR_MARKERS: FrozenSet[str] = frozenset({"error"})


class LoaderProvider:
    """Asynchronous conversion jobs; metadata comes from oEmbed."""

    kind: ClassVar[ProviderKind] = ProviderKind.JOB
    qualities = LOADER_QUALITIES

    def __init__(
        self,
        *,
        submit_url: str,
        progress_url: str,
        oembed_url: str,
        timeout: float,
        session: Optional[requests.Session] = None,
    ):
        self.submit_url = submit_url
        self.progress_url = progress_url
        self.oembed_url = oembed_url
        self.timeout = timeout
        self.session = session or build_session()

    def close(self) -> None:
        self.session.close()

    @staticmethod
    def format_token(request: ConversionRequest) -> str:
        if request.media_kind is MediaKind.AUDIO:
            return AUDIO_FORMAT_TOKEN
        return str(request.quality)

    def fetch_info(self, reference: VideoReference) -> ExtractionResult:
        try:
            response = self.session.request(
                "GET",
                self.oembed_url,
                params={"url": reference.watch_url, "format": "json"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ProviderUnavailableError(f"oEmbed lookup failed: {exc}") from exc
        if not response.ok:
            raise ExtractionError(f"oEmbed returned HTTP {response.status_code}", raw_body=response.text)
        try:
            body = response.json()
        except ValueError as exc:
            raise ExtractionError("oEmbed returned a non-JSON body", raw_body=response.text) from exc

        title = body.get("title") if isinstance(body, dict) else None
        if not title:
            raise ExtractionError("oEmbed response carried no title", raw_body=response.text)
        return ExtractionResult(
            video_id=reference.video_id,
            title=str(title),
            duration_seconds=None,
            thumbnail_url=str(body.get("thumbnail_url") or reference.thumbnail_url),
            available_qualities=self.qualities.as_dict(),
        )

    def submit(self, request: ConversionRequest) -> Job:
        body = exchange_json(
            self.session,
            "GET",
            self.submit_url,
            error_cls=JobSubmissionError,
            timeout=self.timeout,
            params={"format": self.format_token(request), "url": request.reference.watch_url},
        )
        job_id = body.get("id") if isinstance(body, dict) else None
        if not job_id:
            raise JobSubmissionError("Submission response carried no job id", raw_body=dump_body(body))
        logger.info("Submitted conversion job %s for %s", job_id, request.reference.video_id)
        return Job(job_id=str(job_id))

    def check_progress(self, job_id: str) -> ProgressUpdate:
        body = exchange_json(
            self.session,
            "GET",
            self.progress_url,
            error_cls=ProviderUnavailableError,
            timeout=self.timeout,
            params={"id": job_id},
        )
        try:
            progress = LoaderProgress.model_validate(body)
        except ValidationError as exc:
            raise ProviderUnavailableError(f"Unexpected progress body: {exc}", raw_body=dump_body(body)) from exc

        raw = progress.model_dump(exclude_none=True)
        text = progress.text or ""
        if progress.success and progress.download_url:
            return ProgressUpdate(JobStatus.SUCCEEDED, text, progress.download_url, raw)
        if text.strip().lower() in ERROR_MARKERS:
            return ProgressUpdate(JobStatus.FAILED, text, None, raw)
        return ProgressUpdate(JobStatus.PENDING, text, None, raw)
