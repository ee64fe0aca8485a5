from __future__ import annotations

import logging
from typing import Any, ClassVar, Optional, Tuple

import requests

from ..cipher import decrypt_payload
from ..errors import ExtractionError, ProviderUnavailableError
from ..models import ConversionRequest, DecryptedPayload, DownloadLink, ExtractionResult, QualityTable
from ..normalizer import VideoReference
from .base import FieldPath, ProviderKind, build_session, dump_body, exchange_json, first_present

logger = logging.getLogger(__name__)

SAVETUBE_QUALITIES = QualityTable(
    audio=(92, 128, 256, 320),
    video=(144, 360, 480, 720, 1080),
    default_audio=128,
    default_video=360,
)

# The download response has shipped the URL under each of these.
DOWNLOAD_URL_PATHS: Tuple[FieldPath, ...] = (
    ("data", "downloadUrl"),
    ("data", "url"),
    ("downloadUrl",),
)


def parse_duration(value: Any) -> Optional[int]:
    """Accept seconds as an int, a numeric string or an ``h:mm:ss`` label."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if value >= 0 else None
    if not isinstance(value, str) or not value.strip():
        return None
    parts = value.strip().split(":")
    if len(parts) > 3:
        return None
    try:
        numbers = [int(part) for part in parts]
    except ValueError:
        return None
    if any(number < 0 for number in numbers):
        return None
    seconds = 0
    for number in numbers:
        seconds = seconds * 60 + number
    return seconds


class SaveTubeProvider:
    """Synchronous extraction through SaveTube's rotating CDN hosts."""

    kind: ClassVar[ProviderKind] = ProviderKind.EXTRACTION
    qualities = SAVETUBE_QUALITIES

    def __init__(
        self,
        *,
        cdn_url: str,
        secret_key: str,
        referer: str,
        timeout: float,
        download_referer: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        self.cdn_url = cdn_url
        self.secret_key = secret_key
        self.referer = referer
        self.download_referer = download_referer or referer
        self.timeout = timeout
        self.session = session or build_session()

    def close(self) -> None:
        self.session.close()

    def select_host(self) -> str:
        body = exchange_json(
            self.session, "GET", self.cdn_url, error_cls=ProviderUnavailableError, timeout=self.timeout
        )
        cdn = body.get("cdn") if isinstance(body, dict) else None
        if not cdn:
            raise ProviderUnavailableError("CDN selection returned no host", raw_body=dump_body(body))
        logger.info("Using SaveTube CDN %s", cdn)
        return str(cdn)

    def _post(self, url: str, payload: dict, referer: str) -> Any:
        return exchange_json(
            self.session,
            "POST",
            url,
            error_cls=ExtractionError,
            timeout=self.timeout,
            json=payload,
            headers={"Content-Type": "application/json", "Referer": referer},
        )

    def _fetch_payload(self, host: str, reference: VideoReference) -> DecryptedPayload:
        body = self._post(f"https://{host}/v2/info", {"url": reference.watch_url}, self.referer)
        encrypted = body.get("data") if isinstance(body, dict) else None
        if not encrypted or not isinstance(encrypted, str):
            raise ExtractionError("Info response carried no payload", raw_body=dump_body(body))
        payload = DecryptedPayload.from_value(decrypt_payload(encrypted, self.secret_key))
        if not payload.key:
            raise ExtractionError("Decrypted info carried no session key", raw_body=dump_body(body))
        return payload

    def fetch_info(self, reference: VideoReference) -> ExtractionResult:
        host = self.select_host()
        payload = self._fetch_payload(host, reference)
        return ExtractionResult(
            video_id=reference.video_id,
            title=payload.title,
            duration_seconds=parse_duration(payload.duration),
            thumbnail_url=str(payload.raw.get("thumbnail") or reference.thumbnail_url),
            available_qualities=self.qualities.as_dict(),
        )

    def resolve_download(self, request: ConversionRequest) -> DownloadLink:
        host = self.select_host()
        payload = self._fetch_payload(host, request.reference)
        body = self._post(
            f"https://{host}/download",
            {
                "downloadType": request.media_kind.value,
                "quality": str(request.quality),
                "key": payload.key,
            },
            self.download_referer,
        )
        url = first_present(body, DOWNLOAD_URL_PATHS)
        if not url:
            raise ExtractionError("Download response carried no URL", raw_body=dump_body(body))
        return DownloadLink(
            url=str(url),
            quality_label=request.quality_label,
            filename=request.filename_for(payload.title),
            available_qualities=list(self.qualities.allowed(request.media_kind)),
        )
