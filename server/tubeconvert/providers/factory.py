from __future__ import annotations

from typing import Optional, Union

import requests

from ..config import Settings, get_settings
from .base import ExtractionProvider, JobProvider
from .loader import LoaderProvider
from .savetube import SaveTubeProvider

Provider = Union[ExtractionProvider, JobProvider]


def build_provider(settings: Settings | None = None, session: Optional[requests.Session] = None) -> Provider:
    settings = settings or get_settings()
    name = settings.normalized_provider
    if name == "savetube":
        return SaveTubeProvider(
            cdn_url=settings.savetube_cdn_url,
            secret_key=settings.savetube_secret_key,
            referer=settings.savetube_referer,
            download_referer=settings.savetube_download_referer,
            timeout=settings.http_timeout_seconds,
            session=session,
        )
    if name == "loader":
        return LoaderProvider(
            submit_url=settings.loader_submit_url,
            progress_url=settings.loader_progress_url,
            oembed_url=settings.oembed_url,
            timeout=settings.http_timeout_seconds,
            session=session,
        )
    raise ValueError(f"Unsupported provider: {settings.provider}")
