from __future__ import annotations

import json
from enum import Enum
from typing import Any, ClassVar, Optional, Protocol, Sequence, Tuple, Type

import requests

from ..errors import ServiceError
from ..job_state import Job
from ..models import ConversionRequest, DownloadLink, ExtractionResult, ProgressUpdate, QualityTable
from ..normalizer import VideoReference

USER_AGENT = (
    "Mozilla/5.0 (Linux; Android 10; K) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/133.0.0.0 Mobile Safari/537.36"
)

FieldPath = Tuple[str, ...]


class ProviderKind(str, Enum):
    EXTRACTION = "extraction"
    JOB = "job"


class ExtractionProvider(Protocol):
    """Resolves a media URL within a single request."""

    kind: ClassVar[ProviderKind]
    qualities: QualityTable

    def fetch_info(self, reference: VideoReference) -> ExtractionResult:
        ...

    def resolve_download(self, request: ConversionRequest) -> DownloadLink:
        ...

    def close(self) -> None:
        ...


class JobProvider(Protocol):
    """Hands back a job id that must be polled until the file is ready."""

    kind: ClassVar[ProviderKind]
    qualities: QualityTable

    def fetch_info(self, reference: VideoReference) -> ExtractionResult:
        ...

    def submit(self, request: ConversionRequest) -> Job:
        ...

    def check_progress(self, job_id: str) -> ProgressUpdate:
        ...

    def close(self) -> None:
        ...


def first_present(payload: Any, paths: Sequence[FieldPath]) -> Optional[Any]:
    """Return the value at the first path that resolves to a truthy value."""
    for path in paths:
        node = payload
        for part in path:
            if not isinstance(node, dict):
                node = None
                break
            node = node.get(part)
        if node:
            return node
    return None


def dump_body(body: Any) -> str:
    try:
        return json.dumps(body, ensure_ascii=False)
    except (TypeError, ValueError):
        return repr(body)


def exchange_json(
    session: requests.Session,
    method: str,
    url: str,
    *,
    error_cls: Type[ServiceError],
    timeout: float,
    **kwargs: Any,
) -> Any:
    """Perform one HTTP exchange and return the decoded JSON body.

    Transport errors, non-2xx statuses and non-JSON bodies are all raised as
    ``error_cls`` with whatever body text was received.
    """
    try:
        response = session.request(method, url, timeout=timeout, **kwargs)
    except requests.RequestException as exc:
        raise error_cls(f"{method} {url} failed: {exc}") from exc

    body = response.text
    if not response.ok:
        raise error_cls(f"{method} {url} returned HTTP {response.status_code}", raw_body=body)
    try:
        return response.json()
    except ValueError as exc:
        raise error_cls(f"{method} {url} returned a non-JSON body", raw_body=body) from exc


def build_session(extra_headers: Optional[dict] = None) -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT, "Accept": "application/json"})
    if extra_headers:
        session.headers.update(extra_headers)
    return session
