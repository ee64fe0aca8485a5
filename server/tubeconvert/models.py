from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .job_state import JobStatus
from .normalizer import VideoReference

_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/\x00-\x1f\x7f]+')


class MediaKind(str, Enum):
    AUDIO = "audio"
    VIDEO = "video"

    @classmethod
    def parse(cls, value: Optional[str]) -> "MediaKind":
        if value and value.strip().lower() == cls.AUDIO.value:
            return cls.AUDIO
        return cls.VIDEO


@dataclass(frozen=True)
class QualityTable:
    audio: Tuple[int, ...]
    video: Tuple[int, ...]
    default_audio: int
    default_video: int

    def allowed(self, kind: MediaKind) -> Tuple[int, ...]:
        return self.audio if kind is MediaKind.AUDIO else self.video

    def default(self, kind: MediaKind) -> int:
        return self.default_audio if kind is MediaKind.AUDIO else self.default_video

    def coerce(self, kind: MediaKind, value: Any) -> int:
        """Return ``value`` as an allowed quality, or the default for ``kind``."""
        try:
            quality = int(str(value).strip())
        except (TypeError, ValueError):
            return self.default(kind)
        if quality not in self.allowed(kind):
            return self.default(kind)
        return quality

    def as_dict(self) -> Dict[str, list]:
        return {"audio": list(self.audio), "video": list(self.video)}


@dataclass(frozen=True)
class ConversionRequest:
    reference: VideoReference
    media_kind: MediaKind
    quality: int

    @classmethod
    def build(cls, reference: VideoReference, media_kind: MediaKind, quality: Any, table: QualityTable) -> "ConversionRequest":
        return cls(reference=reference, media_kind=media_kind, quality=table.coerce(media_kind, quality))

    @property
    def quality_label(self) -> str:
        suffix = "kbps" if self.media_kind is MediaKind.AUDIO else "p"
        return f"{self.quality}{suffix}"

    def filename_for(self, title: str) -> str:
        extension = "mp3" if self.media_kind is MediaKind.AUDIO else "mp4"
        safe_title = _UNSAFE_FILENAME_CHARS.sub(" ", title).strip() or self.reference.video_id
        return f"{safe_title} ({self.quality_label}).{extension}"


@dataclass
class ExtractionResult:
    video_id: str
    title: str
    duration_seconds: Optional[int]
    thumbnail_url: str
    available_qualities: Dict[str, list] = field(default_factory=dict)


@dataclass
class DownloadLink:
    url: str
    quality_label: str
    filename: str
    available_qualities: list


@dataclass
class DecryptedPayload:
    title: str
    duration: Any
    key: Optional[str]
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_value(cls, value: Any) -> "DecryptedPayload":
        raw = value if isinstance(value, dict) else {}
        key = raw.get("key")
        return cls(
            title=str(raw.get("title") or ""),
            duration=raw.get("duration"),
            key=str(key) if key else None,
            raw=raw,
        )


@dataclass
class ProgressUpdate:
    """One progress response, already interpreted by the provider."""

    status: JobStatus
    text: str = ""
    result_url: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)
