"""
URL normalization.

Turns any accepted YouTube URL shape into an immutable ``VideoReference``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Pattern, Tuple

from .errors import InvalidReferenceError

_ID = r"([A-Za-z0-9_-]{11})"
_HOST = r"(?:https?://)?(?:(?:www|m|music)\.)?"
_DOMAIN = r"youtube(?:-nocookie)?\.com"

# First match wins.
_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(_HOST + r"youtu\.be/" + _ID),
    re.compile(_HOST + _DOMAIN + r"/watch\?(?:[^#\s]*&)?v=" + _ID),
    re.compile(_HOST + _DOMAIN + r"/(?:embed|shorts|v|live)/" + _ID),
    re.compile(_HOST + _DOMAIN + r"/playlist\?(?:[^#\s]*&)?list=" + _ID),
    re.compile(_HOST + _DOMAIN + r"/\S*?(?:v%3D|embed%2F|video%2F)" + _ID),
)


@dataclass(frozen=True)
class VideoReference:
    source_url: str
    video_id: str

    @property
    def watch_url(self) -> str:
        return f"https://youtube.com/watch?v={self.video_id}"

    @property
    def thumbnail_url(self) -> str:
        return f"https://i.ytimg.com/vi/{self.video_id}/maxresdefault.jpg"


def extract_video_id(value: Any) -> str:
    """Return the 11-character video id in ``value`` or raise ``InvalidReferenceError``."""
    if not isinstance(value, str):
        raise InvalidReferenceError("URL must be a string")
    candidate = value.strip()
    if not candidate:
        raise InvalidReferenceError("URL is empty")
    for pattern in _PATTERNS:
        match = pattern.search(candidate)
        if match:
            return match.group(1)
    raise InvalidReferenceError(f"No video id found in {candidate!r}")


def normalize_url(value: Any) -> VideoReference:
    video_id = extract_video_id(value)
    return VideoReference(source_url=value.strip(), video_id=video_id)
