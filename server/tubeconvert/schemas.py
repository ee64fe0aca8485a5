from __future__ import annotations

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class AvailableFormats(BaseModel):
    audio: List[int] = Field(default_factory=list)
    video: List[int] = Field(default_factory=list)


class VideoInfoResponse(BaseModel):
    status: bool = True
    videoId: str
    title: str
    duration: Optional[int] = Field(default=None, description="Length in seconds, null when unknown")
    thumbnail: str
    availableFormats: AvailableFormats


class DirectDownloadResponse(BaseModel):
    status: bool = True
    quality: str
    downloadUrl: str
    filename: str
    availableQualities: List[int]


class JobSubmittedResponse(BaseModel):
    status: bool = True
    id: str
    original_format: str
    original_quality: int


class WatchResponse(BaseModel):
    status: bool = True
    id: str


class ErrorResponse(BaseModel):
    error: str


class LoaderProgress(BaseModel):
    """Body returned by the job progress endpoint."""

    model_config = ConfigDict(extra="allow")

    success: Union[bool, int] = 0
    progress: Optional[int] = None
    text: Optional[str] = None
    download_url: Optional[str] = None
