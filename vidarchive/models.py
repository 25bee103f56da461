"""
Archive Models

Pydantic models for the records exchanged with the archive backend and the
client-side state built around them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional, Set
from pydantic import BaseModel, ConfigDict, Field, model_validator

from .exceptions import ValidationException


class ResultType(str, Enum):
    FRAME = "frame"
    OBJECT = "object"


class JobStatus(str, Enum):
    PENDING = "pending"
    DOWNLOADING = "downloading"
    EXTRACTING_FRAMES = "extracting_frames"
    DETECTING_OBJECTS = "detecting_objects"
    COMPUTING_EMBEDDINGS = "computing_embeddings"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class DetectedObject(BaseModel):
    """One detection attached to a frame result."""

    class_name: str
    confidence: float = 0.0


class ResultMetadata(BaseModel):
    """Metadata block of a search hit. Unknown backend fields are kept."""

    model_config = ConfigDict(extra="allow")

    video_name: Optional[str] = None
    timestamp: Optional[float] = Field(default=None, description="Seconds from the start of the video")
    frame_index: Optional[int] = None
    object_index: Optional[int] = None
    bbox: Optional[List[Any]] = Field(default=None, description="[x1, y1, x2, y2] in source pixel space")
    class_name: Optional[str] = None
    confidence: Optional[float] = None
    objects: List[DetectedObject] = Field(default_factory=list)


class SearchResult(BaseModel):
    """A ranked search hit as returned by the backend."""

    model_config = ConfigDict(extra="allow")

    result_type: ResultType = ResultType.FRAME
    similarity: float = Field(default=0.0, description="Cosine similarity in [0, 1], ranked descending")
    url: Optional[str] = Field(default=None, description="Media URL of the hit")
    frame_url: Optional[str] = None
    path: Optional[str] = None
    metadata: ResultMetadata = Field(default_factory=ResultMetadata)


class SearchRequest(BaseModel):
    """
    A text or image query with its toggles.

    Exactly one of ``query_text`` and ``query_image`` is set. An empty
    ``video_names`` set means every video is searched.
    """

    query_text: Optional[str] = None
    query_image: Optional[bytes] = None
    image_filename: str = "image"
    image_content_type: str = "application/octet-stream"
    search_frames: bool = True
    search_objects: bool = True
    max_results: int = Field(default=20, gt=0)
    video_names: Optional[Set[str]] = None

    @model_validator(mode="after")
    def check_single_query(self):
        has_text = self.query_text is not None
        has_image = self.query_image is not None
        if has_text == has_image:
            raise ValidationException("Exactly one of query_text and query_image must be set")
        return self

    @property
    def is_image(self) -> bool:
        return self.query_image is not None

    def video_name_filter(self) -> Optional[List[str]]:
        """Sorted filter values, or None when every video should be searched."""
        if not self.video_names:
            return None
        return sorted(self.video_names)


class IngestionJob(BaseModel):
    """Processing state of one video, keyed by its normalized name."""

    model_config = ConfigDict(extra="allow")

    video_name: str
    status: JobStatus = JobStatus.PENDING
    progress: float = Field(default=0.0, ge=0.0, le=100.0)
    steps_completed: List[str] = Field(default_factory=list)
    frame_count: int = 0
    object_count: int = 0
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class VideoSummary(BaseModel):
    model_config = ConfigDict(extra="allow")

    video_name: str
    status: Optional[str] = None


class UrlJobRequest(BaseModel):
    """Body of ``POST /api/videos/process``."""

    video_name: str
    source_type: str
    source_url: str
    fps: int = Field(default=1, ge=1, le=30)
    force: bool = False


class RecentImageEntry(BaseModel):
    """A previously searched image, stored inline as a data URL."""

    id: int
    filename: str
    content_type: str = "application/octet-stream"
    image_data: str
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


__all__ = [
    "ResultType",
    "JobStatus",
    "DetectedObject",
    "ResultMetadata",
    "SearchResult",
    "SearchRequest",
    "IngestionJob",
    "VideoSummary",
    "UrlJobRequest",
    "RecentImageEntry",
]
