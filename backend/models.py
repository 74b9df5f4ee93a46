"""Job and image record models shared by the store, processor and API."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    PENDING = "pending"
    DONE = "done"


class ImageStatus(str, Enum):
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


class ApiModel(BaseModel):
    """Base model serialized with camelCase keys for the polling client."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ImageMeta(ApiModel):
    size: int
    width: int
    height: int


class LabelWithScore(ApiModel):
    description: str
    score: float


class RGBColor(ApiModel):
    red: float = 0.0
    green: float = 0.0
    blue: float = 0.0


class DominantColor(ApiModel):
    color: RGBColor
    score: float = 0.0
    pixel_fraction: float = 0.0


class SafeSearch(ApiModel):
    adult: str = "Unknown"
    spoof: str = "Unknown"
    medical: str = "Unknown"
    violence: str = "Unknown"
    racy: str = "Unknown"


class ImageLabels(ApiModel):
    objects: List[LabelWithScore] = Field(default_factory=list)
    scenes: List[LabelWithScore] = Field(default_factory=list)
    labels: List[LabelWithScore] = Field(default_factory=list)
    dominant_colors: Optional[List[DominantColor]] = None
    safe_search: Optional[SafeSearch] = None


class ImageRecord(ApiModel):
    image_id: str
    storage_ref: str
    original_name: str = ""
    status: ImageStatus = ImageStatus.UPLOADED
    metadata: Optional[ImageMeta] = None
    labels: Optional[ImageLabels] = None
    error: Optional[str] = None

    @property
    def settled(self) -> bool:
        return self.status in {ImageStatus.DONE, ImageStatus.ERROR}


class Job(ApiModel):
    job_id: str
    status: JobStatus = JobStatus.PENDING
    images: List[ImageRecord] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def touch(self) -> None:
        """Stamp `updated_at`, never earlier than `created_at`."""
        self.updated_at = max(utc_now(), self.created_at)
