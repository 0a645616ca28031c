from pydantic import BaseModel
from typing import Optional
from datetime import datetime

from models import JobStatus


class UploadResponse(BaseModel):
    id: int
    status: JobStatus
    title: str
    stream_url: str


class VideoResponse(BaseModel):
    id: int
    title: str
    description: str = ""
    keywords: Optional[str] = None
    privacy: str
    original_name: str
    status: JobStatus
    created_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True,
    }


class VideoListResponse(BaseModel):
    items: list[VideoResponse]
    total: int
    page: int
    size: int
    pages: int


class DeliveryStatusResponse(BaseModel):
    id: int
    status: JobStatus
    message: str


class HealthResponse(BaseModel):
    status: str
    message: str
    database: str
    ffmpeg: bool
    queues: Optional[dict] = None
