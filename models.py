from sqlalchemy import Column, String, Integer, DateTime, Text, Enum, Index
from sqlalchemy.sql import func
from database import Base
import enum


class JobStatus(str, enum.Enum):
    # Pre-job state; never written to a row
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    ENCODED = "encoded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.ENCODED, JobStatus.FAILED)


class Video(Base):
    __tablename__ = "videos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=False, default="")
    keywords = Column(String(500), nullable=True)
    privacy = Column(String(10), nullable=False, default="public")
    original_name = Column(String(255), nullable=False)
    encoded_path = Column(String(512), nullable=True)
    # Rows hold the lowercase values ("processing"), not the member names
    status = Column(
        Enum(JobStatus, name="job_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=JobStatus.PROCESSING,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_videos_status", "status"),
    )
