"""Domain enums and database models for the transcoding service."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.core.database import Base


class JobStatus(str, Enum):
    """Lifecycle of a transcode job.

    A job starts ``pending``, becomes ``running`` once any target starts and
    ends in exactly one of the three terminal states.
    """
    PENDING = "pending"
    RUNNING = "running"
    PARTIALLY_FAILED = "partially_failed"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.PARTIALLY_FAILED, JobStatus.SUCCEEDED, JobStatus.FAILED)


class TargetState(str, Enum):
    """Lifecycle of a single output resolution within a job."""
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TargetState.DONE, TargetState.FAILED)


class ErrorKind(str, Enum):
    """Where a target failed."""
    ENCODE = "encode"
    STORE = "store"


class Resolution(str, Enum):
    """Supported output resolutions."""
    RES_1080P = "1080p"
    RES_720P = "720p"
    RES_480P = "480p"
    RES_360P = "360p"
    RES_240P = "240p"


# Resolution dimensions mapping
RESOLUTION_DIMENSIONS = {
    Resolution.RES_1080P: (1920, 1080),
    Resolution.RES_720P: (1280, 720),
    Resolution.RES_480P: (854, 480),
    Resolution.RES_360P: (640, 360),
    Resolution.RES_240P: (426, 240),
}


class TranscodedVideo(Base):
    """Metadata row for one finished output of a transcode job."""

    __tablename__ = "transcoded_videos"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    job_id: Mapped[str] = mapped_column(String(64), index=True)
    username: Mapped[str] = mapped_column(String(255), index=True)
    filename: Mapped[str] = mapped_column(String(1024))
    resolution: Mapped[str] = mapped_column(String(32))
    artifact_locator: Mapped[str] = mapped_column(String(2048))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<TranscodedVideo {self.job_id} - {self.resolution}>"
