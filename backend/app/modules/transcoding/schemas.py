"""Pydantic schemas for transcoding service."""

from pathlib import PurePosixPath
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.modules.transcoding.models import (
    ErrorKind,
    JobStatus,
    Resolution,
    TargetState,
    RESOLUTION_DIMENSIONS,
)


class TargetProfile(BaseModel):
    """One desired output of a job.

    ``destination`` is the storage key (or path relative to the local storage
    root) the finished artifact is written to.
    """
    model_config = ConfigDict(frozen=True)

    label: str
    width: int
    height: int
    destination: str

    @property
    def size(self) -> str:
        return f"{self.width}x{self.height}"

    @classmethod
    def from_resolution(cls, resolution: Resolution, destination: str) -> "TargetProfile":
        width, height = get_resolution_dimensions(resolution)
        return cls(label=resolution.value, width=width, height=height, destination=destination)


class TargetError(BaseModel):
    """Captured failure of one target."""
    kind: ErrorKind
    reason: str
    message: Optional[str] = None


class TargetOutcome(BaseModel):
    """Per-target state owned by a job."""
    index: int
    label: str
    width: int
    height: int
    state: TargetState = TargetState.PENDING
    progress: float = Field(default=0.0, ge=0, le=100)
    artifact_locator: Optional[str] = None
    error: Optional[TargetError] = None

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"


class JobResult(BaseModel):
    """Outcome of a whole job, one entry per target in submission order."""
    job_id: str
    status: JobStatus
    targets: list[TargetOutcome]

    @property
    def succeeded(self) -> list[TargetOutcome]:
        return [t for t in self.targets if t.state == TargetState.DONE]

    @property
    def failed(self) -> list[TargetOutcome]:
        return [t for t in self.targets if t.state == TargetState.FAILED]


class StoredArtifact(BaseModel):
    """Result of persisting one artifact."""
    key: str
    locator: str
    file_size: int
    etag: Optional[str] = None


class TranscodeJobCreate(BaseModel):
    """Schema for submitting a transcoding job for an already stored source."""
    source_path: str = Field(..., description="Path to the fully received source video")
    resolutions: Optional[list[Resolution]] = Field(
        None, description="Target resolutions; configured defaults when omitted"
    )
    username: Optional[str] = None
    filename: Optional[str] = None


class JobSubmitResponse(BaseModel):
    """Schema returned when a job is accepted."""
    job_id: str
    status: JobStatus
    targets: list[str]


class ProgressResponse(BaseModel):
    """Schema for progress polling."""
    job_id: str
    status: JobStatus
    progress: float = Field(..., ge=0, le=100)
    targets: list[float] = []


def get_resolution_dimensions(resolution: Resolution) -> tuple[int, int]:
    """Get width and height for a resolution.

    Args:
        resolution: Target resolution

    Returns:
        Tuple of (width, height)
    """
    return RESOLUTION_DIMENSIONS[resolution]


def output_key(prefix: str, resolution: Resolution, source_name: str) -> str:
    """Storage key for one resolution of a source file.

    >>> output_key("alice/transcode", Resolution.RES_720P, "video-1.mov")
    'alice/transcode/transcoded-720p-video-1.mp4'
    """
    stem = PurePosixPath(source_name).stem
    return f"{prefix.rstrip('/')}/transcoded-{resolution.value}-{stem}.mp4"


def build_target_profiles(
    resolutions: list[Resolution],
    prefix: str,
    source_name: str,
) -> list[TargetProfile]:
    """Build one profile per resolution, de-duplicated in order."""
    seen = set()
    profiles = []
    for resolution in resolutions:
        if resolution in seen:
            continue
        seen.add(resolution)
        profiles.append(
            TargetProfile.from_resolution(
                resolution, output_key(prefix, resolution, source_name)
            )
        )
    return profiles
