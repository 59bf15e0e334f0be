"""Transcoding module for video encoding and processing.

Implements FFmpeg-based transcoding of one source into multiple resolutions,
job-level progress aggregation and local or S3-backed artifact storage.
"""

from app.modules.transcoding.ffmpeg import (
    EncodeCompleted,
    EncodeError,
    FFmpegTranscoder,
    ProgressEvent,
)
from app.modules.transcoding.job import TranscodeJob, resolve_job_status
from app.modules.transcoding.models import JobStatus, Resolution, TargetState
from app.modules.transcoding.progress import (
    DuplicateJobError,
    JobNotFoundError,
    ProgressTable,
)
from app.modules.transcoding.schemas import JobResult, TargetOutcome, TargetProfile
from app.modules.transcoding.service import TranscodingService
from app.modules.transcoding.storage import (
    ArtifactSink,
    LocalArtifactSink,
    S3ArtifactSink,
    StoreError,
)

__all__ = [
    "ArtifactSink",
    "DuplicateJobError",
    "EncodeCompleted",
    "EncodeError",
    "FFmpegTranscoder",
    "JobNotFoundError",
    "JobResult",
    "JobStatus",
    "LocalArtifactSink",
    "ProgressEvent",
    "ProgressTable",
    "Resolution",
    "S3ArtifactSink",
    "StoreError",
    "TargetOutcome",
    "TargetProfile",
    "TargetState",
    "TranscodeJob",
    "TranscodingService",
    "resolve_job_status",
]
