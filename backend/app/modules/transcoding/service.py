"""Service layer for transcoding operations.

Owns the jobs of this process: accepts submissions, runs each job as a
background task, answers progress polls and keeps finished results around for
a retention window.
"""

import asyncio
import logging
import os
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from app.core.config import Settings
from app.modules.transcoding.ffmpeg import Encoder, FFmpegTranscoder
from app.modules.transcoding.job import TranscodeJob
from app.modules.transcoding.models import Resolution
from app.modules.transcoding.progress import (
    DuplicateJobError,
    JobNotFoundError,
    ProgressTable,
)
from app.modules.transcoding.repository import MetadataRegistrar, get_default_registrar
from app.modules.transcoding.schemas import (
    JobResult,
    ProgressResponse,
    TargetProfile,
    build_target_profiles,
)
from app.modules.transcoding.storage import ArtifactSink, get_artifact_sink

logger = logging.getLogger(__name__)


class SourceNotFoundError(Exception):
    """The source file of a submission does not exist."""
    pass


@dataclass
class _JobRecord:
    job: TranscodeJob
    task: Optional[asyncio.Task] = None
    finished_at: Optional[float] = None


class TranscodingService:
    """Submits, tracks and reports transcode jobs."""

    def __init__(
        self,
        encoder: Encoder,
        sink: ArtifactSink,
        work_dir: str,
        progress: Optional[ProgressTable] = None,
        registrar: Optional[MetadataRegistrar] = None,
        default_resolutions: Optional[list[Resolution]] = None,
        retention_seconds: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.encoder = encoder
        self.sink = sink
        self.work_dir = work_dir
        self.progress = progress or ProgressTable()
        self.registrar = registrar
        self.default_resolutions = default_resolutions or [
            Resolution.RES_1080P,
            Resolution.RES_720P,
            Resolution.RES_480P,
            Resolution.RES_360P,
        ]
        self.retention_seconds = retention_seconds
        self.clock = clock
        self._jobs: dict[str, _JobRecord] = {}

    def build_profiles(
        self,
        source_path: str,
        resolutions: Optional[list[Resolution]] = None,
        prefix: Optional[str] = None,
    ) -> list[TargetProfile]:
        """Target profiles for a source, defaulting to the configured resolutions."""
        return build_target_profiles(
            resolutions or self.default_resolutions,
            prefix or "transcoded",
            os.path.basename(source_path),
        )

    def create_job(
        self,
        source_path: str,
        targets: list[TargetProfile],
        username: Optional[str] = None,
        filename: Optional[str] = None,
        job_id: Optional[str] = None,
    ) -> TranscodeJob:
        """Register a new job without starting it.

        Raises:
            SourceNotFoundError: If the source file does not exist
            DuplicateJobError: If ``job_id`` is already in use
            ValueError: If ``targets`` is empty
        """
        self._purge_expired()
        if not os.path.isfile(source_path):
            raise SourceNotFoundError(f"Source {source_path} does not exist")

        job_id = job_id or uuid.uuid4().hex
        if job_id in self._jobs or self.progress.is_tracked(job_id):
            raise DuplicateJobError(f"Job {job_id} is already tracked")

        job = TranscodeJob(
            job_id=job_id,
            source_path=source_path,
            targets=targets,
            encoder=self.encoder,
            sink=self.sink,
            progress=self.progress,
            work_dir=self.work_dir,
            registrar=self.registrar,
            username=username,
            filename=filename,
        )
        self._jobs[job_id] = _JobRecord(job=job)
        return job

    async def submit_job(
        self,
        source_path: str,
        targets: Optional[list[TargetProfile]] = None,
        username: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> str:
        """Accept a job and start it in the background.

        Returns:
            The new job id
        """
        job = self.create_job(
            source_path,
            targets if targets is not None else self.build_profiles(source_path),
            username=username,
            filename=filename,
        )
        record = self._jobs[job.job_id]
        record.task = asyncio.create_task(self._execute(record), name=f"transcode-{job.job_id}")
        record.task.add_done_callback(self._on_task_done)
        logger.info("Accepted transcode job %s with %d targets", job.job_id, len(job.targets))
        return job.job_id

    async def run_job(
        self,
        source_path: str,
        targets: Optional[list[TargetProfile]] = None,
        username: Optional[str] = None,
        filename: Optional[str] = None,
        job_id: Optional[str] = None,
    ) -> JobResult:
        """Run a job in the caller's task and return its result."""
        job = self.create_job(
            source_path,
            targets if targets is not None else self.build_profiles(source_path),
            username=username,
            filename=filename,
            job_id=job_id,
        )
        return await self._execute(self._jobs[job.job_id])

    async def _execute(self, record: _JobRecord) -> JobResult:
        try:
            return await record.job.run()
        finally:
            if record.job.tracked:
                self.progress.end_job(record.job.job_id)
            record.finished_at = self.clock()

    def _on_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Transcode task %s crashed", task.get_name(), exc_info=exc)

    def _get_record(self, job_id: str) -> _JobRecord:
        self._purge_expired()
        record = self._jobs.get(job_id)
        if record is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return record

    def get_progress(self, job_id: str) -> ProgressResponse:
        """Current overall progress of a job.

        Raises:
            JobNotFoundError: If the job is unknown or expired
        """
        job = self._get_record(job_id).job
        try:
            overall = self.progress.overall_progress(job_id)
            per_target = self.progress.target_progress(job_id)
        except JobNotFoundError:
            # Not started yet or already finished; the outcomes hold the same values
            per_target = [o.progress for o in job.outcomes]
            overall = sum(per_target) / len(per_target)
        return ProgressResponse(
            job_id=job_id,
            status=job.status,
            progress=round(overall, 2),
            targets=per_target,
        )

    def get_result(self, job_id: str) -> JobResult:
        """Result of a job; a live snapshot while it is still running.

        Raises:
            JobNotFoundError: If the job is unknown or expired
        """
        return self._get_record(job_id).job.result()

    async def wait_for(self, job_id: str) -> JobResult:
        """Wait for a submitted job to finish."""
        record = self._get_record(job_id)
        if record.task is not None:
            await asyncio.shield(record.task)
        return record.job.result()

    async def shutdown(self) -> None:
        """Wait for every running job to finish."""
        pending = [r.task for r in self._jobs.values() if r.task is not None and not r.task.done()]
        if pending:
            logger.info("Waiting for %d running transcode jobs", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)

    def _purge_expired(self) -> None:
        now = self.clock()
        expired = [
            job_id
            for job_id, record in self._jobs.items()
            if record.finished_at is not None
            and now - record.finished_at >= self.retention_seconds
        ]
        for job_id in expired:
            del self._jobs[job_id]
        if expired:
            logger.debug("Purged %d expired transcode jobs", len(expired))


def build_transcoding_service(settings: Settings) -> TranscodingService:
    """Wire a service from application settings."""
    encoder = FFmpegTranscoder(
        ffmpeg_path=settings.FFMPEG_PATH,
        ffprobe_path=settings.FFPROBE_PATH,
        preset=settings.TRANSCODE_PRESET,
        crf=settings.TRANSCODE_CRF,
        audio_bitrate=settings.TRANSCODE_AUDIO_BITRATE,
    )
    return TranscodingService(
        encoder=encoder,
        sink=get_artifact_sink(settings),
        work_dir=settings.TRANSCODE_WORK_DIR,
        registrar=get_default_registrar(),
        default_resolutions=[Resolution(r) for r in settings.TRANSCODE_DEFAULT_RESOLUTIONS],
        retention_seconds=settings.TRANSCODE_RESULT_RETENTION_SECONDS,
    )
