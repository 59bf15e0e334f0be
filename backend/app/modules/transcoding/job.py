"""Transcode job: one source, several target resolutions, encoded concurrently.

Each target runs as its own asyncio task. A failing target never cancels its
siblings; the job resolves once every target has reached ``done`` or
``failed``.
"""

import asyncio
import logging
import os
import time
from typing import Iterable, Optional, Sequence

from app.core.logging import correlation_id_var, log_error, log_info, log_warning
from app.core.metrics import (
    TRANSCODE_JOBS_IN_PROGRESS,
    record_job_finished,
    record_target_outcome,
)
from app.modules.transcoding.ffmpeg import EncodeCompleted, EncodeError, Encoder
from app.modules.transcoding.models import ErrorKind, JobStatus, TargetState
from app.modules.transcoding.progress import ProgressTable, clamp_percent
from app.modules.transcoding.repository import MetadataRegistrar
from app.modules.transcoding.schemas import (
    JobResult,
    TargetError,
    TargetOutcome,
    TargetProfile,
)
from app.modules.transcoding.storage import ArtifactSink, StoreError

logger = logging.getLogger(__name__)


def resolve_job_status(states: Iterable[TargetState]) -> JobStatus:
    """Overall status from terminal target states.

    Raises:
        ValueError: If any state is not terminal or there are no states
    """
    states = list(states)
    if not states:
        raise ValueError("a job needs at least one target")
    if any(not s.is_terminal for s in states):
        raise ValueError("job status is only defined once every target is terminal")
    if all(s == TargetState.DONE for s in states):
        return JobStatus.SUCCEEDED
    if all(s == TargetState.FAILED for s in states):
        return JobStatus.FAILED
    return JobStatus.PARTIALLY_FAILED


class TranscodeJob:
    """Drives every target of one upload to a terminal state."""

    def __init__(
        self,
        job_id: str,
        source_path: str,
        targets: Sequence[TargetProfile],
        encoder: Encoder,
        sink: ArtifactSink,
        progress: ProgressTable,
        work_dir: str,
        registrar: Optional[MetadataRegistrar] = None,
        username: Optional[str] = None,
        filename: Optional[str] = None,
    ):
        if not targets:
            raise ValueError("a job needs at least one target")
        self.job_id = job_id
        self.source_path = source_path
        self.targets = list(targets)
        self.encoder = encoder
        self.sink = sink
        self.progress = progress
        self.work_dir = work_dir
        self.registrar = registrar
        self.username = username
        self.filename = filename or os.path.basename(source_path)

        self.status = JobStatus.PENDING
        self.outcomes = [
            TargetOutcome(index=i, label=t.label, width=t.width, height=t.height)
            for i, t in enumerate(self.targets)
        ]
        self._started = False
        # True once this job owns its progress row
        self.tracked = False

    def result(self) -> JobResult:
        """Snapshot of the job, safe to hand out while it is still running."""
        return JobResult(
            job_id=self.job_id,
            status=self.status,
            targets=[o.model_copy() for o in self.outcomes],
        )

    async def run(self) -> JobResult:
        """Run all targets concurrently and wait for every one of them.

        Raises:
            DuplicateJobError: If the job id is already tracked
            RuntimeError: If the job was already run
        """
        if self._started:
            raise RuntimeError(f"Job {self.job_id} has already been run")
        self._started = True
        self.progress.start_job(self.job_id, len(self.targets))
        self.tracked = True

        token = correlation_id_var.set(self.job_id)
        started_at = time.monotonic()
        TRANSCODE_JOBS_IN_PROGRESS.inc()
        try:
            log_info(
                logger,
                "Transcode job started",
                job_id=self.job_id,
                targets=[t.label for t in self.targets],
            )
            await asyncio.gather(
                *(self._run_target(i, t) for i, t in enumerate(self.targets))
            )
            self.status = resolve_job_status(o.state for o in self.outcomes)

            duration = time.monotonic() - started_at
            record_job_finished(self.status.value, duration)
            log_info(
                logger,
                "Transcode job finished",
                job_id=self.job_id,
                status=self.status.value,
                failed=[o.label for o in self.outcomes if o.state == TargetState.FAILED],
                duration_seconds=round(duration, 3),
            )
        finally:
            TRANSCODE_JOBS_IN_PROGRESS.dec()
            correlation_id_var.reset(token)

        return self.result()

    def _output_path(self, index: int, profile: TargetProfile) -> str:
        return os.path.join(self.work_dir, f"{self.job_id}-{index}-{profile.label}.mp4")

    async def _run_target(self, index: int, profile: TargetProfile) -> None:
        outcome = self.outcomes[index]
        outcome.state = TargetState.RUNNING
        if self.status == JobStatus.PENDING:
            self.status = JobStatus.RUNNING

        output_path = self._output_path(index, profile)
        try:
            completed = await self._encode(index, profile, output_path)
            if completed is None:
                return
            await self._store(outcome, profile, completed)
        finally:
            self._discard(output_path)

        if outcome.state == TargetState.DONE:
            await self._register(outcome)

    async def _encode(
        self,
        index: int,
        profile: TargetProfile,
        output_path: str,
    ) -> Optional[EncodeCompleted]:
        outcome = self.outcomes[index]
        completed = None
        try:
            async for event in self.encoder.encode(self.source_path, profile, output_path):
                if isinstance(event, EncodeCompleted):
                    completed = event
                    continue
                self.progress.report_progress(self.job_id, index, event.percent)
                outcome.progress = max(outcome.progress, clamp_percent(event.percent))
            if completed is None:
                raise EncodeError("no_output", "encoder finished without a result")
        except EncodeError as e:
            self._fail(outcome, ErrorKind.ENCODE, e.reason, e.message)
            return None
        except Exception as e:
            self._fail(outcome, ErrorKind.ENCODE, "unexpected", str(e), exception=e)
            return None
        return completed

    async def _store(
        self,
        outcome: TargetOutcome,
        profile: TargetProfile,
        completed: EncodeCompleted,
    ) -> None:
        try:
            artifact = await self.sink.store(completed.output_path, profile.destination)
        except StoreError as e:
            self._fail(outcome, ErrorKind.STORE, e.reason, e.message)
            return
        except Exception as e:
            self._fail(outcome, ErrorKind.STORE, "unexpected", str(e), exception=e)
            return

        # Only a durable artifact counts as done
        outcome.artifact_locator = artifact.locator
        outcome.state = TargetState.DONE
        outcome.progress = 100.0
        self.progress.mark_target_done(self.job_id, outcome.index)
        record_target_outcome(outcome.label, TargetState.DONE.value)
        log_info(
            logger,
            "Target stored",
            job_id=self.job_id,
            target=outcome.label,
            locator=artifact.locator,
            file_size=artifact.file_size,
        )

    def _fail(
        self,
        outcome: TargetOutcome,
        kind: ErrorKind,
        reason: str,
        message: Optional[str],
        exception: Optional[Exception] = None,
    ) -> None:
        outcome.state = TargetState.FAILED
        outcome.error = TargetError(kind=kind, reason=reason, message=message)
        record_target_outcome(outcome.label, TargetState.FAILED.value, kind.value)
        log_error(
            logger,
            f"Target {outcome.label} failed during {kind.value}",
            exception=exception,
            job_id=self.job_id,
            target=outcome.label,
            error_kind=kind.value,
            reason=reason,
        )

    async def _register(self, outcome: TargetOutcome) -> None:
        if self.registrar is None or not self.username:
            return
        try:
            await self.registrar.register(
                job_id=self.job_id,
                username=self.username,
                filename=self.filename,
                resolution=outcome.label,
                artifact_locator=outcome.artifact_locator,
            )
        except Exception as e:
            # The artifact is already durable; a lost metadata row does not undo that
            log_warning(
                logger,
                f"Metadata registration failed for {outcome.label}: {e}",
                job_id=self.job_id,
                target=outcome.label,
            )

    def _discard(self, path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            log_warning(logger, f"Could not remove intermediate output {path}: {e}")
