"""Tests for the transcoding service: submission, polling and retention."""

import asyncio

import pytest

from fakes import profiles_for
from app.modules.transcoding.ffmpeg import EncodeError
from app.modules.transcoding.models import JobStatus, Resolution, TargetState
from app.modules.transcoding.progress import DuplicateJobError, JobNotFoundError
from app.modules.transcoding.service import SourceNotFoundError, TranscodingService


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def service(encoder, sink, progress_table, work_dir, clock) -> TranscodingService:
    return TranscodingService(
        encoder=encoder,
        sink=sink,
        work_dir=str(work_dir),
        progress=progress_table,
        default_resolutions=[Resolution.RES_720P, Resolution.RES_360P],
        retention_seconds=60,
        clock=clock,
    )


class TestBuildProfiles:
    def test_defaults(self, service, source_file) -> None:
        profiles = service.build_profiles(str(source_file))

        assert [p.label for p in profiles] == ["720p", "360p"]
        assert profiles[0].destination == "transcoded/transcoded-720p-source.mp4"

    def test_requested_resolutions_with_prefix(self, service, source_file) -> None:
        profiles = service.build_profiles(
            str(source_file), [Resolution.RES_480P, Resolution.RES_480P], prefix="bob/transcode"
        )

        assert [p.destination for p in profiles] == ["bob/transcode/transcoded-480p-source.mp4"]


class TestSubmitAndPoll:
    """Tests for the submit, poll, result flow."""

    @pytest.mark.asyncio
    async def test_submit_then_wait(self, service, encoder, sink, progress_table, source_file) -> None:
        job_id = await service.submit_job(str(source_file))

        result = await service.wait_for(job_id)

        assert result.job_id == job_id
        assert result.status == JobStatus.SUCCEEDED
        assert encoder.calls == ["720p", "360p"]
        assert len(sink.objects) == 2
        # The progress row is gone, polling still answers from the outcomes
        assert not progress_table.is_tracked(job_id)
        progress = service.get_progress(job_id)
        assert progress.progress == 100.0
        assert progress.status == JobStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_progress_while_running(self, service, encoder, source_file) -> None:
        encoder.progress["720p"] = [40.0]
        encoder.progress["360p"] = [80.0]
        encoder.hold("720p")
        encoder.hold("360p")

        job_id = await service.submit_job(str(source_file))
        pending = service.get_progress(job_id)
        assert pending.status == JobStatus.PENDING
        assert pending.progress == 0.0

        await encoder.reached["720p"].wait()
        await encoder.reached["360p"].wait()
        running = service.get_progress(job_id)
        assert running.status == JobStatus.RUNNING
        assert running.progress == 60.0
        assert running.targets == [40.0, 80.0]

        snapshot = service.get_result(job_id)
        assert all(t.state == TargetState.RUNNING for t in snapshot.targets)

        encoder.release("720p")
        encoder.release("360p")
        result = await service.wait_for(job_id)
        assert result.status == JobStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_partial_failure_result(self, service, encoder, source_file) -> None:
        encoder.failures["360p"] = EncodeError("encoder_failed", "bad stream")

        result = await service.run_job(str(source_file), username="alice")

        assert result.status == JobStatus.PARTIALLY_FAILED
        assert service.get_result(result.job_id).failed[0].error.reason == "encoder_failed"
        assert service.get_progress(result.job_id).progress == pytest.approx((100.0 + 75.0) / 2)

    @pytest.mark.asyncio
    async def test_missing_source(self, service, tmp_path) -> None:
        with pytest.raises(SourceNotFoundError):
            await service.submit_job(str(tmp_path / "missing.mp4"))

    @pytest.mark.asyncio
    async def test_empty_targets(self, service, source_file) -> None:
        with pytest.raises(ValueError):
            await service.submit_job(str(source_file), targets=[])

    @pytest.mark.asyncio
    async def test_duplicate_job_id(self, service, source_file) -> None:
        await service.run_job(str(source_file), profiles_for("720p"), job_id="job-1")

        with pytest.raises(DuplicateJobError):
            await service.run_job(str(source_file), profiles_for("720p"), job_id="job-1")

    def test_unknown_job(self, service) -> None:
        with pytest.raises(JobNotFoundError):
            service.get_progress("nope")
        with pytest.raises(JobNotFoundError):
            service.get_result("nope")

    @pytest.mark.asyncio
    async def test_shutdown_waits_for_jobs(self, service, encoder, source_file) -> None:
        encoder.hold("720p")
        job_id = await service.submit_job(str(source_file), profiles_for("720p"))
        await encoder.reached["720p"].wait()

        shutdown = asyncio.create_task(service.shutdown())
        await asyncio.sleep(0)
        assert not shutdown.done()

        encoder.release("720p")
        await shutdown
        assert service.get_result(job_id).status == JobStatus.SUCCEEDED


class TestRetention:
    """Tests for the retention window of finished jobs."""

    @pytest.mark.asyncio
    async def test_result_expires_after_retention(self, service, clock, source_file) -> None:
        result = await service.run_job(str(source_file))

        clock.now += 59
        assert service.get_result(result.job_id).status == JobStatus.SUCCEEDED

        clock.now += 1
        with pytest.raises(JobNotFoundError):
            service.get_result(result.job_id)

    @pytest.mark.asyncio
    async def test_expired_id_can_be_reused(self, service, clock, source_file) -> None:
        await service.run_job(str(source_file), profiles_for("720p"), job_id="job-1")
        clock.now += 60

        result = await service.run_job(str(source_file), profiles_for("360p"), job_id="job-1")

        assert [t.label for t in result.targets] == ["360p"]

    @pytest.mark.asyncio
    async def test_running_jobs_never_expire(self, service, clock, encoder, source_file) -> None:
        encoder.hold("720p")
        job_id = await service.submit_job(str(source_file), profiles_for("720p"))
        await encoder.reached["720p"].wait()

        clock.now += 10_000
        assert service.get_progress(job_id).status == JobStatus.RUNNING

        encoder.release("720p")
        await service.wait_for(job_id)


class TestProgressRowOwnership:
    @pytest.mark.asyncio
    async def test_job_losing_its_id_leaves_the_owner_row(self, service, progress_table, source_file) -> None:
        """A job whose id was claimed before it started SHALL NOT remove the
        claimant's progress row."""
        job_id = await service.submit_job(str(source_file), profiles_for("720p"))
        # Another writer takes the id before the background task runs
        progress_table.start_job(job_id, 3)
        progress_table.report_progress(job_id, 0, 40)

        with pytest.raises(DuplicateJobError):
            await service.wait_for(job_id)

        assert progress_table.is_tracked(job_id)
        assert progress_table.target_progress(job_id) == [40.0, 0.0, 0.0]
