"""Transcoding API router.

Submission, progress polling and job results. A job that finished with some
or all targets failed is still a 200 on the result endpoint; the body lists
which resolutions succeeded and which failed.
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status
from fastapi.concurrency import run_in_threadpool

from app.core.config import settings
from app.modules.transcoding.models import JobStatus, Resolution
from app.modules.transcoding.progress import DuplicateJobError, JobNotFoundError
from app.modules.transcoding.schemas import (
    JobResult,
    JobSubmitResponse,
    ProgressResponse,
    TranscodeJobCreate,
)
from app.modules.transcoding.service import SourceNotFoundError, TranscodingService
from app.modules.transcoding.uploads import (
    InvalidUploadError,
    UploadLayout,
    validate_user_id,
    validate_video_upload,
)

router = APIRouter(prefix="/transcoding", tags=["transcoding"])


def get_transcoding_service(request: Request) -> TranscodingService:
    """Dependency returning the process-wide TranscodingService."""
    return request.app.state.transcoding_service


def get_upload_layout(request: Request) -> UploadLayout:
    """Dependency returning the upload directory layout."""
    return request.app.state.upload_layout


def _parse_resolutions(raw: Optional[str]) -> Optional[list[Resolution]]:
    if not raw:
        return None
    try:
        return [Resolution(r.strip()) for r in raw.split(",") if r.strip()]
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


async def _submit(
    service: TranscodingService,
    source_path: str,
    resolutions: Optional[list[Resolution]],
    prefix: str,
    username: Optional[str],
    filename: Optional[str],
) -> JobSubmitResponse:
    targets = service.build_profiles(source_path, resolutions, prefix=prefix)
    try:
        job_id = await service.submit_job(
            source_path,
            targets,
            username=username,
            filename=filename,
        )
    except SourceNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DuplicateJobError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return JobSubmitResponse(
        job_id=job_id,
        status=JobStatus.PENDING,
        targets=[t.label for t in targets],
    )


@router.post("/jobs", response_model=JobSubmitResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_job(
    data: TranscodeJobCreate,
    service: TranscodingService = Depends(get_transcoding_service),
) -> JobSubmitResponse:
    """Start transcoding a source that is already stored on this host."""
    prefix = "transcoded"
    if data.username:
        try:
            prefix = f"{validate_user_id(data.username)}/transcode"
        except InvalidUploadError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return await _submit(
        service,
        data.source_path,
        data.resolutions,
        prefix,
        data.username,
        data.filename,
    )


@router.post(
    "/uploads/{user_id}",
    response_model=JobSubmitResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def upload_video(
    user_id: str,
    video: UploadFile = File(...),
    resolutions: Optional[str] = Form(None),  # Comma-separated, e.g. "720p,480p"
    service: TranscodingService = Depends(get_transcoding_service),
    layout: UploadLayout = Depends(get_upload_layout),
) -> JobSubmitResponse:
    """Upload a video and transcode it to the requested resolutions."""
    requested = _parse_resolutions(resolutions)
    try:
        ext = validate_video_upload(
            video.filename,
            video.content_type,
            video.size,
            settings.UPLOAD_MAX_BYTES,
        )
        source = await run_in_threadpool(
            layout.save, user_id, video.file, ext, settings.UPLOAD_MAX_BYTES
        )
        prefix = layout.output_prefix(user_id)
    except InvalidUploadError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        return await _submit(service, str(source), requested, prefix, user_id, video.filename)
    except HTTPException:
        # A rejected submission must not leave an orphaned source behind
        source.unlink(missing_ok=True)
        raise


@router.get("/jobs/{job_id}/progress", response_model=ProgressResponse)
async def get_job_progress(
    job_id: str,
    service: TranscodingService = Depends(get_transcoding_service),
) -> ProgressResponse:
    """Overall progress of a job in percent."""
    try:
        return service.get_progress(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")


@router.get("/jobs/{job_id}", response_model=JobResult)
async def get_job_result(
    job_id: str,
    service: TranscodingService = Depends(get_transcoding_service),
) -> JobResult:
    """Per-target outcome of a job."""
    try:
        return service.get_result(job_id)
    except JobNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
