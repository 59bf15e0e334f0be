"""Repository for transcoded video metadata."""

import logging
from typing import Optional, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.modules.transcoding.models import TranscodedVideo

logger = logging.getLogger(__name__)


class TranscodedVideoRepository:
    """Repository for TranscodedVideo operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def register(
        self,
        job_id: str,
        username: str,
        filename: str,
        resolution: str,
        artifact_locator: str,
    ) -> TranscodedVideo:
        """Record one finished output.

        Args:
            job_id: Job that produced the output
            username: Owner of the source upload
            filename: Original upload name
            resolution: Target label, e.g. ``720p``
            artifact_locator: Where the artifact was stored

        Returns:
            Created TranscodedVideo
        """
        record = TranscodedVideo(
            job_id=job_id,
            username=username,
            filename=filename,
            resolution=resolution,
            artifact_locator=artifact_locator,
        )
        self.session.add(record)
        await self.session.flush()
        return record

    async def list_for_job(self, job_id: str) -> list[TranscodedVideo]:
        result = await self.session.execute(
            select(TranscodedVideo)
            .where(TranscodedVideo.job_id == job_id)
            .order_by(TranscodedVideo.created_at)
        )
        return list(result.scalars().all())

    async def list_for_user(self, username: str, limit: int = 100) -> list[TranscodedVideo]:
        result = await self.session.execute(
            select(TranscodedVideo)
            .where(TranscodedVideo.username == username)
            .order_by(TranscodedVideo.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


class MetadataRegistrar(Protocol):
    """Records a finished target somewhere durable."""

    async def register(
        self,
        job_id: str,
        username: str,
        filename: str,
        resolution: str,
        artifact_locator: str,
    ) -> None:
        ...


class SqlMetadataRegistrar:
    """Registrar writing through ``TranscodedVideoRepository``, one session per call."""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def register(
        self,
        job_id: str,
        username: str,
        filename: str,
        resolution: str,
        artifact_locator: str,
    ) -> None:
        async with self.session_maker() as session:
            repo = TranscodedVideoRepository(session)
            await repo.register(
                job_id=job_id,
                username=username,
                filename=filename,
                resolution=resolution,
                artifact_locator=artifact_locator,
            )
            await session.commit()


def get_default_registrar() -> Optional[SqlMetadataRegistrar]:
    """Registrar backed by the configured database, if any."""
    from app.core.database import async_session_maker

    if async_session_maker is None:
        logger.info("DATABASE_URL not set, transcoded outputs are not registered")
        return None
    return SqlMetadataRegistrar(async_session_maker)
