from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from assetmeta.core.config import Settings, get_settings
from assetmeta.core.db import create_engine, create_session_factory
from assetmeta.core.logging import configure_logging, get_logger, level_from_name
from assetmeta.core.storage import Storage, get_storage
from assetmeta.db.models import Job, JobName, JobStatus
from assetmeta.db.repository import SystemMetadataRepository
from assetmeta.metadata.geocoding import get_geocoder_lifecycle, load_reload_request
from assetmeta.services.metadata_service import MetadataService

Handler = Callable[[dict[str, Any]], Awaitable[JobStatus]]


def run_job(job_id: str) -> None:
    """Entry-point executed by the job backend (RQ or inline)."""

    settings = get_settings()
    configure_logging(level=level_from_name(settings.log_level))
    storage = get_storage(settings)

    engine = create_engine(settings)
    session_factory = create_session_factory(engine)

    async def _runner() -> None:
        try:
            async with session_factory() as session:
                await process_job(job_id, session, settings, storage)
        finally:
            await engine.dispose()

    asyncio.run(_runner())


async def process_job(
    job_id: str,
    session: AsyncSession,
    settings: Settings,
    storage: Storage,
    *,
    service: MetadataService | None = None,
) -> JobStatus | None:
    logger = get_logger(job_id=job_id)
    job = await session.get(Job, job_id)
    if not job:
        logger.error("job_not_found")
        return None

    logger = logger.bind(job_name=job.name.value)
    await _mark(session, job, JobStatus.running)

    if job.name == JobName.metadata_extraction and settings.reverse_geocoding.enabled:
        request = await load_reload_request(SystemMetadataRepository(session))
        await get_geocoder_lifecycle().on_config_changed(settings.reverse_geocoding, request)

    service = service or MetadataService(settings, storage, session)
    handlers: dict[JobName, Handler] = {
        JobName.queue_metadata_extraction: service.handle_queue_metadata_extraction,
        JobName.metadata_extraction: service.handle_metadata_extraction,
        JobName.link_live_photos: service.handle_live_photo_linking,
    }
    payload = dict(job.payload or {})

    try:
        status = await handlers[job.name](payload)
    except Exception as exc:
        logger.exception("job_failed")
        await session.rollback()
        await _mark(session, job, JobStatus.failed, error={"message": str(exc), "type": type(exc).__name__})
        raise

    await _mark(session, job, status)
    logger.info("job_finished", status=status.value)

    if job.name == JobName.metadata_extraction and status == JobStatus.succeeded:
        await service.jobs.queue(JobName.link_live_photos, {"id": payload["id"]})
    return status


async def _mark(session: AsyncSession, job: Job, status: JobStatus, *, error: dict[str, Any] | None = None) -> None:
    job.status = status
    job.error = error
    if status == JobStatus.running:
        job.started_at = datetime.now(timezone.utc)
    if status in {JobStatus.succeeded, JobStatus.skipped, JobStatus.failed}:
        job.finished_at = datetime.now(timezone.utc)
    await session.commit()


__all__ = ["process_job", "run_job"]
