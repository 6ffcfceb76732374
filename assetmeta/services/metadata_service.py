from __future__ import annotations

import asyncio
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from assetmeta.core.config import Settings
from assetmeta.core.jobs import JobQueue
from assetmeta.core.logging import get_logger
from assetmeta.core.outcome import ErrorKind, Outcome, capture
from assetmeta.core.storage import Storage
from assetmeta.db.models import Asset, AssetType, JobName, JobStatus
from assetmeta.db.repository import AlbumRepository, AssetRepository, paginate
from assetmeta.metadata.exiftool import ExiftoolReader, RawTags
from assetmeta.metadata.geocoding import Geocoder, GeocodingEnricher, get_geocoder
from assetmeta.metadata.motion_photo import JobQueuer, MotionPhotoSplitter
from assetmeta.metadata.normalizer import format_duration, normalize


class MetadataReader(Protocol):
    def read(self, path: str) -> RawTags: ...


class MetadataService:
    """Job handlers for metadata extraction and live photo linking.

    Handlers return ``JobStatus.succeeded`` when the job did its work and
    ``JobStatus.skipped`` when the target asset is gone or hidden (a race with
    deletion, not worth a retry). Unexpected errors propagate to the caller.
    """

    def __init__(
        self,
        settings: Settings,
        storage: Storage,
        session: AsyncSession,
        *,
        reader: MetadataReader | None = None,
        geocoder: Geocoder | None = None,
        jobs: JobQueuer | None = None,
    ):
        self.settings = settings
        self.storage = storage
        self.session = session
        self.assets = AssetRepository(session)
        self.albums = AlbumRepository(session)
        self.jobs = jobs or JobQueue(session)
        self.reader = reader or ExiftoolReader(settings.exiftool_path, timeout_s=settings.exiftool_timeout_s)
        self.splitter = MotionPhotoSplitter(
            assets=self.assets,
            jobs=self.jobs,
            storage=storage,
            video_extension=settings.encoded_video_extension,
        )
        self.enricher = GeocodingEnricher(geocoder or get_geocoder())
        self.logger = get_logger(component="metadata_service")

    async def handle_queue_metadata_extraction(self, data: dict[str, Any]) -> JobStatus:
        force = bool(data.get("force", False))
        fetch = self.assets.get_all if force else self.assets.get_without_exif

        queued = 0
        async for assets in paginate(self.settings.jobs_asset_pagination_size, fetch):
            for asset in assets:
                await self.jobs.queue(JobName.metadata_extraction, {"id": asset.asset_id})
                queued += 1

        self.logger.info("metadata_extraction_queued", force=force, count=queued)
        return JobStatus.succeeded

    async def handle_metadata_extraction(self, data: dict[str, Any]) -> JobStatus:
        asset_id = data["id"]
        asset = await self.assets.get_by_id(asset_id)
        if asset is None or not asset.is_visible:
            self.logger.info("metadata_extraction_skipped", asset_id=asset_id)
            return JobStatus.skipped

        tags = await self._read_tags(asset)
        stat = await asyncio.to_thread(self.storage.stat, asset.original_path)
        record = normalize(asset, tags, stat)

        motion = await self.splitter.apply(asset, tags)
        if not motion.ok:
            self.logger.warning("motion_photo_skipped", asset_id=asset.asset_id, kind=motion.kind.value)

        record = await self.enricher.enrich(asset, record, self.settings.reverse_geocoding)

        await self.assets.upsert_exif(record)
        asset.duration = format_duration(tags.get("Duration"))
        if record.date_time_original is not None:
            asset.file_created_at = record.date_time_original
        await self.assets.save(asset)

        self.logger.info("metadata_extracted", asset_id=asset.asset_id, live_photo_video_id=asset.live_photo_video_id)
        return JobStatus.succeeded

    async def handle_live_photo_linking(self, data: dict[str, Any]) -> JobStatus:
        asset_id = data["id"]
        asset = await self.assets.get_by_id(asset_id)
        exif = await self.assets.get_exif(asset_id) if asset is not None else None
        if asset is None or exif is None:
            return JobStatus.skipped

        live_photo_cid = exif.live_photo_cid
        if not live_photo_cid:
            return JobStatus.succeeded

        match = await self.assets.find_live_photo_match(
            live_photo_cid=live_photo_cid,
            owner_id=asset.owner_id,
            other_asset_id=asset.asset_id,
            type=asset.type.other,
        )
        if match is None:
            return JobStatus.succeeded

        photo, motion = (asset, match) if asset.type == AssetType.image else (match, asset)
        photo.live_photo_video_id = motion.asset_id
        await self.assets.save(photo)
        motion.is_visible = False
        await self.assets.save(motion)
        await self.albums.remove_asset(motion.asset_id)

        self.logger.info("live_photo_linked", photo_asset_id=photo.asset_id, video_asset_id=motion.asset_id)
        return JobStatus.succeeded

    async def _read_tags(self, asset: Asset) -> RawTags:
        primary: Outcome[RawTags] = await capture(
            asyncio.to_thread(self.reader.read, asset.original_path),
            ErrorKind.metadata_read,
        )
        sidecar: Outcome[RawTags] = Outcome.success({})
        if asset.sidecar_path:
            sidecar = await capture(
                asyncio.to_thread(self.reader.read, asset.sidecar_path),
                ErrorKind.sidecar_read,
            )

        for outcome, path in ((primary, asset.original_path), (sidecar, asset.sidecar_path)):
            if not outcome.ok:
                self.logger.warning(
                    "metadata_read_failed",
                    asset_id=asset.asset_id,
                    path=path,
                    kind=outcome.kind.value,
                    error=str(outcome.error),
                )

        return {**primary.unwrap_or({}), **sidecar.unwrap_or({})}


__all__ = ["MetadataReader", "MetadataService"]
