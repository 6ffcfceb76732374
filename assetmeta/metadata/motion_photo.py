"""Carve videos embedded in motion photos out into their own assets."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from assetmeta.core.logging import get_logger
from assetmeta.core.outcome import ErrorKind, Outcome
from assetmeta.core.storage import Storage, StorageFolder
from assetmeta.db.models import Asset, AssetType, JobName
from assetmeta.db.repository import AssetRepository

from .checksum import compute_sha1_bytes
from .records import MotionPhotoTrailer
from .tags import validate

MOTION_PHOTO_SEMANTIC = "MotionPhoto"
DERIVED_DEVICE_ID = "NONE"


class TrailerReadError(OSError):
    """Raised when the trailer cannot be read in full from the original file."""


class JobQueuer(Protocol):
    async def queue(self, name: JobName, data: dict[str, Any]) -> Any: ...


def _trailer_from_directory(tags: Mapping[str, Any]) -> Optional[MotionPhotoTrailer]:
    directory = tags.get("Directory")
    if not tags.get("MotionPhoto") or not isinstance(directory, list):
        return None
    for entry in directory:
        item = entry.get("Item") if isinstance(entry, Mapping) else None
        if not isinstance(item, Mapping) or item.get("Semantic") != MOTION_PHOTO_SEMANTIC:
            continue
        length = validate(item.get("Length")) or 0
        padding = validate(item.get("Padding")) or 0
        return MotionPhotoTrailer(length=int(length), padding=int(padding))
    return None


def _trailer_from_micro_video(tags: Mapping[str, Any]) -> Optional[MotionPhotoTrailer]:
    offset = tags.get("MicroVideoOffset")
    if not tags.get("MicroVideo") or isinstance(offset, bool) or not isinstance(offset, (int, float)):
        return None
    # MicroVideoOffset is measured from the end of the file; no padding is recorded.
    return MotionPhotoTrailer(length=int(offset), padding=0)


def find_motion_photo_trailer(tags: Mapping[str, Any]) -> Optional[MotionPhotoTrailer]:
    """Locate an embedded video trailer, preferring the XMP container directory.

    The legacy MicroVideo offset is only consulted when the directory does not
    yield a nonzero length. Returns ``None`` when there is nothing to extract.
    """
    for detect in (_trailer_from_directory, _trailer_from_micro_video):
        trailer = detect(tags)
        if trailer is not None and trailer.length > 0:
            return trailer
    return None


def read_trailer(path: str | Path, trailer: MotionPhotoTrailer) -> bytes:
    """Read exactly ``trailer.length`` bytes ending ``trailer.padding`` bytes before EOF."""
    with open(path, "rb") as handle:
        size = handle.seek(0, 2)
        position = trailer.position(size)
        if position < 0:
            raise TrailerReadError(f"trailer of {trailer.length} bytes does not fit in {size} byte file {path}")
        handle.seek(position)
        payload = handle.read(trailer.length)
    if len(payload) != trailer.length:
        raise TrailerReadError(f"short read from {path}: expected {trailer.length} bytes, got {len(payload)}")
    return payload


class MotionPhotoSplitter:
    def __init__(
        self,
        *,
        assets: AssetRepository,
        jobs: JobQueuer,
        storage: Storage,
        hasher: Callable[[bytes], str] = compute_sha1_bytes,
        video_extension: str = ".mp4",
    ):
        self.assets = assets
        self.jobs = jobs
        self.storage = storage
        self.hasher = hasher
        self.video_extension = video_extension
        self.logger = get_logger(component="motion_photo_splitter")

    async def apply(self, asset: Asset, tags: Mapping[str, Any]) -> Outcome[Asset]:
        """Extract and link the embedded video of ``asset``, if it has one.

        Returns a successful outcome carrying the linked video asset, an empty
        successful outcome when there is nothing to do, or a failure outcome
        when extraction hit an I/O or store error. Never raises for those.
        """
        if asset.type != AssetType.image or asset.live_photo_video_id:
            return Outcome.success()

        trailer = find_motion_photo_trailer(tags)
        if trailer is None:
            return Outcome.success()

        logger = self.logger.bind(asset_id=asset.asset_id, path=asset.original_path)
        logger.debug("motion_photo_extraction_started", length=trailer.length, padding=trailer.padding)

        try:
            encoded_folder = self.storage.get_folder_location(StorageFolder.encoded_video, asset.owner_id)
            encoded_file = encoded_folder / f"{Path(asset.original_path).stem}{self.video_extension}"
            self.storage.mkdir(encoded_folder)

            video = await asyncio.to_thread(read_trailer, asset.original_path, trailer)
            checksum = self.hasher(video)

            motion_asset = await self.assets.get_by_checksum(asset.owner_id, checksum)
            created = False
            if motion_asset is None:
                # The row must never exist without its file.
                await asyncio.to_thread(self.storage.write_bytes, encoded_file, video)
                motion_asset, created = await self.assets.create_or_get_by_checksum(
                    related=(asset,),
                    owner_id=asset.owner_id,
                    type=AssetType.video,
                    file_created_at=asset.file_created_at or asset.created_at,
                    file_modified_at=asset.file_modified_at,
                    checksum=checksum,
                    original_path=str(encoded_file),
                    original_file_name=asset.original_file_name,
                    is_visible=False,
                    is_read_only=True,
                    device_asset_id=DERIVED_DEVICE_ID,
                    device_id=DERIVED_DEVICE_ID,
                )

            if motion_asset.type != AssetType.video:
                logger.warning("motion_photo_checksum_not_video", other_asset_id=motion_asset.asset_id)
                return Outcome.success()

            if created:
                await self.jobs.queue(JobName.metadata_extraction, {"id": motion_asset.asset_id})
            elif not await asyncio.to_thread(self.storage.exists, motion_asset.original_path):
                logger.info("motion_photo_video_restored", video_asset_id=motion_asset.asset_id)
                await asyncio.to_thread(self.storage.write_bytes, motion_asset.original_path, video)
                await self.jobs.queue(JobName.metadata_extraction, {"id": motion_asset.asset_id})

            motion_asset.is_visible = False
            asset.live_photo_video_id = motion_asset.asset_id
            await self.assets.save(asset)
        except (OSError, ValueError) as exc:
            logger.error("motion_photo_extraction_failed", error=str(exc), exc_info=True)
            return Outcome.failure(ErrorKind.motion_photo_io, exc)
        except SQLAlchemyError as exc:
            logger.error("motion_photo_extraction_failed", error=str(exc), exc_info=True)
            await self.assets.rollback(asset)
            return Outcome.failure(ErrorKind.motion_photo_store, exc)

        logger.debug("motion_photo_extraction_finished", video_asset_id=motion_asset.asset_id, created=created)
        return Outcome.success(motion_asset)


__all__ = [
    "MotionPhotoSplitter",
    "TrailerReadError",
    "find_motion_photo_trailer",
    "read_trailer",
]
