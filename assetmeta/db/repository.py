from __future__ import annotations

from typing import Any, AsyncIterator, Awaitable, Callable, Sequence
from uuid import uuid4

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from assetmeta.core.logging import get_logger
from assetmeta.metadata.records import MetadataRecord

from .models import Asset, AssetType, Exif, SystemMetadata, album_assets

PageFetcher = Callable[[int, str | None], Awaitable[Sequence[Asset]]]


async def paginate(page_size: int, fetch: PageFetcher) -> AsyncIterator[Sequence[Asset]]:
    """Yield bounded batches of assets using keyset pagination on ``asset_id``.

    Stays correct while the filtered set shrinks underneath the iterator,
    e.g. when queued jobs finish inline.
    """
    after: str | None = None
    while True:
        items = await fetch(page_size, after)
        if not items:
            return
        yield items
        if len(items) < page_size:
            return
        after = items[-1].asset_id


class AssetRepository:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.logger = get_logger(component="asset_repository")

    async def get_by_id(self, asset_id: str) -> Asset | None:
        return await self.session.get(Asset, asset_id)

    async def get_by_checksum(self, owner_id: str, checksum: str) -> Asset | None:
        stmt = select(Asset).where(Asset.owner_id == owner_id, Asset.checksum == checksum)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_all(self, take: int, after: str | None = None) -> Sequence[Asset]:
        stmt = select(Asset).where(Asset.is_visible.is_(True))
        if after is not None:
            stmt = stmt.where(Asset.asset_id > after)
        stmt = stmt.order_by(Asset.asset_id).limit(take)
        return (await self.session.execute(stmt)).scalars().all()

    async def get_without_exif(self, take: int, after: str | None = None) -> Sequence[Asset]:
        stmt = (
            select(Asset)
            .outerjoin(Exif, Exif.asset_id == Asset.asset_id)
            .where(Asset.is_visible.is_(True), Exif.asset_id.is_(None))
        )
        if after is not None:
            stmt = stmt.where(Asset.asset_id > after)
        stmt = stmt.order_by(Asset.asset_id).limit(take)
        return (await self.session.execute(stmt)).scalars().all()

    async def create(self, **fields: Any) -> Asset:
        fields.setdefault("asset_id", uuid4().hex)
        asset = Asset(**fields)
        self.session.add(asset)
        await self.session.commit()
        return asset

    async def create_or_get_by_checksum(self, *, related: Sequence[Asset] = (), **fields: Any) -> tuple[Asset, bool]:
        """Create an asset unless one with the same owner and checksum exists.

        Returns the canonical asset and whether this call created it. A
        concurrent creator that wins the race surfaces as an integrity error on
        ``(owner_id, checksum)``; the row it wrote is returned instead.
        ``related`` instances are reloaded if the session has to roll back.
        """
        existing = await self.get_by_checksum(fields["owner_id"], fields["checksum"])
        if existing is not None:
            return existing, False
        try:
            return await self.create(**fields), True
        except IntegrityError:
            await self.rollback(*related)
            self.logger.info("asset_checksum_conflict", owner_id=fields["owner_id"], checksum=fields["checksum"])
            winner = await self.get_by_checksum(fields["owner_id"], fields["checksum"])
            if winner is None:
                raise
            return winner, False

    async def save(self, asset: Asset) -> Asset:
        self.session.add(asset)
        await self.session.commit()
        return asset

    async def upsert_exif(self, record: MetadataRecord) -> Exif:
        values = record.to_dict()
        exif = await self.session.get(Exif, record.asset_id)
        if exif is None:
            exif = Exif(**values)
            self.session.add(exif)
        else:
            for key, value in values.items():
                setattr(exif, key, value)
        await self.session.commit()
        return exif

    async def get_exif(self, asset_id: str) -> Exif | None:
        return await self.session.get(Exif, asset_id)

    async def find_live_photo_match(
        self,
        *,
        live_photo_cid: str,
        owner_id: str,
        other_asset_id: str,
        type: AssetType,
    ) -> Asset | None:
        stmt = (
            select(Asset)
            .join(Exif, Exif.asset_id == Asset.asset_id)
            .where(
                Asset.owner_id == owner_id,
                Asset.asset_id != other_asset_id,
                Asset.type == type,
                Exif.live_photo_cid == live_photo_cid,
            )
            .order_by(Asset.asset_id)
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def rollback(self, *instances: Asset) -> None:
        """Roll back the session and reload ``instances`` expired by it."""
        await self.session.rollback()
        for instance in instances:
            await self.session.refresh(instance)


class AlbumRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add_asset(self, album_id: str, asset_id: str) -> None:
        await self.session.execute(album_assets.insert().values(album_id=album_id, asset_id=asset_id))
        await self.session.commit()

    async def remove_asset(self, asset_id: str) -> None:
        await self.session.execute(delete(album_assets).where(album_assets.c.asset_id == asset_id))
        await self.session.commit()

    async def get_asset_ids(self, album_id: str) -> list[str]:
        stmt = select(album_assets.c.asset_id).where(album_assets.c.album_id == album_id)
        return list((await self.session.execute(stmt)).scalars().all())


class SystemMetadataRepository:
    """Small key/value store shared by every process using the database."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, key: str) -> dict[str, Any] | None:
        row = await self.session.get(SystemMetadata, key, populate_existing=True)
        return dict(row.value) if row is not None else None

    async def set(self, key: str, value: dict[str, Any]) -> None:
        row = await self.session.get(SystemMetadata, key)
        if row is None:
            self.session.add(SystemMetadata(key=key, value=value))
        else:
            row.value = value
        await self.session.commit()


__all__ = ["AssetRepository", "AlbumRepository", "SystemMetadataRepository", "paginate"]
