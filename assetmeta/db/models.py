from __future__ import annotations

import enum
from datetime import datetime

from typing import List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import BIGINT
from sqlalchemy.orm import Mapped, mapped_column, relationship

from assetmeta.core.db import Base


class AssetType(str, enum.Enum):
    image = "image"
    video = "video"

    @property
    def other(self) -> "AssetType":
        return AssetType.video if self is AssetType.image else AssetType.image


class JobStatus(str, enum.Enum):
    queued = "queued"
    running = "running"
    succeeded = "succeeded"
    skipped = "skipped"
    failed = "failed"


class QueueName(str, enum.Enum):
    metadata_extraction = "metadata_extraction"


class JobName(str, enum.Enum):
    queue_metadata_extraction = "queue_metadata_extraction"
    metadata_extraction = "metadata_extraction"
    link_live_photos = "link_live_photos"

    @property
    def queue(self) -> QueueName:
        return QueueName.metadata_extraction


album_assets = Table(
    "album_assets",
    Base.metadata,
    Column("album_id", ForeignKey("albums.album_id", ondelete="CASCADE"), primary_key=True),
    Column("asset_id", ForeignKey("assets.asset_id", ondelete="CASCADE"), primary_key=True),
)


class Asset(Base):
    __tablename__ = "assets"
    __table_args__ = (
        UniqueConstraint("owner_id", "checksum", name="uq_assets_owner_checksum"),
        Index("ix_assets_owner_id", "owner_id"),
    )
    __mapper_args__ = {"eager_defaults": True}

    asset_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[AssetType] = mapped_column(Enum(AssetType), nullable=False)
    original_path: Mapped[str] = mapped_column(String(1024), nullable=False)
    original_file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    sidecar_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    live_photo_video_id: Mapped[str | None] = mapped_column(
        ForeignKey("assets.asset_id", ondelete="SET NULL"), nullable=True
    )
    is_visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_read_only: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    checksum: Mapped[str] = mapped_column(String(64), nullable=False)
    device_asset_id: Mapped[str] = mapped_column(String(255), nullable=False)
    device_id: Mapped[str] = mapped_column(String(255), nullable=False)
    duration: Mapped[str | None] = mapped_column(String(32), nullable=True)
    file_created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    file_modified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    exif_info: Mapped[Optional["Exif"]] = relationship(back_populates="asset", uselist=False, lazy="selectin")
    albums: Mapped[List["Album"]] = relationship(secondary=album_assets, back_populates="assets")


class Exif(Base):
    __tablename__ = "exif"
    __table_args__ = (Index("ix_exif_live_photo_cid", "live_photo_cid"),)

    asset_id: Mapped[str] = mapped_column(ForeignKey("assets.asset_id", ondelete="CASCADE"), primary_key=True)
    make: Mapped[str | None] = mapped_column(String(255), nullable=True)
    model: Mapped[str | None] = mapped_column(String(255), nullable=True)
    lens_model: Mapped[str | None] = mapped_column(String(255), nullable=True)
    exif_image_width: Mapped[int | None] = mapped_column(Integer, nullable=True)
    exif_image_height: Mapped[int | None] = mapped_column(Integer, nullable=True)
    file_size_in_byte: Mapped[int | None] = mapped_column(BIGINT, nullable=True)
    orientation: Mapped[str | None] = mapped_column(String(16), nullable=True)
    date_time_original: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    modify_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    time_zone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    city: Mapped[str | None] = mapped_column(String(255), nullable=True)
    state: Mapped[str | None] = mapped_column(String(255), nullable=True)
    country: Mapped[str | None] = mapped_column(String(255), nullable=True)
    projection_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    live_photo_cid: Mapped[str | None] = mapped_column(String(255), nullable=True)
    exposure_time: Mapped[str | None] = mapped_column(String(32), nullable=True)
    f_number: Mapped[float | None] = mapped_column(Float, nullable=True)
    focal_length: Mapped[float | None] = mapped_column(Float, nullable=True)
    iso: Mapped[int | None] = mapped_column(Integer, nullable=True)
    fps: Mapped[float | None] = mapped_column(Float, nullable=True)
    bits_per_sample: Mapped[int | None] = mapped_column(Integer, nullable=True)
    colorspace: Mapped[str | None] = mapped_column(String(64), nullable=True)
    profile_description: Mapped[str | None] = mapped_column(String(255), nullable=True)

    asset: Mapped[Asset] = relationship(back_populates="exif_info")


class Album(Base):
    __tablename__ = "albums"

    album_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    assets: Mapped[List[Asset]] = relationship(secondary=album_assets, back_populates="albums")


class Job(Base):
    __tablename__ = "jobs"
    __table_args__ = (Index("ix_jobs_queue_status", "queue", "status"),)
    __mapper_args__ = {"eager_defaults": True}

    job_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[JobName] = mapped_column(Enum(JobName), nullable=False)
    queue: Mapped[QueueName] = mapped_column(Enum(QueueName), nullable=False)
    status: Mapped[JobStatus] = mapped_column(Enum(JobStatus), default=JobStatus.queued, nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    error: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class SystemMetadata(Base):
    __tablename__ = "system_metadata"

    key: Mapped[str] = mapped_column(String(128), primary_key=True)
    value: Mapped[dict] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


__all__ = [
    "Asset",
    "Exif",
    "Album",
    "Job",
    "SystemMetadata",
    "album_assets",
    "AssetType",
    "JobName",
    "JobStatus",
    "QueueName",
]
