from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "20261016_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    asset_type_enum = sa.Enum("image", "video", name="assettype")
    job_status_enum = sa.Enum("queued", "running", "succeeded", "skipped", "failed", name="jobstatus")
    queue_name_enum = sa.Enum("metadata_extraction", name="queuename")
    job_name_enum = sa.Enum("queue_metadata_extraction", "metadata_extraction", "link_live_photos", name="jobname")

    op.create_table(
        "assets",
        sa.Column("asset_id", sa.String(length=64), primary_key=True),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("type", asset_type_enum, nullable=False),
        sa.Column("original_path", sa.String(length=1024), nullable=False),
        sa.Column("original_file_name", sa.String(length=255), nullable=False),
        sa.Column("sidecar_path", sa.String(length=1024), nullable=True),
        sa.Column(
            "live_photo_video_id",
            sa.String(length=64),
            sa.ForeignKey("assets.asset_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("is_visible", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_read_only", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("checksum", sa.String(length=64), nullable=False),
        sa.Column("device_asset_id", sa.String(length=255), nullable=False),
        sa.Column("device_id", sa.String(length=255), nullable=False),
        sa.Column("duration", sa.String(length=32), nullable=True),
        sa.Column("file_created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("file_modified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("owner_id", "checksum", name="uq_assets_owner_checksum"),
    )
    op.create_index("ix_assets_owner_id", "assets", ["owner_id"])

    op.create_table(
        "exif",
        sa.Column("asset_id", sa.String(length=64), sa.ForeignKey("assets.asset_id", ondelete="CASCADE"), primary_key=True),
        sa.Column("make", sa.String(length=255), nullable=True),
        sa.Column("model", sa.String(length=255), nullable=True),
        sa.Column("lens_model", sa.String(length=255), nullable=True),
        sa.Column("exif_image_width", sa.Integer(), nullable=True),
        sa.Column("exif_image_height", sa.Integer(), nullable=True),
        sa.Column("file_size_in_byte", sa.BigInteger(), nullable=True),
        sa.Column("orientation", sa.String(length=16), nullable=True),
        sa.Column("date_time_original", sa.DateTime(timezone=True), nullable=True),
        sa.Column("modify_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("time_zone", sa.String(length=64), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("city", sa.String(length=255), nullable=True),
        sa.Column("state", sa.String(length=255), nullable=True),
        sa.Column("country", sa.String(length=255), nullable=True),
        sa.Column("projection_type", sa.String(length=64), nullable=True),
        sa.Column("live_photo_cid", sa.String(length=255), nullable=True),
        sa.Column("exposure_time", sa.String(length=32), nullable=True),
        sa.Column("f_number", sa.Float(), nullable=True),
        sa.Column("focal_length", sa.Float(), nullable=True),
        sa.Column("iso", sa.Integer(), nullable=True),
        sa.Column("fps", sa.Float(), nullable=True),
        sa.Column("bits_per_sample", sa.Integer(), nullable=True),
        sa.Column("colorspace", sa.String(length=64), nullable=True),
        sa.Column("profile_description", sa.String(length=255), nullable=True),
    )
    op.create_index("ix_exif_live_photo_cid", "exif", ["live_photo_cid"])

    op.create_table(
        "albums",
        sa.Column("album_id", sa.String(length=64), primary_key=True),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "album_assets",
        sa.Column("album_id", sa.String(length=64), sa.ForeignKey("albums.album_id", ondelete="CASCADE"), primary_key=True),
        sa.Column("asset_id", sa.String(length=64), sa.ForeignKey("assets.asset_id", ondelete="CASCADE"), primary_key=True),
    )

    op.create_table(
        "jobs",
        sa.Column("job_id", sa.String(length=64), primary_key=True),
        sa.Column("name", job_name_enum, nullable=False),
        sa.Column("queue", queue_name_enum, nullable=False),
        sa.Column("status", job_status_enum, nullable=False, server_default="queued"),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("error", sa.JSON(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_jobs_queue_status", "jobs", ["queue", "status"])


def downgrade() -> None:
    op.drop_index("ix_jobs_queue_status", table_name="jobs")
    op.drop_table("jobs")
    op.drop_table("album_assets")
    op.drop_table("albums")
    op.drop_index("ix_exif_live_photo_cid", table_name="exif")
    op.drop_table("exif")
    op.drop_index("ix_assets_owner_id", table_name="assets")
    op.drop_table("assets")

    sa.Enum(name="jobname").drop(op.get_bind(), checkfirst=False)
    sa.Enum(name="queuename").drop(op.get_bind(), checkfirst=False)
    sa.Enum(name="jobstatus").drop(op.get_bind(), checkfirst=False)
    sa.Enum(name="assettype").drop(op.get_bind(), checkfirst=False)
