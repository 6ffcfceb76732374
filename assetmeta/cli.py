from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from rich.console import Console

from .core.config import get_settings
from .core.db import create_engine, create_schema, session_scope
from .core.jobs import JobQueue
from .core.logging import configure_logging, level_from_name
from .db.models import Asset, AssetType, Exif, JobName
from .db.repository import AssetRepository, SystemMetadataRepository
from .domain import compute_sha1_file
from .metadata.exiftool import ExiftoolNotFoundError, ExiftoolReader
from .metadata.geocoding import publish_reload_request

console = Console()

VIDEO_EXTENSIONS = frozenset({".mp4", ".mov", ".m4v", ".3gp", ".avi", ".mkv", ".mts", ".m2ts", ".webm", ".wmv", ".mpg"})
SIDECAR_EXTENSION = ".xmp"


def main(argv: Optional[list[str]] = None) -> None:
    """The main entry point for the CLI.

    Args:
        argv: The command-line arguments.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(level=level_from_name(settings.log_level))

    if getattr(args, "check", False):
        _run_environment_check()
        return

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    asyncio.run(args.func(args))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="assetmeta metadata extraction CLI")
    parser.add_argument("--check", action="store_true", help="Validate presence of exiftool")

    subparsers = parser.add_subparsers(dest="command")

    init_parser = subparsers.add_parser("init-db", help="Create database tables")
    init_parser.set_defaults(func=_cmd_init_db)

    import_parser = subparsers.add_parser("import", help="Register a media file as an asset and queue extraction")
    import_parser.add_argument("--file", required=True, help="Path to the source media file")
    import_parser.add_argument("--owner", required=True, help="Owner id for the new asset")
    import_parser.add_argument("--sidecar", help="Path to an XMP sidecar (defaults to <file>.xmp or <stem>.xmp)")
    import_parser.add_argument("--no-extract", action="store_true", help="Only register the asset")
    import_parser.set_defaults(func=_cmd_import)

    extract_parser = subparsers.add_parser("extract", help="Queue metadata extraction for one asset")
    extract_parser.add_argument("--asset-id", required=True)
    extract_parser.set_defaults(func=_cmd_extract)

    queue_parser = subparsers.add_parser("queue-all", help="Queue metadata extraction for the library")
    queue_parser.add_argument("--force", action="store_true", help="Re-extract assets that already have metadata")
    queue_parser.set_defaults(func=_cmd_queue_all)

    geocoder_parser = subparsers.add_parser("geocoder-init", help="Ask every worker to reload the reverse geocoder")
    geocoder_parser.add_argument("--delete-cache", action="store_true", help="Purge the geocoder cache first")
    geocoder_parser.set_defaults(func=_cmd_geocoder_init)

    show_parser = subparsers.add_parser("show", help="Print an asset and its metadata record")
    show_parser.add_argument("--asset-id", required=True)
    show_parser.set_defaults(func=_cmd_show)
    return parser


async def _cmd_init_db(args: argparse.Namespace) -> None:
    engine = create_engine(get_settings())
    try:
        await create_schema(engine)
    finally:
        await engine.dispose()
    console.print("[green]Database schema ensured.[/]")


async def _cmd_import(args: argparse.Namespace) -> None:
    """Register a media file as an asset and optionally queue its extraction.

    Args:
        args: The command-line arguments.
    """
    media_path = Path(args.file).expanduser().resolve()
    if not media_path.is_file():
        console.print(f"[red]File not found: {media_path}[/]")
        sys.exit(2)

    sidecar = _find_sidecar(media_path, args.sidecar)
    checksum = await asyncio.to_thread(compute_sha1_file, media_path)
    stat = media_path.stat()

    async with session_scope(get_settings()) as session:
        assets = AssetRepository(session)
        existing = await assets.get_by_checksum(args.owner, checksum)
        if existing is not None:
            console.print(f"[yellow]Duplicate of asset {existing.asset_id}[/]")
            return

        asset = await assets.create(
            owner_id=args.owner,
            type=AssetType.video if media_path.suffix.lower() in VIDEO_EXTENSIONS else AssetType.image,
            original_path=str(media_path),
            original_file_name=media_path.name,
            sidecar_path=str(sidecar) if sidecar else None,
            checksum=checksum,
            device_asset_id=f"{media_path.name}-{stat.st_size}",
            device_id="CLI",
            file_created_at=_stat_birthtime(stat) or datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            file_modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        )
        console.print(f"[green]Registered asset {asset.asset_id}[/]")

        if not args.no_extract:
            job = await JobQueue(session).queue(JobName.metadata_extraction, {"id": asset.asset_id})
            console.print(f"[dim]Queued job {job.job_id}[/]")


async def _cmd_extract(args: argparse.Namespace) -> None:
    async with session_scope(get_settings()) as session:
        job = await JobQueue(session).queue(JobName.metadata_extraction, {"id": args.asset_id})
    console.print(f"[green]Queued job {job.job_id}[/]")


async def _cmd_queue_all(args: argparse.Namespace) -> None:
    async with session_scope(get_settings()) as session:
        job = await JobQueue(session).queue(JobName.queue_metadata_extraction, {"force": args.force})
    console.print(f"[green]Queued job {job.job_id}[/]")


async def _cmd_geocoder_init(args: argparse.Namespace) -> None:
    settings = get_settings()
    config = settings.reverse_geocoding
    if not config.enabled:
        console.print("[yellow]Reverse geocoding is disabled; nothing to do.[/]")
        return
    async with session_scope(settings) as session:
        request = await publish_reload_request(SystemMetadataRepository(session), delete_cache=args.delete_cache)
    console.print(
        f"[green]Reload generation {request.generation} published; workers reload "
        f"{config.cities_file_override} before their next extraction job.[/]"
    )


async def _cmd_show(args: argparse.Namespace) -> None:
    async with session_scope(get_settings()) as session:
        asset = await AssetRepository(session).get_by_id(args.asset_id)
        if asset is None:
            console.print(f"[red]Asset not found: {args.asset_id}[/]")
            sys.exit(2)
        exif = await AssetRepository(session).get_exif(asset.asset_id)
        console.print_json(data=_asset_snapshot(asset, exif), default=str)


def _asset_snapshot(asset: Asset, exif: Optional[Exif]) -> dict[str, Any]:
    exif_payload = None
    if exif is not None:
        exif_payload = {
            column.key: getattr(exif, column.key)
            for column in exif.__table__.columns  # type: ignore[attr-defined]
        }
    return {
        "asset_id": asset.asset_id,
        "owner_id": asset.owner_id,
        "type": asset.type.value,
        "original_path": asset.original_path,
        "sidecar_path": asset.sidecar_path,
        "live_photo_video_id": asset.live_photo_video_id,
        "is_visible": asset.is_visible,
        "checksum": asset.checksum,
        "duration": asset.duration,
        "file_created_at": asset.file_created_at,
        "exif": exif_payload,
    }


def _find_sidecar(media_path: Path, explicit: Optional[str]) -> Optional[Path]:
    if explicit:
        candidate = Path(explicit).expanduser().resolve()
        if not candidate.is_file():
            console.print(f"[red]Sidecar not found: {candidate}[/]")
            sys.exit(2)
        return candidate
    for candidate in (
        media_path.with_name(media_path.name + SIDECAR_EXTENSION),
        media_path.with_suffix(SIDECAR_EXTENSION),
    ):
        if candidate.is_file():
            return candidate
    return None


def _stat_birthtime(stat_result: Any) -> Optional[datetime]:
    birth_time = getattr(stat_result, "st_birthtime", None)
    if birth_time is not None:
        return datetime.fromtimestamp(birth_time, tz=timezone.utc)
    return None


def _run_environment_check() -> None:
    """Check for the presence of required external dependencies."""
    settings = get_settings()
    console.rule("[bold]Environment Check")
    try:
        version = ExiftoolReader(settings.exiftool_path, timeout_s=settings.exiftool_timeout_s).check()
    except (ExiftoolNotFoundError, OSError) as exc:
        console.print(f"[bold]exiftool[/]: ❌ {exc}")
        console.print("[red]Missing dependencies detected. Consult pyproject.toml.[/]")
        sys.exit(1)
    console.print(f"[bold]exiftool[/]: ✅ {version}")
    console.print("[green]Environment looks good![/]")


if __name__ == "__main__":
    main()
