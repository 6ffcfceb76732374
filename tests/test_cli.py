from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest
from sqlalchemy import select

from assetmeta import cli
from assetmeta.core.config import get_settings
from assetmeta.core.db import session_scope
from assetmeta.db.models import Asset, AssetType, Job
from assetmeta.db.repository import SystemMetadataRepository
from assetmeta.metadata import exiftool
from assetmeta.metadata.geocoding import ReloadRequest, load_reload_request


def _assets() -> list[Asset]:
    async def load():
        async with session_scope(get_settings()) as session:
            return list((await session.execute(select(Asset))).scalars().all())

    return asyncio.run(load())


def test_import_registers_asset_and_detects_sidecar(tmp_path: Path, capsys):
    media = tmp_path / "clip.MOV"
    media.write_bytes(b"movie")
    sidecar = tmp_path / "clip.MOV.xmp"
    sidecar.write_text("<x:xmpmeta/>", encoding="utf-8")

    cli.main(["import", "--file", str(media), "--owner", "owner-1", "--no-extract"])

    [asset] = _assets()
    assert asset.type == AssetType.video
    assert asset.owner_id == "owner-1"
    assert asset.sidecar_path == str(sidecar.resolve())
    assert asset.original_file_name == "clip.MOV"
    assert f"Registered asset {asset.asset_id}" in capsys.readouterr().out

    cli.main(["import", "--file", str(media), "--owner", "owner-1", "--no-extract"])
    assert "Duplicate of asset" in capsys.readouterr().out
    assert len(_assets()) == 1


def test_show_prints_asset_snapshot(tmp_path: Path, capsys):
    media = tmp_path / "photo.jpg"
    media.write_bytes(b"jpeg")
    cli.main(["import", "--file", str(media), "--owner", "owner-1", "--no-extract"])
    [asset] = _assets()
    capsys.readouterr()

    cli.main(["show", "--asset-id", asset.asset_id])
    snapshot = json.loads(capsys.readouterr().out)
    assert snapshot["asset_id"] == asset.asset_id
    assert snapshot["type"] == "image"
    assert snapshot["exif"] is None


def test_queue_all_records_job(monkeypatch):
    monkeypatch.setattr("assetmeta.workers.tasks.run_job", lambda job_id: None)
    cli.main(["queue-all", "--force"])

    async def load():
        async with session_scope(get_settings()) as session:
            return (await session.execute(select(Job))).scalars().one()

    job = asyncio.run(load())
    assert job.payload == {"force": True}


def test_missing_exiftool_fails_check(monkeypatch):
    monkeypatch.setattr(exiftool.shutil, "which", lambda name: None)
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--check"])
    assert excinfo.value.code == 1


def test_missing_file_exits(tmp_path: Path):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["import", "--file", str(tmp_path / "nope.jpg"), "--owner", "owner-1"])
    assert excinfo.value.code == 2


def test_geocoder_init_publishes_reload_request(monkeypatch, capsys):
    monkeypatch.setenv("ASSETMETA_REVERSE_GEOCODING_ENABLED", "true")
    get_settings.cache_clear()

    cli.main(["geocoder-init", "--delete-cache"])
    cli.main(["geocoder-init"])

    async def load():
        async with session_scope(get_settings()) as session:
            return await load_reload_request(SystemMetadataRepository(session))

    assert asyncio.run(load()) == ReloadRequest(generation=2, delete_cache=False)
    assert "Reload generation 2 published" in capsys.readouterr().out
