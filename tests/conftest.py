import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any
from uuid import uuid4

import pytest

from assetmeta.core.config import get_settings
from assetmeta.core.db import Base, create_engine, create_schema
from assetmeta.core.jobs import get_job_backend
from assetmeta.db.models import Asset, AssetType, JobName, QueueName
from assetmeta.db.repository import AssetRepository
from assetmeta.metadata.geocoding import GeoPlace, get_geocoder, get_geocoder_lifecycle


def _clear_caches() -> None:
    get_geocoder_lifecycle.cache_clear()
    get_geocoder.cache_clear()
    get_job_backend.cache_clear()
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def configure_environment(monkeypatch, tmp_path):
    db_path = tmp_path / "assetmeta_test.db"
    media_root = tmp_path / "library"

    monkeypatch.setenv("ASSETMETA_LOG_LEVEL", "debug")
    monkeypatch.setenv("ASSETMETA_DB_URL", f"sqlite+aiosqlite:///{db_path}")
    monkeypatch.setenv("ASSETMETA_MEDIA_ROOT", str(media_root))
    monkeypatch.setenv("ASSETMETA_STORAGE_BACKEND", "local")
    monkeypatch.setenv("ASSETMETA_JOB_BACKEND", "inline")
    monkeypatch.setenv("ASSETMETA_REDIS_URL", "redis://localhost:6379/0")
    monkeypatch.setenv("ASSETMETA_REVERSE_GEOCODING_ENABLED", "false")

    _clear_caches()
    settings = get_settings()
    engine = create_engine(settings)

    async def _setup() -> None:
        await create_schema(engine)
        await engine.dispose()

    asyncio.run(_setup())

    yield settings

    async def _teardown() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()

    asyncio.run(_teardown())
    _clear_caches()


class FakeReader:
    """Serves canned tag mappings per path; paths listed in ``failures`` raise."""

    def __init__(self, tags: dict[str, dict[str, Any]] | None = None, failures: dict[str, Exception] | None = None):
        self.tags = {str(key): value for key, value in (tags or {}).items()}
        self.failures = {str(key): value for key, value in (failures or {}).items()}
        self.calls: list[str] = []

    def read(self, path: str) -> dict[str, Any]:
        self.calls.append(str(path))
        if str(path) in self.failures:
            raise self.failures[str(path)]
        return dict(self.tags.get(str(path), {}))


class FakeGeocoder:
    def __init__(
        self,
        place: GeoPlace | None = None,
        *,
        lookup_error: Exception | None = None,
        init_error: Exception | None = None,
    ):
        self.place = place or GeoPlace(city="Paris", state="Île-de-France", country="FR")
        self.lookup_error = lookup_error
        self.init_error = init_error
        self.init_calls: list[str] = []
        self.delete_calls = 0
        self.lookups: list[tuple[float, float]] = []

    def init(self, cities_file_override: str) -> None:
        self.init_calls.append(cities_file_override)
        if self.init_error is not None:
            raise self.init_error

    def delete_cache(self) -> None:
        self.delete_calls += 1

    def reverse_geocode(self, latitude: float, longitude: float) -> GeoPlace:
        self.lookups.append((latitude, longitude))
        if self.lookup_error is not None:
            raise self.lookup_error
        return self.place


class FakeJobQueue:
    """Records queued jobs, pause/resume and lock calls without running anything."""

    def __init__(self) -> None:
        self.queued: list[tuple[JobName, dict[str, Any]]] = []
        self.events: list[tuple[str, Any]] = []

    async def queue(self, name: JobName, data: dict[str, Any]) -> None:
        self.queued.append((name, data))

    async def pause(self, queue: QueueName) -> None:
        self.events.append(("pause", queue))

    async def resume(self, queue: QueueName) -> None:
        self.events.append(("resume", queue))

    @asynccontextmanager
    async def exclusive(self, name: str):
        self.events.append(("lock", name))
        try:
            yield
        finally:
            self.events.append(("unlock", name))

    def ids(self, name: JobName) -> list[str]:
        return [data["id"] for queued_name, data in self.queued if queued_name == name]


async def make_asset(session, path: Path | str, **overrides: Any) -> Asset:
    fields: dict[str, Any] = {
        "owner_id": "owner-1",
        "type": AssetType.image,
        "original_path": str(path),
        "original_file_name": Path(path).name,
        "checksum": uuid4().hex,
        "device_asset_id": "device-asset",
        "device_id": "device",
    }
    fields.update(overrides)
    return await AssetRepository(session).create(**fields)


def write_motion_photo(path: Path, still: bytes, video: bytes, padding: bytes = b"") -> Path:
    path.write_bytes(still + video + padding)
    return path
