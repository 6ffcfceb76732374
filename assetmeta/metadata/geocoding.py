from __future__ import annotations

import asyncio
import io
from dataclasses import asdict, dataclass, replace
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional, Protocol

import reverse_geocoder

from assetmeta.core.config import ReverseGeocodingConfig
from assetmeta.core.jobs import get_job_backend
from assetmeta.core.logging import get_logger
from assetmeta.core.outcome import ErrorKind, capture
from assetmeta.db.models import Asset, QueueName
from assetmeta.db.repository import SystemMetadataRepository

from .records import MetadataRecord

RELOAD_REQUEST_KEY = "reverse-geocoding-reload"
RELOAD_LOCK_NAME = "reverse-geocoding-reload"
LOOKUP_CACHE_SIZE = 10_000


class GeocoderNotInitializedError(RuntimeError):
    """Raised when a lookup is attempted before the index has been loaded."""


@dataclass(slots=True, frozen=True)
class GeoPlace:
    city: Optional[str]
    state: Optional[str]
    country: Optional[str]


class Geocoder(Protocol):
    def init(self, cities_file_override: str) -> None: ...

    def delete_cache(self) -> None: ...

    def reverse_geocode(self, latitude: float, longitude: float) -> GeoPlace: ...


class QueueController(Protocol):
    async def pause(self, queue: QueueName) -> None: ...

    async def resume(self, queue: QueueName) -> None: ...

    def exclusive(self, name: str) -> Any: ...


@dataclass(slots=True, frozen=True)
class ReloadRequest:
    """Operator request, stored in the database, to reload every worker's index."""

    generation: int = 0
    delete_cache: bool = False


async def load_reload_request(metadata: SystemMetadataRepository) -> ReloadRequest:
    stored = await metadata.get(RELOAD_REQUEST_KEY)
    if stored is None:
        return ReloadRequest()
    return ReloadRequest(generation=int(stored.get("generation", 0)), delete_cache=bool(stored.get("delete_cache")))


async def publish_reload_request(metadata: SystemMetadataRepository, *, delete_cache: bool = False) -> ReloadRequest:
    """Bump the reload generation; workers pick it up before their next extraction job."""
    current = await load_reload_request(metadata)
    request = ReloadRequest(generation=current.generation + 1, delete_cache=delete_cache)
    await metadata.set(RELOAD_REQUEST_KEY, asdict(request))
    return request


class LocalReverseGeocoder:
    """Offline reverse geocoder backed by a GeoNames-style cities table.

    ``cities_file_override`` may point at a CSV with ``lat,lon,name,admin1,admin2,cc``
    columns; any other value selects the dataset bundled with ``reverse_geocoder``.
    """

    def __init__(self, cache_size: int = LOOKUP_CACHE_SIZE) -> None:
        self._index: reverse_geocoder.RGeocoder | None = None
        self._lookup = lru_cache(maxsize=cache_size)(self._query)
        self.logger = get_logger(component="reverse_geocoder")

    def init(self, cities_file_override: str) -> None:
        source = Path(cities_file_override)
        if source.is_file():
            stream = io.StringIO(source.read_text(encoding="utf-8"))
            index = reverse_geocoder.RGeocoder(mode=1, verbose=False, stream=stream)
        else:
            self.logger.info("reverse_geocoder_bundled_dataset", requested=cities_file_override)
            index = reverse_geocoder.RGeocoder(mode=1, verbose=False)
        self._index = index
        self._lookup.cache_clear()

    def delete_cache(self) -> None:
        self._index = None
        self._lookup.cache_clear()

    def cache_info(self) -> Any:
        return self._lookup.cache_info()

    def reverse_geocode(self, latitude: float, longitude: float) -> GeoPlace:
        if self._index is None:
            raise GeocoderNotInitializedError("reverse geocoder has not been initialised")
        return self._lookup(round(latitude, 5), round(longitude, 5))

    def _query(self, latitude: float, longitude: float) -> GeoPlace:
        [match] = self._index.query([(latitude, longitude)])
        return GeoPlace(
            city=match.get("name") or None,
            state=match.get("admin1") or None,
            country=match.get("cc") or None,
        )


class GeocodingEnricher:
    def __init__(self, geocoder: Geocoder):
        self.geocoder = geocoder
        self.logger = get_logger(component="geocoding_enricher")

    async def enrich(self, asset: Asset, record: MetadataRecord, config: ReverseGeocodingConfig) -> MetadataRecord:
        """Return ``record`` with city, state and country filled from its coordinates.

        The record comes back unchanged when the feature is disabled, when a
        coordinate is missing or zero, or when the geocoder fails.
        """
        latitude, longitude = record.latitude, record.longitude
        if not config.enabled or not latitude or not longitude:
            return record

        outcome = await capture(
            asyncio.to_thread(self.geocoder.reverse_geocode, latitude, longitude),
            ErrorKind.geocoding,
        )
        if not outcome.ok:
            self.logger.warning(
                "reverse_geocoding_failed",
                asset_id=asset.asset_id,
                path=asset.original_path,
                error=str(outcome.error),
            )
            return record

        place = outcome.value
        return replace(record, city=place.city, state=place.state, country=place.country)


class ReverseGeocoderLifecycle:
    """Owns (re)initialisation of the geocoding index on configuration changes.

    The loaded baseline is per process. Reloads in different processes are
    serialised by the queue's exclusive lock, held from pause until resume, so
    one worker's resume never ends a pause another worker still relies on.
    """

    def __init__(self, geocoder: Geocoder, queue: QueueController):
        self.geocoder = geocoder
        self.queue = queue
        self.loaded_cities_file: str | None = None
        self.loaded_generation: int = 0
        self.logger = get_logger(component="reverse_geocoder_lifecycle")

    def is_current(self, config: ReverseGeocodingConfig, request: ReloadRequest) -> bool:
        return self.loaded_cities_file == config.cities_file_override and self.loaded_generation == request.generation

    async def on_config_changed(self, config: ReverseGeocodingConfig, request: ReloadRequest | None = None) -> bool:
        """Apply a configuration snapshot and reload request.

        Returns True when the index was (re)loaded. A request whose generation
        this process has already applied does not reload again.
        """
        if not config.enabled:
            return False
        request = request or ReloadRequest(generation=self.loaded_generation)
        if self.is_current(config, request):
            return False

        cities_file = config.cities_file_override
        try:
            async with self.queue.exclusive(RELOAD_LOCK_NAME):
                if self.is_current(config, request):
                    return False
                await self._reload(cities_file, request)
        except Exception as exc:
            self.loaded_cities_file = None
            self.logger.error("reverse_geocoder_init_failed", cities_file=cities_file, error=str(exc), exc_info=True)
            return False

        self.logger.info("reverse_geocoder_initialised", cities_file=cities_file, generation=request.generation)
        return True

    async def _reload(self, cities_file: str, request: ReloadRequest) -> None:
        if request.delete_cache and request.generation != self.loaded_generation:
            self.loaded_cities_file = None
            await asyncio.to_thread(self.geocoder.delete_cache)

        await self.queue.pause(QueueName.metadata_extraction)
        try:
            await asyncio.to_thread(self.geocoder.init, cities_file)
            # Jobs released by resume must already see the new baseline.
            self.loaded_cities_file = cities_file
            self.loaded_generation = request.generation
        finally:
            await self.queue.resume(QueueName.metadata_extraction)


@lru_cache()
def get_geocoder() -> LocalReverseGeocoder:
    return LocalReverseGeocoder()


@lru_cache()
def get_geocoder_lifecycle() -> ReverseGeocoderLifecycle:
    return ReverseGeocoderLifecycle(get_geocoder(), get_job_backend())


__all__ = [
    "GeoPlace",
    "Geocoder",
    "GeocoderNotInitializedError",
    "GeocodingEnricher",
    "LocalReverseGeocoder",
    "ReloadRequest",
    "ReverseGeocoderLifecycle",
    "get_geocoder",
    "get_geocoder_lifecycle",
    "load_reload_request",
    "publish_reload_request",
]
