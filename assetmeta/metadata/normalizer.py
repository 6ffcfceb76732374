from __future__ import annotations

from datetime import timedelta, timezone, tzinfo
from fractions import Fraction
from functools import lru_cache
from typing import Any, Mapping, Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from timezonefinder import TimezoneFinder

from assetmeta.core.storage import StorageStat
from assetmeta.db.models import Asset, AssetType

from .records import MetadataRecord
from .tags import (
    BIT_DEPTH_TAGS,
    LIVE_PHOTO_CID_TAG,
    OFFSET_TAGS,
    as_float,
    as_int,
    as_text,
    first_datetime,
    parse_exif_datetime,
    parse_leading_int,
    parse_offset,
    validate,
    zone_name,
)


def normalize(asset: Asset, tags: Mapping[str, Any], stat: StorageStat) -> MetadataRecord:
    """Build the metadata record for ``asset`` from its merged raw tags.

    Pure and total: absent or unusable tags map to ``None``.

    Args:
        asset: The asset the tags were read from.
        tags: Primary tags merged with sidecar tags.
        stat: Stat of the asset's original file.

    Returns:
        The normalised metadata record.
    """
    date_time_original, date_offset = first_datetime(tags)
    latitude, longitude = as_float(tags.get("GPSLatitude")), as_float(tags.get("GPSLongitude"))
    tag_offset = _offset_from_tags(tags)
    zone: Optional[tzinfo] = None
    if tag_offset is not None:
        zone = timezone(tag_offset)
    elif date_offset is None:
        zone = _zone_from_gps(latitude, longitude)
    localize = tag_offset is not None or asset.type != AssetType.video
    if date_time_original is not None and date_offset is None and zone is not None and localize:
        # Zone-less dates are wall-clock time at the recorded offset or, for
        # images, in the zone of their GPS position. Video dates are UTC.
        date_time_original = date_time_original.replace(tzinfo=zone)
    modify_date, _ = parse_exif_datetime(tags.get("ModifyDate"))

    return MetadataRecord(
        asset_id=asset.asset_id,
        make=as_text(tags.get("Make")),
        model=as_text(tags.get("Model")),
        lens_model=as_text(tags.get("LensModel")),
        exif_image_width=as_int(tags.get("ImageWidth")),
        exif_image_height=as_int(tags.get("ImageHeight")),
        file_size_in_byte=stat.size_bytes,
        orientation=_orientation(tags.get("Orientation")),
        date_time_original=date_time_original or asset.file_created_at,
        modify_date=modify_date or asset.file_modified_at,
        time_zone=_time_zone(asset, tag_offset if tag_offset is not None else date_offset, zone),
        latitude=latitude,
        longitude=longitude,
        projection_type=_projection_type(tags.get("ProjectionType")),
        live_photo_cid=as_text(tags.get(LIVE_PHOTO_CID_TAG[asset.type])),
        exposure_time=format_exposure_time(tags.get("ExposureTime")),
        f_number=as_float(tags.get("FNumber")),
        focal_length=as_float(tags.get("FocalLength")),
        iso=as_int(tags.get("ISO")),
        fps=as_float(tags.get("VideoFrameRate")),
        bits_per_sample=resolve_bits_per_sample([tags.get(key) for key in BIT_DEPTH_TAGS]),
        colorspace=as_text(tags.get("ColorSpace")),
        profile_description=as_text(tags.get("ProfileDescription")) or as_text(tags.get("ProfileName")),
    )


def resolve_bits_per_sample(candidates: Sequence[Any]) -> Optional[int]:
    """Pick the per-channel bit depth from the legacy bit-depth tags.

    Candidates are ordered by preference. A summed per-pixel depth such as
    24 (8+8+8) is collapsed to the per-channel value.
    """
    for candidate in candidates:
        parsed = parse_leading_int(candidate)
        if parsed is None:
            continue
        if parsed >= 24 and parsed % 3 == 0:
            parsed = parsed / 3
        return int(parsed)
    return None


def format_exposure_time(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value or None
    seconds = as_float(value)
    if seconds is None or seconds <= 0:
        return None
    if seconds < 1:
        fraction = Fraction(seconds).limit_denominator(100000)
        if fraction.numerator == 1:
            return f"1/{fraction.denominator}"
    return f"{seconds:g}"


def format_duration(value: Any) -> Optional[str]:
    """Format a duration in seconds as ``hh:mm:ss.SSS``."""
    seconds = as_float(value)
    if not seconds or seconds < 0:
        return None
    total_ms = round(seconds * 1000)
    hours, rest = divmod(total_ms, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    secs, millis = divmod(rest, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{millis:03d}"


def _orientation(value: Any) -> Optional[str]:
    value = validate(value)
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value) if value is not None else None


def _projection_type(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value).upper()


def _offset_from_tags(tags: Mapping[str, Any]) -> Optional[timedelta]:
    for key in OFFSET_TAGS:
        offset = parse_offset(tags.get(key))
        if offset is not None:
            return offset
    return None


@lru_cache(maxsize=1)
def _timezone_finder() -> TimezoneFinder:
    return TimezoneFinder()


def _zone_from_gps(latitude: Optional[float], longitude: Optional[float]) -> Optional[ZoneInfo]:
    """IANA zone containing the coordinates, or ``None`` when unknown."""
    if not latitude or not longitude:
        return None
    try:
        name = _timezone_finder().timezone_at(lng=longitude, lat=latitude)
        return ZoneInfo(name) if name else None
    except (ValueError, ZoneInfoNotFoundError):
        return None


def _time_zone(asset: Asset, offset: Optional[timedelta], zone: Optional[tzinfo]) -> Optional[str]:
    if offset is not None:
        return zone_name(offset)
    if isinstance(zone, ZoneInfo):
        return zone.key
    if asset.type == AssetType.video:
        # Video containers store their dates in UTC.
        return "UTC"
    return None


__all__ = ["normalize", "resolve_bits_per_sample", "format_exposure_time", "format_duration"]
