"""Tag names and narrow value parsers for exiftool output."""

from __future__ import annotations

import math
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

from assetmeta.db.models import AssetType

# Checked in order; the first one that parses wins.
DATE_TAGS: tuple[str, ...] = (
    "SubSecDateTimeOriginal",
    "DateTimeOriginal",
    "SubSecCreateDate",
    "CreateDate",
    "SubSecMediaCreateDate",
    "MediaCreateDate",
    "DateTimeCreated",
)

BIT_DEPTH_TAGS: tuple[str, ...] = (
    "BitsPerSample",
    "ComponentBitDepth",
    "ImagePixelDepth",
    "BitDepth",
    "ColorBitDepth",
)

OFFSET_TAGS: tuple[str, ...] = ("OffsetTimeOriginal", "OffsetTimeDigitized", "OffsetTime")

# The still and the video of a live photo carry their shared id under different names.
LIVE_PHOTO_CID_TAG: dict[AssetType, str] = {
    AssetType.video: "ContentIdentifier",
    AssetType.image: "MediaGroupUUID",
}

_EXIF_DATE = re.compile(
    r"^(?P<year>\d{4})[:\-](?P<month>\d{2})[:\-](?P<day>\d{2})"
    r"(?:[ T](?P<hour>\d{2}):(?P<minute>\d{2})(?::(?P<second>\d{2})(?:\.(?P<fraction>\d+))?)?)?"
    r"\s*(?P<zone>Z|[+-]\d{2}:?\d{2})?$"
)
_OFFSET = re.compile(r"^(?P<sign>[+-])(?P<hours>\d{2}):?(?P<minutes>\d{2})$")
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def validate(value: Any) -> Any:
    """Return ``value`` unless it is text where a number or structure was expected.

    exiftool falls back to the raw string when it cannot convert a value, so a
    string in a numeric tag means the value is unusable.
    """
    if value is None or isinstance(value, (str, bool)):
        return None
    return value


def as_text(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def as_int(value: Any) -> Optional[int]:
    value = validate(value)
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return None
    return int(value)


def as_float(value: Any) -> Optional[float]:
    value = validate(value)
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return None
    return float(value)


def parse_leading_int(value: Any) -> Optional[float]:
    """Parse a bit-depth style value: numbers as-is, strings by their leading integer."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        return int(match.group(1)) if match else None
    return None


def parse_offset(raw: Any) -> Optional[timedelta]:
    if not isinstance(raw, str):
        return None
    raw = raw.strip()
    if raw == "Z":
        return timedelta(0)
    match = _OFFSET.match(raw)
    if not match:
        return None
    delta = timedelta(hours=int(match.group("hours")), minutes=int(match.group("minutes")))
    return -delta if match.group("sign") == "-" else delta


def parse_exif_datetime(raw: Any) -> tuple[Optional[datetime], Optional[timedelta]]:
    """Parse an exiftool date value into ``(aware datetime, explicit offset)``.

    Values without a zone are read as UTC and reported with no offset.
    """
    if not isinstance(raw, str):
        return None, None
    match = _EXIF_DATE.match(raw.strip())
    if not match:
        return None, None

    parts = match.groupdict()
    fraction = (parts["fraction"] or "0")[:6].ljust(6, "0")
    offset = parse_offset(parts["zone"]) if parts["zone"] else None
    try:
        parsed = datetime(
            int(parts["year"]),
            int(parts["month"]),
            int(parts["day"]),
            int(parts["hour"] or 0),
            int(parts["minute"] or 0),
            int(parts["second"] or 0),
            int(fraction),
            tzinfo=timezone(offset) if offset is not None else timezone.utc,
        )
    except ValueError:
        # 0000:00:00 and friends
        return None, None
    return parsed, offset


def first_datetime(tags: Mapping[str, Any]) -> tuple[Optional[datetime], Optional[timedelta]]:
    for key in DATE_TAGS:
        parsed, offset = parse_exif_datetime(tags.get(key))
        if parsed is not None:
            return parsed, offset
    return None, None


def zone_name(offset: timedelta) -> str:
    """Render an offset the way exiftool-aware clients do: ``UTC``, ``UTC+2``, ``UTC-5:30``."""
    total_minutes = int(offset.total_seconds() // 60)
    if total_minutes == 0:
        return "UTC"
    sign = "+" if total_minutes > 0 else "-"
    hours, minutes = divmod(abs(total_minutes), 60)
    if minutes:
        return f"UTC{sign}{hours}:{minutes:02d}"
    return f"UTC{sign}{hours}"


__all__ = [
    "BIT_DEPTH_TAGS",
    "DATE_TAGS",
    "LIVE_PHOTO_CID_TAG",
    "OFFSET_TAGS",
    "as_float",
    "as_int",
    "as_text",
    "first_datetime",
    "parse_exif_datetime",
    "parse_leading_int",
    "parse_offset",
    "validate",
    "zone_name",
]
