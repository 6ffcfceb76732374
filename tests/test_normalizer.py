from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from assetmeta.core.storage import StorageStat
from assetmeta.db.models import Asset, AssetType
from assetmeta.domain import format_duration, normalize, resolve_bits_per_sample
from assetmeta.metadata.normalizer import format_exposure_time
from assetmeta.metadata.tags import parse_exif_datetime, zone_name

CREATED = datetime(2020, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
MODIFIED = datetime(2021, 2, 3, 4, 5, 6, tzinfo=timezone.utc)


def _asset(asset_type: AssetType = AssetType.image) -> Asset:
    return Asset(
        asset_id="asset-1",
        owner_id="owner-1",
        type=asset_type,
        original_path="/library/IMG_0001.jpg",
        original_file_name="IMG_0001.jpg",
        file_created_at=CREATED,
        file_modified_at=MODIFIED,
    )


def test_basic_fields_are_mapped():
    record = normalize(
        _asset(),
        {
            "Make": "Canon",
            "Model": "EOS R5",
            "LensModel": "RF24-70mm F2.8 L IS USM",
            "ImageWidth": 8192,
            "ImageHeight": 5464,
            "Orientation": 6,
            "FNumber": 2.8,
            "FocalLength": 50.0,
            "ISO": 200,
            "ColorSpace": "sRGB",
            "ProfileDescription": "Display P3",
        },
        StorageStat(size_bytes=1234),
    )
    assert record.asset_id == "asset-1"
    assert record.make == "Canon"
    assert record.model == "EOS R5"
    assert record.lens_model == "RF24-70mm F2.8 L IS USM"
    assert (record.exif_image_width, record.exif_image_height) == (8192, 5464)
    assert record.orientation == "6"
    assert record.f_number == 2.8
    assert record.focal_length == 50.0
    assert record.iso == 200
    assert record.file_size_in_byte == 1234
    assert record.colorspace == "sRGB"
    assert record.profile_description == "Display P3"


def test_unconvertible_numeric_tags_are_dropped():
    record = normalize(
        _asset(),
        {"ImageWidth": "abc", "ISO": "n/a", "FNumber": "f/2", "GPSLatitude": "north", "Orientation": "Rotate 90 CW"},
        StorageStat(size_bytes=1),
    )
    assert record.exif_image_width is None
    assert record.iso is None
    assert record.f_number is None
    assert record.latitude is None
    assert record.orientation is None


def test_profile_name_is_used_when_description_missing():
    record = normalize(_asset(), {"ProfileName": "sRGB IEC61966-2.1"}, StorageStat(size_bytes=1))
    assert record.profile_description == "sRGB IEC61966-2.1"


@pytest.mark.parametrize(
    "candidates, expected",
    [
        ([8, None, None, None, None], 8),
        (["8 8 8", None, None, None, None], 8),
        ([24, None, None, None, None], 8),
        ([48, None, None, None, None], 16),
        ([30, None, None, None, None], 10),
        ([12, None, None, None, None], 12),
        ([None, "10", None, None, None], 10),
        (["abc", 16, None, None, None], 16),
        ([None, None, None, None, None], None),
    ],
)
def test_resolve_bits_per_sample(candidates, expected):
    assert resolve_bits_per_sample(candidates) == expected


def test_bits_per_sample_prefers_earlier_tags():
    record = normalize(_asset(), {"ComponentBitDepth": 10, "ColorBitDepth": 24}, StorageStat(size_bytes=1))
    assert record.bits_per_sample == 10


def test_date_with_offset_sets_time_zone():
    record = normalize(_asset(), {"DateTimeOriginal": "2023:06:15 10:30:00+02:00"}, StorageStat(size_bytes=1))
    assert record.date_time_original == datetime(2023, 6, 15, 10, 30, tzinfo=timezone(timedelta(hours=2)))
    assert record.time_zone == "UTC+2"


def test_subsecond_date_is_preferred():
    record = normalize(
        _asset(),
        {"DateTimeOriginal": "2023:06:15 10:30:00", "SubSecDateTimeOriginal": "2023:06:15 10:30:00.250"},
        StorageStat(size_bytes=1),
    )
    assert record.date_time_original.microsecond == 250000


def test_offset_tag_places_zone_less_date():
    record = normalize(
        _asset(),
        {"DateTimeOriginal": "2023:06:15 10:30:00", "OffsetTimeOriginal": "-05:30"},
        StorageStat(size_bytes=1),
    )
    assert record.time_zone == "UTC-5:30"
    assert record.date_time_original.utcoffset() == -timedelta(hours=5, minutes=30)
    assert record.date_time_original.hour == 10


def test_missing_or_invalid_dates_fall_back_to_file_times():
    record = normalize(
        _asset(),
        {"DateTimeOriginal": "0000:00:00 00:00:00", "ModifyDate": "garbage"},
        StorageStat(size_bytes=1),
    )
    assert record.date_time_original == CREATED
    assert record.modify_date == MODIFIED
    assert record.time_zone is None


def test_video_time_zone_defaults_to_utc():
    record = normalize(_asset(AssetType.video), {"CreateDate": "2022:01:01 00:00:00"}, StorageStat(size_bytes=1))
    assert record.time_zone == "UTC"
    assert record.date_time_original == datetime(2022, 1, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "asset_type, expected",
    [(AssetType.image, "group-uuid"), (AssetType.video, "content-id")],
)
def test_live_photo_cid_tag_depends_on_asset_type(asset_type, expected):
    tags = {"MediaGroupUUID": "group-uuid", "ContentIdentifier": "content-id"}
    assert normalize(_asset(asset_type), tags, StorageStat(size_bytes=1)).live_photo_cid == expected


def test_projection_type_is_upper_cased():
    record = normalize(_asset(), {"ProjectionType": "equirectangular"}, StorageStat(size_bytes=1))
    assert record.projection_type == "EQUIRECTANGULAR"


def test_gps_and_frame_rate():
    record = normalize(
        _asset(AssetType.video),
        {"GPSLatitude": 48.8584, "GPSLongitude": 2.2945, "VideoFrameRate": 29.97},
        StorageStat(size_bytes=1),
    )
    assert record.latitude == pytest.approx(48.8584)
    assert record.longitude == pytest.approx(2.2945)
    assert record.fps == pytest.approx(29.97)


@pytest.mark.parametrize(
    "raw, expected",
    [
        (0.004, "1/250"),
        (0.5, "1/2"),
        (0.3, "0.3"),
        (2, "2"),
        ("1/60", "1/60"),
        (None, None),
        (0, None),
    ],
)
def test_format_exposure_time(raw, expected):
    assert format_exposure_time(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        (3723.5, "01:02:03.500"),
        (12.0, "00:00:12.000"),
        (0.125, "00:00:00.125"),
        (0, None),
        (None, None),
        ("abc", None),
    ],
)
def test_format_duration(raw, expected):
    assert format_duration(raw) == expected


@pytest.mark.parametrize(
    "offset, expected",
    [
        (timedelta(0), "UTC"),
        (timedelta(hours=2), "UTC+2"),
        (-timedelta(hours=5, minutes=30), "UTC-5:30"),
        (timedelta(hours=5, minutes=45), "UTC+5:45"),
    ],
)
def test_zone_name(offset, expected):
    assert zone_name(offset) == expected


def test_parse_exif_datetime_accepts_iso_and_zulu():
    parsed, offset = parse_exif_datetime("2023-06-15T10:30:00Z")
    assert parsed == datetime(2023, 6, 15, 10, 30, tzinfo=timezone.utc)
    assert offset == timedelta(0)
    assert parse_exif_datetime(20230615) == (None, None)


def test_gps_position_supplies_missing_time_zone():
    record = normalize(
        _asset(),
        {"DateTimeOriginal": "2023:06:15 10:30:00", "GPSLatitude": 48.8584, "GPSLongitude": 2.2945},
        StorageStat(size_bytes=1),
    )
    assert record.time_zone == "Europe/Paris"
    assert record.date_time_original.hour == 10
    assert record.date_time_original.utcoffset() == timedelta(hours=2)


def test_offset_tag_wins_over_gps_position():
    record = normalize(
        _asset(),
        {
            "DateTimeOriginal": "2023:06:15 10:30:00",
            "OffsetTimeOriginal": "+09:00",
            "GPSLatitude": 48.8584,
            "GPSLongitude": 2.2945,
        },
        StorageStat(size_bytes=1),
    )
    assert record.time_zone == "UTC+9"


def test_video_gps_zone_keeps_utc_dates():
    record = normalize(
        _asset(AssetType.video),
        {"CreateDate": "2022:07:01 12:00:00", "GPSLatitude": 35.6586, "GPSLongitude": 139.7454},
        StorageStat(size_bytes=1),
    )
    assert record.time_zone == "Asia/Tokyo"
    assert record.date_time_original == datetime(2022, 7, 1, 12, tzinfo=timezone.utc)


def test_zero_coordinates_do_not_pick_a_zone():
    record = normalize(
        _asset(),
        {"DateTimeOriginal": "2023:06:15 10:30:00", "GPSLatitude": 0, "GPSLongitude": 0},
        StorageStat(size_bytes=1),
    )
    assert record.time_zone is None
