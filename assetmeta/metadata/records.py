from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(slots=True)
class MetadataRecord:
    """Normalised technical metadata for one asset, persisted as its exif row."""

    asset_id: str
    make: Optional[str] = None
    model: Optional[str] = None
    lens_model: Optional[str] = None
    exif_image_width: Optional[int] = None
    exif_image_height: Optional[int] = None
    file_size_in_byte: Optional[int] = None
    orientation: Optional[str] = None
    date_time_original: Optional[datetime] = None
    modify_date: Optional[datetime] = None
    time_zone: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    projection_type: Optional[str] = None
    live_photo_cid: Optional[str] = None
    exposure_time: Optional[str] = None
    f_number: Optional[float] = None
    focal_length: Optional[float] = None
    iso: Optional[int] = None
    fps: Optional[float] = None
    bits_per_sample: Optional[int] = None
    colorspace: Optional[str] = None
    profile_description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class MotionPhotoTrailer:
    """Location of a video appended to the end of a still image."""

    length: int
    padding: int = 0

    def position(self, file_size: int) -> int:
        return file_size - self.length - self.padding


__all__ = ["MetadataRecord", "MotionPhotoTrailer"]
