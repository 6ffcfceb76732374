"""Domain entities and extraction utilities reused by the job handlers and CLI."""

# Re-export the pure extraction helpers so callers need not know the module layout.
from assetmeta.metadata.checksum import compute_sha1_bytes, compute_sha1_file
from assetmeta.metadata.motion_photo import find_motion_photo_trailer
from assetmeta.metadata.normalizer import format_duration, normalize, resolve_bits_per_sample
from assetmeta.metadata.records import MetadataRecord, MotionPhotoTrailer

__all__ = [
    "MetadataRecord",
    "MotionPhotoTrailer",
    "compute_sha1_bytes",
    "compute_sha1_file",
    "find_motion_photo_trailer",
    "format_duration",
    "normalize",
    "resolve_bits_per_sample",
]
