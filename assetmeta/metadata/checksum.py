from __future__ import annotations

from hashlib import sha1
from pathlib import Path

__all__ = [
    "compute_sha1_bytes",
    "compute_sha1_file",
]


def compute_sha1_bytes(payload: bytes) -> str:
    """Return the hexadecimal SHA1 digest of an in-memory buffer.

    Derived assets are deduplicated per owner on this value, so it must match
    the digest :func:`compute_sha1_file` produces for the same bytes on disk.

    Args:
        payload: The bytes to hash.

    Returns:
        The hexadecimal SHA1 digest.
    """
    return sha1(payload, usedforsecurity=False).hexdigest()


def compute_sha1_file(path: Path, *, chunk_size: int = 8 * 1024 * 1024) -> str:
    """Return the hexadecimal SHA1 digest for the file.

    Args:
        path: The path to the file.
        chunk_size: The chunk size to use when reading the file.

    Returns:
        The hexadecimal SHA1 digest.
    """
    digest = sha1(usedforsecurity=False)
    with path.open("rb") as handle:
        while chunk := handle.read(chunk_size):
            digest.update(chunk)
    return digest.hexdigest()
