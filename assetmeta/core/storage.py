from __future__ import annotations

import enum
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from .config import Settings


class StorageFolder(str, enum.Enum):
    encoded_video = "encoded-video"


@dataclass(slots=True)
class StorageStat:
    size_bytes: int
    modified_time: float | None = None


class Storage(ABC):
    @abstractmethod
    def get_folder_location(self, folder: StorageFolder, owner_id: str) -> Path: ...

    @abstractmethod
    def mkdir(self, path: Path) -> None: ...

    @abstractmethod
    def stat(self, path: str | Path) -> StorageStat: ...

    @abstractmethod
    def exists(self, path: str | Path) -> bool: ...

    @abstractmethod
    def write_bytes(self, path: str | Path, payload: bytes) -> Path: ...


class LocalStorage(Storage):
    """Filesystem-backed storage rooted at the configured media root."""

    def __init__(self, base_path: Path):
        self.base_path = base_path
        self.base_path.mkdir(parents=True, exist_ok=True)

    def get_folder_location(self, folder: StorageFolder, owner_id: str) -> Path:
        if not owner_id or os.sep in owner_id or owner_id in {".", ".."}:
            raise ValueError(f"Invalid owner id for storage layout: {owner_id!r}")
        return (self.base_path / folder.value / owner_id).resolve()

    def mkdir(self, path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)

    def stat(self, path: str | Path) -> StorageStat:
        result = Path(path).stat()
        return StorageStat(size_bytes=result.st_size, modified_time=result.st_mtime)

    def exists(self, path: str | Path) -> bool:
        return Path(path).is_file()

    def write_bytes(self, path: str | Path, payload: bytes) -> Path:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(payload)
        return target


def get_storage(settings: Settings) -> Storage:
    if settings.storage_backend == "local":
        return LocalStorage(base_path=Path(settings.media_root))
    raise ValueError(f"Unsupported storage backend: {settings.storage_backend}")


__all__ = [
    "Storage",
    "LocalStorage",
    "StorageFolder",
    "StorageStat",
    "get_storage",
]
