"""Explicit result values for calls into external collaborators.

Enrichment steps never let a collaborator error abort an extraction run. Each
call site wraps the collaborator in an :class:`Outcome` and the orchestrator
branches on :attr:`Outcome.kind` instead of relying on suppressed exceptions.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Awaitable, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, enum.Enum):
    metadata_read = "metadata_read"
    sidecar_read = "sidecar_read"
    geocoding = "geocoding"
    motion_photo_io = "motion_photo_io"
    motion_photo_store = "motion_photo_store"


@dataclass(slots=True)
class Outcome(Generic[T]):
    value: Optional[T] = None
    kind: Optional[ErrorKind] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.kind is None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, error: BaseException) -> "Outcome[T]":
        return cls(kind=kind, error=error)

    def unwrap_or(self, default: T) -> T:
        if self.ok and self.value is not None:
            return self.value
        return default


async def capture(awaitable: Awaitable[T], kind: ErrorKind) -> Outcome[T]:
    """Await a collaborator call and fold any exception into an :class:`Outcome`."""
    try:
        return Outcome.success(await awaitable)
    except Exception as exc:
        return Outcome.failure(kind, exc)


__all__ = ["ErrorKind", "Outcome", "capture"]
