from __future__ import annotations

import json
import shutil
import subprocess
from pathlib import Path
from typing import Any, Dict, Sequence

RawTags = Dict[str, Any]

# -struct keeps XMP containers (Directory items) as nested JSON, -n disables
# print conversion so numeric tags come back as numbers. Values exiftool cannot
# convert still come back as strings and are filtered by the normalizer.
# System:Directory is excluded so the XMP container Directory is the only one.
EXIFTOOL_ARGS: tuple[str, ...] = ("-json", "-struct", "-n", "-api", "largefilesupport=1", "--System:Directory")

# Dropped from every result: file-system bookkeeping, not embedded metadata.
EXCLUDED_TAGS = frozenset({"SourceFile", "ExifToolVersion"})


class ExiftoolNotFoundError(Exception):
    """Raised when exiftool is not installed."""


class MetadataReadError(Exception):
    """Raised when exiftool fails to read a file."""

    def __init__(self, path: str | Path, message: str):
        super().__init__(f"{path}: {message}")
        self.path = str(path)
        self.message = message


class ExiftoolReader:
    """Read embedded metadata from a single file into a flat tag mapping."""

    def __init__(self, executable: str = "exiftool", *, timeout_s: float | None = 60.0):
        self.executable = executable
        self.timeout_s = timeout_s

    def check(self) -> str:
        path = shutil.which(self.executable)
        if not path:
            raise ExiftoolNotFoundError(
                "exiftool is required but not found.\n"
                "Please install exiftool: https://exiftool.org/install.html"
            )
        result = subprocess.run(
            [path, "-ver"],
            capture_output=True,
            text=True,
            check=True,
            timeout=self.timeout_s,
        )
        return result.stdout.strip()

    def command(self, path: str | Path, extra_args: Sequence[str] = ()) -> list[str]:
        return [self.executable, *EXIFTOOL_ARGS, *extra_args, str(path)]

    def read(self, path: str | Path, extra_args: Sequence[str] = ()) -> RawTags:
        try:
            proc = subprocess.run(
                self.command(path, extra_args),
                check=False,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                timeout=self.timeout_s,
            )
        except FileNotFoundError as exc:
            raise ExiftoolNotFoundError(str(exc)) from exc
        except subprocess.TimeoutExpired as exc:
            raise MetadataReadError(path, f"exiftool timed out after {exc.timeout}s") from exc

        if not proc.stdout.strip():
            raise MetadataReadError(path, proc.stderr.strip() or f"exiftool exited with {proc.returncode}")

        try:
            payload = json.loads(proc.stdout)
        except json.JSONDecodeError as exc:
            raise MetadataReadError(path, f"invalid exiftool output: {exc}") from exc

        if not isinstance(payload, list) or not payload or not isinstance(payload[0], dict):
            raise MetadataReadError(path, "unexpected exiftool output shape")

        entry = payload[0]
        if "Error" in entry:
            raise MetadataReadError(path, str(entry["Error"]))
        return {key: value for key, value in entry.items() if key not in EXCLUDED_TAGS}


__all__ = [
    "EXIFTOOL_ARGS",
    "ExiftoolNotFoundError",
    "ExiftoolReader",
    "MetadataReadError",
    "RawTags",
]
