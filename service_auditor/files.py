"""Async filesystem helpers that report failures as values."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

PathKind = Literal["file", "directory"]


@dataclass(frozen=True, slots=True)
class JsonDocument:
    """Result of reading a JSON file.

    Exactly one of ``data`` or ``error`` is meaningful. ``stage`` tells
    callers whether the failure happened while reading the file or while
    decoding it, so they can word their messages differently.
    """

    path: Path
    data: Any = None
    error: str | None = None
    stage: Literal["ok", "read", "parse"] = "ok"

    @property
    def ok(self) -> bool:
        return self.error is None


async def read_json(path: Path) -> JsonDocument:
    """Read and decode a JSON file (best effort)."""
    try:
        content = await asyncio.to_thread(path.read_text, encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        return JsonDocument(path=path, error=_describe(exc), stage="read")

    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        return JsonDocument(path=path, error=str(exc), stage="parse")
    return JsonDocument(path=path, data=data)


async def path_kind(path: Path) -> PathKind | None:
    """Return whether ``path`` is a file or directory, or None if it does not exist."""
    return await asyncio.to_thread(_stat_kind, path)


def _stat_kind(path: Path) -> PathKind | None:
    try:
        if path.is_dir():
            return "directory"
        if path.exists():
            return "file"
    except OSError:
        return None
    return None


def _describe(exc: BaseException) -> str:
    if isinstance(exc, FileNotFoundError):
        return f"No such file: {exc.filename}"
    return str(exc)
