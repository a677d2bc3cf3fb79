"""Service discovery: find manifest files beneath a root and describe each service."""

from __future__ import annotations

import asyncio
import fnmatch
import logging
import os
from pathlib import Path, PurePosixPath
from typing import Any

from service_auditor.errors import ScanError
from service_auditor.files import read_json
from service_auditor.models import Service

MANIFEST_FILENAME = "package.json"

DEFAULT_EXCLUDES = (
    "**/node_modules/**",
    "**/dist/**",
    "**/build/**",
    "**/.git/**",
    "**/coverage/**",
)

WEB_FRAMEWORK_MARKERS = ("express", "koa", "fastify", "hapi")
FRONTEND_FRAMEWORK_MARKERS = ("react", "vue", "@angular/core")

UNKNOWN = "unknown"


class ServiceScanner:
    """Discovers services by locating ``package.json`` manifests.

    ``exclude`` patterns are layered on top of :data:`DEFAULT_EXCLUDES`; the
    defaults always apply. ``max_depth`` counts path segments of the manifest
    relative to the root: 1 finds only the root manifest, 2 adds direct
    children, and so on.
    """

    def __init__(
        self,
        *,
        max_depth: int | None = None,
        exclude: list[str] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        if max_depth is not None and max_depth < 1:
            raise ValueError(f"max_depth must be >= 1, got {max_depth}")
        self.max_depth = max_depth
        self.exclude = _dedupe([*DEFAULT_EXCLUDES, *(exclude or [])])
        self._log = logger or logging.getLogger("service_auditor.scanner")

    async def scan(self, root_path: str | Path) -> list[Service]:
        """Return services found under ``root_path``, ordered by path."""
        root = self._resolve_root(Path(root_path))
        self._log.info("Scanning for services in %s", root)

        manifests = await asyncio.to_thread(self._find_manifests, root)
        self._log.debug("Found %d manifest file(s)", len(manifests))

        services = await asyncio.gather(*(self._parse_service(path, root) for path in manifests))
        self._log.info("Service scan complete: %d service(s)", len(services))
        return list(services)

    def _resolve_root(self, root: Path) -> Path:
        try:
            resolved = root.resolve(strict=True)
        except FileNotFoundError as exc:
            raise ScanError(f"Path does not exist: {root}", str(root), exc) from exc
        except OSError as exc:
            raise ScanError(f"Failed to access path: {exc}", str(root), exc) from exc
        if not resolved.is_dir():
            raise ScanError(f"Path is not a directory: {root}", str(root))
        return resolved

    def _find_manifests(self, root: Path) -> list[Path]:
        found: list[Path] = []
        for dirpath, dirnames, filenames in os.walk(root, onerror=_raise_walk_error):
            current = Path(dirpath)
            rel_dir = current.relative_to(root).as_posix()
            depth = 0 if rel_dir == "." else len(PurePosixPath(rel_dir).parts)

            if self.max_depth is not None and depth + 1 >= self.max_depth:
                dirnames[:] = []
            else:
                dirnames[:] = sorted(
                    name
                    for name in dirnames
                    if not self._is_excluded_dir(_join_rel(rel_dir, name))
                )

            if MANIFEST_FILENAME in filenames:
                rel_manifest = _join_rel(rel_dir, MANIFEST_FILENAME)
                if not _matches_any(rel_manifest, self.exclude):
                    found.append(current / MANIFEST_FILENAME)
        return sorted(found, key=lambda path: str(path.parent))

    def _is_excluded_dir(self, rel_dir: str) -> bool:
        return _matches_any(rel_dir, self.exclude) or _matches_any(f"{rel_dir}/", self.exclude)

    async def _parse_service(self, manifest: Path, root: Path) -> Service:
        service_dir = manifest.parent
        document = await read_json(manifest)
        if not document.ok or not isinstance(document.data, dict):
            reason = document.error or "manifest is not a JSON object"
            self._log.warning(
                "Failed to parse %s: %s",
                manifest.relative_to(root).as_posix(),
                reason,
            )
            return Service(name=UNKNOWN, path=str(service_dir), type=UNKNOWN)

        manifest_data: dict[str, Any] = document.data
        service = Service(
            name=_str_or(manifest_data.get("name"), None) or UNKNOWN,
            path=str(service_dir),
            type=detect_service_type(manifest_data),
            version=_str_or(manifest_data.get("version"), None),
            description=_str_or(manifest_data.get("description"), None),
        )
        self._log.debug("Parsed service %s at %s", service.name, service.path)
        return service


def detect_service_type(manifest: dict[str, Any]) -> str:
    """Classify a service from the dependency names in its manifest."""
    dependencies: set[str] = set()
    for key in ("dependencies", "devDependencies"):
        section = manifest.get(key)
        if isinstance(section, dict):
            dependencies.update(str(name) for name in section)

    if dependencies.intersection(WEB_FRAMEWORK_MARKERS):
        return "node"
    if dependencies.intersection(FRONTEND_FRAMEWORK_MARKERS):
        return "frontend"
    return "node"


def _join_rel(rel_dir: str, name: str) -> str:
    return name if rel_dir == "." else f"{rel_dir}/{name}"


def _matches_any(rel_path: str, patterns: list[str]) -> bool:
    # A leading slash lets "**/x/**" match directories directly under the root.
    candidates = (rel_path, f"/{rel_path}")
    return any(
        fnmatch.fnmatchcase(candidate, pattern)
        for pattern in patterns
        for candidate in candidates
    )


def _raise_walk_error(exc: OSError) -> None:
    path = exc.filename or ""
    raise ScanError(f"Failed to read directory: {exc.strerror or exc}", str(path), exc) from exc


def _str_or(value: Any, default: str | None) -> str | None:
    if isinstance(value, str) and value:
        return value
    return default


def _dedupe(items: list[str]) -> list[str]:
    seen: set[str] = set()
    output: list[str] = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        output.append(item)
    return output
