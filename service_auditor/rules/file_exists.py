"""File and directory presence rule."""

from __future__ import annotations

import asyncio
import fnmatch
import logging
from pathlib import Path, PurePosixPath

from service_auditor.config import RuleKind, RuleSpec
from service_auditor.files import path_kind
from service_auditor.models import RuleResult, Service
from service_auditor.rules.base import BaseRule

GLOB_METACHARACTERS = ("*", "?", "[", "{")


class FileExistsRule(BaseRule):
    """Checks that a path, or at least one match of a glob pattern, exists in the service."""

    kind = RuleKind.FILE_EXISTS.value

    def __init__(self, spec: RuleSpec, *, logger: logging.Logger | None = None) -> None:
        super().__init__(spec, logger=logger)
        self.target = spec.str_param("target")

    @property
    def is_glob(self) -> bool:
        return is_glob_pattern(self.target)

    async def evaluate(self, service: Service) -> RuleResult:
        self._log.debug("Checking for %s in %s", self.target, service.name)
        if self.is_glob:
            return await self._evaluate_glob(Path(service.path))
        return await self._evaluate_literal(Path(service.path))

    async def _evaluate_literal(self, root: Path) -> RuleResult:
        target_path = root / self.target
        kind = await path_kind(target_path)
        if kind is None:
            return self._result(
                False,
                f"{self.target} not found",
                {"expected_path": str(target_path)},
            )
        return self._result(
            True,
            f"{self.target} exists ({kind})",
            {"path": str(target_path), "type": kind},
        )

    async def _evaluate_glob(self, root: Path) -> RuleResult:
        try:
            matches = await asyncio.to_thread(find_matches, root, self.target)
        except (ValueError, NotImplementedError, OSError) as exc:
            return self._result(
                False,
                f"Error evaluating pattern: {exc}",
                {"pattern": self.target, "error": str(exc)},
            )

        if not matches:
            return self._result(
                False,
                f"No files found matching pattern: {self.target}",
                {"pattern": self.target},
            )
        return self._result(
            True,
            f"Found {len(matches)} file(s) matching pattern: {self.target}",
            {"matches": matches, "count": len(matches)},
        )


def is_glob_pattern(target: str) -> bool:
    return any(char in target for char in GLOB_METACHARACTERS)


def find_matches(root: Path, pattern: str) -> list[str]:
    """Return sorted POSIX paths, relative to ``root``, matching ``pattern``.

    Dot-files and anything under a dot-directory are skipped unless the
    pattern names that dot segment explicitly (for example ``.github/*.yml``).
    """
    found: set[str] = set()
    for expanded in expand_braces(pattern):
        dot_segments = [part for part in PurePosixPath(expanded).parts if part.startswith(".")]
        for match in root.glob(expanded):
            relative = PurePosixPath(match.relative_to(root).as_posix())
            if _has_hidden_part(relative, dot_segments):
                continue
            found.add(relative.as_posix())
    return sorted(found)


def _has_hidden_part(relative: PurePosixPath, dot_segments: list[str]) -> bool:
    return any(
        part.startswith(".")
        and not any(fnmatch.fnmatchcase(part, segment) for segment in dot_segments)
        for part in relative.parts
    )



def expand_braces(pattern: str) -> list[str]:
    """Expand ``{a,b}`` alternatives, including nested groups."""
    start = pattern.find("{")
    if start == -1:
        return [pattern]

    depth = 0
    options: list[str] = []
    option_start = start + 1
    for index in range(start, len(pattern)):
        char = pattern[index]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                options.append(pattern[option_start:index])
                prefix, suffix = pattern[:start], pattern[index + 1 :]
                expanded: list[str] = []
                for option in options:
                    expanded.extend(expand_braces(f"{prefix}{option}{suffix}"))
                return expanded
        elif char == "," and depth == 1:
            options.append(pattern[option_start:index])
            option_start = index + 1

    # Unbalanced braces are matched literally.
    return [pattern]
