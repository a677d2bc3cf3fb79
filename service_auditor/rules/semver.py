"""Semantic version format rule."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from service_auditor.config import RuleKind, RuleSpec
from service_auditor.files import read_json
from service_auditor.models import RuleResult, Service
from service_auditor.rules.base import BaseRule

DEFAULT_TARGET = "package.json"

# semver.org 2.0.0 grammar, with the optional "v"/"=" prefix npm tooling accepts.
SEMVER_PATTERN = re.compile(
    r"[v=]?"
    r"(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<prerelease>(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)"
    r"(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?"
    r"(?:\+(?P<build>[0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?"
)


class SemverRule(BaseRule):
    """Validates that a JSON file's ``version`` field is a semantic version."""

    kind = RuleKind.SEMVER.value

    def __init__(self, spec: RuleSpec, *, logger: logging.Logger | None = None) -> None:
        super().__init__(spec, logger=logger)
        self.target = spec.str_param("target", default=DEFAULT_TARGET)

    async def evaluate(self, service: Service) -> RuleResult:
        target_path = Path(service.path) / self.target
        self._log.debug("Checking semver in %s for %s", self.target, service.name)

        document = await read_json(target_path)
        if document.stage == "read":
            return self._result(
                False,
                f"{self.target} not found or unreadable: {document.error}",
                {"error": document.error, "path": str(target_path)},
            )
        if document.stage == "parse":
            return self._result(
                False,
                f"Failed to parse {self.target}: {document.error}",
                {"error": document.error, "path": str(target_path)},
            )

        version = document.data.get("version") if isinstance(document.data, dict) else None
        if not version:
            return self._result(
                False,
                f"{self.target} version field not found",
                {"path": str(target_path)},
            )

        match = SEMVER_PATTERN.fullmatch(version.strip()) if isinstance(version, str) else None
        if match is None:
            return self._result(
                False,
                f"Invalid semantic version: {version}",
                {"version": version, "path": str(target_path)},
            )

        return self._result(
            True,
            f"Valid semantic version: {version}",
            {
                "version": version,
                "major": int(match.group("major")),
                "minor": int(match.group("minor")),
                "patch": int(match.group("patch")),
                "prerelease": match.group("prerelease"),
                "build": match.group("build"),
            },
        )

