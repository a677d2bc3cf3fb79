"""Configuration loading for service-auditor."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from service_auditor.concurrency import DEFAULT_CONCURRENCY
from service_auditor.errors import ConfigurationError

CONFIG_FILENAMES = (
    ".service-auditor.toml",
    "service-auditor.toml",
    "rules.yml",
    "rules.yaml",
)
PYPROJECT_FILENAME = "pyproject.toml"
PYPROJECT_TOOL_KEYS = ("service_auditor", "service-auditor")
YAML_SUFFIXES = {".yml", ".yaml"}

OUTPUT_FORMATS = ("human", "json", "md", "html", "both")


class RuleKind(str, Enum):
    """Closed set of rule kinds the engine knows how to build."""

    FILE_EXISTS = "file-exists"
    COVERAGE = "coverage"
    SEMVER = "semver"


@dataclass(frozen=True, slots=True)
class RuleSpec:
    """Declarative rule definition.

    ``kind`` stays a plain string so that unknown kinds survive loading and
    are rejected when rules are instantiated.
    """

    name: str
    kind: str
    required: bool = True
    description: str | None = None
    params: dict[str, Any] = field(default_factory=dict)

    def str_param(self, key: str, *, default: str | None = None) -> str:
        value = self.params.get(key, default)
        if not isinstance(value, str) or not value:
            raise ConfigurationError(
                f"Rule '{self.name}' ({self.kind}) requires a non-empty string '{key}'"
            )
        return value

    def number_param(self, key: str, *, lower: float, upper: float) -> float:
        value = self.params.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ConfigurationError(f"Rule '{self.name}' ({self.kind}) requires a numeric '{key}'")
        if not lower <= value <= upper:
            raise ConfigurationError(
                f"Rule '{self.name}' ({self.kind}) '{key}' must be between {lower:g} and {upper:g}"
            )
        return value

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": self.name,
            "type": self.kind,
            "required": self.required,
        }
        if self.description is not None:
            payload["description"] = self.description
        payload.update(self.params)
        return payload


@dataclass(slots=True)
class ScanConfig:
    """Service discovery options."""

    max_depth: int | None = None
    exclude: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"max_depth": self.max_depth, "exclude": list(self.exclude)}


@dataclass(slots=True)
class OutputConfig:
    """Report output defaults."""

    format: str = "human"
    outdir: str = "reports"

    def to_dict(self) -> dict[str, Any]:
        return {"format": self.format, "outdir": self.outdir}


@dataclass(slots=True)
class AuditorConfig:
    """Runtime configuration resolved from a project file."""

    rules: list[RuleSpec] = field(default_factory=list)
    parallel: bool = False
    # Reserved: accepted and reported, not acted on by the auditor.
    fail_fast: bool = False
    concurrency: int = DEFAULT_CONCURRENCY
    scan: ScanConfig = field(default_factory=ScanConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    source: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "rules": [rule.to_dict() for rule in self.rules],
            "parallel": self.parallel,
            "fail_fast": self.fail_fast,
            "concurrency": self.concurrency,
            "scan": self.scan.to_dict(),
            "output": self.output.to_dict(),
            "source": self.source,
        }


def load_auditor_config(root: Path, config_path: Path | None = None) -> AuditorConfig:
    """Load config from an explicit path or from files in ``root`` with precedence."""
    root = root.resolve()
    if config_path is not None:
        resolved = config_path if config_path.is_absolute() else (root / config_path)
        if not resolved.exists():
            raise ConfigurationError(f"Config file does not exist: {resolved}", str(resolved))
        mapping = _extract_config_mapping(_load_file(resolved), source_path=resolved)
        return parse_config_mapping(mapping, source=str(resolved))

    for filename in CONFIG_FILENAMES:
        resolved = root / filename
        if resolved.exists():
            mapping = _extract_config_mapping(_load_file(resolved), source_path=resolved)
            return parse_config_mapping(mapping, source=str(resolved))

    pyproject_path = root / PYPROJECT_FILENAME
    if pyproject_path.exists():
        mapping = _extract_config_mapping(_load_file(pyproject_path), source_path=pyproject_path)
        if mapping:
            return parse_config_mapping(mapping, source=str(pyproject_path))

    searched = ", ".join((*CONFIG_FILENAMES, PYPROJECT_FILENAME))
    raise ConfigurationError(f"No configuration found in {root} (looked for {searched})")


def parse_config_mapping(mapping: dict[str, Any], *, source: str | None = None) -> AuditorConfig:
    """Validate a raw mapping and build an :class:`AuditorConfig`."""
    try:
        return _from_mapping(mapping, source=source)
    except ConfigurationError as exc:
        if exc.config_path is None and source is not None:
            raise ConfigurationError(exc.message, source) from exc
        raise


def default_config_template() -> str:
    """Return a starter config template."""
    return "\n".join(
        [
            "parallel = true",
            "concurrency = 5",
            "",
            "[scan]",
            "# max_depth = 3",
            'exclude = ["**/examples/**"]',
            "",
            "[output]",
            'format = "both"',
            'outdir = "reports"',
            "",
            "[[rules]]",
            'name = "README present"',
            'type = "file-exists"',
            'target = "README.md"',
            "required = true",
            "",
            "[[rules]]",
            'name = "Has tests"',
            'type = "file-exists"',
            'target = "tests/**/*.test.{js,ts}"',
            "required = false",
            "",
            "[[rules]]",
            'name = "Semantic version"',
            'type = "semver"',
            "required = true",
            "",
            "[[rules]]",
            'name = "Coverage"',
            'type = "coverage"',
            "threshold = 80",
            "required = false",
            "",
        ]
    )


def _load_file(path: Path) -> dict[str, Any]:
    if path.suffix.lower() in YAML_SUFFIXES:
        return _load_yaml(path)
    return _load_toml(path)


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as file_obj:
            loaded = tomllib.load(file_obj)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigurationError(f"Invalid TOML in {path}: {exc}", str(path)) from exc
    except OSError as exc:
        raise ConfigurationError(f"Failed to read configuration file: {exc}", str(path)) from exc
    if not isinstance(loaded, dict):
        return {}
    return loaded


def _load_yaml(path: Path) -> dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as file_obj:
            loaded = yaml.safe_load(file_obj)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML syntax in {path}: {exc}", str(path)) from exc
    except OSError as exc:
        raise ConfigurationError(f"Failed to read configuration file: {exc}", str(path)) from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigurationError(f"{path} must contain a mapping at the top level", str(path))
    return loaded


def _extract_config_mapping(loaded: dict[str, Any], *, source_path: Path) -> dict[str, Any]:
    if source_path.name == PYPROJECT_FILENAME:
        section = _find_pyproject_tool_section(loaded)
        return section if section is not None else {}

    tool_section = _find_pyproject_tool_section(loaded)
    if tool_section is not None:
        return tool_section
    return loaded


def _find_pyproject_tool_section(loaded: dict[str, Any]) -> dict[str, Any] | None:
    tool = loaded.get("tool")
    if not isinstance(tool, dict):
        return None
    for key in PYPROJECT_TOOL_KEYS:
        section = tool.get(key)
        if isinstance(section, dict):
            return section
    return None


def _from_mapping(mapping: dict[str, Any], *, source: str | None) -> AuditorConfig:
    scan_mapping = _as_table(mapping.get("scan"), "scan")
    output_mapping = _as_table(mapping.get("output"), "output")

    rule_tables = _as_table_list(mapping.get("rules"), "rules")
    if not rule_tables:
        raise ConfigurationError("rules must contain at least one rule")
    rules = [_parse_rule_spec(item, index) for index, item in enumerate(rule_tables)]

    concurrency = _as_int(mapping.get("concurrency", DEFAULT_CONCURRENCY), "concurrency")
    if concurrency < 1:
        raise ConfigurationError("concurrency must be >= 1")

    fail_fast_raw = mapping.get("fail_fast", mapping.get("failFast", False))
    return AuditorConfig(
        rules=rules,
        parallel=_as_bool(mapping.get("parallel", False), "parallel"),
        fail_fast=_as_bool(fail_fast_raw, "fail_fast"),
        concurrency=concurrency,
        scan=_parse_scan_config(scan_mapping),
        output=_parse_output_config(output_mapping),
        source=source,
    )


def _parse_rule_spec(value: dict[str, Any], index: int) -> RuleSpec:
    field_name = f"rules[{index}]"
    name = _as_str(value.get("name"), f"{field_name}.name")
    if not name.strip():
        raise ConfigurationError(f"{field_name}.name must not be empty")

    raw_kind = value.get("type", value.get("kind"))
    kind = _as_str(raw_kind, f"{field_name}.type")
    description = value.get("description")
    if description is not None:
        description = _as_str(description, f"{field_name}.description")

    params = {
        key: item
        for key, item in value.items()
        if key not in {"name", "type", "kind", "required", "description"}
    }
    spec = RuleSpec(
        name=name,
        kind=kind,
        required=_as_bool(value.get("required", True), f"{field_name}.required"),
        description=description,
        params=params,
    )
    _validate_kind_params(spec)
    return spec


def _validate_kind_params(spec: RuleSpec) -> None:
    if spec.kind == RuleKind.FILE_EXISTS.value:
        spec.str_param("target")
    elif spec.kind == RuleKind.COVERAGE.value:
        spec.number_param("threshold", lower=0, upper=100)
    elif spec.kind == RuleKind.SEMVER.value and "target" in spec.params:
        spec.str_param("target")


def _parse_scan_config(value: dict[str, Any]) -> ScanConfig:
    raw_depth = value.get("max_depth")
    max_depth = None if raw_depth is None else _as_int(raw_depth, "scan.max_depth")
    if max_depth is not None and max_depth < 1:
        raise ConfigurationError("scan.max_depth must be >= 1")
    return ScanConfig(
        max_depth=max_depth,
        exclude=_as_str_list(value.get("exclude"), "scan.exclude"),
    )


def _parse_output_config(value: dict[str, Any]) -> OutputConfig:
    return OutputConfig(
        format=_as_choice(value.get("format", "human"), set(OUTPUT_FORMATS), "output.format"),
        outdir=_as_str(value.get("outdir", "reports"), "output.outdir"),
    )


def _as_table(value: Any, field_name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"{field_name} must be a table/object")
    return value


def _as_table_list(value: Any, field_name: str) -> list[dict[str, Any]]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigurationError(f"{field_name} must be a list of tables")
    output: list[dict[str, Any]] = []
    for item in value:
        if not isinstance(item, dict):
            raise ConfigurationError(f"{field_name} must be a list of tables")
        output.append(item)
    return output


def _as_str_list(value: Any, field_name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigurationError(f"{field_name} must be a list of strings")
    items: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ConfigurationError(f"{field_name} must be a list of strings")
        items.append(item)
    return items


def _as_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise ConfigurationError(f"{field_name} must be a string")
    return value


def _as_choice(raw: Any, allowed: set[str], field_name: str) -> str:
    value = str(raw).lower()
    if value not in allowed:
        choices = ", ".join(sorted(allowed))
        raise ConfigurationError(f"{field_name} must be one of: {choices}")
    return value


def _as_int(raw: Any, field_name: str) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ConfigurationError(f"{field_name} must be an integer")
    return raw


def _as_bool(raw: Any, field_name: str) -> bool:
    if not isinstance(raw, bool):
        raise ConfigurationError(f"{field_name} must be a boolean")
    return raw
