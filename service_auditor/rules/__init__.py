"""Rules package."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from service_auditor.config import RuleKind, RuleSpec
from service_auditor.errors import ConfigurationError
from service_auditor.rules.base import BaseRule, Rule
from service_auditor.rules.coverage import CoverageRule
from service_auditor.rules.file_exists import FileExistsRule
from service_auditor.rules.semver import SemverRule

RuleFactory = Callable[..., BaseRule]

# Script-backed rules from older configs; loading arbitrary code is not supported.
UNSUPPORTED_KINDS = {"custom"}


@dataclass(frozen=True, slots=True)
class RuleInfo:
    """Rule kind metadata for listing."""

    kind: str
    name: str
    description: str
    parameters: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class _KindEntry:
    factory: RuleFactory
    parameters: tuple[str, ...]


_REGISTRY: dict[RuleKind, _KindEntry] = {
    RuleKind.FILE_EXISTS: _KindEntry(FileExistsRule, parameters=("target",)),
    RuleKind.COVERAGE: _KindEntry(CoverageRule, parameters=("threshold",)),
    RuleKind.SEMVER: _KindEntry(SemverRule, parameters=("target?",)),
}


def build_rule(spec: RuleSpec, *, logger: logging.Logger | None = None) -> Rule:
    """Instantiate the rule for ``spec`` or raise :class:`ConfigurationError`."""
    kind = resolve_kind(spec)
    entry = _REGISTRY[kind]
    rule_logger = logger.getChild(f"rules.{kind.value}") if logger is not None else None
    return entry.factory(spec, logger=rule_logger)


def build_rules(specs: list[RuleSpec], *, logger: logging.Logger | None = None) -> list[Rule]:
    """Instantiate every rule in declaration order, failing on the first bad spec."""
    if logger is not None:
        logger.debug("Creating %d rule(s)", len(specs))
    return [build_rule(spec, logger=logger) for spec in specs]


def resolve_kind(spec: RuleSpec) -> RuleKind:
    if spec.kind in UNSUPPORTED_KINDS:
        raise ConfigurationError(
            f"Rule type '{spec.kind}' is not supported. Rule: {spec.name}"
        )
    try:
        kind = RuleKind(spec.kind)
    except ValueError:
        choices = ", ".join(item.value for item in RuleKind)
        raise ConfigurationError(
            f"Unsupported rule type: {spec.kind}. Rule: {spec.name}. Expected one of: {choices}"
        ) from None
    if kind not in _REGISTRY:
        raise ConfigurationError(f"No implementation registered for rule type: {kind.value}")
    return kind


def list_rule_info() -> list[RuleInfo]:
    """Return metadata for every registered rule kind."""
    info: list[RuleInfo] = []
    for kind, entry in _REGISTRY.items():
        factory_cls = entry.factory
        info.append(
            RuleInfo(
                kind=kind.value,
                name=getattr(factory_cls, "__name__", kind.value),
                description=(factory_cls.__doc__ or "").strip(),
                parameters=entry.parameters,
            )
        )
    return info


__all__ = [
    "BaseRule",
    "CoverageRule",
    "FileExistsRule",
    "Rule",
    "RuleInfo",
    "SemverRule",
    "build_rule",
    "build_rules",
    "list_rule_info",
    "resolve_kind",
]
