"""Value types shared by discovery, rule evaluation, and reporting."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class Service:
    """A discovered unit under audit, identified by its root directory."""

    name: str
    path: str
    type: str
    version: str | None = None
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "type": self.type,
            "version": self.version,
            "description": self.description,
        }


@dataclass(frozen=True, slots=True)
class RuleResult:
    """Outcome of evaluating one rule against one service."""

    rule_name: str
    passed: bool
    message: str
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "rule_name": self.rule_name,
            "passed": self.passed,
            "message": self.message,
        }
        if self.details is not None:
            payload["details"] = self.details
        return payload


@dataclass(frozen=True, slots=True)
class ServiceAuditResult:
    """All rule results for a single service plus its verdict and score."""

    service_name: str
    service_path: str
    results: tuple[RuleResult, ...]
    passed: bool
    score: float

    @property
    def passed_count(self) -> int:
        return sum(1 for result in self.results if result.passed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "service_name": self.service_name,
            "service_path": self.service_path,
            "results": [result.to_dict() for result in self.results],
            "passed": self.passed,
            "score": self.score,
        }


@dataclass(frozen=True, slots=True)
class AuditSummary:
    """Aggregate counts across every audited service."""

    total_services: int = 0
    passed_services: int = 0
    failed_services: int = 0
    pass_rate: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_services": self.total_services,
            "passed_services": self.passed_services,
            "failed_services": self.failed_services,
            "pass_rate": self.pass_rate,
        }


@dataclass(frozen=True, slots=True)
class AuditReport:
    """Complete result of one audit invocation."""

    timestamp: str
    services: tuple[ServiceAuditResult, ...] = ()
    summary: AuditSummary = field(default_factory=AuditSummary)

    @property
    def all_passed(self) -> bool:
        return self.summary.passed_services == self.summary.total_services

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "services": [service.to_dict() for service in self.services],
            "summary": self.summary.to_dict(),
        }
