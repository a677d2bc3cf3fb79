"""Audit orchestration: discovery, rule instantiation, evaluation, aggregation."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path

from service_auditor.concurrency import map_with_concurrency
from service_auditor.config import AuditorConfig
from service_auditor.engine import RuleEngine
from service_auditor.models import (
    AuditReport,
    AuditSummary,
    RuleResult,
    Service,
    ServiceAuditResult,
)
from service_auditor.rules import build_rules
from service_auditor.rules.base import Rule
from service_auditor.scanner import ServiceScanner

ProgressCallback = Callable[[int, int, str], None]


class Auditor:
    """Audits every service under a root path against the configured rules.

    One invocation runs Discover, Instantiate Rules, Evaluate Services and
    Aggregate in that order. Scan and configuration errors abort the run;
    rule failures and crashes end up inside the report.
    """

    def __init__(
        self,
        config: AuditorConfig,
        *,
        scanner: ServiceScanner | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.config = config
        self._log = logger or logging.getLogger("service_auditor")
        self.scanner = scanner or ServiceScanner(
            max_depth=config.scan.max_depth,
            exclude=config.scan.exclude,
            logger=self._log.getChild("scanner"),
        )
        self._log.debug(
            "Auditor initialized with %d rule(s), parallel=%s",
            len(config.rules),
            config.parallel,
        )

    async def audit(
        self,
        target_path: str | Path,
        *,
        progress: ProgressCallback | None = None,
    ) -> AuditReport:
        """Run a full audit of ``target_path`` and return the report."""
        self._log.info("Starting audit of %s", target_path)
        services = await self.scanner.scan(target_path)
        rules = build_rules(self.config.rules, logger=self._log)

        if not services:
            self._log.info("No services found, returning empty report")
            return build_report([])

        engine = RuleEngine(rules, logger=self._log.getChild("engine"))
        tracker = _ProgressTracker(len(services), progress, self._log)

        async def audit_one(service: Service) -> ServiceAuditResult:
            result = await self.audit_service(service, engine)
            tracker.advance(service.name)
            return result

        if self.config.parallel:
            self._log.info(
                "Auditing %d service(s) with concurrency %d",
                len(services),
                self.config.concurrency,
            )
            results = await map_with_concurrency(services, audit_one, self.config.concurrency)
        else:
            results = [await audit_one(service) for service in services]

        report = build_report(results)
        self._log.info(
            "Audit complete: %d/%d service(s) passed (%.2f%%)",
            report.summary.passed_services,
            report.summary.total_services,
            report.summary.pass_rate,
        )
        return report

    async def audit_service(self, service: Service, engine: RuleEngine) -> ServiceAuditResult:
        """Evaluate the engine's rules against one service and score the outcome."""
        self._log.debug("Auditing service %s", service.name)
        results = await engine.execute(service, parallel=self.config.parallel)
        return build_service_result(service, engine.rules, results)


def build_service_result(
    service: Service,
    rules: Sequence[Rule],
    results: Sequence[RuleResult],
) -> ServiceAuditResult:
    return ServiceAuditResult(
        service_name=service.name,
        service_path=service.path,
        results=tuple(results),
        passed=required_rules_passed(rules, results),
        score=compute_score(results),
    )


def compute_score(results: Sequence[RuleResult]) -> float:
    """Percentage of passed results, one decimal place; 0 when nothing ran."""
    if not results:
        return 0.0
    passed = sum(1 for result in results if result.passed)
    return _round_half_up(100 * passed / len(results), places=1)


def required_rules_passed(rules: Sequence[Rule], results: Sequence[RuleResult]) -> bool:
    """True unless a required rule's result failed.

    Rules and results are paired by position, so duplicate rule names do not
    leak a required flag onto an optional rule. A service with no rules passes.
    """
    if len(rules) != len(results):
        raise ValueError(f"Expected {len(rules)} results, got {len(results)}")
    return all(result.passed for rule, result in zip(rules, results) if rule.required)


def build_summary(results: Sequence[ServiceAuditResult]) -> AuditSummary:
    total = len(results)
    passed = sum(1 for result in results if result.passed)
    pass_rate = _round_half_up(100 * passed / total, places=2) if total else 0.0
    return AuditSummary(
        total_services=total,
        passed_services=passed,
        failed_services=total - passed,
        pass_rate=pass_rate,
    )


def build_report(
    results: Sequence[ServiceAuditResult],
    *,
    timestamp: str | None = None,
) -> AuditReport:
    return AuditReport(
        timestamp=timestamp or _utc_timestamp(),
        services=tuple(results),
        summary=build_summary(results),
    )


class _ProgressTracker:
    """Counts completed services and forwards them to an optional callback."""

    def __init__(
        self,
        total: int,
        callback: ProgressCallback | None,
        logger: logging.Logger,
    ) -> None:
        self.total = total
        self.completed = 0
        self._callback = callback
        self._log = logger

    def advance(self, service_name: str) -> None:
        self.completed += 1
        if self._callback is None:
            return
        try:
            self._callback(self.completed, self.total, service_name)
        except Exception as exc:
            self._log.warning("Progress callback failed for %s: %s", service_name, exc)


def _round_half_up(value: float, *, places: int) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _utc_timestamp() -> str:
    return datetime.now(tz=UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z")
