"""Per-service rule execution."""

from __future__ import annotations

import asyncio
import logging

from service_auditor.errors import RuleEvaluationError, format_error_message
from service_auditor.models import RuleResult, Service
from service_auditor.rules.base import Rule


class RuleEngine:
    """Runs registered rules against a service and isolates rule crashes.

    A rule that raises is recorded as a failing result attributed to that
    rule; its siblings still run. Result order always matches registration
    order, in both sequential and concurrent modes.
    """

    def __init__(
        self,
        rules: list[Rule] | None = None,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._rules: list[Rule] = list(rules or [])
        self._log = logger or logging.getLogger("service_auditor.engine")

    @property
    def rules(self) -> list[Rule]:
        return list(self._rules)

    def register_rule(self, rule: Rule) -> None:
        self._rules.append(rule)
        self._log.debug("Registered rule: %s", rule.name)

    def clear_rules(self) -> None:
        self._rules = []

    async def execute(self, service: Service, *, parallel: bool = False) -> list[RuleResult]:
        if parallel:
            return await self.execute_rules_parallel(service)
        return await self.execute_rules(service)

    async def execute_rules(self, service: Service) -> list[RuleResult]:
        """Evaluate rules one at a time in registration order."""
        self._log.debug("Executing %d rule(s) for %s", len(self._rules), service.name)
        results = [await self._run_rule(rule, service) for rule in self._rules]
        self._log_summary(service, results)
        return results

    async def execute_rules_parallel(self, service: Service) -> list[RuleResult]:
        """Evaluate all rules concurrently; results keep registration order."""
        self._log.debug(
            "Executing %d rule(s) concurrently for %s", len(self._rules), service.name
        )
        results = list(
            await asyncio.gather(*(self._run_rule(rule, service) for rule in self._rules))
        )
        self._log_summary(service, results)
        return results

    async def _run_rule(self, rule: Rule, service: Service) -> RuleResult:
        try:
            result = await rule.evaluate(service)
        except Exception as exc:
            cause = str(exc) or exc.__class__.__name__
            error = RuleEvaluationError(
                f"Rule execution failed: {cause}", rule.name, service.name, exc
            )
            self._log.error("%s", format_error_message(error))
            return RuleResult(rule_name=rule.name, passed=False, message=error.message)

        if not result.passed:
            self._log.debug("Rule failed: %s - %s", rule.name, result.message)
        return result

    def _log_summary(self, service: Service, results: list[RuleResult]) -> None:
        passed = sum(1 for result in results if result.passed)
        self._log.info("%s: %d/%d rule(s) passed", service.name, passed, len(results))
