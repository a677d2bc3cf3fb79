"""Base rule protocol and shared rule behaviour."""

from __future__ import annotations

import logging
from typing import Any, ClassVar, Protocol

from service_auditor.config import RuleSpec
from service_auditor.models import RuleResult, Service


class Rule(Protocol):
    """Protocol for compliance checks evaluated against one service at a time."""

    @property
    def name(self) -> str: ...

    @property
    def required(self) -> bool: ...

    async def evaluate(self, service: Service) -> RuleResult:
        """Evaluate the rule and return its result."""
        ...


class BaseRule:
    """Configuration-bound rule.

    Subclasses report expected failures (missing files, malformed input) as
    failing results. Anything they raise is treated as an execution failure
    by :class:`service_auditor.engine.RuleEngine`.
    """

    kind: ClassVar[str] = ""

    def __init__(self, spec: RuleSpec, *, logger: logging.Logger | None = None) -> None:
        self.spec = spec
        self._log = logger or logging.getLogger(f"service_auditor.rules.{self.kind}")

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def required(self) -> bool:
        return self.spec.required

    async def evaluate(self, service: Service) -> RuleResult:
        raise NotImplementedError

    def _result(
        self,
        passed: bool,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> RuleResult:
        return RuleResult(rule_name=self.name, passed=passed, message=message, details=details)
