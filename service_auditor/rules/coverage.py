"""Coverage threshold rule backed by Istanbul-style coverage summaries."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from service_auditor.config import RuleKind, RuleSpec
from service_auditor.files import read_json
from service_auditor.models import RuleResult, Service
from service_auditor.rules.base import BaseRule

COVERAGE_SUMMARY_PATH = Path("coverage") / "coverage-summary.json"
COVERAGE_METRICS = ("lines", "statements", "functions", "branches")


class CoverageRule(BaseRule):
    """Passes when the mean of line, statement, function, and branch coverage meets a threshold."""

    kind = RuleKind.COVERAGE.value

    def __init__(self, spec: RuleSpec, *, logger: logging.Logger | None = None) -> None:
        super().__init__(spec, logger=logger)
        self.threshold = spec.number_param("threshold", lower=0, upper=100)

    async def evaluate(self, service: Service) -> RuleResult:
        summary_path = Path(service.path) / COVERAGE_SUMMARY_PATH
        self._log.debug(
            "Checking coverage against %s%% threshold for %s", self.threshold, service.name
        )

        document = await read_json(summary_path)
        if document.ok:
            metrics, error = _extract_metrics(document.data)
        else:
            metrics, error = (None, document.error)
        if metrics is None:
            self._log.debug("Unusable coverage summary at %s: %s", summary_path, error)
            return self._result(
                False,
                f"Coverage report not found or invalid at {summary_path}",
                {"error": error, "expected_path": str(summary_path)},
            )

        average = sum(metrics.values()) / len(metrics)
        passed = average >= self.threshold
        verdict = "meets" if passed else "is below"
        return self._result(
            passed,
            f"Coverage {average:.1f}% {verdict} threshold of {self.threshold:g}%",
            {
                "coverage": {**metrics, "average": average},
                "threshold": self.threshold,
            },
        )


def _extract_metrics(data: Any) -> tuple[dict[str, float] | None, str | None]:
    total = data.get("total") if isinstance(data, dict) else None
    if not isinstance(total, dict):
        return (None, "coverage summary has no 'total' section")

    metrics: dict[str, float] = {}
    for metric in COVERAGE_METRICS:
        entry = total.get(metric)
        pct = entry.get("pct") if isinstance(entry, dict) else None
        if isinstance(pct, bool) or not isinstance(pct, (int, float)):
            return (None, f"coverage summary is missing a numeric total.{metric}.pct")
        metrics[metric] = pct
    return (metrics, None)
