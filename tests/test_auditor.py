"""Audit orchestration and aggregation tests."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from service_auditor.auditor import (
    Auditor,
    build_report,
    build_summary,
    compute_score,
    required_rules_passed,
)
from service_auditor.config import AuditorConfig, RuleSpec
from service_auditor.errors import ConfigurationError, ScanError
from service_auditor.models import RuleResult, ServiceAuditResult
from service_auditor.rules import build_rules
from tests.helpers_services import spec, write_service


def _config(*rules: RuleSpec, parallel: bool = False, concurrency: int = 5) -> AuditorConfig:
    return AuditorConfig(rules=list(rules), parallel=parallel, concurrency=concurrency)


def _result(passed: bool, name: str = "rule") -> RuleResult:
    return RuleResult(rule_name=name, passed=passed, message="")


def _service_result(passed: bool) -> ServiceAuditResult:
    return ServiceAuditResult(
        service_name="svc",
        service_path="/svc",
        results=(),
        passed=passed,
        score=0.0,
    )


@pytest.mark.asyncio
async def test_audit_passing_service(tmp_path: Path) -> None:
    write_service(
        tmp_path,
        "services/api",
        {"name": "api", "version": "1.2.3"},
        files={"README.md": "# api"},
    )
    auditor = Auditor(
        _config(
            spec("README", "file-exists", target="README.md"),
            spec("Version", "semver"),
        )
    )

    report = await auditor.audit(tmp_path)

    assert report.summary.total_services == 1
    assert report.summary.passed_services == 1
    assert report.summary.pass_rate == 100.0
    service = report.services[0]
    assert service.service_name == "api"
    assert service.passed is True
    assert service.score == 100.0
    assert [result.rule_name for result in service.results] == ["README", "Version"]
    details = service.results[1].details
    assert details is not None
    assert (details["major"], details["minor"], details["patch"]) == (1, 2, 3)
    assert report.timestamp.endswith("Z")


@pytest.mark.asyncio
async def test_audit_partial_failure_scores_one_decimal(tmp_path: Path) -> None:
    write_service(tmp_path, "api", {"name": "api", "version": "1.0.0"}, files={"README.md": ""})
    auditor = Auditor(
        _config(
            spec("README", "file-exists", target="README.md"),
            spec("Version", "semver"),
            spec("Dockerfile", "file-exists", target="Dockerfile"),
        )
    )

    report = await auditor.audit(tmp_path)

    service = report.services[0]
    assert service.score == 66.7
    assert service.passed is False
    assert report.summary.failed_services == 1
    assert report.summary.pass_rate == 0.0


@pytest.mark.asyncio
async def test_optional_rule_failure_keeps_service_passing(tmp_path: Path) -> None:
    write_service(tmp_path, "api", {"name": "api"}, files={"README.md": ""})
    auditor = Auditor(
        _config(
            spec("README", "file-exists", target="README.md"),
            spec("Coverage", "coverage", required=False, threshold=80),
        )
    )

    report = await auditor.audit(tmp_path)

    service = report.services[0]
    assert service.passed is True
    assert service.score == 50.0
    assert service.results[1].passed is False


@pytest.mark.asyncio
async def test_empty_tree_returns_zero_summary(tmp_path: Path) -> None:
    auditor = Auditor(_config(spec("README", "file-exists", target="README.md")))

    report = await auditor.audit(tmp_path)

    assert report.services == ()
    assert report.summary.total_services == 0
    assert report.summary.pass_rate == 0.0
    assert report.all_passed is True


@pytest.mark.asyncio
async def test_unknown_rule_kind_fails_even_without_services(tmp_path: Path) -> None:
    auditor = Auditor(_config(spec("Lint", "eslint")))

    with pytest.raises(ConfigurationError, match="Unsupported rule type: eslint"):
        await auditor.audit(tmp_path)


@pytest.mark.asyncio
async def test_missing_root_raises_scan_error(tmp_path: Path) -> None:
    auditor = Auditor(_config(spec("README", "file-exists", target="README.md")))

    with pytest.raises(ScanError):
        await auditor.audit(tmp_path / "missing")


@pytest.mark.asyncio
async def test_parallel_audit_matches_sequential_audit(tmp_path: Path) -> None:
    for index in range(6):
        files = {"README.md": ""} if index % 2 == 0 else {}
        manifest = {"name": f"svc{index}", "version": "0.1.0"}
        write_service(tmp_path, f"svc{index}", manifest, files=files)
    rules = (
        spec("README", "file-exists", target="README.md"),
        spec("Version", "semver"),
    )

    sequential = await Auditor(_config(*rules)).audit(tmp_path)
    parallel = await Auditor(_config(*rules, parallel=True, concurrency=2)).audit(tmp_path)

    assert [s.to_dict() for s in parallel.services] == [s.to_dict() for s in sequential.services]
    assert parallel.summary == sequential.summary
    assert [s.service_name for s in parallel.services] == [f"svc{i}" for i in range(6)]
    assert parallel.summary.pass_rate == 50.0


@pytest.mark.asyncio
async def test_repeated_audits_are_identical_apart_from_timestamp(tmp_path: Path) -> None:
    write_service(tmp_path, "api", {"name": "api", "version": "1.0.0"})
    write_service(tmp_path, "web", {"name": "web", "version": "nope"})
    auditor = Auditor(_config(spec("Version", "semver")))

    first = await auditor.audit(tmp_path)
    second = await auditor.audit(tmp_path)

    assert first.services == second.services
    assert first.summary == second.summary


@pytest.mark.asyncio
async def test_progress_callback_reports_each_service(tmp_path: Path) -> None:
    write_service(tmp_path, "a", {"name": "a"})
    write_service(tmp_path, "b", {"name": "b"})
    calls: list[tuple[int, int, str]] = []

    def record(completed: int, total: int, name: str) -> None:
        calls.append((completed, total, name))

    auditor = Auditor(_config(spec("Version", "semver")))
    await auditor.audit(tmp_path, progress=record)

    assert calls == [(1, 2, "a"), (2, 2, "b")]


@pytest.mark.asyncio
async def test_failing_progress_callback_does_not_abort_audit(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    write_service(tmp_path, "a", {"name": "a", "version": "1.0.0"})

    def explode(completed: int, total: int, name: str) -> None:
        raise RuntimeError("terminal gone")

    auditor = Auditor(_config(spec("Version", "semver")))
    with caplog.at_level(logging.WARNING, logger="service_auditor"):
        report = await auditor.audit(tmp_path, progress=explode)

    assert report.summary.passed_services == 1
    assert "Progress callback failed" in caplog.text


def test_compute_score_rounds_half_up() -> None:
    assert compute_score([]) == 0.0
    assert compute_score([_result(True), _result(False), _result(False)]) == 33.3
    assert compute_score([_result(True), _result(True), _result(False)]) == 66.7
    eight = [_result(True)] + [_result(False)] * 7
    assert compute_score(eight) == 12.5


def test_required_rules_passed_pairs_by_position() -> None:
    rules = build_rules(
        [
            spec("Dup", "file-exists", target="README.md"),
            spec("Dup", "file-exists", required=False, target="CHANGELOG.md"),
        ]
    )

    assert required_rules_passed(rules, [_result(True, "Dup"), _result(False, "Dup")]) is True
    assert required_rules_passed(rules, [_result(False, "Dup"), _result(True, "Dup")]) is False
    assert required_rules_passed([], []) is True
    with pytest.raises(ValueError):
        required_rules_passed(rules, [_result(True)])


def test_build_summary_pass_rate_two_decimals() -> None:
    summary = build_summary([_service_result(True), _service_result(True), _service_result(False)])

    assert summary.total_services == 3
    assert summary.passed_services == 2
    assert summary.failed_services == 1
    assert summary.pass_rate == 66.67
    assert build_summary([]).pass_rate == 0.0


def test_build_report_uses_given_timestamp() -> None:
    report = build_report([_service_result(False)], timestamp="2024-01-01T00:00:00Z")

    assert report.timestamp == "2024-01-01T00:00:00Z"
    assert report.all_passed is False
    assert report.to_dict()["summary"]["failed_services"] == 1


@pytest.mark.asyncio
async def test_service_with_no_rules_passes_with_zero_score(tmp_path: Path) -> None:
    write_service(tmp_path, "api", {"name": "api"})
    auditor = Auditor(AuditorConfig(rules=[]))

    report = await auditor.audit(tmp_path)

    assert report.services[0].passed is True
    assert report.services[0].score == 0.0
    assert report.services[0].results == ()
