"""GitHub Actions job summary and step outputs."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from service_auditor.models import AuditReport


def build_github_summary(report: AuditReport, report_paths: list[Path]) -> str:
    """Build the Markdown job summary for a report."""
    summary = report.summary
    status = "PASSED" if report.all_passed else "FAILED"
    total_rules = sum(len(service.results) for service in report.services)
    passed_rules = sum(service.passed_count for service in report.services)

    lines = [
        "## Service Standards Audit Results",
        "",
        f"### Overall Status: {status}",
        "",
        "| Metric | Value |",
        "|--------|-------|",
        f"| Total Services | {summary.total_services} |",
        f"| Passed Services | {summary.passed_services} |",
        f"| Failed Services | {summary.failed_services} |",
        f"| Pass Rate | {summary.pass_rate:.2f}% |",
        f"| Total Rules | {total_rules} |",
        f"| Passed Rules | {passed_rules} |",
        "",
    ]
    if report.services:
        lines.extend(
            [
                "### Services",
                "",
                "| Service | Status | Score | Rules |",
                "|---------|--------|-------|-------|",
            ]
        )
        for service in report.services:
            lines.append(
                f"| {service.service_name} | {'pass' if service.passed else 'fail'} | "
                f"{service.score:.1f}% | {service.passed_count}/{len(service.results)} |"
            )
        lines.append("")
    if report_paths:
        lines.extend(["### Reports", ""])
        lines.extend(f"- `{path}`" for path in report_paths)
        lines.append("")
    return "\n".join(lines)


def build_github_outputs(report: AuditReport, report_paths: list[Path]) -> dict[str, str]:
    summary = report.summary
    return {
        "report-path": ",".join(str(path) for path in report_paths),
        "passed": "true" if report.all_passed else "false",
        "total-services": str(summary.total_services),
        "passed-services": str(summary.passed_services),
        "pass-rate": f"{summary.pass_rate:.2f}",
    }


def write_github_summary(report: AuditReport, report_paths: list[Path], summary_path: Path) -> None:
    with summary_path.open("a", encoding="utf-8") as handle:
        handle.write(build_github_summary(report, report_paths))
        handle.write("\n")


def write_github_outputs(report: AuditReport, report_paths: list[Path], output_path: Path) -> None:
    with output_path.open("a", encoding="utf-8") as handle:
        for key, value in build_github_outputs(report, report_paths).items():
            handle.write(f"{key}={value}\n")


def publish_from_env(
    report: AuditReport,
    report_paths: list[Path],
    environ: Mapping[str, str],
) -> list[str]:
    """Write summary/outputs to the files GitHub Actions points at; return what was written."""
    published: list[str] = []
    summary_file = environ.get("GITHUB_STEP_SUMMARY")
    if summary_file:
        write_github_summary(report, report_paths, Path(summary_file))
        published.append("summary")
    output_file = environ.get("GITHUB_OUTPUT")
    if output_file:
        write_github_outputs(report, report_paths, Path(output_file))
        published.append("outputs")
    return published
