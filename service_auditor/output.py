"""Report rendering and writing."""

from __future__ import annotations

import html
import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import click

from service_auditor import __version__
from service_auditor.errors import ReportGenerationError
from service_auditor.models import AuditReport, ServiceAuditResult

REPORT_BASENAME = "audit-report"
FILE_FORMATS = ("json", "md", "html")
FORMAT_EXTENSIONS = {"json": ".json", "md": ".md", "html": ".html"}


def render_human(report: AuditReport) -> str:
    """Render a compact colorized summary."""
    summary = report.summary
    status, color = ("PASSED", "green") if report.all_passed else ("FAILED", "red")
    lines: list[str] = [
        click.style(
            f"Audit {status}: {summary.passed_services}/{summary.total_services} services passed "
            f"({summary.pass_rate:.2f}%)",
            fg=color,
            bold=True,
        )
    ]
    if not report.services:
        lines.append("No services found.")
        return "\n".join(lines)

    lines.append(click.style("Services:", bold=True))
    for service in report.services:
        if service.passed:
            marker = click.style("PASS", fg="green")
        else:
            marker = click.style("FAIL", fg="red")
        lines.append(
            f"- [{marker}] {service.service_name}: {service.score:.1f}% "
            f"({service.passed_count}/{len(service.results)} rules)"
        )
        for result in service.results:
            if result.passed:
                continue
            lines.append(f"    x {result.rule_name}: {result.message}")
    return "\n".join(lines)


def build_json_payload(report: AuditReport) -> dict[str, Any]:
    """Build stable JSON payload for CI and automation."""
    payload = report.to_dict()
    payload["meta"] = {
        "generated_at": datetime.now(tz=UTC)
        .replace(microsecond=0)
        .isoformat()
        .replace("+00:00", "Z"),
        "version": __version__,
    }
    return payload


def render_json(report: AuditReport, *, indent: int | None = 2) -> str:
    return json.dumps(build_json_payload(report), indent=indent, sort_keys=True)


def render_markdown(report: AuditReport) -> str:
    summary = report.summary
    sections = [
        "# Service Standards Audit Report",
        "",
        f"**Generated:** {report.timestamp}",
        "",
        "---",
        "",
        "## Summary",
        "",
        "| Metric | Value |",
        "|--------|-------|",
        f"| Total Services | {summary.total_services} |",
        f"| Passed | {summary.passed_services} |",
        f"| Failed | {summary.failed_services} |",
        f"| Pass Rate | {summary.pass_rate:.2f}% |",
        "",
        "## Services",
        "",
    ]
    if not report.services:
        sections.append("No services found in the audit.")
        sections.append("")
    for service in report.services:
        sections.extend(_markdown_service_section(service))
    return "\n".join(sections)


def render_html(report: AuditReport) -> str:
    summary = report.summary
    service_blocks = "\n".join(_html_service_block(service) for service in report.services)
    if not service_blocks:
        service_blocks = "<p>No services found in the audit.</p>"
    return "\n".join(
        [
            "<!DOCTYPE html>",
            '<html lang="en">',
            "<head>",
            '<meta charset="utf-8">',
            "<title>Service Standards Audit Report</title>",
            "<style>",
            "body { font-family: sans-serif; margin: 2rem; }",
            "table { border-collapse: collapse; margin-bottom: 1.5rem; }",
            "th, td { border: 1px solid #ccc; padding: 0.3rem 0.6rem; text-align: left; }",
            ".pass { color: #1a7f37; } .fail { color: #cf222e; }",
            "</style>",
            "</head>",
            "<body>",
            "<h1>Service Standards Audit Report</h1>",
            f"<p>Generated: {html.escape(report.timestamp)}</p>",
            "<h2>Summary</h2>",
            "<table>",
            f"<tr><th>Total Services</th><td>{summary.total_services}</td></tr>",
            f"<tr><th>Passed</th><td>{summary.passed_services}</td></tr>",
            f"<tr><th>Failed</th><td>{summary.failed_services}</td></tr>",
            f"<tr><th>Pass Rate</th><td>{summary.pass_rate:.2f}%</td></tr>",
            "</table>",
            "<h2>Services</h2>",
            service_blocks,
            "</body>",
            "</html>",
            "",
        ]
    )


def resolve_file_formats(fmt: str) -> list[str]:
    """Map an output format choice to the report files it produces."""
    if fmt == "both":
        return ["json", "md"]
    if fmt in FILE_FORMATS:
        return [fmt]
    return []


def write_reports(report: AuditReport, fmt: str, outdir: Path) -> list[Path]:
    """Write ``audit-report.<ext>`` files for ``fmt`` into ``outdir``."""
    renderers = {"json": render_json, "md": render_markdown, "html": render_html}
    written: list[Path] = []
    for file_format in resolve_file_formats(fmt):
        output_path = outdir / f"{REPORT_BASENAME}{FORMAT_EXTENSIONS[file_format]}"
        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(renderers[file_format](report), encoding="utf-8")
        except OSError as exc:
            raise ReportGenerationError(
                f"Failed to write {file_format} report: {exc}",
                format=file_format,
                output_path=str(output_path),
                cause=exc,
            ) from exc
        written.append(output_path)
    return written


def _markdown_service_section(service: ServiceAuditResult) -> list[str]:
    status = "PASSED" if service.passed else "FAILED"
    lines = [
        f"### {service.service_name} - {status}",
        "",
        f"**Path:** `{service.service_path}`  ",
        f"**Score:** {service.score:.1f}%",
        "",
    ]
    if service.results:
        lines.extend(["| Rule | Status | Message |", "|------|--------|---------|"])
        for result in service.results:
            outcome = "Pass" if result.passed else "Fail"
            lines.append(
                f"| {_escape_markdown(result.rule_name)} | {outcome} | "
                f"{_escape_markdown(result.message)} |"
            )
        lines.append("")
    return lines


def _html_service_block(service: ServiceAuditResult) -> str:
    status_class = "pass" if service.passed else "fail"
    status = "PASSED" if service.passed else "FAILED"
    rows = "\n".join(
        "<tr>"
        f"<td>{html.escape(result.rule_name)}</td>"
        f'<td class="{"pass" if result.passed else "fail"}">'
        f"{'Pass' if result.passed else 'Fail'}</td>"
        f"<td>{html.escape(result.message)}</td>"
        "</tr>"
        for result in service.results
    )
    return "\n".join(
        [
            f'<h3 class="{status_class}">{html.escape(service.service_name)} - {status}</h3>',
            f"<p>Path: <code>{html.escape(service.service_path)}</code><br>"
            f"Score: {service.score:.1f}%</p>",
            "<table>",
            "<tr><th>Rule</th><th>Status</th><th>Message</th></tr>",
            rows,
            "</table>",
        ]
    )


def _escape_markdown(text: str) -> str:
    return text.replace("|", "\\|").replace("\r", "").replace("\n", " ")
