"""CLI entrypoint for service-auditor."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from dataclasses import replace
from pathlib import Path
from typing import Annotated, Any, TextIO

import click
import typer

from service_auditor import __version__
from service_auditor.auditor import Auditor
from service_auditor.ci import publish_from_env
from service_auditor.config import (
    OUTPUT_FORMATS,
    AuditorConfig,
    ScanConfig,
    default_config_template,
    load_auditor_config,
)
from service_auditor.errors import (
    ConfigurationError,
    ReportGenerationError,
    ScanError,
    format_error_message,
)
from service_auditor.output import render_human, write_reports
from service_auditor.rules import build_rules, list_rule_info
from service_auditor.rules.base import Rule
from service_auditor.scanner import ServiceScanner

app = typer.Typer(
    name="service-auditor",
    no_args_is_help=True,
    help="Audit service directories against declarative compliance rules.",
)

LOGGER_NAME = "service_auditor"


def version_callback(value: bool) -> None:
    """Print version and exit when --version is provided."""
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option("--version", help="Show version and exit.", callback=version_callback),
    ] = False,
) -> None:
    """Root command callback."""
    _ = version


@app.command("audit")
def audit_command(
    path: Annotated[Path, typer.Option(help="Services root (or a single service).")] = Path("."),
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to rules config (TOML or YAML)."),
    ] = None,
    output: Annotated[
        str | None,
        typer.Option(help="Output format: human|json|md|html|both.", show_default="human"),
    ] = None,
    outdir: Annotated[
        Path | None,
        typer.Option(help="Directory for report files.", show_default="reports"),
    ] = None,
    parallel: Annotated[
        bool | None,
        typer.Option("--parallel/--sequential", help="Evaluate services and rules concurrently."),
    ] = None,
    concurrency: Annotated[
        int | None,
        typer.Option(min=1, help="Maximum services audited at once in parallel mode."),
    ] = None,
    max_depth: Annotated[
        int | None, typer.Option(min=1, help="Maximum manifest depth (1 = root only).")
    ] = None,
    exclude: Annotated[
        list[str] | None, typer.Option(help="Extra exclude glob pattern (repeatable).")
    ] = None,
    fail_on_error: Annotated[
        bool,
        typer.Option("--fail-on-error", help="Exit nonzero if any service fails."),
    ] = False,
    progress: Annotated[
        bool, typer.Option("--progress", help="Print per-service progress to stderr.")
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging.")] = False,
    quiet: Annotated[bool, typer.Option("--quiet", "-q", help="Only log errors.")] = False,
) -> None:
    """Audit every service under a path and report per-service results."""
    _configure_logging(verbose=verbose, quiet=quiet)
    app_config = _load_config_or_raise(Path("."), config_file)
    app_config = _apply_overrides(
        app_config,
        parallel=parallel,
        concurrency=concurrency,
        max_depth=max_depth,
        exclude=exclude,
    )
    output_format = (output or app_config.output.format).lower()
    if output_format not in OUTPUT_FORMATS:
        choices = ", ".join(OUTPUT_FORMATS)
        raise typer.BadParameter(f"output must be one of: {choices}", param_hint="--output")

    auditor = Auditor(app_config, logger=logging.getLogger(LOGGER_NAME))
    reporter = ProgressReporter(interactive=sys.stderr.isatty()) if progress else None
    try:
        report = asyncio.run(auditor.audit(path, progress=reporter))
    except ScanError as exc:
        raise typer.BadParameter(format_error_message(exc), param_hint="--path") from exc
    except ConfigurationError as exc:
        raise typer.BadParameter(format_error_message(exc), param_hint="config.rules") from exc
    finally:
        if reporter is not None:
            reporter.close()

    report_dir = outdir if outdir is not None else Path(app_config.output.outdir)
    try:
        report_paths = write_reports(report, output_format, report_dir)
    except ReportGenerationError as exc:
        typer.echo(format_error_message(exc), err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(render_human(report))
    for report_path in report_paths:
        typer.echo(f"Report written to: {report_path}")

    if os.environ.get("GITHUB_ACTIONS") == "true":
        publish_from_env(report, report_paths, os.environ)

    if fail_on_error and not report.all_passed:
        raise typer.Exit(code=1)


@app.command("scan")
def scan_command(
    path: Annotated[Path, typer.Option(help="Services root.")] = Path("."),
    max_depth: Annotated[
        int | None, typer.Option(min=1, help="Maximum manifest depth (1 = root only).")
    ] = None,
    exclude: Annotated[
        list[str] | None, typer.Option(help="Extra exclude glob pattern (repeatable).")
    ] = None,
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
) -> None:
    """List the services that an audit would discover."""
    output_format = _human_or_json(format)
    scanner = ServiceScanner(
        max_depth=max_depth,
        exclude=exclude,
        logger=logging.getLogger(LOGGER_NAME).getChild("scanner"),
    )
    try:
        services = asyncio.run(scanner.scan(path))
    except ScanError as exc:
        raise typer.BadParameter(format_error_message(exc), param_hint="--path") from exc

    if output_format == "json":
        typer.echo(json.dumps({"services": [item.to_dict() for item in services]}, sort_keys=True))
        return

    lines = [f"Discovered {len(services)} service(s):"]
    for service in services:
        version = f"@{service.version}" if service.version else ""
        lines.append(f"- {service.name}{version} [{service.type}] {service.path}")
    typer.echo("\n".join(lines))


@app.command("rules")
def rules_command(
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Also list the rules configured in this file."),
    ] = None,
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
) -> None:
    """List supported rule types and, optionally, configured rules."""
    output_format = _human_or_json(format)
    rule_info = list_rule_info()
    configured: list[dict[str, object]] = []
    if config_file is not None:
        app_config = _load_config_or_raise(Path("."), config_file)
        _build_configured_rules_or_raise(app_config)
        configured = [
            {"name": spec.name, "type": spec.kind, "required": spec.required}
            for spec in app_config.rules
        ]

    if output_format == "json":
        payload = {
            "rule_types": [
                {
                    "type": item.kind,
                    "name": item.name,
                    "description": item.description,
                    "parameters": list(item.parameters),
                }
                for item in rule_info
            ],
            "configured": configured,
        }
        typer.echo(json.dumps(payload, sort_keys=True))
        return

    lines = ["Rule types:"]
    for item in rule_info:
        params = ", ".join(item.parameters)
        lines.append(f"- {item.kind} ({params}) - {item.description}")
    if configured:
        lines.append("Configured rules:")
        for rule in configured:
            status = "required" if rule["required"] else "optional"
            lines.append(f"- {rule['name']} [{rule['type']}, {status}]")
    typer.echo("\n".join(lines))


@app.command("config")
def config_command(
    config_file: Annotated[
        Path | None,
        typer.Option("--config", help="Path to rules config (TOML or YAML)."),
    ] = None,
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
) -> None:
    """Show resolved configuration."""
    output_format = _human_or_json(format)
    app_config = _load_config_or_raise(Path("."), config_file)
    active_rules = _build_configured_rules_or_raise(app_config)
    payload = app_config.to_dict()
    payload["active_rules"] = [rule.name for rule in active_rules]

    if output_format == "json":
        typer.echo(json.dumps(payload, sort_keys=True))
        return

    lines = [
        "Resolved configuration:",
        f"- source: {payload['source']}",
        f"- parallel: {payload['parallel']}",
        f"- concurrency: {payload['concurrency']}",
        f"- fail_fast: {payload['fail_fast']}",
        f"- scan.max_depth: {payload['scan']['max_depth']}",
        f"- scan.exclude: {payload['scan']['exclude']}",
        f"- output.format: {payload['output']['format']}",
        f"- output.outdir: {payload['output']['outdir']}",
        f"- active_rules: {payload['active_rules']}",
    ]
    typer.echo("\n".join(lines))


@app.command("config-init")
def config_init_command(
    out: Annotated[Path, typer.Option(help="Output path for starter config TOML.")] = Path(
        ".service-auditor.toml"
    ),
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite if file already exists."),
    ] = False,
) -> None:
    """Create a starter config file."""
    out_path = out.resolve()
    if out_path.exists() and not force:
        raise typer.BadParameter(
            f"Refusing to overwrite existing file: {out_path}. Use --force to overwrite."
        )
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(default_config_template(), encoding="utf-8")
    typer.echo(f"Wrote starter config: {out_path}")


@app.command("config-validate")
def config_validate_command(
    config_file: Annotated[
        Path,
        typer.Option("--config", help="Path to config file to validate."),
    ] = Path(".service-auditor.toml"),
    format: Annotated[str, typer.Option(help="Output format: human|json.")] = "human",
) -> None:
    """Validate a config file and instantiate its rules."""
    output_format = _human_or_json(format)
    app_config = _load_config_or_raise(Path("."), config_file)
    active_rules = _build_configured_rules_or_raise(app_config)
    payload = {
        "ok": True,
        "source": app_config.source,
        "active_rules": [rule.name for rule in active_rules],
    }
    if output_format == "json":
        typer.echo(json.dumps(payload, sort_keys=True))
        return
    typer.echo(
        "\n".join(
            [
                "Config is valid.",
                f"- source: {payload['source']}",
                f"- active_rules: {payload['active_rules']}",
            ]
        )
    )


def main() -> None:
    """Console script entrypoint."""
    app()


def _configure_logging(*, verbose: bool, quiet: bool) -> None:
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )


class ProgressReporter:
    """Per-service progress on stderr.

    On a terminal this drives a ``click.progressbar`` labelled with the
    service just finished; otherwise it prints one ``[n/total] name`` line
    per service.
    """

    def __init__(self, *, interactive: bool, file: TextIO | None = None) -> None:
        self.interactive = interactive
        self._file = file
        self._bar: Any = None

    def __call__(self, completed: int, total: int, service_name: str) -> None:
        if not self.interactive:
            typer.echo(f"[{completed}/{total}] {service_name}", err=True)
            return
        if self._bar is None:
            self._bar = click.progressbar(
                length=total,
                label="Auditing services",
                file=self._file if self._file is not None else sys.stderr,
                item_show_func=lambda item: item,
            )
        self._bar.update(1, current_item=service_name)

    def close(self) -> None:
        if self._bar is not None:
            self._bar.render_finish()
            self._bar = None


def _apply_overrides(
    app_config: AuditorConfig,
    *,
    parallel: bool | None,
    concurrency: int | None,
    max_depth: int | None,
    exclude: list[str] | None,
) -> AuditorConfig:
    scan = ScanConfig(
        max_depth=max_depth if max_depth is not None else app_config.scan.max_depth,
        exclude=[*app_config.scan.exclude, *(exclude or [])],
    )
    return replace(
        app_config,
        parallel=parallel if parallel is not None else app_config.parallel,
        concurrency=concurrency if concurrency is not None else app_config.concurrency,
        scan=scan,
    )


def _human_or_json(value: str) -> str:
    output_format = value.lower()
    if output_format not in {"human", "json"}:
        raise typer.BadParameter("format must be one of: human, json", param_hint="--format")
    return output_format


def _load_config_or_raise(root: Path, config_file: Path | None = None) -> AuditorConfig:
    try:
        return load_auditor_config(root, config_path=config_file)
    except ConfigurationError as exc:
        raise typer.BadParameter(format_error_message(exc), param_hint="config") from exc


def _build_configured_rules_or_raise(app_config: AuditorConfig) -> list[Rule]:
    try:
        return build_rules(app_config.rules)
    except ConfigurationError as exc:
        raise typer.BadParameter(format_error_message(exc), param_hint="config.rules") from exc
