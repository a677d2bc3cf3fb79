"""Exception taxonomy for the auditor."""

from __future__ import annotations


class AuditorError(Exception):
    """Base class for all auditor errors."""

    default_code = "ERROR"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code


class ConfigurationError(AuditorError):
    """Raised when configuration is missing, malformed, or names an unknown rule kind."""

    default_code = "CONFIG_ERROR"

    def __init__(self, message: str, config_path: str | None = None) -> None:
        super().__init__(message)
        self.config_path = config_path


class ScanError(AuditorError):
    """Raised when service discovery cannot read the requested root."""

    default_code = "SCAN_ERROR"

    def __init__(self, message: str, path: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.path = path
        self.cause = cause


class RuleEvaluationError(AuditorError):
    """An unexpected rule crash.

    :class:`service_auditor.engine.RuleEngine` wraps each exception a rule
    raises in one of these, logs it and records its message as a failing
    result, so it never propagates out of an audit.
    """

    default_code = "RULE_ERROR"

    def __init__(
        self,
        message: str,
        rule_name: str,
        service_name: str,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.rule_name = rule_name
        self.service_name = service_name
        self.cause = cause


class ReportGenerationError(AuditorError):
    """Raised when a report cannot be rendered or written."""

    default_code = "REPORT_ERROR"

    def __init__(
        self,
        message: str,
        format: str,
        output_path: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.format = format
        self.output_path = output_path
        self.cause = cause


def format_error_message(error: BaseException) -> str:
    """Render an error with its code and context lines."""
    if not isinstance(error, AuditorError):
        return str(error)

    lines = [f"[{error.code}] {error.message}"]
    if isinstance(error, ConfigurationError):
        if error.config_path:
            lines.append(f"  Config file: {error.config_path}")
    elif isinstance(error, ScanError):
        lines.append(f"  Path: {error.path}")
        if error.cause is not None:
            lines.append(f"  Cause: {error.cause}")
    elif isinstance(error, RuleEvaluationError):
        lines.append(f"  Rule: {error.rule_name}")
        lines.append(f"  Service: {error.service_name}")
        if error.cause is not None:
            lines.append(f"  Cause: {error.cause}")
    elif isinstance(error, ReportGenerationError):
        lines.append(f"  Format: {error.format}")
        if error.output_path:
            lines.append(f"  Output: {error.output_path}")
        if error.cause is not None:
            lines.append(f"  Cause: {error.cause}")
    return "\n".join(lines)
