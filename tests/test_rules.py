"""Built-in rule behaviour and rule instantiation tests."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from service_auditor.errors import ConfigurationError
from service_auditor.models import Service
from service_auditor.rules import (
    CoverageRule,
    FileExistsRule,
    SemverRule,
    build_rule,
    build_rules,
    list_rule_info,
)
from service_auditor.rules.file_exists import expand_braces, is_glob_pattern
from tests.helpers_services import spec, write_coverage, write_file


def _service(path: Path, name: str = "svc") -> Service:
    return Service(name=name, path=str(path), type="node")


@pytest.mark.asyncio
async def test_file_exists_literal_file(tmp_path: Path) -> None:
    write_file(tmp_path / "README.md", "# svc")
    rule = FileExistsRule(spec("README", "file-exists", target="README.md"))

    result = await rule.evaluate(_service(tmp_path))

    assert result.passed is True
    assert result.rule_name == "README"
    assert result.message == "README.md exists (file)"
    assert result.details == {"path": str(tmp_path / "README.md"), "type": "file"}


@pytest.mark.asyncio
async def test_file_exists_literal_directory(tmp_path: Path) -> None:
    (tmp_path / "docs").mkdir()
    rule = FileExistsRule(spec("Docs", "file-exists", target="docs"))

    result = await rule.evaluate(_service(tmp_path))

    assert result.passed is True
    assert result.details is not None
    assert result.details["type"] == "directory"


@pytest.mark.asyncio
async def test_file_exists_literal_missing(tmp_path: Path) -> None:
    rule = FileExistsRule(spec("Dockerfile", "file-exists", target="Dockerfile"))

    result = await rule.evaluate(_service(tmp_path))

    assert result.passed is False
    assert result.message == "Dockerfile not found"
    assert result.details == {"expected_path": str(tmp_path / "Dockerfile")}


@pytest.mark.asyncio
async def test_file_exists_glob_without_matches(tmp_path: Path) -> None:
    write_file(tmp_path / "src" / "index.ts", "")
    rule = FileExistsRule(spec("Tests", "file-exists", target="tests/**/*.test.ts"))

    result = await rule.evaluate(_service(tmp_path))

    assert result.passed is False
    assert result.message == "No files found matching pattern: tests/**/*.test.ts"


@pytest.mark.asyncio
async def test_file_exists_glob_with_matches(tmp_path: Path) -> None:
    write_file(tmp_path / "tests" / "unit" / "a.test.ts", "")
    write_file(tmp_path / "tests" / "b.test.ts", "")
    write_file(tmp_path / "tests" / "c.spec.ts", "")
    rule = FileExistsRule(spec("Tests", "file-exists", target="tests/**/*.test.ts"))

    result = await rule.evaluate(_service(tmp_path))

    assert result.passed is True
    assert result.message == "Found 2 file(s) matching pattern: tests/**/*.test.ts"
    assert result.details == {
        "matches": ["tests/b.test.ts", "tests/unit/a.test.ts"],
        "count": 2,
    }


@pytest.mark.asyncio
async def test_file_exists_glob_brace_alternatives(tmp_path: Path) -> None:
    write_file(tmp_path / "tests" / "a.test.js", "")
    rule = FileExistsRule(spec("Tests", "file-exists", target="tests/*.test.{js,ts}"))

    result = await rule.evaluate(_service(tmp_path))

    assert result.passed is True
    assert result.details is not None
    assert result.details["matches"] == ["tests/a.test.js"]


@pytest.mark.asyncio
async def test_file_exists_glob_skips_hidden_directories(tmp_path: Path) -> None:
    write_file(tmp_path / ".cache" / "x.test.ts", "")
    write_file(tmp_path / "src" / ".hidden.test.ts", "")
    rule = FileExistsRule(spec("Tests", "file-exists", target="**/*.test.ts"))

    result = await rule.evaluate(_service(tmp_path))

    assert result.passed is False
    assert result.message == "No files found matching pattern: **/*.test.ts"


@pytest.mark.asyncio
async def test_file_exists_glob_allows_named_dot_directory(tmp_path: Path) -> None:
    write_file(tmp_path / ".github" / "workflows" / "ci.yml", "")
    rule = FileExistsRule(spec("CI", "file-exists", target=".github/workflows/*.yml"))

    result = await rule.evaluate(_service(tmp_path))

    assert result.passed is True
    assert result.details == {"matches": [".github/workflows/ci.yml"], "count": 1}


def test_expand_braces_handles_nesting_and_unbalanced_input() -> None:
    assert expand_braces("a.{js,ts}") == ["a.js", "a.ts"]
    assert expand_braces("{a,b{1,2}}.x") == ["a.x", "b1.x", "b2.x"]
    assert expand_braces("plain.txt") == ["plain.txt"]
    assert expand_braces("broken{a,b") == ["broken{a,b"]


def test_is_glob_pattern() -> None:
    assert is_glob_pattern("src/**/*.ts")
    assert is_glob_pattern("file?.txt")
    assert is_glob_pattern("{a,b}")
    assert not is_glob_pattern("README.md")


@pytest.mark.asyncio
async def test_coverage_below_threshold(tmp_path: Path) -> None:
    write_coverage(tmp_path, lines=90, statements=80, functions=90, branches=70)
    rule = CoverageRule(spec("Coverage", "coverage", threshold=85))

    result = await rule.evaluate(_service(tmp_path))

    assert result.passed is False
    assert result.message == "Coverage 82.5% is below threshold of 85%"
    assert result.details is not None
    assert result.details["coverage"]["average"] == pytest.approx(82.5)
    assert result.details["threshold"] == 85


@pytest.mark.asyncio
async def test_coverage_meets_threshold(tmp_path: Path) -> None:
    write_coverage(tmp_path, lines=90, statements=80, functions=90, branches=70)
    rule = CoverageRule(spec("Coverage", "coverage", threshold=82.5))

    result = await rule.evaluate(_service(tmp_path))

    assert result.passed is True
    assert result.message == "Coverage 82.5% meets threshold of 82.5%"


@pytest.mark.asyncio
async def test_coverage_missing_report(tmp_path: Path) -> None:
    rule = CoverageRule(spec("Coverage", "coverage", threshold=80))

    result = await rule.evaluate(_service(tmp_path))

    expected = tmp_path / "coverage" / "coverage-summary.json"
    assert result.passed is False
    assert result.message == f"Coverage report not found or invalid at {expected}"
    assert result.details is not None
    assert result.details["expected_path"] == str(expected)


@pytest.mark.asyncio
async def test_coverage_report_without_metrics_is_invalid(tmp_path: Path) -> None:
    write_file(tmp_path / "coverage" / "coverage-summary.json", '{"total": {"lines": {}}}')
    rule = CoverageRule(spec("Coverage", "coverage", threshold=80))

    result = await rule.evaluate(_service(tmp_path))

    assert result.passed is False
    assert result.message.startswith("Coverage report not found or invalid at")
    assert result.details is not None
    assert "total.lines.pct" in result.details["error"]


@pytest.mark.asyncio
async def test_semver_valid(tmp_path: Path) -> None:
    write_file(tmp_path / "package.json", '{"name": "svc", "version": "1.2.3"}')
    rule = SemverRule(spec("Version", "semver"))

    result = await rule.evaluate(_service(tmp_path))

    assert result.passed is True
    assert result.message == "Valid semantic version: 1.2.3"
    assert result.details is not None
    assert (result.details["major"], result.details["minor"], result.details["patch"]) == (1, 2, 3)
    assert result.details["prerelease"] is None


@pytest.mark.asyncio
async def test_semver_prerelease_and_build(tmp_path: Path) -> None:
    write_file(tmp_path / "manifest.json", '{"version": "2.0.0-rc.1+build.5"}')
    rule = SemverRule(spec("Version", "semver", target="manifest.json"))

    result = await rule.evaluate(_service(tmp_path))

    assert result.passed is True
    assert result.details is not None
    assert result.details["prerelease"] == "rc.1"
    assert result.details["build"] == "build.5"


@pytest.mark.asyncio
async def test_semver_invalid_version(tmp_path: Path) -> None:
    write_file(tmp_path / "package.json", '{"version": "1.2"}')
    rule = SemverRule(spec("Version", "semver"))

    result = await rule.evaluate(_service(tmp_path))

    assert result.passed is False
    assert result.message == "Invalid semantic version: 1.2"


@pytest.mark.asyncio
async def test_semver_missing_version_field(tmp_path: Path) -> None:
    write_file(tmp_path / "package.json", '{"name": "svc"}')
    rule = SemverRule(spec("Version", "semver"))

    result = await rule.evaluate(_service(tmp_path))

    assert result.passed is False
    assert result.message == "package.json version field not found"


@pytest.mark.parametrize("raw_version", ["0", "false", "null", '""'])
@pytest.mark.asyncio
async def test_semver_falsy_version_counts_as_missing(tmp_path: Path, raw_version: str) -> None:
    write_file(tmp_path / "package.json", f'{{"name": "svc", "version": {raw_version}}}')
    rule = SemverRule(spec("Version", "semver"))

    result = await rule.evaluate(_service(tmp_path))

    assert result.passed is False
    assert result.message == "package.json version field not found"


@pytest.mark.asyncio
async def test_semver_unparseable_target(tmp_path: Path) -> None:
    write_file(tmp_path / "package.json", "{oops")
    rule = SemverRule(spec("Version", "semver"))

    result = await rule.evaluate(_service(tmp_path))

    assert result.passed is False
    assert result.message.startswith("Failed to parse package.json:")


@pytest.mark.asyncio
async def test_semver_missing_target(tmp_path: Path) -> None:
    rule = SemverRule(spec("Version", "semver"))

    result = await rule.evaluate(_service(tmp_path))

    assert result.passed is False
    assert result.message.startswith("package.json not found or unreadable:")


def test_build_rules_preserves_order_and_flags() -> None:
    rules = build_rules(
        [
            spec("Readme", "file-exists", target="README.md"),
            spec("Coverage", "coverage", required=False, threshold=80),
            spec("Version", "semver"),
        ]
    )

    assert [rule.name for rule in rules] == ["Readme", "Coverage", "Version"]
    assert [rule.required for rule in rules] == [True, False, True]
    assert isinstance(rules[1], CoverageRule)


def test_build_rule_rejects_unknown_kind() -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        build_rules([spec("Lint", "eslint")])

    assert "Unsupported rule type: eslint" in exc_info.value.message
    assert "Rule: Lint" in exc_info.value.message


def test_build_rule_rejects_custom_kind() -> None:
    with pytest.raises(ConfigurationError, match="Rule type 'custom' is not supported"):
        build_rule(spec("Script", "custom", script="./check.js"))


def test_build_rule_rejects_missing_parameters() -> None:
    with pytest.raises(ConfigurationError, match="threshold"):
        build_rule(spec("Coverage", "coverage"))
    with pytest.raises(ConfigurationError, match="target"):
        build_rule(spec("Readme", "file-exists"))


def test_build_rule_hands_out_child_logger() -> None:
    parent = logging.getLogger("service_auditor.test")

    rule = build_rule(spec("Readme", "file-exists", target="README.md"), logger=parent)

    assert isinstance(rule, FileExistsRule)
    assert rule._log.name == "service_auditor.test.rules.file-exists"


def test_list_rule_info_covers_every_kind() -> None:
    info = {item.kind: item for item in list_rule_info()}

    assert set(info) == {"file-exists", "coverage", "semver"}
    assert info["coverage"].parameters == ("threshold",)
    assert info["file-exists"].name == "FileExistsRule"
    assert info["semver"].description
