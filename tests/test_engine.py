"""Rule engine tests."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import pytest

from service_auditor.engine import RuleEngine
from service_auditor.models import RuleResult, Service

SERVICE = Service(name="api", path="/srv/api", type="node")


@dataclass
class StubRule:
    name: str
    required: bool = True
    passed: bool = True
    delay: float = 0.0
    error: Exception | None = None

    async def evaluate(self, service: Service) -> RuleResult:
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return RuleResult(rule_name=self.name, passed=self.passed, message=f"{service.name} ok")


@pytest.mark.asyncio
async def test_crashing_rule_is_recorded_and_siblings_still_run() -> None:
    engine = RuleEngine(
        [
            StubRule("first"),
            StubRule("crash", error=RuntimeError("disk on fire")),
            StubRule("third", passed=False),
        ]
    )

    results = await engine.execute_rules(SERVICE)

    assert [result.rule_name for result in results] == ["first", "crash", "third"]
    assert results[1].passed is False
    assert results[1].message == "Rule execution failed: disk on fire"
    assert results[2].passed is False


@pytest.mark.asyncio
async def test_parallel_results_follow_registration_order() -> None:
    rules = [
        StubRule("slow", delay=0.03),
        StubRule("fast", delay=0.0),
        StubRule("crash", error=ValueError("bad")),
        StubRule("medium", delay=0.01, passed=False),
    ]
    engine = RuleEngine(rules)

    sequential = await engine.execute(SERVICE, parallel=False)
    parallel = await engine.execute(SERVICE, parallel=True)

    assert parallel == sequential
    assert [result.rule_name for result in parallel] == ["slow", "fast", "crash", "medium"]


@pytest.mark.asyncio
async def test_exception_without_message_uses_class_name() -> None:
    engine = RuleEngine([StubRule("crash", error=KeyError())])

    results = await engine.execute_rules(SERVICE)

    assert results[0].message == "Rule execution failed: KeyError"


@pytest.mark.asyncio
async def test_crashing_rule_is_logged_as_rule_error(caplog: pytest.LogCaptureFixture) -> None:
    engine = RuleEngine([StubRule("crash", error=RuntimeError("disk on fire"))])

    with caplog.at_level(logging.ERROR, logger="service_auditor.engine"):
        results = await engine.execute_rules(SERVICE)

    assert results[0].message == "Rule execution failed: disk on fire"
    assert "[RULE_ERROR] Rule execution failed: disk on fire" in caplog.text
    assert "  Rule: crash" in caplog.text
    assert "  Service: api" in caplog.text
    assert "  Cause: disk on fire" in caplog.text



@pytest.mark.asyncio
async def test_register_and_clear_rules() -> None:
    engine = RuleEngine()
    engine.register_rule(StubRule("one"))
    engine.register_rule(StubRule("two"))

    assert [rule.name for rule in engine.rules] == ["one", "two"]
    engine.rules.clear()
    assert len(engine.rules) == 2

    engine.clear_rules()
    assert await engine.execute(SERVICE) == []
