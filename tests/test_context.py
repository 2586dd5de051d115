"""Tests for sequential evaluation with alias context."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from cloudcorrect.invariants.context import EvaluationContext, run_checks
from cloudcorrect.invariants.models import Check, CheckResult, Status
from cloudcorrect.providers.aws import Credentials


class RecordingEvaluator:
    """Stands in for ``evaluate_check``; returns canned data per check id."""

    def __init__(self, outputs: dict[str, dict[str, Any] | None], failing: set[str] = frozenset()) -> None:
        self.outputs = outputs
        self.failing = failing
        self.calls: list[tuple[str, dict[str, Any], list[str]]] = []

    def __call__(
        self, check: Check, params: dict[str, Any], credentials: Credentials | None, resolved: Sequence[str],
    ) -> CheckResult:
        self.calls.append((check.id, params, list(resolved)))
        return CheckResult(
            status=Status.FAIL if check.id in self.failing else Status.PASS,
            expected="x", observed="y", reason="z",
            data=self.outputs.get(check.id), check_id=check.id, alias=check.alias,
        )


def _check(id: str, alias: str | None = None, **params: Any) -> Check:
    return Check(id=id, group_id="g", service="NETWORK", type="HTTP_200", alias=alias, parameters=params)


class TestRunChecks:
    def test_alias_data_flows_forward(self) -> None:
        evaluator = RecordingEvaluator({"c1": {"publicIp": "1.2.3.4"}})
        checks = [_check("c1", alias="net1"), _check("c2", target="{{net1.publicIp}}")]

        results = run_checks(checks, None, evaluate=evaluator)

        assert [r.check_id for r in results] == ["c1", "c2"]
        assert evaluator.calls[1][1] == {"target": "1.2.3.4"}
        assert evaluator.calls[1][2] == ["{{net1.publicIp}}"]

    def test_strict_declared_order(self) -> None:
        evaluator = RecordingEvaluator({})
        checks = [_check(f"c{i}") for i in range(5)]
        run_checks(checks, None, evaluate=evaluator)
        assert [c[0] for c in evaluator.calls] == ["c0", "c1", "c2", "c3", "c4"]

    def test_forward_reference_stays_literal(self) -> None:
        evaluator = RecordingEvaluator({"c2": {"ip": "9.9.9.9"}})
        checks = [_check("c1", target="{{later.ip}}"), _check("c2", alias="later")]
        run_checks(checks, None, evaluate=evaluator)
        assert evaluator.calls[0][1] == {"target": "{{later.ip}}"}
        assert evaluator.calls[0][2] == []

    def test_check_without_alias_not_referenceable(self) -> None:
        evaluator = RecordingEvaluator({"c1": {"ip": "1.1.1.1"}})
        checks = [_check("c1"), _check("c2", target="{{c1.ip}}")]
        results = run_checks(checks, None, evaluate=evaluator)
        assert evaluator.calls[1][1] == {"target": "{{c1.ip}}"}
        assert len(results) == 2

    def test_later_alias_overwrites(self) -> None:
        evaluator = RecordingEvaluator({"c1": {"ip": "1.1.1.1"}, "c2": {"ip": "2.2.2.2"}})
        checks = [_check("c1", alias="n"), _check("c2", alias="n"), _check("c3", target="{{n.ip}}")]
        run_checks(checks, None, evaluate=evaluator)
        assert evaluator.calls[2][1] == {"target": "2.2.2.2"}

    def test_failing_check_with_data_still_feeds_context(self) -> None:
        evaluator = RecordingEvaluator({"c1": {"ip": "1.1.1.1"}}, failing={"c1"})
        checks = [_check("c1", alias="n"), _check("c2", target="{{n.ip}}")]
        results = run_checks(checks, None, evaluate=evaluator)
        assert results[0].status == Status.FAIL
        assert evaluator.calls[1][1] == {"target": "1.1.1.1"}

    def test_check_parameters_untouched(self) -> None:
        evaluator = RecordingEvaluator({"c1": {"ip": "1.1.1.1"}})
        second = _check("c2", target="{{n.ip}}")
        run_checks([_check("c1", alias="n"), second], None, evaluate=evaluator)
        assert second.parameters == {"target": "{{n.ip}}"}

    def test_empty(self) -> None:
        assert run_checks([], None, evaluate=RecordingEvaluator({})) == []


class TestEvaluationContext:
    def test_record_requires_alias_and_data(self) -> None:
        ctx = EvaluationContext()
        ok = CheckResult(status=Status.PASS, expected="", observed="", reason="", data={"a": 1})
        ctx.record(_check("c1"), ok)
        ctx.record(_check("c2", alias="x"), CheckResult(status=Status.PASS, expected="", observed="", reason=""))
        assert len(ctx) == 0

        ctx.record(_check("c3", alias="y"), ok)
        assert "y" in ctx
        assert ctx.get("y") == {"a": 1}
