"""Context accumulator — runs a group's checks in declared order.

Each check's parameters are resolved against the data produced by the
aliased checks before it; its own data then joins the context for the
checks after it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from typing import Any

from cloudcorrect.invariants.checks import evaluate_check
from cloudcorrect.invariants.models import Check, CheckResult
from cloudcorrect.invariants.placeholders import resolve_placeholders
from cloudcorrect.providers.aws import Credentials

logger = logging.getLogger(__name__)

Evaluator = Callable[[Check, dict[str, Any], Credentials | None, Sequence[str]], CheckResult]


class EvaluationContext:
    """alias → result data, shared by the checks of one evaluation."""

    def __init__(self) -> None:
        self._data: dict[str, dict[str, Any]] = {}

    def record(self, check: Check, result: CheckResult) -> None:
        if check.alias and result.data:
            self._data[check.alias] = result.data

    def get(self, alias: str) -> dict[str, Any] | None:
        return self._data.get(alias)

    def as_mapping(self) -> dict[str, dict[str, Any]]:
        return self._data

    def __contains__(self, alias: object) -> bool:
        return alias in self._data

    def __len__(self) -> int:
        return len(self._data)


def run_checks(
    checks: Iterable[Check],
    credentials: Credentials | None,
    evaluate: Evaluator = evaluate_check,
    context: EvaluationContext | None = None,
) -> list[CheckResult]:
    """Evaluate ``checks`` strictly in order and return one result per check.

    A reference to an alias that was never populated stays as literal text
    and the check evaluates against it as-is.
    """
    ctx = context if context is not None else EvaluationContext()
    results: list[CheckResult] = []

    for check in checks:
        resolution = resolve_placeholders(check.parameters, ctx.as_mapping())
        if resolution.resolved:
            logger.debug("Check %s resolved %s", check.id, ", ".join(resolution.resolved))

        result = evaluate(check, resolution.value, credentials, resolution.resolved)
        results.append(result)
        ctx.record(check, result)

    return results
