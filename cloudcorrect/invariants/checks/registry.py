"""Check evaluator — two-level dispatch over (service, type).

Handlers register themselves with ``@register(service, type, required=...)``
and take ``(check, params, credentials)``. ``evaluate_check`` never raises:
configuration problems and provider failures both come back as FAIL results.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from cloudcorrect.invariants.models import Check, CheckResult, Status
from cloudcorrect.providers.aws import Credentials

logger = logging.getLogger(__name__)

Handler = Callable[[Check, dict[str, Any], Credentials | None], CheckResult]


@dataclass(frozen=True)
class CheckSpec:
    service: str
    type: str
    required: tuple[str, ...]
    handler: Handler


_REGISTRY: dict[str, dict[str, CheckSpec]] = {}


def register(service: str, check_type: str, required: Sequence[str] = ()) -> Callable[[Handler], Handler]:
    def decorator(fn: Handler) -> Handler:
        _REGISTRY.setdefault(service, {})[check_type] = CheckSpec(
            service=service, type=check_type, required=tuple(required), handler=fn,
        )
        return fn

    return decorator


def get_spec(service: str, check_type: str) -> CheckSpec | None:
    return _REGISTRY.get(service, {}).get(check_type)


def supported_checks() -> dict[str, list[str]]:
    return {svc: sorted(types) for svc, types in sorted(_REGISTRY.items())}


def verdict(ok: bool) -> Status:
    return Status.PASS if ok else Status.FAIL


def evaluate_check(
    check: Check,
    params: Mapping[str, Any],
    credentials: Credentials | None,
    resolved: Sequence[str] = (),
) -> CheckResult:
    """Evaluate one check against already-resolved parameters."""
    result = _dispatch(check, dict(params), credentials)

    if resolved:
        result.expected = f"{result.expected} (resolved from {', '.join(resolved)})"

    result.check_id = check.id
    result.alias = check.alias
    result.service = check.service
    result.check_type = check.type
    logger.debug("Check %s %s/%s: %s", check.id, check.service, check.type, result.status.value)
    return result


def _dispatch(check: Check, params: dict[str, Any], credentials: Credentials | None) -> CheckResult:
    by_type = _REGISTRY.get(check.service)
    if by_type is None:
        return _config_failure(f"Unsupported service: {check.service}")

    spec = by_type.get(check.type)
    if spec is None:
        return _config_failure(f"Unsupported {check.service} check type: {check.type}")

    missing = [name for name in spec.required if params.get(name) in (None, "")]
    if missing:
        return _config_failure(f"Missing required parameter(s): {', '.join(missing)}")

    try:
        return spec.handler(check, params, credentials)
    except Exception as e:
        logger.warning("Check %s (%s/%s) failed: %s", check.id, check.service, check.type, e)
        return CheckResult(
            status=Status.FAIL,
            expected="Successful API call",
            observed="API error",
            reason=str(e) or type(e).__name__,
        )


def _config_failure(reason: str) -> CheckResult:
    return CheckResult(
        status=Status.FAIL,
        expected="Valid check configuration",
        observed="Invalid configuration",
        reason=reason,
    )
