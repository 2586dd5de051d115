"""ALB target group health."""

from __future__ import annotations

from typing import Any

from cloudcorrect.invariants.checks.registry import register, verdict
from cloudcorrect.invariants.models import Check, CheckResult
from cloudcorrect.providers.aws import Credentials, make_client


@register("ALB", "TARGET_GROUP_HEALTHY", required=("targetGroupArn",))
def target_group_healthy(check: Check, params: dict[str, Any], credentials: Credentials | None) -> CheckResult:
    arn = str(params["targetGroupArn"])
    raw_minimum = params.get("minHealthyTargets")
    minimum = 1 if raw_minimum is None else int(raw_minimum)

    client = make_client("elbv2", credentials, check.region)
    resp = client.describe_target_health(TargetGroupArn=arn)
    descriptions = resp.get("TargetHealthDescriptions") or []

    healthy = [
        d for d in descriptions
        if (d.get("TargetHealth") or {}).get("State") == "healthy"
    ]
    healthy_ids = [(d.get("Target") or {}).get("Id") for d in healthy]
    total = len(descriptions)
    ratio = round(len(healthy) / total, 3) if total else 0.0

    shown = ", ".join(str(i) for i in healthy_ids[:5]) + ("..." if len(healthy_ids) > 5 else "")
    ok = len(healthy) >= minimum

    return CheckResult(
        status=verdict(ok),
        expected=f"target group has >={minimum} healthy target{'s' if minimum != 1 else ''}",
        observed=f"Healthy: {len(healthy)}/{total} targets | IDs: {shown or 'none'}",
        reason=(
            f"Target group is healthy with {len(healthy)} targets"
            if ok else f"Target group has {len(healthy)} healthy targets, needs {minimum}"
        ),
        data={
            "healthyCount": len(healthy),
            "totalCount": total,
            "healthyRatio": ratio,
            "targetIds": healthy_ids,
            "targetGroupArn": arn,
        },
    )
