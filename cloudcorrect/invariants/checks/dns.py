"""Route53 record checks."""

from __future__ import annotations

from typing import Any

from cloudcorrect.invariants.checks.registry import register, verdict
from cloudcorrect.invariants.models import Check, CheckResult
from cloudcorrect.providers.aws import Credentials, make_client


def _fqdn(name: str) -> str:
    return name.rstrip(".").lower()


@register("Route53", "DNS_POINTS_TO", required=("hostedZoneId", "recordName", "expectedValue"))
def dns_points_to(check: Check, params: dict[str, Any], credentials: Credentials | None) -> CheckResult:
    zone_id = str(params["hostedZoneId"])
    record_name = str(params["recordName"])
    expected = str(params["expectedValue"])

    # Route53 is global
    client = make_client("route53", credentials)
    resp = client.list_resource_record_sets(
        HostedZoneId=zone_id, StartRecordName=record_name, MaxItems="1",
    )
    record = next(
        (r for r in resp.get("ResourceRecordSets") or [] if _fqdn(r.get("Name", "")) == _fqdn(record_name)),
        None,
    ) or {}

    values = [v.get("Value") for v in record.get("ResourceRecords") or []]
    alias_value = (record.get("AliasTarget") or {}).get("DNSName")

    # Alias targets come back decorated (dualstack. prefix, trailing dot)
    matched = any(v is not None and v.rstrip(".") == expected.rstrip(".") for v in values) or bool(
        alias_value and _fqdn(expected) in _fqdn(alias_value)
    )

    return CheckResult(
        status=verdict(matched),
        expected=f"DNS record {record_name} points to {expected}",
        observed=f"DNS record points to {', '.join(v for v in values if v) or alias_value or 'unknown'}",
        reason="DNS record matches expected value" if matched else "DNS record does not match expected value",
        data={
            "recordName": record_name,
            "values": values,
            "aliasValue": alias_value,
            "type": record.get("Type"),
            "ttl": record.get("TTL"),
            "hostedZoneId": zone_id,
        },
    )
