"""RDS instance checks — availability, public access, storage encryption."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from cloudcorrect.config import settings
from cloudcorrect.invariants.checks.registry import register, verdict
from cloudcorrect.invariants.models import Check, CheckResult, Status
from cloudcorrect.providers.aws import Credentials, make_client

Assertion = Callable[[dict[str, Any]], tuple[bool, str, str]]


def _evaluate(check: Check, params: dict[str, Any], credentials: Credentials | None, assertion: Assertion) -> CheckResult:
    identifier = str(params["dbInstanceIdentifier"])
    client = make_client("rds", credentials, check.region or settings.default_region)
    instances = client.describe_db_instances(DBInstanceIdentifier=identifier).get("DBInstances") or []
    if not instances:
        return CheckResult(
            status=Status.FAIL,
            expected="RDS instance exists",
            observed="Not found",
            reason=f"RDS instance {identifier} not found",
        )

    db = instances[0]
    facts = {
        "dbInstanceIdentifier": identifier,
        "state": db.get("DBInstanceStatus"),
        "publicAccess": db.get("PubliclyAccessible"),
        "encrypted": db.get("StorageEncrypted"),
        "engine": db.get("Engine"),
        "instanceClass": db.get("DBInstanceClass"),
    }
    ok, expected, reason = assertion(facts)
    return CheckResult(
        status=verdict(ok),
        expected=expected,
        observed=(
            f"Status: {facts['state']} | Public: {facts['publicAccess']} | "
            f"Encrypted: {facts['encrypted']} | Engine: {facts['engine']} | Class: {facts['instanceClass']}"
        ),
        reason=reason,
        data=facts,
    )


@register("RDS", "RDS_INSTANCE_AVAILABLE", required=("dbInstanceIdentifier",))
def instance_available(check: Check, params: dict[str, Any], credentials: Credentials | None) -> CheckResult:
    def assertion(f: dict[str, Any]) -> tuple[bool, str, str]:
        ok = f["state"] == "available"
        return ok, "status == available", "RDS instance is available" if ok else f"RDS instance is {f['state']}"

    return _evaluate(check, params, credentials, assertion)


@register("RDS", "RDS_PUBLIC_ACCESS_DISABLED", required=("dbInstanceIdentifier",))
def public_access_disabled(check: Check, params: dict[str, Any], credentials: Credentials | None) -> CheckResult:
    def assertion(f: dict[str, Any]) -> tuple[bool, str, str]:
        ok = f["publicAccess"] is False
        return ok, "PubliclyAccessible == false", (
            "RDS instance is not publicly accessible" if ok else "RDS instance IS publicly accessible"
        )

    return _evaluate(check, params, credentials, assertion)


@register("RDS", "RDS_ENCRYPTION_ENABLED", required=("dbInstanceIdentifier",))
def encryption_enabled(check: Check, params: dict[str, Any], credentials: Credentials | None) -> CheckResult:
    def assertion(f: dict[str, Any]) -> tuple[bool, str, str]:
        ok = f["encrypted"] is True
        return ok, "StorageEncrypted == true", "RDS storage is encrypted" if ok else "RDS storage is NOT encrypted"

    return _evaluate(check, params, credentials, assertion)
