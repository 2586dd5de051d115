"""IAM role checks."""

from __future__ import annotations

from typing import Any

from botocore.exceptions import ClientError

from cloudcorrect.invariants.checks.registry import register, verdict
from cloudcorrect.invariants.models import Check, CheckResult, Status
from cloudcorrect.providers.aws import Credentials, make_client


@register("IAM", "ROLE_EXISTS", required=("roleName",))
def role_exists(check: Check, params: dict[str, Any], credentials: Credentials | None) -> CheckResult:
    role_name = str(params["roleName"])
    client = make_client("iam", credentials)
    try:
        role = client.get_role(RoleName=role_name).get("Role") or {}
    except ClientError as e:
        return CheckResult(
            status=Status.FAIL,
            expected=f"IAM role {role_name} exists",
            observed="Role not found",
            reason=str(e),
            data={"roleName": role_name},
        )

    created = role.get("CreateDate")
    return CheckResult(
        status=Status.PASS,
        expected=f"IAM role {role_name} exists",
        observed="Role found",
        reason="IAM role exists",
        data={
            "roleName": role_name,
            "arn": role.get("Arn"),
            "path": role.get("Path"),
            "createDate": created.isoformat() if hasattr(created, "isoformat") else created,
        },
    )


@register("IAM", "ROLE_HAS_POLICY", required=("roleName", "policyArn"))
def role_has_policy(check: Check, params: dict[str, Any], credentials: Credentials | None) -> CheckResult:
    role_name = str(params["roleName"])
    policy_arn = str(params["policyArn"])

    client = make_client("iam", credentials)
    attached: list[dict[str, Any]] = []
    for page in client.get_paginator("list_attached_role_policies").paginate(RoleName=role_name):
        attached.extend(page.get("AttachedPolicies") or [])

    has_policy = any(p.get("PolicyArn") == policy_arn for p in attached)
    return CheckResult(
        status=verdict(has_policy),
        expected=f"IAM role has policy {policy_arn} attached",
        observed="Policy found" if has_policy else "Policy not found",
        reason="IAM role has the required policy" if has_policy else "IAM role is missing the required policy",
        data={
            "roleName": role_name,
            "policyArn": policy_arn,
            "attachedPolicies": [
                {"PolicyName": p.get("PolicyName"), "PolicyArn": p.get("PolicyArn")} for p in attached
            ],
        },
    )
