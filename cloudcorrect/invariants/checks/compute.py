"""EC2 instance checks — existence, state, public reachability."""

from __future__ import annotations

from typing import Any

from cloudcorrect.invariants.checks.registry import register, verdict
from cloudcorrect.invariants.models import Check, CheckResult, Status
from cloudcorrect.providers.aws import Credentials, make_client

_EXPECTED = {
    "INSTANCE_EXISTS": "instance exists",
    "INSTANCE_RUNNING": "instance.state == running",
    "INSTANCE_HAS_PUBLIC_IP": "instance has public ip",
}


def _describe_instance(check: Check, instance_id: str, credentials: Credentials | None) -> dict[str, Any] | None:
    client = make_client("ec2", credentials, check.region)
    resp = client.describe_instances(InstanceIds=[instance_id])
    for reservation in resp.get("Reservations") or []:
        for instance in reservation.get("Instances") or []:
            return instance
    return None


def _instance_facts(instance_id: str, instance: dict[str, Any]) -> dict[str, Any]:
    name = next(
        (t.get("Value") for t in instance.get("Tags") or [] if t.get("Key") == "Name"),
        None,
    ) or "Unnamed"
    return {
        "instanceId": instance_id,
        "publicIp": instance.get("PublicIpAddress"),
        "privateIp": instance.get("PrivateIpAddress"),
        "state": (instance.get("State") or {}).get("Name"),
        "name": name,
        "instanceType": instance.get("InstanceType"),
        "az": (instance.get("Placement") or {}).get("AvailabilityZone"),
        "vpcId": instance.get("VpcId"),
        "subnetId": instance.get("SubnetId"),
    }


def _evidence(f: dict[str, Any]) -> str:
    return (
        f"ID: {f['instanceId']} | Name: {f['name']} | State: {f['state']} | "
        f"Type: {f['instanceType']} | AZ: {f['az']} | Public IP: {f['publicIp'] or 'None'}"
    )


def _not_found(check: Check, instance_id: str) -> CheckResult:
    return CheckResult(
        status=Status.FAIL,
        expected=_EXPECTED[check.type],
        observed="instance not found",
        reason=f"EC2 instance {instance_id} not found in {check.region or 'default region'}",
    )


@register("EC2", "INSTANCE_EXISTS", required=("instanceId",))
def instance_exists(check: Check, params: dict[str, Any], credentials: Credentials | None) -> CheckResult:
    instance_id = str(params["instanceId"])
    instance = _describe_instance(check, instance_id, credentials)
    if instance is None:
        return _not_found(check, instance_id)

    facts = _instance_facts(instance_id, instance)
    return CheckResult(
        status=Status.PASS,
        expected=_EXPECTED[check.type],
        observed=_evidence(facts),
        reason=f"EC2 instance {facts['name']} ({instance_id}) exists",
        data=facts,
    )


@register("EC2", "INSTANCE_RUNNING", required=("instanceId",))
def instance_running(check: Check, params: dict[str, Any], credentials: Credentials | None) -> CheckResult:
    instance_id = str(params["instanceId"])
    instance = _describe_instance(check, instance_id, credentials)
    if instance is None:
        return _not_found(check, instance_id)

    facts = _instance_facts(instance_id, instance)
    running = facts["state"] == "running"
    return CheckResult(
        status=verdict(running),
        expected=_EXPECTED[check.type],
        observed=_evidence(facts),
        reason=f"EC2 instance {facts['name']} ({instance_id}) is {facts['state']}",
        data=facts,
    )


@register("EC2", "INSTANCE_HAS_PUBLIC_IP", required=("instanceId",))
def instance_has_public_ip(check: Check, params: dict[str, Any], credentials: Credentials | None) -> CheckResult:
    instance_id = str(params["instanceId"])
    instance = _describe_instance(check, instance_id, credentials)
    if instance is None:
        return _not_found(check, instance_id)

    facts = _instance_facts(instance_id, instance)
    ip = facts["publicIp"]
    return CheckResult(
        status=verdict(bool(ip)),
        expected=_EXPECTED[check.type],
        observed=_evidence(facts),
        reason=(
            f"EC2 instance {facts['name']} has public IP {ip}"
            if ip else f"EC2 instance {facts['name']} has no public IP"
        ),
        data=facts,
    )
