"""ECS cluster and service checks."""

from __future__ import annotations

from typing import Any

from cloudcorrect.config import settings
from cloudcorrect.invariants.checks.registry import register, verdict
from cloudcorrect.invariants.models import Check, CheckResult, Status
from cloudcorrect.providers.aws import Credentials, make_client


@register("ECS", "ECS_CLUSTER_ACTIVE", required=("clusterName",))
def cluster_active(check: Check, params: dict[str, Any], credentials: Credentials | None) -> CheckResult:
    cluster_name = str(params["clusterName"])
    client = make_client("ecs", credentials, check.region or settings.default_region)
    clusters = client.describe_clusters(clusters=[cluster_name]).get("clusters") or []
    if not clusters:
        return CheckResult(
            status=Status.FAIL,
            expected="ECS cluster exists",
            observed="Not found",
            reason=f"ECS cluster {cluster_name} not found",
        )

    cluster = clusters[0]
    status = cluster.get("status")
    services = cluster.get("activeServicesCount")
    tasks = cluster.get("runningTasksCount")
    active = status == "ACTIVE"
    return CheckResult(
        status=verdict(active),
        expected="status == ACTIVE",
        observed=f"Status: {status} | Services: {services} | Tasks: {tasks}",
        reason="ECS cluster is active" if active else f"ECS cluster is {status}",
        data={"clusterName": cluster_name, "status": status, "services": services, "tasks": tasks},
    )


@register("ECS", "ECS_SERVICE_RUNNING", required=("clusterName", "serviceName"))
def service_running(check: Check, params: dict[str, Any], credentials: Credentials | None) -> CheckResult:
    cluster_name = str(params["clusterName"])
    service_name = str(params["serviceName"])
    client = make_client("ecs", credentials, check.region or settings.default_region)
    services = client.describe_services(cluster=cluster_name, services=[service_name]).get("services") or []
    if not services:
        return CheckResult(
            status=Status.FAIL,
            expected="ECS service exists",
            observed="Not found",
            reason=f"ECS service {service_name} not found in cluster {cluster_name}",
        )

    service = services[0]
    running = service.get("runningCount")
    desired = service.get("desiredCount")
    status = service.get("status")
    enough_tasks = running is not None and desired is not None and running >= desired
    ok = enough_tasks and status == "ACTIVE"

    if ok:
        reason = "ECS service is healthy"
    elif not enough_tasks:
        reason = "ECS service has insufficient tasks"
    else:
        reason = f"ECS service is {status}"

    return CheckResult(
        status=verdict(ok),
        expected=f"runningCount >= desiredCount ({desired})",
        observed=f"Status: {status} | Running: {running}/{desired} tasks",
        reason=reason,
        data={
            "clusterName": cluster_name,
            "serviceName": service_name,
            "running": running,
            "desired": desired,
            "status": status,
        },
    )
