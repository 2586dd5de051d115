"""Invariant engine models — groups, checks, results and run records.

Groups, checks and accounts are owned by the store; CheckResult is produced
per evaluation and never persisted as-is (its audit projection is
CheckResultLog).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Union

# Recursive value type for check parameters and result data.
JSONValue = Union[str, int, float, bool, None, dict[str, "JSONValue"], list["JSONValue"]]


def new_id() -> str:
    return uuid.uuid4().hex[:12]


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class Status(str, Enum):
    PASS = "PASS"
    FAIL = "FAIL"
    PENDING = "PENDING"  # group never evaluated


# ── Errors ───────────────────────────────────────────────────────────────────


class NotFoundError(LookupError):
    """A structural precondition of an evaluation is missing."""


class GroupNotFoundError(NotFoundError):
    def __init__(self, group_id: str) -> None:
        self.group_id = group_id
        super().__init__(f"Invariant group not found: {group_id}")


class AccountNotFoundError(NotFoundError):
    def __init__(self, group_id: str, account_id: str) -> None:
        self.group_id = group_id
        self.account_id = account_id
        super().__init__(f"Cloud account {account_id} for group {group_id} not found")


class CredentialError(RuntimeError):
    """Raised when provider credentials cannot be produced for an account."""


# ── Definitions ──────────────────────────────────────────────────────────────


@dataclass
class CloudAccount:
    """A cloud account the engine evaluates against."""

    id: str = field(default_factory=new_id)
    tenant_id: str = ""
    name: str = ""
    auth_method: str = "KEYS"  # KEYS | ROLE
    access_key_id: str = ""
    secret_access_key: str = ""
    role_arn: str = ""
    external_id: str = ""
    created_at: str = field(default_factory=utcnow)


@dataclass
class Check:
    """A single declarative assertion against one provider API or network target."""

    id: str = field(default_factory=new_id)
    group_id: str = ""
    service: str = ""  # EC2 | ALB | Route53 | IAM | S3 | RDS | ECS | NETWORK
    type: str = ""
    region: str | None = None
    parameters: dict[str, JSONValue] = field(default_factory=dict)
    alias: str | None = None
    created_at: str = field(default_factory=utcnow)
    deleted_at: str | None = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass
class InvariantGroup:
    """A named, ordered set of checks evaluated together against one account."""

    id: str = field(default_factory=new_id)
    tenant_id: str = ""
    account_id: str = ""
    name: str = ""
    description: str = ""
    interval_minutes: int = 5
    enabled: bool = True
    notification_emails: list[str] = field(default_factory=list)
    last_status: Status = Status.PENDING
    last_evaluated_at: str | None = None
    created_at: str = field(default_factory=utcnow)


# ── Evaluation output ────────────────────────────────────────────────────────


@dataclass
class CheckResult:
    """Outcome of evaluating one check.

    ``data`` exposes machine-readable facts (IPs, ARNs, counts) to later
    checks in the same group through the check's alias.
    """

    status: Status
    expected: str
    observed: str
    reason: str
    data: dict[str, JSONValue] | None = None
    check_id: str = ""
    alias: str | None = None
    service: str = ""
    check_type: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "checkId": self.check_id,
            "alias": self.alias,
            "service": self.service,
            "type": self.check_type,
            "status": self.status.value,
            "expected": self.expected,
            "observed": self.observed,
            "reason": self.reason,
            "data": self.data,
        }


@dataclass
class EvaluationRun:
    id: str
    group_id: str
    status: Status
    evaluated_at: str


@dataclass
class CheckResultLog:
    id: str
    run_id: str
    check_id: str
    status: Status
    expected: str
    observed: str
    reason: str


@dataclass
class RunOutcome:
    """What ``evaluate_group`` hands back to its caller."""

    group_id: str
    status: Status
    old_status: Status
    results: list[CheckResult]
    changed: bool
    run_id: str = ""
    evaluated_at: str = ""

    @property
    def failed(self) -> list[CheckResult]:
        return [r for r in self.results if r.status == Status.FAIL]

    def to_dict(self) -> dict[str, Any]:
        return {
            "groupId": self.group_id,
            "status": self.status.value,
            "oldStatus": self.old_status.value,
            "changed": self.changed,
            "runId": self.run_id,
            "evaluatedAt": self.evaluated_at,
            "results": [r.to_dict() for r in self.results],
        }
