"""YAML seeding — loads accounts, groups and their checks into the store.

Format::

    accounts:
      - id: prod
        auth_method: ROLE
        role_arn: arn:aws:iam::123456789012:role/CloudCorrect
        external_id: abc
    groups:
      - id: web-tier
        name: Web tier
        account_id: prod
        notification_emails: [ops@example.com]
        checks:                       # evaluated in this order
          - service: EC2
            type: INSTANCE_RUNNING
            region: eu-west-1
            alias: web
            parameters: {instanceId: i-0abc}
          - service: NETWORK
            type: HTTP_200
            parameters: {url: "http://{{web.publicIp}}/health"}

Entries whose id already exists in the store are left untouched.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import yaml

from cloudcorrect.invariants.models import Check, CloudAccount, InvariantGroup, new_id
from cloudcorrect.invariants.store import InvariantStore

logger = logging.getLogger(__name__)


def load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        logger.warning("Seed file not found: %s", path)
        return {}
    raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    return raw if isinstance(raw, dict) else {}


def seed_from_yaml(path: Path | str, store: InvariantStore) -> list[str]:
    """Create accounts and groups from ``path`` that the store does not have yet.

    Returns the ids of the groups that were created.
    """
    raw = load_yaml(Path(path))

    for entry in raw.get("accounts") or []:
        try:
            account = _parse_account(entry)
        except Exception as e:
            logger.warning("Skipping malformed account entry: %s", e)
            continue
        if store.get_account(account.id) is None:
            store.create_account(account)
            logger.info("Seeded account %s", account.id)

    created: list[str] = []
    for entry in raw.get("groups") or []:
        try:
            group, checks = _parse_group(entry)
        except Exception as e:
            logger.warning("Skipping malformed group entry: %s", e)
            continue
        if store.get_group(group.id) is not None:
            continue

        try:
            store.create_group_with_checks(group, checks)
        except ValueError as e:
            logger.warning("Skipping group %s: %s", group.id, e)
            continue
        created.append(group.id)
        logger.info("Seeded group %s with %d checks", group.id, len(checks))

    return created


def _parse_account(raw: dict[str, Any]) -> CloudAccount:
    return CloudAccount(
        id=str(raw["id"]),
        tenant_id=str(raw.get("tenant_id", "")),
        name=str(raw.get("name", raw["id"])),
        auth_method=str(raw.get("auth_method", "KEYS")).upper(),
        access_key_id=str(raw.get("access_key_id", "")),
        secret_access_key=str(raw.get("secret_access_key", "")),
        role_arn=str(raw.get("role_arn", "")),
        external_id=str(raw.get("external_id", "")),
    )


def _parse_group(raw: dict[str, Any]) -> tuple[InvariantGroup, list[Check]]:
    emails = raw.get("notification_emails") or []
    if isinstance(emails, str):
        emails = [e.strip() for e in emails.split(",") if e.strip()]

    group = InvariantGroup(
        id=str(raw.get("id") or new_id()),
        tenant_id=str(raw.get("tenant_id", "")),
        account_id=str(raw["account_id"]),
        name=str(raw.get("name", raw.get("id", ""))),
        description=str(raw.get("description", "")),
        interval_minutes=int(raw.get("interval_minutes", 5)),
        enabled=bool(raw.get("enabled", True)),
        notification_emails=list(emails),
    )

    # Creation timestamps carry the declared order
    base = datetime.now(timezone.utc)
    checks = []
    for i, c in enumerate(raw.get("checks") or []):
        checks.append(
            Check(
                id=str(c.get("id") or new_id()),
                group_id=group.id,
                service=str(c["service"]),
                type=str(c["type"]),
                region=c.get("region"),
                parameters=dict(c.get("parameters") or {}),
                alias=c.get("alias"),
                created_at=(base + timedelta(microseconds=i)).isoformat(),
            )
        )

    aliases = [c.alias for c in checks if c.alias]
    if len(aliases) != len(set(aliases)):
        raise ValueError(f"duplicate check alias in group {group.id}")
    return group, checks
