"""Invariant storage — SQLite-backed accounts, groups, checks and run history.

Evaluation runs and their per-check logs are append-only. A group's
``last_status`` / ``last_evaluated_at`` and the run that produced them are
written in a single transaction by ``record_run``.
"""

from __future__ import annotations

import json
import logging
import math
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from cloudcorrect.config import settings
from cloudcorrect.invariants.models import (
    Check,
    CheckResult,
    CheckResultLog,
    CloudAccount,
    EvaluationRun,
    InvariantGroup,
    Status,
    new_id,
    utcnow,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS cloud_accounts (
        id                TEXT PRIMARY KEY,
        tenant_id         TEXT NOT NULL DEFAULT '',
        name              TEXT NOT NULL DEFAULT '',
        auth_method       TEXT NOT NULL DEFAULT 'KEYS',
        access_key_id     TEXT NOT NULL DEFAULT '',
        secret_access_key TEXT NOT NULL DEFAULT '',
        role_arn          TEXT NOT NULL DEFAULT '',
        external_id       TEXT NOT NULL DEFAULT '',
        created_at        TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS invariant_groups (
        id                  TEXT PRIMARY KEY,
        tenant_id           TEXT NOT NULL DEFAULT '',
        account_id          TEXT NOT NULL,
        name                TEXT NOT NULL DEFAULT '',
        description         TEXT NOT NULL DEFAULT '',
        interval_minutes    INTEGER NOT NULL DEFAULT 5,
        enabled             INTEGER NOT NULL DEFAULT 1,
        notification_emails TEXT NOT NULL DEFAULT '',
        last_status         TEXT NOT NULL DEFAULT 'PENDING',
        last_evaluated_at   TEXT,
        created_at          TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS checks (
        id          TEXT PRIMARY KEY,
        group_id    TEXT NOT NULL REFERENCES invariant_groups (id),
        service     TEXT NOT NULL,
        type        TEXT NOT NULL,
        region      TEXT,
        parameters  TEXT NOT NULL DEFAULT '{}',
        alias       TEXT,
        created_at  TEXT NOT NULL,
        deleted_at  TEXT
    );

    CREATE INDEX IF NOT EXISTS idx_checks_group
        ON checks (group_id, created_at);

    CREATE UNIQUE INDEX IF NOT EXISTS idx_checks_live_alias
        ON checks (group_id, alias)
        WHERE alias IS NOT NULL AND deleted_at IS NULL;

    CREATE TABLE IF NOT EXISTS evaluation_runs (
        id            TEXT PRIMARY KEY,
        group_id      TEXT NOT NULL REFERENCES invariant_groups (id),
        status        TEXT NOT NULL,
        evaluated_at  TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_runs_group
        ON evaluation_runs (group_id, evaluated_at DESC);

    CREATE TABLE IF NOT EXISTS check_result_logs (
        id        TEXT PRIMARY KEY,
        run_id    TEXT NOT NULL REFERENCES evaluation_runs (id),
        check_id  TEXT NOT NULL REFERENCES checks (id),
        position  INTEGER NOT NULL,
        status    TEXT NOT NULL,
        expected  TEXT NOT NULL DEFAULT '',
        observed  TEXT NOT NULL DEFAULT '',
        reason    TEXT NOT NULL DEFAULT ''
    );

    CREATE INDEX IF NOT EXISTS idx_logs_run
        ON check_result_logs (run_id, position);
"""


class InvariantStore:
    """SQLite storage for the invariant engine."""

    def __init__(self, db_path: Path | str | None = None) -> None:
        self._db_path = Path(db_path or settings.db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    @contextmanager
    def _tx(self) -> Iterator[sqlite3.Connection]:
        """One connection, one transaction: committed on success, rolled back on error."""
        conn = self._conn()
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._tx() as conn:
            conn.executescript(_SCHEMA)

    # ── Accounts ──────────────────────────────────────────────────────────

    def create_account(self, account: CloudAccount) -> CloudAccount:
        with self._tx() as conn:
            conn.execute(
                "INSERT INTO cloud_accounts (id, tenant_id, name, auth_method, access_key_id, "
                "secret_access_key, role_arn, external_id, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    account.id, account.tenant_id, account.name, account.auth_method,
                    account.access_key_id, account.secret_access_key,
                    account.role_arn, account.external_id, account.created_at,
                ),
            )
        return account

    def get_account(self, account_id: str) -> CloudAccount | None:
        with self._tx() as conn:
            row = conn.execute("SELECT * FROM cloud_accounts WHERE id = ?", (account_id,)).fetchone()
        return CloudAccount(**dict(row)) if row else None

    # ── Groups ────────────────────────────────────────────────────────────

    def create_group(self, group: InvariantGroup) -> InvariantGroup:
        with self._tx() as conn:
            _insert_group(conn, group)
        return group

    def create_group_with_checks(self, group: InvariantGroup, checks: Sequence[Check]) -> InvariantGroup:
        """Create a group and its checks together; nothing is stored if any insert fails.

        Raises ``ValueError`` on a duplicate group id, check id or live alias.
        """
        try:
            with self._tx() as conn:
                _insert_group(conn, group)
                for check in checks:
                    _insert_check(conn, check)
        except sqlite3.IntegrityError as e:
            raise ValueError(f"Cannot create group {group.id}: {e}") from e
        return group

    def get_group(self, group_id: str) -> InvariantGroup | None:
        with self._tx() as conn:
            row = conn.execute("SELECT * FROM invariant_groups WHERE id = ?", (group_id,)).fetchone()
        return _group_from_row(dict(row)) if row else None

    def list_groups(self, enabled_only: bool = False) -> list[InvariantGroup]:
        query = "SELECT * FROM invariant_groups"
        if enabled_only:
            query += " WHERE enabled = 1"
        with self._tx() as conn:
            rows = conn.execute(query + " ORDER BY created_at, rowid").fetchall()
        return [_group_from_row(dict(r)) for r in rows]

    # ── Checks ────────────────────────────────────────────────────────────

    def add_check(self, check: Check) -> Check:
        """Append a check to its group. Raises ``ValueError`` on a duplicate live alias."""
        try:
            with self._tx() as conn:
                _insert_check(conn, check)
        except sqlite3.IntegrityError as e:
            raise ValueError(f"Cannot add check {check.id} to group {check.group_id}: {e}") from e
        return check

    def delete_check(self, check_id: str) -> bool:
        """Soft-delete a check; its history stays resolvable."""
        with self._tx() as conn:
            cursor = conn.execute(
                "UPDATE checks SET deleted_at = ? WHERE id = ? AND deleted_at IS NULL",
                (utcnow(), check_id),
            )
        return cursor.rowcount > 0

    def get_check(self, check_id: str) -> Check | None:
        """Fetch a check by id, including soft-deleted ones."""
        with self._tx() as conn:
            row = conn.execute("SELECT * FROM checks WHERE id = ?", (check_id,)).fetchone()
        return _check_from_row(dict(row)) if row else None

    def list_checks(self, group_id: str, include_deleted: bool = False) -> list[Check]:
        """Checks of a group in creation order (ties broken by insertion order)."""
        query = "SELECT * FROM checks WHERE group_id = ?"
        if not include_deleted:
            query += " AND deleted_at IS NULL"
        with self._tx() as conn:
            rows = conn.execute(query + " ORDER BY created_at, rowid", (group_id,)).fetchall()
        return [_check_from_row(dict(r)) for r in rows]

    # ── Runs ──────────────────────────────────────────────────────────────

    def record_run(
        self,
        group_id: str,
        status: Status,
        evaluated_at: str,
        results: Sequence[CheckResult],
    ) -> EvaluationRun:
        """Persist one evaluation: group status, run row, one log per result."""
        run = EvaluationRun(id=new_id(), group_id=group_id, status=status, evaluated_at=evaluated_at)
        logs = [
            CheckResultLog(
                id=new_id(), run_id=run.id, check_id=r.check_id, status=r.status,
                expected=r.expected, observed=r.observed, reason=r.reason,
            )
            for r in results
        ]
        with self._tx() as conn:
            conn.execute(
                "UPDATE invariant_groups SET last_status = ?, last_evaluated_at = ? WHERE id = ?",
                (status.value, evaluated_at, group_id),
            )
            conn.execute(
                "INSERT INTO evaluation_runs (id, group_id, status, evaluated_at) VALUES (?, ?, ?, ?)",
                (run.id, group_id, status.value, evaluated_at),
            )
            conn.executemany(
                "INSERT INTO check_result_logs (id, run_id, check_id, position, status, expected, observed, reason) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                [
                    (log.id, log.run_id, log.check_id, i, log.status.value, log.expected, log.observed, log.reason)
                    for i, log in enumerate(logs)
                ],
            )
        return run

    def latest_run(self, group_id: str) -> EvaluationRun | None:
        with self._tx() as conn:
            row = conn.execute(
                "SELECT * FROM evaluation_runs WHERE group_id = ? "
                "ORDER BY evaluated_at DESC, rowid DESC LIMIT 1",
                (group_id,),
            ).fetchone()
        return _run_from_row(dict(row)) if row else None

    def count_runs(self, group_id: str) -> int:
        with self._tx() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM evaluation_runs WHERE group_id = ?", (group_id,),
            ).fetchone()
        return int(row["n"])

    def get_run_logs(self, run_id: str) -> list[dict[str, Any]]:
        """Logs of one run in evaluation order, joined to their (possibly deleted) checks."""
        with self._tx() as conn:
            rows = conn.execute(
                "SELECT l.*, c.service, c.type, c.alias, c.region, c.deleted_at AS check_deleted_at "
                "FROM check_result_logs l LEFT JOIN checks c ON c.id = l.check_id "
                "WHERE l.run_id = ? ORDER BY l.position",
                (run_id,),
            ).fetchall()
        return [dict(r) for r in rows]

    def get_history(self, group_id: str, page: int = 1, limit: int = 10) -> dict[str, Any]:
        """Paginated runs for a group, newest first, each with its check logs."""
        page = max(page, 1)
        limit = max(limit, 1)
        with self._tx() as conn:
            rows = conn.execute(
                "SELECT * FROM evaluation_runs WHERE group_id = ? "
                "ORDER BY evaluated_at DESC, rowid DESC LIMIT ? OFFSET ?",
                (group_id, limit, (page - 1) * limit),
            ).fetchall()

        total = self.count_runs(group_id)
        data = []
        for r in rows:
            run = dict(r)
            run["results"] = self.get_run_logs(run["id"])
            data.append(run)

        return {
            "data": data,
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "totalPages": math.ceil(total / limit),
            },
        }


# ── Row mapping ──────────────────────────────────────────────────────────────


def _insert_group(conn: sqlite3.Connection, group: InvariantGroup) -> None:
    conn.execute(
        "INSERT INTO invariant_groups (id, tenant_id, account_id, name, description, "
        "interval_minutes, enabled, notification_emails, last_status, last_evaluated_at, created_at) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        (
            group.id, group.tenant_id, group.account_id, group.name, group.description,
            group.interval_minutes, int(group.enabled), ",".join(group.notification_emails),
            group.last_status.value, group.last_evaluated_at, group.created_at,
        ),
    )


def _insert_check(conn: sqlite3.Connection, check: Check) -> None:
    conn.execute(
        "INSERT INTO checks (id, group_id, service, type, region, parameters, alias, created_at) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        (
            check.id, check.group_id, check.service, check.type, check.region,
            json.dumps(check.parameters), check.alias, check.created_at,
        ),
    )


def _group_from_row(row: dict[str, Any]) -> InvariantGroup:
    emails = [e.strip() for e in (row.get("notification_emails") or "").split(",") if e.strip()]
    return InvariantGroup(
        id=row["id"],
        tenant_id=row.get("tenant_id", ""),
        account_id=row["account_id"],
        name=row.get("name", ""),
        description=row.get("description", ""),
        interval_minutes=row.get("interval_minutes", 5),
        enabled=bool(row.get("enabled", 1)),
        notification_emails=emails,
        last_status=Status(row.get("last_status") or Status.PENDING.value),
        last_evaluated_at=row.get("last_evaluated_at"),
        created_at=row["created_at"],
    )


def _check_from_row(row: dict[str, Any]) -> Check:
    params = row.get("parameters") or "{}"
    try:
        parameters = json.loads(params)
    except ValueError:
        logger.warning("Check %s has unreadable parameters, using {}", row["id"])
        parameters = {}
    return Check(
        id=row["id"],
        group_id=row["group_id"],
        service=row["service"],
        type=row["type"],
        region=row.get("region"),
        parameters=parameters,
        alias=row.get("alias"),
        created_at=row["created_at"],
        deleted_at=row.get("deleted_at"),
    )


def _run_from_row(row: dict[str, Any]) -> EvaluationRun:
    return EvaluationRun(
        id=row["id"],
        group_id=row["group_id"],
        status=Status(row["status"]),
        evaluated_at=row["evaluated_at"],
    )
