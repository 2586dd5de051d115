"""Run aggregator — the engine's single entry point.

``evaluate_group`` loads a group with its checks and account, runs the checks
in order, derives the group verdict, persists the run atomically and, on
FAIL, hands the results to the alert dispatcher without waiting on it.
At most one evaluation of a given group is in flight at a time.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from typing import Protocol

from cloudcorrect.invariants.context import Evaluator, run_checks
from cloudcorrect.invariants.checks import evaluate_check
from cloudcorrect.invariants.models import (
    AccountNotFoundError,
    CheckResult,
    CloudAccount,
    GroupNotFoundError,
    InvariantGroup,
    RunOutcome,
    Status,
    utcnow,
)
from cloudcorrect.invariants.store import InvariantStore
from cloudcorrect.providers.aws import Credentials, resolve_credentials

logger = logging.getLogger(__name__)


class AlertSink(Protocol):
    def has_targets(self, group: InvariantGroup) -> bool: ...

    def notify(self, group: InvariantGroup, results: Sequence[CheckResult]) -> object: ...


def aggregate_status(results: Sequence[CheckResult]) -> Status:
    """PASS iff every result passed; an empty group is vacuously PASS."""
    return Status.PASS if all(r.status == Status.PASS for r in results) else Status.FAIL


def status_changed(old: Status, new: Status) -> bool:
    """A first evaluation (from PENDING) is never reported as a change."""
    return old != new and old != Status.PENDING


class RunAggregator:
    """Evaluates invariant groups and records their runs."""

    def __init__(
        self,
        store: InvariantStore,
        credentials_resolver: Callable[[CloudAccount], Credentials] = resolve_credentials,
        alerts: AlertSink | None = None,
        evaluate: Evaluator = evaluate_check,
    ) -> None:
        self.store = store
        self._resolve_credentials = credentials_resolver
        self._alerts = alerts
        self._evaluate = evaluate
        # group id -> [lock, number of callers holding or waiting on it]
        self._locks: dict[str, list] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _group_lock(self, group_id: str) -> Iterator[None]:
        with self._locks_guard:
            entry = self._locks.setdefault(group_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[group_id]

    def is_running(self, group_id: str) -> bool:
        with self._locks_guard:
            entry = self._locks.get(group_id)
        return bool(entry and entry[0].locked())

    def evaluate_group(self, group_id: str) -> RunOutcome:
        """Evaluate one group end to end.

        Raises ``NotFoundError`` (before any write) when the group or its
        account is missing, and ``CredentialError`` when the account's
        credentials cannot be produced.
        """
        with self._group_lock(group_id):
            return self._evaluate_locked(group_id)

    def _evaluate_locked(self, group_id: str) -> RunOutcome:
        group = self.store.get_group(group_id)
        if group is None:
            raise GroupNotFoundError(group_id)
        account = self.store.get_account(group.account_id)
        if account is None:
            raise AccountNotFoundError(group_id, group.account_id)

        checks = self.store.list_checks(group_id)
        credentials = self._resolve_credentials(account)

        logger.info("Evaluating group %s (%s): %d checks", group.id, group.name, len(checks))
        results = run_checks(checks, credentials, evaluate=self._evaluate)

        old_status = group.last_status
        new_status = aggregate_status(results)
        evaluated_at = utcnow()
        run = self.store.record_run(group.id, new_status, evaluated_at, results)

        group.last_status = new_status
        group.last_evaluated_at = evaluated_at
        outcome = RunOutcome(
            group_id=group.id,
            status=new_status,
            old_status=old_status,
            results=results,
            changed=status_changed(old_status, new_status),
            run_id=run.id,
            evaluated_at=evaluated_at,
        )
        logger.info(
            "Group %s evaluated: %s (was %s, changed=%s, %d/%d failed)",
            group.id, new_status.value, old_status.value, outcome.changed,
            len(outcome.failed), len(results),
        )

        if new_status == Status.FAIL:
            self._dispatch_alert(group, results)
        return outcome

    def _dispatch_alert(self, group: InvariantGroup, results: Sequence[CheckResult]) -> None:
        if self._alerts is None:
            return
        try:
            if self._alerts.has_targets(group):
                self._alerts.notify(group, results)
        except Exception:
            logger.exception("Alert dispatch for group %s failed", group.id)
