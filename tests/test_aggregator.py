"""Tests for the run aggregator (evaluate_group)."""

from __future__ import annotations

import threading
import time
from unittest.mock import MagicMock, patch

import httpx
import pytest

from cloudcorrect.invariants.aggregator import RunAggregator, aggregate_status, status_changed
from cloudcorrect.invariants.models import (
    AccountNotFoundError,
    CheckResult,
    CredentialError,
    GroupNotFoundError,
    InvariantGroup,
    Status,
)


def _result(status: Status) -> CheckResult:
    return CheckResult(status=status, expected="", observed="", reason="")


def _passing(check, params, credentials, resolved) -> CheckResult:
    return CheckResult(status=Status.PASS, expected="ok", observed="ok", reason="fine", check_id=check.id)


def _failing(check, params, credentials, resolved) -> CheckResult:
    return CheckResult(status=Status.FAIL, expected="ok", observed="bad", reason="broken", check_id=check.id)


class FakeAlerts:
    def __init__(self, targets: bool = True, error: Exception | None = None) -> None:
        self.targets = targets
        self.error = error
        self.sent: list[tuple[str, int]] = []

    def has_targets(self, group: InvariantGroup) -> bool:
        return self.targets

    def notify(self, group, results) -> None:
        if self.error:
            raise self.error
        self.sent.append((group.id, len(results)))


class TestAggregateStatus:
    def test_all_pass(self) -> None:
        assert aggregate_status([_result(Status.PASS)] * 3) == Status.PASS

    def test_any_fail(self) -> None:
        assert aggregate_status([_result(Status.PASS), _result(Status.FAIL)]) == Status.FAIL

    def test_empty_is_pass(self) -> None:
        assert aggregate_status([]) == Status.PASS


class TestStatusChanged:
    @pytest.mark.parametrize(
        ("old", "new", "expected"),
        [
            (Status.PENDING, Status.PASS, False),
            (Status.PENDING, Status.FAIL, False),
            (Status.PASS, Status.PASS, False),
            (Status.PASS, Status.FAIL, True),
            (Status.FAIL, Status.PASS, True),
            (Status.FAIL, Status.FAIL, False),
        ],
    )
    def test_matrix(self, old, new, expected) -> None:
        assert status_changed(old, new) is expected


class TestEvaluateGroup:
    def test_one_run_one_log_per_check(self, store, group, add_check) -> None:
        for i in range(3):
            add_check("NETWORK", "PING", {"target": f"10.0.0.{i}"})
        agg = RunAggregator(store, evaluate=_passing)

        outcome = agg.evaluate_group(group.id)

        assert outcome.status == Status.PASS
        assert outcome.old_status == Status.PENDING
        assert outcome.changed is False
        assert store.count_runs(group.id) == 1
        run = store.latest_run(group.id)
        assert run.id == outcome.run_id
        assert len(store.get_run_logs(run.id)) == 3
        loaded = store.get_group(group.id)
        assert loaded.last_status == run.status
        assert loaded.last_evaluated_at == run.evaluated_at

    def test_empty_group_passes(self, store, group) -> None:
        outcome = RunAggregator(store, evaluate=_failing).evaluate_group(group.id)
        assert outcome.status == Status.PASS
        assert outcome.results == []
        assert store.get_run_logs(outcome.run_id) == []

    def test_transition_reported(self, store, group, add_check) -> None:
        add_check("NETWORK", "PING", {"target": "a"})
        RunAggregator(store, evaluate=_passing).evaluate_group(group.id)
        outcome = RunAggregator(store, evaluate=_failing).evaluate_group(group.id)
        assert outcome.old_status == Status.PASS
        assert outcome.status == Status.FAIL
        assert outcome.changed is True
        assert store.count_runs(group.id) == 2

    def test_deleted_checks_are_skipped(self, store, group, add_check) -> None:
        live = add_check("NETWORK", "PING", {"target": "a"})
        gone = add_check("NETWORK", "PING", {"target": "b"})
        store.delete_check(gone.id)
        outcome = RunAggregator(store, evaluate=_passing).evaluate_group(group.id)
        assert [r.check_id for r in outcome.results] == [live.id]

    def test_missing_group(self, store) -> None:
        with pytest.raises(GroupNotFoundError):
            RunAggregator(store, evaluate=_passing).evaluate_group("nope")

    def test_missing_account_writes_nothing(self, store, account) -> None:
        store.create_group(InvariantGroup(id="orphan", account_id="ghost"))
        with pytest.raises(AccountNotFoundError):
            RunAggregator(store, evaluate=_passing).evaluate_group("orphan")
        assert store.count_runs("orphan") == 0
        assert store.get_group("orphan").last_status == Status.PENDING

    def test_credential_error_writes_nothing(self, store, group, add_check) -> None:
        add_check("NETWORK", "PING", {"target": "a"})

        def no_creds(account):
            raise CredentialError("expired")

        agg = RunAggregator(store, credentials_resolver=no_creds, evaluate=_passing)
        with pytest.raises(CredentialError):
            agg.evaluate_group(group.id)
        assert store.count_runs(group.id) == 0

    @patch("cloudcorrect.invariants.checks.network.subprocess.run")
    @patch("cloudcorrect.invariants.checks.compute.make_client")
    def test_provider_error_does_not_abort_later_checks(self, mock_make, mock_run, store, group, add_check) -> None:
        mock_make.return_value.describe_instances.side_effect = RuntimeError("throttled")
        mock_run.return_value = MagicMock(returncode=0, stdout="time=1.0 ms", stderr="")
        add_check("EC2", "INSTANCE_RUNNING", {"instanceId": "i-1"})
        add_check("NETWORK", "PING", {"target": "10.0.0.1"})

        outcome = RunAggregator(store).evaluate_group(group.id)

        assert [r.status for r in outcome.results] == [Status.FAIL, Status.PASS]
        assert outcome.results[0].observed == "API error"
        assert outcome.status == Status.FAIL

    @patch("cloudcorrect.invariants.checks.network.httpx.Client")
    def test_unreachable_http_probe(self, mock_client_cls, store, group, add_check) -> None:
        mock_client_cls.return_value.__enter__.return_value.get.side_effect = httpx.ConnectError("unreachable")
        add_check("NETWORK", "HTTP_200", {"url": "http://10.255.255.1/health"})

        outcome = RunAggregator(store).evaluate_group(group.id)

        assert store.get_group(group.id).last_status == Status.FAIL
        assert store.count_runs(group.id) == 1
        run = store.latest_run(group.id)
        assert run.status == Status.FAIL
        (log,) = store.get_run_logs(outcome.run_id)
        assert log["status"] == "FAIL"


class TestAlerts:
    def test_fail_triggers_alert(self, store, group, add_check) -> None:
        add_check("NETWORK", "PING", {"target": "a"})
        alerts = FakeAlerts()
        RunAggregator(store, alerts=alerts, evaluate=_failing).evaluate_group(group.id)
        assert alerts.sent == [(group.id, 1)]

    def test_pass_does_not_alert(self, store, group, add_check) -> None:
        add_check("NETWORK", "PING", {"target": "a"})
        alerts = FakeAlerts()
        RunAggregator(store, alerts=alerts, evaluate=_passing).evaluate_group(group.id)
        assert alerts.sent == []

    def test_no_targets_no_alert(self, store, group, add_check) -> None:
        add_check("NETWORK", "PING", {"target": "a"})
        alerts = FakeAlerts(targets=False)
        RunAggregator(store, alerts=alerts, evaluate=_failing).evaluate_group(group.id)
        assert alerts.sent == []

    def test_alert_failure_does_not_fail_evaluation(self, store, group, add_check) -> None:
        add_check("NETWORK", "PING", {"target": "a"})
        alerts = FakeAlerts(error=RuntimeError("SES down"))
        outcome = RunAggregator(store, alerts=alerts, evaluate=_failing).evaluate_group(group.id)
        assert outcome.status == Status.FAIL
        assert store.count_runs(group.id) == 1


class TestConcurrency:
    def test_same_group_is_serialised(self, store, group, add_check) -> None:
        add_check("NETWORK", "PING", {"target": "a"})
        entered = threading.Event()
        release = threading.Event()
        active = 0
        peak = 0
        guard = threading.Lock()

        def slow(check, params, credentials, resolved):
            nonlocal active, peak
            with guard:
                active += 1
                peak = max(peak, active)
            entered.set()
            release.wait(timeout=5)
            with guard:
                active -= 1
            return _passing(check, params, credentials, resolved)

        agg = RunAggregator(store, evaluate=slow)
        threads = [threading.Thread(target=agg.evaluate_group, args=(group.id,)) for _ in range(2)]
        threads[0].start()
        assert entered.wait(timeout=5)
        assert agg.is_running(group.id)
        threads[1].start()
        time.sleep(0.1)
        release.set()
        for t in threads:
            t.join(timeout=5)

        assert peak == 1
        assert store.count_runs(group.id) == 2
        assert not agg.is_running(group.id)

    def test_locks_released_after_missing_groups(self, store) -> None:
        agg = RunAggregator(store, evaluate=_passing)
        for i in range(50):
            with pytest.raises(GroupNotFoundError):
                agg.evaluate_group(f"missing-{i}")
        assert len(agg._locks) == 0

    def test_locks_released_after_evaluation(self, store, group, add_check) -> None:
        add_check("NETWORK", "PING", {"target": "a"})
        agg = RunAggregator(store, evaluate=_passing)
        agg.evaluate_group(group.id)
        agg.evaluate_group(group.id)
        assert len(agg._locks) == 0
