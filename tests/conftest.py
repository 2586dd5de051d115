"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from cloudcorrect.invariants.models import Check, CloudAccount, InvariantGroup
from cloudcorrect.invariants.store import InvariantStore
from cloudcorrect.providers.aws import Credentials


@pytest.fixture
def store(tmp_path: Path) -> InvariantStore:
    """InvariantStore backed by a temp SQLite file."""
    return InvariantStore(db_path=tmp_path / "test_invariants.db")


@pytest.fixture
def credentials() -> Credentials:
    return Credentials("AKIATEST", "secret")


@pytest.fixture
def account(store: InvariantStore) -> CloudAccount:
    return store.create_account(
        CloudAccount(id="acct1", name="prod", access_key_id="AKIATEST", secret_access_key="secret"),
    )


@pytest.fixture
def group(store: InvariantStore, account: CloudAccount) -> InvariantGroup:
    return store.create_group(InvariantGroup(id="grp1", account_id=account.id, name="Web tier"))


@pytest.fixture
def add_check(store: InvariantStore, group: InvariantGroup):
    """Factory appending a check to ``group`` in call order."""

    def _add(service: str, type: str, parameters: dict[str, Any] | None = None, **kw: Any) -> Check:
        return store.add_check(
            Check(group_id=group.id, service=service, type=type, parameters=parameters or {}, **kw),
        )

    return _add

