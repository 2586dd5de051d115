"""Invariant engine — placeholder resolution, check evaluation, run aggregation."""

from cloudcorrect.invariants.models import (
    Check,
    CheckResult,
    CloudAccount,
    InvariantGroup,
    NotFoundError,
    RunOutcome,
    Status,
)
