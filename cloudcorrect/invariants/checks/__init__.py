"""Check evaluator — handlers per provider service, registered on import."""

from cloudcorrect.invariants.checks import (  # noqa: F401
    compute,
    container,
    database,
    dns,
    identity,
    load_balancer,
    network,
    storage,
)
from cloudcorrect.invariants.checks.registry import (
    CheckSpec,
    evaluate_check,
    get_spec,
    register,
    supported_checks,
)
