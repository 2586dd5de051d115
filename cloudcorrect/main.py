"""Entry point for the CloudCorrect invariant engine."""

from __future__ import annotations

import argparse
import logging
import sys

import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from cloudcorrect.config import settings
from cloudcorrect.invariants.models import CredentialError, NotFoundError, RunOutcome, Status
from cloudcorrect.invariants.registry import seed_from_yaml
from cloudcorrect.invariants.store import InvariantStore

console = Console()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)

_STYLE = {Status.PASS: "bold green", Status.FAIL: "bold red", Status.PENDING: "yellow"}


def run_server() -> None:
    """Start the FastAPI server."""
    console.print(Panel("Starting CloudCorrect API Server", style="bold green"))
    uvicorn.run(
        "cloudcorrect.api.server:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


def render_outcome(outcome: RunOutcome) -> None:
    table = Table(title=f"Group {outcome.group_id}")
    table.add_column("Check")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Expected")
    table.add_column("Observed")
    table.add_column("Reason")
    for r in outcome.results:
        table.add_row(
            r.alias or r.check_id,
            f"{r.service}/{r.check_type}",
            f"[{_STYLE[r.status]}]{r.status.value}[/]",
            r.expected,
            r.observed,
            r.reason,
        )
    console.print(table)

    changed = " (changed)" if outcome.changed else ""
    console.print(
        f"Verdict: [{_STYLE[outcome.status]}]{outcome.status.value}[/] "
        f"[dim]was {outcome.old_status.value}{changed}, run {outcome.run_id}[/dim]"
    )


def run_evaluate(group_id: str) -> int:
    """Evaluate one group and print its results."""
    from cloudcorrect.api.server import build_engine

    store = InvariantStore()
    aggregator, alerts = build_engine(store)
    try:
        with console.status(f"[bold green]Evaluating {group_id}..."):
            outcome = aggregator.evaluate_group(group_id)
    except (NotFoundError, CredentialError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        return 1
    finally:
        alerts.close()

    render_outcome(outcome)
    return 0 if outcome.status == Status.PASS else 2


def run_seed(path: str) -> int:
    created = seed_from_yaml(path, InvariantStore())
    console.print(f"Seeded {len(created)} group(s): {', '.join(created) or '-'}")
    return 0


def run_history(group_id: str, limit: int) -> int:
    store = InvariantStore()
    if store.get_group(group_id) is None:
        console.print(f"[bold red]Error:[/bold red] Invariant group not found: {group_id}")
        return 1

    history = store.get_history(group_id, page=1, limit=limit)
    table = Table(title=f"History of {group_id} ({history['pagination']['total']} runs)")
    table.add_column("Evaluated at")
    table.add_column("Status")
    table.add_column("Failed checks")
    for run in history["data"]:
        status = Status(run["status"])
        failed = [r.get("alias") or r["check_id"] for r in run["results"] if r["status"] == Status.FAIL.value]
        table.add_row(run["evaluated_at"], f"[{_STYLE[status]}]{status.value}[/]", ", ".join(failed) or "-")
    console.print(table)
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="CloudCorrect invariant engine")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Start the API server and scheduler")

    eval_parser = sub.add_parser("evaluate", help="Evaluate an invariant group once")
    eval_parser.add_argument("group_id")

    seed_parser = sub.add_parser("seed", help="Load accounts and groups from a YAML file")
    seed_parser.add_argument("path", nargs="?", default=settings.registry_path)

    hist_parser = sub.add_parser("history", help="Show recent runs of a group")
    hist_parser.add_argument("group_id")
    hist_parser.add_argument("--limit", type=int, default=10)

    args = parser.parse_args()

    if args.command == "serve":
        run_server()
    elif args.command == "evaluate":
        sys.exit(run_evaluate(args.group_id))
    elif args.command == "seed":
        sys.exit(run_seed(args.path))
    elif args.command == "history":
        sys.exit(run_history(args.group_id, args.limit))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
