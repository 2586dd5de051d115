"""API routes for invariant groups.

Endpoints:
  POST /api/groups/{id}/evaluate  — evaluate a group now
  GET  /api/groups/{id}           — group detail with its live checks
  GET  /api/groups/{id}/history   — paginated runs with per-check logs
  GET  /api/status                — service status
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, HTTPException, Query, Request

from cloudcorrect.invariants.checks import supported_checks
from cloudcorrect.invariants.models import CredentialError, NotFoundError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/status")
def system_status(request: Request) -> dict[str, Any]:
    scheduler = getattr(request.app.state, "scheduler", None)
    return {
        "status": "ok",
        "scheduler_running": bool(scheduler and scheduler.running),
        "scheduled_groups": scheduler.scheduled_groups() if scheduler else [],
        "checks": supported_checks(),
    }


@router.post("/groups/{group_id}/evaluate")
async def evaluate_group(group_id: str, request: Request) -> dict[str, Any]:
    """Evaluate a group immediately and return the run outcome."""
    scheduler = request.app.state.scheduler
    try:
        outcome = await scheduler.run_group_now(group_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CredentialError as e:
        logger.warning("Credentials unavailable for group %s: %s", group_id, e)
        raise HTTPException(status_code=502, detail=str(e))
    return outcome.to_dict()


@router.get("/groups/{group_id}")
def get_group(group_id: str, request: Request) -> dict[str, Any]:
    store = request.app.state.store
    group = store.get_group(group_id)
    if group is None:
        raise HTTPException(status_code=404, detail=f"Invariant group not found: {group_id}")

    data = asdict(group)
    data["last_status"] = group.last_status.value
    data["checks"] = [asdict(c) for c in store.list_checks(group_id)]
    return data


@router.get("/groups/{group_id}/history")
def group_history(
    group_id: str,
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> dict[str, Any]:
    store = request.app.state.store
    if store.get_group(group_id) is None:
        raise HTTPException(status_code=404, detail=f"Invariant group not found: {group_id}")
    return store.get_history(group_id, page=page, limit=limit)
