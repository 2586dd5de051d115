"""FastAPI server for the invariant engine."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cloudcorrect.api.routes import router
from cloudcorrect.config import settings
from cloudcorrect.invariants.aggregator import RunAggregator
from cloudcorrect.invariants.registry import seed_from_yaml
from cloudcorrect.invariants.scheduler import InvariantScheduler
from cloudcorrect.invariants.store import InvariantStore
from cloudcorrect.notifications import AlertDispatcher

logger = logging.getLogger(__name__)


def build_engine(store: InvariantStore) -> tuple[RunAggregator, AlertDispatcher]:
    alerts = AlertDispatcher(account_loader=store.get_account)
    return RunAggregator(store, alerts=alerts), alerts


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize shared resources on startup."""
    store = InvariantStore()
    try:
        created = seed_from_yaml(settings.registry_path, store)
        if created:
            logger.info("Seeded %d groups from %s", len(created), settings.registry_path)
    except Exception:
        logger.exception("Failed to seed from %s", settings.registry_path)

    aggregator, alerts = build_engine(store)
    scheduler = InvariantScheduler(aggregator)

    app.state.store = store
    app.state.aggregator = aggregator
    app.state.alerts = alerts
    app.state.scheduler = scheduler

    if settings.scheduler_enabled:
        try:
            await scheduler.start()
        except Exception:
            logger.exception("Invariant scheduler failed to start")

    yield

    await scheduler.stop()
    alerts.close()


def create_app() -> FastAPI:
    app = FastAPI(
        title="CloudCorrect - Invariant Engine",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")
    return app


app = create_app()
