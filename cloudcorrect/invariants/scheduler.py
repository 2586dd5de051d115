"""Invariant scheduler — evaluates enabled groups at their configured intervals.

One asyncio task per group; the blocking aggregator call runs in a thread
pool so many groups can be evaluated concurrently while each group's checks
stay strictly ordered.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from cloudcorrect.config import settings
from cloudcorrect.invariants.aggregator import RunAggregator
from cloudcorrect.invariants.models import InvariantGroup, RunOutcome

logger = logging.getLogger(__name__)


class InvariantScheduler:
    """Schedules and executes group evaluations."""

    def __init__(
        self,
        aggregator: RunAggregator,
        on_outcome: Callable[[RunOutcome], Any] | None = None,
        max_workers: int | None = None,
    ) -> None:
        self.aggregator = aggregator
        self.on_outcome = on_outcome
        self._executor = ThreadPoolExecutor(max_workers=max_workers or settings.scheduler_workers)
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def scheduled_groups(self) -> list[str]:
        return sorted(self._tasks)

    async def start(self) -> None:
        """Start one evaluation loop per enabled group."""
        if self._running:
            return
        self._running = True

        groups = self.aggregator.store.list_groups(enabled_only=True)
        if not groups:
            logger.info("No enabled invariant groups — scheduler idle")
            return

        for group in groups:
            self._tasks[group.id] = asyncio.create_task(
                self._group_loop(group), name=f"invariants-{group.id}",
            )
        logger.info("Invariant scheduler started: %d groups", len(groups))

    async def stop(self) -> None:
        """Stop all group loops."""
        self._running = False
        for task in self._tasks.values():
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        self._tasks.clear()
        self._executor.shutdown(wait=False)
        logger.info("Invariant scheduler stopped")

    async def run_group_now(self, group_id: str) -> RunOutcome:
        """Evaluate a group immediately. Structural errors propagate to the caller."""
        loop = asyncio.get_running_loop()
        outcome = await loop.run_in_executor(self._executor, self.aggregator.evaluate_group, group_id)
        self._publish(outcome)
        return outcome

    def _publish(self, outcome: RunOutcome) -> None:
        if self.on_outcome:
            try:
                self.on_outcome(outcome)
            except Exception:
                logger.exception("Outcome callback error")

    async def _group_loop(self, group: InvariantGroup) -> None:
        """Evaluate now, then every ``interval_minutes`` until stopped."""
        interval = max(group.interval_minutes, 1) * 60
        while self._running:
            try:
                outcome = await self.run_group_now(group.id)
                logger.debug("Scheduled run %s: %s", group.id, outcome.status.value)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Scheduled evaluation of group %s failed", group.id)

            try:
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                break
