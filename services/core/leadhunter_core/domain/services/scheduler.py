"""Hunting scheduler.

Entry point of the periodic hunting cycle. Every active session is handed
to the orchestrator in turn, least recently run first, with a pause
between tenants. A tenant's failure is logged and rolled back without
touching the rest of the batch. Once the cycle's wall-clock budget is
spent, remaining tenants wait for the next cycle; nothing carries over
between cycles except what is already persisted.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.orm import Session

from leadhunter_core.domain.models import RedditConnection, RunStatus
from leadhunter_core.domain.services.hunting import (
    HuntingContext,
    HuntingOrchestrator,
    HuntingRunResult,
)
from leadhunter_core.domain.services.hunting_sessions import HuntingSessionService
from leadhunter_core.observability import RunContext, get_logger

logger = get_logger(__name__)


@dataclass
class CycleSummary:
    """Outcome of one scheduler cycle."""

    sessions_found: int = 0
    processed: int = 0
    skipped: int = 0
    no_connection: int = 0
    failed: int = 0
    deferred: int = 0
    leads_created: int = 0
    posts_scanned: int = 0
    duration_seconds: float = 0.0
    results: list[HuntingRunResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessions_found": self.sessions_found,
            "processed": self.processed,
            "skipped": self.skipped,
            "no_connection": self.no_connection,
            "failed": self.failed,
            "deferred": self.deferred,
            "leads_created": self.leads_created,
            "posts_scanned": self.posts_scanned,
            "duration_seconds": round(self.duration_seconds, 2),
        }


class HuntingScheduler:
    """Runs the orchestrator for every active session."""

    def __init__(
        self,
        db: Session,
        orchestrator: HuntingOrchestrator,
        run_budget_seconds: float = 540.0,
        tenant_delay: float = 2.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        monotonic: Callable[[], float] = time.monotonic,
        log_context: Optional[RunContext] = None,
    ):
        self.db = db
        self.orchestrator = orchestrator
        self.run_budget_seconds = run_budget_seconds
        self.tenant_delay = tenant_delay
        self._sleep = sleep
        self._monotonic = monotonic
        self.log_context = log_context or RunContext()
        self.sessions = HuntingSessionService(db)

    def _has_connection(self, tenant_id: int) -> bool:
        connection = (
            self.db.query(RedditConnection)
            .filter(RedditConnection.tenant_id == tenant_id)
            .first()
        )
        return connection is not None and connection.connected

    async def run_cycle(self) -> CycleSummary:
        """Process every active session once, within the run budget."""
        started = self._monotonic()
        deadline = started + self.run_budget_seconds
        summary = CycleSummary()

        active = self.sessions.list_active()
        summary.sessions_found = len(active)
        logger.info(f"Hunting cycle starting for {len(active)} session(s)", context=self.log_context)

        ran_any = False
        for index, hunting in enumerate(active):
            if self._monotonic() >= deadline:
                summary.deferred = len(active) - index
                logger.warning(
                    f"Cycle budget exhausted, deferring {summary.deferred} tenant(s)",
                    context=self.log_context,
                )
                break

            tenant_id = hunting.tenant_id
            if not self._has_connection(tenant_id):
                summary.no_connection += 1
                continue

            if ran_any:
                await self._sleep(self.tenant_delay)
            ran_any = True

            context = HuntingContext(
                tenant=hunting.tenant,
                hunting=hunting,
                deadline=deadline,
                log_context=self.log_context.child(tenant_id=tenant_id),
            )
            try:
                result = await self.orchestrator.run(context)
            except Exception as e:
                self.db.rollback()
                summary.failed += 1
                logger.error(
                    f"Hunting failed for tenant {tenant_id}: {e}",
                    context=self.log_context.child(tenant_id=tenant_id),
                    exc_info=True,
                )
                continue

            summary.results.append(result)
            if result.status == RunStatus.SKIPPED:
                summary.skipped += 1
            else:
                summary.processed += 1
                summary.leads_created += result.leads_created
                summary.posts_scanned += result.posts_scanned

        summary.duration_seconds = self._monotonic() - started
        logger.info("Hunting cycle finished", context=self.log_context, **summary.to_dict())
        return summary

    async def run_tenant(self, tenant_id: int, manual: bool = True) -> Optional[HuntingRunResult]:
        """Run the orchestrator for one tenant outside the cycle.

        Returns:
            The run result, or None if the tenant has no hunting session.
        """
        hunting = self.sessions.get_session(tenant_id)
        if hunting is None:
            return None

        context = HuntingContext(
            tenant=hunting.tenant,
            hunting=hunting,
            deadline=self._monotonic() + self.run_budget_seconds,
            manual=manual,
            log_context=self.log_context.child(tenant_id=tenant_id),
        )
        return await self.orchestrator.run(context)


__all__ = ["CycleSummary", "HuntingScheduler"]
