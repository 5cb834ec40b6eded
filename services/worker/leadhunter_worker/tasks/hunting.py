"""Hunting tasks.

Provides background processing for:
1. The periodic hunting cycle over every active session
2. A one-off run for a single tenant (queued from the API)

Each task opens its own database session and Redis client and runs the
async services under ``asyncio.run``.
"""

import asyncio
import logging
import uuid
from typing import Any

from leadhunter_worker.celery_app import app

logger = logging.getLogger(__name__)


def _build_scheduler(db: Any, redis: Any, task_name: str) -> Any:
    """Wire a HuntingScheduler from settings."""
    from leadhunter_core.config import get_settings
    from leadhunter_core.domain.services.credentials import get_credential_manager
    from leadhunter_core.domain.services.hunting import HuntingOrchestrator
    from leadhunter_core.domain.services.inference import get_inference_client
    from leadhunter_core.domain.services.notifications import NotificationDispatcher
    from leadhunter_core.domain.services.qualification import QualificationScorer
    from leadhunter_core.domain.services.scheduler import HuntingScheduler
    from leadhunter_core.observability import RunContext

    settings = get_settings()

    orchestrator = HuntingOrchestrator(
        db=db,
        credentials=get_credential_manager(db, redis=redis),
        scorer=QualificationScorer(get_inference_client()),
        notifications=NotificationDispatcher(
            db,
            webhook_url=settings.push_webhook_url,
            timeout=settings.push_webhook_timeout_seconds,
        ),
        posts_per_subreddit=settings.hunting_posts_per_subreddit,
        ai_call_delay=settings.hunting_ai_call_delay_seconds,
        subreddit_delay=settings.hunting_subreddit_delay_seconds,
    )
    return HuntingScheduler(
        db=db,
        orchestrator=orchestrator,
        run_budget_seconds=settings.hunting_run_budget_seconds,
        tenant_delay=settings.hunting_tenant_delay_seconds,
        log_context=RunContext(task=task_name, extra={"cycle_id": uuid.uuid4().hex[:12]}),
    )


def _redis_client() -> Any:
    from redis.asyncio import Redis

    from leadhunter_core.config import get_settings

    return Redis.from_url(get_settings().redis_url)


async def _run_cycle() -> dict[str, Any]:
    from leadhunter_core.infra.db import session_scope

    redis = _redis_client()
    try:
        with session_scope() as db:
            scheduler = _build_scheduler(db, redis, "hunting.run_cycle")
            summary = await scheduler.run_cycle()
            return summary.to_dict()
    finally:
        await redis.aclose()


async def _run_tenant(tenant_id: int) -> dict[str, Any]:
    from leadhunter_core.infra.db import session_scope

    redis = _redis_client()
    try:
        with session_scope() as db:
            scheduler = _build_scheduler(db, redis, "hunting.run_tenant")
            result = await scheduler.run_tenant(tenant_id, manual=True)
            if result is None:
                return {"status": "not_found", "tenant_id": tenant_id}
            return result.to_dict()
    finally:
        await redis.aclose()


@app.task(
    bind=True,
    name="hunting.run_cycle",
    max_retries=1,
    default_retry_delay=120,
)
def run_cycle(self) -> dict:
    """Run one hunting cycle over every active session.

    Per-tenant failures are isolated inside the cycle; the task is only
    retried when the cycle itself could not run (database or Redis down,
    inference not configured).

    Returns:
        dict: Cycle summary counters.
    """
    try:
        summary = asyncio.run(_run_cycle())
    except Exception as exc:
        logger.error(f"Hunting cycle failed: {exc}", exc_info=True)

        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc)
        return {"status": "failed", "error": str(exc)}

    return {"status": "success", **summary}


@app.task(
    bind=True,
    name="hunting.run_tenant",
    max_retries=0,
)
def run_tenant(self, tenant_id: int) -> dict:
    """Run hunting once for a single tenant, outside the cycle.

    Args:
        tenant_id: Tenant to hunt for.

    Returns:
        dict: Run result, or an error status.
    """
    try:
        return asyncio.run(_run_tenant(tenant_id))
    except Exception as exc:
        logger.error(f"Hunting run for tenant {tenant_id} failed: {exc}", exc_info=True)
        return {"status": "failed", "tenant_id": tenant_id, "error": str(exc)}
