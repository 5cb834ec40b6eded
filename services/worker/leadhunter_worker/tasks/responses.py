"""Response monitoring tasks.

Polls connected tenants' inboxes for replies to outreach and reconciles
their sent folders into lead conversations.
"""

import asyncio
import logging
from typing import Any

from leadhunter_worker.celery_app import app

logger = logging.getLogger(__name__)


def _build_monitor(db: Any, redis: Any) -> Any:
    from leadhunter_core.config import get_settings
    from leadhunter_core.domain.services.credentials import get_credential_manager
    from leadhunter_core.domain.services.notifications import NotificationDispatcher
    from leadhunter_core.domain.services.response_monitor import ResponseMonitor

    settings = get_settings()
    return ResponseMonitor(
        db=db,
        credentials=get_credential_manager(db, redis=redis),
        notifications=NotificationDispatcher(
            db,
            webhook_url=settings.push_webhook_url,
            timeout=settings.push_webhook_timeout_seconds,
        ),
        inbox_limit=settings.response_inbox_limit,
    )


async def _check(tenant_id: int | None = None) -> dict[str, Any]:
    from redis.asyncio import Redis

    from leadhunter_core.config import get_settings
    from leadhunter_core.infra.db import session_scope

    redis = Redis.from_url(get_settings().redis_url)
    try:
        with session_scope() as db:
            monitor = _build_monitor(db, redis)
            if tenant_id is None:
                return (await monitor.check_all()).to_dict()
            return (await monitor.check_tenant(tenant_id)).to_dict()
    finally:
        await redis.aclose()


@app.task(
    bind=True,
    name="responses.check_all",
    max_retries=0,
)
def check_all(self) -> dict:
    """Check every connected tenant's inbox.

    Not retried: the next beat tick covers a failed run.

    Returns:
        dict: Summary counters.
    """
    try:
        summary = asyncio.run(_check())
    except Exception as exc:
        logger.error(f"Response check failed: {exc}", exc_info=True)
        return {"status": "failed", "error": str(exc)}

    if summary["new_responses"]:
        logger.info(f"Found {summary['new_responses']} new lead response(s)")
    return {"status": "success", **summary}


@app.task(
    bind=True,
    name="responses.check_tenant",
    max_retries=2,
    default_retry_delay=30,
)
def check_tenant(self, tenant_id: int) -> dict:
    """Check one tenant's inbox.

    Args:
        tenant_id: Tenant to check.

    Returns:
        dict: Per-tenant counters, or an error status.
    """
    from leadhunter_core.domain.errors import AuthExpiredError

    try:
        result = asyncio.run(_check(tenant_id))
    except AuthExpiredError as exc:
        logger.warning(f"Skipping response check for tenant {tenant_id}: {exc}")
        return {"status": "skipped", "tenant_id": tenant_id, "error": str(exc)}
    except Exception as exc:
        logger.error(f"Response check for tenant {tenant_id} failed: {exc}", exc_info=True)

        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc)
        return {"status": "failed", "tenant_id": tenant_id, "error": str(exc)}

    return {"status": "success", **result}
