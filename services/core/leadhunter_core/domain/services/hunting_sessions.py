"""Hunting session store.

Owns the per-tenant HuntingSession row (config, status, counters) and the
HuntingRun history used for the daily post budget.

Usage:
    service = HuntingSessionService(db=session, notifications=dispatcher)

    hunting = service.get_or_create(tenant_id)
    service.update_config(tenant_id, subreddits=["smallbusiness"], keywords=["crm"])
    await service.pause(tenant_id)
"""

import logging
from datetime import datetime, time
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from leadhunter_core.domain.models import (
    HuntingRun,
    HuntingSession,
    Lead,
    LeadStatus,
    RunStatus,
    SessionStatus,
    utcnow,
)
from leadhunter_core.domain.services.drafting import COMMENT_STYLES
from leadhunter_core.domain.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)


VALID_STATUSES = {
    SessionStatus.IDLE,
    SessionStatus.MONITORING,
    SessionStatus.SEARCHING,
    SessionStatus.SCORING,
    SessionStatus.WAITING_APPROVAL,
    SessionStatus.PAUSED,
}


def _normalize_list(values: list[str], strip_prefix: Optional[str] = None) -> list[str]:
    """Trim entries and drop blanks and case-insensitive repeats, keeping order."""
    seen: set[str] = set()
    result = []
    for value in values:
        item = value.strip()
        if strip_prefix and item.lower().startswith(strip_prefix):
            item = item[len(strip_prefix):]
        if not item or item.lower() in seen:
            continue
        seen.add(item.lower())
        result.append(item)
    return result


class HuntingSessionService:
    """Service for hunting session config, status and statistics."""

    def __init__(self, db: Session, notifications: Optional[NotificationDispatcher] = None):
        self.db = db
        self.notifications = notifications

    # =========================================================================
    # SESSION
    # =========================================================================

    def get_session(self, tenant_id: int) -> Optional[HuntingSession]:
        return (
            self.db.query(HuntingSession)
            .filter(HuntingSession.tenant_id == tenant_id)
            .first()
        )

    def get_or_create(self, tenant_id: int) -> HuntingSession:
        """Get the tenant's session, creating an idle one on first use."""
        hunting = self.get_session(tenant_id)
        if hunting is None:
            hunting = HuntingSession(
                tenant_id=tenant_id,
                status=SessionStatus.IDLE,
                subreddits=[],
                keywords=[],
            )
            self.db.add(hunting)
            self.db.commit()
            self.db.refresh(hunting)
        return hunting

    def update_config(
        self,
        tenant_id: int,
        subreddits: Optional[list[str]] = None,
        keywords: Optional[list[str]] = None,
        min_relevance_score: Optional[int] = None,
        max_post_age_hours: Optional[int] = None,
        comment_style: Optional[str] = None,
        require_approval: Optional[bool] = None,
    ) -> HuntingSession:
        """Update session config; omitted fields are left unchanged.

        Raises:
            ValueError: If a value is out of range.
        """
        hunting = self.get_or_create(tenant_id)

        if min_relevance_score is not None and not 1 <= min_relevance_score <= 10:
            raise ValueError("min_relevance_score must be between 1 and 10")
        if max_post_age_hours is not None and max_post_age_hours < 1:
            raise ValueError("max_post_age_hours must be at least 1")
        if comment_style is not None and comment_style not in COMMENT_STYLES:
            raise ValueError(f"comment_style must be one of {sorted(COMMENT_STYLES)}")

        if subreddits is not None:
            hunting.subreddits = _normalize_list(subreddits, strip_prefix="r/")
        if keywords is not None:
            hunting.keywords = _normalize_list(keywords)
        if min_relevance_score is not None:
            hunting.min_relevance_score = min_relevance_score
        if max_post_age_hours is not None:
            hunting.max_post_age_hours = max_post_age_hours
        if comment_style is not None:
            hunting.comment_style = comment_style
        if require_approval is not None:
            hunting.require_approval = require_approval

        self.db.commit()
        self.db.refresh(hunting)
        return hunting

    # =========================================================================
    # STATUS
    # =========================================================================

    async def set_status(self, tenant_id: int, status: str, reason: str = "") -> HuntingSession:
        """Change a session's status and fire the matching notification.

        Raises:
            ValueError: If the status is unknown.
        """
        if status not in VALID_STATUSES:
            raise ValueError(f"Invalid status: {status}")

        hunting = self.get_or_create(tenant_id)
        previous = hunting.status
        hunting.status = status
        self.db.commit()

        if previous == status or self.notifications is None:
            return hunting

        if status == SessionStatus.PAUSED and previous != SessionStatus.IDLE:
            await self.notifications.hunting_paused(tenant_id, reason)
        elif status == SessionStatus.WAITING_APPROVAL:
            pending = self.count_pending_leads(tenant_id)
            if pending > 0:
                await self.notifications.leads_need_approval(tenant_id, pending)

        return hunting

    async def pause(self, tenant_id: int, reason: str = "") -> HuntingSession:
        return await self.set_status(tenant_id, SessionStatus.PAUSED, reason)

    async def resume(self, tenant_id: int) -> HuntingSession:
        """Start (or restart) background hunting for the tenant."""
        return await self.set_status(tenant_id, SessionStatus.MONITORING)

    def end_approval_wait(self, tenant_id: int) -> bool:
        """Return a waiting_approval session to monitoring once no lead is pending.

        Returns:
            True if the session went back to monitoring.
        """
        hunting = self.get_session(tenant_id)
        if hunting is None or hunting.status != SessionStatus.WAITING_APPROVAL:
            return False
        if self.count_pending_leads(tenant_id) > 0:
            return False

        hunting.status = SessionStatus.MONITORING
        self.db.commit()
        logger.info(f"Leads reviewed for tenant {tenant_id}, hunting resumes")
        return True

    def list_active(self) -> list[HuntingSession]:
        """Active sessions, least recently run first (never-run sessions lead)."""
        return (
            self.db.query(HuntingSession)
            .filter(HuntingSession.status.in_(SessionStatus.ACTIVE))
            .order_by(
                HuntingSession.last_run_at.is_(None).desc(),
                HuntingSession.last_run_at.asc(),
                HuntingSession.id.asc(),
            )
            .all()
        )

    def count_pending_leads(self, tenant_id: int) -> int:
        return (
            self.db.query(func.count(Lead.id))
            .filter(Lead.tenant_id == tenant_id, Lead.status == LeadStatus.PENDING)
            .scalar()
            or 0
        )

    # =========================================================================
    # STATISTICS
    # =========================================================================

    def increment_stats(
        self,
        session_id: int,
        posts_scanned: int = 0,
        leads_found: int = 0,
        dms_started: int = 0,
        last_run_at: Optional[datetime] = None,
        status: Optional[str] = None,
    ) -> None:
        """Atomically add to the session's counters in a single UPDATE."""
        values: dict[Any, Any] = {}
        if posts_scanned:
            values[HuntingSession.posts_scanned] = HuntingSession.posts_scanned + posts_scanned
        if leads_found:
            values[HuntingSession.leads_found] = HuntingSession.leads_found + leads_found
        if dms_started:
            values[HuntingSession.dms_started] = HuntingSession.dms_started + dms_started
        if last_run_at is not None:
            values[HuntingSession.last_run_at] = last_run_at
        if status is not None:
            values[HuntingSession.status] = status
        if not values:
            return

        values[HuntingSession.updated_at] = utcnow()
        (
            self.db.query(HuntingSession)
            .filter(HuntingSession.id == session_id)
            .update(values, synchronize_session=False)
        )
        self.db.commit()

    def set_progress_status(self, session_id: int, status: str) -> bool:
        """Record the orchestrator's current phase.

        Only active sessions are touched, so a pause issued while a run is
        in flight is never overwritten.

        Returns:
            True if the session was updated.
        """
        updated = (
            self.db.query(HuntingSession)
            .filter(
                HuntingSession.id == session_id,
                HuntingSession.status.in_(SessionStatus.ACTIVE),
            )
            .update({HuntingSession.status: status}, synchronize_session=False)
        )
        self.db.commit()
        return bool(updated)

    # =========================================================================
    # RUNS
    # =========================================================================

    def start_run(self, hunting: HuntingSession) -> HuntingRun:
        run = HuntingRun(
            tenant_id=hunting.tenant_id,
            session_id=hunting.id,
            status=RunStatus.RUNNING,
            started_at=utcnow(),
        )
        self.db.add(run)
        self.db.commit()
        self.db.refresh(run)
        return run

    def finish_run(
        self,
        run: HuntingRun,
        status: str,
        posts_scanned: int = 0,
        posts_scored: int = 0,
        leads_created: int = 0,
        subreddits_searched: int = 0,
        skip_reason: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> HuntingRun:
        run.status = status
        run.completed_at = utcnow()
        run.posts_scanned = posts_scanned
        run.posts_scored = posts_scored
        run.leads_created = leads_created
        run.subreddits_searched = subreddits_searched
        run.skip_reason = skip_reason
        run.error_message = error_message
        self.db.commit()
        return run

    def record_skipped_run(self, hunting: HuntingSession, reason: str) -> HuntingRun:
        """Record a skipped run.

        Consecutive skips for the same reason share one row: the session's
        latest run is re-stamped instead of a new row being written.
        """
        logger.info(f"Skipping hunting run for tenant {hunting.tenant_id}: {reason}")

        latest = (
            self.db.query(HuntingRun)
            .filter(HuntingRun.session_id == hunting.id)
            .order_by(HuntingRun.id.desc())
            .first()
        )
        if (
            latest is not None
            and latest.status == RunStatus.SKIPPED
            and latest.skip_reason == reason
        ):
            now = utcnow()
            latest.started_at = now
            latest.completed_at = now
            self.db.commit()
            return latest

        run = self.start_run(hunting)
        return self.finish_run(run, RunStatus.SKIPPED, skip_reason=reason)

    def posts_scanned_today(self, tenant_id: int, now: Optional[datetime] = None) -> int:
        """Posts scanned by the tenant's runs since midnight UTC."""
        now = now or utcnow()
        day_start = datetime.combine(now.date(), time.min)
        total = (
            self.db.query(func.coalesce(func.sum(HuntingRun.posts_scanned), 0))
            .filter(HuntingRun.tenant_id == tenant_id, HuntingRun.started_at >= day_start)
            .scalar()
        )
        return int(total or 0)


__all__ = ["HuntingSessionService", "VALID_STATUSES"]
