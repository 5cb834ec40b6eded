"""Hunting session orchestrator.

One run processes one tenant: it applies the tier's quota, searches the
session's subreddits in order, scores posts that are new to the tenant
and stores the ones that qualify as pending leads.

Single posts and single subreddits fail independently; only rate
limiting from Reddit stops the rest of the tenant's run. Session counters
are written once, as an atomic increment, when the run ends.

When the session requires approval, a run that leaves leads pending moves
it to waiting_approval, and background runs are skipped while any lead is
still pending. Reviewing the last pending lead returns it to monitoring.

Usage:
    orchestrator = HuntingOrchestrator(
        db=session,
        credentials=manager,
        scorer=QualificationScorer(get_inference_client()),
        notifications=dispatcher,
    )
    result = await orchestrator.run(HuntingContext(tenant=tenant, hunting=hunting))
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.orm import Session

from leadhunter_core.domain.errors import (
    AuthExpiredError,
    DuplicateLeadError,
    ProviderRateLimitedError,
)
from leadhunter_core.domain.models import (
    HuntingRun,
    HuntingSession,
    Lead,
    RunStatus,
    SessionStatus,
    Tenant,
    utcnow,
)
from leadhunter_core.domain.services.candidates import CandidateSource, matched_keywords
from leadhunter_core.domain.services.credentials import CredentialManager
from leadhunter_core.domain.services.dedup import DeduplicationGate
from leadhunter_core.domain.services.hunting_sessions import HuntingSessionService
from leadhunter_core.domain.services.leads import LeadsService
from leadhunter_core.domain.services.notifications import NotificationDispatcher
from leadhunter_core.domain.services.qualification import (
    BusinessContext,
    QualificationScorer,
    qualifies,
)
from leadhunter_core.domain.services.quota import TierLimits, limits_for
from leadhunter_core.observability import RunContext, get_logger
from leadhunter_core.providers.base import CandidatePost

logger = get_logger(__name__)


# Skip reasons recorded on HuntingRun rows
SKIP_TIER = "tier_no_background_hunting"
SKIP_AUTH = "auth_expired"
SKIP_BUDGET = "daily_budget_exhausted"
SKIP_NO_SUBREDDITS = "no_subreddits"
SKIP_WAITING_APPROVAL = "waiting_approval"


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class HuntingContext:
    """Everything one run needs to know about the tenant it processes.

    Attributes:
        tenant: Tenant being processed.
        hunting: The tenant's hunting session.
        deadline: ``time.monotonic()`` value after which no new subreddit
            is started. None means no deadline.
        manual: Whether the run was requested explicitly rather than by the
            background cycle (lifts the tier's background restriction).
        log_context: Context attached to the run's log lines.
    """

    tenant: Tenant
    hunting: HuntingSession
    deadline: Optional[float] = None
    manual: bool = False
    log_context: RunContext = field(default_factory=RunContext)


@dataclass
class HuntingRunResult:
    """Summary of one orchestrator run."""

    tenant_id: int
    status: str
    skip_reason: Optional[str] = None
    posts_scanned: int = 0
    posts_scored: int = 0
    posts_skipped: int = 0
    duplicates: int = 0
    leads_created: int = 0
    subreddits_searched: int = 0
    errors: int = 0
    rate_limited: bool = False
    deadline_reached: bool = False
    lead_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "status": self.status,
            "skip_reason": self.skip_reason,
            "posts_scanned": self.posts_scanned,
            "posts_scored": self.posts_scored,
            "leads_created": self.leads_created,
            "subreddits_searched": self.subreddits_searched,
            "errors": self.errors,
            "rate_limited": self.rate_limited,
            "deadline_reached": self.deadline_reached,
        }


# =============================================================================
# ORCHESTRATOR
# =============================================================================


class HuntingOrchestrator:
    """Runs one hunting pass for one tenant."""

    def __init__(
        self,
        db: Session,
        credentials: CredentialManager,
        scorer: QualificationScorer,
        notifications: Optional[NotificationDispatcher] = None,
        posts_per_subreddit: int = 10,
        ai_call_delay: float = 0.2,
        subreddit_delay: float = 0.5,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = utcnow,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        """Initialize the orchestrator.

        Args:
            db: SQLAlchemy database session.
            credentials: Credential manager (token validation and adapters).
            scorer: Qualification scorer.
            notifications: Dispatcher for new-lead and approval notifications.
            posts_per_subreddit: Max posts requested per subreddit.
            ai_call_delay: Seconds to wait after each scoring call.
            subreddit_delay: Seconds to wait between subreddits.
            sleep: Awaitable used for pacing (injectable for tests).
            clock: Returns the current naive UTC time.
            monotonic: Monotonic clock the deadline is measured against.
        """
        self.db = db
        self.credentials = credentials
        self.scorer = scorer
        self.notifications = notifications
        self.posts_per_subreddit = posts_per_subreddit
        self.ai_call_delay = ai_call_delay
        self.subreddit_delay = subreddit_delay
        self._sleep = sleep
        self._clock = clock
        self._monotonic = monotonic

        self.source = CandidateSource(credentials)
        self.dedup = DeduplicationGate(db)
        self.leads = LeadsService(db)
        self.sessions = HuntingSessionService(db, notifications)

    async def run(self, context: HuntingContext) -> HuntingRunResult:
        """Run one hunting pass for the context's tenant."""
        tenant = context.tenant
        hunting = context.hunting
        log_ctx = context.log_context.child(tenant_id=tenant.id, session_id=hunting.id)

        limits = limits_for(tenant.subscription_tier)

        if not limits.background_hunting and not context.manual:
            return self._skip(hunting, SKIP_TIER)

        if hunting.require_approval and not context.manual:
            if self.sessions.count_pending_leads(tenant.id) > 0:
                result = self._skip(hunting, SKIP_WAITING_APPROVAL)
                await self._await_approval(hunting, notify_inactive=False)
                return result

        try:
            await self.credentials.get_valid_token(tenant.id)
        except AuthExpiredError as e:
            logger.warning(f"Credential unusable, skipping tenant: {e}", context=log_ctx)
            return self._skip(hunting, SKIP_AUTH)

        scanned_today = self.sessions.posts_scanned_today(tenant.id, self._clock())
        remaining = limits.remaining_posts(scanned_today)
        if remaining == 0:
            return self._skip(hunting, SKIP_BUDGET)

        subreddits = list(hunting.subreddits or [])[: limits.subreddits]
        if not subreddits:
            return self._skip(hunting, SKIP_NO_SUBREDDITS)

        run = self.sessions.start_run(hunting)
        log_ctx = log_ctx.child(run_id=run.id)
        result = HuntingRunResult(tenant_id=tenant.id, status=RunStatus.RUNNING)
        created: list[Lead] = []

        logger.info(
            f"Hunting {len(subreddits)} subreddit(s), remaining budget "
            f"{'unlimited' if remaining is None else remaining}",
            context=log_ctx,
        )

        try:
            await self._hunt(context, limits, subreddits, remaining, result, created, log_ctx)
        except Exception as e:
            result.status = RunStatus.FAILED
            self._finish(hunting, run, result, error=str(e))
            logger.error(f"Hunting run failed: {e}", context=log_ctx, exc_info=True)
            raise

        result.status = RunStatus.COMPLETED
        self._finish(hunting, run, result)

        logger.info(
            f"Hunting run done: scanned={result.posts_scanned} scored={result.posts_scored} "
            f"leads={result.leads_created}",
            context=log_ctx,
            rate_limited=result.rate_limited,
            deadline_reached=result.deadline_reached,
        )

        await self._notify(hunting, created)
        return result

    # =========================================================================
    # RUN STEPS
    # =========================================================================

    async def _hunt(
        self,
        context: HuntingContext,
        limits: TierLimits,
        subreddits: list[str],
        remaining: Optional[int],
        result: HuntingRunResult,
        created: list[Lead],
        log_ctx: RunContext,
    ) -> None:
        tenant = context.tenant
        hunting = context.hunting
        keywords = list(hunting.keywords or [])
        session_min = (hunting.min_relevance_score or 0) * 10
        business = BusinessContext(
            description=tenant.business_description,
            target_customer=tenant.target_customer,
        )
        cutoff = self._clock() - timedelta(hours=hunting.max_post_age_hours or 24)

        for index, subreddit in enumerate(subreddits):
            if remaining is not None and remaining <= 0:
                break
            if context.deadline is not None and self._monotonic() >= context.deadline:
                result.deadline_reached = True
                logger.warning("Run budget exhausted, deferring remaining subreddits", context=log_ctx)
                break

            if index > 0:
                await self._sleep(self.subreddit_delay)

            self.sessions.set_progress_status(hunting.id, SessionStatus.SEARCHING)
            limit = self.posts_per_subreddit
            if remaining is not None:
                limit = min(limit, remaining)

            try:
                posts = await self.source.search(
                    tenant.id, subreddit, keywords, limit,
                    max_age_hours=hunting.max_post_age_hours,
                )
            except ProviderRateLimitedError as e:
                result.rate_limited = True
                logger.warning(
                    f"Rate limited on r/{subreddit}, stopping tenant's run: {e}",
                    context=log_ctx,
                    retry_after=e.retry_after,
                )
                break
            except AuthExpiredError as e:
                logger.warning(f"Credential expired mid-run: {e}", context=log_ctx)
                break
            except Exception as e:
                result.errors += 1
                logger.error(f"Search failed for r/{subreddit}: {e}", context=log_ctx)
                continue

            posts = posts[:limit]
            result.subreddits_searched += 1
            result.posts_scanned += len(posts)
            if remaining is not None:
                remaining -= len(posts)

            self.sessions.set_progress_status(hunting.id, SessionStatus.SCORING)
            for post in posts:
                try:
                    lead = await self._process_post(
                        tenant, post, keywords, business, limits.min_score, session_min,
                        cutoff, result,
                    )
                except Exception as e:
                    result.errors += 1
                    logger.error(f"Failed to process post {post.external_id}: {e}", context=log_ctx)
                    continue
                if lead is not None:
                    created.append(lead)
                    result.leads_created += 1
                    result.lead_ids.append(lead.id)

    async def _process_post(
        self,
        tenant: Tenant,
        post: CandidatePost,
        keywords: list[str],
        business: BusinessContext,
        tier_min: int,
        session_min: int,
        cutoff: datetime,
        result: HuntingRunResult,
    ) -> Optional[Lead]:
        if self.dedup.exists(tenant.id, post.external_id):
            result.duplicates += 1
            return None

        if post.is_author_deleted or not post.is_self:
            result.posts_skipped += 1
            return None

        if post.created_at is not None and post.created_at < cutoff:
            result.posts_skipped += 1
            return None

        verdict = await self.scorer.score(post, business)
        result.posts_scored += 1
        await self._sleep(self.ai_call_delay)

        if not qualifies(verdict, tier_min=tier_min, session_min=session_min):
            return None

        try:
            return self.leads.create_lead(
                tenant.id, post, verdict, matched_keywords=matched_keywords(post, keywords)
            )
        except DuplicateLeadError:
            result.duplicates += 1
            return None

    def _skip(self, hunting: HuntingSession, reason: str) -> HuntingRunResult:
        self.sessions.record_skipped_run(hunting, reason)
        return HuntingRunResult(
            tenant_id=hunting.tenant_id,
            status=RunStatus.SKIPPED,
            skip_reason=reason,
        )

    def _finish(
        self,
        hunting: HuntingSession,
        run: HuntingRun,
        result: HuntingRunResult,
        error: Optional[str] = None,
    ) -> None:
        # The failing step may have left the transaction unusable
        if error is not None:
            self.db.rollback()

        session_id = hunting.id
        self.sessions.increment_stats(
            session_id,
            posts_scanned=result.posts_scanned,
            leads_found=result.leads_created,
            last_run_at=self._clock(),
        )
        self.sessions.set_progress_status(session_id, SessionStatus.MONITORING)
        self.sessions.finish_run(
            run,
            result.status,
            posts_scanned=result.posts_scanned,
            posts_scored=result.posts_scored,
            leads_created=result.leads_created,
            subreddits_searched=result.subreddits_searched,
            error_message=error,
        )

    async def _notify(self, hunting: HuntingSession, created: list[Lead]) -> None:
        if not created:
            return

        if self.notifications is not None:
            for lead in created:
                await self.notifications.new_lead(lead)

        if hunting.require_approval:
            await self._await_approval(hunting)

    async def _await_approval(self, hunting: HuntingSession, notify_inactive: bool = True) -> None:
        """Hold an active session in waiting_approval while leads are pending.

        Entering the status sends the approval notification, so a session
        already waiting is not notified again. Sessions outside the active
        statuses keep their status and are notified directly.
        """
        pending = self.sessions.count_pending_leads(hunting.tenant_id)
        if pending == 0:
            return

        self.db.refresh(hunting)
        if hunting.status in SessionStatus.ACTIVE:
            await self.sessions.set_status(hunting.tenant_id, SessionStatus.WAITING_APPROVAL)
        elif notify_inactive and self.notifications is not None:
            await self.notifications.leads_need_approval(hunting.tenant_id, pending)


__all__ = [
    "HuntingContext",
    "HuntingOrchestrator",
    "HuntingRunResult",
    "SKIP_AUTH",
    "SKIP_BUDGET",
    "SKIP_NO_SUBREDDITS",
    "SKIP_TIER",
    "SKIP_WAITING_APPROVAL",
]
