"""Unit tests for the hunting orchestrator.

Reddit and the inference endpoint are replaced by fakes; the database is
the in-memory SQLite fixture.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from leadhunter_core.domain.models import (
    HuntingRun,
    Lead,
    LeadStatus,
    Notification,
    NotificationKind,
    RunStatus,
    SessionStatus,
    SubscriptionTier,
    utcnow,
)
from leadhunter_core.domain.services.hunting import (
    SKIP_AUTH,
    SKIP_BUDGET,
    SKIP_NO_SUBREDDITS,
    SKIP_TIER,
    SKIP_WAITING_APPROVAL,
    HuntingContext,
    HuntingOrchestrator,
)
from leadhunter_core.domain.services.notifications import NotificationDispatcher
from leadhunter_core.domain.services.qualification import QualificationScorer

from factories import create_connection, create_lead, create_session, create_tenant
from fakes import make_post


@pytest.fixture
def orchestrator(db_session, credential_manager, fake_inference):
    return HuntingOrchestrator(
        db=db_session,
        credentials=credential_manager,
        scorer=QualificationScorer(fake_inference),
        notifications=NotificationDispatcher(db_session),
        sleep=AsyncMock(),
    )


def setup_tenant(db_session, crypto, tier=SubscriptionTier.BASIC, connected=True, **session_kwargs):
    tenant = create_tenant(db_session, tier=tier)
    if connected:
        create_connection(db_session, tenant, crypto)
    hunting = create_session(db_session, tenant, **session_kwargs)
    db_session.commit()
    return tenant, hunting


def posts_for(subreddit, count, prefix=None):
    prefix = prefix or subreddit
    return [make_post(f"{prefix}{i}", title=f"{subreddit} post {i}", subreddit=subreddit) for i in range(count)]


class TestHappyPath:
    """Tests for a normal run."""

    @pytest.mark.asyncio
    async def test_fresh_qualifying_post_becomes_lead(
        self, db_session, crypto, orchestrator, fake_adapter
    ):
        tenant, hunting = setup_tenant(db_session, crypto)
        fake_adapter.posts["smallbusiness"] = [make_post("abc123")]

        result = await orchestrator.run(HuntingContext(tenant=tenant, hunting=hunting))

        assert result.status == RunStatus.COMPLETED
        assert result.posts_scanned == 1
        assert result.posts_scored == 1
        assert result.leads_created == 1

        lead = db_session.query(Lead).filter_by(tenant_id=tenant.id).one()
        assert lead.post_id == "abc123"
        assert lead.relevance_score == 90
        assert lead.matched_keywords == ["crm"]

        kinds = {n.kind for n in db_session.query(Notification).filter_by(tenant_id=tenant.id)}
        assert kinds == {NotificationKind.NEW_LEAD, NotificationKind.LEAD_APPROVAL}

    @pytest.mark.asyncio
    async def test_session_counters_and_run_history(
        self, db_session, crypto, orchestrator, fake_adapter
    ):
        tenant, hunting = setup_tenant(db_session, crypto, require_approval=False)
        fake_adapter.posts["smallbusiness"] = posts_for("smallbusiness", 3)

        await orchestrator.run(HuntingContext(tenant=tenant, hunting=hunting))

        db_session.refresh(hunting)
        assert hunting.posts_scanned == 3
        assert hunting.leads_found == 3
        assert hunting.last_run_at is not None
        assert hunting.status == SessionStatus.MONITORING

        run = db_session.query(HuntingRun).filter_by(tenant_id=tenant.id).one()
        assert run.status == RunStatus.COMPLETED
        assert run.posts_scanned == 3
        assert run.subreddits_searched == 1
        assert run.completed_at is not None

    @pytest.mark.asyncio
    async def test_no_approval_notification_when_not_required(
        self, db_session, crypto, orchestrator, fake_adapter
    ):
        tenant, hunting = setup_tenant(db_session, crypto, require_approval=False)
        fake_adapter.posts["smallbusiness"] = [make_post("abc123")]

        await orchestrator.run(HuntingContext(tenant=tenant, hunting=hunting))

        kinds = [n.kind for n in db_session.query(Notification).filter_by(tenant_id=tenant.id)]
        assert kinds == [NotificationKind.NEW_LEAD]


class TestFiltering:
    """Tests for posts that must not become leads."""

    @pytest.mark.asyncio
    async def test_below_threshold(self, db_session, crypto, orchestrator, fake_adapter, fake_inference):
        tenant, hunting = setup_tenant(db_session, crypto, min_relevance_score=7)
        fake_adapter.posts["smallbusiness"] = [make_post("low1", title="Meh post")]
        fake_inference.verdicts["Meh post"] = {
            "score": 65, "buyingIntent": "medium", "shouldEngage": True,
        }

        result = await orchestrator.run(HuntingContext(tenant=tenant, hunting=hunting))

        assert result.posts_scored == 1
        assert result.leads_created == 0
        assert db_session.query(Lead).count() == 0

    @pytest.mark.asyncio
    async def test_session_minimum_above_tier_minimum(
        self, db_session, crypto, orchestrator, fake_adapter, fake_inference
    ):
        tenant, hunting = setup_tenant(db_session, crypto, min_relevance_score=9)
        fake_adapter.posts["smallbusiness"] = [make_post("p1", title="Good post")]
        fake_inference.verdicts["Good post"] = {"score": 85, "shouldEngage": True}

        result = await orchestrator.run(HuntingContext(tenant=tenant, hunting=hunting))

        assert result.leads_created == 0

    @pytest.mark.asyncio
    async def test_not_engaging(self, db_session, crypto, orchestrator, fake_adapter, fake_inference):
        tenant, hunting = setup_tenant(db_session, crypto)
        fake_adapter.posts["smallbusiness"] = [make_post("p1", title="Rant")]
        fake_inference.verdicts["Rant"] = {"score": 95, "shouldEngage": False}

        result = await orchestrator.run(HuntingContext(tenant=tenant, hunting=hunting))

        assert result.leads_created == 0

    @pytest.mark.asyncio
    async def test_duplicate_not_rescored(
        self, db_session, crypto, orchestrator, fake_adapter, fake_inference
    ):
        tenant, hunting = setup_tenant(db_session, crypto, require_approval=False)
        create_lead(db_session, tenant, post_id="abc123")
        db_session.commit()
        fake_adapter.posts["smallbusiness"] = [make_post("abc123")]

        result = await orchestrator.run(HuntingContext(tenant=tenant, hunting=hunting))

        assert result.duplicates == 1
        assert result.posts_scored == 0
        assert fake_inference.prompts == []
        assert db_session.query(Lead).filter_by(tenant_id=tenant.id).count() == 1

    @pytest.mark.asyncio
    async def test_old_deleted_and_link_posts_skipped(
        self, db_session, crypto, orchestrator, fake_adapter, fake_inference
    ):
        tenant, hunting = setup_tenant(db_session, crypto, max_post_age_hours=24)
        fake_adapter.posts["smallbusiness"] = [
            make_post("old", created_at=utcnow() - timedelta(hours=30)),
            make_post("gone", author="[deleted]"),
            make_post("link", is_self=False),
        ]

        result = await orchestrator.run(HuntingContext(tenant=tenant, hunting=hunting))

        assert result.posts_scanned == 3
        assert result.posts_skipped == 3
        assert fake_inference.prompts == []

    @pytest.mark.asyncio
    async def test_degraded_scoring_creates_no_lead(
        self, db_session, crypto, orchestrator, fake_adapter, fake_inference
    ):
        tenant, hunting = setup_tenant(db_session, crypto)
        fake_adapter.posts["smallbusiness"] = [make_post("p1")]
        fake_inference.fail = True

        result = await orchestrator.run(HuntingContext(tenant=tenant, hunting=hunting))

        assert result.status == RunStatus.COMPLETED
        assert result.posts_scored == 1
        assert result.leads_created == 0


class TestQuota:
    """Tests for tier limits."""

    @pytest.mark.asyncio
    async def test_daily_post_cap(self, db_session, crypto, orchestrator, fake_adapter):
        tenant, hunting = setup_tenant(db_session, crypto, subreddits=["a", "b", "c"])
        for name in ("a", "b", "c"):
            fake_adapter.posts[name] = posts_for(name, 10)

        result = await orchestrator.run(HuntingContext(tenant=tenant, hunting=hunting))

        assert result.posts_scanned == 25
        assert [call[2] for call in fake_adapter.search_calls] == [10, 10, 5]

    @pytest.mark.asyncio
    async def test_budget_carries_across_runs_in_a_day(
        self, db_session, crypto, orchestrator, fake_adapter
    ):
        tenant, hunting = setup_tenant(db_session, crypto)
        fake_adapter.posts["smallbusiness"] = posts_for("smallbusiness", 10)
        db_session.add(
            HuntingRun(
                tenant_id=tenant.id,
                session_id=hunting.id,
                status=RunStatus.COMPLETED,
                started_at=utcnow(),
                posts_scanned=20,
            )
        )
        db_session.commit()

        result = await orchestrator.run(HuntingContext(tenant=tenant, hunting=hunting))

        assert result.posts_scanned == 5

    @pytest.mark.asyncio
    async def test_exhausted_budget_skips(self, db_session, crypto, orchestrator, fake_adapter):
        tenant, hunting = setup_tenant(db_session, crypto)
        db_session.add(
            HuntingRun(
                tenant_id=tenant.id,
                session_id=hunting.id,
                status=RunStatus.COMPLETED,
                started_at=utcnow(),
                posts_scanned=25,
            )
        )
        db_session.commit()

        result = await orchestrator.run(HuntingContext(tenant=tenant, hunting=hunting))

        assert result.status == RunStatus.SKIPPED
        assert result.skip_reason == SKIP_BUDGET
        assert fake_adapter.search_calls == []

    @pytest.mark.asyncio
    async def test_subreddits_capped_by_tier(self, db_session, crypto, orchestrator, fake_adapter):
        tenant, hunting = setup_tenant(db_session, crypto, subreddits=["a", "b", "c", "d", "e"])

        await orchestrator.run(HuntingContext(tenant=tenant, hunting=hunting))

        assert [call[0] for call in fake_adapter.search_calls] == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_search_reaches_back_max_post_age(
        self, db_session, crypto, orchestrator, fake_adapter
    ):
        tenant, hunting = setup_tenant(db_session, crypto, max_post_age_hours=72)

        await orchestrator.run(HuntingContext(tenant=tenant, hunting=hunting))

        assert fake_adapter.search_calls == [("smallbusiness", ["crm"], 10, 72)]

    @pytest.mark.asyncio
    async def test_free_tier_skipped_in_background(self, db_session, crypto, orchestrator, fake_adapter):
        tenant, hunting = setup_tenant(db_session, crypto, tier=SubscriptionTier.FREE)

        result = await orchestrator.run(HuntingContext(tenant=tenant, hunting=hunting))

        assert result.status == RunStatus.SKIPPED
        assert result.skip_reason == SKIP_TIER
        assert fake_adapter.search_calls == []
        run = db_session.query(HuntingRun).filter_by(tenant_id=tenant.id).one()
        assert run.skip_reason == SKIP_TIER

    @pytest.mark.asyncio
    async def test_free_tier_manual_run(self, db_session, crypto, orchestrator, fake_adapter):
        tenant, hunting = setup_tenant(db_session, crypto, tier=SubscriptionTier.FREE)
        fake_adapter.posts["smallbusiness"] = posts_for("smallbusiness", 20)

        result = await orchestrator.run(
            HuntingContext(tenant=tenant, hunting=hunting, manual=True)
        )

        assert result.status == RunStatus.COMPLETED
        assert result.posts_scanned == 10


class TestFailures:
    """Tests for skips and isolated failures."""

    @pytest.mark.asyncio
    async def test_no_connection_skips(self, db_session, crypto, orchestrator, fake_adapter):
        tenant, hunting = setup_tenant(db_session, crypto, connected=False)

        result = await orchestrator.run(HuntingContext(tenant=tenant, hunting=hunting))

        assert result.status == RunStatus.SKIPPED
        assert result.skip_reason == SKIP_AUTH

    @pytest.mark.asyncio
    async def test_no_subreddits_skips(self, db_session, crypto, orchestrator):
        tenant, hunting = setup_tenant(db_session, crypto, subreddits=[])

        result = await orchestrator.run(HuntingContext(tenant=tenant, hunting=hunting))

        assert result.skip_reason == SKIP_NO_SUBREDDITS

    @pytest.mark.asyncio
    async def test_rate_limit_stops_remaining_subreddits(
        self, db_session, crypto, orchestrator, fake_adapter
    ):
        tenant, hunting = setup_tenant(db_session, crypto, subreddits=["a", "b", "c"])
        fake_adapter.posts["a"] = posts_for("a", 2)
        fake_adapter.rate_limited.add("b")
        fake_adapter.posts["c"] = posts_for("c", 2)

        result = await orchestrator.run(HuntingContext(tenant=tenant, hunting=hunting))

        assert result.status == RunStatus.COMPLETED
        assert result.rate_limited is True
        assert result.leads_created == 2
        assert [call[0] for call in fake_adapter.search_calls] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_failing_subreddit_is_isolated(
        self, db_session, crypto, orchestrator, fake_adapter
    ):
        tenant, hunting = setup_tenant(db_session, crypto, subreddits=["a", "b"])
        fake_adapter.failing.add("a")
        fake_adapter.posts["b"] = posts_for("b", 1)

        result = await orchestrator.run(HuntingContext(tenant=tenant, hunting=hunting))

        assert result.errors == 1
        assert result.subreddits_searched == 1
        assert result.leads_created == 1

    @pytest.mark.asyncio
    async def test_deadline_defers_remaining_subreddits(
        self, db_session, crypto, credential_manager, fake_inference, fake_adapter
    ):
        ticks = iter([0.0, 100.0, 100.0, 100.0])
        orchestrator = HuntingOrchestrator(
            db=db_session,
            credentials=credential_manager,
            scorer=QualificationScorer(fake_inference),
            sleep=AsyncMock(),
            monotonic=lambda: next(ticks, 100.0),
        )
        tenant, hunting = setup_tenant(db_session, crypto, subreddits=["a", "b"])
        fake_adapter.posts["a"] = posts_for("a", 1)

        result = await orchestrator.run(
            HuntingContext(tenant=tenant, hunting=hunting, deadline=50.0)
        )

        assert result.deadline_reached is True
        assert [call[0] for call in fake_adapter.search_calls] == ["a"]

    @pytest.mark.asyncio
    async def test_pause_during_run_is_kept(self, db_session, crypto, orchestrator, fake_adapter):
        tenant, hunting = setup_tenant(db_session, crypto, status=SessionStatus.PAUSED)
        fake_adapter.posts["smallbusiness"] = posts_for("smallbusiness", 1)

        await orchestrator.run(HuntingContext(tenant=tenant, hunting=hunting, manual=True))

        db_session.refresh(hunting)
        assert hunting.status == SessionStatus.PAUSED
        assert hunting.posts_scanned == 1


class TestApprovalGate:
    """Tests for holding the session while leads await review."""

    @pytest.mark.asyncio
    async def test_new_leads_enter_waiting_approval(
        self, db_session, crypto, orchestrator, fake_adapter
    ):
        tenant, hunting = setup_tenant(db_session, crypto)
        fake_adapter.posts["smallbusiness"] = posts_for("smallbusiness", 2)

        await orchestrator.run(HuntingContext(tenant=tenant, hunting=hunting))

        db_session.refresh(hunting)
        assert hunting.status == SessionStatus.WAITING_APPROVAL
        approvals = (
            db_session.query(Notification)
            .filter_by(tenant_id=tenant.id, kind=NotificationKind.LEAD_APPROVAL)
            .all()
        )
        assert len(approvals) == 1
        assert approvals[0].data["count"] == 2

    @pytest.mark.asyncio
    async def test_pending_leads_skip_background_run(
        self, db_session, crypto, orchestrator, fake_adapter
    ):
        tenant, hunting = setup_tenant(db_session, crypto)
        create_lead(db_session, tenant, post_id="waiting1", status=LeadStatus.PENDING)
        db_session.commit()
        fake_adapter.posts["smallbusiness"] = [make_post("abc123")]

        first = await orchestrator.run(HuntingContext(tenant=tenant, hunting=hunting))
        second = await orchestrator.run(HuntingContext(tenant=tenant, hunting=hunting))

        assert first.status == RunStatus.SKIPPED
        assert first.skip_reason == SKIP_WAITING_APPROVAL
        assert second.skip_reason == SKIP_WAITING_APPROVAL
        assert fake_adapter.search_calls == []

        db_session.refresh(hunting)
        assert hunting.status == SessionStatus.WAITING_APPROVAL
        kinds = [n.kind for n in db_session.query(Notification).filter_by(tenant_id=tenant.id)]
        assert kinds == [NotificationKind.LEAD_APPROVAL]

    @pytest.mark.asyncio
    async def test_manual_run_ignores_gate(self, db_session, crypto, orchestrator, fake_adapter):
        tenant, hunting = setup_tenant(db_session, crypto)
        create_lead(db_session, tenant, post_id="waiting1", status=LeadStatus.PENDING)
        db_session.commit()
        fake_adapter.posts["smallbusiness"] = [make_post("abc123")]

        result = await orchestrator.run(
            HuntingContext(tenant=tenant, hunting=hunting, manual=True)
        )

        assert result.status == RunStatus.COMPLETED
        assert result.leads_created == 1

    @pytest.mark.asyncio
    async def test_no_gate_without_required_approval(
        self, db_session, crypto, orchestrator, fake_adapter
    ):
        tenant, hunting = setup_tenant(db_session, crypto, require_approval=False)
        create_lead(db_session, tenant, post_id="waiting1", status=LeadStatus.PENDING)
        db_session.commit()
        fake_adapter.posts["smallbusiness"] = [make_post("abc123")]

        result = await orchestrator.run(HuntingContext(tenant=tenant, hunting=hunting))

        assert result.status == RunStatus.COMPLETED
        db_session.refresh(hunting)
        assert hunting.status == SessionStatus.MONITORING
