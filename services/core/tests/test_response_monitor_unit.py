"""Unit tests for the response monitor."""

from datetime import timedelta

import pytest

from leadhunter_core.domain.errors import AuthExpiredError
from leadhunter_core.domain.models import (
    ConversationMessage,
    DeliveryState,
    LeadStatus,
    Notification,
    NotificationKind,
    utcnow,
)
from leadhunter_core.domain.services.conversations import ConversationService
from leadhunter_core.domain.services.notifications import NotificationDispatcher
from leadhunter_core.domain.services.response_monitor import ResponseMonitor
from leadhunter_core.providers.base import InboxMessage, InboxMessageKind, SentMessage
from leadhunter_core.providers.reddit.oauth import OAuthError

from factories import create_connection, create_lead, create_tenant


def dm(external_id, author, body="Sounds interesting", minutes=0):
    return InboxMessage(
        external_id=external_id,
        fullname=f"t4_{external_id}",
        kind=InboxMessageKind.DIRECT_MESSAGE,
        author=author,
        body=body,
        sent_at=utcnow() + timedelta(minutes=minutes),
    )


def comment_reply(external_id, author, parent_comment_id, body="Checking now!"):
    return InboxMessage(
        external_id=external_id,
        fullname=f"t1_{external_id}",
        kind=InboxMessageKind.COMMENT_REPLY,
        author=author,
        body=body,
        sent_at=utcnow(),
        parent_id=f"t1_{parent_comment_id}",
    )


@pytest.fixture
def monitor(db_session, credential_manager):
    return ResponseMonitor(
        db_session,
        credentials=credential_manager,
        notifications=NotificationDispatcher(db_session),
    )


@pytest.fixture
def tenant(db_session, crypto):
    tenant = create_tenant(db_session)
    create_connection(db_session, tenant, crypto)
    db_session.commit()
    return tenant


def notifications_of(db_session, tenant_id, kind):
    return db_session.query(Notification).filter_by(tenant_id=tenant_id, kind=kind).all()


class TestDirectMessages:
    """Tests for DM replies."""

    @pytest.mark.asyncio
    async def test_reply_marks_lead_responded(self, db_session, monitor, tenant, fake_adapter):
        lead = create_lead(db_session, tenant, author="Baker_Jane", status=LeadStatus.CONTACTED)
        db_session.commit()
        fake_adapter.unread = [dm("m1", "baker_jane")]

        result = await monitor.check_tenant(tenant.id)

        assert result.matched == 1
        assert result.new_responses == 1
        assert lead.status == LeadStatus.RESPONDED
        assert lead.last_response_at is not None
        assert fake_adapter.marked_read == ["t4_m1"]
        assert len(notifications_of(db_session, tenant.id, NotificationKind.LEAD_RESPONSE)) == 1

        messages = ConversationService(db_session).messages(lead.conversation)
        assert [(m.external_message_id, m.is_from_user) for m in messages] == [("m1", False)]

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, db_session, monitor, tenant, fake_adapter):
        create_lead(db_session, tenant, status=LeadStatus.CONTACTED)
        db_session.commit()
        fake_adapter.unread = [dm("m1", "baker_jane")]

        await monitor.check_tenant(tenant.id)
        second = await monitor.check_tenant(tenant.id)

        assert second.new_responses == 0
        assert db_session.query(ConversationMessage).count() == 1
        assert len(notifications_of(db_session, tenant.id, NotificationKind.LEAD_RESPONSE)) == 1

    @pytest.mark.asyncio
    async def test_pending_lead_author_is_not_matched(self, db_session, monitor, tenant, fake_adapter):
        lead = create_lead(db_session, tenant, status=LeadStatus.PENDING)
        db_session.commit()
        fake_adapter.unread = [dm("m1", "baker_jane")]

        result = await monitor.check_tenant(tenant.id)

        assert result.unmatched == 1
        assert lead.status == LeadStatus.PENDING
        assert len(notifications_of(db_session, tenant.id, NotificationKind.UNMATCHED_MESSAGE)) == 1
        assert fake_adapter.marked_read == ["t4_m1"]

    @pytest.mark.asyncio
    async def test_other_tenants_leads_not_matched(self, db_session, crypto, monitor, tenant, fake_adapter):
        other = create_tenant(db_session)
        other_lead = create_lead(db_session, other, status=LeadStatus.CONTACTED)
        db_session.commit()
        fake_adapter.unread = [dm("m1", "baker_jane")]

        result = await monitor.check_tenant(tenant.id)

        assert result.matched == 0
        assert other_lead.status == LeadStatus.CONTACTED


class TestCommentReplies:
    """Tests for replies to our follow-up comment."""

    @pytest.mark.asyncio
    async def test_reply_to_follow_up_comment(self, db_session, monitor, tenant, fake_adapter):
        lead = create_lead(
            db_session, tenant, status=LeadStatus.CONTACTED, comment_id="c_follow", author="op"
        )
        db_session.commit()
        fake_adapter.unread = [comment_reply("r1", "someone_else", "c_follow")]

        result = await monitor.check_tenant(tenant.id)

        assert result.matched == 1
        assert lead.status == LeadStatus.RESPONDED
        notification = notifications_of(db_session, tenant.id, NotificationKind.LEAD_RESPONSE)[0]
        assert notification.data["channel"] == "comment"

    @pytest.mark.asyncio
    async def test_unrelated_comment_marked_read(self, db_session, monitor, tenant, fake_adapter):
        fake_adapter.unread = [comment_reply("r1", "stranger", "c_unknown")]

        result = await monitor.check_tenant(tenant.id)

        assert result.matched == 0
        assert result.unmatched == 0
        assert result.ignored == 1
        assert fake_adapter.marked_read == ["t1_r1"]
        assert db_session.query(Notification).count() == 0


class TestSentReconciliation:
    """Tests for merging the sent folder."""

    @pytest.mark.asyncio
    async def test_sent_copy_confirms_pending_message(self, db_session, monitor, tenant, fake_adapter):
        lead = create_lead(db_session, tenant, status=LeadStatus.DM_SENT, author="baker_jane")
        db_session.commit()
        conversations = ConversationService(db_session)
        conversation = conversations.get_or_create_for_lead(lead)
        pending = conversations.add_local_message(conversation, "Hi there!")
        fake_adapter.sent = [
            SentMessage(external_id="s1", recipient="Baker_Jane", body="Hi there!", sent_at=utcnow())
        ]

        result = await monitor.check_tenant(tenant.id)

        assert result.sent_reconciled == 1
        assert pending.external_message_id == "s1"
        assert pending.delivery_state == DeliveryState.CONFIRMED
        assert len(conversations.messages(conversation)) == 1

    @pytest.mark.asyncio
    async def test_sent_to_unknown_partner_ignored(self, db_session, monitor, tenant, fake_adapter):
        fake_adapter.sent = [
            SentMessage(external_id="s1", recipient="nobody", body="hello", sent_at=utcnow())
        ]

        result = await monitor.check_tenant(tenant.id)

        assert result.sent_reconciled == 0


class TestCheckAll:
    """Tests for the all-tenant pass."""

    @pytest.mark.asyncio
    async def test_auth_failure_isolated(self, db_session, crypto, monitor, tenant, fake_adapter):
        broken = create_tenant(db_session)
        create_connection(db_session, broken, crypto, expires_in=0)
        create_lead(db_session, tenant, status=LeadStatus.CONTACTED)
        db_session.commit()
        monitor.credentials.oauth_client.refresh_access_token.side_effect = OAuthError("unreachable")
        fake_adapter.unread = [dm("m1", "baker_jane")]

        summary = await monitor.check_all()

        assert summary.tenants_checked == 2
        assert summary.failed == 1
        assert summary.new_responses == 1

    @pytest.mark.asyncio
    async def test_disconnected_tenants_not_checked(self, db_session, crypto, monitor, tenant):
        gone = create_tenant(db_session)
        create_connection(db_session, gone, crypto, connected=False)
        db_session.commit()

        assert monitor.connected_tenant_ids() == [tenant.id]

    @pytest.mark.asyncio
    async def test_check_tenant_raises_auth_expired(self, db_session, monitor):
        lonely = create_tenant(db_session)
        db_session.commit()

        with pytest.raises(AuthExpiredError):
            await monitor.check_tenant(lonely.id)
