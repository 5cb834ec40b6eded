"""Response monitor.

Polls each connected tenant's Reddit inbox, matches replies to the leads
that were contacted, marks those leads as responded and merges the
messages into the lead's conversation. The tenant's sent folder is merged
too, which confirms outreach DMs whose send result was lost.

Matching:
- direct messages match the contacted lead whose author is the sender
  (case-insensitive)
- comment replies match the lead whose follow-up comment is the parent
- other unmatched direct messages produce an "unmatched message"
  notification; other comment notifications are ignored

Every handled item is marked read, so unrelated comment notifications
are not fetched again on the next poll.

Re-running a check over the same inbox neither duplicates messages nor
repeats notifications.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from leadhunter_core.domain.errors import ProviderError
from leadhunter_core.domain.models import Lead, RedditConnection, utcnow
from leadhunter_core.domain.services.conversations import ConversationService, RemoteMessage
from leadhunter_core.domain.services.credentials import CredentialManager
from leadhunter_core.domain.services.lead_lifecycle import LeadLifecycleService
from leadhunter_core.domain.services.leads import OUTREACH_STATUSES, LeadsService
from leadhunter_core.domain.services.notifications import NotificationDispatcher
from leadhunter_core.providers.base import InboxMessage, InboxMessageKind, ProviderAdapter

logger = logging.getLogger(__name__)


@dataclass
class MonitorResult:
    """Outcome of checking one tenant's inbox."""

    tenant_id: int
    fetched: int = 0
    matched: int = 0
    new_responses: int = 0
    unmatched: int = 0
    ignored: int = 0
    sent_reconciled: int = 0
    marked_read: int = 0
    errors: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "fetched": self.fetched,
            "matched": self.matched,
            "new_responses": self.new_responses,
            "unmatched": self.unmatched,
            "ignored": self.ignored,
            "sent_reconciled": self.sent_reconciled,
            "marked_read": self.marked_read,
            "errors": self.errors,
        }


@dataclass
class MonitorSummary:
    """Outcome of checking every connected tenant."""

    tenants_checked: int = 0
    failed: int = 0
    new_responses: int = 0
    results: list[MonitorResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tenants_checked": self.tenants_checked,
            "failed": self.failed,
            "new_responses": self.new_responses,
        }


class ResponseMonitor:
    """Detects lead replies and reconciles conversation history."""

    def __init__(
        self,
        db: Session,
        credentials: CredentialManager,
        notifications: Optional[NotificationDispatcher] = None,
        inbox_limit: int = 50,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.credentials = credentials
        self.notifications = notifications
        self.inbox_limit = inbox_limit
        self.leads = LeadsService(db)
        self.conversations = ConversationService(db)
        self.lifecycle = LeadLifecycleService(db, credentials=credentials, clock=clock)

    # =========================================================================
    # ALL TENANTS
    # =========================================================================

    def connected_tenant_ids(self) -> list[int]:
        rows = (
            self.db.query(RedditConnection.tenant_id)
            .filter(RedditConnection.connected.is_(True))
            .order_by(RedditConnection.tenant_id.asc())
            .all()
        )
        return [row[0] for row in rows]

    async def check_all(self) -> MonitorSummary:
        """Check every connected tenant; one tenant's failure is isolated."""
        summary = MonitorSummary()

        for tenant_id in self.connected_tenant_ids():
            summary.tenants_checked += 1
            try:
                result = await self.check_tenant(tenant_id)
            except Exception as e:
                self.db.rollback()
                summary.failed += 1
                logger.error(f"Response check failed for tenant {tenant_id}: {e}")
                continue
            summary.results.append(result)
            summary.new_responses += result.new_responses

        return summary

    # =========================================================================
    # ONE TENANT
    # =========================================================================

    async def check_tenant(self, tenant_id: int) -> MonitorResult:
        """Check one tenant's inbox and sent folder.

        Raises:
            AuthExpiredError: If the tenant's credential is unusable.
            ProviderError: If the inbox could not be fetched.
        """
        result = MonitorResult(tenant_id=tenant_id)
        adapter = await self.credentials.adapter_for(tenant_id)

        await self._reconcile_sent(tenant_id, adapter, result)

        unread = await adapter.fetch_unread(limit=self.inbox_limit)
        result.fetched = len(unread)

        to_mark: list[str] = []
        for item in unread:
            try:
                handled = await self._handle_item(tenant_id, item, result)
            except Exception as e:
                self.db.rollback()
                result.errors += 1
                logger.error(f"Failed to handle inbox item {item.fullname}: {e}")
                continue
            if handled:
                to_mark.append(item.fullname)

        if to_mark and await adapter.mark_read(to_mark):
            result.marked_read = len(to_mark)

        if result.fetched:
            logger.info(
                f"Tenant {tenant_id} inbox: fetched={result.fetched} matched={result.matched} "
                f"new={result.new_responses} unmatched={result.unmatched} ignored={result.ignored}"
            )
        return result

    def match_lead(self, tenant_id: int, item: InboxMessage) -> Optional[Lead]:
        """Find the contacted lead an inbox item replies to."""
        if item.kind == InboxMessageKind.DIRECT_MESSAGE:
            if not item.author:
                return None
            return self.leads.find_by_author(tenant_id, item.author)

        if item.kind == InboxMessageKind.COMMENT_REPLY and item.parent_comment_id:
            lead = self.leads.find_by_comment_id(tenant_id, item.parent_comment_id)
            if lead is not None and lead.status in OUTREACH_STATUSES:
                return lead

        return None

    async def _handle_item(self, tenant_id: int, item: InboxMessage, result: MonitorResult) -> bool:
        """Process one unread item. Returns True if it should be marked read."""
        lead = self.match_lead(tenant_id, item)

        if lead is None:
            if item.kind != InboxMessageKind.DIRECT_MESSAGE:
                result.ignored += 1
                return True
            result.unmatched += 1
            if self.notifications is not None:
                await self.notifications.unmatched_message(tenant_id, item.author, item.body)
            return True

        result.matched += 1
        self.lifecycle.mark_responded(lead, item.sent_at)

        conversation = self.conversations.get_or_create_for_lead(lead)
        added = self.conversations.reconcile(
            conversation,
            [
                RemoteMessage(
                    external_id=item.external_id,
                    body=item.body,
                    is_from_user=False,
                    sent_at=item.sent_at,
                )
            ],
        )

        if added:
            result.new_responses += 1
            if self.notifications is not None:
                await self.notifications.lead_responded(
                    lead,
                    item.author,
                    via_comment=item.kind == InboxMessageKind.COMMENT_REPLY,
                    preview=item.body,
                )
        return True

    async def _reconcile_sent(
        self, tenant_id: int, adapter: ProviderAdapter, result: MonitorResult
    ) -> None:
        try:
            sent = await adapter.fetch_sent(limit=self.inbox_limit)
        except ProviderError as e:
            logger.warning(f"Could not fetch sent messages for tenant {tenant_id}: {e}")
            return

        by_partner: dict[str, list[RemoteMessage]] = defaultdict(list)
        for message in sent:
            if not message.recipient or not message.external_id:
                continue
            by_partner[message.recipient.lower()].append(
                RemoteMessage(
                    external_id=message.external_id,
                    body=message.body,
                    is_from_user=True,
                    sent_at=message.sent_at,
                )
            )

        for partner, messages in by_partner.items():
            conversation = self.conversations.find_by_partner(tenant_id, partner)
            if conversation is None:
                lead = self.leads.find_by_author(tenant_id, partner)
                if lead is None:
                    continue
                conversation = self.conversations.get_or_create_for_lead(lead)
            self.conversations.reconcile(conversation, messages)
            result.sent_reconciled += 1


__all__ = ["MonitorResult", "MonitorSummary", "ResponseMonitor"]
