"""Notification dispatch.

Every notification is persisted to the tenant's inbox feed and, when a
push webhook is configured, forwarded to it. Dispatch is fire-and-forget:
webhook failures are logged and never reach the caller.

Usage:
    dispatcher = NotificationDispatcher(db, webhook_url=settings.push_webhook_url)
    await dispatcher.new_lead(lead)
"""

import logging
from typing import Any, Optional

import httpx
from sqlalchemy.orm import Session

from leadhunter_core.domain.models import Lead, Notification, NotificationKind, utcnow

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Persists notifications and forwards them to the push webhook."""

    def __init__(
        self,
        db: Session,
        webhook_url: Optional[str] = None,
        timeout: float = 5.0,
    ):
        self.db = db
        self.webhook_url = webhook_url
        self.timeout = timeout

    async def notify(
        self,
        tenant_id: int,
        title: str,
        body: str,
        data: Optional[dict[str, Any]] = None,
        kind: str = NotificationKind.NEW_LEAD,
        lead_id: Optional[int] = None,
    ) -> Optional[Notification]:
        """Record a notification and push it.

        Returns:
            The persisted notification, or None if it could not be stored.
        """
        notification = Notification(
            tenant_id=tenant_id,
            kind=kind,
            title=title,
            body=body,
            data=data or {},
            lead_id=lead_id,
        )
        try:
            self.db.add(notification)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to store notification for tenant {tenant_id}: {e}")
            return None

        if self.webhook_url:
            await self._push(notification)

        return notification

    async def _push(self, notification: Notification) -> None:
        payload = {
            "tenant_id": notification.tenant_id,
            "kind": notification.kind,
            "title": notification.title,
            "body": notification.body,
            "data": notification.data or {},
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.webhook_url, json=payload)
            if response.status_code >= 400:
                logger.warning(
                    f"Push webhook rejected notification {notification.id}: "
                    f"status={response.status_code}"
                )
        except httpx.HTTPError as e:
            logger.warning(f"Push webhook failed for notification {notification.id}: {e}")

    # =========================================================================
    # FEED
    # =========================================================================

    def list_for_tenant(
        self, tenant_id: int, unread_only: bool = False, limit: int = 50
    ) -> list[Notification]:
        query = self.db.query(Notification).filter(Notification.tenant_id == tenant_id)
        if unread_only:
            query = query.filter(Notification.read_at.is_(None))
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()

    def count_unread(self, tenant_id: int) -> int:
        return (
            self.db.query(Notification)
            .filter(Notification.tenant_id == tenant_id, Notification.read_at.is_(None))
            .count()
        )

    def mark_all_read(self, tenant_id: int) -> int:
        """Mark every unread notification read. Returns how many changed."""
        updated = (
            self.db.query(Notification)
            .filter(Notification.tenant_id == tenant_id, Notification.read_at.is_(None))
            .update({Notification.read_at: utcnow()}, synchronize_session=False)
        )
        self.db.commit()
        return updated

    # =========================================================================
    # TRIGGERS
    # =========================================================================

    async def new_lead(self, lead: Lead) -> Optional[Notification]:
        return await self.notify(
            lead.tenant_id,
            title=f"New Lead from r/{lead.subreddit}!",
            body=lead.post_title[:100],
            data={"type": "new_lead", "lead_id": lead.id, "score": lead.relevance_score},
            kind=NotificationKind.NEW_LEAD,
            lead_id=lead.id,
        )

    async def leads_need_approval(self, tenant_id: int, pending_count: int) -> Optional[Notification]:
        return await self.notify(
            tenant_id,
            title="Leads Need Review",
            body=f"{pending_count} lead(s) waiting for your approval",
            data={"type": "lead_approval", "count": pending_count},
            kind=NotificationKind.LEAD_APPROVAL,
        )

    async def lead_responded(
        self, lead: Lead, author: str, via_comment: bool, preview: str = ""
    ) -> Optional[Notification]:
        channel = "comment" if via_comment else "DM"
        return await self.notify(
            lead.tenant_id,
            title=f"u/{author} replied to your {channel}!",
            body=preview[:100] or lead.post_title[:100],
            data={"type": "lead_response", "lead_id": lead.id, "channel": channel.lower()},
            kind=NotificationKind.LEAD_RESPONSE,
            lead_id=lead.id,
        )

    async def hunting_paused(self, tenant_id: int, reason: str = "") -> Optional[Notification]:
        return await self.notify(
            tenant_id,
            title="Hunting Paused",
            body=reason or "Lead hunting has been paused",
            data={"type": "hunting_paused"},
            kind=NotificationKind.HUNTING_PAUSED,
        )

    async def unmatched_message(self, tenant_id: int, author: str, body: str) -> Optional[Notification]:
        return await self.notify(
            tenant_id,
            title=f"DM from u/{author}",
            body=body[:100],
            data={"type": "unmatched_message", "author": author},
            kind=NotificationKind.UNMATCHED_MESSAGE,
        )


__all__ = ["NotificationDispatcher"]
