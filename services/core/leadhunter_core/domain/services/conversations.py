"""Conversation history and reconciliation with Reddit.

Local history holds tenant-authored messages, including ones still pending
or failed. Messages fetched from Reddit (inbox replies and the tenant's
sent folder) are merged in without duplicating anything already present:

- a server message whose id is already stored is ignored
- a server outbound message whose body matches a local tenant-authored
  message that has no id yet confirms that local message
- anything else is appended
- local messages missing from the fetch are kept

Merging the same fetch twice changes nothing.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from leadhunter_core.domain.models import (
    Conversation,
    ConversationMessage,
    DeliveryState,
    Lead,
    utcnow,
)

logger = logging.getLogger(__name__)


# =============================================================================
# MERGE
# =============================================================================


@dataclass
class LocalMessage:
    """View of a stored message used by the merge."""

    ref: Optional[int]
    body: str
    is_from_user: bool
    sent_at: datetime
    external_id: Optional[str] = None
    delivery_state: str = DeliveryState.CONFIRMED


@dataclass
class RemoteMessage:
    """A message as fetched from Reddit."""

    external_id: str
    body: str
    is_from_user: bool
    sent_at: datetime


@dataclass
class MergeResult:
    """What a merge would change in local history.

    Attributes:
        confirmations: Local messages matched by a server copy, with that copy.
        additions: Server messages to store, in timestamp order.
    """

    confirmations: list[tuple[LocalMessage, RemoteMessage]] = field(default_factory=list)
    additions: list[RemoteMessage] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.confirmations or self.additions)


def _same_body(a: str, b: str) -> bool:
    return " ".join(a.split()) == " ".join(b.split())


def merge_messages(local: list[LocalMessage], server: list[RemoteMessage]) -> MergeResult:
    """Compute the merge of server messages into local history. Pure."""
    result = MergeResult()
    known_ids = {m.external_id for m in local if m.external_id}
    unconfirmed = sorted(
        (m for m in local if m.is_from_user and not m.external_id),
        key=lambda m: m.sent_at,
    )

    for remote in sorted(server, key=lambda m: m.sent_at):
        if remote.external_id in known_ids:
            continue
        known_ids.add(remote.external_id)

        if remote.is_from_user:
            match = next((m for m in unconfirmed if _same_body(m.body, remote.body)), None)
            if match is not None:
                unconfirmed.remove(match)
                result.confirmations.append((match, remote))
                continue

        result.additions.append(remote)

    return result


# =============================================================================
# SERVICE
# =============================================================================


class ConversationService:
    """Service for lead conversations."""

    def __init__(self, db: Session):
        self.db = db

    def get_for_lead(self, tenant_id: int, lead_id: int) -> Optional[Conversation]:
        return (
            self.db.query(Conversation)
            .filter(Conversation.tenant_id == tenant_id, Conversation.lead_id == lead_id)
            .first()
        )

    def get_or_create_for_lead(self, lead: Lead) -> Conversation:
        conversation = self.get_for_lead(lead.tenant_id, lead.id)
        if conversation is None:
            conversation = Conversation(
                tenant_id=lead.tenant_id,
                lead_id=lead.id,
                recipient_username=lead.author,
            )
            self.db.add(conversation)
            self.db.commit()
            self.db.refresh(conversation)
        return conversation

    def find_by_partner(self, tenant_id: int, username: str) -> Optional[Conversation]:
        return (
            self.db.query(Conversation)
            .filter(
                Conversation.tenant_id == tenant_id,
                func.lower(Conversation.recipient_username) == username.lower(),
            )
            .order_by(Conversation.id.desc())
            .first()
        )

    def messages(self, conversation: Conversation) -> list[ConversationMessage]:
        return (
            self.db.query(ConversationMessage)
            .filter(ConversationMessage.conversation_id == conversation.id)
            .order_by(ConversationMessage.sent_at.asc(), ConversationMessage.id.asc())
            .all()
        )

    # =========================================================================
    # LOCAL MESSAGES
    # =========================================================================

    def add_local_message(self, conversation: Conversation, body: str) -> ConversationMessage:
        """Add a tenant-authored message before it is sent."""
        now = utcnow()
        message = ConversationMessage(
            conversation_id=conversation.id,
            body=body,
            is_from_user=True,
            sent_at=now,
            delivery_state=DeliveryState.PENDING,
        )
        self.db.add(message)
        conversation.last_message_at = now
        self.db.commit()
        self.db.refresh(message)
        return message

    def confirm_message(
        self,
        message: ConversationMessage,
        external_id: Optional[str] = None,
        sent_at: Optional[datetime] = None,
    ) -> ConversationMessage:
        message.delivery_state = DeliveryState.CONFIRMED
        message.error_message = None
        if external_id:
            message.external_message_id = external_id
        if sent_at is not None:
            message.sent_at = sent_at
        self.db.commit()
        return message

    def fail_message(self, message: ConversationMessage, error: str) -> ConversationMessage:
        message.delivery_state = DeliveryState.FAILED
        message.error_message = error
        self.db.commit()
        return message

    # =========================================================================
    # RECONCILIATION
    # =========================================================================

    def reconcile(
        self, conversation: Conversation, server: list[RemoteMessage]
    ) -> list[ConversationMessage]:
        """Merge fetched messages into a conversation.

        Returns:
            Newly stored messages (empty when everything was already known).
        """
        stored = self.messages(conversation)
        by_ref = {m.id: m for m in stored}
        local = [
            LocalMessage(
                ref=m.id,
                body=m.body,
                is_from_user=m.is_from_user,
                sent_at=m.sent_at,
                external_id=m.external_message_id,
                delivery_state=m.delivery_state,
            )
            for m in stored
        ]

        result = merge_messages(local, server)
        if not result.changed:
            return []

        for view, remote in result.confirmations:
            message = by_ref[view.ref]
            message.external_message_id = remote.external_id
            message.delivery_state = DeliveryState.CONFIRMED
            message.error_message = None

        added = []
        for remote in result.additions:
            message = ConversationMessage(
                conversation_id=conversation.id,
                external_message_id=remote.external_id,
                body=remote.body,
                is_from_user=remote.is_from_user,
                sent_at=remote.sent_at,
                delivery_state=DeliveryState.CONFIRMED,
            )
            self.db.add(message)
            added.append(message)
            if not remote.is_from_user:
                conversation.has_unread = True
            if conversation.last_message_at is None or remote.sent_at > conversation.last_message_at:
                conversation.last_message_at = remote.sent_at

        self.db.commit()
        logger.debug(
            f"Reconciled conversation {conversation.id}: {len(added)} added, "
            f"{len(result.confirmations)} confirmed"
        )
        return added


__all__ = [
    "ConversationService",
    "LocalMessage",
    "MergeResult",
    "RemoteMessage",
    "merge_messages",
]
