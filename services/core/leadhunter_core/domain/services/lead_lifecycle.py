"""Lead lifecycle state machine.

Status flow (terminal states marked *):

    pending -> approved -> dm_ready -> dm_sent -> contacted -> responded*
    pending | approved | dm_ready | dm_sent -> rejected*
    dm_sent -> responded*

Outreach (``send_outreach``) sends the DM and then posts a short public
comment pointing the author to their inbox. The DM is the step that
advances the lead; a failed comment leaves it in ``dm_sent`` with a note
and can be retried with ``retry_comment``.

Usage:
    service = LeadLifecycleService(db, credentials=manager)

    service.approve(tenant_id, lead_id)
    service.set_dm_message(tenant_id, lead_id, "Hi! Saw your post...")
    # or: await service.draft_dm_message(tenant_id, lead_id, OutreachDrafter(client))
    result = await service.send_outreach(tenant_id, lead_id)
    if result.partial_failure:
        ...
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from leadhunter_core.domain.errors import (
    AuthExpiredError,
    InvalidTransitionError,
    OutreachError,
)
from leadhunter_core.domain.models import Lead, LeadStatus, Tenant, utcnow
from leadhunter_core.domain.services.conversations import ConversationService
from leadhunter_core.domain.services.credentials import CredentialManager
from leadhunter_core.domain.services.drafting import (
    DEFAULT_COMMENT_STYLE,
    DraftInput,
    OutreachDrafter,
)
from leadhunter_core.domain.services.hunting_sessions import HuntingSessionService
from leadhunter_core.domain.services.leads import LeadsService
from leadhunter_core.domain.services.qualification import BusinessContext
from leadhunter_core.providers.base import ProviderAdapter

logger = logging.getLogger(__name__)


# =============================================================================
# TRANSITIONS
# =============================================================================


TRANSITIONS: dict[str, frozenset[str]] = {
    LeadStatus.PENDING: frozenset({LeadStatus.APPROVED, LeadStatus.REJECTED}),
    LeadStatus.APPROVED: frozenset({LeadStatus.DM_READY, LeadStatus.REJECTED}),
    LeadStatus.DM_READY: frozenset({LeadStatus.DM_READY, LeadStatus.DM_SENT, LeadStatus.REJECTED}),
    LeadStatus.DM_SENT: frozenset(
        {LeadStatus.CONTACTED, LeadStatus.RESPONDED, LeadStatus.REJECTED}
    ),
    LeadStatus.CONTACTED: frozenset({LeadStatus.RESPONDED}),
    LeadStatus.REJECTED: frozenset(),
    LeadStatus.RESPONDED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in TRANSITIONS.items() if not targets)

# Timestamp column stamped when a lead enters a status
STATUS_TIMESTAMPS = {
    LeadStatus.APPROVED: "approved_at",
    LeadStatus.REJECTED: "rejected_at",
    LeadStatus.DM_READY: "dm_ready_at",
    LeadStatus.DM_SENT: "dm_sent_at",
    LeadStatus.CONTACTED: "contacted_at",
    LeadStatus.RESPONDED: "responded_at",
}

FOLLOW_UP_COMMENT = "Hey! Just sent you a DM - check your inbox when you get a chance!"


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def dm_subject(lead: Lead) -> str:
    return f"Re: Your post in r/{lead.subreddit}"


@dataclass
class OutreachResult:
    """Outcome of an outreach attempt.

    Attributes:
        lead: The lead after the attempt.
        dm_sent: Whether the DM went out.
        comment_posted: Whether the follow-up comment was posted.
        partial_failure: Set when the DM went out but the comment did not.
    """

    lead: Lead
    dm_sent: bool
    comment_posted: bool
    partial_failure: Optional[str] = None


# =============================================================================
# SERVICE
# =============================================================================


class LeadLifecycleService:
    """Applies lifecycle transitions to a tenant's leads."""

    def __init__(
        self,
        db: Session,
        credentials: Optional[CredentialManager] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.credentials = credentials
        self.clock = clock
        self.leads = LeadsService(db)
        self.conversations = ConversationService(db)
        self.sessions = HuntingSessionService(db)

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def transition(self, lead: Lead, target: str, commit: bool = True) -> Lead:
        """Move a lead to ``target`` if the transition table allows it.

        Raises:
            InvalidTransitionError: If the move is not allowed. The lead is
                left untouched.
        """
        if not can_transition(lead.status, target):
            raise InvalidTransitionError(lead.status, target)

        lead.status = target
        column = STATUS_TIMESTAMPS.get(target)
        if column:
            setattr(lead, column, self.clock())
        if commit:
            self.db.commit()
        return lead

    def approve(self, tenant_id: int, lead_id: int) -> Lead:
        lead = self.leads.require_lead(tenant_id, lead_id)
        self.transition(lead, LeadStatus.APPROVED)
        self.sessions.end_approval_wait(tenant_id)
        return lead

    def reject(self, tenant_id: int, lead_id: int) -> Lead:
        lead = self.leads.require_lead(tenant_id, lead_id)
        self.transition(lead, LeadStatus.REJECTED)
        self.sessions.end_approval_wait(tenant_id)
        return lead

    def set_dm_message(self, tenant_id: int, lead_id: int, message: str) -> Lead:
        """Store the outreach text, moving the lead to ``dm_ready``.

        Raises:
            ValueError: If the message is blank.
            InvalidTransitionError: If the lead is not approved or dm_ready.
        """
        text = (message or "").strip()
        if not text:
            raise ValueError("DM message cannot be empty")

        lead = self.leads.require_lead(tenant_id, lead_id)
        if not can_transition(lead.status, LeadStatus.DM_READY):
            raise InvalidTransitionError(lead.status, LeadStatus.DM_READY)

        lead.dm_message = text
        return self.transition(lead, LeadStatus.DM_READY)

    async def draft_dm_message(
        self, tenant_id: int, lead_id: int, drafter: OutreachDrafter
    ) -> Lead:
        """Draft the outreach DM with the LLM and store it for review.

        The draft uses the hunting session's comment style. It is stored
        like a hand-written message, moving the lead to ``dm_ready``.

        Raises:
            InvalidTransitionError: If the lead is not approved or dm_ready.
            OutreachError: If no usable draft came back.
        """
        lead = self.leads.require_lead(tenant_id, lead_id)
        if not can_transition(lead.status, LeadStatus.DM_READY):
            raise InvalidTransitionError(lead.status, LeadStatus.DM_READY)

        tenant = self.db.get(Tenant, tenant_id)
        hunting = self.sessions.get_session(tenant_id)
        style = hunting.comment_style if hunting is not None else DEFAULT_COMMENT_STYLE
        business = BusinessContext(
            description=tenant.business_description if tenant else None,
            target_customer=tenant.target_customer if tenant else None,
        )

        result = await drafter.draft_dm(DraftInput(lead=lead, business=business), style=style)
        if not result.success:
            raise OutreachError(f"Failed to draft DM: {result.error}", retryable=True)

        logger.info(
            f"Drafted {style} DM for lead {lead.id} "
            f"(confidence {result.draft.confidence:.2f})"
        )
        return self.set_dm_message(tenant_id, lead_id, result.draft.message)

    def mark_responded(self, lead: Lead, responded_at: Optional[datetime] = None) -> bool:
        """Record a reply from the lead's author.

        Idempotent: a lead that already responded only gets its
        ``last_response_at`` bumped.

        Returns:
            True if the lead moved to ``responded`` now.
        """
        at = responded_at or self.clock()

        if lead.status == LeadStatus.RESPONDED:
            if lead.last_response_at is None or at > lead.last_response_at:
                lead.last_response_at = at
                self.db.commit()
            return False

        self.transition(lead, LeadStatus.RESPONDED, commit=False)
        lead.last_response_at = at
        self.db.commit()
        return True

    # =========================================================================
    # OUTREACH
    # =========================================================================

    async def _adapter(self, tenant_id: int) -> ProviderAdapter:
        if self.credentials is None:
            raise OutreachError("No Reddit credentials configured", retryable=False)
        return await self.credentials.adapter_for(tenant_id)

    async def send_outreach(self, tenant_id: int, lead_id: int) -> OutreachResult:
        """Send the DM and the follow-up comment for a ``dm_ready`` lead.

        Raises:
            InvalidTransitionError: If the lead is not ``dm_ready``.
            AuthExpiredError: If the tenant's Reddit credential is unusable.
            OutreachError: If the DM was not delivered. The lead keeps its
                status and the local message is marked failed.
        """
        lead = self.leads.require_lead(tenant_id, lead_id)
        if lead.status != LeadStatus.DM_READY:
            raise InvalidTransitionError(lead.status, LeadStatus.DM_SENT)

        conversation = self.conversations.get_or_create_for_lead(lead)
        message = self.conversations.add_local_message(conversation, lead.dm_message or "")

        try:
            adapter = await self._adapter(tenant_id)
        except (AuthExpiredError, OutreachError) as e:
            self.conversations.fail_message(message, str(e))
            raise

        try:
            send_result = await adapter.send_message(lead.author, dm_subject(lead), message.body)
            error = None if send_result.success else (send_result.error_message or "Failed to send DM")
        except Exception as e:
            error = str(e) or type(e).__name__

        if error is not None:
            self.conversations.fail_message(message, error)
            logger.warning(f"DM to u/{lead.author} for lead {lead.id} failed: {error}")
            raise OutreachError(f"Failed to send DM: {error}", retryable=True)

        self.conversations.confirm_message(
            message,
            external_id=send_result.external_message_id or None,
        )
        self.transition(lead, LeadStatus.DM_SENT)

        hunting = self.sessions.get_session(tenant_id)
        if hunting is not None:
            self.sessions.increment_stats(hunting.id, dms_started=1)

        logger.info(f"Sent DM to u/{lead.author} for lead {lead.id}")

        comment_error = await self._post_follow_up(adapter, lead)
        if comment_error is not None:
            return OutreachResult(
                lead=lead,
                dm_sent=True,
                comment_posted=False,
                partial_failure=lead.outreach_note,
            )

        return OutreachResult(lead=lead, dm_sent=True, comment_posted=True)

    async def retry_comment(self, tenant_id: int, lead_id: int) -> Lead:
        """Retry the follow-up comment for a lead stuck in ``dm_sent``.

        Raises:
            InvalidTransitionError: If the lead is not ``dm_sent``.
            OutreachError: If the comment failed again.
        """
        lead = self.leads.require_lead(tenant_id, lead_id)
        if lead.status != LeadStatus.DM_SENT:
            raise InvalidTransitionError(lead.status, LeadStatus.CONTACTED)

        adapter = await self._adapter(tenant_id)
        error = await self._post_follow_up(adapter, lead)
        if error is not None:
            raise OutreachError(f"Failed to post comment: {error}", retryable=True)
        return lead

    async def _post_follow_up(self, adapter: ProviderAdapter, lead: Lead) -> Optional[str]:
        """Post the follow-up comment; returns the error on failure."""
        try:
            result = await adapter.post_comment(f"t3_{lead.post_id}", FOLLOW_UP_COMMENT)
            error = None if result.success else (result.error_message or "Failed to post comment")
        except Exception as e:
            result = None
            error = str(e) or type(e).__name__

        if error is not None:
            lead.outreach_note = f"DM sent but follow-up comment failed: {error}"
            self.db.commit()
            logger.warning(f"Follow-up comment for lead {lead.id} failed: {error}")
            return error

        lead.comment_id = result.comment_id
        lead.comment_message = FOLLOW_UP_COMMENT
        lead.outreach_note = None
        self.transition(lead, LeadStatus.CONTACTED)
        return None


__all__ = [
    "FOLLOW_UP_COMMENT",
    "LeadLifecycleService",
    "OutreachResult",
    "STATUS_TIMESTAMPS",
    "TERMINAL_STATUSES",
    "TRANSITIONS",
    "can_transition",
    "dm_subject",
]
