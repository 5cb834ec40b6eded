"""Leads service for persisting and querying qualified posts.

This service provides:
1. Creating leads from qualified candidate posts
2. Lead retrieval and listing, always scoped to a tenant
3. Lookups used by the response monitor to match replies to leads

Usage:
    service = LeadsService(db=session)

    lead = service.create_lead(tenant_id, post, verdict, matched_keywords=["crm"])
    leads = service.list_leads(tenant_id, status="pending")
"""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from leadhunter_core.domain.errors import DuplicateLeadError, LeadNotFoundError
from leadhunter_core.domain.models import Lead, LeadStatus
from leadhunter_core.domain.services.qualification import QualificationVerdict
from leadhunter_core.providers.base import CandidatePost


# Statuses in which a lead's author may be replying to our outreach
OUTREACH_STATUSES = (LeadStatus.DM_SENT, LeadStatus.CONTACTED, LeadStatus.RESPONDED)


class LeadsService:
    """Service for lead persistence and tenant-scoped queries."""

    def __init__(self, db: Session):
        """Initialize the leads service.

        Args:
            db: SQLAlchemy database session.
        """
        self.db = db

    # =========================================================================
    # CREATE
    # =========================================================================

    def create_lead(
        self,
        tenant_id: int,
        post: CandidatePost,
        verdict: QualificationVerdict,
        matched_keywords: Optional[list[str]] = None,
    ) -> Lead:
        """Create a pending lead for a qualified post.

        The insert runs in a savepoint so a concurrent run that created the
        same (tenant, post) lead first only rolls back this insert.

        Raises:
            DuplicateLeadError: If a lead already exists for the post.
        """
        lead = Lead(
            tenant_id=tenant_id,
            post_id=post.external_id,
            post_title=post.title[:512],
            post_body=post.body_text,
            subreddit=post.subreddit,
            author=post.author_username,
            post_url=post.post_url,
            post_created_at=post.created_at,
            matched_keywords=matched_keywords or [],
            relevance_score=verdict.score,
            intent=verdict.intent,
            reasoning=verdict.reasoning,
            status=LeadStatus.PENDING,
        )

        try:
            with self.db.begin_nested():
                self.db.add(lead)
        except IntegrityError as e:
            raise DuplicateLeadError(tenant_id, post.external_id) from e

        self.db.commit()
        return lead

    # =========================================================================
    # GET
    # =========================================================================

    def get_lead(self, tenant_id: int, lead_id: int) -> Optional[Lead]:
        return (
            self.db.query(Lead)
            .filter(Lead.id == lead_id, Lead.tenant_id == tenant_id)
            .first()
        )

    def require_lead(self, tenant_id: int, lead_id: int) -> Lead:
        """Get a tenant's lead or raise.

        Raises:
            LeadNotFoundError: If the lead does not exist for this tenant.
        """
        lead = self.get_lead(tenant_id, lead_id)
        if lead is None:
            raise LeadNotFoundError(f"Lead {lead_id} not found")
        return lead

    # =========================================================================
    # LIST
    # =========================================================================

    def list_leads(
        self,
        tenant_id: int,
        status: Optional[str] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> list[Lead]:
        """List a tenant's leads, newest first."""
        query = self.db.query(Lead).filter(Lead.tenant_id == tenant_id)
        if status:
            query = query.filter(Lead.status == status)
        return (
            query.order_by(Lead.created_at.desc(), Lead.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def count_leads(self, tenant_id: int, status: Optional[str] = None) -> int:
        query = self.db.query(func.count(Lead.id)).filter(Lead.tenant_id == tenant_id)
        if status:
            query = query.filter(Lead.status == status)
        return query.scalar() or 0

    # =========================================================================
    # RESPONSE MATCHING
    # =========================================================================

    def find_by_author(self, tenant_id: int, author: str) -> Optional[Lead]:
        """Most recently contacted lead whose author matches, case-insensitively."""
        return (
            self.db.query(Lead)
            .filter(
                Lead.tenant_id == tenant_id,
                func.lower(Lead.author) == author.lower(),
                Lead.status.in_(OUTREACH_STATUSES),
            )
            .order_by(Lead.dm_sent_at.desc(), Lead.id.desc())
            .first()
        )

    def find_by_comment_id(self, tenant_id: int, comment_id: str) -> Optional[Lead]:
        return (
            self.db.query(Lead)
            .filter(Lead.tenant_id == tenant_id, Lead.comment_id == comment_id)
            .first()
        )


# =============================================================================
# EXPORTS
# =============================================================================


__all__ = [
    "LeadsService",
    "OUTREACH_STATUSES",
]
