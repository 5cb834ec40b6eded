"""Deduplication gate for candidate posts.

A point lookup against persisted leads keyed by (tenant, post). The
``uq_lead_tenant_post`` unique constraint backs it up when two runs race
between the check and the insert.
"""

from sqlalchemy.orm import Session

from leadhunter_core.domain.models import Lead


class DeduplicationGate:
    """Checks whether a post already produced a lead for a tenant."""

    def __init__(self, db: Session):
        self.db = db

    def exists(self, tenant_id: int, post_id: str) -> bool:
        return (
            self.db.query(Lead.id)
            .filter(Lead.tenant_id == tenant_id, Lead.post_id == post_id)
            .first()
            is not None
        )


__all__ = ["DeduplicationGate"]
