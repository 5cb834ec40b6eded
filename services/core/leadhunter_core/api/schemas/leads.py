"""Leads API schemas."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read from the database."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


# =============================================================================
# LEAD SCHEMAS
# =============================================================================


class LeadResponse(BaseModel):
    """Response schema for a lead."""

    id: int = Field(..., description="Lead ID")
    post_id: str = Field(..., description="Reddit post ID")
    post_title: str = Field(..., description="Post title")
    post_body: Optional[str] = Field(default=None, description="Post body text")
    subreddit: str = Field(..., description="Subreddit the post was found in")
    author: str = Field(..., description="Post author's username")
    post_url: str = Field(..., description="URL to the post")
    post_created_at: Optional[datetime] = Field(default=None)
    matched_keywords: list[str] = Field(default_factory=list)
    relevance_score: int = Field(..., description="Qualification score 0-100")
    relevance_rating: int = Field(..., description="Qualification score on the 1-10 scale")
    intent: str = Field(..., description="Buying intent: high, medium, low, none")
    reasoning: Optional[str] = Field(default=None)
    status: str = Field(..., description="Lifecycle status")
    dm_message: Optional[str] = Field(default=None)
    comment_id: Optional[str] = Field(default=None)
    outreach_note: Optional[str] = Field(default=None, description="Partial outreach failure note")
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    dm_sent_at: Optional[datetime] = None
    contacted_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_lead(cls, lead) -> "LeadResponse":
        return cls(
            id=lead.id,
            post_id=lead.post_id,
            post_title=lead.post_title,
            post_body=lead.post_body,
            subreddit=lead.subreddit,
            author=lead.author,
            post_url=lead.post_url,
            post_created_at=ensure_utc(lead.post_created_at),
            matched_keywords=lead.matched_keywords or [],
            relevance_score=lead.relevance_score,
            relevance_rating=lead.relevance_rating,
            intent=lead.intent,
            reasoning=lead.reasoning,
            status=lead.status,
            dm_message=lead.dm_message,
            comment_id=lead.comment_id,
            outreach_note=lead.outreach_note,
            approved_at=ensure_utc(lead.approved_at),
            rejected_at=ensure_utc(lead.rejected_at),
            dm_sent_at=ensure_utc(lead.dm_sent_at),
            contacted_at=ensure_utc(lead.contacted_at),
            responded_at=ensure_utc(lead.responded_at),
            created_at=ensure_utc(lead.created_at),
        )


class ListLeadsResponse(BaseModel):
    """Response schema for listing leads."""

    leads: list[LeadResponse] = Field(..., description="List of leads")
    total: int = Field(..., description="Total number of matching leads")
    offset: int = Field(..., description="Current offset")
    limit: int = Field(..., description="Current limit")


# =============================================================================
# ACTION SCHEMAS
# =============================================================================


class SetDmMessageRequest(BaseModel):
    """Request schema for authoring the outreach DM."""

    message: str = Field(..., min_length=1, max_length=10000, description="DM text")


class OutreachResponse(BaseModel):
    """Response schema for an outreach attempt."""

    lead: LeadResponse
    dm_sent: bool
    comment_posted: bool
    partial_failure: Optional[str] = Field(
        default=None, description="Set when the DM was sent but the follow-up comment failed"
    )


# =============================================================================
# CONVERSATION SCHEMAS
# =============================================================================


class ConversationMessageResponse(BaseModel):
    """Response schema for one conversation message."""

    id: int
    body: str
    is_from_user: bool
    sent_at: datetime
    delivery_state: str = Field(..., description="confirmed, pending or failed")
    error_message: Optional[str] = None


class ConversationResponse(BaseModel):
    """Response schema for a lead's conversation."""

    lead_id: int
    recipient_username: Optional[str] = None
    has_unread: bool = False
    messages: list[ConversationMessageResponse] = Field(default_factory=list)
