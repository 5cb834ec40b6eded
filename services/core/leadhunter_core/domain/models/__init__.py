"""Domain models for LeadHunter.

SQLAlchemy ORM models for tenants, hunting sessions, Reddit connections,
leads, conversations and notifications. All timestamps are naive UTC.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Current UTC time without tzinfo, matching the stored columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


# =============================================================================
# ENUMS
# =============================================================================


class SubscriptionTier(str):
    """Subscription tier values."""

    FREE = "free"
    BASIC = "basic"
    PLUS = "plus"
    PRO = "pro"


class SessionStatus(str):
    """Hunting session status values."""

    IDLE = "idle"
    MONITORING = "monitoring"
    SEARCHING = "searching"
    SCORING = "scoring"
    WAITING_APPROVAL = "waiting_approval"
    PAUSED = "paused"

    ACTIVE = ("monitoring", "searching", "scoring")


class RunStatus(str):
    """Hunting run status values."""

    RUNNING = "running"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


class LeadStatus(str):
    """Lead lifecycle status values."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DM_READY = "dm_ready"
    DM_SENT = "dm_sent"
    CONTACTED = "contacted"
    RESPONDED = "responded"


class BuyingIntent(str):
    """Buying intent values reported by the scorer."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"


class DeliveryState(str):
    """Conversation message delivery state values."""

    CONFIRMED = "confirmed"
    PENDING = "pending"
    FAILED = "failed"


class NotificationKind(str):
    """Notification kind values."""

    NEW_LEAD = "new_lead"
    LEAD_APPROVAL = "lead_approval"
    LEAD_RESPONSE = "lead_response"
    HUNTING_PAUSED = "hunting_paused"
    UNMATCHED_MESSAGE = "unmatched_message"


# =============================================================================
# TENANTS
# =============================================================================


class Tenant(Base):
    """An account that runs its own hunting session."""

    __tablename__ = "tenants"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    external_user_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    subscription_tier: Mapped[str] = mapped_column(
        String(32), nullable=False, default=SubscriptionTier.FREE
    )

    # Business context used by the qualification scorer
    business_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    target_customer: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    # Relationships
    hunting_session: Mapped[Optional["HuntingSession"]] = relationship(
        back_populates="tenant", uselist=False
    )
    reddit_connection: Mapped[Optional["RedditConnection"]] = relationship(
        back_populates="tenant", uselist=False
    )


class RedditConnection(Base):
    """A tenant's Reddit OAuth credential (tokens encrypted at rest)."""

    __tablename__ = "reddit_connections"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tenants.id"), nullable=False, unique=True
    )
    reddit_username: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    access_token_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token_encrypted: Mapped[str] = mapped_column(Text, nullable=False)
    token_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    connected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    tenant: Mapped["Tenant"] = relationship(back_populates="reddit_connection")


# =============================================================================
# HUNTING
# =============================================================================


class HuntingSession(Base):
    """Per-tenant hunting configuration, status and counters."""

    __tablename__ = "hunting_sessions"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tenants.id"), nullable=False, unique=True
    )
    status: Mapped[str] = mapped_column(
        Enum(
            "idle", "monitoring", "searching", "scoring", "waiting_approval", "paused",
            name="hunting_status_enum",
        ),
        nullable=False,
        default=SessionStatus.IDLE,
    )

    # Config
    subreddits: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    keywords: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    min_relevance_score: Mapped[int] = mapped_column(Integer, nullable=False, default=7)  # 1-10
    max_post_age_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=24)
    comment_style: Mapped[str] = mapped_column(String(32), nullable=False, default="friendly")
    require_approval: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Stats
    posts_scanned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    leads_found: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    dms_started: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    last_run_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (Index("idx_session_status", "status"),)

    tenant: Mapped["Tenant"] = relationship(back_populates="hunting_session")
    runs: Mapped[list["HuntingRun"]] = relationship(back_populates="session")


class HuntingRun(Base):
    """History of one orchestrator run for one tenant."""

    __tablename__ = "hunting_runs"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("tenants.id"), nullable=False)
    session_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("hunting_sessions.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        Enum("running", "completed", "skipped", "failed", name="hunting_run_status_enum"),
        nullable=False,
        default=RunStatus.RUNNING,
    )
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    posts_scanned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    posts_scored: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    leads_created: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    subreddits_searched: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skip_reason: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (Index("idx_run_tenant_started", "tenant_id", "started_at"),)

    session: Mapped["HuntingSession"] = relationship(back_populates="runs")


# =============================================================================
# LEADS
# =============================================================================


class Lead(Base):
    """A qualified Reddit post and its outreach progress."""

    __tablename__ = "leads"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("tenants.id"), nullable=False)

    # Source post
    post_id: Mapped[str] = mapped_column(String(32), nullable=False)
    post_title: Mapped[str] = mapped_column(String(512), nullable=False)
    post_body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    subreddit: Mapped[str] = mapped_column(String(128), nullable=False)
    author: Mapped[str] = mapped_column(String(128), nullable=False)
    post_url: Mapped[str] = mapped_column(String(1024), nullable=False)
    post_created_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    matched_keywords: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # Qualification (score is on the 0-100 scale)
    relevance_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    intent: Mapped[str] = mapped_column(String(16), nullable=False, default=BuyingIntent.NONE)
    reasoning: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Lifecycle
    status: Mapped[str] = mapped_column(
        Enum(
            "pending", "approved", "rejected", "dm_ready", "dm_sent", "contacted", "responded",
            name="lead_status_enum",
        ),
        nullable=False,
        default=LeadStatus.PENDING,
    )
    dm_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    comment_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    comment_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    outreach_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    dm_ready_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    dm_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    contacted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_response_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "post_id", name="uq_lead_tenant_post"),
        Index("idx_lead_tenant_status", "tenant_id", "status"),
        Index("idx_lead_comment", "comment_id"),
    )

    conversation: Mapped[Optional["Conversation"]] = relationship(
        back_populates="lead", uselist=False
    )

    @property
    def relevance_rating(self) -> int:
        """Score on the 1-10 scale shown to users."""
        return max(1, round(self.relevance_score / 10))


# =============================================================================
# CONVERSATIONS
# =============================================================================


class Conversation(Base):
    """Message thread between a tenant and a lead's author."""

    __tablename__ = "conversations"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("tenants.id"), nullable=False)
    lead_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("leads.id"), nullable=False)
    recipient_username: Mapped[str] = mapped_column(String(128), nullable=False)
    has_unread: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_message_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "lead_id", name="uq_conv_tenant_lead"),
        Index("idx_conv_recipient", "tenant_id", "recipient_username"),
    )

    lead: Mapped["Lead"] = relationship(back_populates="conversation")
    messages: Mapped[list["ConversationMessage"]] = relationship(
        back_populates="conversation",
        order_by="ConversationMessage.sent_at",
    )


class ConversationMessage(Base):
    """A single message in a conversation, local or fetched from Reddit."""

    __tablename__ = "conversation_messages"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    conversation_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("conversations.id"), nullable=False
    )
    external_message_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    is_from_user: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sent_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    delivery_state: Mapped[str] = mapped_column(
        Enum("confirmed", "pending", "failed", name="delivery_state_enum"),
        nullable=False,
        default=DeliveryState.CONFIRMED,
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("conversation_id", "external_message_id", name="uq_conv_msg_ext"),
        Index("idx_conv_msg_time", "conversation_id", "sent_at"),
    )

    conversation: Mapped["Conversation"] = relationship(back_populates="messages")


# =============================================================================
# NOTIFICATIONS
# =============================================================================


class Notification(Base):
    """A notification delivered to a tenant's inbox feed."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    tenant_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("tenants.id"), nullable=False)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    lead_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (Index("idx_notif_tenant_created", "tenant_id", "created_at"),)


__all__ = [
    "Base",
    "BuyingIntent",
    "Conversation",
    "ConversationMessage",
    "DeliveryState",
    "HuntingRun",
    "HuntingSession",
    "Lead",
    "LeadStatus",
    "Notification",
    "NotificationKind",
    "RedditConnection",
    "RunStatus",
    "SessionStatus",
    "SubscriptionTier",
    "Tenant",
    "utcnow",
]
