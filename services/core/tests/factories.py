"""Test data factories for LeadHunter Core.

This module provides factory functions to create test data for models.
Use these instead of manually constructing objects in tests for consistency.
"""

from datetime import timedelta
from itertools import count
from typing import Any, Optional

from sqlalchemy.orm import Session

from leadhunter_core.domain.models import (
    BuyingIntent,
    HuntingSession,
    Lead,
    LeadStatus,
    RedditConnection,
    SessionStatus,
    SubscriptionTier,
    Tenant,
    utcnow,
)
from leadhunter_core.infrastructure.crypto import CryptoService

_ids = count(1)


# -----------------------------------------------------------------------------
# Tenant Factory
# -----------------------------------------------------------------------------


def create_tenant(
    session: Session,
    tier: str = SubscriptionTier.BASIC,
    business_description: Optional[str] = "CRM software for small local businesses",
    target_customer: Optional[str] = "Owners of bakeries and cafes",
    external_user_id: Optional[str] = None,
    **kwargs: Any,
) -> Tenant:
    """Create a Tenant record for testing."""
    tenant = Tenant(
        external_user_id=external_user_id or f"user-{next(_ids)}",
        subscription_tier=tier,
        business_description=business_description,
        target_customer=target_customer,
        **kwargs,
    )
    session.add(tenant)
    session.flush()
    return tenant


# -----------------------------------------------------------------------------
# Hunting Session Factory
# -----------------------------------------------------------------------------


def create_session(
    session: Session,
    tenant: Tenant,
    subreddits: Optional[list[str]] = None,
    keywords: Optional[list[str]] = None,
    status: str = SessionStatus.MONITORING,
    min_relevance_score: int = 7,
    require_approval: bool = True,
    **kwargs: Any,
) -> HuntingSession:
    """Create a HuntingSession record for testing."""
    hunting = HuntingSession(
        tenant_id=tenant.id,
        status=status,
        subreddits=["smallbusiness"] if subreddits is None else subreddits,
        keywords=["crm"] if keywords is None else keywords,
        min_relevance_score=min_relevance_score,
        require_approval=require_approval,
        **kwargs,
    )
    session.add(hunting)
    session.flush()
    return hunting


# -----------------------------------------------------------------------------
# Reddit Connection Factory
# -----------------------------------------------------------------------------


def create_connection(
    session: Session,
    tenant: Tenant,
    crypto: CryptoService,
    access_token: str = "access-token",
    refresh_token: str = "refresh-token",
    expires_in: int = 3600,
    connected: bool = True,
    reddit_username: str = "leadhunter_owner",
) -> RedditConnection:
    """Create a RedditConnection with encrypted tokens for testing."""
    connection = RedditConnection(
        tenant_id=tenant.id,
        reddit_username=reddit_username,
        access_token_encrypted=crypto.encrypt(access_token),
        refresh_token_encrypted=crypto.encrypt(refresh_token),
        token_expires_at=utcnow() + timedelta(seconds=expires_in),
        connected=connected,
    )
    session.add(connection)
    session.flush()
    return connection


# -----------------------------------------------------------------------------
# Lead Factory
# -----------------------------------------------------------------------------


def create_lead(
    session: Session,
    tenant: Tenant,
    post_id: Optional[str] = None,
    status: str = LeadStatus.PENDING,
    author: str = "baker_jane",
    subreddit: str = "smallbusiness",
    relevance_score: int = 85,
    **kwargs: Any,
) -> Lead:
    """Create a Lead record for testing."""
    post_id = post_id or f"post{next(_ids)}"
    lead = Lead(
        tenant_id=tenant.id,
        post_id=post_id,
        post_title=kwargs.pop("post_title", "Looking for a CRM for my bakery"),
        post_body=kwargs.pop("post_body", "Any recommendations?"),
        subreddit=subreddit,
        author=author,
        post_url=f"https://reddit.com/r/{subreddit}/comments/{post_id}/post/",
        relevance_score=relevance_score,
        intent=kwargs.pop("intent", BuyingIntent.HIGH),
        status=status,
        **kwargs,
    )
    session.add(lead)
    session.flush()
    return lead
