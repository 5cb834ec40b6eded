"""Candidate source: per-tenant subreddit search.

Wraps the provider adapter's search for one tenant, always through a token
obtained from the credential manager so every call runs with a credential
that outlives the refresh margin.
"""

import logging
from typing import Optional

from leadhunter_core.domain.services.credentials import CredentialManager
from leadhunter_core.providers.base import CandidatePost

logger = logging.getLogger(__name__)


class CandidateSource:
    """Searches subreddits on behalf of a tenant."""

    def __init__(self, credentials: CredentialManager):
        self.credentials = credentials

    async def search(
        self,
        tenant_id: int,
        subreddit: str,
        keywords: list[str],
        limit: int,
        max_age_hours: Optional[int] = None,
    ) -> list[CandidatePost]:
        """Return up to ``limit`` recent, non-adult posts from a subreddit.

        Args:
            tenant_id: Tenant whose credential is used.
            subreddit: Subreddit name, with or without the ``r/`` prefix.
            keywords: Keywords OR-ed together; empty means the newest posts.
            limit: Maximum number of posts to return.
            max_age_hours: How far back the search window reaches.

        Returns:
            Posts in provider order. Empty when the subreddit could not be
            searched.

        Raises:
            AuthExpiredError: If the tenant's credential is unusable.
            ProviderRateLimitedError: If Reddit or the tenant's rate budget
                refuses the request.
        """
        if limit <= 0:
            return []

        adapter = await self.credentials.adapter_for(tenant_id)
        posts = await adapter.search_posts(
            subreddit, keywords, limit=limit, max_age_hours=max_age_hours
        )

        logger.debug(
            f"Tenant {tenant_id}: r/{subreddit} returned {len(posts)} candidate posts"
        )
        return posts[:limit]


def matched_keywords(post: CandidatePost, keywords: list[str]) -> list[str]:
    """Keywords that appear in the post's title or body, case-insensitively."""
    text = f"{post.title}\n{post.body_text or ''}".lower()
    return [keyword for keyword in keywords if keyword.strip() and keyword.lower() in text]


__all__ = ["CandidateSource", "matched_keywords"]
