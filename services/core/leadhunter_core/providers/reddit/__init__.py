"""Reddit provider integration.

This package contains:
- OAuth token refresh client
- API adapter (search, inbox, outreach)
"""

from leadhunter_core.providers.reddit.adapter import (
    RedditAdapter,
    build_search_query,
    classify_inbox_item,
)
from leadhunter_core.providers.reddit.oauth import (
    OAuthError,
    RedditOAuthClient,
    TokenResponse,
)

__all__ = [
    "OAuthError",
    "RedditAdapter",
    "RedditOAuthClient",
    "TokenResponse",
    "build_search_query",
    "classify_inbox_item",
]
