"""Provider integrations for LeadHunter.

This package contains provider-specific implementations:
- Base: Abstract interface and DTOs
- Reddit: OAuth token refresh, API adapter
"""

from leadhunter_core.providers.base import (
    CandidatePost,
    CommentResult,
    InboxMessage,
    InboxMessageKind,
    ProviderAdapter,
    RemoteVisibility,
    SendMessageResult,
    SentMessage,
)

__all__ = [
    "CandidatePost",
    "CommentResult",
    "InboxMessage",
    "InboxMessageKind",
    "ProviderAdapter",
    "RemoteVisibility",
    "SendMessageResult",
    "SentMessage",
]
