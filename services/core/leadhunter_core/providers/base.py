"""Base provider interface and DTOs.

This module defines the provider-agnostic interface used by the hunting
and monitoring services, along with normalized data transfer objects:
- CandidatePost: a post returned by a subreddit search
- InboxMessage: an unread DM, comment reply, post reply or mention
- SentMessage: a message the tenant sent
- SendMessageResult / CommentResult: outcome of outreach actions
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


# =============================================================================
# ENUMS
# =============================================================================


class RemoteVisibility(str, Enum):
    """Visibility status of remote content."""

    VISIBLE = "visible"
    DELETED_BY_AUTHOR = "deleted_by_author"
    REMOVED = "removed"
    UNKNOWN = "unknown"


class InboxMessageKind(str, Enum):
    """Kind of inbox item."""

    DIRECT_MESSAGE = "direct_message"
    COMMENT_REPLY = "comment_reply"
    POST_REPLY = "post_reply"
    USERNAME_MENTION = "username_mention"


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass
class CandidatePost:
    """Normalized post returned by a subreddit search."""

    external_id: str
    title: str
    subreddit: str
    author_username: str
    permalink: str
    url: str

    # Optional fields
    body_text: Optional[str] = None
    created_at: Optional[datetime] = None
    score: int = 0
    num_comments: int = 0
    is_self: bool = True
    is_nsfw: bool = False
    remote_visibility: RemoteVisibility = RemoteVisibility.UNKNOWN
    raw_data: Optional[dict] = None

    @property
    def post_url(self) -> str:
        """Absolute URL of the post's comment page."""
        if self.permalink.startswith("http"):
            return self.permalink
        return f"https://reddit.com{self.permalink}"

    @property
    def is_author_deleted(self) -> bool:
        return self.author_username in ("", "[deleted]", "[removed]") or (
            self.remote_visibility
            in (RemoteVisibility.DELETED_BY_AUTHOR, RemoteVisibility.REMOVED)
        )


@dataclass
class InboxMessage:
    """Normalized unread inbox item."""

    external_id: str
    fullname: str
    kind: InboxMessageKind
    author: str
    body: str
    sent_at: datetime

    # Optional fields
    dest: Optional[str] = None
    subject: Optional[str] = None
    parent_id: Optional[str] = None
    context: Optional[str] = None
    subreddit: Optional[str] = None
    is_new: bool = True
    raw_data: Optional[dict] = None

    @property
    def parent_comment_id(self) -> Optional[str]:
        """Parent ID without the ``t1_`` comment prefix."""
        if not self.parent_id:
            return None
        if self.parent_id.startswith("t1_"):
            return self.parent_id[3:]
        return self.parent_id


@dataclass
class SentMessage:
    """Normalized message from the tenant's sent folder."""

    external_id: str
    recipient: str
    body: str
    sent_at: datetime
    subject: Optional[str] = None


@dataclass
class SendMessageResult:
    """Result of sending a private message.

    Contains the provider's message ID and send status.
    """

    external_message_id: str
    sent_at: datetime
    success: bool = True
    error_message: Optional[str] = None
    is_ambiguous: bool = False  # True if we don't know if message was sent


@dataclass
class CommentResult:
    """Result of posting a comment."""

    success: bool
    comment_id: Optional[str] = None
    error_message: Optional[str] = None


# =============================================================================
# PROVIDER ADAPTER INTERFACE
# =============================================================================


class ProviderAdapter(ABC):
    """Abstract base class for provider adapters.

    Methods:
        search_posts: Keyword search restricted to one community
        fetch_unread: Unread inbox items
        fetch_sent: Recently sent private messages
        mark_read: Mark inbox items as read
        send_message: Send a private message
        post_comment: Comment on a post or reply to a comment
    """

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Return the unique provider identifier (e.g., 'reddit')."""
        ...

    @abstractmethod
    async def search_posts(
        self,
        location: str,
        keywords: list[str],
        limit: int = 10,
        max_age_hours: Optional[int] = None,
    ) -> list[CandidatePost]:
        """Search recent posts in ``location`` matching any keyword.

        ``max_age_hours`` bounds how far back the search looks; providers
        may round it up to the nearest window they support.

        Raises:
            ProviderRateLimitedError: When the provider refuses with 429.
        """
        ...

    @abstractmethod
    async def fetch_unread(self, limit: int = 50) -> list[InboxMessage]:
        ...

    @abstractmethod
    async def fetch_sent(self, limit: int = 50) -> list[SentMessage]:
        ...

    @abstractmethod
    async def mark_read(self, fullnames: list[str]) -> bool:
        ...

    @abstractmethod
    async def send_message(
        self,
        recipient_username: str,
        subject: str,
        body: str,
    ) -> SendMessageResult:
        """Send a private message.

        Note:
            - On clear success, return success=True
            - On clear failure (validation, etc.), return success=False, is_ambiguous=False
            - On ambiguous failure (timeout, etc.), return success=False, is_ambiguous=True
        """
        ...

    @abstractmethod
    async def post_comment(self, parent_fullname: str, body: str) -> CommentResult:
        ...


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
