"""Reddit API adapter.

Implements the ProviderAdapter interface for Reddit, mapping Reddit's
listing responses to normalized DTOs. The adapter is bound to one
tenant's access token; token refresh is handled by the credential manager
before the adapter is built.

Usage:
    adapter = RedditAdapter(
        access_token=token,
        user_agent="LeadHunter:v1.0.0",
        rate_limiter=RateLimiter.for_tenant(redis, tenant_id),
    )

    posts = await adapter.search_posts("smallbusiness", ["crm", "lead gen"], limit=10)
    unread = await adapter.fetch_unread()
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

import httpx

from leadhunter_core.domain.errors import (
    ProviderError,
    ProviderRateLimitedError,
    ProviderUnavailableError,
)
from leadhunter_core.infrastructure.rate_limiter import BackoffStrategy, RateLimiter
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

logger = logging.getLogger(__name__)

# Upper bound on listing pages fetched for one search
MAX_SEARCH_PAGES = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Reddit search windows, narrowest first, as (max hours, "t" value)
SEARCH_WINDOWS = ((1, "hour"), (24, "day"), (24 * 7, "week"), (24 * 31, "month"))


def search_time_filter(max_age_hours: Optional[int]) -> str:
    """Narrowest Reddit search window covering posts up to ``max_age_hours`` old."""
    if max_age_hours is None:
        return "day"
    for hours, window in SEARCH_WINDOWS:
        if max_age_hours <= hours:
            return window
    return "year"


def build_search_query(keywords: list[str]) -> str:
    """OR-query across keywords; multi-word keywords are quoted."""
    terms = []
    for keyword in keywords:
        keyword = keyword.strip()
        if not keyword:
            continue
        if " " in keyword:
            keyword = f'"{keyword}"'
        terms.append(keyword)
    return " OR ".join(terms)


def classify_inbox_item(data: dict) -> InboxMessageKind:
    """Classify a raw inbox item.

    Comments carry ``was_comment``; Reddit's own ``type`` field is used when
    present, otherwise the context link decides between a reply to our
    comment and a reply to our post.
    """
    if not data.get("was_comment"):
        return InboxMessageKind.DIRECT_MESSAGE

    item_type = data.get("type")
    if item_type == "username_mention":
        return InboxMessageKind.USERNAME_MENTION
    if item_type == "comment_reply":
        return InboxMessageKind.COMMENT_REPLY
    if item_type == "post_reply":
        return InboxMessageKind.POST_REPLY

    parent_id = data.get("parent_id") or ""
    if parent_id.startswith("t1_"):
        return InboxMessageKind.COMMENT_REPLY
    if parent_id.startswith("t3_"):
        return InboxMessageKind.POST_REPLY

    context = data.get("context") or ""
    return (
        InboxMessageKind.COMMENT_REPLY
        if "/comments/" in context
        else InboxMessageKind.POST_REPLY
    )


class RedditAdapter(ProviderAdapter):
    """Reddit provider adapter bound to one tenant's access token."""

    BASE_URL = "https://oauth.reddit.com"

    def __init__(
        self,
        access_token: str,
        user_agent: str,
        timeout: float = 20.0,
        rate_limiter: Optional[RateLimiter] = None,
        backoff: Optional[BackoffStrategy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize the Reddit adapter.

        Args:
            access_token: Valid OAuth access token.
            user_agent: User-Agent string for API requests.
            timeout: Per-request timeout in seconds.
            rate_limiter: Optional per-tenant rate limiter.
            backoff: Retry strategy for transient 5xx responses.
            sleep: Awaitable used between retries (injectable for tests).
        """
        self.access_token = access_token
        self.user_agent = user_agent
        self.timeout = timeout
        self.rate_limiter = rate_limiter
        self.backoff = backoff or BackoffStrategy()
        self._sleep = sleep

    @property
    def provider_id(self) -> str:
        return "reddit"

    def _get_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "User-Agent": self.user_agent,
        }

    async def _api_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        data: Optional[dict] = None,
        retry: bool = True,
    ) -> httpx.Response:
        """Make an API request.

        Args:
            method: HTTP method (GET, POST).
            endpoint: API endpoint path.
            params: Query parameters.
            data: Form body for POST requests.
            retry: Whether transient 5xx responses are retried in place.

        Raises:
            ProviderRateLimitedError: On 429 or an exhausted local budget.
            ProviderUnavailableError: On timeouts, connection errors and 5xx.
        """
        url = f"{self.BASE_URL}{endpoint}"
        attempt = 0

        while True:
            attempt += 1

            if self.rate_limiter is not None:
                if not await self.rate_limiter.acquire():
                    raise ProviderRateLimitedError("Local Reddit rate budget exhausted")

            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(
                        method,
                        url,
                        headers=self._get_headers(),
                        params=params,
                        data=data,
                    )
            except httpx.TimeoutException as e:
                raise ProviderUnavailableError(f"Reddit request timed out: {endpoint}") from e
            except httpx.HTTPError as e:
                raise ProviderUnavailableError(f"Reddit request failed: {e}") from e
            finally:
                if self.rate_limiter is not None:
                    await self.rate_limiter.release()

            status = response.status_code

            if status == 429:
                retry_after = self._parse_retry_after(response)
                raise ProviderRateLimitedError(
                    f"Reddit rate limited {endpoint}", retry_after=retry_after
                )

            if 500 <= status < 600:
                if retry and self.backoff.should_retry(status, attempt):
                    delay = self.backoff.get_delay_for_status(status, attempt)
                    logger.warning(
                        f"Reddit returned {status} for {endpoint}, retrying in {delay:.1f}s"
                    )
                    await self._sleep(delay)
                    continue
                raise ProviderUnavailableError(f"Reddit returned {status} for {endpoint}", status)

            return response

    # =========================================================================
    # SEARCH
    # =========================================================================

    async def search_posts(
        self,
        location: str,
        keywords: list[str],
        limit: int = 10,
        max_age_hours: Optional[int] = None,
    ) -> list[CandidatePost]:
        """Search the newest posts of one subreddit.

        The search window is the narrowest of hour, day, week, month or
        year that covers ``max_age_hours``; a day when it is not given.

        Falls back to the subreddit's /new listing when no keywords are
        configured. Adult posts are dropped. Transport failures are logged
        and produce an empty result; rate limiting is raised so the caller
        can stop.
        """
        subreddit = location[2:] if location.lower().startswith("r/") else location
        query = build_search_query(keywords)

        if query:
            endpoint = f"/r/{subreddit}/search"
            base_params: dict[str, Any] = {
                "q": query,
                "restrict_sr": "on",
                "sort": "new",
                "t": search_time_filter(max_age_hours),
            }
        else:
            endpoint = f"/r/{subreddit}/new"
            base_params = {}

        posts: list[CandidatePost] = []
        after: Optional[str] = None

        try:
            for _ in range(MAX_SEARCH_PAGES):
                if len(posts) >= limit:
                    break

                params = dict(base_params)
                params["limit"] = limit - len(posts)
                if after:
                    params["after"] = after

                response = await self._api_request("GET", endpoint, params)

                if response.status_code != 200:
                    logger.error(
                        f"Reddit search failed for r/{subreddit}: status={response.status_code}"
                    )
                    return []

                listing = response.json().get("data", {})
                for child in listing.get("children", []):
                    if child.get("kind") != "t3":
                        continue
                    post_data = child.get("data", {})
                    if post_data.get("over_18"):
                        continue
                    posts.append(self._map_post(post_data))

                after = listing.get("after")
                if not after:
                    break
        except ProviderUnavailableError as e:
            logger.error(f"Error searching r/{subreddit}: {e}")
            return []

        return posts[:limit]

    # =========================================================================
    # INBOX
    # =========================================================================

    async def fetch_unread(self, limit: int = 50) -> list[InboxMessage]:
        """Fetch unread inbox items without marking them read."""
        response = await self._api_request(
            "GET", "/message/unread", {"limit": limit, "mark": "false"}
        )

        if response.status_code != 200:
            logger.error(f"Failed to fetch unread messages: status={response.status_code}")
            return []

        children = response.json().get("data", {}).get("children", [])
        messages = []
        for child in children:
            if child.get("kind") not in ("t1", "t4"):
                continue
            messages.append(self._map_inbox_item(child.get("data", {}), child.get("kind")))
        return messages

    async def fetch_sent(self, limit: int = 50) -> list[SentMessage]:
        """Fetch recently sent private messages."""
        response = await self._api_request("GET", "/message/sent", {"limit": limit})

        if response.status_code != 200:
            logger.error(f"Failed to fetch sent messages: status={response.status_code}")
            return []

        children = response.json().get("data", {}).get("children", [])
        sent = []
        for child in children:
            if child.get("kind") != "t4":
                continue
            msg_data = child.get("data", {})
            sent.append(
                SentMessage(
                    external_id=msg_data.get("id", ""),
                    recipient=msg_data.get("dest", ""),
                    body=msg_data.get("body", ""),
                    sent_at=self._parse_timestamp(msg_data.get("created_utc"))
                    or _utcnow(),
                    subject=msg_data.get("subject"),
                )
            )
        return sent

    async def mark_read(self, fullnames: list[str]) -> bool:
        """Mark inbox items as read. Returns False on failure."""
        if not fullnames:
            return True

        try:
            response = await self._api_request(
                "POST", "/api/read_message", data={"id": ",".join(fullnames)}, retry=False
            )
        except ProviderError as e:
            logger.warning(f"Failed to mark {len(fullnames)} messages read: {e}")
            return False

        if response.status_code != 200:
            logger.warning(f"Failed to mark messages read: status={response.status_code}")
            return False
        return True

    # =========================================================================
    # OUTREACH
    # =========================================================================

    async def send_message(
        self,
        recipient_username: str,
        subject: str,
        body: str,
    ) -> SendMessageResult:
        """Send a private message through /api/compose.

        Sends are never retried in place.
        """
        try:
            response = await self._api_request(
                "POST",
                "/api/compose",
                data={
                    "api_type": "json",
                    "to": recipient_username,
                    "subject": subject,
                    "text": body,
                },
                retry=False,
            )
        except ProviderRateLimitedError as e:
            return SendMessageResult(
                external_message_id="",
                sent_at=_utcnow(),
                success=False,
                error_message=str(e),
                is_ambiguous=False,
            )
        except ProviderUnavailableError as e:
            # Timeout or 5xx: the message may or may not have been delivered
            return SendMessageResult(
                external_message_id="",
                sent_at=_utcnow(),
                success=False,
                error_message=str(e),
                is_ambiguous=True,
            )

        if response.status_code != 200:
            return SendMessageResult(
                external_message_id="",
                sent_at=_utcnow(),
                success=False,
                error_message=f"HTTP {response.status_code}",
                is_ambiguous=False,
            )

        json_data = response.json().get("json", {})
        errors = json_data.get("errors", [])
        if errors:
            return SendMessageResult(
                external_message_id="",
                sent_at=_utcnow(),
                success=False,
                error_message=self._format_errors(errors),
                is_ambiguous=False,
            )

        # /api/compose does not always return the new message
        things = json_data.get("data", {}).get("things", [])
        msg_id = things[0].get("data", {}).get("id", "") if things else ""

        return SendMessageResult(
            external_message_id=msg_id,
            sent_at=_utcnow(),
            success=True,
        )

    async def post_comment(self, parent_fullname: str, body: str) -> CommentResult:
        """Comment on a post (t3_) or reply to a comment (t1_)."""
        try:
            response = await self._api_request(
                "POST",
                "/api/comment",
                data={"api_type": "json", "thing_id": parent_fullname, "text": body},
                retry=False,
            )
        except ProviderError as e:
            return CommentResult(success=False, error_message=str(e))

        if response.status_code != 200:
            return CommentResult(success=False, error_message=f"HTTP {response.status_code}")

        json_data = response.json().get("json", {})
        errors = json_data.get("errors", [])
        if errors:
            return CommentResult(success=False, error_message=self._format_errors(errors))

        things = json_data.get("data", {}).get("things", [])
        comment_id = things[0].get("data", {}).get("id") if things else None
        if not comment_id:
            return CommentResult(success=False, error_message="No comment returned")

        return CommentResult(success=True, comment_id=comment_id)

    # =========================================================================
    # MAPPING HELPERS
    # =========================================================================

    @staticmethod
    def _parse_retry_after(response: httpx.Response) -> Optional[int]:
        value = response.headers.get("Retry-After") or response.headers.get(
            "x-ratelimit-reset"
        )
        if value is None:
            return None
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _format_errors(errors: list) -> str:
        parts = []
        for error in errors:
            if isinstance(error, (list, tuple)) and error:
                parts.append(str(error[1] if len(error) > 1 else error[0]))
            else:
                parts.append(str(error))
        return "; ".join(parts)

    def _parse_timestamp(self, ts: Optional[float]) -> Optional[datetime]:
        """Parse a Reddit UTC timestamp into a naive UTC datetime."""
        if ts is None:
            return None
        return datetime.fromtimestamp(ts, tz=timezone.utc).replace(tzinfo=None)

    def _map_post(self, data: dict) -> CandidatePost:
        """Map Reddit post data to CandidatePost."""
        author = data.get("author") or "[deleted]"

        visibility = RemoteVisibility.VISIBLE
        if author == "[deleted]":
            visibility = RemoteVisibility.DELETED_BY_AUTHOR
        elif data.get("removed_by_category"):
            visibility = RemoteVisibility.REMOVED

        return CandidatePost(
            external_id=data.get("id", ""),
            title=data.get("title", ""),
            subreddit=data.get("subreddit", ""),
            author_username=author,
            permalink=data.get("permalink", ""),
            url=data.get("url", ""),
            body_text=data.get("selftext"),
            created_at=self._parse_timestamp(data.get("created_utc")),
            score=data.get("score", 0),
            num_comments=data.get("num_comments", 0),
            is_self=data.get("is_self", True),
            is_nsfw=data.get("over_18", False),
            remote_visibility=visibility,
            raw_data=data,
        )

    def _map_inbox_item(self, data: dict, kind: Optional[str]) -> InboxMessage:
        """Map a raw inbox item (t1 comment or t4 message) to InboxMessage."""
        external_id = data.get("id", "")
        fullname = data.get("name") or f"{kind or 't4'}_{external_id}"

        return InboxMessage(
            external_id=external_id,
            fullname=fullname,
            kind=classify_inbox_item(data),
            author=data.get("author") or "",
            body=data.get("body", ""),
            sent_at=self._parse_timestamp(data.get("created_utc")) or _utcnow(),
            dest=data.get("dest"),
            subject=data.get("subject"),
            parent_id=data.get("parent_id"),
            context=data.get("context"),
            subreddit=data.get("subreddit"),
            is_new=data.get("new", True),
            raw_data=data,
        )
