"""Unit tests for the Reddit adapter.

HTTP calls are mocked at the httpx.AsyncClient level.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from leadhunter_core.domain.errors import ProviderRateLimitedError
from leadhunter_core.infrastructure.rate_limiter import BackoffStrategy
from leadhunter_core.providers.base import InboxMessageKind, RemoteVisibility
from leadhunter_core.providers.reddit.adapter import (
    RedditAdapter,
    build_search_query,
    classify_inbox_item,
    search_time_filter,
)


def make_response(status_code=200, json_data=None, headers=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = json_data or {}
    response.headers = headers or {}
    return response


def post_child(post_id, title="Need a CRM", over_18=False, author="baker_jane"):
    return {
        "kind": "t3",
        "data": {
            "id": post_id,
            "title": title,
            "subreddit": "smallbusiness",
            "author": author,
            "permalink": f"/r/smallbusiness/comments/{post_id}/need_a_crm/",
            "url": f"https://reddit.com/r/smallbusiness/comments/{post_id}/",
            "selftext": "Looking for recommendations",
            "created_utc": 1700000000,
            "score": 4,
            "num_comments": 2,
            "is_self": True,
            "over_18": over_18,
        },
    }


@pytest.fixture
def no_sleep():
    return AsyncMock()


@pytest.fixture
def adapter(no_sleep):
    return RedditAdapter(
        access_token="token",
        user_agent="LeadHunter:test",
        backoff=BackoffStrategy(jitter=False, max_retries=2),
        sleep=no_sleep,
    )


def patch_client(responses):
    """Patch httpx.AsyncClient so successive requests return ``responses``."""
    patcher = patch("httpx.AsyncClient")
    mock_client_class = patcher.start()
    mock_client = AsyncMock()
    mock_client.request = AsyncMock(side_effect=responses)
    mock_client_class.return_value.__aenter__.return_value = mock_client
    return patcher, mock_client


class TestBuildSearchQuery:
    """Tests for the keyword OR-query."""

    def test_or_joins_keywords(self):
        assert build_search_query(["crm", "invoicing"]) == "crm OR invoicing"

    def test_quotes_phrases(self):
        assert build_search_query(["lead gen", "crm"]) == '"lead gen" OR crm'

    def test_skips_blank_keywords(self):
        assert build_search_query(["", "  ", "crm"]) == "crm"


class TestClassifyInboxItem:
    """Tests for inbox item classification."""

    def test_private_message(self):
        assert classify_inbox_item({"was_comment": False}) == InboxMessageKind.DIRECT_MESSAGE

    def test_comment_reply_by_type(self):
        data = {"was_comment": True, "type": "comment_reply"}
        assert classify_inbox_item(data) == InboxMessageKind.COMMENT_REPLY

    def test_comment_reply_by_parent(self):
        data = {"was_comment": True, "parent_id": "t1_abc"}
        assert classify_inbox_item(data) == InboxMessageKind.COMMENT_REPLY

    def test_post_reply_by_parent(self):
        data = {"was_comment": True, "parent_id": "t3_abc"}
        assert classify_inbox_item(data) == InboxMessageKind.POST_REPLY


class TestSearchTimeFilter:
    """Tests for mapping a max post age to a Reddit search window."""

    def test_default_is_a_day(self):
        assert search_time_filter(None) == "day"

    def test_beyond_a_month_is_a_year(self):
        assert search_time_filter(24 * 60) == "year"


class TestSearchPosts:
    """Tests for subreddit search."""

    @pytest.mark.asyncio
    async def test_maps_posts_and_drops_adult_content(self, adapter):
        listing = {
            "data": {
                "children": [post_child("a1"), post_child("a2", over_18=True), post_child("a3")],
                "after": None,
            }
        }
        patcher, client = patch_client([make_response(json_data=listing)])
        try:
            posts = await adapter.search_posts("r/smallbusiness", ["crm"], limit=10)
        finally:
            patcher.stop()

        assert [p.external_id for p in posts] == ["a1", "a3"]
        assert posts[0].post_url == "https://reddit.com/r/smallbusiness/comments/a1/need_a_crm/"
        assert posts[0].remote_visibility == RemoteVisibility.VISIBLE

        args, kwargs = client.request.call_args
        assert args[1] == "https://oauth.reddit.com/r/smallbusiness/search"
        assert kwargs["params"]["q"] == "crm"
        assert kwargs["params"]["restrict_sr"] == "on"
        assert kwargs["params"]["sort"] == "new"
        assert kwargs["params"]["t"] == "day"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "max_age_hours,window",
        [(1, "hour"), (6, "day"), (24, "day"), (48, "week"), (168, "week"), (500, "month")],
    )
    async def test_search_window_follows_max_age(self, adapter, max_age_hours, window):
        patcher, client = patch_client([make_response(json_data={"data": {"children": []}})])
        try:
            await adapter.search_posts("smallbusiness", ["crm"], max_age_hours=max_age_hours)
        finally:
            patcher.stop()

        _, kwargs = client.request.call_args
        assert kwargs["params"]["t"] == window

    @pytest.mark.asyncio
    async def test_without_keywords_uses_new_listing(self, adapter):
        patcher, client = patch_client([make_response(json_data={"data": {"children": []}})])
        try:
            await adapter.search_posts("smallbusiness", [], limit=5)
        finally:
            patcher.stop()

        args, _ = client.request.call_args
        assert args[1] == "https://oauth.reddit.com/r/smallbusiness/new"

    @pytest.mark.asyncio
    async def test_deleted_author(self, adapter):
        listing = {"data": {"children": [post_child("d1", author="[deleted]")], "after": None}}
        patcher, _ = patch_client([make_response(json_data=listing)])
        try:
            posts = await adapter.search_posts("smallbusiness", ["crm"])
        finally:
            patcher.stop()

        assert posts[0].is_author_deleted is True

    @pytest.mark.asyncio
    async def test_429_raises_rate_limited(self, adapter):
        patcher, _ = patch_client([make_response(429, headers={"Retry-After": "42"})])
        try:
            with pytest.raises(ProviderRateLimitedError) as exc_info:
                await adapter.search_posts("smallbusiness", ["crm"])
        finally:
            patcher.stop()

        assert exc_info.value.retry_after == 42

    @pytest.mark.asyncio
    async def test_5xx_retried_then_empty(self, adapter, no_sleep):
        patcher, client = patch_client([make_response(503)] * 3)
        try:
            posts = await adapter.search_posts("smallbusiness", ["crm"])
        finally:
            patcher.stop()

        assert posts == []
        assert client.request.await_count == 3
        assert no_sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_5xx_then_success(self, adapter):
        listing = {"data": {"children": [post_child("ok1")], "after": None}}
        patcher, _ = patch_client([make_response(502), make_response(json_data=listing)])
        try:
            posts = await adapter.search_posts("smallbusiness", ["crm"])
        finally:
            patcher.stop()

        assert [p.external_id for p in posts] == ["ok1"]


class TestInbox:
    """Tests for inbox fetching."""

    @pytest.mark.asyncio
    async def test_fetch_unread_maps_messages_and_comments(self, adapter):
        listing = {
            "data": {
                "children": [
                    {
                        "kind": "t4",
                        "data": {
                            "id": "m1",
                            "name": "t4_m1",
                            "author": "baker_jane",
                            "body": "Sure, tell me more",
                            "created_utc": 1700000000,
                            "was_comment": False,
                        },
                    },
                    {
                        "kind": "t1",
                        "data": {
                            "id": "c9",
                            "name": "t1_c9",
                            "author": "baker_jane",
                            "body": "Got it!",
                            "created_utc": 1700000100,
                            "was_comment": True,
                            "parent_id": "t1_c_follow",
                        },
                    },
                ]
            }
        }
        patcher, client = patch_client([make_response(json_data=listing)])
        try:
            items = await adapter.fetch_unread()
        finally:
            patcher.stop()

        assert items[0].kind == InboxMessageKind.DIRECT_MESSAGE
        assert items[0].fullname == "t4_m1"
        assert items[1].kind == InboxMessageKind.COMMENT_REPLY
        assert items[1].parent_comment_id == "c_follow"
        assert client.request.call_args.kwargs["params"]["mark"] == "false"


class TestSendMessage:
    """Tests for DM sending."""

    @pytest.mark.asyncio
    async def test_success(self, adapter):
        body = {"json": {"errors": [], "data": {"things": [{"data": {"id": "msg1"}}]}}}
        patcher, _ = patch_client([make_response(json_data=body)])
        try:
            result = await adapter.send_message("baker_jane", "Hi", "Hello there")
        finally:
            patcher.stop()

        assert result.success is True
        assert result.external_message_id == "msg1"

    @pytest.mark.asyncio
    async def test_api_errors(self, adapter):
        body = {"json": {"errors": [["USER_DOESNT_EXIST", "that user doesn't exist", "to"]]}}
        patcher, _ = patch_client([make_response(json_data=body)])
        try:
            result = await adapter.send_message("ghost", "Hi", "Hello")
        finally:
            patcher.stop()

        assert result.success is False
        assert result.is_ambiguous is False
        assert result.error_message == "that user doesn't exist"

    @pytest.mark.asyncio
    async def test_5xx_is_ambiguous_and_not_retried(self, adapter):
        patcher, client = patch_client([make_response(500)])
        try:
            result = await adapter.send_message("baker_jane", "Hi", "Hello")
        finally:
            patcher.stop()

        assert result.success is False
        assert result.is_ambiguous is True
        assert client.request.await_count == 1


class TestPostComment:
    """Tests for comment posting."""

    @pytest.mark.asyncio
    async def test_success(self, adapter):
        body = {"json": {"errors": [], "data": {"things": [{"data": {"id": "c_new"}}]}}}
        patcher, client = patch_client([make_response(json_data=body)])
        try:
            result = await adapter.post_comment("t3_abc", "Check your DMs!")
        finally:
            patcher.stop()

        assert result.success is True
        assert result.comment_id == "c_new"
        assert client.request.call_args.kwargs["data"]["thing_id"] == "t3_abc"

    @pytest.mark.asyncio
    async def test_rate_limited_returns_failure(self, adapter):
        patcher, _ = patch_client([make_response(429)])
        try:
            result = await adapter.post_comment("t3_abc", "Check your DMs!")
        finally:
            patcher.stop()

        assert result.success is False
