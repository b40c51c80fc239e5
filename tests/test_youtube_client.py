"""Tests for the YouTube protocol client and its retry policy."""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from commentvault.models.crawl import CrawlSortBy
from commentvault.services.proxy import ProxyProvider, ProxyRotationContext
from commentvault.services.youtube.client import (
    API_KEY_KEY,
    API_PATH_KEY,
    CONTEXT_KEY,
    YouTubeCommentClient,
)
from commentvault.services.youtube.exceptions import (
    CommentsDisabledError,
    ConfigNotFoundError,
    NoContinuationTokenError,
    SortOrderUnavailableError,
)
from commentvault.utils.http_client import ClientPool
from commentvault.utils.retry import RetryConfig, retry_async

VIDEO_ID = "dQw4w9WgXcQ"
API_PATH = "/youtubei/v1/next"

YTCFG = {
    "INNERTUBE_API_KEY": "TEST_KEY",
    "INNERTUBE_CLIENT_VERSION": "2.20240601.00.00",
    "INNERTUBE_CONTEXT": {"client": {"hl": "en", "clientName": "WEB"}},
}


def sort_item(token: str | None) -> dict:
    endpoint: dict = {"commandMetadata": {"webCommandMetadata": {"apiUrl": API_PATH}}}
    if token:
        endpoint["continuationCommand"] = {"token": token}
    return {"serviceEndpoint": endpoint}


def sort_menu(*tokens: str | None) -> dict:
    return {"sortFilterSubMenuRenderer": {"subMenuItems": [sort_item(t) for t in tokens]}}


def watch_page(initial_data: dict, ytcfg: dict | None = YTCFG) -> str:
    cfg = f"<script>ytcfg.set({json.dumps(ytcfg)});</script>" if ytcfg else ""
    return (
        "<html><head><title>Test Video - YouTube</title></head><body>"
        f"{cfg}<script>var ytInitialData = {json.dumps(initial_data)};</script>"
        "</body></html>"
    )


def comments_response(ids: list[str], next_token: str | None = None) -> dict:
    items: list[dict] = [
        {"commentViewModel": {"commentId": cid, "content": {"content": f"text {cid}"}}}
        for cid in ids
    ]
    if next_token:
        items.append(
            {
                "continuationItemRenderer": {
                    "continuationEndpoint": {"continuationCommand": {"token": next_token}}
                }
            }
        )
    return {"onResponseReceivedEndpoints": [{"appendContinuationItemsAction": {"continuationItems": items}}]}


def make_pool(handler, proxy_handler=None) -> ClientPool:
    """Pool whose clients answer from handlers; proxied clients use ``proxy_handler``."""

    def factory(**options) -> httpx.AsyncClient:
        proxy = options.pop("proxy", None)
        chosen = proxy_handler if proxy is not None and proxy_handler else handler
        return httpx.AsyncClient(transport=httpx.MockTransport(chosen), follow_redirects=True)

    return ClientPool(factory)


def make_client(handler, fast_retry: RetryConfig, **kwargs) -> YouTubeCommentClient:
    return YouTubeCommentClient(
        rotation=kwargs.pop("rotation", ProxyRotationContext()),
        pool=make_pool(handler, kwargs.pop("proxy_handler", None)),
        retry_config=fast_retry,
        page_delay=0,
        **kwargs,
    )


class TestRetryPolicy:
    """Tests for retry_async status handling."""

    @staticmethod
    def responses(*statuses: int):
        calls = []
        queue = list(statuses)

        async def send() -> httpx.Response:
            calls.append(1)
            return httpx.Response(queue.pop(0))

        return send, calls

    @pytest.mark.asyncio
    async def test_success_first_try(self, fast_retry: RetryConfig):
        send, calls = self.responses(200)

        response = await retry_async(send, config=fast_retry)

        assert response.status_code == 200
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_terminal_status_stops_immediately(self, fast_retry: RetryConfig):
        """403 and 413 end the sequence with no result."""
        for status in (403, 413):
            send, calls = self.responses(status, 200)

            assert await retry_async(send, config=fast_retry) is None
            assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_rate_limit_then_success(self, fast_retry: RetryConfig):
        send, calls = self.responses(429, 429, 200)

        response = await retry_async(send, config=fast_retry)

        assert response.status_code == 200
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_exhaustion_returns_none(self, fast_retry: RetryConfig):
        """Five failures yield no result rather than an error."""
        send, calls = self.responses(500, 500, 500, 500, 500)

        assert await retry_async(send, config=fast_retry) is None
        assert len(calls) == 5

    @pytest.mark.asyncio
    async def test_transport_error_retried(self, fast_retry: RetryConfig):
        send = AsyncMock(side_effect=[httpx.ConnectError("boom"), httpx.Response(200)])

        response = await retry_async(send, config=fast_retry)

        assert response.status_code == 200
        assert send.await_count == 2

    @pytest.mark.asyncio
    async def test_no_sleep_after_last_attempt(self):
        """Waits happen only between attempts."""
        send, _ = self.responses(500, 500, 500)
        config = RetryConfig(max_attempts=3, fixed_delay=2.0)

        with patch("commentvault.utils.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await retry_async(send, config=config)

        assert sleep.await_count == 2
        sleep.assert_awaited_with(2.0)

    def test_backoff_delay_doubles(self):
        """Rate-limit waits grow as base * 2**attempt."""
        config = RetryConfig(base_delay=2.0, jitter=0)

        assert [config.backoff_delay(i) for i in range(4)] == [2.0, 4.0, 8.0, 16.0]

    def test_backoff_delay_capped(self):
        config = RetryConfig(base_delay=2.0, jitter=0, max_delay=10.0)

        assert config.backoff_delay(5) == 10.0


class TestInitialCrawlData:
    """Tests for resolving the first continuation token."""

    @pytest.mark.asyncio
    async def test_sort_menu_on_page(self, fast_retry: RetryConfig):
        """The token comes from the menu entry at the sort order's position."""
        page = watch_page({"contents": sort_menu("TOP", "NEWEST")})

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text=page)

        client = make_client(handler, fast_retry)

        recent = await client.get_initial_crawl_data(VIDEO_ID, CrawlSortBy.RECENT)
        popular = await client.get_initial_crawl_data(VIDEO_ID, CrawlSortBy.POPULAR)

        assert recent.token == "NEWEST"
        assert popular.token == "TOP"
        assert recent.session_config[API_KEY_KEY] == "TEST_KEY"
        assert recent.session_config[API_PATH_KEY] == API_PATH
        assert recent.session_config[CONTEXT_KEY] == YTCFG["INNERTUBE_CONTEXT"]

    @pytest.mark.asyncio
    async def test_sort_menu_loaded_lazily(self, fast_retry: RetryConfig):
        """Without a menu on the page, one continuation call loads it."""
        initial_data = {
            "sectionListRenderer": {
                "contents": [
                    {"continuationEndpoint": {"continuationCommand": {"token": "SECTION"}}}
                ]
            }
        }
        posted = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                posted.append(json.loads(request.content))
                return httpx.Response(200, json={"header": sort_menu("TOP", "NEWEST")})
            return httpx.Response(200, text=watch_page(initial_data))

        client = make_client(handler, fast_retry)

        result = await client.get_initial_crawl_data(VIDEO_ID, CrawlSortBy.RECENT)

        assert result.token == "NEWEST"
        assert posted[0]["continuation"] == "SECTION"

    @pytest.mark.asyncio
    async def test_consent_redirect(self, fast_retry: RetryConfig):
        """A consent redirect is accepted before parsing the page."""
        consent_form = (
            '<input type="hidden" name="gl" value="DE">'
            '<input type="hidden" name="m" value="0">'
        )
        consent_posts = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "www.youtube.com":
                return httpx.Response(
                    302, headers={"Location": "https://consent.youtube.com/ml?continue=watch"}
                )
            if request.method == "POST":
                consent_posts.append(dict(request.url.params))
                return httpx.Response(200, text=watch_page({"contents": sort_menu("TOP", "NEWEST")}))
            return httpx.Response(200, text=consent_form)

        client = make_client(handler, fast_retry)

        result = await client.get_initial_crawl_data(VIDEO_ID, CrawlSortBy.RECENT)

        assert result.token == "NEWEST"
        [params] = consent_posts
        assert params == {
            "gl": "DE",
            "m": "0",
            "continue": f"https://www.youtube.com/watch?v={VIDEO_ID}",
            "set_eom": "False",
            "set_ytc": "True",
            "set_apyt": "True",
        }

    @pytest.mark.asyncio
    async def test_language_override(self, fast_retry: RetryConfig):
        """The configured language replaces the context's hl."""
        page = watch_page({"contents": sort_menu("TOP", "NEWEST")})
        client = make_client(lambda r: httpx.Response(200, text=page), fast_retry, language="de")

        result = await client.get_initial_crawl_data(VIDEO_ID, CrawlSortBy.RECENT)

        assert result.session_config[CONTEXT_KEY]["client"]["hl"] == "de"

    @pytest.mark.asyncio
    async def test_section_list_fallback(self, fast_retry: RetryConfig):
        """A menu entry without a token falls back to the section list."""
        data = {
            "menu": sort_menu("TOP", None),
            "sectionListRenderer": {
                "contents": [{"continuationEndpoint": {"continuationCommand": {"token": "SECTION"}}}]
            },
        }
        client = make_client(lambda r: httpx.Response(200, text=watch_page(data)), fast_retry)

        result = await client.get_initial_crawl_data(VIDEO_ID, CrawlSortBy.RECENT)

        assert result.token == "SECTION"

    @pytest.mark.asyncio
    async def test_any_continuation_command_fallback(self, fast_retry: RetryConfig):
        """Without a section list, any continuation command in the graph is used."""
        data = {
            "header": sort_menu(None, None),
            "engagementPanels": [{"continuationCommand": {"token": "ANYWHERE"}}],
        }
        client = make_client(lambda r: httpx.Response(200, text=watch_page(data)), fast_retry)

        result = await client.get_initial_crawl_data(VIDEO_ID, CrawlSortBy.RECENT)

        assert result.token == "ANYWHERE"

    @pytest.mark.asyncio
    async def test_incidental_comments_fallback(self, fast_retry: RetryConfig):
        """Comments already on the page supply the token when no command carries one."""
        data = {
            "header": sort_menu(None, None),
            **comments_response(["Ugx1"], "INCIDENTAL"),
            "engagementPanels": {"continuationCommand": {"request": "CONTINUATION_REQUEST_TYPE_WATCH_NEXT"}},
        }
        client = make_client(lambda r: httpx.Response(200, text=watch_page(data)), fast_retry)

        result = await client.get_initial_crawl_data(VIDEO_ID, CrawlSortBy.RECENT)

        assert result.token == "INCIDENTAL"

    @pytest.mark.asyncio
    async def test_metadata_from_same_page(self, fast_retry: RetryConfig):
        """Video metadata is read from the watch page already loaded for the token."""
        data = {
            "contents": sort_menu("TOP", "NEWEST"),
            "videoOwnerRenderer": {
                "title": {"runs": [{"text": "Channel"}]},
                "navigationEndpoint": {"browseEndpoint": {"browseId": "UCuAXFkgsw1L7xaCfnd5JJOw"}},
            },
        }
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request.method)
            return httpx.Response(200, text=watch_page(data))

        client = make_client(handler, fast_retry)

        result = await client.get_initial_crawl_data(VIDEO_ID, CrawlSortBy.RECENT)

        assert requests == ["GET"]
        assert result.token == "NEWEST"
        assert result.metadata.title == "Test Video"
        assert result.metadata.channel_id == "UCuAXFkgsw1L7xaCfnd5JJOw"
        assert result.metadata.channel_title == "Channel"

    @pytest.mark.asyncio
    async def test_missing_config(self, fast_retry: RetryConfig):
        page = watch_page({"contents": sort_menu("TOP", "NEWEST")}, ytcfg=None)
        client = make_client(lambda r: httpx.Response(200, text=page), fast_retry)

        with pytest.raises(ConfigNotFoundError):
            await client.get_initial_crawl_data(VIDEO_ID, CrawlSortBy.RECENT)

    @pytest.mark.asyncio
    async def test_comments_disabled(self, fast_retry: RetryConfig):
        """No menu and nothing to load it from means comments are disabled."""
        page = watch_page({"contents": {}})
        client = make_client(lambda r: httpx.Response(200, text=page), fast_retry)

        with pytest.raises(CommentsDisabledError):
            await client.get_initial_crawl_data(VIDEO_ID, CrawlSortBy.RECENT)

    @pytest.mark.asyncio
    async def test_sort_order_out_of_range(self, fast_retry: RetryConfig):
        """A one-entry menu cannot serve the second sort order."""
        page = watch_page({"contents": sort_menu("TOP")})
        client = make_client(lambda r: httpx.Response(200, text=page), fast_retry)

        with pytest.raises(SortOrderUnavailableError):
            await client.get_initial_crawl_data(VIDEO_ID, CrawlSortBy.RECENT)

    @pytest.mark.asyncio
    async def test_no_continuation_token(self, fast_retry: RetryConfig):
        """Exhausting every fallback is its own failure."""
        page = watch_page({"contents": sort_menu(None, None)})
        client = make_client(lambda r: httpx.Response(200, text=page), fast_retry)

        with pytest.raises(NoContinuationTokenError):
            await client.get_initial_crawl_data(VIDEO_ID, CrawlSortBy.RECENT)


class TestFetchCommentPage:
    """Tests for continuation requests."""

    SESSION = {
        CONTEXT_KEY: {"client": {"hl": "en"}},
        API_KEY_KEY: "TEST_KEY",
        API_PATH_KEY: "/youtubei/v1/next",
    }

    @pytest.mark.asyncio
    async def test_request_shape(self, fast_retry: RetryConfig):
        """The token and context are posted to the session's API path."""
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=comments_response(["c1", "c2"], next_token="T2"))

        client = make_client(handler, fast_retry)

        page = await client.fetch_comment_page("T1", self.SESSION)

        [request] = requests
        assert request.method == "POST"
        assert request.url.path == "/youtubei/v1/next"
        assert request.url.params["key"] == "TEST_KEY"
        assert json.loads(request.content) == {
            "context": {"client": {"hl": "en"}},
            "continuation": "T1",
        }
        assert {c.comment_id for c in page.comments} == {"c1", "c2"}
        assert page.next_token == "T2"
        assert page.exhausted is False

    @pytest.mark.asyncio
    async def test_terminal_status_is_exhausted_page(self, fast_retry: RetryConfig):
        """A refused request yields an empty page flagged as exhausted."""
        client = make_client(lambda r: httpx.Response(403), fast_retry)

        page = await client.fetch_comment_page("T1", self.SESSION)

        assert page.comments == []
        assert page.next_token is None
        assert page.exhausted is True

    @pytest.mark.asyncio
    async def test_proxy_failure_falls_back_to_direct(self, fast_retry: RetryConfig):
        """A transport error through the proxy is retried without it."""
        proxied = []

        def proxy_handler(request: httpx.Request) -> httpx.Response:
            proxied.append(request)
            raise httpx.ConnectError("proxy down")

        client = make_client(
            lambda r: httpx.Response(200, json=comments_response(["c1"])),
            fast_retry,
            rotation=ProxyRotationContext([ProxyProvider(url="http://proxy.example.com:8080")]),
            proxy_handler=proxy_handler,
        )

        page = await client.fetch_comment_page("T1", self.SESSION)

        assert len(proxied) == 1
        assert [c.comment_id for c in page.comments] == ["c1"]

    @pytest.mark.asyncio
    async def test_iter_comments_follows_tokens(self, fast_retry: RetryConfig):
        """Streaming walks pages until the token runs out or the limit is hit."""
        page = watch_page({"contents": sort_menu("TOP", "T1")})
        pages = {
            "T1": comments_response(["a1", "a2"], next_token="T2"),
            "T2": comments_response(["b1", "b2"]),
        }

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(200, text=page)
            token = json.loads(request.content)["continuation"]
            return httpx.Response(200, json=pages[token])

        client = make_client(handler, fast_retry)

        everything = [c async for c in client.iter_comments(VIDEO_ID)]
        limited = [c async for c in client.iter_comments(VIDEO_ID, limit=3)]

        assert len(everything) == 4
        assert len(limited) == 3
