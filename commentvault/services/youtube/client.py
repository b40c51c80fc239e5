"""YouTube comment protocol client.

Drives the watch page and the internal continuation API:

1. ``get_initial_crawl_data`` loads the watch page (accepting the consent
   interstitial when redirected to it), extracts the session configuration
   and resolves the first continuation token for a sort order.
2. ``fetch_comment_page`` posts one continuation token and normalizes the
   response into a ``CommentPage``.

Every request is routed through the proxy rotation context, with a direct
retry when the proxy itself fails at the transport level.
"""

import asyncio
import copy
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import httpx

from commentvault.constants import (
    API_HEADERS,
    PAGE_HEADERS,
    YOUTUBE_BASE_URL,
    YOUTUBE_CONSENT_URL,
    YOUTUBE_DEFAULT_API_PATH,
    YOUTUBE_DEFAULT_CLIENT_VERSION,
    YOUTUBE_PAGE_DELAY,
    YOUTUBE_VIDEO_URL,
)
from commentvault.models.crawl import CrawlSortBy
from commentvault.services.proxy import ProxyRotationContext, get_proxy_rotation
from commentvault.services.youtube.exceptions import (
    CommentsDisabledError,
    NoContinuationTokenError,
    SortOrderUnavailableError,
)
from commentvault.services.youtube.metadata import VideoMetadata, extract_video_metadata
from commentvault.services.youtube.normalizer import (
    CommentPage,
    NormalizedComment,
    normalize_response,
)
from commentvault.services.youtube.parsing import (
    build_consent_params,
    endpoint_api_url,
    endpoint_token,
    extract_initial_data,
    extract_ytcfg,
    find_section_continuations,
    find_sort_menu,
    first,
    search_dict,
)
from commentvault.utils.http_client import ClientPool, get_client_pool
from commentvault.utils.retry import RetryConfig, retry_async

logger = logging.getLogger(__name__)

# Keys of the session configuration persisted with a crawl
CONTEXT_KEY = "INNERTUBE_CONTEXT"
API_KEY_KEY = "INNERTUBE_API_KEY"
CLIENT_VERSION_KEY = "INNERTUBE_CLIENT_VERSION"
API_PATH_KEY = "COMMENTS_API_PATH"

CONSENT_MARKER = "consent"


@dataclass
class InitialCrawlData:
    """First continuation token of a crawl, its session, and the metadata of the page it came from."""

    token: str | None
    session_config: dict[str, Any] = field(default_factory=dict)
    metadata: VideoMetadata | None = None


def session_config_from_ytcfg(ytcfg: dict[str, Any], api_path: str | None = None) -> dict[str, Any]:
    """Reduce a full ytcfg to what continuation calls need."""
    return {
        CONTEXT_KEY: ytcfg.get(CONTEXT_KEY) or {},
        API_KEY_KEY: ytcfg.get(API_KEY_KEY) or "",
        CLIENT_VERSION_KEY: ytcfg.get(CLIENT_VERSION_KEY) or YOUTUBE_DEFAULT_CLIENT_VERSION,
        API_PATH_KEY: api_path or ytcfg.get(API_PATH_KEY) or YOUTUBE_DEFAULT_API_PATH,
    }


def continuation_endpoint(token: str, api_path: str | None = None) -> dict[str, Any]:
    """Build a continuation endpoint in the shape the platform uses."""
    return {
        "continuationCommand": {"token": token},
        "commandMetadata": {
            "webCommandMetadata": {"apiUrl": api_path or YOUTUBE_DEFAULT_API_PATH}
        },
    }


class YouTubeCommentClient:
    """Client for YouTube's comment pagination.

    Usage:
        client = YouTubeCommentClient(rotation=load_proxy_rotation(settings))

        initial = await client.get_initial_crawl_data("dQw4w9WgXcQ", CrawlSortBy.RECENT)
        page = await client.fetch_comment_page(initial.token, initial.session_config)

        # Or stream everything without persisting state
        async for comment in client.iter_comments("dQw4w9WgXcQ", limit=100):
            ...
    """

    def __init__(
        self,
        rotation: ProxyRotationContext | None = None,
        pool: ClientPool | None = None,
        retry_config: RetryConfig | None = None,
        page_delay: float = YOUTUBE_PAGE_DELAY,
        language: str | None = None,
    ):
        self.rotation = rotation if rotation is not None else get_proxy_rotation()
        self.pool = pool if pool is not None else get_client_pool()
        self.retry_config = retry_config or RetryConfig()
        self.page_delay = page_delay
        self.language = language

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request through the next proxy, falling back to a direct connection."""
        domain = httpx.URL(url).host
        options = self.rotation.apply_proxy({}, domain)

        if "proxy" in options:
            try:
                return await self.pool.get(options).request(method, url, **kwargs)
            except httpx.TransportError as e:
                logger.warning(f"Request through proxy failed: {e}. Retrying without proxy...")

        return await self.pool.get().request(method, url, **kwargs)

    async def _load_watch_page(self, video_id: str) -> str:
        """Watch page HTML, with the consent interstitial accepted if it appears."""
        url = YOUTUBE_VIDEO_URL + video_id
        response = await self._request("GET", url, headers=PAGE_HEADERS)
        html = response.text

        if CONSENT_MARKER in str(response.url):
            logger.info(f"Accepting consent interstitial for {video_id}")
            params = build_consent_params(html, url)
            response = await self._request(
                "POST", YOUTUBE_CONSENT_URL, params=params, headers=PAGE_HEADERS
            )
            html = response.text

        return html

    async def ajax_request(
        self, endpoint: dict[str, Any], session_config: dict[str, Any]
    ) -> dict[str, Any] | None:
        """POST a continuation endpoint to the API under the retry policy.

        Returns:
            The decoded response, or None on a terminal status, exhausted
            retries or an undecodable body
        """
        api_path = endpoint_api_url(endpoint) or session_config.get(API_PATH_KEY) or YOUTUBE_DEFAULT_API_PATH
        api_key = session_config.get(API_KEY_KEY) or ""
        url = f"{YOUTUBE_BASE_URL}{api_path}?key={quote(api_key, safe='')}"
        headers = {
            **API_HEADERS,
            "User-Agent": PAGE_HEADERS["User-Agent"],
            "X-YouTube-Client-Version": session_config.get(CLIENT_VERSION_KEY)
            or YOUTUBE_DEFAULT_CLIENT_VERSION,
        }
        payload = {
            "context": session_config.get(CONTEXT_KEY) or {},
            "continuation": endpoint_token(endpoint),
        }

        response = await retry_async(
            self._request,
            "POST",
            url,
            json=payload,
            headers=headers,
            config=self.retry_config,
            operation_name="YouTube continuation",
        )
        if response is None:
            return None

        try:
            return response.json()
        except json.JSONDecodeError as e:
            logger.warning(f"YouTube continuation returned invalid JSON: {e}")
            return None

    async def get_initial_crawl_data(self, video_id: str, sort_by: CrawlSortBy) -> InitialCrawlData:
        """Resolve the first continuation token and session config of a crawl.

        Raises:
            ConfigNotFoundError: If the page carries no ytcfg
            InitialDataNotFoundError: If the page carries no ytInitialData
            CommentsDisabledError: If no sort menu can be found
            SortOrderUnavailableError: If the menu lacks the requested order
            NoContinuationTokenError: If no continuation token can be found
        """
        html = await self._load_watch_page(video_id)

        ytcfg = extract_ytcfg(html)
        if self.language:
            context = copy.deepcopy(ytcfg.get(CONTEXT_KEY) or {})
            context.setdefault("client", {})["hl"] = self.language
            ytcfg[CONTEXT_KEY] = context

        data: Any = extract_initial_data(html)
        session_config = session_config_from_ytcfg(ytcfg)

        sort_menu = find_sort_menu(data)
        if not sort_menu:
            # The comment section is usually loaded lazily through a continuation
            continuations = find_section_continuations(data)
            if continuations:
                data = await self.ajax_request(continuations[0], session_config) or {}
                sort_menu = find_sort_menu(data)

        if not sort_menu:
            raise CommentsDisabledError()
        if sort_by.menu_index >= len(sort_menu):
            raise SortOrderUnavailableError(sort_by.value, len(sort_menu))

        service_endpoint = (sort_menu[sort_by.menu_index] or {}).get("serviceEndpoint")
        token = endpoint_token(service_endpoint)
        api_path = endpoint_api_url(service_endpoint)

        if not token:
            sections = find_section_continuations(data)
            token = endpoint_token(sections[0]) if sections else None

        if not token:
            command = first(search_dict(data, "continuationCommand")) or {}
            token = command.get("token") if isinstance(command, dict) else None

        if not token:
            page = normalize_response(data)
            if page.comments and page.next_token:
                logger.warning(f"Using continuation token of incidental comments for {video_id}")
                token = page.next_token

        if not token:
            raise NoContinuationTokenError()

        return InitialCrawlData(
            token=token,
            session_config=session_config_from_ytcfg(ytcfg, api_path),
            metadata=extract_video_metadata(html, video_id),
        )

    async def fetch_comment_page(self, token: str, session_config: dict[str, Any]) -> CommentPage:
        """Fetch and normalize one page of comments.

        An empty page with ``exhausted`` set means the fetch itself failed
        (terminal status or retries exhausted).

        Raises:
            UpstreamError: If the response carries an explicit error message
        """
        endpoint = continuation_endpoint(token, session_config.get(API_PATH_KEY))
        response = await self.ajax_request(endpoint, session_config)

        if self.page_delay:
            await asyncio.sleep(self.page_delay)

        if response is None:
            return CommentPage(exhausted=True)
        return normalize_response(response)

    async def iter_comments(
        self,
        video_id: str,
        sort_by: CrawlSortBy = CrawlSortBy.RECENT,
        limit: int | None = None,
    ) -> AsyncIterator[NormalizedComment]:
        """Stream comments page by page, without persisting any state."""
        initial = await self.get_initial_crawl_data(video_id, sort_by)
        token = initial.token
        yielded = 0

        while token:
            page = await self.fetch_comment_page(token, initial.session_config)
            for comment in page.comments:
                if limit is not None and yielded >= limit:
                    return
                yield comment
                yielded += 1
            if limit is not None and yielded >= limit:
                return
            token = page.next_token
