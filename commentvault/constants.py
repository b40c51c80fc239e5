"""Application constants - centralized configuration values."""

# =============================================================================
# YouTube endpoints
# =============================================================================
YOUTUBE_BASE_URL = "https://www.youtube.com"
YOUTUBE_VIDEO_URL = "https://www.youtube.com/watch?v="
YOUTUBE_CONSENT_URL = "https://consent.youtube.com/save"
YOUTUBE_DEFAULT_API_PATH = "/youtubei/v1/next"
YOUTUBE_DEFAULT_CLIENT_VERSION = "2.20240518.00.00"

# Fixed flags appended to the consent form
CONSENT_FLAGS = {
    "set_eom": "False",
    "set_ytc": "True",
    "set_apyt": "True",
}

# =============================================================================
# Browser request profile
# =============================================================================
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/114.0.0.0 Safari/537.36"
)

PAGE_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept-Language": "en-US,en;q=0.9",
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,"
        "image/webp,image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.7"
    ),
    "Sec-Fetch-Site": "none",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-User": "?1",
    "Sec-Fetch-Dest": "document",
    "Sec-Ch-Ua": '"Not.A/Brand";v="8", "Chromium";v="114"',
    "Sec-Ch-Ua-Mobile": "?0",
    "Sec-Ch-Ua-Platform": '"Windows"',
    "Upgrade-Insecure-Requests": "1",
    "Priority": "u=0, i",
}

API_HEADERS = {
    "Content-Type": "application/json",
    "X-YouTube-Client-Name": "1",
    "Origin": YOUTUBE_BASE_URL,
    "Referer": f"{YOUTUBE_BASE_URL}/",
    "Accept": "*/*",
    "Sec-Fetch-Site": "same-origin",
    "Sec-Fetch-Mode": "cors",
    "Sec-Fetch-Dest": "empty",
}

# =============================================================================
# Timeouts and retry timings (in seconds)
# =============================================================================
HTTPX_TIMEOUT = 60.0
CONTINUATION_MAX_ATTEMPTS = 5
CONTINUATION_BASE_DELAY = 2.0
CONTINUATION_JITTER = 1.0
CONTINUATION_FIXED_DELAY = 2.0
YOUTUBE_PAGE_DELAY = 0.1

# =============================================================================
# Event handlers
# =============================================================================
EVENT_CRAWL_REQUESTED = "crawl/requested"
EVENT_CRAWL_PAGE_REQUESTED = "crawl/page.requested"
CRAWL_TRIGGER_CONCURRENCY = 2
CRAWL_TRIGGER_MAX_ATTEMPTS = 3
CRAWL_PAGE_CONCURRENCY = 10
CRAWL_PAGE_MAX_ATTEMPTS = 5
EVENT_RETRY_DELAY = 1.0
EVENT_POLL_TIMEOUT = 3

# =============================================================================
# Comment tracking
# =============================================================================
TRACKED_COMMENT_ATTRIBUTES = ("text", "votes", "reply_count", "is_hearted", "is_paid")

# =============================================================================
# Database pool
# =============================================================================
DB_API_CONNECTIONS = 5  # on top of one per event handler slot
DB_POOL_TIMEOUT = 30
DB_POOL_RECYCLE = 1800
