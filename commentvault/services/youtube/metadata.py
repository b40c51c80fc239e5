"""Video metadata scraped from the watch page."""

import html as html_lib
import re
from dataclasses import dataclass
from typing import Any

from commentvault.services.youtube.exceptions import YouTubeParseError
from commentvault.services.youtube.parsing import extract_initial_data, first, search_dict

TITLE_RE = re.compile(r"<title>(.*?)</title>", re.DOTALL)
TITLE_SUFFIX = " - YouTube"


@dataclass
class VideoMetadata:
    """Title and channel of one video. Empty strings when not found."""

    video_id: str
    title: str = ""
    channel_id: str = ""
    channel_title: str = ""


def _owner_renderer(data: Any) -> dict[str, Any]:
    for info in search_dict(data, "videoSecondaryInfoRenderer"):
        if not isinstance(info, dict):
            continue
        owner = (info.get("owner") or {}).get("videoOwnerRenderer")
        if isinstance(owner, dict):
            return owner
    owner = first(search_dict(data, "videoOwnerRenderer"))
    return owner if isinstance(owner, dict) else {}


def extract_video_metadata(page: str, video_id: str) -> VideoMetadata:
    """Extract metadata from watch page HTML.

    Missing pieces are left empty; this never raises on a malformed page.
    """
    match = TITLE_RE.search(page)
    title = html_lib.unescape(match.group(1)).replace(TITLE_SUFFIX, "").strip() if match else ""

    try:
        data = extract_initial_data(page)
    except YouTubeParseError:
        return VideoMetadata(video_id=video_id, title=title)

    owner = _owner_renderer(data)
    browse = (owner.get("navigationEndpoint") or {}).get("browseEndpoint") or {}
    runs = (owner.get("title") or {}).get("runs") or [{}]
    first_run = runs[0] if isinstance(runs[0], dict) else {}

    return VideoMetadata(
        video_id=video_id,
        title=title,
        channel_id=browse.get("browseId") or "",
        channel_title=first_run.get("text") or "",
    )
