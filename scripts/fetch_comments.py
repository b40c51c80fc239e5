#!/usr/bin/env python3
"""Stream the comments of a YouTube video to stdout, one JSON object per line.

Nothing is written to the database; this exercises the protocol client and
the normalizer against the live site.

Usage:
    python scripts/fetch_comments.py URL [--sort=popular|recent] [--limit=N]

Options:
    --sort      Comment order (default: recent)
    --limit     Stop after N comments
"""

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from commentvault.config import get_settings
from commentvault.models.crawl import CrawlSortBy
from commentvault.services.proxy import load_proxy_rotation
from commentvault.services.youtube import YouTubeCommentClient, YouTubeError
from commentvault.services.youtube.parsing import extract_video_id
from commentvault.utils.http_client import close_all_clients
from commentvault.utils.logging import setup_logging


async def fetch_comments(url: str, sort_by: CrawlSortBy, limit: int | None) -> int:
    """Print comments and return the process exit code."""
    video_id = extract_video_id(url)
    if not video_id:
        print(f"Could not extract a video id from {url}", file=sys.stderr)
        return 2

    settings = get_settings()
    client = YouTubeCommentClient(
        rotation=load_proxy_rotation(settings),
        page_delay=settings.youtube_page_delay,
        language=settings.youtube_language,
    )

    count = 0
    try:
        async for comment in client.iter_comments(video_id, sort_by=sort_by, limit=limit):
            print(json.dumps({**asdict(comment), "parent_id": comment.parent_id}, ensure_ascii=False))
            count += 1
    except YouTubeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await close_all_clients()

    print(f"Fetched {count} comments", file=sys.stderr)
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Stream YouTube comments as JSON lines")
    parser.add_argument("url", help="Video URL or 11-character video id")
    parser.add_argument("--sort", choices=["popular", "recent"], default="recent", help="Comment order")
    parser.add_argument("--limit", type=int, help="Stop after this many comments")
    args = parser.parse_args()

    setup_logging(get_settings().model_copy(update={"log_level": "WARNING"}))
    sys.exit(asyncio.run(fetch_comments(args.url, CrawlSortBy(args.sort.upper()), args.limit)))
