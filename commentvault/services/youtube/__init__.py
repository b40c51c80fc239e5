"""YouTube comment protocol: page scraping, continuation API and normalization."""

from commentvault.services.youtube.client import InitialCrawlData, YouTubeCommentClient
from commentvault.services.youtube.exceptions import (
    CommentsDisabledError,
    ConfigNotFoundError,
    InitialDataNotFoundError,
    NoContinuationTokenError,
    SortOrderUnavailableError,
    UpstreamError,
    YouTubeError,
    YouTubeParseError,
)
from commentvault.services.youtube.metadata import VideoMetadata, extract_video_metadata
from commentvault.services.youtube.normalizer import (
    CommentPage,
    CommentShape,
    NormalizedComment,
    normalize_response,
)
from commentvault.services.youtube.timeparse import parse_relative_time

__all__ = [
    "CommentPage",
    "CommentShape",
    "CommentsDisabledError",
    "ConfigNotFoundError",
    "InitialCrawlData",
    "InitialDataNotFoundError",
    "NoContinuationTokenError",
    "NormalizedComment",
    "SortOrderUnavailableError",
    "UpstreamError",
    "VideoMetadata",
    "YouTubeCommentClient",
    "YouTubeError",
    "YouTubeParseError",
    "extract_video_metadata",
    "normalize_response",
    "parse_relative_time",
]
