"""YouTube protocol errors."""


class YouTubeError(Exception):
    """Base exception for YouTube protocol errors."""

    pass


class YouTubeParseError(YouTubeError):
    """Expected embedded data is missing from a page or response."""

    pass


class ConfigNotFoundError(YouTubeParseError):
    """The page carries no ytcfg session configuration."""

    def __init__(self) -> None:
        super().__init__("Could not extract ytcfg configuration.")


class InitialDataNotFoundError(YouTubeParseError):
    """The page carries no ytInitialData object."""

    def __init__(self) -> None:
        super().__init__("Could not extract initial data.")


class CommentsDisabledError(YouTubeParseError):
    """No comment sort menu could be found; comments are likely disabled."""

    def __init__(self) -> None:
        super().__init__("Failed to find comment sorting menu; comments may be disabled.")


class SortOrderUnavailableError(YouTubeParseError):
    """The sort menu has no entry for the requested order."""

    def __init__(self, sort_by: str, available: int) -> None:
        self.sort_by = sort_by
        self.available = available
        super().__init__(
            f"Failed to set comment sorting to {sort_by}: menu has {available} entries."
        )


class NoContinuationTokenError(YouTubeParseError):
    """Every strategy for finding the first continuation token failed."""

    def __init__(self) -> None:
        super().__init__(
            "Could not find the initial continuation token. "
            "The YouTube page structure may have changed."
        )


class UpstreamError(YouTubeError):
    """The platform embedded an explicit error message in its response."""

    def __init__(self, message: str) -> None:
        self.upstream_message = message
        super().__init__(f"Error returned from server: {message}")
