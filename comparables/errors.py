class ComparablesError(Exception):
    """Base class for errors raised by the comparables engine."""


class FeedUnavailable(ComparablesError):
    """Raised when the feed cannot be loaded and no previous snapshot exists."""


class FeedParseError(ComparablesError):
    """Raised when a feed document cannot be parsed as a whole."""


class ResolutionFailed(ComparablesError):
    """Raised when the geocoding capability is unavailable or returns nothing."""

    def __init__(self, message: str, query: str = ""):
        super().__init__(message)
        self.message = message
        self.query = query
