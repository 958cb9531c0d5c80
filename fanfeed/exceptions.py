"""
Exception hierarchy for fanfeed.

Scraping failures are not represented here: an upstream that is down, slow or
returns something unparseable is a routine outcome and is absorbed by the
strategy that called it. Only errors the caller must act on are raised.
"""


class FanfeedError(Exception):
    """Base exception for all fanfeed errors."""
    pass


class InvalidInputError(FanfeedError, ValueError):
    """Raised for a malformed or missing URL, platform, or required post field."""
    pass


class UnauthorizedError(FanfeedError):
    """Raised when a bearer credential is missing, invalid or expired."""
    pass


class PostNotFoundError(FanfeedError, KeyError):
    """Raised when an update or delete targets an unknown post id."""

    def __init__(self, post_id: str):
        super().__init__(post_id)
        self.post_id = post_id

    def __str__(self) -> str:
        return f"Post not found: {self.post_id}"
