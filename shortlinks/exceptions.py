"""Error taxonomy for short link allocation and lookup.

Not-found is deliberately absent: an unknown short code is a normal negative
result and is reported as ``None`` by the store and the service.
"""

__all__ = [
    "ShortLinkError",
    "InvalidArgument",
    "InvalidUrl",
    "AllocationFailed",
    "DuplicateCode",
]


class ShortLinkError(Exception):
    """Base class for all errors raised by the shortlinks package."""


class InvalidArgument(ShortLinkError, ValueError):
    """Raised by the codec for negative integers or out-of-alphabet characters."""


class InvalidUrl(ShortLinkError, ValueError):
    """Raised when the URL to shorten is not a valid absolute URL."""

    def __init__(self, url: str) -> None:
        super().__init__(f"Invalid URL provided: {url!r}")
        self.url = url


class AllocationFailed(ShortLinkError):
    """Raised when no unique short code could be produced for a request."""


class DuplicateCode(ShortLinkError):
    """Raised by a LinkStore when the short code is already stored."""

    def __init__(self, short_code: str) -> None:
        super().__init__(f"Short code '{short_code}' already exists")
        self.short_code = short_code
