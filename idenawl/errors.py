from __future__ import annotations


class WhitelistError(Exception):
    """Base error. `code` is the stable reason code surfaced to API clients."""

    code = "error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class SourceUnavailable(WhitelistError):
    # Transient; the next check cycle retries.
    code = "source_unavailable"


class RateLimited(WhitelistError):
    code = "rate_limited"


class MarkerNotFound(WhitelistError):
    code = "marker_not_found"


class NotFound(WhitelistError):
    code = "not_found"


class Inconsistent(WhitelistError):
    code = "inconsistent"


class InvalidAddress(WhitelistError):
    code = "invalid_address"
