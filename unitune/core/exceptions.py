"""Custom exceptions for the UniTune link core."""

from enum import Enum


class ErrorKind(str, Enum):
    """Closed set of failure kinds reported at API boundaries."""

    UNSUPPORTED_FORMAT = "unsupported_format"
    INVALID_ARGUMENT = "invalid_argument"
    RATE_LIMITED = "rate_limited"
    SERVER_UNAVAILABLE = "server_unavailable"
    NETWORK_TIMEOUT = "network_timeout"
    CLIENT_REJECTED = "client_rejected"
    MALFORMED_RESPONSE = "malformed_response"
    CACHE_UNREADABLE = "cache_unreadable"
    CONFIGURATION = "configuration"


class UniTuneError(Exception):
    """Base exception for all UniTune errors."""

    kind: ErrorKind = ErrorKind.CONFIGURATION


class ConfigurationError(UniTuneError):
    """Raised when configuration is invalid."""

    kind = ErrorKind.CONFIGURATION


class UnsupportedFormatError(UniTuneError):
    """Raised when a URL does not match any known platform/content pattern."""

    kind = ErrorKind.UNSUPPORTED_FORMAT

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class InvalidArgumentError(UniTuneError, ValueError):
    """Raised when a call is made with arguments outside the accepted range."""

    kind = ErrorKind.INVALID_ARGUMENT


class CacheUnreadableError(UniTuneError):
    """Persisted cache data could not be deserialized."""

    kind = ErrorKind.CACHE_UNREADABLE


class ResolutionError(UniTuneError):
    """Raised inside the resolution client when an attempt fails."""

    kind = ErrorKind.CLIENT_REJECTED

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RetryableResolutionError(ResolutionError):
    """An attempt failed in a way that may succeed on retry."""


class RateLimitedError(RetryableResolutionError):
    """The lookup API answered 429."""

    kind = ErrorKind.RATE_LIMITED


class ServerUnavailableError(RetryableResolutionError):
    """The lookup API answered with a 5xx status."""

    kind = ErrorKind.SERVER_UNAVAILABLE


class NetworkTimeoutError(RetryableResolutionError):
    """The request timed out or the connection could not be made."""

    kind = ErrorKind.NETWORK_TIMEOUT


class ClientRejectedError(ResolutionError):
    """The lookup API rejected the request with a non-retryable 4xx."""

    kind = ErrorKind.CLIENT_REJECTED


class MalformedResponseError(ResolutionError):
    """The response body could not be parsed."""

    kind = ErrorKind.MALFORMED_RESPONSE
