"""
Service layer exceptions.

Every failure that can reach a caller is an ApiError subclass. The subclass
decides whether the failure is transient (``is_retryable``), which is what
the retry engine and the user-facing formatter read.
"""

import asyncio
import re
import socket
from typing import Any

import httpx

PROVIDER_HELP_LINKS: dict[str, list[str]] = {
    "NOAA": [
        "https://www.weather.gov/documentation/services-web-api",
        "https://weather-gov.github.io/api/",
    ],
    "OpenMeteo": [
        "https://open-meteo.com/en/docs",
        "https://github.com/open-meteo/open-meteo/issues",
    ],
}

# Transient transport signatures, matched against untyped error messages
_TRANSIENT_PATTERNS: dict[str, str] = {
    "ECONNREFUSED": "Connection refused",
    "ETIMEDOUT": "Connection timed out",
    "ENOTFOUND": "Service not found",
}
_TRANSIENT_PHRASES = (
    "connection refused",
    "timed out",
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
)


def help_links_for(provider: str | None) -> list[str]:
    """Return a copy of the help links registered for a provider."""
    return list(PROVIDER_HELP_LINKS.get(provider or "", []))


class ApiError(Exception):
    """Base exception for upstream API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None,
        provider: str | None,
        user_message: str,
        help_links: list[str] | None = None,
        is_retryable: bool = False,
    ):
        self.message = message
        self.status_code = status_code
        self.provider = provider
        self.user_message = user_message
        self.help_links = list(help_links or [])
        self.is_retryable = is_retryable
        super().__init__(message)

    def to_user_message(self) -> str:
        """Render the error as text safe to show to an end user."""
        text = f"{self.provider} API Error: {self.user_message}"
        if self.help_links:
            links = "\n".join(f"- {link}" for link in self.help_links)
            text += f"\n\nFor more information:\n{links}"
        return text

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(provider={self.provider!r}, "
            f"status_code={self.status_code!r}, message={self.message!r})"
        )


class RateLimitError(ApiError):
    """Rate limit exceeded (HTTP 429)."""

    def __init__(self, provider: str, retry_after: float | None = None):
        self.retry_after = retry_after
        if retry_after:
            hint = f"Please retry after {retry_after:g} seconds."
        else:
            hint = "Please retry in a few seconds."
        super().__init__(
            f"Rate limit exceeded for {provider}",
            status_code=429,
            provider=provider,
            user_message=f"Rate limit exceeded. {hint}",
            help_links=help_links_for(provider),
            is_retryable=True,
        )


class ServiceUnavailableError(ApiError):
    """Upstream is temporarily unavailable (5xx or transport failure)."""

    def __init__(
        self,
        provider: str,
        cause: BaseException | None = None,
        status_code: int = 503,
        detail: str | None = None,
    ):
        self.cause = cause
        message = f"{provider} service unavailable"
        if detail:
            message += f": {detail}"
        super().__init__(
            message,
            status_code=status_code,
            provider=provider,
            user_message=(
                f"The {provider} service is temporarily unavailable. "
                "Please try again later."
            ),
            help_links=help_links_for(provider),
            is_retryable=True,
        )
        if cause is not None:
            self.__cause__ = cause


class InvalidLocationError(ApiError):
    """The upstream rejected the request parameters (HTTP 400 or 422)."""

    def __init__(
        self,
        provider: str,
        user_message: str,
        latitude: float | None = None,
        longitude: float | None = None,
        status_code: int = 400,
    ):
        self.latitude = latitude
        self.longitude = longitude
        super().__init__(
            user_message,
            status_code=status_code,
            provider=provider,
            user_message=user_message,
            help_links=help_links_for(provider),
            is_retryable=False,
        )


class DataNotFoundError(ApiError):
    """The requested resource does not exist (HTTP 404)."""

    def __init__(self, provider: str, user_message: str):
        super().__init__(
            user_message,
            status_code=404,
            provider=provider,
            user_message=user_message,
            help_links=help_links_for(provider),
            is_retryable=False,
        )


class ValidationError(ApiError):
    """A local precondition failed before any request was made."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any = None,
        hint: str | None = None,
        provider: str | None = None,
    ):
        self.field = field
        self.value = value
        super().__init__(
            message,
            status_code=None,
            provider=provider,
            user_message=message,
            help_links=[hint] if hint else [],
            is_retryable=False,
        )

    def to_user_message(self) -> str:
        text = f"Validation Error: {self.message}"
        if self.help_links:
            text += "\n" + "\n".join(self.help_links)
        return text


def _sanitize(message: str) -> str:
    for code, replacement in _TRANSIENT_PATTERNS.items():
        message = message.replace(code, replacement)
    return message


def is_retryable_error(error: BaseException) -> bool:
    """
    Decide whether an error is transient.

    Typed errors answer for themselves. Any httpx transport failure is
    transient except an unsupported URL scheme. Other untyped errors are
    retryable only when they match a known transport failure.
    """
    if isinstance(error, ApiError):
        return error.is_retryable
    if isinstance(error, httpx.UnsupportedProtocol):
        return False
    if isinstance(error, httpx.TransportError):
        return True
    if isinstance(
        error,
        (asyncio.TimeoutError, TimeoutError, ConnectionRefusedError, socket.gaierror),
    ):
        return True

    message = str(error)
    if any(code in message for code in _TRANSIENT_PATTERNS):
        return True
    lowered = message.lower()
    return any(phrase in lowered for phrase in _TRANSIENT_PHRASES)


def translate_transport_error(provider: str, error: Exception) -> ApiError:
    """
    Map a raw transport failure to a typed error.

    Known transient failures become ServiceUnavailableError; the raw error is
    kept only as the chained cause, never in the user message.
    """
    if isinstance(error, ApiError):
        return error
    if isinstance(error, httpx.TimeoutException):
        detail = "request timed out"
    elif isinstance(error, httpx.ConnectError):
        detail = "connection failed"
    elif isinstance(error, httpx.NetworkError):
        detail = "network error"
    elif isinstance(error, httpx.ProtocolError):
        detail = "connection dropped"
    elif is_retryable_error(error):
        detail = "transport failure"
    else:
        return ApiError(
            f"Unexpected error calling {provider}: {type(error).__name__}",
            status_code=None,
            provider=provider,
            user_message="An unexpected error occurred while contacting the service.",
            help_links=help_links_for(provider),
            is_retryable=False,
        )
    return ServiceUnavailableError(provider, cause=error, detail=detail)


def error_from_status(
    provider: str,
    status_code: int,
    retry_after: str | None = None,
    detail: str | None = None,
    location: tuple[float, float] | None = None,
) -> ApiError:
    """
    Build the typed error for a non-success HTTP status.

    location is the (latitude, longitude) the request was made for, carried
    on InvalidLocationError when the upstream rejects it.
    """
    if status_code == 429:
        seconds = None
        if retry_after and re.fullmatch(r"\s*\d+(\.\d+)?\s*", retry_after):
            seconds = float(retry_after)
        return RateLimitError(provider, retry_after=seconds)
    if status_code >= 500:
        return ServiceUnavailableError(provider, status_code=status_code)
    if status_code == 404:
        return DataNotFoundError(
            provider,
            detail or "The requested data was not found for this location or time.",
        )
    if status_code in (400, 422):
        latitude, longitude = location or (None, None)
        return InvalidLocationError(
            provider,
            detail or "The request parameters were rejected. Check the coordinates and dates.",
            latitude=latitude,
            longitude=longitude,
            status_code=status_code,
        )
    return ApiError(
        f"HTTP {status_code} from {provider}",
        status_code=status_code,
        provider=provider,
        user_message=f"The request failed with status {status_code}.",
        help_links=help_links_for(provider),
        is_retryable=False,
    )


def format_error_for_user(error: BaseException) -> str:
    """Render any exception as user-facing text without raw transport codes."""
    if isinstance(error, ApiError):
        return error.to_user_message()
    return f"Error: {_sanitize(str(error))}"
