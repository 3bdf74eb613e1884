"""Upstream failure taxonomy.

Learn: Every upstream client converts HTTP and transport failures into
one of these exceptions, so the poll engines can react to *what kind*
of failure happened without knowing anything about HTTP:

- UnauthorizedError        → credential rejected; stop polling the key
- CredentialRefreshError   → refresh exchange rejected; same as Unauthorized
- RateLimitedError         → pause the key, resume after `retry_after`
- TransientUpstreamError   → timeout / network / 5xx; skip this tick
"""

from typing import Optional

import httpx


class UpstreamError(Exception):
    """Base class for all upstream failures."""


class UnauthorizedError(UpstreamError):
    """The upstream rejected our credential."""


class CredentialRefreshError(UnauthorizedError):
    """Exchanging a refresh token for a new access token failed."""


class RateLimitedError(UpstreamError):
    """The upstream asked us to back off for `retry_after` seconds."""

    def __init__(self, retry_after: float, message: Optional[str] = None):
        self.retry_after = retry_after
        super().__init__(message or f"Rate limited, retry after {retry_after:g}s")


class TransientUpstreamError(UpstreamError):
    """Network error, timeout or unexpected upstream response."""


def parse_retry_after(value: Optional[str], default: float) -> float:
    """Parse a Retry-After header given in seconds. Falls back to `default`."""
    if not value:
        return default
    try:
        seconds = float(value)
    except ValueError:
        return default
    return seconds if seconds > 0 else default


def raise_for_upstream_status(
    response: httpx.Response,
    *,
    default_retry_after: float,
    unauthorized: type[UnauthorizedError] = UnauthorizedError,
) -> None:
    """Map an error response onto the upstream taxonomy. No-op on success."""
    status = response.status_code
    if status < 400:
        return
    if status in (401, 403):
        raise unauthorized(f"Upstream rejected credential (HTTP {status})")
    if status == 429:
        raise RateLimitedError(
            parse_retry_after(response.headers.get("Retry-After"), default_retry_after)
        )
    raise TransientUpstreamError(f"Upstream returned HTTP {status}")
