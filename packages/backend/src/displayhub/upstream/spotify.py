"""Spotify Web API client — currently-playing state and token exchange.

Learn: The client is stateless apart from its pooled httpx connection.
One call per poll tick; every failure is translated into the upstream
taxonomy in `displayhub.upstream.errors` so the poll engine never sees
an httpx exception.
"""

from typing import Optional

import httpx
import structlog

from displayhub.upstream.errors import (
    CredentialRefreshError,
    TransientUpstreamError,
    raise_for_upstream_status,
)
from displayhub.upstream.models import Credential, MusicSnapshot

logger = structlog.get_logger()


class SpotifyClient:
    """Thin async wrapper around the two Spotify endpoints we need."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        api_url: str = "https://api.spotify.com/v1",
        accounts_url: str = "https://accounts.spotify.com/api/token",
        timeout: float = 10.0,
        default_retry_after: float = 5.0,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.api_url = api_url.rstrip("/")
        self.accounts_url = accounts_url
        self.default_retry_after = default_retry_after
        self._http = http or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._http.aclose()

    # ─── Playback ───────────────────────────────────────

    async def get_currently_playing(self, access_token: str) -> Optional[MusicSnapshot]:
        """Fetch the user's playback state. Returns None when nothing is playing."""
        response = await self._send(
            "GET",
            f"{self.api_url}/me/player/currently-playing",
            headers={"Authorization": f"Bearer {access_token}"},
            params={"additional_types": "episode"},
        )
        raise_for_upstream_status(response, default_retry_after=self.default_retry_after)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return MusicSnapshot.model_validate(response.json())
        except ValueError as e:
            raise TransientUpstreamError(f"Malformed playback payload: {e}") from e

    # ─── Tokens ─────────────────────────────────────────

    async def refresh_credential(self, credential: Credential) -> Credential:
        """Exchange the refresh token for a fresh access token.

        Spotify may omit the refresh token in the response; in that case
        the existing one stays valid and is carried over.
        """
        logger.debug("spotify.refreshing_token")
        data = await self._token_request({
            "grant_type": "refresh_token",
            "refresh_token": credential.refresh_token,
        })
        return Credential.from_token_response(
            data, fallback_refresh_token=credential.refresh_token
        )

    async def exchange_code(self, code: str, redirect_uri: str) -> Credential:
        """Trade an authorization code (from the OAuth redirect) for a credential."""
        logger.debug("spotify.exchanging_code")
        data = await self._token_request({
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
        })
        return Credential.from_token_response(data)

    async def _token_request(self, form: dict) -> dict:
        response = await self._send(
            "POST",
            self.accounts_url,
            data=form,
            auth=(self.client_id, self.client_secret),
        )
        if response.status_code == 400:
            # invalid_grant: refresh token revoked or code already used
            raise CredentialRefreshError(_error_description(response))
        raise_for_upstream_status(
            response,
            default_retry_after=self.default_retry_after,
            unauthorized=CredentialRefreshError,
        )
        try:
            data = response.json()
            data["access_token"]
        except (ValueError, KeyError, TypeError) as e:
            raise TransientUpstreamError(f"Malformed token response: {e}") from e
        return data

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return await self._http.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientUpstreamError(f"Spotify request timed out: {url}") from e
        except httpx.HTTPError as e:
            raise TransientUpstreamError(f"Spotify request failed: {e}") from e


def _error_description(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"Token request rejected (HTTP {response.status_code})"
    return body.get("error_description") or body.get("error") or "Token request rejected"
