"""Credential refresh — swaps an expired Spotify access token for a new one."""

import structlog

from displayhub.upstream import MusicUpstream
from displayhub.upstream.models import Credential

logger = structlog.get_logger()


class CredentialRefresher:
    """Refreshes a credential upstream and persists the result.

    Failures are not handled here: CredentialRefreshError, RateLimitedError
    and TransientUpstreamError propagate to the poll engine, which treats
    them like any other upstream failure of that tick.
    """

    def __init__(self, upstream: MusicUpstream, store):
        self.upstream = upstream
        self.store = store

    async def refresh(self, user_id: str, credential: Credential) -> Credential:
        fresh = await self.upstream.refresh_credential(credential)
        await self.store.save_credential(user_id, fresh)
        logger.info("credential.refreshed", user_id=user_id, expires_at=fresh.expires_at.isoformat())
        return fresh
