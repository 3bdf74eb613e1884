"""Spotify API — connect an account and hand the display a fresh token.

Learn: The display's browser runs the OAuth redirect and posts the
authorization code here; the server exchanges it with its client secret
and stores the credential on the user. The display later asks for the
current access token (e.g. for the Web Playback SDK) and may force a
refresh. Refresh tokens never leave the server.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from displayhub.auth.dependencies import CurrentIdentity, get_current_user
from displayhub.db.engine import get_db
from displayhub.db.store import credential_from_user
from displayhub.runtime import Runtime, get_runtime
from displayhub.services.user_service import UserNotFoundError, UserService
from displayhub.upstream.errors import (
    CredentialRefreshError,
    RateLimitedError,
    UpstreamError,
)
from displayhub.upstream.models import Credential

router = APIRouter(prefix="/spotify")


class CodeExchange(BaseModel):
    code: str = Field(..., min_length=1)
    redirect_uri: str = Field(..., min_length=1)


class AccessTokenRead(BaseModel):
    access_token: str
    expires_at: datetime
    scope: str


def _token_view(credential: Credential) -> AccessTokenRead:
    return AccessTokenRead(
        access_token=credential.access_token,
        expires_at=credential.expires_at,
        scope=credential.scope,
    )


def _upstream_http_error(e: UpstreamError) -> HTTPException:
    if isinstance(e, CredentialRefreshError):
        return HTTPException(status_code=400, detail=f"Spotify rejected the request: {e}")
    if isinstance(e, RateLimitedError):
        return HTTPException(
            status_code=429,
            detail="Spotify is rate limiting requests",
            headers={"Retry-After": str(int(e.retry_after))},
        )
    return HTTPException(status_code=502, detail=f"Spotify unavailable: {e}")


@router.post("/token", response_model=AccessTokenRead)
async def exchange_code(
    body: CodeExchange,
    identity: CurrentIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    runtime: Runtime = Depends(get_runtime),
):
    try:
        credential = await runtime.spotify.exchange_code(body.code, body.redirect_uri)
    except UpstreamError as e:
        raise _upstream_http_error(e)
    try:
        await UserService(db, runtime.bus).set_spotify_credential(
            identity.user_id, credential
        )
    except UserNotFoundError:
        raise HTTPException(status_code=404, detail="User not found")
    return _token_view(credential)


@router.post("/token/refresh", response_model=AccessTokenRead)
async def refresh_token(
    identity: CurrentIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    runtime: Runtime = Depends(get_runtime),
):
    svc = UserService(db, runtime.bus)
    try:
        user = await svc.get(identity.user_id)
    except UserNotFoundError:
        raise HTTPException(status_code=404, detail="User not found")
    current = credential_from_user(user)
    if current is None:
        raise HTTPException(status_code=409, detail="Spotify is not connected")

    try:
        credential = await runtime.spotify.refresh_credential(current)
    except UpstreamError as e:
        raise _upstream_http_error(e)
    await svc.set_spotify_credential(identity.user_id, credential)
    return _token_view(credential)
