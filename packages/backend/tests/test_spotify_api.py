"""Spotify API and location search."""

import pytest

from conftest import bearer, credential
from displayhub.db.store import SqlUserStore
from displayhub.upstream.errors import CredentialRefreshError, RateLimitedError, TransientUpstreamError


@pytest.mark.asyncio
async def test_exchange_code_stores_credential(client, alice, music_upstream, session_factory, events):
    r = await client.post(
        "/api/v1/spotify/token",
        headers=bearer(alice),
        json={"code": "abc", "redirect_uri": "http://localhost:5173/callback"},
    )
    assert r.status_code == 200
    assert r.json()["access_token"] == "access-code"
    assert "refresh_token" not in r.json()
    assert music_upstream.exchange.calls == [("abc", "http://localhost:5173/callback")]

    stored = await SqlUserStore(session_factory).get_credential(str(alice.id))
    assert stored.access_token == "access-code"
    assert events.profiles[-1].user.spotify_connected is True


@pytest.mark.asyncio
async def test_exchange_code_rejected(client, alice, music_upstream):
    music_upstream.exchange.set(CredentialRefreshError("invalid_grant"))
    r = await client.post(
        "/api/v1/spotify/token",
        headers=bearer(alice),
        json={"code": "used", "redirect_uri": "http://localhost:5173/callback"},
    )
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_refresh_token(client, alice, music_upstream, session_factory):
    store = SqlUserStore(session_factory)
    await store.save_credential(str(alice.id), credential(expired=True))

    r = await client.post("/api/v1/spotify/token/refresh", headers=bearer(alice))
    assert r.status_code == 200
    assert r.json()["access_token"] == "access-2"
    assert (await store.get_credential(str(alice.id))).access_token == "access-2"


@pytest.mark.asyncio
async def test_refresh_without_credential(client, alice):
    r = await client.post("/api/v1/spotify/token/refresh", headers=bearer(alice))
    assert r.status_code == 409


@pytest.mark.asyncio
@pytest.mark.parametrize("error,status", [
    (RateLimitedError(30), 429),
    (TransientUpstreamError("down"), 502),
])
async def test_refresh_upstream_failures(client, alice, music_upstream, session_factory, error, status):
    await SqlUserStore(session_factory).save_credential(str(alice.id), credential())
    music_upstream.refresh.set(error)
    r = await client.post("/api/v1/spotify/token/refresh", headers=bearer(alice))
    assert r.status_code == status
    if status == 429:
        assert r.headers["Retry-After"] == "30"


@pytest.mark.asyncio
async def test_location_search(client, alice):
    r = await client.get("/api/v1/locations/search", params={"q": "berl"}, headers=bearer(alice))
    assert r.status_code == 200
    assert r.json()[0]["name"] == "Berlin"
    assert r.json()[0]["country"] == "DE"


@pytest.mark.asyncio
async def test_location_search_requires_query(client, alice):
    r = await client.get("/api/v1/locations/search", headers=bearer(alice))
    assert r.status_code == 422
