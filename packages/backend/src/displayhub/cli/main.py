"""displayhub CLI — run the server and poke at a running one.

Usage:
    displayhub serve                             # Run the API + WebSocket server
    displayhub health                            # Server health and poll counts
    displayhub login alice                       # Log in, store the token
    displayhub me                                # Show the logged-in user
    displayhub set-location "Berlin"             # Geocode and save a location
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from pathlib import Path
from typing import Optional

import click
import httpx

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:3000"


def _api_url() -> str:
    return os.environ.get("DISPLAYHUB_API_URL", DEFAULT_API_URL).rstrip("/")


def _token_file() -> Path:
    return Path(
        os.environ.get("DISPLAYHUB_TOKEN_FILE", "~/.config/displayhub/token")
    ).expanduser()


def _client(token: Optional[str] = None) -> httpx.AsyncClient:
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    return httpx.AsyncClient(base_url=_api_url(), headers=headers, timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run a coroutine from a synchronous click handler.

    Inside an already running loop (CliRunner under an async test) the
    coroutine is run on a worker thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
        return pool.submit(asyncio.run, coro).result()


def _load_token() -> str:
    token = os.environ.get("DISPLAYHUB_TOKEN")
    if token:
        return token
    path = _token_file()
    if path.exists():
        return path.read_text().strip()
    click.secho("Not logged in. Run `displayhub login` first.", fg="red", err=True)
    sys.exit(1)


def _fail(response: httpx.Response) -> None:
    try:
        detail = response.json().get("detail", response.text)
    except ValueError:
        detail = response.text
    click.secho(f"Error {response.status_code}: {detail}", fg="red", err=True)
    sys.exit(1)


def _pretty_json(data) -> str:
    return json.dumps(data, indent=2, default=str)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="displayhub")
def main():
    """displayhub — smart display backend."""


@main.command()
@click.option("--host", default=None, help="Bind address (default from DISPLAYHUB_HOST)")
@click.option("--port", default=None, type=int, help="Port (default from DISPLAYHUB_PORT)")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run the API and WebSocket server."""
    import uvicorn

    from displayhub.config import settings

    uvicorn.run(
        "displayhub.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


@main.command()
def health():
    """Show server health."""
    _run(_health_impl())


async def _health_impl():
    async with _client() as c:
        r = await c.get("/api/v1/health")
    if r.status_code != 200:
        _fail(r)
    data = r.json()
    color = "green" if data["status"] == "healthy" else "yellow"
    click.secho(f"Status: {data['status']} (v{data.get('version', '?')})", fg=color, bold=True)
    for name in ("database", "redis"):
        click.echo(f"  {name:10s} {data.get(name)}")
    polls = data.get("polls", {})
    click.echo(
        f"  polls      music={polls.get('music', 0)} weather={polls.get('weather', 0)}"
    )
    click.echo(f"  clients    {data.get('connections', 0)}")


@main.command()
@click.argument("username")
@click.option("--password", prompt=True, hide_input=True)
@click.option("--stay-logged-in", is_flag=True, help="Keep the token for 30 days")
def login(username: str, password: str, stay_logged_in: bool):
    """Log in and store the access token."""
    _run(_login_impl(username, password, stay_logged_in))


async def _login_impl(username: str, password: str, stay_logged_in: bool):
    async with _client() as c:
        r = await c.post("/api/v1/auth/login", json={
            "username": username,
            "password": password,
            "stay_logged_in": stay_logged_in,
        })
    if r.status_code != 200:
        _fail(r)
    path = _token_file()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(r.json()["access_token"])
    click.secho(f"Logged in as {r.json()['user']['name']}", fg="green")


@main.command()
def me():
    """Show the logged-in user."""
    _run(_me_impl())


async def _me_impl():
    async with _client(_load_token()) as c:
        r = await c.get("/api/v1/users/me")
    if r.status_code != 200:
        _fail(r)
    click.echo(_pretty_json(r.json()))


@main.command("set-location")
@click.argument("query")
@click.option("--pick", default=1, show_default=True, help="Which search result to use")
def set_location(query: str, pick: int):
    """Geocode QUERY and save it as the user's location."""
    _run(_set_location_impl(query, pick))


async def _set_location_impl(query: str, pick: int):
    async with _client(_load_token()) as c:
        r = await c.get("/api/v1/locations/search", params={"q": query})
        if r.status_code != 200:
            _fail(r)
        matches = r.json()
        if not 1 <= pick <= len(matches):
            click.secho(f"No result #{pick} for {query!r}", fg="red", err=True)
            sys.exit(1)
        match = matches[pick - 1]
        name = ", ".join(p for p in (match["name"], match.get("state"), match.get("country")) if p)
        r = await c.patch("/api/v1/users/me", json={
            "location": {"name": name, "lat": match["lat"], "lon": match["lon"]},
        })
    if r.status_code != 200:
        _fail(r)
    click.secho(f"Location set to {name} ({match['lat']}, {match['lon']})", fg="green")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    main()
