"""SchoolGate CLI — provision admins and poke a running server.

Usage:
    schoolgate create-super-admin --email root@school.org    # direct DB write
    schoolgate login --email a@school.org                     # prints a token pair
    schoolgate me --token <access token>                      # current identity
    schoolgate init-db                                        # create tables (dev only)
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys

import click
import httpx

from schoolgate import __version__

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("SCHOOLGATE_API_URL", DEFAULT_API_URL).rstrip("/")


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the SchoolGate backend."""
    return httpx.AsyncClient(base_url=f"{_api_url()}/api/v1", timeout=30.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


def _fail(response: httpx.Response) -> None:
    try:
        error = response.json().get("error", {})
        message = f"{error.get('kind', 'error')}: {error.get('message', response.text)}"
    except ValueError:
        message = response.text
    click.secho(f"Error ({response.status_code}) {message}", fg="red", err=True)
    sys.exit(1)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="schoolgate")
def main():
    """SchoolGate — identity and access for multi-tenant school administration."""


# ---------------------------------------------------------------------------
# Local database commands
# ---------------------------------------------------------------------------


@main.command("create-super-admin")
@click.option("--email", required=True, help="Super admin email")
@click.option("--name", default="Super Administrator", show_default=True)
@click.option(
    "--password",
    prompt=True,
    hide_input=True,
    confirmation_prompt=True,
    help="Super admin password (prompted if omitted)",
)
def create_super_admin(email: str, name: str, password: str):
    """Create a super admin directly in the identity store."""
    if len(password) < 6:
        click.secho("Password must be at least 6 characters", fg="red", err=True)
        sys.exit(1)
    identity, created = _run(_create_super_admin(name, email, password))
    if created:
        click.secho(f"Super admin created: {identity['email']} ({identity['id']})", fg="green")
    else:
        click.secho(f"Identity already exists: {identity['email']} ({identity['role']})", fg="yellow")


async def _create_super_admin(name: str, email: str, password: str) -> tuple[dict, bool]:
    from schoolgate.db.engine import async_session_factory, engine
    from schoolgate.services.identity_service import IdentityService

    try:
        async with async_session_factory() as db:
            identity, created = await IdentityService(db).ensure_super_admin(
                name=name, email=email, password=password
            )
            summary = {"id": str(identity.id), "email": identity.email, "role": identity.role}
    finally:
        await engine.dispose()
    return summary, created


@main.command("init-db")
def init_db():
    """Create all tables from the ORM models (development only; use Alembic elsewhere)."""
    from schoolgate.config import settings

    if settings.environment != "development":
        click.secho("init-db is for development; run `alembic upgrade head` instead", fg="red", err=True)
        sys.exit(1)
    _run(_init_db())
    click.secho("Tables created", fg="green")


async def _init_db() -> None:
    from schoolgate.db.engine import engine
    from schoolgate.db.models import Base

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    finally:
        await engine.dispose()


# ---------------------------------------------------------------------------
# Server commands
# ---------------------------------------------------------------------------


@main.command()
@click.option("--email", required=True)
@click.option("--password", prompt=True, hide_input=True)
@click.option("--json", "as_json", is_flag=True, help="Print the raw response")
def login(email: str, password: str, as_json: bool):
    """Log in against a running server and print the token pair."""
    _run(_login_impl(email, password, as_json))


async def _login_impl(email: str, password: str, as_json: bool) -> None:
    async with _client() as c:
        r = await c.post("/auth/login", json={"email": email, "password": password})
    if r.status_code != 200:
        _fail(r)
    data = r.json()
    if as_json:
        click.echo(_pretty_json(data))
        return
    identity = data["identity"]
    click.secho(f"Logged in as {identity['email']} ({identity['role']})", fg="green")
    click.echo(f"access_token:  {data['access_token']}")
    click.echo(f"refresh_token: {data['refresh_token']}")


@main.command()
@click.option("--token", envvar="SCHOOLGATE_TOKEN", required=True, help="Access token")
def me(token: str):
    """Show the identity behind an access token."""
    _run(_me_impl(token))


async def _me_impl(token: str) -> None:
    async with _client() as c:
        r = await c.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    if r.status_code != 200:
        _fail(r)
    click.echo(_pretty_json(r.json()))


if __name__ == "__main__":
    main()
