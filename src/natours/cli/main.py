"""Natours CLI — talk to a running Natours API from the terminal.

Usage:
    natours login jonas@example.com              # Print a token (export it as NATOURS_TOKEN)
    natours me                                   # Who am I?
    natours tours --sort price --limit 5         # List tours
    natours tours -f difficulty=easy -f "price[lt]=1000"
    natours stats                                # Per-difficulty tour statistics
    natours monthly-plan 2021                    # Tour starts per month (guides+)
    natours forgot-password jonas@example.com    # Email a reset token
    natours reset-password <token>               # Set a new password with it
    natours serve                                # Run the API with uvicorn
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click
import httpx

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"
API_PREFIX = "/api/v1"


def _api_url() -> str:
    return os.environ.get("NATOURS_API_URL", DEFAULT_API_URL).rstrip("/")


def _client(token: Optional[str] = None) -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the Natours API."""
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    return httpx.AsyncClient(
        base_url=_api_url() + API_PREFIX, headers=headers, timeout=30.0
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Handles nested event loops (e.g. Click's CliRunner inside an async
    test) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _check(r: httpx.Response) -> dict:
    """Return the JSON body, or print the API's error message and exit 1."""
    if r.status_code == 204:
        return {}
    try:
        body = r.json()
    except ValueError:
        body = {"message": r.text}
    if r.is_error:
        message = body.get("message") or body.get("detail") or r.reason_phrase
        click.secho(f"Error ({r.status_code}): {message}", fg="red", err=True)
        sys.exit(1)
    return body


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


def _print_table(rows: list[dict], columns: list[tuple[str, str, int]]):
    """Print a simple ASCII table.

    columns: list of (header, dict_key, width)
    """
    header = "  ".join(h.ljust(w) for h, _, w in columns)
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for row in rows:
        line = "  ".join(str(row.get(k, "-"))[:w].ljust(w) for _, k, w in columns)
        click.echo(line)


def _parse_filters(filters: tuple[str, ...]) -> dict[str, str]:
    params = {}
    for item in filters:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected key=value, got {item!r}", param_hint="--filter")
        params[key] = value
    return params


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version="0.1.0", prog_name="natours")
@click.option("--token", envvar="NATOURS_TOKEN", help="Bearer token (or set NATOURS_TOKEN)")
@click.pass_context
def main(ctx: click.Context, token: Optional[str]):
    """Natours — browse tours and manage your account from the terminal."""
    ctx.obj = {"token": token}


# ---------------------------------------------------------------------------
# Account
# ---------------------------------------------------------------------------


@main.command()
@click.argument("email")
@click.password_option(confirmation_prompt=False)
def login(email: str, password: str):
    """Log in and print a token for NATOURS_TOKEN."""
    _run(_login_impl(email, password))


async def _login_impl(email: str, password: str):
    async with _client() as c:
        body = _check(await c.post("/users/login", json={"email": email, "password": password}))
    user = body["data"]["user"]
    click.secho(f"Logged in as {user['name']} ({user['role']})", fg="green", err=True)
    click.echo(body["token"])


@main.command()
@click.pass_obj
def me(obj: dict):
    """Show the current user (needs --token or NATOURS_TOKEN)."""
    _run(_me_impl(obj["token"]))


async def _me_impl(token: Optional[str]):
    if not token:
        click.secho("Error: not logged in (pass --token or set NATOURS_TOKEN)", fg="red", err=True)
        sys.exit(1)
    async with _client(token) as c:
        body = _check(await c.get("/users/me"))
    click.echo(_pretty_json(body["data"]["user"]))


@main.command("forgot-password")
@click.argument("email")
def forgot_password(email: str):
    """Email a password reset token to EMAIL."""
    _run(_forgot_impl(email))


async def _forgot_impl(email: str):
    async with _client() as c:
        body = _check(await c.post("/users/forgotPassword", json={"email": email}))
    click.secho(body.get("message", "Token sent to email"), fg="green")


@main.command("reset-password")
@click.argument("token")
@click.password_option()
def reset_password(token: str, password: str):
    """Set a new password using the emailed reset TOKEN."""
    _run(_reset_impl(token, password))


async def _reset_impl(token: str, password: str):
    async with _client() as c:
        body = _check(
            await c.patch(
                f"/users/resetPassword/{token}",
                json={"password": password, "password_confirm": password},
            )
        )
    click.secho("Password reset. New token:", fg="green", err=True)
    click.echo(body["token"])


# ---------------------------------------------------------------------------
# Tours
# ---------------------------------------------------------------------------


@main.command()
@click.option("--sort", "-s", help='Sort fields, e.g. "-ratings_average,price"')
@click.option("--limit", "-l", type=int, help="Results per page")
@click.option("--page", "-p", type=int, help="Page number")
@click.option("--filter", "-f", "filters", multiple=True, help='Filter as key=value, e.g. "price[lt]=1000"')
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
@click.pass_obj
def tours(obj: dict, sort: Optional[str], limit: Optional[int], page: Optional[int],
          filters: tuple[str, ...], as_json: bool):
    """List tours."""
    params = _parse_filters(filters)
    if sort:
        params["sort"] = sort
    if limit:
        params["limit"] = str(limit)
    if page:
        params["page"] = str(page)
    _run(_tours_impl(params, as_json, obj["token"]))


async def _tours_impl(params: dict[str, str], as_json: bool, token: Optional[str]):
    async with _client(token) as c:
        body = _check(await c.get("/tours", params=params))
    rows = body["data"]["tours"]
    if as_json:
        click.echo(_pretty_json(rows))
        return
    if not rows:
        click.echo("No tours found.")
        return
    _print_table(rows, [
        ("NAME", "name", 30),
        ("DIFFICULTY", "difficulty", 10),
        ("DAYS", "duration", 4),
        ("PRICE", "price", 8),
        ("RATING", "ratings_average", 6),
    ])


@main.command()
def stats():
    """Per-difficulty statistics for well-rated tours."""
    _run(_stats_impl())


async def _stats_impl():
    async with _client() as c:
        body = _check(await c.get("/tours/tour-stats"))
    _print_table(body["data"]["stats"], [
        ("DIFFICULTY", "difficulty", 10),
        ("TOURS", "num_tours", 5),
        ("RATINGS", "num_ratings", 7),
        ("AVG RATING", "avg_rating", 10),
        ("AVG PRICE", "avg_price", 9),
        ("MIN", "min_price", 8),
        ("MAX", "max_price", 8),
    ])


@main.command("monthly-plan")
@click.argument("year", type=int)
@click.pass_obj
def monthly_plan(obj: dict, year: int):
    """Tour starts per month in YEAR (guides, lead guides and admins)."""
    _run(_plan_impl(year, obj["token"]))


async def _plan_impl(year: int, token: Optional[str]):
    async with _client(token) as c:
        body = _check(await c.get(f"/tours/monthly-plan/{year}"))
    plan = body["data"]["plan"]
    if not plan:
        click.echo(f"No tours start in {year}.")
        return
    for entry in plan:
        click.secho(f"Month {entry['month']:2d}: {entry['num_tour_starts']} start(s)", bold=True)
        for name in entry["tours"]:
            click.echo(f"    {name}")


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


@main.command()
@click.option("--host", help="Bind address (default from NATOURS_HOST)")
@click.option("--port", type=int, help="Port (default from NATOURS_PORT)")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run the API server with uvicorn."""
    import uvicorn

    from natours.config import settings

    uvicorn.run(
        "natours.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    main()
