"""Token commands -- inspect, print, refresh and clear stored tokens.

``tokenward token get`` is the scripting entry point: it prints only the
access token on stdout, refreshing it first through the refresh
coordinator when needed, so concurrent invocations across shells share
one refresh::

    curl -H "Authorization: Bearer $(tokenward token get github.com:me)" ...
"""

from __future__ import annotations

import time
from typing import Any, Optional

import typer

from tokenward.exceptions import TokenwardError
from tokenward.models import Token
from tokenward.output import error, info, print_access_token, print_record, success

token_app = typer.Typer(no_args_is_help=True)


def _provider_name(ctx: typer.Context) -> Optional[str]:
    return ctx.obj.get("provider") if ctx.obj else None


def _mask(secret: Optional[str]) -> Optional[str]:
    if not secret:
        return secret
    if len(secret) <= 8:
        return "****"
    return f"{secret[:4]}...{secret[-4:]}"


def token_summary(token: Token, now: Optional[float] = None) -> dict[str, Any]:
    """Describe *token* for display with secrets masked."""
    current = time.time() if now is None else now
    remaining = None if token.expires_at is None else int(token.expires_at - current)
    return {
        "access_token": _mask(token.access_token),
        "refresh_token": _mask(token.refresh_token),
        "token_type": token.token_type,
        "scope": token.scope,
        "expires_at": token.expires_at,
        "expires_in_seconds": remaining,
        "expired": token.is_expired(current),
    }


@token_app.command("show")
def token_show(
    ctx: typer.Context,
    key: str = typer.Argument(help="Token key."),
) -> None:
    """Show a stored token's metadata without refreshing it. Secrets are masked."""
    from tokenward.engine import open_engine
    from tokenward.exceptions import TokenNotFoundError

    try:
        engine = open_engine(_provider_name(ctx))
        token = engine.client.get_token(key)
        if token is None:
            raise TokenNotFoundError(key)
    except TokenwardError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    print_record(token_summary(token))


@token_app.command("get")
def token_get(
    ctx: typer.Context,
    key: str = typer.Argument(help="Token key."),
    threshold: Optional[float] = typer.Option(
        None,
        "--threshold",
        "-t",
        help="Refresh once this fraction of the lifetime has passed (default from config).",
    ),
) -> None:
    """Print a valid access token on stdout, refreshing it first if needed.

    Example::

        tokenward token get github.com:me
        tokenward token get github.com:me --threshold 0.5
    """
    from tokenward.engine import open_engine

    try:
        engine = open_engine(_provider_name(ctx))
        effective = engine.refresh_threshold if threshold is None else threshold
        token = engine.refresher.get_valid_token_with_threshold(key, effective)
    except TokenwardError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    print_access_token(token.access_token)


@token_app.command("refresh")
def token_refresh(
    ctx: typer.Context,
    key: str = typer.Argument(help="Token key."),
) -> None:
    """Refresh a token now, even if it has not expired."""
    from tokenward.engine import open_engine

    try:
        engine = open_engine(_provider_name(ctx))
        token = engine.refresher.force_refresh(key)
    except TokenwardError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    success(f'Token "{key}" refreshed.')
    print_record(token_summary(token))


@token_app.command("clear")
def token_clear(
    ctx: typer.Context,
    key: str = typer.Argument(help="Token key."),
) -> None:
    """Delete a stored token."""
    from tokenward.engine import open_engine

    try:
        engine = open_engine(_provider_name(ctx))
        if engine.client.get_token(key) is None:
            info(f'No token stored for "{key}".')
            return
        engine.client.delete_token(key)
    except TokenwardError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    success(f'Token "{key}" cleared.')
