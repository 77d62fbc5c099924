"""Login command -- obtain a token and save it under a key.

Runs either the authorization code flow with PKCE (default) or the device
flow (``--device``). Instructions for the user (the authorization URL or
the user code) go to stderr; nothing is printed on stdout.
"""

from __future__ import annotations

from typing import Optional

import typer

from tokenward.exceptions import TokenwardError
from tokenward.output import error, success, suggest


def login_command(
    ctx: typer.Context,
    key: str = typer.Argument(help='Token key, conventionally "<domain>:<principal>".'),
    device: bool = typer.Option(False, "--device", "-d", help="Use the device authorization flow."),
    no_browser: bool = typer.Option(False, "--no-browser", help="Do not open a browser."),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Seconds to wait for the browser redirect."
    ),
) -> None:
    """Authorize with the active provider and store the token under KEY.

    Example::

        tokenward --provider github login github.com:me --device
        tokenward login google.com:me --no-browser
    """
    from tokenward.engine import open_engine

    provider_name = ctx.obj.get("provider") if ctx.obj else None
    try:
        engine = open_engine(provider_name)
        if device:
            token = engine.client.authorize_device(open_browser=not no_browser)
        else:
            token = engine.client.authorize(
                timeout=timeout if timeout is not None else engine.config.callback_timeout,
                open_browser=not no_browser,
            )
        engine.client.save_token(key, token)
    except TokenwardError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    success(f'Logged in. Token saved as "{key}".')
    suggest(f"Use it: tokenward token get {key}")
