"""Provider commands -- manage authorization server profiles.

Provides the ``tokenward provider`` sub-command group. A provider bundles
the endpoints of one authorization server with a *credential source* for
its client ID (and secret, for confidential clients), so secrets never
have to be written into the profile file.

Typical workflow::

    tokenward provider add github --preset github --client-id-source env:GH_CLIENT_ID
    tokenward provider list
    tokenward --provider github login github.com:me --device
"""

from __future__ import annotations

from typing import Optional

import typer

from tokenward.exceptions import TokenwardError
from tokenward.output import error, info, print_record, print_table, success, suggest

provider_app = typer.Typer(no_args_is_help=True)


@provider_app.command("add")
def provider_add(
    ctx: typer.Context,
    name: str = typer.Argument(help="Provider name."),
    preset: Optional[str] = typer.Option(
        None, "--preset", help="github, google, microsoft, gitlab or tuist."
    ),
    client_id_source: str = typer.Option(
        ...,
        "--client-id-source",
        "-c",
        help="Client ID source: env:VAR, file:/path, literal:VALUE, prompt.",
    ),
    client_secret_source: Optional[str] = typer.Option(
        None, "--client-secret-source", help="Client secret source, for confidential clients."
    ),
    authorization_endpoint: Optional[str] = typer.Option(
        None, "--authorization-endpoint", help="Authorization endpoint URL."
    ),
    token_endpoint: Optional[str] = typer.Option(
        None, "--token-endpoint", help="Token endpoint URL."
    ),
    device_endpoint: Optional[str] = typer.Option(
        None, "--device-endpoint", help="Device authorization endpoint URL."
    ),
    redirect_uri: Optional[str] = typer.Option(
        None, "--redirect-uri", help="Registered redirect URI for manual flows."
    ),
    scope: Optional[str] = typer.Option(None, "--scope", help="Space-separated scopes."),
    base_url: Optional[str] = typer.Option(
        None, "--base-url", help="Self-hosted base URL (gitlab, tuist presets)."
    ),
    tenant: str = typer.Option("common", "--tenant", help="Tenant (microsoft preset)."),
    storage: str = typer.Option("file", "--storage", help="Token store: file, keyring or memory."),
    refresh_threshold: Optional[float] = typer.Option(
        None, "--refresh-threshold", min=0.0, max=1.0, help="Lifetime fraction that triggers early refresh."
    ),
    make_default: bool = typer.Option(False, "--default", help="Make this the default provider."),
) -> None:
    """Add a provider from a preset or explicit endpoints.

    Raises:
        typer.Exit: With code 2 for invalid combinations, or when the
            provider exists and ``--force`` was not given.

    Example::

        tokenward provider add github --preset github -c env:GH_CLIENT_ID --scope "repo"
        tokenward provider add corp -c literal:cli \\
            --authorization-endpoint https://id.corp/authorize \\
            --token-endpoint https://id.corp/token
    """
    from tokenward.config import (
        load_global_config,
        provider_exists,
        save_global_config,
        save_provider,
    )
    from tokenward.exit_codes import EXIT_INVALID_USAGE
    from tokenward.models import OAuthConfig, ProviderProfile, build_preset
    from tokenward.storage import STORE_BACKENDS

    force = bool(ctx.obj and ctx.obj.get("force"))
    if provider_exists(name) and not force:
        error(f'Provider "{name}" already exists.')
        suggest("Overwrite it with --force.")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    if storage not in STORE_BACKENDS:
        error(f"Unknown storage backend '{storage}'. Available: {', '.join(STORE_BACKENDS)}")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    client_id = client_id_source[8:] if client_id_source.startswith("literal:") else ""

    if preset:
        try:
            oauth = build_preset(preset, client_id, scope, base_url, tenant)
        except ValueError as exc:
            error(str(exc))
            raise typer.Exit(code=EXIT_INVALID_USAGE) from None
        if device_endpoint:
            oauth.device_authorization_endpoint = device_endpoint
    else:
        if not authorization_endpoint or not token_endpoint:
            error("Pass --preset, or both --authorization-endpoint and --token-endpoint.")
            raise typer.Exit(code=EXIT_INVALID_USAGE)
        oauth = OAuthConfig(
            client_id=client_id,
            authorization_endpoint=authorization_endpoint,
            token_endpoint=token_endpoint,
            device_authorization_endpoint=device_endpoint,
            scope=scope,
        )
    if redirect_uri:
        oauth.redirect_uri = redirect_uri

    provider = ProviderProfile(
        name=name,
        oauth=oauth,
        client_id_source=client_id_source,
        client_secret_source=client_secret_source,
        storage=storage,
        refresh_threshold=refresh_threshold,
    )
    save_provider(provider)

    if make_default:
        cfg = load_global_config()
        cfg.default_provider = name
        save_global_config(cfg)

    success(f'Provider "{name}" saved.')
    suggest(f"Log in: tokenward --provider {name} login <key>")


@provider_app.command("list")
def provider_list() -> None:
    """List configured providers.

    Example::

        tokenward provider list
        tokenward --json provider list
    """
    from tokenward.config import list_providers, load_global_config, load_provider

    names = list_providers()
    if not names:
        info("No providers configured.")
        suggest("Add one: tokenward provider add <name> --preset github -c env:CLIENT_ID")
        return

    default = load_global_config().default_provider
    rows: list[list[str]] = []
    for name in names:
        try:
            provider = load_provider(name)
        except TokenwardError:
            rows.append([name, "error", "-", "-", ""])
            continue
        rows.append(
            [
                name,
                provider.oauth.token_endpoint,
                "yes" if provider.oauth.device_authorization_endpoint else "no",
                provider.storage,
                "*" if name == default else "",
            ]
        )
    print_table(
        ["Name", "Token Endpoint", "Device Flow", "Storage", "Default"],
        rows,
        title="Providers",
    )


@provider_app.command("show")
def provider_show(name: str = typer.Argument(help="Provider name.")) -> None:
    """Show a provider's configuration. Credential sources are shown, never their values."""
    from tokenward.config import load_provider

    try:
        provider = load_provider(name)
    except TokenwardError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    data = provider.model_dump(mode="json")
    data["oauth"].pop("client_secret", None)
    print_record(data)


@provider_app.command("remove")
def provider_remove(
    ctx: typer.Context,
    name: str = typer.Argument(help="Provider name."),
) -> None:
    """Remove a provider profile. Stored tokens are left in place.

    Prompts for confirmation unless ``--force`` is set.
    """
    from tokenward.config import delete_provider, load_global_config, save_global_config

    force = bool(ctx.obj and ctx.obj.get("force"))
    if not force and not typer.confirm(f'Remove provider "{name}"?'):
        info("Aborted.")
        raise typer.Exit()

    try:
        delete_provider(name)
    except TokenwardError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    cfg = load_global_config()
    if cfg.default_provider == name:
        cfg.default_provider = None
        save_global_config(cfg)
    success(f'Provider "{name}" removed.')
