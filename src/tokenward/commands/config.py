"""Config commands -- view and modify global configuration.

Provides the ``tokenward config`` sub-command group for reading, updating
and resetting :class:`~tokenward.models.GlobalConfig` (default provider,
callback timeout, refresh threshold, cross-process locking).
"""

from __future__ import annotations

from typing import Any

import typer
from pydantic import ValidationError

from tokenward.output import error, info, print_record, success

config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show() -> None:
    """Show the current global configuration.

    Example::

        tokenward config show
        tokenward --json config show
    """
    from tokenward.config import get_config_dir, load_global_config

    config = load_global_config()
    info(f"Config directory: {get_config_dir()}")
    print_record(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Config key, e.g. 'refresh_threshold'."),
    value: str = typer.Argument(help="Value to set ('none' clears optional keys)."),
) -> None:
    """Set a configuration value.

    The value is coerced to the type of the existing field and the result
    is validated before it is saved.

    Raises:
        typer.Exit: With code 2 for unknown keys or invalid values.

    Example::

        tokenward config set default_provider github
        tokenward config set refresh_threshold 0.75
        tokenward config set cross_process_locking false
    """
    from tokenward.config import load_global_config, save_global_config
    from tokenward.exit_codes import EXIT_INVALID_USAGE
    from tokenward.models import GlobalConfig

    data = load_global_config().model_dump(mode="json")
    if key not in data:
        error(f"Unknown config key: {key}")
        info(f"Available: {', '.join(sorted(data))}")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    current = data[key]
    coerced: Any
    if isinstance(current, bool):
        coerced = value.lower() in ("true", "1", "yes", "on")
    elif isinstance(current, int):
        try:
            coerced = int(value)
        except ValueError:
            error(f"Expected integer for {key}, got: {value}")
            raise typer.Exit(code=EXIT_INVALID_USAGE) from None
    elif isinstance(current, float):
        try:
            coerced = float(value)
        except ValueError:
            error(f"Expected number for {key}, got: {value}")
            raise typer.Exit(code=EXIT_INVALID_USAGE) from None
    elif value.lower() in ("none", "null", ""):
        coerced = None
    else:
        coerced = value

    data[key] = coerced
    try:
        new_config = GlobalConfig.model_validate(data)
    except ValidationError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=EXIT_INVALID_USAGE) from None

    save_global_config(new_config)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Reset configuration to defaults. Asks for confirmation unless ``--force``."""
    from tokenward.config import save_global_config
    from tokenward.models import GlobalConfig

    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force and not typer.confirm("Reset all config to defaults?"):
        info("Cancelled.")
        raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")
