"""Terminal presentation for tokenward.

Two streams, never mixed:

* **stdout** carries data only. ``tokenward token get`` prints the bare
  access token there so ``$(tokenward token get KEY)`` works; token
  summaries and provider tables go there too.
* **stderr** carries everything addressed to the person at the terminal:
  the authorization URL, the device user code, progress, hints and errors.

Rich styles the output when stdout is an interactive terminal and colour
is allowed (``NO_COLOR``, ``TERM=dumb`` and ``--no-color`` turn it off).
Otherwise lines are printed as plain text and never wrapped, so a long
authorization URL can still be copied in one piece.

The CLI installs an :class:`OutputManager` in
:func:`~tokenward.app.main_callback`. Library code reaches it through the
module-level helpers, which create a default manager on first use.
"""

from __future__ import annotations

import json
import os
import sys
from enum import Enum
from typing import Any, Optional

from rich.console import Console
from rich.table import Table
from rich.text import Text

from tokenward.models import DeviceAuthorization


class OutputFormat(str, Enum):
    """How records and tables are rendered on stdout.

    ``AUTO`` picks ``RICH`` on a colour-capable terminal and ``PLAIN``
    everywhere else.
    """

    AUTO = "auto"
    JSON = "json"
    PLAIN = "plain"
    RICH = "rich"


def _stdout_is_terminal() -> bool:
    isatty = getattr(sys.stdout, "isatty", None)
    return bool(isatty and isatty())


def color_disabled(no_color_flag: bool = False) -> bool:
    """Return True if colour is off via the flag, ``NO_COLOR`` (any value) or ``TERM=dumb``."""
    return no_color_flag or "NO_COLOR" in os.environ or os.environ.get("TERM") == "dumb"


class OutputManager:
    """Sends tokenward's output to the right stream in the active format.

    Args:
        format: Rendering for stdout records and tables.
        no_color: Turn colour off even on a terminal.
        quiet: Hide progress, confirmations and hints. Errors, the
            authorization URL and the device user code are always shown.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.AUTO,
        no_color: bool = False,
        quiet: bool = False,
    ) -> None:
        self.no_color = color_disabled(no_color)
        self.quiet = quiet
        if format is OutputFormat.AUTO:
            interactive = _stdout_is_terminal() and not self.no_color
            format = OutputFormat.RICH if interactive else OutputFormat.PLAIN
        self.format = format
        self._out = Console(
            file=sys.stdout,
            no_color=self.no_color,
            force_terminal=format is OutputFormat.RICH,
            highlight=False,
        )
        self._err = Console(
            file=sys.stderr,
            no_color=self.no_color,
            force_terminal=False if self.no_color else None,
            highlight=False,
            stderr=True,
        )

    # --- stdout ---

    def print_access_token(self, access_token: str) -> None:
        """Print the token alone on one line, whatever the format."""
        sys.stdout.write(access_token + "\n")
        sys.stdout.flush()

    def print_record(self, data: dict[str, Any]) -> None:
        """Print one mapping (a token summary, a provider, the config)."""
        if self.format is OutputFormat.JSON:
            self._write_json(data)
        elif self.format is OutputFormat.PLAIN:
            lines = [f"{key}\t{'' if value is None else value}" for key, value in data.items()]
            self._write_lines(lines)
        else:
            grid = Table.grid(padding=(0, 2))
            grid.add_column(style="bold cyan")
            grid.add_column()
            for key, value in data.items():
                grid.add_row(key, Text("-" if value is None else str(value)))
            self._out.print(grid)

    def print_table(self, headers: list[str], rows: list[list[str]], title: Optional[str] = None) -> None:
        """Print rows under *headers*: a Rich table, tab-separated lines, or a JSON array."""
        if self.format is OutputFormat.JSON:
            self._write_json([dict(zip(headers, row)) for row in rows])
        elif self.format is OutputFormat.PLAIN:
            self._write_lines(["\t".join(headers)] + ["\t".join(row) for row in rows])
        else:
            table = Table(*headers, title=title, header_style="bold cyan")
            for row in rows:
                table.add_row(*row)
            self._out.print(table)

    def _write_json(self, payload: Any) -> None:
        self._write_lines([json.dumps(payload, indent=2, ensure_ascii=False, default=str)])

    @staticmethod
    def _write_lines(lines: list[str]) -> None:
        for line in lines:
            sys.stdout.write(line + "\n")
        sys.stdout.flush()

    # --- stderr ---

    def _say(
        self,
        message: str,
        style: Optional[str] = None,
        label: str = "",
        always: bool = False,
    ) -> None:
        if self.quiet and not always:
            return
        # Text, not markup: server messages may contain square brackets.
        line = Text()
        if label:
            line.append(label, style=style)
            line.append(message)
        else:
            line.append(message, style=style)
        self._err.print(line, soft_wrap=True)

    def info(self, message: str) -> None:
        self._say(message)

    def success(self, message: str) -> None:
        self._say(message, style="green")

    def suggest(self, message: str) -> None:
        """A next step, e.g. the command that uses a freshly saved token."""
        self._say(f"-> {message}", style="dim")

    def error(self, message: str) -> None:
        self._say(message, style="bold red", label="Error: ", always=True)

    def authorization_prompt(self, url: str) -> None:
        """Show the code-flow authorization URL on a line of its own."""
        self._say("Open this URL in your browser to authorize:", always=True)
        self._say(f"  {url}", style="bold cyan", always=True)
        self.info("Waiting for authorization...")

    def device_prompt(self, device_auth: DeviceAuthorization) -> None:
        """Show where to go and which user code to enter for the device flow."""
        self._say(device_auth.verification_uri, style="bold cyan", label="Go to: ", always=True)
        self._err.print(
            Text.assemble("Enter code: ", (device_auth.user_code, "bold yellow")),
            soft_wrap=True,
        )
        if device_auth.verification_uri_complete:
            self._say(device_auth.verification_uri_complete, label="Or open: ", always=True)
        self.info("Waiting for authorization...")


# --- Process-wide manager ---

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    global _output
    _output = output


def reset_output() -> None:
    """Forget the installed manager so the next call builds a fresh one."""
    global _output
    _output = None


def print_access_token(access_token: str) -> None:
    get_output().print_access_token(access_token)


def print_record(data: dict[str, Any]) -> None:
    get_output().print_record(data)


def print_table(headers: list[str], rows: list[list[str]], title: Optional[str] = None) -> None:
    get_output().print_table(headers, rows, title)


def info(message: str) -> None:
    get_output().info(message)


def success(message: str) -> None:
    get_output().success(message)


def suggest(message: str) -> None:
    get_output().suggest(message)


def error(message: str) -> None:
    get_output().error(message)


def show_authorization_url(url: str) -> None:
    """Default presenter for :meth:`~tokenward.client.OAuthClient.authorize`."""
    get_output().authorization_prompt(url)


def show_device_code(device_auth: DeviceAuthorization) -> None:
    """Default presenter for :meth:`~tokenward.client.OAuthClient.authorize_device`."""
    get_output().device_prompt(device_auth)
