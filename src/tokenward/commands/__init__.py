"""Built-in CLI sub-commands for tokenward.

* :mod:`~tokenward.commands.provider` -- add, list, show and remove
  authorization server profiles.
* :mod:`~tokenward.commands.login` -- run the code or device flow and save
  the token under a key.
* :mod:`~tokenward.commands.token` -- show, print, refresh and clear
  stored tokens.
* :mod:`~tokenward.commands.config` -- view and modify global settings.

Multi-command groups export a :class:`typer.Typer` sub-application; single
commands export a plain callback registered on the root app.
"""
