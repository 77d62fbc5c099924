"""Tests for tokenward.output -- stream discipline, formats and login prompts."""

from __future__ import annotations

import json

import pytest

from tokenward import output as output_module
from tokenward.models import DeviceAuthorization
from tokenward.output import (
    OutputFormat,
    OutputManager,
    color_disabled,
    get_output,
    reset_output,
    set_output,
)


@pytest.fixture()
def piped(monkeypatch):
    """Pretend stdout is a pipe."""
    monkeypatch.setattr("tokenward.output._stdout_is_terminal", lambda: False)


@pytest.fixture()
def terminal(monkeypatch):
    """Pretend stdout is an interactive terminal with colour allowed."""
    monkeypatch.setattr("tokenward.output._stdout_is_terminal", lambda: True)
    monkeypatch.delenv("NO_COLOR", raising=False)
    monkeypatch.delenv("TERM", raising=False)


def _plain(**kwargs) -> OutputManager:
    return OutputManager(format=OutputFormat.PLAIN, no_color=True, **kwargs)


def _device_auth(complete: str | None = None) -> DeviceAuthorization:
    return DeviceAuthorization(
        device_code="dev",
        user_code="WDJB-MJHT",
        verification_uri="https://github.com/login/device",
        verification_uri_complete=complete,
        expires_in=900,
        interval=5,
    )


class TestFormatSelection:
    def test_pipe_gets_plain(self, piped) -> None:
        assert OutputManager().format is OutputFormat.PLAIN

    def test_terminal_gets_rich(self, terminal) -> None:
        assert OutputManager().format is OutputFormat.RICH

    def test_terminal_without_colour_gets_plain(self, terminal) -> None:
        assert OutputManager(no_color=True).format is OutputFormat.PLAIN

    def test_explicit_format_is_kept(self, terminal) -> None:
        assert OutputManager(format=OutputFormat.JSON).format is OutputFormat.JSON


class TestColorDisabled:
    def test_flag(self, monkeypatch) -> None:
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.delenv("TERM", raising=False)
        assert color_disabled(True) is True

    def test_empty_no_color_counts(self, monkeypatch) -> None:
        monkeypatch.setenv("NO_COLOR", "")
        assert color_disabled() is True

    def test_dumb_terminal(self, monkeypatch) -> None:
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "dumb")
        assert color_disabled() is True

    def test_colour_terminal(self, monkeypatch) -> None:
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm-256color")
        assert color_disabled() is False


class TestStreams:
    @pytest.mark.parametrize("fmt", list(OutputFormat))
    def test_access_token_alone_on_stdout(self, capfd, piped, fmt) -> None:
        OutputManager(format=fmt, no_color=True).print_access_token("gho_secret")
        captured = capfd.readouterr()
        assert captured.out == "gho_secret\n"
        assert captured.err == ""

    @pytest.mark.parametrize("method", ["info", "success", "suggest", "error"])
    def test_messages_stay_off_stdout(self, capfd, piped, method) -> None:
        getattr(_plain(), method)("about the login")
        captured = capfd.readouterr()
        assert captured.out == ""
        assert "about the login" in captured.err

    def test_error_label(self, capfd, piped) -> None:
        _plain().error("refresh failed")
        assert capfd.readouterr().err == "Error: refresh failed\n"

    def test_brackets_are_not_markup(self, capfd, piped) -> None:
        _plain().error("server said [bold]no[/bold]")
        assert "[bold]no[/bold]" in capfd.readouterr().err

    def test_long_lines_are_not_wrapped(self, capfd, piped) -> None:
        url = "https://auth.example.com/authorize?" + "x" * 300
        _plain().error(url)
        assert capfd.readouterr().err == f"Error: {url}\n"


class TestQuiet:
    @pytest.mark.parametrize("method", ["info", "success", "suggest"])
    def test_chatter_hidden(self, capfd, piped, method) -> None:
        getattr(_plain(quiet=True), method)("hidden")
        assert capfd.readouterr().err == ""

    def test_errors_shown(self, capfd, piped) -> None:
        _plain(quiet=True).error("shown")
        assert "shown" in capfd.readouterr().err

    def test_authorization_url_shown(self, capfd, piped) -> None:
        _plain(quiet=True).authorization_prompt("https://auth.example.com/authorize")
        assert capfd.readouterr().err.splitlines() == [
            "Open this URL in your browser to authorize:",
            "  https://auth.example.com/authorize",
        ]


class TestPrompts:
    def test_authorization_url_on_its_own_line(self, capfd, piped) -> None:
        url = "https://auth.example.com/authorize?client_id=c&state=s"
        _plain().authorization_prompt(url)
        lines = capfd.readouterr().err.splitlines()
        assert f"  {url}" in lines
        assert lines[-1] == "Waiting for authorization..."

    def test_device_code(self, capfd, piped) -> None:
        _plain().device_prompt(_device_auth())
        captured = capfd.readouterr()
        assert captured.out == ""
        assert captured.err.splitlines() == [
            "Go to: https://github.com/login/device",
            "Enter code: WDJB-MJHT",
            "Waiting for authorization...",
        ]

    def test_device_code_with_complete_uri(self, capfd, piped) -> None:
        _plain().device_prompt(_device_auth(complete="https://github.com/login/device?code=WDJB"))
        assert "Or open: https://github.com/login/device?code=WDJB" in capfd.readouterr().err

    def test_quiet_still_shows_code(self, capfd, piped) -> None:
        _plain(quiet=True).device_prompt(_device_auth())
        err = capfd.readouterr().err
        assert "WDJB-MJHT" in err
        assert "Waiting" not in err


class TestRecords:
    def test_json(self, capfd, piped) -> None:
        OutputManager(format=OutputFormat.JSON).print_record({"access_token": "gho_...abcd", "expired": False})
        assert json.loads(capfd.readouterr().out) == {"access_token": "gho_...abcd", "expired": False}

    def test_plain_key_value_lines(self, capfd, piped) -> None:
        _plain().print_record({"token_type": "Bearer", "scope": None})
        assert capfd.readouterr().out.splitlines() == ["token_type\tBearer", "scope\t"]

    def test_rich(self, capfd, piped) -> None:
        OutputManager(format=OutputFormat.RICH, no_color=True).print_record({"scope": "repo"})
        out = capfd.readouterr().out
        assert "scope" in out
        assert "repo" in out


class TestTables:
    def test_json(self, capfd, piped) -> None:
        OutputManager(format=OutputFormat.JSON).print_table(["Name", "Storage"], [["github", "file"]])
        assert json.loads(capfd.readouterr().out) == [{"Name": "github", "Storage": "file"}]

    def test_plain(self, capfd, piped) -> None:
        _plain().print_table(["Name", "Storage"], [["github", "file"], ["corp", "keyring"]])
        assert capfd.readouterr().out.splitlines() == [
            "Name\tStorage",
            "github\tfile",
            "corp\tkeyring",
        ]

    def test_rich_title(self, capfd, piped) -> None:
        OutputManager(format=OutputFormat.RICH, no_color=True).print_table(
            ["Name"], [["github"]], title="Providers"
        )
        out = capfd.readouterr().out
        assert "Providers" in out
        assert "github" in out


class TestProcessWideManager:
    def test_created_lazily_once(self) -> None:
        reset_output()
        assert get_output() is get_output()

    def test_helpers_use_installed_manager(self, capfd, piped) -> None:
        set_output(_plain())
        output_module.print_access_token("via helper")
        output_module.show_device_code(_device_auth())
        captured = capfd.readouterr()
        assert captured.out == "via helper\n"
        assert "Enter code: WDJB-MJHT" in captured.err

    def test_reset_drops_manager(self) -> None:
        manager = _plain()
        set_output(manager)
        reset_output()
        assert get_output() is not manager
