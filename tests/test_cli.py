"""End-to-end CLI tests through Typer's CliRunner.

Network calls are stubbed by patching ``tokenward.transport.httpx.post``.
"""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import httpx
import pytest

from tokenward import __version__
from tokenward.app import app
from tokenward.config import load_global_config, load_provider, provider_exists
from tokenward.models import Token
from tokenward.storage import FileStore

KEY = "github.com:me"


def _mock_httpx_post(status_code: int = 200, json_data: Any = None) -> MagicMock:
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = status_code
    resp.json.return_value = json_data
    return resp


@pytest.fixture
def runner(cli_runner, isolated_config: Path):
    """CliRunner with an isolated config directory."""
    return cli_runner


@pytest.fixture
def github_provider(runner) -> None:
    result = runner.invoke(
        app, ["provider", "add", "github", "--preset", "github", "-c", "literal:Iv1.test", "--default"]
    )
    assert result.exit_code == 0, result.output


def _save_token(expired: bool = False, refresh_token: str | None = "refresh-1") -> None:
    issued = int(time.time()) - (7200 if expired else 0)
    FileStore().save_token(
        KEY,
        Token(
            access_token="gho_current_access",
            refresh_token=refresh_token,
            expires_in=3600,
            expires_at=issued + 3600,
        ),
    )


class TestRoot:
    def test_version(self, runner) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_no_args_shows_help(self, runner) -> None:
        result = runner.invoke(app, [])
        assert "provider" in result.output
        assert "login" in result.output


class TestProviderCommands:
    def test_add_preset(self, runner, github_provider) -> None:
        provider = load_provider("github")
        assert provider.oauth.client_id == "Iv1.test"
        assert provider.oauth.token_endpoint == "https://github.com/login/oauth/access_token"
        assert load_global_config().default_provider == "github"

    def test_add_custom_endpoints(self, runner) -> None:
        result = runner.invoke(
            app,
            [
                "provider", "add", "corp",
                "-c", "env:CORP_CLIENT_ID",
                "--authorization-endpoint", "https://id.corp.example/authorize",
                "--token-endpoint", "https://id.corp.example/token",
                "--scope", "openid profile",
                "--storage", "memory",
                "--refresh-threshold", "0.5",
            ],
        )
        assert result.exit_code == 0, result.output
        provider = load_provider("corp")
        assert provider.client_id_source == "env:CORP_CLIENT_ID"
        assert provider.oauth.scope == "openid profile"
        assert provider.storage == "memory"
        assert provider.refresh_threshold == 0.5

    def test_add_without_endpoints(self, runner) -> None:
        result = runner.invoke(app, ["provider", "add", "x", "-c", "literal:id"])
        assert result.exit_code == 2
        assert not provider_exists("x")

    def test_add_unknown_preset(self, runner) -> None:
        result = runner.invoke(app, ["provider", "add", "x", "--preset", "myspace", "-c", "literal:id"])
        assert result.exit_code == 2
        assert "Unknown preset" in result.output

    def test_add_unknown_storage(self, runner) -> None:
        result = runner.invoke(
            app, ["provider", "add", "x", "--preset", "github", "-c", "literal:id", "--storage", "s3"]
        )
        assert result.exit_code == 2

    def test_add_existing_requires_force(self, runner, github_provider) -> None:
        args = ["provider", "add", "github", "--preset", "google", "-c", "literal:other"]
        assert runner.invoke(app, args).exit_code == 2
        assert runner.invoke(app, ["--force", *args]).exit_code == 0
        assert load_provider("github").oauth.client_id == "other"

    def test_list(self, runner, github_provider) -> None:
        result = runner.invoke(app, ["--plain", "provider", "list"])
        assert result.exit_code == 0
        assert "github\thttps://github.com/login/oauth/access_token\tyes\tfile\t*" in result.output

    def test_list_empty(self, runner) -> None:
        result = runner.invoke(app, ["provider", "list"])
        assert result.exit_code == 0
        assert "No providers configured" in result.output

    def test_show_hides_secret(self, runner, github_provider) -> None:
        result = runner.invoke(app, ["--json", "provider", "show", "github"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["name"] == "github"
        assert "client_secret" not in data["oauth"]

    def test_show_missing(self, runner) -> None:
        result = runner.invoke(app, ["provider", "show", "ghost"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_remove_clears_default(self, runner, github_provider) -> None:
        result = runner.invoke(app, ["--force", "provider", "remove", "github"])
        assert result.exit_code == 0
        assert not provider_exists("github")
        assert load_global_config().default_provider is None

    def test_remove_declined(self, runner, github_provider) -> None:
        result = runner.invoke(app, ["provider", "remove", "github"], input="n\n")
        assert result.exit_code == 0
        assert provider_exists("github")


class TestTokenCommands:
    def test_get_prints_only_the_token(self, runner, github_provider) -> None:
        _save_token()
        with patch("tokenward.transport.httpx.post") as mock_post:
            result = runner.invoke(app, ["token", "get", KEY])
        assert result.exit_code == 0, result.output
        assert result.stdout.strip() == "gho_current_access"
        mock_post.assert_not_called()

    def test_get_refreshes_expired_token(self, runner, github_provider) -> None:
        _save_token(expired=True)
        with patch("tokenward.transport.httpx.post") as mock_post:
            mock_post.return_value = _mock_httpx_post(
                200, {"access_token": "gho_refreshed", "expires_in": 28800}
            )
            result = runner.invoke(app, ["token", "get", KEY])

        assert result.exit_code == 0, result.output
        assert result.stdout.strip() == "gho_refreshed"
        sent = mock_post.call_args.kwargs["data"]
        assert sent["grant_type"] == "refresh_token"
        assert sent["refresh_token"] == "refresh-1"
        assert sent["client_id"] == "Iv1.test"
        stored = FileStore().get_token(KEY)
        assert stored.access_token == "gho_refreshed"
        assert stored.refresh_token == "refresh-1"

    def test_get_with_threshold(self, runner, github_provider) -> None:
        _save_token()
        with patch("tokenward.transport.httpx.post") as mock_post:
            mock_post.return_value = _mock_httpx_post(200, {"access_token": "gho_early"})
            result = runner.invoke(app, ["token", "get", KEY, "--threshold", "0"])
        assert result.stdout.strip() == "gho_early"

    def test_get_missing(self, runner, github_provider) -> None:
        result = runner.invoke(app, ["token", "get", "github.com:nobody"])
        assert result.exit_code == 4
        assert "No token stored" in result.output

    def test_get_rejected_refresh(self, runner, github_provider) -> None:
        _save_token(expired=True)
        with patch("tokenward.transport.httpx.post") as mock_post:
            mock_post.return_value = _mock_httpx_post(400, {"error": "invalid_grant"})
            result = runner.invoke(app, ["token", "get", KEY])
        assert result.exit_code == 3
        assert "invalid_grant" in result.output

    def test_get_network_failure(self, runner, github_provider) -> None:
        _save_token(expired=True)
        with patch("tokenward.transport.httpx.post") as mock_post:
            mock_post.side_effect = httpx.ConnectError("connection refused")
            result = runner.invoke(app, ["token", "get", KEY])
        assert result.exit_code == 6

    def test_show_masks_secrets(self, runner, github_provider) -> None:
        _save_token()
        result = runner.invoke(app, ["--json", "token", "show", KEY])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["access_token"] == "gho_...cess"
        assert data["refresh_token"] == "refr...sh-1"
        assert data["expired"] is False
        assert 0 < data["expires_in_seconds"] <= 3600

    def test_refresh(self, runner, github_provider) -> None:
        _save_token()
        with patch("tokenward.transport.httpx.post") as mock_post:
            mock_post.return_value = _mock_httpx_post(
                200, {"access_token": "gho_forced_new", "refresh_token": "refresh-2", "expires_in": 60}
            )
            result = runner.invoke(app, ["--plain", "token", "refresh", KEY])
        assert result.exit_code == 0, result.output
        assert FileStore().get_token(KEY).refresh_token == "refresh-2"

    def test_refresh_without_refresh_token(self, runner, github_provider) -> None:
        _save_token(refresh_token=None)
        result = runner.invoke(app, ["token", "refresh", KEY])
        assert result.exit_code == 3
        assert "No refresh token" in result.output

    def test_clear(self, runner, github_provider) -> None:
        _save_token()
        result = runner.invoke(app, ["token", "clear", KEY])
        assert result.exit_code == 0
        assert FileStore().get_token(KEY) is None

    def test_no_provider_configured(self, runner) -> None:
        result = runner.invoke(app, ["token", "get", KEY])
        assert result.exit_code == 1
        assert "No provider selected" in result.output


class TestLoginCommand:
    def test_device_flow(self, runner, github_provider) -> None:
        with patch("tokenward.transport.httpx.post") as mock_post:
            mock_post.side_effect = [
                _mock_httpx_post(
                    200,
                    {
                        "device_code": "dc",
                        "user_code": "WDJB-MJHT",
                        "verification_uri": "https://github.com/login/device",
                        "expires_in": 900,
                        "interval": 0,
                    },
                ),
                _mock_httpx_post(200, {"error": "authorization_pending"}),
                _mock_httpx_post(
                    200, {"access_token": "gho_device", "refresh_token": "ghr_1", "expires_in": 28800}
                ),
            ]
            result = runner.invoke(app, ["login", KEY, "--device", "--no-browser"])

        assert result.exit_code == 0, result.output
        assert "WDJB-MJHT" in result.output
        assert "https://github.com/login/device" in result.output
        assert FileStore().get_token(KEY).access_token == "gho_device"
        first_url = mock_post.call_args_list[0].args[0]
        assert first_url == "https://github.com/login/device/code"

    def test_device_flow_denied(self, runner, github_provider) -> None:
        with patch("tokenward.transport.httpx.post") as mock_post:
            mock_post.side_effect = [
                _mock_httpx_post(
                    200,
                    {
                        "device_code": "dc",
                        "user_code": "WDJB-MJHT",
                        "verification_uri": "https://github.com/login/device",
                        "expires_in": 900,
                        "interval": 0,
                    },
                ),
                _mock_httpx_post(200, {"error": "access_denied"}),
            ]
            result = runner.invoke(app, ["login", KEY, "--device", "--no-browser"])

        assert result.exit_code == 3
        assert "access_denied" in result.output
        assert FileStore().get_token(KEY) is None


class TestConfigCommands:
    def test_set_and_show(self, runner) -> None:
        assert runner.invoke(app, ["config", "set", "refresh_threshold", "0.5"]).exit_code == 0
        assert runner.invoke(app, ["config", "set", "cross_process_locking", "false"]).exit_code == 0

        result = runner.invoke(app, ["--json", "--quiet", "config", "show"])
        data = json.loads(result.stdout)
        assert data["refresh_threshold"] == 0.5
        assert data["cross_process_locking"] is False

    def test_set_unknown_key(self, runner) -> None:
        result = runner.invoke(app, ["config", "set", "colour", "blue"])
        assert result.exit_code == 2
        assert "Unknown config key" in result.output

    def test_set_out_of_range(self, runner) -> None:
        result = runner.invoke(app, ["config", "set", "refresh_threshold", "2"])
        assert result.exit_code == 2
        assert load_global_config().refresh_threshold == 0.8

    def test_set_bad_integer(self, runner) -> None:
        result = runner.invoke(app, ["config", "set", "callback_timeout", "soon"])
        assert result.exit_code == 2

    def test_clear_optional_value(self, runner) -> None:
        runner.invoke(app, ["config", "set", "default_provider", "github"])
        runner.invoke(app, ["config", "set", "default_provider", "none"])
        assert load_global_config().default_provider is None

    def test_reset(self, runner) -> None:
        runner.invoke(app, ["config", "set", "callback_timeout", "30"])
        result = runner.invoke(app, ["--force", "config", "reset"])
        assert result.exit_code == 0
        assert load_global_config().callback_timeout == 120
