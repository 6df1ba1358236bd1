"""CLI tests for the ``cachedapi`` application.

Each test runs in an isolated XDG environment with ``CACHEDAPI_BASE_URL``
pointing at a fake backend served through :class:`httpx.MockTransport`.
The coordinator factory used by the commands is patched to inject that
transport; everything else (config resolution, token store, disk cache)
is the real code path.
"""

from __future__ import annotations

import json
import sys

import httpx
import pytest

from cachedapi import __version__
from cachedapi.app import app, main
from cachedapi.auth import TokenStore
from cachedapi.auth.token_store import ACCESS_TOKEN
from cachedapi.exceptions import AuthFailureError, InvalidUsageError, NotConfiguredError
from cachedapi.exit_codes import EXIT_GENERIC_FAILURE, EXIT_NOT_CONFIGURED


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeBackend:
    """Synchronous MockTransport handler recording every request."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status: dict[str, int] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        return httpx.Response(
            self.status.get(path, 200),
            headers={"content-type": "application/json"},
            json={"path": path, "params": dict(request.url.params)},
        )

    def count(self, method: str = "GET") -> int:
        return sum(1 for r in self.requests if r.method == method)


@pytest.fixture
def backend(isolated_config, monkeypatch: pytest.MonkeyPatch) -> FakeBackend:
    from cachedapi.client.coordinator import create_coordinator

    fake = FakeBackend()

    def _create(config, **kwargs):
        return create_coordinator(config, http_transport=httpx.MockTransport(fake), **kwargs)

    monkeypatch.setattr("cachedapi.commands._shared.create_coordinator", _create)
    monkeypatch.setenv("CACHEDAPI_BASE_URL", "https://api.example.com")
    return fake


# ---------------------------------------------------------------------------
# Root options
# ---------------------------------------------------------------------------


class TestRoot:
    def test_version(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_help_lists_commands(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for name in ("get", "post", "delete", "cache", "config", "token"):
            assert name in result.output


# ---------------------------------------------------------------------------
# Request commands
# ---------------------------------------------------------------------------


class TestGet:
    def test_prints_payload(self, cli_runner, backend: FakeBackend) -> None:
        result = cli_runner.invoke(
            app, ["--json", "get", "/classes", "-P", "instituteId=I1"]
        )
        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout) == {
            "path": "/classes",
            "params": {"instituteId": "I1"},
        }

    def test_disk_cache_serves_second_invocation(
        self, cli_runner, backend: FakeBackend
    ) -> None:
        args = ["--json", "get", "/classes", "-P", "instituteId=I1"]
        first = cli_runner.invoke(app, args)
        second = cli_runner.invoke(app, args)
        assert first.exit_code == 0
        assert second.exit_code == 0
        assert first.stdout == second.stdout
        assert backend.count() == 1

    def test_memory_cache_does_not_persist(self, cli_runner, backend: FakeBackend) -> None:
        args = ["--json", "--memory-cache", "get", "/classes"]
        cli_runner.invoke(app, args)
        cli_runner.invoke(app, args)
        assert backend.count() == 2

    def test_force_refresh(self, cli_runner, backend: FakeBackend) -> None:
        cli_runner.invoke(app, ["--json", "get", "/classes"])
        result = cli_runner.invoke(app, ["--json", "get", "/classes", "--force-refresh"])
        assert result.exit_code == 0
        assert backend.count() == 2

    def test_sends_stored_token(self, cli_runner, backend: FakeBackend) -> None:
        TokenStore().set(ACCESS_TOKEN, "tok123")
        cli_runner.invoke(app, ["--json", "get", "/me"])
        assert backend.requests[0].headers["Authorization"] == "Bearer tok123"

    def test_401_clears_stored_token(self, cli_runner, backend: FakeBackend) -> None:
        TokenStore().set(ACCESS_TOKEN, "expired")
        backend.status["/me"] = 401
        result = cli_runner.invoke(app, ["--json", "get", "/me", "--user", "U1"])
        assert isinstance(result.exception, AuthFailureError)
        assert TokenStore().get(ACCESS_TOKEN) is None

    def test_bad_param(self, cli_runner, backend: FakeBackend) -> None:
        result = cli_runner.invoke(app, ["get", "/classes", "-P", "noequals"])
        assert isinstance(result.exception, InvalidUsageError)
        assert backend.requests == []

    def test_not_configured(self, cli_runner, isolated_config) -> None:
        result = cli_runner.invoke(app, ["--memory-cache", "get", "/classes"])
        assert isinstance(result.exception, NotConfiguredError)

    def test_base_url_flag(self, cli_runner, backend: FakeBackend) -> None:
        result = cli_runner.invoke(
            app, ["--json", "--base-url", "https://other.example", "get", "/classes"]
        )
        assert result.exit_code == 0
        assert backend.requests[0].url.host == "other.example"


class TestMutations:
    def test_post_invalidates_cached_read(self, cli_runner, backend: FakeBackend) -> None:
        cli_runner.invoke(app, ["--json", "get", "/institute-classes", "-P", "instituteId=I1"])
        result = cli_runner.invoke(
            app,
            [
                "--json",
                "post",
                "/institute-classes",
                "--data",
                '{"name": "7B"}',
                "--institute",
                "I1",
            ],
        )
        assert result.exit_code == 0, result.output
        assert json.loads(backend.requests[-1].read()) == {"name": "7B"}

        shown = cli_runner.invoke(
            app, ["--json", "cache", "show", "/institute-classes", "-P", "instituteId=I1"]
        )
        assert shown.exit_code == 1

    def test_delete(self, cli_runner, backend: FakeBackend) -> None:
        result = cli_runner.invoke(app, ["--json", "delete", "/lectures/3"])
        assert result.exit_code == 0
        assert backend.count("DELETE") == 1

    def test_invalid_body(self, cli_runner, backend: FakeBackend) -> None:
        result = cli_runner.invoke(app, ["put", "/lectures/3", "--data", "{nope"])
        assert isinstance(result.exception, InvalidUsageError)
        assert backend.requests == []


# ---------------------------------------------------------------------------
# Cache commands
# ---------------------------------------------------------------------------


class TestCacheCommands:
    def test_show_cached_value(self, cli_runner, backend: FakeBackend) -> None:
        cli_runner.invoke(app, ["--json", "get", "/classes"])
        result = cli_runner.invoke(app, ["--json", "cache", "show", "/classes"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["path"] == "/classes"

    def test_stats(self, cli_runner, backend: FakeBackend) -> None:
        cli_runner.invoke(app, ["--json", "get", "/classes"])
        result = cli_runner.invoke(app, ["--json", "cache", "stats"])
        assert result.exit_code == 0
        rows = {row["stat"]: row["value"] for row in json.loads(result.stdout)}
        assert rows["entry_count"] == "1"

    def test_clear_all(self, cli_runner, backend: FakeBackend) -> None:
        cli_runner.invoke(app, ["--json", "get", "/classes"])
        result = cli_runner.invoke(app, ["--json", "cache", "clear"])
        assert result.exit_code == 0
        assert "Cleared all" in result.output
        shown = cli_runner.invoke(app, ["--json", "cache", "show", "/classes"])
        assert shown.exit_code == 1

    def test_clear_user(self, cli_runner, backend: FakeBackend) -> None:
        cli_runner.invoke(app, ["--json", "get", "/me", "--user", "U1"])
        result = cli_runner.invoke(app, ["--json", "cache", "clear", "--user", "U1"])
        assert result.exit_code == 0
        assert "Cleared 1 entries for user U1" in result.output


# ---------------------------------------------------------------------------
# Config commands
# ---------------------------------------------------------------------------


class TestConfigCommands:
    def test_set_and_show(self, cli_runner, isolated_config) -> None:
        result = cli_runner.invoke(app, ["config", "set", "base_url", "https://api.example.com"])
        assert result.exit_code == 0
        shown = cli_runner.invoke(app, ["-q", "--json", "config", "show"])
        assert shown.exit_code == 0
        assert json.loads(shown.stdout)["base_url"] == "https://api.example.com"

    def test_set_coerces_numbers(self, cli_runner, isolated_config) -> None:
        result = cli_runner.invoke(app, ["config", "set", "coordination.cooldown_seconds", "2.5"])
        assert result.exit_code == 0
        from cachedapi.config import load_config

        assert load_config().coordination.cooldown_seconds == 2.5

    def test_set_unknown_key(self, cli_runner, isolated_config) -> None:
        result = cli_runner.invoke(app, ["config", "set", "nope.value", "1"])
        assert result.exit_code == 2

    def test_set_rejects_invalid_value(self, cli_runner, isolated_config) -> None:
        result = cli_runner.invoke(app, ["config", "set", "cache.backend", "redis"])
        assert result.exit_code == 2

    def test_path(self, cli_runner, isolated_config) -> None:
        result = cli_runner.invoke(app, ["config", "path"])
        assert result.exit_code == 0
        assert result.stdout.strip().endswith("config.json")


# ---------------------------------------------------------------------------
# Token commands
# ---------------------------------------------------------------------------


class TestTokenCommands:
    def test_set_show_clear(self, cli_runner, isolated_config) -> None:
        assert cli_runner.invoke(app, ["token", "set", "abcdefghijkl"]).exit_code == 0
        assert TokenStore().get(ACCESS_TOKEN) == "abcdefghijkl"

        shown = cli_runner.invoke(app, ["--json", "token", "show"])
        assert json.loads(shown.stdout) == [{"name": ACCESS_TOKEN, "value": "abcd...ijkl"}]

        assert cli_runner.invoke(app, ["token", "clear"]).exit_code == 0
        assert TokenStore().names() == []

    def test_clear_single_entry(self, cli_runner, isolated_config) -> None:
        cli_runner.invoke(app, ["token", "set", "a-token"])
        cli_runner.invoke(app, ["token", "set", "--name", "org_access_token", "org"])
        cli_runner.invoke(app, ["token", "clear", "org_access_token"])
        assert TokenStore().names() == [ACCESS_TOKEN]


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


class TestMain:
    @pytest.fixture(autouse=True)
    def _no_signal_handlers(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("cachedapi.app._setup_signal_handlers", lambda: None)

    def test_error_maps_to_exit_code(self, isolated_config, monkeypatch, capsys) -> None:
        monkeypatch.setattr(sys, "argv", ["cachedapi", "--memory-cache", "get", "/classes"])
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == EXIT_NOT_CONFIGURED
        assert "Backend URL not configured" in capsys.readouterr().err

    def test_unexpected_error_writes_crash_log(
        self, isolated_config, monkeypatch, capsys
    ) -> None:
        def _boom(ctx, action):
            raise RuntimeError("kaboom")

        monkeypatch.setattr("cachedapi.commands.request.run_with_coordinator", _boom)
        monkeypatch.setattr(sys, "argv", ["cachedapi", "get", "/classes"])
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == EXIT_GENERIC_FAILURE
        logs = list((isolated_config / "data" / "cachedapi" / "logs").glob("crash-*.log"))
        assert len(logs) == 1
        assert "kaboom" in logs[0].read_text()
