"""Tests for the command-line entry point."""

from unittest.mock import patch

import pytest

from conftest import StubProvider
import main
from bot.context import BotContext
from core.reconcile import ReconciliationScheduler
from core.resolver import GroupResolver
from sdk.exceptions import ProviderUnavailable


@pytest.fixture()
def make_ctx(store):
    def _make(provider: StubProvider) -> BotContext:
        return BotContext(
            store=store,
            resolver=GroupResolver(store, provider),
            scheduler=ReconciliationScheduler(store, provider),
        )
    return _make


class TestStartup:
    @pytest.mark.parametrize("command", [["lookup", "alice"], ["reconcile"]])
    def test_missing_provider_settings_exit_2(self, command, tmp_path, monkeypatch, capsys) -> None:
        monkeypatch.setattr("config.MEMBERSHIP_DB_PATH", str(tmp_path / "m.json"))

        with patch("main.build_default_client", side_effect=EnvironmentError("PROVIDER_BASE_URL must be set.")):
            assert main.main(command) == 2

        assert "Configuration error" in capsys.readouterr().err

    def test_corrupt_store_exit_2(self, tmp_path, monkeypatch, capsys) -> None:
        path = tmp_path / "m.json"
        path.write_text("{not json")
        monkeypatch.setattr("config.MEMBERSHIP_DB_PATH", str(path))

        assert main.main(["lookup", "alice"]) == 2
        assert "Configuration error" in capsys.readouterr().err


class TestLookup:
    @pytest.mark.asyncio
    async def test_found(self, make_ctx, capsys) -> None:
        code = await main._lookup(make_ctx(StubProvider({"alice": ["g2", "g1"]})), "alice")

        assert code == 0
        assert capsys.readouterr().out == "alice (provider):\n  g1\n  g2\n"

    @pytest.mark.asyncio
    async def test_not_found(self, make_ctx) -> None:
        assert await main._lookup(make_ctx(StubProvider({})), "mallory") == 1

    @pytest.mark.asyncio
    async def test_provider_failure(self, make_ctx) -> None:
        assert await main._lookup(make_ctx(StubProvider(error=ProviderUnavailable(503))), "alice") == 2


class TestReconcile:
    @pytest.mark.asyncio
    async def test_success(self, make_ctx, store) -> None:
        assert await main._reconcile(make_ctx(StubProvider({"alice": ["g1"]}))) == 0
        assert store.get("alice") == frozenset({"g1"})

    @pytest.mark.asyncio
    async def test_fetch_failure(self, make_ctx) -> None:
        assert await main._reconcile(make_ctx(StubProvider(error=ProviderUnavailable(500)))) == 1
