"""Tests for the CLI modes in main."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

import main
from config import PipelineConfig
from enrichment import RunReport, RunStatus
from game_store import GameStore
from models import OwnedGame


@pytest.fixture
def config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> PipelineConfig:
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache-home"))
    return PipelineConfig(api_key="key", db_path=tmp_path / "games.db")


def test_parse_args_defaults() -> None:
    args = main.parse_args([])
    assert args.mode == "enrich"
    assert args.workers is None
    assert args.refresh is False


def test_run_enrich_returns_report_exit_code(config: PipelineConfig) -> None:
    coordinator = MagicMock()
    coordinator.run.return_value = RunReport(status=RunStatus.ABORTED, total=3)

    with patch("main.build_coordinator", return_value=coordinator) as mock_build:
        code = main.run_enrich(config, refresh=True)

    assert code == 1
    assert mock_build.call_args.args[2] is True


def test_run_enrich_completed_is_zero(config: PipelineConfig) -> None:
    coordinator = MagicMock()
    coordinator.run.return_value = RunReport(status=RunStatus.COMPLETED)

    with patch("main.build_coordinator", return_value=coordinator):
        assert main.run_enrich(config, refresh=False) == 0


def test_build_coordinator_wires_store_then_fallback(config: PipelineConfig, tmp_path: Path) -> None:
    with GameStore(tmp_path / "wiring.db") as store:
        coordinator = main.build_coordinator(config, store, refresh=False)

    assert [source.name for source in coordinator.sources] == ["steam_store", "pcgamingwiki"]
    assert coordinator.config.workers == config.workers
    assert coordinator.sources[0].http.cancel is coordinator.cancel


def test_build_cache_enables_encryption(config: PipelineConfig) -> None:
    encrypted = PipelineConfig(api_key="key", gpg_recipient="me@example.com")
    assert main.build_cache(encrypted).encrypted is True
    assert main.build_cache(config).encrypted is False


def test_run_sync_upserts_games(config: PipelineConfig) -> None:
    client = MagicMock()
    client.resolve_vanity_url.return_value = "765"
    client.get_owned_games.return_value = [OwnedGame(app_id=1, name="A"), OwnedGame(app_id=2, name="B")]

    with patch("main.SteamWebClient", return_value=client):
        code = main.run_sync(config, steam_id=None, vanity="someone", include_free=True)

    assert code == 0
    client.get_owned_games.assert_called_once_with("765", include_free=True)
    with GameStore(config.database_path) as store:
        assert [g.app_id for g in store.get_owned_games()] == [1, 2]


def test_run_sync_requires_identity(config: PipelineConfig) -> None:
    with patch("main.SteamWebClient"):
        assert main.run_sync(config, steam_id=None, vanity=None, include_free=False) == 1


def test_run_cache_stats_and_clear(config: PipelineConfig, capsys: pytest.CaptureFixture[str]) -> None:
    config.cache_dir.mkdir(parents=True)
    (config.cache_dir / "appdetails_1.json").write_text("{}", encoding="utf-8")

    assert main.run_cache(config, clear=False) == 0
    out = capsys.readouterr().out
    assert "Files: 1" in out
    assert "Size: 2 bytes" in out

    assert main.run_cache(config, clear=True) == 0
    assert not config.cache_dir.exists()


def test_main_applies_cli_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENRICH_WORKERS", "2")
    with patch("main.load_dotenv"), patch("main.run_enrich", return_value=0) as mock_enrich:
        with pytest.raises(SystemExit) as excinfo:
            main.main(["--workers", "5", "--refresh"])

    assert excinfo.value.code == 0
    passed_config, refresh = mock_enrich.call_args.args
    assert passed_config.workers == 5
    assert refresh is True


@pytest.mark.parametrize("name", ["ENRICH_WORKERS", "ENRICH_RATE_LIMIT_PER_MINUTE"])
def test_main_rejects_non_numeric_env_settings(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture, name: str
) -> None:
    monkeypatch.setenv(name, "many")
    with patch("main.load_dotenv"), patch("main.run_enrich") as mock_enrich:
        with pytest.raises(SystemExit) as excinfo:
            main.main([])

    assert excinfo.value.code == 1
    mock_enrich.assert_not_called()
    assert "Invalid configuration" in caplog.text


def _seed_library(config: PipelineConfig) -> None:
    with GameStore(config.database_path) as store:
        store.upsert_games(
            [
                OwnedGame(app_id=1, name="Played", playtime_forever=300),
                OwnedGame(app_id=2, name="Fresh A"),
                OwnedGame(app_id=3, name="Fresh B"),
            ]
        )


def test_run_list_prints_unplayed_games(config: PipelineConfig, capsys: pytest.CaptureFixture[str]) -> None:
    _seed_library(config)

    assert main.run_list(config, limit=50, as_json=False) == 0

    out = capsys.readouterr().out
    assert out.splitlines() == ["2: Fresh A", "3: Fresh B"]


def test_run_list_json_respects_limit(config: PipelineConfig, capsys: pytest.CaptureFixture[str]) -> None:
    _seed_library(config)

    assert main.run_list(config, limit=1, as_json=True) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload == [{"appid": 2, "name": "Fresh A", "playtime_forever": 0, "rtime_last_played": 0}]


def test_run_list_empty_library(config: PipelineConfig, capsys: pytest.CaptureFixture[str]) -> None:
    assert main.run_list(config, limit=50, as_json=False) == 0
    assert "No unplayed games found" in capsys.readouterr().out

    assert main.run_list(config, limit=50, as_json=True) == 0
    assert capsys.readouterr().out.strip() == "[]"


def test_run_pick_with_seed_is_repeatable(config: PipelineConfig, capsys: pytest.CaptureFixture[str]) -> None:
    _seed_library(config)

    assert main.run_pick(config, seed=42, as_json=True) == 0
    first = json.loads(capsys.readouterr().out)
    assert main.run_pick(config, seed=42, as_json=True) == 0
    second = json.loads(capsys.readouterr().out)

    assert first == second
    assert first["appid"] in {2, 3}
    assert first["store_url"] == f"https://store.steampowered.com/app/{first['appid']}"


def test_run_pick_text_output(config: PipelineConfig, capsys: pytest.CaptureFixture[str]) -> None:
    with GameStore(config.database_path) as store:
        store.upsert_games([OwnedGame(app_id=590380, name="Into the Breach")])

    assert main.run_pick(config, seed=None, as_json=False) == 0

    assert capsys.readouterr().out.splitlines() == [
        "Name: Into the Breach",
        "AppID: 590380",
        "Store URL: https://store.steampowered.com/app/590380",
    ]


def test_run_pick_nothing_unplayed(config: PipelineConfig, capsys: pytest.CaptureFixture[str]) -> None:
    with GameStore(config.database_path) as store:
        store.upsert_games([OwnedGame(app_id=1, name="Played", playtime_forever=5)])

    assert main.run_pick(config, seed=1, as_json=False) == 0
    assert capsys.readouterr().out == ""


def test_main_dispatches_pick_mode_with_seed(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("ENRICH_WORKERS", raising=False)
    monkeypatch.delenv("ENRICH_RATE_LIMIT_PER_MINUTE", raising=False)
    with patch("main.load_dotenv"), patch("main.run_pick", return_value=0) as mock_pick:
        with pytest.raises(SystemExit) as excinfo:
            main.main(["--mode", "pick", "--seed", "7", "--json"])

    assert excinfo.value.code == 0
    _, seed, as_json = mock_pick.call_args.args
    assert seed == 7
    assert as_json is True
