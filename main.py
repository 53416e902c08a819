"""CLI entrypoint for the Steam library enrichment pipeline."""

from __future__ import annotations

import argparse
import json
import logging
import sqlite3
import sys
import threading
from dataclasses import replace

from dotenv import load_dotenv

from config import PipelineConfig
from enrichment import EnrichmentConfig, EnrichmentCoordinator
from game_store import GameStore, StoreError
from http_client import HTTPRequestError, RetryingHTTPClient
from models import DetailResult, OwnedGame
from pcgw_source import PCGW_USER_AGENT, PCGamingWikiSource
from selector import filter_unplayed, pick_game, store_url
from steam_web_client import SteamAPIError, SteamWebClient
from store_source import SteamStoreSource
from ttl_cache import TTLCache


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line flags."""
    parser = argparse.ArgumentParser(description="Sync a Steam library and enrich it with store details")
    parser.add_argument(
        "--mode",
        choices=["enrich", "sync", "cache", "list", "pick"],
        default="enrich",
        help=(
            "'enrich' (default): fetch store details for games missing them. "
            "'sync': pull the owned-games list into the local database. "
            "'cache': show cache stats, or clear it with --clear. "
            "'list': list unplayed games from the local database. "
            "'pick': pick a random unplayed game (repeatable with --seed)."
        ),
    )
    parser.add_argument("--workers", type=int, default=None, help="Number of concurrent workers")
    parser.add_argument("--rate-limit-per-minute", type=float, default=None, help="Store API requests per minute")
    parser.add_argument("--refresh", action="store_true", help="Re-enrich every owned game, not only missing ones")
    parser.add_argument("--steam-id", default=None, help="SteamID64 to sync")
    parser.add_argument("--vanity", default=None, help="Vanity profile name to resolve to a SteamID64")
    parser.add_argument("--include-free", action="store_true", help="Include played free-to-play games")
    parser.add_argument("--clear", action="store_true", help="Clear the cache (cache mode)")
    parser.add_argument("--limit", type=int, default=50, help="Maximum games to print (list mode, 0 for all)")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for a repeatable pick (pick mode)")
    parser.add_argument("--json", action="store_true", help="Print JSON instead of text (list and pick modes)")
    return parser.parse_args(argv)


def build_cache(config: PipelineConfig, **kwargs) -> TTLCache:
    cache: TTLCache = TTLCache(config.cache_dir, **kwargs)
    if config.gpg_recipient:
        cache.with_encryption(config.gpg_recipient)
    return cache


def build_coordinator(
    config: PipelineConfig,
    store: GameStore,
    refresh: bool,
) -> EnrichmentCoordinator:
    """Wire sources, caches and the shared cancel signal for one run."""
    cancel = threading.Event()
    store_http = RetryingHTTPClient(timeout=config.http_timeout, cancel=cancel)
    pcgw_http = RetryingHTTPClient(timeout=10, user_agent=PCGW_USER_AGENT, cancel=cancel)

    details_cache = build_cache(config, encode=DetailResult.to_dict, decode=DetailResult.from_dict)
    sources = [
        SteamStoreSource(store_http, details_cache, ttl=config.cache_ttl),
        PCGamingWikiSource(pcgw_http, build_cache(config), ttl=config.cache_ttl),
    ]
    enrichment_config = EnrichmentConfig(
        workers=config.workers,
        rate_limit_per_minute=config.rate_limit_per_minute,
        refresh=refresh,
    )
    return EnrichmentCoordinator(store, sources, enrichment_config, cancel=cancel)


def run_enrich(config: PipelineConfig, refresh: bool) -> int:
    """Run one enrichment pass. Returns the process exit code."""
    try:
        with GameStore(config.database_path) as store:
            report = build_coordinator(config, store, refresh).run()
    except (StoreError, sqlite3.Error, ValueError) as exc:
        logging.error("Enrichment setup failed: %s", exc)
        return 1

    logging.info(
        "Run %s. total=%s attempted=%s succeeded=%s fallback_used=%s stubbed=%s skipped=%s",
        report.status,
        report.total,
        report.attempted,
        report.succeeded,
        report.fallback_used,
        report.stubbed,
        report.skipped,
    )
    return report.exit_code


def run_sync(config: PipelineConfig, steam_id: str | None, vanity: str | None, include_free: bool) -> int:
    """Fetch the owned library and upsert it into the local database."""
    http = RetryingHTTPClient(timeout=config.http_timeout)
    try:
        client = SteamWebClient(
            config.api_key,
            http,
            games_cache=build_cache(config),
            vanity_cache=build_cache(config),
            ttl=config.cache_ttl,
            vanity_ttl=config.auth_cache_ttl,
        )
        if not steam_id:
            if not vanity:
                logging.error("Either --steam-id or --vanity is required for sync")
                return 1
            steam_id = client.resolve_vanity_url(vanity)

        logging.info("Fetching games for SteamID: %s", steam_id)
        games = client.get_owned_games(steam_id, include_free=include_free)
        with GameStore(config.database_path) as store:
            known = {game.app_id for game in store.get_owned_games()}
            store.upsert_games(games)
    except (SteamAPIError, HTTPRequestError, StoreError) as exc:
        logging.error("Sync failed: %s", exc)
        return 1

    new_count = sum(1 for game in games if game.app_id not in known)
    logging.info("Sync complete. total=%s new=%s", len(games), new_count)
    return 0


def run_cache(config: PipelineConfig, clear: bool) -> int:
    cache = TTLCache(config.cache_dir)
    if clear:
        try:
            cache.clear()
        except OSError as exc:
            logging.error("Error clearing cache: %s", exc)
            return 1
        print("Cache cleared.")
        return 0

    stats = cache.stats()
    print(f"Cache Directory: {cache.directory}")
    print(f"Files: {stats.file_count}")
    print(f"Size: {stats.total_bytes} bytes")
    return 0


def load_unplayed(config: PipelineConfig) -> list[OwnedGame]:
    """Read the synced library and keep the games never launched."""
    with GameStore(config.database_path) as store:
        games = store.get_owned_games()
    if not games:
        logging.warning("Local library is empty. Run --mode sync first.")
    return filter_unplayed(games)


def run_list(config: PipelineConfig, limit: int, as_json: bool) -> int:
    try:
        unplayed = load_unplayed(config)
    except (StoreError, sqlite3.Error) as exc:
        logging.error("Failed to read library: %s", exc)
        return 1

    if not unplayed:
        print("[]" if as_json else "No unplayed games found (or profile is private).")
        return 0

    if limit > 0:
        unplayed = unplayed[:limit]
    if as_json:
        print(json.dumps([game.to_dict() for game in unplayed], indent=2))
    else:
        for game in unplayed:
            print(f"{game.app_id}: {game.name}")
    return 0


def run_pick(config: PipelineConfig, seed: int | None, as_json: bool) -> int:
    try:
        unplayed = load_unplayed(config)
    except (StoreError, sqlite3.Error) as exc:
        logging.error("Failed to read library: %s", exc)
        return 1

    picked = pick_game(unplayed, seed)
    if picked is None:
        logging.info("No unplayed games found.")
        return 0

    url = store_url(picked.app_id)
    if as_json:
        print(json.dumps({**picked.to_dict(), "store_url": url}, indent=2))
    else:
        print(f"Name: {picked.name}")
        print(f"AppID: {picked.app_id}")
        print(f"Store URL: {url}")
    return 0


def main(argv: list[str] | None = None) -> None:
    """Initialize config and execute the selected mode."""
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
    args = parse_args(argv)

    try:
        config = PipelineConfig.from_env()
    except ValueError as exc:
        logging.error("Invalid configuration: %s", exc)
        sys.exit(1)
    overrides = {}
    if args.workers is not None:
        overrides["workers"] = args.workers
    if args.rate_limit_per_minute is not None:
        overrides["rate_limit_per_minute"] = args.rate_limit_per_minute
    if overrides:
        config = replace(config, **overrides)

    if args.mode == "sync":
        code = run_sync(config, args.steam_id, args.vanity, args.include_free)
    elif args.mode == "cache":
        code = run_cache(config, args.clear)
    elif args.mode == "list":
        code = run_list(config, args.limit, args.json)
    elif args.mode == "pick":
        code = run_pick(config, args.seed, args.json)
    else:
        code = run_enrich(config, args.refresh)
    sys.exit(code)


if __name__ == "__main__":
    main()
