"""Steam Web API client used to sync the owned-games library."""

from __future__ import annotations

import logging
from datetime import timedelta
from json import JSONDecodeError
from typing import Any

from http_client import RetryingHTTPClient, ensure_ok
from models import OwnedGame
from ttl_cache import CacheError, TTLCache

STEAM_API_BASE_URL = "https://api.steampowered.com"
DEFAULT_TTL = timedelta(hours=24)

LOGGER = logging.getLogger(__name__)


class SteamAPIError(RuntimeError):
    pass


class SteamWebClient:
    """Resolves vanity names and lists owned games, caching raw responses."""

    def __init__(
        self,
        api_key: str,
        http: RetryingHTTPClient,
        *,
        games_cache: TTLCache[dict[str, Any]] | None = None,
        vanity_cache: TTLCache[dict[str, Any]] | None = None,
        ttl: timedelta = DEFAULT_TTL,
        vanity_ttl: timedelta | None = None,
    ) -> None:
        if not api_key:
            raise SteamAPIError("STEAM_API_KEY environment variable is required")
        self.api_key = api_key
        self.http = http
        self.games_cache = games_cache
        self.vanity_cache = vanity_cache
        self.ttl = ttl
        self.vanity_ttl = vanity_ttl or ttl

    def resolve_vanity_url(self, vanity_url: str) -> str:
        """Return the SteamID64 for a vanity profile name."""
        key = f"vanity_{vanity_url}"
        cached = _cache_get(self.vanity_cache, key, self.vanity_ttl)
        if isinstance(cached, dict):
            steam_id = (cached.get("response") or {}).get("steamid")
            if steam_id:
                return str(steam_id)

        body = self._get_json(
            "/ISteamUser/ResolveVanityURL/v1/",
            {"key": self.api_key, "vanityurl": vanity_url},
        )
        response = body.get("response") if isinstance(body, dict) else None
        if not isinstance(response, dict) or response.get("success") != 1:
            message = response.get("message", "") if isinstance(response, dict) else ""
            raise SteamAPIError(f"vanity resolution failed: {message}")

        _cache_set(self.vanity_cache, key, body)
        return str(response.get("steamid", ""))

    def get_owned_games(self, steam_id: str, include_free: bool = False) -> list[OwnedGame]:
        """List owned games for a SteamID64.

        An empty library with ``game_count`` 0 is returned as an empty list and
        is not cached: Steam answers the same way for private profiles, so the
        caller is warned instead of the result being trusted.
        """
        key = f"owned_games_{steam_id}"
        if include_free:
            key += "_free"

        body = _cache_get(self.games_cache, key, self.ttl)
        if body is None:
            params = {
                "key": self.api_key,
                "steamid": steam_id,
                "include_appinfo": "1",
                "format": "json",
            }
            if include_free:
                params["include_played_free_games"] = "1"
            body = self._get_json("/IPlayerService/GetOwnedGames/v1/", params)

            response = body.get("response") if isinstance(body, dict) else None
            if not isinstance(response, dict):
                raise SteamAPIError("Unexpected GetOwnedGames payload shape")
            if not response.get("games") and not response.get("game_count"):
                LOGGER.warning(
                    "Steam returned no games for steam_id=%s: the profile may be private or the library empty",
                    steam_id,
                )
                return []
            _cache_set(self.games_cache, key, body)

        return parse_owned_games(body)

    def _get_json(self, path: str, params: dict[str, str]) -> Any:
        response = self.http.get(f"{STEAM_API_BASE_URL}{path}", params=params)
        try:
            ensure_ok(response, "steam api")
            return response.json()
        except (JSONDecodeError, ValueError) as exc:
            raise SteamAPIError(f"failed to decode response: {exc}") from exc
        finally:
            response.close()


def parse_owned_games(body: Any) -> list[OwnedGame]:
    games = body.get("response", {}).get("games", []) if isinstance(body, dict) else []
    parsed: list[OwnedGame] = []
    for item in games if isinstance(games, list) else []:
        if not isinstance(item, dict) or not isinstance(item.get("appid"), int):
            continue
        parsed.append(
            OwnedGame(
                app_id=item["appid"],
                name=item.get("name") or "",
                playtime_forever=int(item.get("playtime_forever") or 0),
                rtime_last_played=int(item.get("rtime_last_played") or 0),
            )
        )
    return parsed


def _cache_get(cache: TTLCache[dict[str, Any]] | None, key: str, ttl: timedelta) -> dict[str, Any] | None:
    if cache is None:
        return None
    try:
        return cache.get(key, ttl)
    except CacheError as exc:
        LOGGER.warning("Cache read failed for key=%s: %s", key, exc)
        return None


def _cache_set(cache: TTLCache[dict[str, Any]] | None, key: str, value: dict[str, Any]) -> None:
    if cache is None:
        return
    try:
        cache.set(key, value)
    except CacheError as exc:
        LOGGER.warning("Cache write failed for key=%s: %s", key, exc)
