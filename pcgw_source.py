"""PCGamingWiki Cargo API client: the fallback detail source."""

from __future__ import annotations

import logging
from datetime import timedelta
from json import JSONDecodeError
from typing import Any

from detail_sources import DetailSourceError
from http_client import RetryingHTTPClient, ensure_ok
from models import AppDetails, DetailResult, Genre, WorkItem
from ttl_cache import CacheError, TTLCache

PCGW_API_URL = "https://www.pcgamingwiki.com/w/api.php"
# MediaWiki API etiquette requires an identifying User-Agent.
PCGW_USER_AGENT = "steam-pick/1.0 (github.com/dajoen/steam-pick)"
PCGW_SHORT_DESCRIPTION = "Data fetched from PCGamingWiki."
PCGW_DETAILED_DESCRIPTION = "Data fetched from PCGamingWiki because Steam Store page is unavailable."
DEFAULT_TTL = timedelta(hours=24)

LOGGER = logging.getLogger(__name__)


def pcgw_cache_key(app_id: int) -> str:
    return f"pcgw_{app_id}"


class PCGamingWikiSource:
    """Queries the ``Infobox_game`` Cargo table by Steam app ID.

    The cached value is the raw first row, so the item's label is applied on
    every lookup rather than baked into the cache.
    """

    name = "pcgamingwiki"

    def __init__(
        self,
        http: RetryingHTTPClient,
        cache: TTLCache[dict[str, Any]] | None = None,
        ttl: timedelta = DEFAULT_TTL,
    ) -> None:
        self.http = http
        self.cache = cache
        self.ttl = ttl

    def fetch_details(self, item: WorkItem) -> DetailResult:
        row = self._fetch_row(item.app_id)
        return build_result(row, item)

    def _fetch_row(self, app_id: int) -> dict[str, Any]:
        key = pcgw_cache_key(app_id)
        if self.cache is not None:
            try:
                cached = self.cache.get(key, self.ttl)
            except CacheError as exc:
                LOGGER.warning("PCGW cache read failed for key=%s: %s", key, exc)
                cached = None
            if cached is not None:
                return cached

        params = {
            "action": "cargoquery",
            "tables": "Infobox_game",
            "fields": "Steam_AppID,Developers,Publishers,Genres",
            "where": f'Steam_AppID HOLDS "{app_id}"',
            "format": "json",
        }
        response = self.http.get(PCGW_API_URL, params=params, headers={"User-Agent": PCGW_USER_AGENT})
        try:
            ensure_ok(response, "pcgw api")
            try:
                body = response.json()
            except (JSONDecodeError, ValueError) as exc:
                raise DetailSourceError(f"Undecodable PCGW response for appid={app_id}") from exc
        finally:
            response.close()

        row = first_cargo_row(body, app_id)
        if self.cache is not None:
            try:
                self.cache.set(key, row)
            except CacheError as exc:
                LOGGER.warning("PCGW cache write failed for key=%s: %s", key, exc)
        return row


def first_cargo_row(body: Any, app_id: int) -> dict[str, Any]:
    rows = body.get("cargoquery") if isinstance(body, dict) else None
    if not isinstance(rows, list) or not rows:
        raise DetailSourceError(f"no results found for appid {app_id}")

    first = rows[0]
    title = first.get("title") if isinstance(first, dict) else None
    if not isinstance(title, dict):
        raise DetailSourceError(f"Unexpected PCGW row shape for appid {app_id}")
    return title


def build_result(row: dict[str, Any], item: WorkItem) -> DetailResult:
    """Map a Cargo row to a DetailResult.

    The wiki's title is not a reliable game name, so the item's known label is
    used. Categories have no PCGW counterpart and stay empty.
    """
    raw_genres = row.get("Genres")
    genres = tuple(
        Genre(id="", description=part.strip())
        for part in (raw_genres if isinstance(raw_genres, str) else "").split(",")
        if part.strip()
    )
    details = AppDetails(
        name=item.name,
        short_description=PCGW_SHORT_DESCRIPTION,
        detailed_description=PCGW_DETAILED_DESCRIPTION,
        genres=genres,
    )
    return DetailResult(success=True, details=details, source=PCGamingWikiSource.name)
