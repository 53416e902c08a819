"""Steam Store API client: the primary detail source."""

from __future__ import annotations

import logging
from datetime import timedelta
from json import JSONDecodeError
from typing import Any

from detail_sources import DetailSourceError
from http_client import RetryingHTTPClient, ensure_ok
from models import AppDetails, DetailResult, WorkItem
from ttl_cache import CacheError, TTLCache

STORE_APPDETAILS_URL = "https://store.steampowered.com/api/appdetails"
DEFAULT_TTL = timedelta(hours=24)

LOGGER = logging.getLogger(__name__)


def store_cache_key(app_id: int) -> str:
    return f"appdetails_{app_id}"


class SteamStoreSource:
    """Looks up one app at a time on the Store ``appdetails`` endpoint."""

    name = "steam_store"

    def __init__(
        self,
        http: RetryingHTTPClient,
        cache: TTLCache[DetailResult] | None = None,
        ttl: timedelta = DEFAULT_TTL,
    ) -> None:
        self.http = http
        self.cache = cache
        self.ttl = ttl

    def fetch_details(self, item: WorkItem) -> DetailResult:
        key = store_cache_key(item.app_id)
        cached = self._cache_get(key)
        if cached is not None:
            LOGGER.debug("Store cache hit for appid=%s", item.app_id)
            return cached

        response = self.http.get(STORE_APPDETAILS_URL, params={"appids": str(item.app_id)})
        try:
            ensure_ok(response, "steam store api")
            try:
                body = response.json()
            except (JSONDecodeError, ValueError) as exc:
                raise DetailSourceError(f"Undecodable store response for appid={item.app_id}") from exc
        finally:
            response.close()

        result = parse_appdetails(body, item.app_id)
        if result.success:
            self._cache_set(key, result)
        return result

    def _cache_get(self, key: str) -> DetailResult | None:
        if self.cache is None:
            return None
        try:
            return self.cache.get(key, self.ttl)
        except CacheError as exc:
            LOGGER.warning("Store cache read failed for key=%s: %s", key, exc)
            return None

    def _cache_set(self, key: str, result: DetailResult) -> None:
        if self.cache is None:
            return
        try:
            self.cache.set(key, result)
        except CacheError as exc:
            LOGGER.warning("Store cache write failed for key=%s: %s", key, exc)


def parse_appdetails(body: Any, app_id: int) -> DetailResult:
    """Map an ``appdetails`` payload to a DetailResult.

    ``success: false`` (delisted, region locked, unknown id) or a missing entry
    yields a failed result rather than an error.
    """
    if not isinstance(body, dict):
        raise DetailSourceError(f"Unexpected store payload shape for appid={app_id}")

    entry = body.get(str(app_id))
    if not isinstance(entry, dict) or not entry.get("success"):
        return DetailResult.failed(SteamStoreSource.name)

    data = entry.get("data")
    if not isinstance(data, dict):
        return DetailResult.failed(SteamStoreSource.name)

    return DetailResult(success=True, details=AppDetails.from_dict(data), source=SteamStoreSource.name)
