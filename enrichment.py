"""Concurrent enrichment of the game catalog with store details.

A run pulls the work list from the store, then dispatches items to a bounded
thread pool. Every worker takes a token from the shared rate limiter before
calling the primary source, falls back through the remaining sources on
failure, and persists exactly one record per processed item (a stub when all
sources fail). A 429 from the primary source cancels the run: no further
primary calls are made, in-flight items finish, and the run reports aborted.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from detail_sources import DetailSource
from http_client import RateLimitExceeded
from models import DetailResult, WorkItem
from rate_limiter import RateLimiter

DEFAULT_WORKERS = 1
DEFAULT_RATE_LIMIT_PER_MINUTE = 30.0

LOGGER = logging.getLogger(__name__)


class DetailStore(Protocol):
    def get_all_records(self) -> list[WorkItem]: ...

    def get_records_missing_details(self) -> list[WorkItem]: ...

    def upsert_details(self, app_id: int, result: DetailResult) -> None: ...


class RunStatus(StrEnum):
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True, slots=True)
class EnrichmentConfig:
    workers: int = DEFAULT_WORKERS
    rate_limit_per_minute: float = DEFAULT_RATE_LIMIT_PER_MINUTE
    refresh: bool = False

    def __post_init__(self) -> None:
        if self.workers < 1:
            raise ValueError("workers must be at least 1")
        if self.rate_limit_per_minute <= 0:
            raise ValueError("rate_limit_per_minute must be positive")


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    position: int
    total: int
    app_id: int
    name: str


@dataclass(slots=True)
class RunReport:
    status: RunStatus = RunStatus.COMPLETED
    total: int = 0
    attempted: int = 0
    succeeded: int = 0
    fallback_used: int = 0
    stubbed: int = 0
    persisted: int = 0
    persist_failed: int = 0
    skipped: int = 0

    @property
    def exit_code(self) -> int:
        return 1 if self.status is RunStatus.ABORTED else 0


def log_progress(event: ProgressEvent) -> None:
    LOGGER.info(
        "[%s/%s] Fetching details for %s (%s)",
        event.position,
        event.total,
        event.name,
        event.app_id,
    )


class EnrichmentCoordinator:
    """Runs one enrichment pass over the store's work list.

    Args:
        store: storage collaborator providing the work list and persistence.
        sources: detail providers in priority order; the first is the primary
            and is the only one gated by the rate limiter.
        config: worker count, requests-per-minute budget, refresh flag.
        limiter: shared limiter; built from ``config`` when omitted.
        cancel: run cancellation signal, shared with HTTP clients so their
            retry backoff observes it. A fresh event is used when omitted.
        on_progress: called once per item before its primary lookup.
    """

    def __init__(
        self,
        store: DetailStore,
        sources: Sequence[DetailSource],
        config: EnrichmentConfig | None = None,
        *,
        limiter: RateLimiter | None = None,
        cancel: threading.Event | None = None,
        on_progress: Callable[[ProgressEvent], None] | None = log_progress,
    ) -> None:
        if not sources:
            raise ValueError("at least one detail source is required")
        self.store = store
        self.sources = list(sources)
        self.config = config or EnrichmentConfig()
        self.limiter = limiter or RateLimiter.per_minute(self.config.rate_limit_per_minute)
        self.cancel = cancel or threading.Event()
        self.on_progress = on_progress
        self._report = RunReport()
        self._report_lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self.cancel.is_set()

    def run(self) -> RunReport:
        """Enrich every selected item and return the run summary.

        Store errors while selecting work propagate: nothing has been
        dispatched yet, so the caller treats them as fatal setup errors.
        """
        items = self._select_work()
        self._report = RunReport(total=len(items))
        if not items:
            LOGGER.info("No games to enrich.")
            return self._finish()

        LOGGER.info(
            "Found %s games to enrich (workers=%s rate_limit_per_minute=%s)",
            len(items),
            self.config.workers,
            self.config.rate_limit_per_minute,
        )

        slots = threading.BoundedSemaphore(self.config.workers)
        dispatched = 0
        with ThreadPoolExecutor(max_workers=self.config.workers, thread_name_prefix="enrich") as pool:
            futures = []
            for position, item in enumerate(items, start=1):
                if self.cancelled:
                    break
                slots.acquire()
                if self.cancelled:
                    slots.release()
                    break
                future = pool.submit(self._process_item, position, len(items), item)
                future.add_done_callback(lambda _future: slots.release())
                futures.append(future)
                dispatched += 1

            for future in futures:
                future.result()

        self._bump("skipped", len(items) - dispatched)
        return self._finish()

    def _select_work(self) -> list[WorkItem]:
        if self.config.refresh:
            LOGGER.info("Refresh enabled: fetching all owned games")
            return list(self.store.get_all_records())
        LOGGER.info("Fetching games missing details")
        return list(self.store.get_records_missing_details())

    def _finish(self) -> RunReport:
        report = self._report
        report.status = RunStatus.ABORTED if self.cancelled else RunStatus.COMPLETED
        if report.status is RunStatus.ABORTED:
            LOGGER.error(
                "Enrichment stopped due to rate limiting. attempted=%s succeeded=%s "
                "fallback_used=%s stubbed=%s skipped=%s",
                report.attempted,
                report.succeeded,
                report.fallback_used,
                report.stubbed,
                report.skipped,
            )
        else:
            LOGGER.info(
                "Enrichment complete. attempted=%s succeeded=%s fallback_used=%s stubbed=%s persist_failed=%s",
                report.attempted,
                report.succeeded,
                report.fallback_used,
                report.stubbed,
                report.persist_failed,
            )
        return report

    def _process_item(self, position: int, total: int, item: WorkItem) -> None:
        if self.cancelled or not self.limiter.acquire(self.cancel):
            self._bump("skipped")
            return

        self._emit_progress(ProgressEvent(position=position, total=total, app_id=item.app_id, name=item.name))

        primary, *fallbacks = self.sources
        self._bump("attempted")
        try:
            result: DetailResult | None = primary.fetch_details(item)
        except RateLimitExceeded:
            if not self.cancelled:
                LOGGER.error("Rate limit exceeded! Stopping enrichment.")
            self.cancel.set()
            self._bump("skipped")
            return
        except Exception as exc:  # any other primary failure falls through to the fallbacks
            LOGGER.warning("%s failed for %s (%s): %s", primary.name, item.name, item.app_id, exc)
            result = None

        if result is not None and result.success:
            self._bump("succeeded")
        else:
            result = self._fetch_from_fallbacks(item, fallbacks)
            if result is not None:
                self._bump("fallback_used")
            else:
                LOGGER.warning("No details found for %s (%s); saving stub", item.name, item.app_id)
                result = DetailResult.failed()
                self._bump("stubbed")

        try:
            self.store.upsert_details(item.app_id, result)
        except Exception as exc:  # persistence failure stays per-item
            self._bump("persist_failed")
            LOGGER.error("Failed to save details for %s (%s): %s", item.name, item.app_id, exc)
            return
        self._bump("persisted")

    def _fetch_from_fallbacks(self, item: WorkItem, fallbacks: Sequence[DetailSource]) -> DetailResult | None:
        for source in fallbacks:
            LOGGER.info("Trying %s for %s (%s)", source.name, item.name, item.app_id)
            try:
                result = source.fetch_details(item)
            except Exception as exc:  # includes 429 from a fallback: that source just failed
                if not self.cancelled:
                    LOGGER.warning("%s failed for %s (%s): %s", source.name, item.name, item.app_id, exc)
                continue
            if result.success:
                LOGGER.info("Found details for %s on %s", item.name, source.name)
                return result
        return None

    def _emit_progress(self, event: ProgressEvent) -> None:
        if self.on_progress is None:
            return
        try:
            self.on_progress(event)
        except Exception as exc:
            LOGGER.warning("Progress callback failed: %s", exc)

    def _bump(self, counter: str, amount: int = 1) -> None:
        with self._report_lock:
            setattr(self._report, counter, getattr(self._report, counter) + amount)
