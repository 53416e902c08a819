"""SQLite persistence for the owned library and enriched details."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from models import DetailResult, OwnedGame, WorkItem

STUB_NAME = "Unavailable"

LOGGER = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS owned_games (
    appid INTEGER PRIMARY KEY,
    name TEXT,
    playtime_forever INTEGER,
    rtime_last_played INTEGER,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);
CREATE TABLE IF NOT EXISTS app_details (
    appid INTEGER PRIMARY KEY,
    success BOOLEAN NOT NULL,
    source TEXT,
    name TEXT,
    short_description TEXT,
    detailed_description TEXT,
    about_the_game TEXT,
    header_image TEXT,
    website TEXT,
    categories TEXT,
    genres TEXT,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);
"""


class StoreError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class StoredDetails:
    """One ``app_details`` row; stubs have ``success`` False."""

    app_id: int
    success: bool
    source: str
    name: str
    short_description: str
    detailed_description: str
    categories: list[dict]
    genres: list[dict]


class GameStore:
    """Thread-safe wrapper over a single SQLite connection."""

    def __init__(self, path: Path | str) -> None:
        self.path = str(path)
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(self.path, check_same_thread=False)
            self._conn.executescript(_SCHEMA)
            self._conn.commit()
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to open game store at {self.path}: {exc}") from exc

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> GameStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def upsert_games(self, games: Iterable[OwnedGame]) -> int:
        rows = [(g.app_id, g.name, g.playtime_forever, g.rtime_last_played) for g in games]
        with self._lock, self._conn:
            self._conn.executemany(
                """
                INSERT INTO owned_games (appid, name, playtime_forever, rtime_last_played, updated_at)
                VALUES (?, ?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(appid) DO UPDATE SET
                    name=excluded.name,
                    playtime_forever=excluded.playtime_forever,
                    rtime_last_played=excluded.rtime_last_played,
                    updated_at=CURRENT_TIMESTAMP
                """,
                rows,
            )
        return len(rows)

    def get_owned_games(self) -> list[OwnedGame]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT appid, name, playtime_forever, rtime_last_played FROM owned_games ORDER BY appid"
            ).fetchall()
        return [OwnedGame(app_id=r[0], name=r[1] or "", playtime_forever=r[2] or 0, rtime_last_played=r[3] or 0) for r in rows]

    def get_all_records(self) -> list[WorkItem]:
        with self._lock:
            rows = self._conn.execute("SELECT appid, name FROM owned_games ORDER BY appid").fetchall()
        return [WorkItem(app_id=r[0], name=r[1] or "") for r in rows]

    def get_records_missing_details(self) -> list[WorkItem]:
        """Owned games with no ``app_details`` row at all (stubs count as present)."""
        with self._lock:
            rows = self._conn.execute(
                """
                SELECT g.appid, g.name
                FROM owned_games g
                LEFT JOIN app_details ad ON g.appid = ad.appid
                WHERE ad.appid IS NULL
                ORDER BY g.appid
                """
            ).fetchall()
        return [WorkItem(app_id=r[0], name=r[1] or "") for r in rows]

    def upsert_details(self, app_id: int, result: DetailResult) -> None:
        """Persist a lookup outcome; a failed result writes a stub row."""
        details = result.details if result.success else None
        if details is not None:
            values = (
                app_id,
                True,
                result.source,
                details.name,
                details.short_description,
                details.detailed_description,
                details.about_the_game,
                details.header_image,
                details.website,
                json.dumps(details.to_dict()["categories"]),
                json.dumps(details.to_dict()["genres"]),
            )
        else:
            values = (app_id, False, result.source, STUB_NAME, "", "", "", "", "", "[]", "[]")

        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO app_details (
                    appid, success, source, name, short_description, detailed_description,
                    about_the_game, header_image, website, categories, genres, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(appid) DO UPDATE SET
                    success=excluded.success,
                    source=excluded.source,
                    name=excluded.name,
                    short_description=excluded.short_description,
                    detailed_description=excluded.detailed_description,
                    about_the_game=excluded.about_the_game,
                    header_image=excluded.header_image,
                    website=excluded.website,
                    categories=excluded.categories,
                    genres=excluded.genres,
                    updated_at=CURRENT_TIMESTAMP
                """,
                values,
            )
        LOGGER.debug("Saved details for appid=%s success=%s", app_id, bool(details))

    def get_details(self, app_id: int) -> StoredDetails | None:
        with self._lock:
            row = self._conn.execute(
                """
                SELECT appid, success, source, name, short_description, detailed_description, categories, genres
                FROM app_details WHERE appid = ?
                """,
                (app_id,),
            ).fetchone()
        if row is None:
            return None
        return StoredDetails(
            app_id=row[0],
            success=bool(row[1]),
            source=row[2] or "",
            name=row[3] or "",
            short_description=row[4] or "",
            detailed_description=row[5] or "",
            categories=json.loads(row[6] or "[]"),
            genres=json.loads(row[7] or "[]"),
        )
