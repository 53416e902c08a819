"""Shared typed models for the enrichment pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class WorkItem:
    """One catalog entry pending enrichment."""

    app_id: int
    name: str


@dataclass(frozen=True, slots=True)
class OwnedGame:
    """Owned-library row as returned by the Steam Web API."""

    app_id: int
    name: str
    playtime_forever: int = 0
    rtime_last_played: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "appid": self.app_id,
            "name": self.name,
            "playtime_forever": self.playtime_forever,
            "rtime_last_played": self.rtime_last_played,
        }


@dataclass(frozen=True, slots=True)
class Category:
    id: int
    description: str


@dataclass(frozen=True, slots=True)
class Genre:
    id: str
    description: str


@dataclass(frozen=True, slots=True)
class AppDetails:
    """Normalized store details used across sources and storage."""

    name: str
    short_description: str = ""
    detailed_description: str = ""
    about_the_game: str = ""
    header_image: str = ""
    website: str = ""
    categories: tuple[Category, ...] = field(default_factory=tuple)
    genres: tuple[Genre, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "short_description": self.short_description,
            "detailed_description": self.detailed_description,
            "about_the_game": self.about_the_game,
            "header_image": self.header_image,
            "website": self.website,
            "categories": [{"id": c.id, "description": c.description} for c in self.categories],
            "genres": [{"id": g.id, "description": g.description} for g in self.genres],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppDetails:
        """Build from a Store API ``data`` block (or our own ``to_dict`` output).

        Unknown keys are ignored; malformed category/genre entries are skipped.
        """
        categories = tuple(
            Category(id=_as_int(item.get("id")), description=_as_str(item.get("description")))
            for item in data.get("categories") or []
            if isinstance(item, dict)
        )
        genres = tuple(
            Genre(id=str(item.get("id") or ""), description=_as_str(item.get("description")))
            for item in data.get("genres") or []
            if isinstance(item, dict)
        )
        return cls(
            name=_as_str(data.get("name")),
            short_description=_as_str(data.get("short_description")),
            detailed_description=_as_str(data.get("detailed_description")),
            about_the_game=_as_str(data.get("about_the_game")),
            header_image=_as_str(data.get("header_image")),
            website=_as_str(data.get("website")),
            categories=categories,
            genres=genres,
        )


@dataclass(frozen=True, slots=True)
class DetailResult:
    """Tagged outcome of one detail lookup: ``success`` with details, or failed."""

    success: bool
    details: AppDetails | None = None
    source: str = ""

    @classmethod
    def failed(cls, source: str = "") -> DetailResult:
        return cls(success=False, details=None, source=source)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "source": self.source,
            "details": self.details.to_dict() if self.details is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DetailResult:
        details = data.get("details")
        return cls(
            success=bool(data.get("success")),
            details=AppDetails.from_dict(details) if isinstance(details, dict) else None,
            source=_as_str(data.get("source")),
        )


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0
