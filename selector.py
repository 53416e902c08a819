"""Selection helpers over the owned library: unplayed filter and random pick."""

from __future__ import annotations

import random
from collections.abc import Iterable, Sequence

from models import OwnedGame

STORE_APP_URL = "https://store.steampowered.com/app/{app_id}"


def filter_unplayed(games: Iterable[OwnedGame]) -> list[OwnedGame]:
    """Keep games with zero recorded playtime, preserving order."""
    return [game for game in games if game.playtime_forever == 0]


def pick_game(games: Sequence[OwnedGame], seed: int | None = None) -> OwnedGame | None:
    """Pick one game at random, or None from an empty list.

    The same ``seed`` over the same list always yields the same game. Without a
    seed the pick is seeded from system entropy.
    """
    if not games:
        return None
    rng = random.Random(seed)
    return games[rng.randrange(len(games))]


def store_url(app_id: int) -> str:
    return STORE_APP_URL.format(app_id=app_id)
