"""Common contract for game detail providers."""

from __future__ import annotations

from typing import Protocol

from models import DetailResult, WorkItem


class DetailSourceError(RuntimeError):
    """The provider could not produce a usable answer for an item."""


class DetailSource(Protocol):
    """A provider that looks up store details for one work item.

    Returns a failed ``DetailResult`` when the provider answered but has no
    details for the item; raises ``DetailSourceError`` / ``HTTPRequestError``
    when the lookup itself could not be made.
    """

    name: str

    def fetch_details(self, item: WorkItem) -> DetailResult: ...
