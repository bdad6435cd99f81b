from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class AllDay:
    """The whole date is blocked."""


@dataclass(frozen=True)
class TimeRange:
    start: str  # e.g. "9:00 AM"
    end: str
    original: str  # normalized text as written in the feed


@dataclass(frozen=True)
class SingleTime:
    time: str


TimeSpec = Union[AllDay, TimeRange, SingleTime]


@dataclass(frozen=True)
class FeedRow:
    """One accepted row of the schedule feed.

    The date is always canonical (YYYY-MM-DD); rows that cannot be parsed
    never become a FeedRow.
    """

    date: str
    time_spec: TimeSpec
    reason: str


@dataclass(frozen=True)
class LoadSummary:
    blocked_days: int
    dates_with_slot_blocks: int
    rows_skipped: int


class FeedFetchError(RuntimeError):
    """The feed could not be retrieved (transport error or non-2xx status).

    Raised only inside the fetcher; callers of fetch() get the stale or empty
    payload instead.
    """
