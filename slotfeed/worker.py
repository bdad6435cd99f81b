from __future__ import annotations

import logging
import time
from typing import Iterable

from slotfeed.availability import AvailabilityIndex
from slotfeed.config import Settings
from slotfeed.feed import FeedFetcher

logger = logging.getLogger(__name__)


def build_fetcher(settings: Settings) -> FeedFetcher:
    return FeedFetcher(
        settings.feed_url,
        ttl_seconds=settings.cache_ttl_seconds,
        timeout_seconds=settings.fetch_timeout_seconds,
        retry_attempts=settings.fetch_retry_attempts,
        cache_bust=settings.cache_bust,
    )


def build_index(settings: Settings, fetcher: FeedFetcher) -> AvailabilityIndex:
    return AvailabilityIndex(
        fetcher,
        slots=settings.slots,
        default_reason=settings.default_reason,
        feed_format=settings.feed_format,
        quoted_fields=settings.csv_quoted_fields,
    )


def format_day(index: AvailabilityIndex, date: str) -> str:
    if index.is_date_unavailable(date):
        reason = index.reason_for(date) or "-"
        return f"{date}: unavailable all day ({reason})"

    lines = [f"{date}: available {', '.join(index.available_slots(date)) or 'none'}"]
    for slot in index.blocked_slots(date):
        lines.append(f"  • {slot} blocked ({index.reason_for(date, slot) or '-'})")
    return "\n".join(lines)


def format_report(index: AvailabilityIndex, dates: Iterable[str]) -> str:
    dates = list(dates)
    if not dates:
        dates = index.unavailable_dates()
        if not dates:
            return "No unavailable dates."
    return "\n".join(format_day(index, d) for d in dates)


def run_once(index: AvailabilityIndex, dates: Iterable[str]) -> str:
    index.load()
    return format_report(index, dates)


def run_forever(index: AvailabilityIndex, settings: Settings) -> None:
    logger.info("Watcher started. Interval=%ss", settings.refresh_interval_seconds)
    while True:
        try:
            index.refresh()
        except Exception as e:
            logger.error("Refresh failed in run_forever (%s: %s)", type(e).__name__, e)
        time.sleep(settings.refresh_interval_seconds)
