from __future__ import annotations

import logging
from typing import Any, Sequence

from slotfeed.domain import AllDay, FeedRow, LoadSummary, SingleTime, TimeRange
from slotfeed.feed import FeedFetcher
from slotfeed.parser import DEFAULT_REASON, FEED_FORMATS, iter_rows, normalize_date, parse_row
from slotfeed.slots import DEFAULT_SLOTS, expand_range, match_slot

logger = logging.getLogger(__name__)


class AvailabilityIndex:
    """Blocked days and blocked (day, slot) pairs built from the schedule feed.

    Lifecycle: construct (empty) -> load() -> queries -> refresh() as needed.
    Queries never touch the network; only load()/refresh() do, and callers
    must not run two of those at once on the same instance.
    """

    def __init__(
        self,
        fetcher: FeedFetcher,
        *,
        slots: Sequence[str] = DEFAULT_SLOTS,
        default_reason: str = DEFAULT_REASON,
        feed_format: str = "auto",
        quoted_fields: bool = False,
    ) -> None:
        if not slots:
            raise ValueError("slot catalog must not be empty")
        if feed_format not in FEED_FORMATS:
            raise ValueError(f"Unknown feed format: {feed_format!r}")

        self._fetcher = fetcher
        self._slots: tuple[str, ...] = tuple(slots)
        self._default_reason = default_reason
        self._feed_format = feed_format
        self._quoted_fields = quoted_fields

        self._blocked_days: set[str] = set()
        self._blocked_slots: dict[str, set[str]] = {}
        self._reasons: dict[str, str] = {}

    @property
    def slots(self) -> tuple[str, ...]:
        return self._slots

    # --- mutation -----------------------------------------------------------

    def load(self) -> LoadSummary:
        raw = self._fetcher.fetch()

        self._blocked_days.clear()
        self._blocked_slots.clear()
        self._reasons.clear()

        skipped = 0
        for columns in iter_rows(raw, feed_format=self._feed_format, quoted=self._quoted_fields):
            row = parse_row(
                columns[0] if columns else "",
                columns[1] if len(columns) > 1 else "",
                columns[2] if len(columns) > 2 else "",
                default_reason=self._default_reason,
            )
            if row is None:
                skipped += 1
                logger.debug("Skipping unparseable feed row: %r", columns)
                continue
            self._apply(row)

        summary = LoadSummary(
            blocked_days=len(self._blocked_days),
            dates_with_slot_blocks=len(self._blocked_slots),
            rows_skipped=skipped,
        )
        logger.info(
            "Loaded %d unavailable dates and %d dates with specific time blocks (%d rows skipped)",
            summary.blocked_days,
            summary.dates_with_slot_blocks,
            summary.rows_skipped,
        )
        return summary

    def init(self) -> LoadSummary:
        return self.load()

    def refresh(self) -> LoadSummary:
        self._fetcher.invalidate()
        return self.load()

    def _apply(self, row: FeedRow) -> None:
        spec = row.time_spec

        if isinstance(spec, AllDay):
            self._blocked_days.add(row.date)
            self._reasons[row.date] = row.reason
            return

        if isinstance(spec, TimeRange):
            times = expand_range(spec.start, spec.end, self._slots)
            reason = f"{row.reason} ({spec.original})"
        elif isinstance(spec, SingleTime):
            slot = match_slot(spec.time, self._slots)
            times = [slot] if slot is not None else []
            reason = row.reason
        else:
            return

        if not times:
            logger.debug("Time %r on %s covers no bookable slot", spec, row.date)
            return

        self._blocked_slots.setdefault(row.date, set()).update(times)
        for time in times:
            self._reasons[_slot_key(row.date, time)] = reason

    # --- queries ------------------------------------------------------------

    def is_date_unavailable(self, date: Any) -> bool:
        key = normalize_date(date)
        return key is not None and key in self._blocked_days

    def is_slot_unavailable(self, date: Any, slot: str) -> bool:
        key = normalize_date(date)
        if key is None or not slot:
            return False
        if key in self._blocked_days:
            return True
        label = match_slot(slot, self._slots)
        return label is not None and label in self._blocked_slots.get(key, ())

    def available_slots(self, date: Any) -> list[str]:
        key = normalize_date(date)
        if key is None:
            return list(self._slots)
        if key in self._blocked_days:
            return []
        blocked = self._blocked_slots.get(key, ())
        return [s for s in self._slots if s not in blocked]

    def blocked_slots(self, date: Any) -> list[str]:
        key = normalize_date(date)
        if key is None:
            return []
        if key in self._blocked_days:
            return list(self._slots)
        blocked = self._blocked_slots.get(key, ())
        return [s for s in self._slots if s in blocked]

    def reason_for(self, date: Any, slot: str | None = None) -> str | None:
        key = normalize_date(date)
        if key is None:
            return None

        if slot:
            label = match_slot(slot, self._slots)
            if label is not None:
                slot_reason = self._reasons.get(_slot_key(key, label))
                if slot_reason:
                    return slot_reason

        return self._reasons.get(key)

    def unavailable_dates(self) -> list[str]:
        return sorted(self._blocked_days)


def _slot_key(date: str, slot: str) -> str:
    return f"{date}_{slot}"
