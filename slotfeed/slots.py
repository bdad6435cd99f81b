from __future__ import annotations

import re
from typing import Iterable, Sequence

DEFAULT_SLOTS: tuple[str, ...] = (
    "8:00 AM",
    "9:00 AM",
    "10:00 AM",
    "11:00 AM",
    "12:00 PM",
    "1:00 PM",
    "2:00 PM",
    "3:00 PM",
    "4:00 PM",
)

SHORT_SLOTS: tuple[str, ...] = (
    "9:00 AM",
    "10:00 AM",
    "11:00 AM",
    "1:00 PM",
    "2:00 PM",
)

_NAMED_CATALOGS = {
    "default": DEFAULT_SLOTS,
    "short": SHORT_SLOTS,
}

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})\s*(AM|PM)$", re.IGNORECASE)


def time_to_minutes(label: str) -> int | None:
    """Minutes since midnight for a 12-hour label like "1:30 PM"."""
    m = _TIME_RE.match(label.strip())
    if not m:
        return None

    hours = int(m.group(1))
    minutes = int(m.group(2))
    period = m.group(3).upper()
    if not 1 <= hours <= 12 or minutes > 59:
        return None

    hours %= 12
    if period == "PM":
        hours += 12
    return hours * 60 + minutes


def expand_range(start: str, end: str, catalog: Sequence[str]) -> list[str]:
    start_minutes = time_to_minutes(start)
    end_minutes = time_to_minutes(end)
    if start_minutes is None or end_minutes is None:
        return []

    result: list[str] = []
    for slot in catalog:
        slot_minutes = time_to_minutes(slot)
        if slot_minutes is not None and start_minutes <= slot_minutes <= end_minutes:
            result.append(slot)
    return result


def match_slot(label: str, catalog: Iterable[str]) -> str | None:
    # "2:00PM", "02:00 pm" and "2:00 PM" all name the same catalog slot.
    minutes = time_to_minutes(label)
    if minutes is None:
        return None
    for slot in catalog:
        if time_to_minutes(slot) == minutes:
            return slot
    return None


def parse_slot_catalog(raw: str) -> tuple[str, ...]:
    # SLOT_CATALOG accepts a named catalog or a comma-separated list of labels.
    # Examples:
    #   SLOT_CATALOG=short
    #   SLOT_CATALOG=9:00 AM,10:00 AM,11:00 AM
    named = _NAMED_CATALOGS.get(raw.strip().lower())
    if named is not None:
        return named

    parts = [p.strip() for p in raw.split(",")]
    parts = [p for p in parts if p]

    seen: set[int] = set()
    result: list[str] = []
    for p in parts:
        minutes = time_to_minutes(p)
        if minutes is None:
            raise RuntimeError(f"Invalid SLOT_CATALOG label: {p!r}. Expected 'H:MM AM/PM'.")
        if minutes in seen:
            continue
        seen.add(minutes)
        result.append(p.upper())

    if not result:
        raise RuntimeError("SLOT_CATALOG is empty. Provide at least one slot label.")

    return tuple(result)
