from __future__ import annotations

import csv
import datetime as dt
import json
import logging
import re
from typing import Any, Iterator

from dateutil import parser as date_parser

from slotfeed.domain import AllDay, FeedRow, SingleTime, TimeRange, TimeSpec

logger = logging.getLogger(__name__)

DEFAULT_REASON = "Unavailable"

FEED_FORMATS = ("auto", "csv", "json")

# (regex, order of the captured groups)
_DATE_FORMATS = (
    (re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$"), ("month", "day", "year")),  # M/D/YYYY
    (re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$"), ("year", "month", "day")),  # YYYY-M-D
    (re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$"), ("month", "day", "year")),  # M-D-YYYY
)

# Google Visualization JSON encodes dates as Date(year, zero_based_month, day).
_GVIZ_DATE_RE = re.compile(r"^Date\((\d{4}),\s*(\d{1,2}),\s*(\d{1,2})[^)]*\)$")
_YEAR_RE = re.compile(r"\d{4}")
_FALLBACK_DEFAULTS = (dt.datetime(2000, 1, 1), dt.datetime(2001, 2, 2))

_RANGE_RE = re.compile(r"^(\d{1,2}):(\d{2})\s*(AM|PM)\s*-\s*(\d{1,2}):(\d{2})\s*(AM|PM)$")
_SINGLE_RE = re.compile(r"^(\d{1,2}):(\d{2})\s*(AM|PM)$")

_GVIZ_PREFIX = "/*O_o*/"
_GVIZ_CALL = "google.visualization.Query.setResponse("


def _calendar_date(year: int, month: int, day: int) -> dt.date | None:
    try:
        return dt.date(year, month, day)
    except ValueError:
        return None


def parse_date(value: Any) -> dt.date | None:
    """Parse a feed date into a calendar date, or None.

    Strict shapes win: if one of them matches but names an impossible day
    (Feb 30, month 13) the date is rejected rather than handed to the
    permissive fallbacks, which could reinterpret it day-first.
    """
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    for pattern, order in _DATE_FORMATS:
        m = pattern.match(text)
        if m:
            parts = dict(zip(order, (int(g) for g in m.groups())))
            return _calendar_date(parts["year"], parts["month"], parts["day"])

    m = _GVIZ_DATE_RE.match(text)
    if m:
        return _calendar_date(int(m.group(1)), int(m.group(2)) + 1, int(m.group(3)))

    # Without a 4-digit year dateutil happily invents one from today.
    if not _YEAR_RE.search(text):
        return None
    # dateutil fills missing month/day from its default; two different
    # defaults disagree unless the text names a full date.
    try:
        first = date_parser.parse(text, default=_FALLBACK_DEFAULTS[0]).date()
        second = date_parser.parse(text, default=_FALLBACK_DEFAULTS[1]).date()
    except (ValueError, OverflowError):
        return None
    return first if first == second else None


def format_date(date: dt.date) -> str:
    return date.strftime("%Y-%m-%d")


def normalize_date(value: Any) -> str | None:
    date = parse_date(value)
    return format_date(date) if date is not None else None


def parse_time_spec(text: str | None) -> TimeSpec | None:
    spec = " ".join((text or "").split()).upper()

    if not spec or spec == "ALL DAY":
        return AllDay()

    m = _RANGE_RE.match(spec)
    if m:
        start = f"{int(m.group(1))}:{m.group(2)} {m.group(3)}"
        end = f"{int(m.group(4))}:{m.group(5)} {m.group(6)}"
        return TimeRange(start=start, end=end, original=spec)

    m = _SINGLE_RE.match(spec)
    if m:
        return SingleTime(time=f"{int(m.group(1))}:{m.group(2)} {m.group(3)}")

    return None


def parse_row(
    date_field: str | None,
    time_field: str | None,
    reason_field: str | None,
    *,
    default_reason: str = DEFAULT_REASON,
) -> FeedRow | None:
    date = normalize_date(date_field or "")
    if date is None:
        return None

    time_spec = parse_time_spec(time_field)
    if time_spec is None:
        return None

    reason = (reason_field or "").strip() or default_reason
    return FeedRow(date=date, time_spec=time_spec, reason=reason)


def split_line(line: str, *, quoted: bool = False) -> list[str]:
    # The naive split keeps parity with the sheet export as it has always been
    # read: a comma inside a reason shifts the columns. quoted=True switches to
    # a tokenizer that honours "a, b" fields.
    if quoted:
        raw = next(csv.reader([line]), [])
    else:
        raw = line.split(",")
    return [col.strip().strip('"').strip() for col in raw]


def _is_header(columns: list[str]) -> bool:
    return bool(columns) and "date" in columns[0].lower()


def iter_csv_rows(text: str, *, quoted: bool = False) -> Iterator[list[str]]:
    first = True
    for line in text.splitlines():
        if not line.strip():
            continue

        columns = split_line(line, quoted=quoted)
        if first:
            first = False
            if _is_header(columns):
                continue
        yield columns


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, dict):
        # gviz cell: prefer the formatted value.
        formatted = value.get("f")
        return _cell_text(formatted if formatted is not None else value.get("v"))
    if isinstance(value, bool):
        return str(value).upper()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _unwrap_gviz(text: str) -> str:
    body = text.strip()
    if body.startswith(_GVIZ_PREFIX):
        body = body[len(_GVIZ_PREFIX):].strip()
    if body.startswith(_GVIZ_CALL):
        body = body[len(_GVIZ_CALL):]
        end = body.rfind(")")
        if end != -1:
            body = body[:end]
    return body


def iter_json_rows(text: str) -> Iterator[list[str]]:
    try:
        payload = json.loads(_unwrap_gviz(text))
    except ValueError as e:
        logger.warning("Feed payload is not valid JSON (%s)", e)
        return

    if isinstance(payload, dict) and "table" in payload:
        if payload.get("status") == "error":
            logger.warning("Feed returned a visualization error: %s", payload.get("errors"))
            return
        table = payload["table"]
        if not isinstance(table, dict):
            logger.warning("Unsupported visualization table: %s", type(table).__name__)
            return
        rows = table.get("rows") or []
        if not isinstance(rows, list):
            logger.warning("Unsupported visualization rows: %s", type(rows).__name__)
            return
        for row in rows:
            if not isinstance(row, dict):
                logger.warning("Skipping visualization row of type %s", type(row).__name__)
                continue
            cells = row.get("c") or []
            if not isinstance(cells, list):
                logger.warning("Skipping visualization row with cells of type %s", type(cells).__name__)
                continue
            yield [_cell_text(c) for c in cells]
        return

    if isinstance(payload, dict):
        payload = payload.get("values", [])

    if not isinstance(payload, list):
        logger.warning("Unsupported JSON feed shape: %s", type(payload).__name__)
        return

    # First row is the header.
    for row in payload[1:]:
        if not isinstance(row, list):
            continue
        columns = [_cell_text(c) for c in row]
        if any(columns):
            yield columns


def detect_format(text: str) -> str:
    head = text.lstrip()
    if head.startswith(("[", "{", "/*", "google.visualization")):
        return "json"
    return "csv"


def iter_rows(text: str, *, feed_format: str = "auto", quoted: bool = False) -> Iterator[list[str]]:
    if feed_format not in FEED_FORMATS:
        raise ValueError(f"Unknown feed format: {feed_format!r}")

    if feed_format == "auto":
        feed_format = detect_format(text)

    if feed_format == "json":
        return iter_json_rows(text)
    return iter_csv_rows(text, quoted=quoted)
