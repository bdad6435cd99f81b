from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from slotfeed.feed import build_sheet_csv_url, build_sheet_json_url
from slotfeed.parser import DEFAULT_REASON, FEED_FORMATS
from slotfeed.slots import DEFAULT_SLOTS, parse_slot_catalog

DEFAULT_SHEET_NAME = "UnavailableDates"


@dataclass(frozen=True)
class Settings:
    feed_url: str
    feed_format: str = "auto"

    # Cache / transport tuning
    cache_ttl_seconds: int = 300
    fetch_timeout_seconds: float = 20.0
    # How many times a single fetch is attempted before falling back to cached data.
    fetch_retry_attempts: int = 2
    cache_bust: bool = True

    slots: tuple[str, ...] = DEFAULT_SLOTS
    default_reason: str = DEFAULT_REASON

    # Quote-aware CSV splitting. Off by default: columns are split on every comma.
    csv_quoted_fields: bool = False

    # Watch mode
    refresh_interval_seconds: int = 300


def _require(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def _flag(name: str, default: str) -> bool:
    raw = os.getenv(name, default).strip().lower()
    return raw not in {"0", "false", "no"}


def _int(name: str, default: str, *, minimum: int) -> int:
    raw = os.getenv(name, default)
    try:
        value = int(raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid {name} value: {raw!r}. Expected integer.") from e
    if value < minimum:
        raise RuntimeError(f"{name} must be >= {minimum}")
    return value


def _feed_url(feed_format: str) -> str:
    url = os.getenv("FEED_URL", "").strip()
    if url:
        return url

    # No explicit URL: build the Google Sheets export link.
    sheet_id = _require("SHEET_ID").strip()
    sheet_name = os.getenv("SHEET_NAME", DEFAULT_SHEET_NAME).strip() or DEFAULT_SHEET_NAME
    if feed_format == "json":
        return build_sheet_json_url(sheet_id, sheet_name)
    return build_sheet_csv_url(sheet_id, sheet_name)


def load_settings(dotenv_path: str | None = None) -> Settings:
    # Prefer .env in repo root; dotenv_path allows overriding in tests.
    load_dotenv(dotenv_path=dotenv_path, override=False)

    feed_format = os.getenv("FEED_FORMAT", "auto").strip().lower()
    if feed_format not in FEED_FORMATS:
        raise RuntimeError(f"Invalid FEED_FORMAT value: {feed_format!r}. Expected one of: {', '.join(FEED_FORMATS)}")

    timeout_raw = os.getenv("FETCH_TIMEOUT_SECONDS", "20")
    try:
        fetch_timeout_seconds = float(timeout_raw)
    except ValueError as e:
        raise RuntimeError(f"Invalid FETCH_TIMEOUT_SECONDS value: {timeout_raw!r}") from e
    if fetch_timeout_seconds <= 0:
        raise RuntimeError("FETCH_TIMEOUT_SECONDS must be > 0")

    catalog_raw = os.getenv("SLOT_CATALOG", "").strip()
    slots = parse_slot_catalog(catalog_raw) if catalog_raw else DEFAULT_SLOTS

    default_reason = os.getenv("DEFAULT_REASON", DEFAULT_REASON).strip() or DEFAULT_REASON

    return Settings(
        feed_url=_feed_url(feed_format),
        feed_format=feed_format,
        cache_ttl_seconds=_int("CACHE_TTL_SECONDS", "300", minimum=0),
        fetch_timeout_seconds=fetch_timeout_seconds,
        fetch_retry_attempts=_int("FETCH_RETRY_ATTEMPTS", "2", minimum=1),
        cache_bust=_flag("CACHE_BUST", "1"),
        slots=slots,
        default_reason=default_reason,
        csv_quoted_fields=_flag("CSV_QUOTED_FIELDS", "0"),
        refresh_interval_seconds=_int("REFRESH_INTERVAL_SECONDS", "300", minimum=1),
    )
