from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from slotfeed.availability import AvailabilityIndex
from slotfeed.config import Settings
from slotfeed.feed import FeedFetcher
from slotfeed.slots import SHORT_SLOTS
from slotfeed.worker import build_fetcher, build_index, format_report, run_forever, run_once

SHEET = "Date,Time,Reason\n03/10/2025,ALL DAY,Vacation\n2025-03-11,9:00 AM - 10:00 AM,Meeting\n"


def _settings() -> Settings:
    return Settings(
        feed_url="https://feed.example.test/csv",
        feed_format="csv",
        cache_ttl_seconds=60,
        fetch_retry_attempts=1,
        slots=SHORT_SLOTS,
        default_reason="Closed",
        refresh_interval_seconds=1,
    )


def _index(payload: str = SHEET) -> AvailabilityIndex:
    fetcher = MagicMock()
    fetcher.fetch.return_value = payload
    return AvailabilityIndex(fetcher, slots=SHORT_SLOTS)


class _StopLoop(Exception):
    pass


def test_build_fetcher_and_index_use_settings() -> None:
    settings = _settings()
    with build_fetcher(settings) as fetcher:
        assert isinstance(fetcher, FeedFetcher)
        assert fetcher.url == settings.feed_url
        assert fetcher.ttl_seconds == 60

        index = build_index(settings, fetcher)
        assert index.slots == SHORT_SLOTS


def test_run_once_reports_requested_dates() -> None:
    report = run_once(_index(), ["3/10/2025", "2025-03-11"])

    assert "3/10/2025: unavailable all day (Vacation)" in report
    assert "2025-03-11: available 11:00 AM, 1:00 PM, 2:00 PM" in report
    assert "9:00 AM blocked (Meeting (9:00 AM - 10:00 AM))" in report


def test_report_defaults_to_unavailable_dates() -> None:
    index = _index()
    index.load()
    assert format_report(index, []) == "2025-03-10: unavailable all day (Vacation)"


def test_report_with_nothing_blocked() -> None:
    index = _index("")
    index.load()
    assert format_report(index, []) == "No unavailable dates."


def test_run_forever_survives_refresh_errors() -> None:
    index = MagicMock()
    index.refresh.side_effect = RuntimeError("boom")

    with patch("slotfeed.worker.time.sleep", side_effect=[None, _StopLoop()]) as sleep:
        with pytest.raises(_StopLoop):
            run_forever(index, _settings())

    assert index.refresh.call_count == 2
    sleep.assert_called_with(1)
