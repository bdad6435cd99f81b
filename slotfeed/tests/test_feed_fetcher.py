from __future__ import annotations

import httpx
import pytest
from tenacity import wait_none

from slotfeed.feed import FeedFetcher, build_sheet_csv_url, build_sheet_json_url

URL = "https://sheets.example.test/export?tqx=out:csv"


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class _Upstream:
    """Scripted responses: each item is a (status, body) tuple or an exception."""

    def __init__(self, *responses: object) -> None:
        self._responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(item, Exception):
            raise item
        status, body = item
        return httpx.Response(status, text=body)


def _fetcher(upstream: _Upstream, clock: _Clock, **kwargs: object) -> FeedFetcher:
    client = httpx.Client(transport=httpx.MockTransport(upstream))
    kwargs.setdefault("retry_attempts", 1)
    return FeedFetcher(URL, ttl_seconds=300, client=client, clock=clock, retry_wait=wait_none(), **kwargs)


def test_fetch_serves_cache_within_ttl() -> None:
    upstream = _Upstream((200, "v1"), (200, "v2"))
    clock = _Clock()
    fetcher = _fetcher(upstream, clock)

    assert fetcher.fetch() == "v1"
    clock.now += 299
    assert fetcher.fetch() == "v1"
    assert len(upstream.requests) == 1


def test_fetch_refetches_after_ttl() -> None:
    upstream = _Upstream((200, "v1"), (200, "v2"))
    clock = _Clock()
    fetcher = _fetcher(upstream, clock)

    fetcher.fetch()
    clock.now += 300
    assert fetcher.fetch() == "v2"
    assert len(upstream.requests) == 2


def test_invalidate_forces_network_fetch() -> None:
    upstream = _Upstream((200, "v1"), (200, "v2"))
    clock = _Clock()
    fetcher = _fetcher(upstream, clock)

    fetcher.fetch()
    fetcher.invalidate()
    assert fetcher.fetch() == "v2"


def test_failure_falls_back_to_stale_payload() -> None:
    upstream = _Upstream((200, "v1"), (503, "down"))
    clock = _Clock()
    fetcher = _fetcher(upstream, clock)

    fetcher.fetch()
    clock.now += 10_000
    assert fetcher.fetch() == "v1"
    assert fetcher.cached_payload == "v1"
    # Stale payload does not count as fresh: the next call tries the network again.
    assert not fetcher.is_cache_valid()


def test_failure_without_cache_returns_empty_payload() -> None:
    upstream = _Upstream((404, "missing"))
    fetcher = _fetcher(upstream, _Clock())

    assert fetcher.fetch() == ""


def test_transport_error_returns_empty_payload() -> None:
    upstream = _Upstream(httpx.ConnectError("connection refused"))
    fetcher = _fetcher(upstream, _Clock())

    assert fetcher.fetch() == ""


def test_failed_attempts_are_retried() -> None:
    upstream = _Upstream((500, "err"), (500, "err"), (200, "ok"))
    fetcher = _fetcher(upstream, _Clock(), retry_attempts=3)

    assert fetcher.fetch() == "ok"
    assert len(upstream.requests) == 3


def test_retries_stop_after_configured_attempts() -> None:
    upstream = _Upstream((500, "err"))
    fetcher = _fetcher(upstream, _Clock(), retry_attempts=2)

    assert fetcher.fetch() == ""
    assert len(upstream.requests) == 2


def test_cache_bust_parameter_is_appended() -> None:
    upstream = _Upstream((200, "v1"))
    fetcher = _fetcher(upstream, _Clock())

    fetcher.fetch()
    url = upstream.requests[0].url
    assert url.params["tqx"] == "out:csv"
    assert url.params["t"].isdigit()


def test_cache_bust_keeps_sheet_export_query() -> None:
    upstream = _Upstream((200, "v1"))
    client = httpx.Client(transport=httpx.MockTransport(upstream))
    fetcher = FeedFetcher(build_sheet_csv_url("abc", "UnavailableDates"), retry_attempts=1, client=client)

    fetcher.fetch()
    params = upstream.requests[0].url.params
    assert params["tqx"] == "out:csv"
    assert params["sheet"] == "UnavailableDates"
    assert params["t"].isdigit()


def test_invalid_url_is_rejected_at_construction() -> None:
    with pytest.raises(ValueError, match=r"Invalid feed URL"):
        FeedFetcher("http://host:notaport/x", client=httpx.Client())


def test_cache_bust_can_be_disabled() -> None:
    upstream = _Upstream((200, "v1"))
    fetcher = _fetcher(upstream, _Clock(), cache_bust=False)

    fetcher.fetch()
    assert "t" not in upstream.requests[0].url.params


def test_retry_attempts_must_be_positive() -> None:
    with pytest.raises(ValueError):
        FeedFetcher(URL, retry_attempts=0, client=httpx.Client())


def test_sheet_urls() -> None:
    assert build_sheet_csv_url("abc", "Unavailable Dates") == (
        "https://docs.google.com/spreadsheets/d/abc/gviz/tq?tqx=out:csv&sheet=Unavailable%20Dates"
    )
    assert build_sheet_json_url("abc", "UnavailableDates").endswith("tqx=out:json&sheet=UnavailableDates")
