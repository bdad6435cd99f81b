from __future__ import annotations

import logging
import time
from typing import Callable
from urllib.parse import quote

import httpx
from tenacity import RetryCallState, retry, retry_if_exception_type, stop_after_attempt, wait_exponential
from tenacity.wait import wait_base

from slotfeed.domain import FeedFetchError

logger = logging.getLogger(__name__)

SHEETS_BASE_URL = "https://docs.google.com/spreadsheets/d"


def build_sheet_csv_url(sheet_id: str, sheet_name: str) -> str:
    return f"{SHEETS_BASE_URL}/{sheet_id}/gviz/tq?tqx=out:csv&sheet={quote(sheet_name)}"


def build_sheet_json_url(sheet_id: str, sheet_name: str) -> str:
    return f"{SHEETS_BASE_URL}/{sheet_id}/gviz/tq?tqx=out:json&sheet={quote(sheet_name)}"


def _short_exc(retry_state: RetryCallState) -> str | None:
    if retry_state.outcome is None or not retry_state.outcome.failed:
        return None
    exc = retry_state.outcome.exception()
    if exc is None:
        return None
    msg = str(exc).strip()
    return f"{type(exc).__name__}: {msg}" if msg else type(exc).__name__


def _log_before_sleep(retry_state: RetryCallState) -> None:
    sleep_seconds = getattr(retry_state.next_action, "sleep", None)
    next_attempt = retry_state.attempt_number + 1
    reason = _short_exc(retry_state) or "unknown error"

    if sleep_seconds is None:
        logger.info("Feed fetch attempt %s failed (%s), retrying", retry_state.attempt_number, reason)
        return

    logger.info("Feed fetch attempt %s in %.1f sec. (previous failed: %s)", next_attempt, sleep_seconds, reason)


class FeedFetcher:
    """Retrieves the raw feed text with a time-based cache.

    fetch() never raises: when the network fails it degrades to the last
    payload it saw (even if expired) or to an empty string.
    """

    def __init__(
        self,
        url: str,
        *,
        ttl_seconds: float = 300,
        timeout_seconds: float = 20.0,
        retry_attempts: int = 2,
        retry_wait: wait_base | None = None,
        cache_bust: bool = True,
        client: httpx.Client | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if retry_attempts < 1:
            raise ValueError("retry_attempts must be >= 1")
        try:
            self._url = httpx.URL(url)
        except httpx.InvalidURL as e:
            raise ValueError(f"Invalid feed URL: {url!r} ({e})") from e

        self.url = url
        self.ttl_seconds = ttl_seconds
        self.cache_bust = cache_bust
        self._retry_attempts = retry_attempts
        self._retry_wait = retry_wait if retry_wait is not None else wait_exponential(multiplier=1, min=1, max=4)
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client(timeout=timeout_seconds, follow_redirects=True)
        self._clock = clock

        self._cache_data: str | None = None
        self._cache_timestamp: float | None = None

    def __enter__(self) -> FeedFetcher:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    @property
    def cached_payload(self) -> str | None:
        return self._cache_data

    def is_cache_valid(self) -> bool:
        if self._cache_data is None or self._cache_timestamp is None:
            return False
        return (self._clock() - self._cache_timestamp) < self.ttl_seconds

    def invalidate(self) -> None:
        # Keep the payload itself: it is still the stale fallback.
        self._cache_timestamp = None

    def fetch(self) -> str:
        if self._cache_data is not None and self.is_cache_valid():
            return self._cache_data

        logger.info("Fetching schedule feed: %s", self.url)
        try:
            text = self._fetch_with_retry()
        except FeedFetchError as e:
            if self._cache_data is not None:
                logger.warning("Feed fetch failed, using cached data (%s)", e)
                return self._cache_data
            logger.error("Feed fetch failed and nothing is cached, no blocks known (%s)", e)
            return ""

        self._cache_data = text
        self._cache_timestamp = self._clock()
        return text

    def _fetch_remote(self) -> str:
        # Add to the export URL's own query (tqx, sheet) rather than replacing it.
        url = self._url.copy_add_param("t", str(int(time.time() * 1000))) if self.cache_bust else self._url
        try:
            r = self._client.get(url)
        except httpx.HTTPError as e:
            raise FeedFetchError(f"{type(e).__name__}: {e}") from e

        if not r.is_success:
            raise FeedFetchError(f"HTTP error! status: {r.status_code}")
        return r.text

    def _fetch_with_retry(self) -> str:
        decorated = retry(
            stop=stop_after_attempt(self._retry_attempts),
            wait=self._retry_wait,
            retry=retry_if_exception_type(FeedFetchError),
            before_sleep=_log_before_sleep,
            reraise=True,
        )(self._fetch_remote)

        return decorated()
