"""In-memory cache for the normalized booth payload.

Each cached source keeps a single JSON body, the time it was produced
and at most one in-flight upstream load.  Requests that miss the cache
while a load is running wait on that load instead of starting their
own, so concurrent traffic never puts more than one fetch sequence per
source in front of Google.  When a load fails, the last good body (even
an expired one) is served instead of an error.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections import OrderedDict
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Hashable, Optional

import pytz

from ..integrations.booths import normalize_csv
from ..integrations.google_sheets_source import (
    UpstreamUnavailable,
    fetch_first_valid,
)

log = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 15.0
REGISTRY_KEY = "boothmap.cache"


def _get_timezone(tz_name: str):
    try:
        return pytz.timezone(tz_name)
    except Exception:
        log.warning("Invalid timezone '%s'; defaulting to UTC", tz_name)
        return pytz.UTC


@dataclass(frozen=True)
class CacheResult:
    body: str
    source: str  # "cache", "fetch" or "stale"
    generated_at: Optional[datetime]


class ResponseCache:
    def __init__(
        self,
        loader: Callable[[], str],
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        tz_name: str = "UTC",
    ):
        self._loader = loader
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._tz = _get_timezone(tz_name)
        self._lock = threading.Lock()
        self._body: Optional[str] = None
        self._stored_at = 0.0
        self._generated_at: Optional[datetime] = None
        self._inflight: Optional[Future] = None
        self._waiting = 0

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._inflight is not None

    @property
    def waiting(self) -> int:
        """Callers currently blocked on another request's in-flight load."""
        with self._lock:
            return self._waiting

    def _is_fresh(self) -> bool:
        return self._body is not None and (self._clock() - self._stored_at) < self.ttl_seconds

    def _run_loader(self, future: Future) -> None:
        try:
            body = self._loader()
        except Exception as exc:
            with self._lock:
                self._inflight = None
            future.set_exception(exc)
        else:
            with self._lock:
                self._body = body
                self._stored_at = self._clock()
                self._generated_at = datetime.now(self._tz)
                self._inflight = None
            future.set_result(body)
        finally:
            # Reached with a pending future only when the loader was interrupted
            # (KeyboardInterrupt, gevent Timeout, ...); release the joiners.
            with self._lock:
                if self._inflight is future:
                    self._inflight = None
            if not future.done():
                future.set_exception(UpstreamUnavailable("upstream load aborted"))

    def get(self) -> CacheResult:
        with self._lock:
            if self._is_fresh():
                log.debug("Booth cache hit")
                return CacheResult(self._body, "cache", self._generated_at)
            future = self._inflight
            leader = future is None
            if leader:
                future = Future()
                self._inflight = future
            else:
                self._waiting += 1

        if leader:
            log.debug("Booth cache miss; loading upstream")
            self._run_loader(future)
        else:
            log.debug("Booth cache miss; joining in-flight load")

        try:
            body = future.result()
        except Exception as exc:
            with self._lock:
                stale_body, generated_at = self._body, self._generated_at
            if stale_body is not None:
                log.warning("Upstream load failed (%s); serving stale body", exc)
                return CacheResult(stale_body, "stale", generated_at)
            if isinstance(exc, UpstreamUnavailable):
                raise
            raise UpstreamUnavailable(str(exc) or "upstream failed") from exc
        finally:
            if not leader:
                with self._lock:
                    self._waiting -= 1

        with self._lock:
            generated_at = self._generated_at
        return CacheResult(body, "fetch", generated_at)


class CacheRegistry:
    """One ``ResponseCache`` per candidate list, bounded to ``max_slots``."""

    def __init__(self, max_slots: int = 16):
        self.max_slots = max(1, max_slots)
        self._lock = threading.Lock()
        self._slots: "OrderedDict[Hashable, ResponseCache]" = OrderedDict()

    def __len__(self) -> int:
        with self._lock:
            return len(self._slots)

    def get_or_create(self, key: Hashable, factory: Callable[[], ResponseCache]) -> ResponseCache:
        with self._lock:
            cache = self._slots.get(key)
            if cache is not None:
                self._slots.move_to_end(key)
                return cache

            while len(self._slots) >= self.max_slots:
                idle = next((k for k, c in self._slots.items() if not c.in_flight), None)
                if idle is None:
                    break
                log.debug("Evicting cache slot %r", idle)
                del self._slots[idle]

            cache = factory()
            self._slots[key] = cache
            return cache


# ---------------------------------------------------------------------------
# Flask wiring
# ---------------------------------------------------------------------------


def load_booth_payload(candidates, *, timeout: float, http_get=None) -> str:
    """Fetch the first usable candidate and return the serialized payload."""

    fetched = fetch_first_valid(list(candidates), timeout=timeout, http_get=http_get)
    result = normalize_csv(fetched.text)
    log.info("Loaded %d booths from %s", len(result.all), fetched.url)
    return json.dumps(result.to_payload(), ensure_ascii=False, separators=(",", ":"))


def init_cache_registry(app) -> CacheRegistry:
    registry = CacheRegistry(max_slots=int(app.config.get("CACHE_MAX_SLOTS", 16)))
    app.extensions[REGISTRY_KEY] = registry
    app.logger.info("Booth cache ready (ttl=%ss)", app.config.get("CACHE_TTL_SECONDS"))
    return registry


def get_cached_payload(app, candidates) -> CacheResult:
    registry: CacheRegistry = app.extensions.get(REGISTRY_KEY) or init_cache_registry(app)
    key = tuple(candidates)
    timeout = float(app.config.get("UPSTREAM_TIMEOUT_SECONDS", 8))

    cache = registry.get_or_create(
        key,
        lambda: ResponseCache(
            loader=lambda: load_booth_payload(key, timeout=timeout),
            ttl_seconds=float(app.config.get("CACHE_TTL_SECONDS", DEFAULT_TTL_SECONDS)),
            tz_name=app.config.get("TZ", "UTC"),
        ),
    )
    return cache.get()
