"""
Fetch guard for cached lists.

Wraps a fetch function with:
- a ``loading`` flag: a call made while a fetch is in flight returns the
  current data instead of starting another fetch
- a cache window (5 s by default): a fetch younger than this is reused
- a loading timeout (30 s by default): a flag stuck longer than this is
  force-cleared so the store cannot wedge

The lock only protects the guard's own fields; it is not held while the
fetcher runs and gives no ordering across guards.
"""
from __future__ import annotations

import dataclasses
import logging
import threading
import time
from typing import Any, Callable, Optional

from certsys.api.utils.realtime import ChangeEvent, Predicate, apply_change_event

logger = logging.getLogger(__name__)

DEFAULT_CACHE_WINDOW = 5.0
DEFAULT_LOADING_TIMEOUT = 30.0


class CachedFetch:
    def __init__(
        self,
        fetcher: Callable[..., Any],
        cache_window: float = DEFAULT_CACHE_WINDOW,
        loading_timeout: float = DEFAULT_LOADING_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
        keep: Optional[Predicate] = None,
        normalize: Optional[Callable[[dict], dict]] = None,
        name: str = 'store',
    ):
        self._fetcher = fetcher
        self.cache_window = cache_window
        self.loading_timeout = loading_timeout
        self._clock = clock
        self.keep = keep
        self.normalize = normalize
        self.name = name

        self.data: Any = None
        self.last_fetch: Optional[float] = None
        self.loading = False
        self.loading_started_at: Optional[float] = None
        self._token: Optional[object] = None
        self._lock = threading.Lock()

    def is_fresh(self, now: Optional[float] = None) -> bool:
        if self.last_fetch is None:
            return False
        now = self._clock() if now is None else now
        return (now - self.last_fetch) < self.cache_window

    def fetch(self, *args, force: bool = False, **kwargs):
        with self._lock:
            now = self._clock()
            if self.loading:
                if now - self.loading_started_at < self.loading_timeout:
                    logger.debug("%s: fetch already in progress, returning current data", self.name)
                    return self.data
                logger.warning(
                    "%s: loading flag stuck for %.0fs, clearing it", self.name, now - self.loading_started_at
                )
                self.loading = False
            if not force and self.is_fresh(now):
                return self.data
            token = object()
            self._token = token
            self.loading = True
            self.loading_started_at = now

        try:
            result = self._fetcher(*args, **kwargs)
        finally:
            with self._lock:
                # A fetch whose flag was force-cleared must not clear a newer one
                if self._token is token:
                    self.loading = False
                    self.loading_started_at = None

        with self._lock:
            # Nor may it overwrite data stored by a newer fetch
            if self._token is token:
                self.data = result
                self.last_fetch = self._clock()
        return result

    def invalidate(self) -> None:
        with self._lock:
            self.last_fetch = None

    def apply(self, event: ChangeEvent, keep: Optional[Predicate] = None) -> None:
        """Splice a change event into the cached list."""
        if self.normalize is not None and event.record is not None:
            event = dataclasses.replace(event, record=self.normalize(event.record))
        with self._lock:
            if not isinstance(self.data, list):
                return
            self.data = apply_change_event(self.data, event, keep or self.keep)
