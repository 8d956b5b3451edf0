"""
Per-process list stores.

Each store is a ``CachedFetch`` keyed by (name, scope), e.g.
('notifications', '<user id>') or ('certificate_requests', 'admin').
Route writes invalidate the affected store; realtime change events either
splice into stores that know their membership rule (``keep``) or
invalidate the rest. A store's ``normalize`` gives spliced raw rows the
shape its fetcher returns.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Optional, Tuple

from flask import current_app

from certsys.api.utils.cache_guard import CachedFetch
from certsys.api.utils.realtime import ALL, ChangeEvent, ChangeFeed, Predicate

logger = logging.getLogger(__name__)

STORE_NAMES = (
    'certificate_requests',
    'certificates',
    'notifications',
    'users',
    'pending_registrations',
    'reports',
)

# Which stores a change to each table touches
TABLE_STORES = {
    'certificate_requests': ('certificate_requests', 'reports'),
    'certificates': ('certificates',),
    'notifications': ('notifications',),
    'users': ('users', 'reports'),
    'pending_registrations': ('pending_registrations',),
}

FEED_KEY = 'certsys.feed'
STORES_KEY = 'certsys.stores'


class StoreRegistry:
    def __init__(self, cache_window: float, loading_timeout: float, clock: Optional[Callable[[], float]] = None):
        self.cache_window = cache_window
        self.loading_timeout = loading_timeout
        self._clock = clock
        self._stores: Dict[Tuple[str, str], CachedFetch] = {}
        self._lock = threading.Lock()

    def get(self, name: str, scope: str, fetcher: Callable, keep: Optional[Predicate] = None,
            normalize: Optional[Callable[[dict], dict]] = None) -> CachedFetch:
        if name not in STORE_NAMES:
            raise KeyError(f'Unknown store: {name}')
        key = (name, str(scope))
        with self._lock:
            store = self._stores.get(key)
            if store is None:
                kwargs = {'clock': self._clock} if self._clock else {}
                store = CachedFetch(
                    fetcher,
                    cache_window=self.cache_window,
                    loading_timeout=self.loading_timeout,
                    keep=keep,
                    normalize=normalize,
                    name=f'{name}:{scope}',
                    **kwargs,
                )
                self._stores[key] = store
            return store

    def _matching(self, name: str, scope: Optional[str] = None):
        with self._lock:
            return [
                store for (store_name, store_scope), store in self._stores.items()
                if store_name == name and (scope is None or store_scope == str(scope))
            ]

    def invalidate(self, name: str, scope: Optional[str] = None) -> None:
        for store in self._matching(name, scope):
            store.invalidate()

    def handle_event(self, event: ChangeEvent) -> None:
        for name in TABLE_STORES.get(event.table, ()):
            for store in self._matching(name):
                if store.keep is not None:
                    store.apply(event)
                else:
                    store.invalidate()

    def __len__(self):
        with self._lock:
            return len(self._stores)


def init_stores(app) -> None:
    registry = StoreRegistry(
        cache_window=app.config.get('STORE_CACHE_SECONDS', 5),
        loading_timeout=app.config.get('STORE_LOADING_TIMEOUT_SECONDS', 30),
    )
    feed = ChangeFeed()
    feed.subscribe(ALL, registry.handle_event)
    app.extensions[STORES_KEY] = registry
    app.extensions[FEED_KEY] = feed


def get_registry() -> StoreRegistry:
    return current_app.extensions[STORES_KEY]


def get_feed() -> ChangeFeed:
    return current_app.extensions[FEED_KEY]


def get_store(name: str, scope: str, fetcher: Callable, keep: Optional[Predicate] = None,
              normalize: Optional[Callable[[dict], dict]] = None) -> CachedFetch:
    return get_registry().get(name, scope, fetcher, keep=keep, normalize=normalize)


def invalidate(*names: str) -> None:
    """Drop cached copies of the named stores (all scopes)."""
    registry = get_registry()
    for name in names:
        registry.invalidate(name)
