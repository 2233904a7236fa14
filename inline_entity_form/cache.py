from __future__ import annotations

import logging
import secrets
from typing import Optional

from django.conf import settings
from django.core.cache import caches

from .state import RowStateStore

logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "inline_entity_form"
DEFAULT_CACHE_TIMEOUT = 6 * 60 * 60


def new_build_id() -> str:
    return f"form-{secrets.token_urlsafe(24)}"


class FormStateCache:
    """Keeps a page's RowStateStore between the requests of one submission."""

    def __init__(self, alias: Optional[str] = None, timeout: Optional[int] = None):
        self.alias = alias or getattr(settings, "INLINE_ENTITY_FORM_CACHE_ALIAS", "default")
        if timeout is None:
            timeout = getattr(settings, "INLINE_ENTITY_FORM_CACHE_TIMEOUT", DEFAULT_CACHE_TIMEOUT)
        self.timeout = timeout

    @property
    def cache(self):
        return caches[self.alias]

    def _key(self, build_id: str) -> str:
        return f"{CACHE_KEY_PREFIX}:{build_id}"

    def create(self) -> RowStateStore:
        return RowStateStore(build_id=new_build_id())

    def load(self, build_id: str) -> Optional[RowStateStore]:
        if not build_id:
            return None
        store = self.cache.get(self._key(build_id))
        if store is None:
            logger.debug("Form state %s expired or unknown", build_id)
        return store

    def load_or_create(self, build_id: str) -> RowStateStore:
        store = self.load(build_id)
        if store is None:
            store = self.create()
        return store

    def save(self, store: RowStateStore) -> None:
        self.cache.set(self._key(store.build_id), store, self.timeout)

    def discard(self, store: RowStateStore) -> None:
        self.cache.delete(self._key(store.build_id))
        store.clear()
