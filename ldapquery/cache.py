"""
Result caching for :py:class:`~ldapquery.query.Builder` on top of Django's
cache framework.
"""

import datetime
from collections.abc import Callable
from typing import Any, cast

from django.conf import settings
from django.core.cache import BaseCache, caches
from django.core.cache.backends.base import DEFAULT_TIMEOUT

#: What a cache lifetime may be given as.
TTL = int | float | datetime.timedelta | datetime.datetime | None

_MISSING = object()


class Cache:
    """
    A thin wrapper around a Django cache backend that adds
    :py:meth:`remember` and accepts richer lifetimes.

    Args:
        store: the Django cache backend to keep results in

    """

    def __init__(self, store: BaseCache) -> None:
        self.store = store

    @classmethod
    def from_settings(cls, alias: str | None = None) -> "Cache":
        """
        Build a :py:class:`Cache` on one of the caches in ``settings.CACHES``.

        Keyword Args:
            alias: the cache alias.  Defaults to ``settings.LDAPQUERY_CACHE``,
                then ``"default"``.

        Returns:
            A configured cache.

        """
        if alias is None:
            alias = getattr(settings, "LDAPQUERY_CACHE", "default")
        return cls(caches[cast("str", alias)])

    def timeout(self, ttl: TTL) -> Any:
        """
        Convert ``ttl`` into a Django cache timeout.

        Args:
            ttl: ``None`` for the backend's default timeout, a number of
                seconds, a :py:class:`datetime.timedelta`, or the
                :py:class:`datetime.datetime` at which the value expires

        Returns:
            A timeout in seconds, or Django's ``DEFAULT_TIMEOUT`` marker.

        """
        if ttl is None:
            return DEFAULT_TIMEOUT
        if isinstance(ttl, datetime.datetime):
            now = datetime.datetime.now(tz=ttl.tzinfo)
            return max((ttl - now).total_seconds(), 0)
        if isinstance(ttl, datetime.timedelta):
            return max(ttl.total_seconds(), 0)
        return ttl

    def get(self, key: str, default: Any = None) -> Any:
        return self.store.get(key, default)

    def put(self, key: str, value: Any, ttl: TTL = None) -> None:
        self.store.set(key, value, self.timeout(ttl))

    def delete(self, key: str) -> bool:
        return bool(self.store.delete(key))

    def remember(self, key: str, ttl: TTL, callback: Callable[[], Any]) -> Any:
        """
        Return the value cached under ``key``, computing and storing it with
        ``callback`` first if it is not there.

        A stored empty result counts as a hit; ``callback`` only runs when the
        key is missing.

        Args:
            key: the cache key
            ttl: how long to keep a freshly computed value
            callback: computes the value on a miss

        Returns:
            The cached or freshly computed value.

        """
        value = self.get(key, _MISSING)
        if value is not _MISSING:
            return value
        value = callback()
        self.put(key, value, ttl)
        return value
