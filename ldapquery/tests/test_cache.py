"""
Tests for result caching.
"""

import datetime
import unittest
from unittest.mock import Mock, patch

from django.core.cache.backends.base import DEFAULT_TIMEOUT
from django.core.cache.backends.locmem import LocMemCache

from ldapquery.cache import Cache
from ldapquery.query import Builder
from ldapquery.tests.stubs import StubConnection, entry

JOHN = entry("cn=John,dc=example,dc=com", cn="John", objectClass=["top", "person", "user"])


class TestCache(unittest.TestCase):
    def setUp(self):
        self.store = LocMemCache("ldapquery-test-cache", {})
        self.store.clear()
        self.cache = Cache(self.store)

    def test_put_and_get(self):
        self.cache.put("key", ["value"])
        self.assertEqual(self.cache.get("key"), ["value"])
        self.assertIsNone(self.cache.get("missing"))
        self.assertEqual(self.cache.get("missing", "default"), "default")

    def test_delete(self):
        self.cache.put("key", 1)
        self.assertTrue(self.cache.delete("key"))
        self.assertIsNone(self.cache.get("key"))

    def test_remember_runs_callback_once(self):
        callback = Mock(return_value=["result"])
        self.assertEqual(self.cache.remember("key", None, callback), ["result"])
        self.assertEqual(self.cache.remember("key", None, callback), ["result"])
        callback.assert_called_once_with()

    def test_empty_result_is_a_hit(self):
        callback = Mock(return_value=[])
        self.cache.remember("key", 60, callback)
        self.cache.remember("key", 60, callback)
        self.assertEqual(callback.call_count, 1)

    def test_timeout(self):
        self.assertIs(self.cache.timeout(None), DEFAULT_TIMEOUT)
        self.assertEqual(self.cache.timeout(30), 30)
        self.assertEqual(self.cache.timeout(datetime.timedelta(minutes=2)), 120)
        self.assertEqual(self.cache.timeout(datetime.timedelta(seconds=-5)), 0)

    def test_timeout_until_a_datetime(self):
        until = datetime.datetime.now(tz=datetime.timezone.utc) + datetime.timedelta(hours=1)
        timeout = self.cache.timeout(until)
        self.assertTrue(3590 < timeout <= 3600)
        past = datetime.datetime.now() - datetime.timedelta(hours=1)  # noqa: DTZ005
        self.assertEqual(self.cache.timeout(past), 0)

    def test_from_settings(self):
        cache = Cache.from_settings()
        self.assertIsInstance(cache.store, LocMemCache)
        with patch("django.conf.settings.LDAPQUERY_CACHE", "default", create=True):
            self.assertIsInstance(Cache.from_settings().store, LocMemCache)


class TestBuilderCaching(unittest.TestCase):
    def setUp(self):
        store = LocMemCache("ldapquery-test-builder-cache", {})
        store.clear()
        self.cache = Cache(store)
        self.connection = StubConnection(entries=[JOHN])

    def builder(self) -> Builder:
        return Builder(self.connection, cache=self.cache).in_("dc=example,dc=com")

    def test_cached_query_hits_the_server_once(self):
        first = self.builder().where("cn", "John").cache().get()
        second = self.builder().where("cn", "John").cache().get()
        self.assertEqual(len(self.connection.searches), 1)
        self.assertEqual(first[0].get_dn(), second[0].get_dn())

    def test_uncached_queries_always_search(self):
        self.builder().where("cn", "John").get()
        self.builder().where("cn", "John").get()
        self.assertEqual(len(self.connection.searches), 2)

    def test_flush(self):
        self.builder().where("cn", "John").cache().get()
        self.builder().where("cn", "John").cache(flush=True).get()
        self.assertEqual(len(self.connection.searches), 2)

    def test_cache_without_a_store_is_ignored(self):
        builder = Builder(self.connection).where("cn", "John").cache()
        builder.get()
        builder.get()
        self.assertEqual(len(self.connection.searches), 2)

    def test_key_depends_on_the_query(self):
        builder = self.builder()
        key = builder.get_cache_key("(cn=John)")
        self.assertEqual(key, self.builder().get_cache_key("(cn=John)"))
        self.assertNotEqual(key, self.builder().get_cache_key("(cn=Jane)"))
        self.assertNotEqual(key, self.builder().read().get_cache_key("(cn=John)"))
        self.assertNotEqual(key, self.builder().select("cn").get_cache_key("(cn=John)"))
        self.assertNotEqual(key, self.builder().limit(1).get_cache_key("(cn=John)"))

    def test_cached_pagination(self):
        connection = StubConnection(pages=[[JOHN]])
        first = Builder(connection, cache=self.cache).cache().paginate(per_page=10)
        second = Builder(connection, cache=self.cache).cache().paginate(per_page=10)
        self.assertEqual(len(connection.searches), 1)
        self.assertEqual(first.count(), second.count())
