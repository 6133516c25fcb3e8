# mypy: disable-error-code="attr-defined"
"""
Tests for :py:class:`~ldapquery.connection.LdapConnection`, and end to end
queries against a fake 389 Directory Server provided by python-ldap-faker.
"""

import threading
import unittest
from unittest.mock import Mock

import ldap
import pytest
from ldap.controls import SimplePagedResultsControl
from ldap_faker.unittest import LDAPFakerMixin

from ldapquery.connection import LdapConnection, SearchResult
from ldapquery.factory import Factory
from ldapquery.models import User
from ldapquery.processor import Paginator
from ldapquery.query import Builder
from ldapquery.schemas import Directory389
from ldapquery.tests.stubs import LDAP_SERVERS, entry

BASE_DN = "dc=example,dc=com"
READ = LDAP_SERVERS["default"]["read"]

ALICE = entry(
    "uid=alice,ou=people,dc=example,dc=com",
    uid="alice",
    cn="Alice Johnson",
    objectClass=["top", "person", "organizationalPerson", "inetOrgPerson"],
)
BOB = entry(
    "uid=bob,ou=people,dc=example,dc=com",
    uid="bob",
    cn="Bob Smith",
    objectClass=["top", "person", "organizationalPerson", "inetOrgPerson"],
)


class TestResultHandling(unittest.TestCase):
    def setUp(self):
        self.connection = LdapConnection({"url": "ldap://localhost"})

    def test_materialize_entries(self):
        result = SearchResult(
            msgid=1,
            data=[
                (
                    "cn=a,dc=example,dc=com",
                    {
                        "CN": [b"J\xc3\xb6rg"],
                        "objectGUID": [b"\xd0\xb4\x0d\x27"],
                        "photo": [b"\xff\xfe"],
                    },
                ),
                (None, ["ldap://other.example.com/dc=other,dc=com"]),
            ],
        )
        entries = self.connection.materialize_entries(result)
        self.assertEqual(len(entries), 1)
        dn, attributes = entries[0]
        self.assertEqual(dn, "cn=a,dc=example,dc=com")
        self.assertEqual(attributes["cn"], ["Jörg"])
        # binary attributes are left alone
        self.assertEqual(attributes["objectguid"], [b"\xd0\xb4\x0d\x27"])
        # so is anything that is not UTF-8
        self.assertEqual(attributes["photo"], [b"\xff\xfe"])

    def test_release_result(self):
        result = SearchResult(msgid=1, data=[("cn=a", {})])
        self.connection.release_result(result)
        self.assertEqual(result.data, [])
        self.assertTrue(result.released)

    def test_continuation_control(self):
        self.connection.set_continuation_control(100, True, b"abc")
        control = self.connection._continuation[threading.current_thread()]
        self.assertEqual(control.size, 100)
        self.assertEqual(control.cookie, b"abc")
        self.assertTrue(control.criticality)
        self.connection.set_continuation_control()
        self.assertEqual(self.connection._continuation, {})

    def test_read_continuation_cookie(self):
        result = SearchResult(
            msgid=1, controls=[SimplePagedResultsControl(False, size=10, cookie=b"next")]
        )
        self.assertEqual(self.connection.read_continuation_cookie(result), b"next")
        self.assertEqual(self.connection.read_continuation_cookie(SearchResult(msgid=2)), "")

    def test_supports_server_controls_in_methods(self):
        self.assertTrue(self.connection.supports_server_controls_in_methods())
        legacy = LdapConnection({"url": "ldap://localhost", "legacy_paging": True})
        self.assertFalse(legacy.supports_server_controls_in_methods())

    def test_get_host(self):
        self.assertEqual(self.connection.get_host(), "ldap://localhost")

    def _use_session(self, session: Mock) -> None:
        self.connection._ldap_objects[threading.current_thread()] = session

    def test_search_collects_entries_until_the_final_result(self):
        control = SimplePagedResultsControl(False, size=10, cookie=b"next")
        session = Mock()
        session.search_ext.return_value = 7
        session.result3.side_effect = [
            (ldap.RES_SEARCH_ENTRY, [ALICE], 7, []),
            (ldap.RES_SEARCH_REFERENCE, [(None, ["ldap://other.example.com"])], 7, []),
            (ldap.RES_SEARCH_ENTRY, [BOB], 7, []),
            (ldap.RES_SEARCH_RESULT, [], 7, [control]),
        ]
        self._use_session(session)
        result = self.connection.search(BASE_DN, "(uid=*)", ["*"])
        self.assertEqual([dn for dn, _ in result.data], [ALICE[0], None, BOB[0]])
        self.assertEqual(result.controls, [control])
        session.result3.assert_called_with(7, all=0)
        self.assertEqual(session.result3.call_count, 4)

    def test_search_keeps_entries_sent_before_the_size_limit(self):
        session = Mock()
        session.search_ext.return_value = 3
        session.result3.side_effect = [
            (ldap.RES_SEARCH_ENTRY, [ALICE], 3, []),
            ldap.SIZELIMIT_EXCEEDED({"desc": "Size limit exceeded"}),
        ]
        self._use_session(session)
        result = self.connection.search(BASE_DN, "(uid=*)", ["*"], size_limit=1)
        self.assertEqual(result.data, [ALICE])
        self.assertEqual(session.search_ext.call_args.kwargs["sizelimit"], 1)

    def test_first_when_more_entries_match_than_the_limit(self):
        session = Mock()
        session.search_ext.return_value = 5
        session.result3.side_effect = [
            (ldap.RES_SEARCH_ENTRY, [ALICE], 5, []),
            ldap.SIZELIMIT_EXCEEDED({"desc": "Size limit exceeded"}),
        ]
        self._use_session(session)
        record = Builder(self.connection, schema=Directory389()).in_(BASE_DN).where_has("uid").first()
        self.assertIsInstance(record, User)
        self.assertEqual(record.get_dn(), ALICE[0])
        self.assertEqual(record.get_account_name(), "alice")

    def test_size_limit_with_nothing_returned(self):
        session = Mock()
        session.search_ext.return_value = 9
        session.result3.side_effect = ldap.SIZELIMIT_EXCEEDED({"desc": "Size limit exceeded"})
        self._use_session(session)
        self.assertEqual(self.connection.search(BASE_DN, "(uid=*)", ["*"], size_limit=1).data, [])


class TestLdapConnectionWithFaker(LDAPFakerMixin, unittest.TestCase):
    """End to end queries against python-ldap-faker."""

    ldap_modules = ["ldapquery"]

    @classmethod
    def setUpClass(cls):
        super().setUpClass()
        cls.test_objects = [
            [
                "cn=admin,dc=example,dc=com",
                {
                    "cn": [b"admin"],
                    "userPassword": [b"admin"],
                    "objectclass": [b"simpleSecurityObject", b"organizationalRole", b"top"],
                },
            ],
        ]
        for uid, cn, sn in (
            ("alice", "Alice Johnson", "Johnson"),
            ("bob", "Bob Smith", "Smith"),
            ("charlie", "Charlie Brown", "Brown"),
        ):
            cls.test_objects.append(
                [
                    f"uid={uid},ou=people,dc=example,dc=com",
                    {
                        "uid": [uid.encode()],
                        "cn": [cn.encode()],
                        "sn": [sn.encode()],
                        "mail": [f"{uid}@example.com".encode()],
                        "objectclass": [
                            b"top",
                            b"person",
                            b"organizationalPerson",
                            b"inetOrgPerson",
                        ],
                    },
                ]
            )

    def setUp(self):
        super().setUp()
        # Clear the fake LDAP directory before each test
        self.server_factory.default.raw_objects.clear()
        self.server_factory.default.objects.clear()
        for dn, attrs in self.test_objects:
            self.server_factory.default.register_object((dn, attrs))
        self.connection = LdapConnection(READ)
        self.factory = Factory(self.connection, schema=Directory389(), base_dn=BASE_DN)

    def tearDown(self):
        self.connection.disconnect()
        super().tearDown()

    def test_connect_and_disconnect(self):
        self.assertFalse(self.connection.has_connection())
        self.factory.where("uid", "alice").get()
        self.assertTrue(self.connection.has_connection())
        self.connection.disconnect()
        self.assertFalse(self.connection.has_connection())

    def test_invalid_tls_verify(self):
        connection = LdapConnection(dict(READ, tls_verify="sometimes"))
        with pytest.raises(ValueError, match="Invalid tls_verify value"):
            connection.connection  # noqa: B018

    def test_missing_ca_certfile(self):
        connection = LdapConnection(dict(READ, tls_ca_certfile="/nonexistent/ca.pem"))
        with pytest.raises(OSError, match="CA Certificate file does not exist"):
            connection.connection  # noqa: B018

    def test_bad_credentials(self):
        connection = LdapConnection(dict(READ, password="wrong"))
        with pytest.raises(ldap.INVALID_CREDENTIALS):
            connection.connection  # noqa: B018

    def test_where_first(self):
        record = self.factory.where("uid", "alice").first()
        self.assertIsInstance(record, User)
        self.assertEqual(record.get_dn(), "uid=alice,ou=people,dc=example,dc=com")
        self.assertEqual(record.get_account_name(), "alice")
        self.assertEqual(record.get_email(), "alice@example.com")
        self.assertEqual(record.get_common_name(), "Alice Johnson")

    def test_where_without_results(self):
        self.assertEqual(self.factory.where("uid", "nobody").get(), [])

    def test_find_by_dn(self):
        record = self.factory.find_by_dn("uid=bob,ou=people,dc=example,dc=com")
        self.assertIsInstance(record, User)
        self.assertEqual(record.get_last_name(), "Smith")
        self.assertEqual(record.get_query().get_dn(), BASE_DN)

    def test_find_by_dn_missing(self):
        self.assertIsNone(self.factory.find_by_dn("uid=nobody,ou=people,dc=example,dc=com"))

    def test_raw(self):
        results = self.factory.where("uid", "alice").raw().get()
        self.assertEqual(len(results), 1)
        dn, attributes = results[0]
        self.assertEqual(dn, "uid=alice,ou=people,dc=example,dc=com")
        self.assertEqual(attributes["cn"], ["Alice Johnson"])

    def test_sort_descending(self):
        query = self.factory.new_query().in_("ou=people,dc=example,dc=com")
        records = query.where_has("uid").sort_by("uid", "desc").get()
        self.assertEqual(
            [record.get_account_name() for record in records], ["charlie", "bob", "alice"]
        )

    def test_paginate(self):
        query = self.factory.new_query().in_("ou=people,dc=example,dc=com")
        paginator = query.where_has("uid").sort_by("uid").paginate(per_page=2)
        self.assertIsInstance(paginator, Paginator)
        self.assertEqual(paginator.count(), 3)
        self.assertEqual([r.get_account_name() for r in paginator], ["alice", "bob"])

    def test_legacy_paginate(self):
        connection = LdapConnection(dict(READ, legacy_paging=True))
        self.addCleanup(connection.disconnect)
        factory = Factory(connection, schema=Directory389(), base_dn=BASE_DN)
        paginator = factory.new_query().in_("ou=people,dc=example,dc=com").where_has("uid").paginate(
            per_page=2
        )
        self.assertEqual(paginator.count(), 3)
        self.assertEqual(connection._continuation, {})
