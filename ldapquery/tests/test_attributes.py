"""
Tests for SID/GUID conversion and the filter escaping helpers.
"""

import struct
import unittest

import pytest

from ldapquery.attributes import Guid, InvalidIdentifier, Sid
from ldapquery.utils import escape, string_guid_to_hex, unescape

SID = "S-1-5-21-1004336348-1177238915-682003330-512"
BINARY_SID = bytes([1, 5, 0, 0, 0, 0, 0, 5]) + struct.pack(
    "<5I", 21, 1004336348, 1177238915, 682003330, 512
)

GUID = "270db4d0-249d-46a7-9cc5-eb695d9af9ac"
BINARY_GUID = b"\xd0\xb4\x0d\x27\x9d\x24\xa7\x46\x9c\xc5\xeb\x69\x5d\x9a\xf9\xac"


class TestSid(unittest.TestCase):
    def test_string_sid(self):
        sid = Sid(SID)
        self.assertEqual(sid.get_value(), SID)
        self.assertEqual(str(sid), SID)

    def test_string_to_binary(self):
        self.assertEqual(Sid(SID).get_binary(), BINARY_SID)

    def test_binary_to_string(self):
        self.assertEqual(Sid(BINARY_SID).get_value(), SID)

    def test_well_known_sid(self):
        self.assertEqual(Sid("S-1-5-32-544").get_binary()[:8], bytes([1, 2, 0, 0, 0, 0, 0, 5]))

    def test_equality(self):
        self.assertEqual(Sid(SID), Sid(BINARY_SID))
        self.assertEqual(Sid(SID), Sid(SID.lower()))
        self.assertNotEqual(Sid(SID), SID)

    def test_invalid_sid(self):
        with pytest.raises(InvalidIdentifier):
            Sid("not a sid")
        with pytest.raises(InvalidIdentifier):
            Sid(b"\x01")

    def test_truncated_binary_sid(self):
        # announces 5 sub-authorities but carries 2
        with pytest.raises(InvalidIdentifier):
            Sid(BINARY_SID[:16])

    def test_authority_too_large_for_binary(self):
        with pytest.raises(InvalidIdentifier):
            Sid("S-1-9999999999-21").get_binary()

    def test_bytearray_sid(self):
        self.assertEqual(Sid(bytearray(BINARY_SID)).get_value(), SID)
        self.assertEqual(Sid(memoryview(BINARY_SID)).get_value(), SID)

    def test_sid_of_the_wrong_type(self):
        with pytest.raises(InvalidIdentifier):
            Sid(None)
        with pytest.raises(InvalidIdentifier):
            Sid(512)


class TestGuid(unittest.TestCase):
    def test_string_guid(self):
        self.assertEqual(Guid(GUID).get_value(), GUID)

    def test_unhyphenated_string_guid(self):
        guid = Guid(GUID.replace("-", ""))
        self.assertEqual(guid.get_binary(), BINARY_GUID)

    def test_string_to_binary(self):
        self.assertEqual(Guid(GUID).get_binary(), BINARY_GUID)

    def test_binary_to_string(self):
        self.assertEqual(Guid(BINARY_GUID).get_value(), GUID)

    def test_hex(self):
        self.assertEqual(
            Guid(GUID).get_hex(),
            "\\d0\\b4\\0d\\27\\9d\\24\\a7\\46\\9c\\c5\\eb\\69\\5d\\9a\\f9\\ac",
        )

    def test_equality_ignores_case(self):
        self.assertEqual(Guid(GUID), Guid(GUID.upper()))
        self.assertEqual(hash(Guid(GUID)), hash(Guid(BINARY_GUID)))

    def test_invalid_guid(self):
        with pytest.raises(InvalidIdentifier):
            Guid("270db4d0-249d-46a7")
        with pytest.raises(InvalidIdentifier):
            Guid(b"\x00" * 15)

    def test_bytes_like_guid(self):
        self.assertEqual(Guid(bytearray(BINARY_GUID)).get_value(), GUID)
        self.assertEqual(Guid(memoryview(BINARY_GUID)).get_value(), GUID)

    def test_guid_of_the_wrong_type(self):
        with pytest.raises(InvalidIdentifier):
            Guid(123)
        with pytest.raises(InvalidIdentifier):
            Guid(None)


class TestUtils(unittest.TestCase):
    def test_escape_metacharacters(self):
        self.assertEqual(escape("a*b"), "a\\2ab")
        self.assertEqual(escape("(x)"), "\\28x\\29")
        self.assertEqual(escape("a\\b"), "a\\5cb")
        self.assertEqual(escape("a\x00b"), "a\\00b")

    def test_escape_leaves_plain_values(self):
        self.assertEqual(escape("John Doe"), "John Doe")
        self.assertEqual(escape("jöhn"), "jöhn")
        self.assertEqual(escape(""), "")

    def test_unescape(self):
        self.assertEqual(unescape("(cn=a\\2ab)"), "(cn=a*b)")
        self.assertEqual(unescape("(cn=J\\c3\\b6rg)"), "(cn=Jörg)")
        self.assertEqual(unescape("(cn=John)"), "(cn=John)")

    def test_string_guid_to_hex(self):
        self.assertEqual(string_guid_to_hex(GUID), Guid(GUID).get_hex())
        with pytest.raises(ValueError):
            string_guid_to_hex("nope")
