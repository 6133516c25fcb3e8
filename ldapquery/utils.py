"""
Helpers for moving values in and out of LDAP filter strings.
"""

import re
import uuid

from ldap.filter import escape_filter_chars

#: Matches one ``\XX`` hex escape in a filter or DN.
HEX_ESCAPE_REGEX = re.compile(rb"\\([0-9A-Fa-f]{2})")


def escape(value: str) -> str:
    """
    Escape ``value`` for use inside an LDAP search filter.

    The RFC 4515 metacharacters ``\\``, ``*``, ``(``, ``)`` and NUL are replaced
    by their ``\\XX`` hex form.  Everything else passes through untouched, so
    ``escape("John")`` is still ``"John"``.

    Args:
        value: the raw value

    Returns:
        The escaped value.

    """
    return escape_filter_chars(str(value), escape_mode=0)


def unescape(value: str) -> str:
    """
    Turn every ``\\XX`` hex escape in ``value`` back into the byte it stands
    for.  Escaped UTF-8 sequences are decoded as UTF-8.

    Args:
        value: an escaped filter or DN

    Returns:
        The unescaped string.

    """
    raw = HEX_ESCAPE_REGEX.sub(
        lambda match: bytes.fromhex(match.group(1).decode("ascii")),
        value.encode("utf-8"),
    )
    return raw.decode("utf-8", errors="replace")


def string_guid_to_hex(guid: str) -> str:
    """
    Convert a string GUID to the escaped byte form Active Directory expects
    when filtering on ``objectGUID``::

        >>> string_guid_to_hex("270db4d0-249d-46a7-9cc5-eb695d9af9ac")
        '\\\\d0\\\\b4\\\\0d\\\\27\\\\9d\\\\24\\\\a7\\\\46\\\\9c\\\\c5\\\\eb\\\\69\\\\5d\\\\9a\\\\f9\\\\ac'

    Args:
        guid: a hyphenated or unhyphenated string GUID

    Returns:
        The GUID bytes in wire order, each written as ``\\XX``.

    """
    return "".join(f"\\{byte:02x}" for byte in uuid.UUID(hex=guid).bytes_le)
