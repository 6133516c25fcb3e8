"""
Type aliases for raw LDAP data as it moves through the query engine.
"""

from typing import TypedDict

#: A single attribute value as returned by python-ldap: text attributes are
#: decoded to ``str``, binary attributes (``objectGUID``, ``objectSid``, ...)
#: stay ``bytes``.
AttributeValue = str | bytes
#: The attributes of one entry, keyed by lowercased attribute name.
Attributes = dict[str, list[AttributeValue]]
#: One directory entry: ``(dn, attributes)``.
LDAPData = tuple[str, Attributes]
#: The entries of one search round-trip.
RawEntries = list[LDAPData]
#: The entries of every round-trip of a paged search.
RawPages = list[RawEntries]


class FilterBinding(TypedDict):
    """A single predicate waiting to be compiled by the grammar."""

    field: str
    operator: str
    value: str
