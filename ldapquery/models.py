"""
Typed records built from directory entries.

A record wraps the raw attributes of one entry together with the query builder
it came from.  Which record class an entry becomes is decided by
:py:class:`~ldapquery.processor.Processor` using the schema's object class map.
"""

from typing import TYPE_CHECKING, Any, cast

from .attributes import Guid, Sid
from .typing import Attributes, AttributeValue

if TYPE_CHECKING:
    from .query import Builder
    from .schemas import Schema


def _text(value: AttributeValue | None) -> str | None:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class Model:
    """
    Base class for directory records.

    Keyword Args:
        attributes: initial attribute values for a record that does not exist in
            the directory yet
        query: the query builder this record is bound to

    """

    class DoesNotExist(Exception):  # noqa: N818
        """
        Raised when a query that must return a record returns nothing.

        Args:
            query: the unescaped filter that was used
            base_dn: the base DN the filter was run against

        """

        def __init__(self, query: str = "", base_dn: str = "") -> None:
            self.query = query
            self.base_dn = base_dn
            super().__init__(f"No LDAP query results for filter: [{query}] in: [{base_dn}]")

    def __init__(
        self,
        attributes: dict[str, Any] | None = None,
        query: "Builder | None" = None,
    ) -> None:
        self._query: Builder | None = query
        self._dn: str | None = None
        #: ``True`` once the record has been loaded from the directory.
        self.exists: bool = False
        #: Pending changes.  Populated and consumed by whatever persists records;
        #: the query engine never touches it.
        self.modifications: list[Any] = []
        self._attributes: Attributes = {}
        for key, value in (attributes or {}).items():
            values = value if isinstance(value, list) else [value]
            self._attributes[key.lower()] = values

    def set_raw_attributes(
        self, attributes: Attributes, dn: str | None = None
    ) -> "Model":
        """
        Load the attributes of an existing directory entry into this record.

        Args:
            attributes: the entry's attributes

        Keyword Args:
            dn: the entry's distinguished name

        Returns:
            This record.

        """
        self._attributes = {key.lower(): list(values) for key, values in attributes.items()}
        self._dn = dn
        self.exists = True
        return self

    def get_query(self) -> "Builder | None":
        return self._query

    def set_query(self, query: "Builder") -> "Model":
        self._query = query
        return self

    def get_schema(self) -> "Schema":
        if self._query is not None:
            return self._query.get_schema()
        from .schemas import ActiveDirectory  # noqa: PLC0415

        return ActiveDirectory()

    def get_dn(self) -> str | None:
        return self._dn

    def get_attributes(self) -> Attributes:
        return self._attributes

    def count_attributes(self) -> int:
        return len(self._attributes)

    def get_attribute(self, key: str, index: int | None = None) -> Any:
        """
        Return the values of attribute ``key``, or one of them.

        Args:
            key: the attribute name (case-insensitive)

        Keyword Args:
            index: if given, return only the value at this position

        Returns:
            The list of values, the selected value, or ``None`` if the
            attribute (or position) is missing.

        """
        values = self._attributes.get(key.lower())
        if values is None:
            return None
        if index is None:
            return values
        try:
            return values[index]
        except IndexError:
            return None

    def get_first_attribute(self, key: str) -> Any:
        return self.get_attribute(key, 0)

    def has_attribute(self, key: str, index: int | None = None) -> bool:
        values = self._attributes.get(key.lower())
        if values is None:
            return False
        if index is None:
            return True
        return 0 <= index < len(values)

    def _get_text(self, key: str) -> str | None:
        return _text(self.get_first_attribute(key))

    def get_common_name(self) -> str | None:
        return self._get_text(self.get_schema().common_name())

    def get_name(self) -> str | None:
        return self._get_text(self.get_schema().name())

    def get_object_class(self) -> list[str]:
        values = self.get_attribute(self.get_schema().object_class()) or []
        return [cast("str", _text(value)) for value in values]

    def get_object_category(self) -> str | None:
        return self._get_text(self.get_schema().object_category())

    def get_object_guid(self) -> Guid | str | None:
        """
        Return the record's GUID.

        On directories that store GUIDs in binary this is a
        :py:class:`~ldapquery.attributes.Guid`; elsewhere (``nsUniqueId``,
        ``ipaUniqueID``) it is the attribute's string value.
        """
        schema = self.get_schema()
        value = self.get_first_attribute(schema.object_guid())
        if value is None:
            return None
        if schema.object_guid_requires_conversion():
            return Guid(value)
        return _text(value)

    def get_object_sid(self) -> Sid | None:
        """
        Return the record's security identifier, converting it from binary where
        needed.
        """
        value = self.get_first_attribute(self.get_schema().object_sid())
        if value is None:
            return None
        return Sid(value)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: {self}>"

    def __str__(self) -> str:
        return f"{self.__class__.__name__} object ({self.get_dn()})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Model) or other.__class__ is not self.__class__:
            return False
        if self._dn is None or other._dn is None:
            return self is other
        return self._dn.lower() == other._dn.lower()

    def __hash__(self) -> int:
        return hash(self._dn.lower() if self._dn else id(self))


class Entry(Model):
    """A generic directory entry whose object class is not mapped."""


class User(Model):
    def get_account_name(self) -> str | None:
        return self._get_text(self.get_schema().account_name())

    def get_email(self) -> str | None:
        return self._get_text(self.get_schema().email())

    def get_first_name(self) -> str | None:
        return self._get_text(self.get_schema().first_name())

    def get_last_name(self) -> str | None:
        return self._get_text(self.get_schema().last_name())

    def get_display_name(self) -> str | None:
        return self._get_text(self.get_schema().display_name())

    def get_member_of(self) -> list[str]:
        """
        Return the DNs of the groups this user is a direct member of.
        """
        values = self.get_attribute(self.get_schema().member_of()) or []
        return [cast("str", _text(value)) for value in values]


class Contact(User):
    """A mail contact; carries the same person attributes as a user."""


class Computer(Model):
    def get_operating_system(self) -> str | None:
        return self._get_text(self.get_schema().operating_system())

    def get_dns_host_name(self) -> str | None:
        return self._get_text(self.get_schema().dns_host_name())


class Group(Model):
    def get_members(self) -> list[str]:
        """
        Return the DNs of the group's direct members.
        """
        values = self.get_attribute(self.get_schema().member()) or []
        return [cast("str", _text(value)) for value in values]

    def get_member_of(self) -> list[str]:
        values = self.get_attribute(self.get_schema().member_of()) or []
        return [cast("str", _text(value)) for value in values]


class Container(Model):
    pass


class Printer(Model):
    def get_printer_name(self) -> str | None:
        return self._get_text(self.get_schema().printer_name())


class Organization(Model):
    def get_organization_name(self) -> str | None:
        return self._get_text(self.get_schema().organization_name())


class OrganizationalUnit(Model):
    def get_ou(self) -> str | None:
        return self._get_text(self.get_schema().organizational_unit_short())


class ForeignSecurityPrincipal(Model):
    pass


class RootDse(Model):
    """
    The root DSE of a directory server: the entry with an empty DN that
    describes the server's naming contexts.
    """

    def get_default_naming_context(self) -> str | None:
        return self._get_text(self.get_schema().default_naming_context())

    def get_configuration_naming_context(self) -> str | None:
        return self._get_text(self.get_schema().configuration_naming_context())

    def get_schema_naming_context(self) -> str | None:
        return self._get_text(self.get_schema().schema_naming_context())
