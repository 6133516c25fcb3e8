"""
Schema providers.

A schema answers "what is this thing called on this kind of directory": the
attribute holding the account name, the object class of a group, the filter
fragment that selects enabled accounts, and so on.  :py:class:`Schema` holds
the names shared by every directory; :py:class:`ActiveDirectory`,
:py:class:`FreeIPA` and :py:class:`Directory389` fill in the vendor specific
ones.
"""

from abc import ABC, abstractmethod

from .models import (
    Computer,
    Contact,
    Container,
    Entry,
    ForeignSecurityPrincipal,
    Group,
    Model,
    Organization,
    OrganizationalUnit,
    Printer,
    RootDse,
    User,
)


class Schema(ABC):
    """
    Attribute and object class names common to all supported directories.
    """

    # Attributes

    def account_name(self) -> str:
        return "samaccountname"

    def anr(self) -> str:
        """
        Ambiguous Name Resolution: a pseudo attribute Active Directory expands
        into a search over every name-like attribute.
        """
        return "anr"

    def common_name(self) -> str:
        return "cn"

    def configuration_naming_context(self) -> str:
        return "configurationnamingcontext"

    def created_at(self) -> str:
        return "whencreated"

    def default_naming_context(self) -> str:
        return "defaultnamingcontext"

    def description(self) -> str:
        return "description"

    def display_name(self) -> str:
        return "displayname"

    def dns_host_name(self) -> str:
        return "dnshostname"

    def email(self) -> str:
        return "mail"

    def first_name(self) -> str:
        return "givenname"

    def last_name(self) -> str:
        return "sn"

    def member(self) -> str:
        return "member"

    def member_of(self) -> str:
        return "memberof"

    def member_of_recursive(self) -> str:
        """
        The membership attribute with the ``LDAP_MATCHING_RULE_IN_CHAIN``
        matching rule, which follows nested group membership.
        """
        return "memberof:1.2.840.113556.1.4.1941:"

    def name(self) -> str:
        return "name"

    def object_class(self) -> str:
        return "objectclass"

    def object_sid(self) -> str:
        return "objectsid"

    def object_sid_requires_conversion(self) -> bool:
        return True

    def operating_system(self) -> str:
        return "operatingsystem"

    def organization_name(self) -> str:
        return "o"

    def organizational_unit_short(self) -> str:
        return "ou"

    def printer_name(self) -> str:
        return "printername"

    def schema_naming_context(self) -> str:
        return "schemanamingcontext"

    def updated_at(self) -> str:
        return "whenchanged"

    def user_id(self) -> str:
        return "uid"

    def user_principal_name(self) -> str:
        return "userprincipalname"

    # Object classes and categories

    def object_category_person(self) -> str:
        return "person"

    def object_class_computer(self) -> str:
        return "computer"

    def object_class_contact(self) -> str:
        return "contact"

    def object_class_container(self) -> str:
        return "container"

    def object_class_foreign_security_principal(self) -> str:
        return "foreignsecurityprincipal"

    def object_class_organization(self) -> str:
        return "organization"

    def object_class_printer(self) -> str:
        return "printqueue"

    def object_class_user(self) -> str:
        return "user"

    def top(self) -> str:
        return "top"

    def user_object_classes(self) -> list[str]:
        return [
            self.top(),
            self.object_category_person(),
            "organizationalperson",
            self.object_class_user(),
        ]

    # Record types

    def entry_model(self) -> type[Model]:
        return Entry

    def root_dse_model(self) -> type[Model]:
        return RootDse

    def object_class_model_map(self) -> dict[str, type[Model]]:
        """
        Map object class names to the record type an entry carrying that class
        becomes.  Order matters: the first class found on an entry wins, so a
        contact (which is also a ``person``) must come before ``person``.

        Returns:
            An ordered ``{object class: record type}`` mapping.

        """
        return {
            self.object_class_computer(): Computer,
            self.object_class_contact(): Contact,
            self.object_class_person(): User,
            self.object_class_group(): Group,
            self.object_class_container(): Container,
            self.object_class_printer(): Printer,
            self.object_class_organization(): Organization,
            self.object_class_ou(): OrganizationalUnit,
            self.object_class_foreign_security_principal(): ForeignSecurityPrincipal,
        }

    # Vendor specific

    @abstractmethod
    def distinguished_name(self) -> str: ...

    @abstractmethod
    def filter_enabled(self) -> str:
        """
        A raw filter fragment matching enabled accounts.
        """

    @abstractmethod
    def filter_disabled(self) -> str:
        """
        A raw filter fragment matching disabled accounts.
        """

    @abstractmethod
    def lockout_time(self) -> str: ...

    @abstractmethod
    def object_category(self) -> str: ...

    @abstractmethod
    def object_class_group(self) -> str: ...

    @abstractmethod
    def object_class_ou(self) -> str: ...

    @abstractmethod
    def object_class_person(self) -> str: ...

    @abstractmethod
    def object_guid(self) -> str: ...

    @abstractmethod
    def object_guid_requires_conversion(self) -> bool:
        """
        ``True`` when the GUID attribute is stored in binary and must be
        filtered on as escaped bytes.
        """


class ActiveDirectory(Schema):
    def distinguished_name(self) -> str:
        return "distinguishedname"

    def filter_enabled(self) -> str:
        return "(!(UserAccountControl:1.2.840.113556.1.4.803:=2))"

    def filter_disabled(self) -> str:
        return "(UserAccountControl:1.2.840.113556.1.4.803:=2)"

    def lockout_time(self) -> str:
        return "lockouttime"

    def object_category(self) -> str:
        return "objectcategory"

    def object_class_group(self) -> str:
        return "group"

    def object_class_ou(self) -> str:
        return "organizationalunit"

    def object_class_person(self) -> str:
        return "person"

    def object_guid(self) -> str:
        return "objectguid"

    def object_guid_requires_conversion(self) -> bool:
        return True


class FreeIPA(Schema):
    def account_name(self) -> str:
        return "uid"

    def distinguished_name(self) -> str:
        return "dn"

    # FreeIPA has no user account control attribute of its own; these match
    # nothing unless it is added to the schema.
    def filter_enabled(self) -> str:
        return "(!(UserAccountControl:1.2.840.113556.1.4.803:=2))"

    def filter_disabled(self) -> str:
        return "(UserAccountControl:1.2.840.113556.1.4.803:=2)"

    def lockout_time(self) -> str:
        return "lockouttime"

    def object_category(self) -> str:
        return "objectclass"

    def object_class_group(self) -> str:
        return "ipausergroup"

    def object_class_ou(self) -> str:
        return "organizationalunit"

    def object_class_person(self) -> str:
        return "person"

    def object_class_user(self) -> str:
        return "organizationalPerson"

    def object_guid(self) -> str:
        return "ipaUniqueID"

    def object_guid_requires_conversion(self) -> bool:
        return False

    def user_principal_name(self) -> str:
        return "krbCanonicalName"


class Directory389(Schema):
    def account_name(self) -> str:
        return "uid"

    def distinguished_name(self) -> str:
        return "dn"

    def filter_enabled(self) -> str:
        return f"(!({self.lockout_time()}=*))"

    def filter_disabled(self) -> str:
        return f"({self.lockout_time()}=*)"

    def lockout_time(self) -> str:
        return "pwdAccountLockedTime"

    def object_category(self) -> str:
        return "objectclass"

    def object_class_group(self) -> str:
        return "groupofnames"

    def object_class_ou(self) -> str:
        return "organizationalUnit"

    def object_class_person(self) -> str:
        return "inetorgperson"

    def object_class_user(self) -> str:
        return "inetorgperson"

    def object_guid(self) -> str:
        return "nsuniqueid"

    def object_guid_requires_conversion(self) -> bool:
        return False
