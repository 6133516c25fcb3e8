"""
The entry point for querying a directory: a :py:class:`Factory` hands out
:py:class:`~ldapquery.query.Builder` instances already scoped to the
configured base DN, schema and cache.
"""

import logging
from typing import Any, cast

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

from .cache import Cache
from .connection import LdapConnection
from .grammar import Grammar
from .models import Model, RootDse
from .operators import Operator
from .processor import Paginator
from .query import Builder
from .schemas import ActiveDirectory, Schema


class Factory:
    """
    Builds queries against one directory.

    Args:
        connection: the session to search on

    Keyword Args:
        schema: attribute and object class names; Active Directory by default
        base_dn: the DN every query starts from
        cache: the cache queries use when asked to
        logger: where query events are logged

    """

    def __init__(
        self,
        connection: LdapConnection,
        schema: Schema | None = None,
        base_dn: str = "",
        cache: Cache | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.connection = connection
        self.schema: Schema = schema or ActiveDirectory()
        self.base_dn = base_dn
        self.cache = cache
        self.logger: logging.Logger = logger or logging.getLogger("django-ldapquery")

    @classmethod
    def from_settings(cls, server: str = "default", key: str = "read") -> "Factory":
        """
        Build a factory from ``settings.LDAP_SERVERS[server]``.

        Example:
            .. code-block:: python

                LDAP_SERVERS = {
                    "default": {
                        "basedn": "dc=example,dc=com",
                        "schema": "ldapquery.schemas.ActiveDirectory",
                        "cache": "default",
                        "read": {
                            "url": "ldaps://ldap.example.com",
                            "user": "cn=reader,dc=example,dc=com",
                            "password": "secret",
                        },
                    },
                }

        Keyword Args:
            server: the key in ``settings.LDAP_SERVERS``
            key: which connection of that server to use

        Raises:
            ImproperlyConfigured: the server or connection is not configured,
                or ``schema`` cannot be imported.

        Returns:
            A configured factory.

        """
        servers = getattr(settings, "LDAP_SERVERS", None)
        if not servers:
            msg = "settings.LDAP_SERVERS is not defined"
            raise ImproperlyConfigured(msg)
        try:
            config = servers[server]
        except KeyError as e:
            msg = f"settings.LDAP_SERVERS has no server named '{server}'"
            raise ImproperlyConfigured(msg) from e
        if key not in config:
            msg = f"settings.LDAP_SERVERS['{server}'] has no '{key}' connection"
            raise ImproperlyConfigured(msg)
        schema_path = config.get("schema", "ldapquery.schemas.ActiveDirectory")
        try:
            schema_class = import_string(schema_path)
        except ImportError as e:
            msg = f"settings.LDAP_SERVERS['{server}']['schema']: cannot import {schema_path}"
            raise ImproperlyConfigured(msg) from e
        cache = Cache.from_settings(config["cache"]) if config.get("cache") else None
        return cls(
            LdapConnection(config[key]),
            schema=schema_class(),
            base_dn=config.get("basedn", ""),
            cache=cache,
        )

    def set_connection(self, connection: LdapConnection) -> "Factory":
        self.connection = connection
        return self

    def set_schema(self, schema: Schema | None = None) -> "Factory":
        """
        Use ``schema`` for queries made from now on; Active Directory if not
        given.
        """
        self.schema = schema or ActiveDirectory()
        return self

    def set_base_dn(self, base_dn: str) -> "Factory":
        self.base_dn = base_dn
        return self

    def new_query(self) -> Builder:
        """
        Return a new builder rooted at the factory's base DN.
        """
        return Builder(
            self.connection,
            Grammar(),
            self.schema,
            cache=self.cache,
            logger=self.logger,
        ).in_(self.base_dn)

    def get(self) -> list[Any]:
        """
        Return every entry under the base DN that has a common name.
        """
        return self.new_query().where_has(self.schema.common_name()).get()

    def users(self) -> Builder:
        wheres: list[list[Any]] = [
            [self.schema.object_class(), Operator.EQUALS, self.schema.object_class_user()],
            [
                self.schema.object_category(),
                Operator.EQUALS,
                self.schema.object_category_person(),
            ],
        ]
        # Only Active Directory accepts excluding contacts this way
        if isinstance(self.schema, ActiveDirectory):
            wheres.append(
                [
                    self.schema.object_class(),
                    Operator.DOES_NOT_EQUAL,
                    self.schema.object_class_contact(),
                ]
            )
        return self.where(wheres)

    def _of_class(self, object_class: str) -> Builder:
        return self.where({self.schema.object_class(): object_class})

    def printers(self) -> Builder:
        return self._of_class(self.schema.object_class_printer())

    def ous(self) -> Builder:
        return self._of_class(self.schema.object_class_ou())

    def organizations(self) -> Builder:
        return self._of_class(self.schema.object_class_organization())

    def groups(self) -> Builder:
        return self._of_class(self.schema.object_class_group())

    def containers(self) -> Builder:
        return self._of_class(self.schema.object_class_container())

    def contacts(self) -> Builder:
        return self._of_class(self.schema.object_class_contact())

    def computers(self) -> Builder:
        return self._of_class(self.schema.object_class_computer())

    def get_root_dse(self) -> RootDse | None:
        """
        Read the directory's root DSE.

        Returns:
            The root DSE, or ``None`` if the server did not return it.

        """
        query = self.new_query()
        root = query.in_("").read().where_has(self.schema.object_class()).first()
        if root is None:
            return None
        return cast(
            "RootDse",
            RootDse(query=query).set_raw_attributes(root.get_attributes(), dn=""),
        )

    # Shortcuts to a new query

    def where(self, *args: Any, **kwargs: Any) -> Builder:
        return self.new_query().where(*args, **kwargs)

    def select(self, *columns: str | list[str]) -> Builder:
        return self.new_query().select(*columns)

    def find(self, value: Any, columns: list[str] | None = None) -> Any:
        return self.new_query().find(value, columns)

    def find_by_dn(self, dn: str | None, columns: list[str] | None = None) -> Model | None:
        return self.new_query().find_by_dn(dn, columns)

    def find_by_guid(self, guid: str, columns: list[str] | None = None) -> Model | None:
        return self.new_query().find_by_guid(guid, columns)

    def find_by_sid(self, sid: str, columns: list[str] | None = None) -> Model | None:
        return self.new_query().find_by_sid(sid, columns)

    def paginate(self, per_page: int = 1000, current_page: int = 0) -> Paginator:
        return self.new_query().paginate(per_page, current_page)
