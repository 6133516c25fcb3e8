"""
The query builder: collects predicates, compiles them into a filter with
:py:class:`~ldapquery.grammar.Grammar`, runs the search through the session
and hands the results to :py:class:`~ldapquery.processor.Processor`.
"""

import hashlib
import logging
import time
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, cast

from ldap.controls import LDAPControl, SimplePagedResultsControl

from ldapquery import ldap

from .grammar import Grammar
from .models import Model
from .operators import Operator
from .processor import Paginator, Processor, SortFlags
from .schemas import ActiveDirectory, Schema
from .signals import query_executed
from .typing import FilterBinding, RawEntries, RawPages
from .utils import escape, string_guid_to_hex, unescape

if TYPE_CHECKING:
    from .cache import TTL, Cache
    from .connection import LdapConnection, SearchResult

_logger = logging.getLogger("django-ldapquery")

#: Marks an argument the caller did not pass, as opposed to one passed as ``None``.
NOT_PROVIDED = object()


class Builder:
    """
    A mutable description of one directory search.

    Every mutator returns the builder so calls can be chained::

        users = (
            Builder(connection)
            .in_("ou=people,dc=example,dc=com")
            .where("objectclass", "user")
            .where_starts_with("cn", "Jo")
            .sort_by("cn")
            .get()
        )

    Args:
        connection: the session searches are run on

    Keyword Args:
        grammar: the filter compiler; a new :py:class:`~ldapquery.grammar.Grammar`
            by default
        schema: attribute and object class names; Active Directory by default
        cache: where to keep results when :py:meth:`cache` is requested
        logger: where query events are logged

    """

    class InvalidPredicate(ValueError):
        """
        Raised when a predicate uses an unknown operator, names a filter type
        that does not exist, or is missing one of its keys.
        """

    def __init__(
        self,
        connection: "LdapConnection",
        grammar: Grammar | None = None,
        schema: Schema | None = None,
        cache: "Cache | None" = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.connection = connection
        self.grammar: Grammar = grammar or Grammar()
        self.schema: Schema = schema or ActiveDirectory()
        self._cache: Cache | None = cache
        self.logger: logging.Logger = logger if logger is not None else _logger

        self.columns: list[str] = ["*"]
        self.filters: dict[str, list[Any]] = {"and": [], "or": [], "raw": []}
        self.size_limit: int = 0
        self.paginated: bool = False
        self.type: str = "search"
        self._dn: str | None = None
        self._raw: bool = False
        self._nested: bool = False
        self._sort_by_field: str = ""
        self._sort_by_direction: str = ""
        self._sort_by_flags: SortFlags | None = None
        self.caching: bool = False
        self.cache_until: TTL = None
        self.flush_cache: bool = False
        self._compiled: str | None = None

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    def get_connection(self) -> "LdapConnection":
        return self.connection

    def get_grammar(self) -> Grammar:
        return self.grammar

    def get_schema(self) -> Schema:
        return self.schema

    def set_connection(self, connection: "LdapConnection") -> "Builder":
        self.connection = connection
        return self

    def set_grammar(self, grammar: Grammar) -> "Builder":
        self.grammar = grammar
        self._compiled = None
        return self

    def set_schema(self, schema: Schema) -> "Builder":
        """
        Use ``schema`` for attribute names, the default object-class predicate
        and result typing from now on.
        """
        self.schema = schema
        self._compiled = None
        return self

    def set_cache(self, cache: "Cache | None" = None) -> "Builder":
        self._cache = cache
        return self

    def new_instance(self, base_dn: str | None = None) -> "Builder":
        """
        Return a fresh builder on the same session, grammar, schema and logger.

        Keyword Args:
            base_dn: the new builder's base DN; defaults to this builder's

        Returns:
            The new builder.

        """
        dn = self.get_dn() if base_dn is None else base_dn
        return type(self)(
            self.connection, self.grammar, self.schema, logger=self.logger
        ).set_dn(dn)

    def new_nested_instance(
        self, callback: Callable[["Builder"], Any] | None = None
    ) -> "Builder":
        """
        Return a new builder marked as nested, after letting ``callback`` add
        its predicates to it.
        """
        query = self.new_instance().nested()
        if callback is not None:
            callback(query)
        return query

    def new_processor(self) -> Processor:
        return Processor(self)

    # ------------------------------------------------------------------
    # Scope
    # ------------------------------------------------------------------

    def get_dn(self) -> str:
        return self._dn or ""

    def set_dn(self, dn: "str | Model | None" = None) -> "Builder":
        """
        Set the base DN searches start from.

        Args:
            dn: a DN, a record (whose DN is used), or ``None`` for the root

        """
        self._dn = dn.get_dn() if isinstance(dn, Model) else dn
        return self

    def in_(self, dn: "str | Model | None" = None) -> "Builder":
        return self.set_dn(dn)

    def limit(self, limit: int = 0) -> "Builder":
        """
        Ask the server for at most ``limit`` entries.  0 means no limit.
        """
        self.size_limit = limit
        return self

    def read(self) -> "Builder":
        """Search only the base DN entry itself."""
        self.type = "read"
        return self

    def listing(self) -> "Builder":
        """Search only the immediate children of the base DN."""
        self.type = "listing"
        return self

    def recursive(self) -> "Builder":
        """Search the whole subtree under the base DN.  This is the default."""
        self.type = "search"
        return self

    def raw(self, raw: bool = True) -> "Builder":  # noqa: FBT001, FBT002
        """Return ``(dn, attributes)`` tuples instead of records."""
        self._raw = raw
        return self

    def nested(self, nested: bool = True) -> "Builder":  # noqa: FBT001, FBT002
        self._nested = nested
        self._compiled = None
        return self

    def cache(
        self,
        until: "TTL" = None,
        flush: bool = False,  # noqa: FBT001, FBT002
    ) -> "Builder":
        """
        Keep the results of this query in the builder's cache.

        Keyword Args:
            until: how long to keep them; see :py:meth:`ldapquery.cache.Cache.timeout`
            flush: throw away any cached results and run the query again

        """
        self.caching = True
        self.cache_until = until
        self.flush_cache = flush
        return self

    def is_nested(self) -> bool:
        return self._nested

    def is_raw(self) -> bool:
        return self._raw

    def is_paginated(self) -> bool:
        return self.paginated

    def is_sorted(self) -> bool:
        return bool(self._sort_by_field)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select(self, *columns: str | list[str] | tuple[str, ...]) -> "Builder":
        """
        Choose the attributes to return.  Accepts either several names or one
        list of names; an empty selection keeps the current one.
        """
        if len(columns) == 1 and isinstance(columns[0], list | tuple):
            columns = tuple(columns[0])
        if columns:
            self.columns = [str(column) for column in columns]
        return self

    def get_selects(self) -> list[str]:
        """
        Return the attributes to request.

        Unless every attribute (``*``) is selected, the object category and
        object class are always added so records can be typed.
        """
        selects = list(self.columns)
        if "*" not in selects:
            selects.append(self.schema.object_category())
            selects.append(self.schema.object_class())
        return selects

    def has_selects(self) -> bool:
        return len(self.get_selects()) > 0

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    def where(
        self,
        field: str | Mapping[str, Any] | list[Any],
        operator: "str | Operator | None" = None,
        value: Any = NOT_PROVIDED,
        *,
        boolean: str = "and",
        raw: bool = False,
    ) -> "Builder":
        """
        Add a predicate.

        With only a field and a value, the predicate is an equality test::

            builder.where("cn", "John")           # (cn=John)
            builder.where("cn", "!=", "John")     # (!(cn=John))
            builder.where("mail", "*")            # (mail=*)

        ``field`` may also be a mapping of ``{field: value}`` equality tests, or
        a list of ``[field, operator, value]`` triples (the value is optional).

        Args:
            field: the attribute name, a mapping, or a list of triples

        Keyword Args:
            operator: one of the :py:class:`~ldapquery.operators.Operator`
                symbols, or the value if ``value`` is not given
            value: the value to compare against; ``None`` means ``""``
            boolean: ``"and"`` or ``"or"``
            raw: don't escape ``value``

        Raises:
            Builder.InvalidPredicate: the operator is not a known symbol.

        """
        if isinstance(field, Mapping):
            for key, item in field.items():
                self.where(key, Operator.EQUALS, item, boolean=boolean, raw=raw)
            return self
        if isinstance(field, list):
            for item in field:
                if not isinstance(item, list | tuple) or len(item) < 2:  # noqa: PLR2004
                    msg = f"Invalid where condition: {item!r}"
                    raise self.InvalidPredicate(msg)
                self.where(
                    item[0],
                    item[1],
                    item[2] if len(item) > 2 else NOT_PROVIDED,  # noqa: PLR2004
                    boolean=boolean,
                    raw=raw,
                )
            return self

        if value is NOT_PROVIDED:
            if operator is not None and operator not in (Operator.HAS, Operator.NOT_HAS):
                value, operator = operator, Operator.EQUALS
            else:
                value = None
        if value is None:
            value = ""
        try:
            symbol = Operator.lookup(cast("str", operator))
        except ValueError as e:
            msg = f"Invalid where operator: {operator}"
            raise self.InvalidPredicate(msg) from e

        value = str(value) if raw else escape(value)
        binding: FilterBinding = {
            "field": escape(field),
            "operator": symbol.value,
            "value": value,
        }
        return self.add_filter(boolean, binding)

    def where_raw(
        self,
        field: str | Mapping[str, Any] | list[Any],
        operator: "str | Operator | None" = None,
        value: Any = NOT_PROVIDED,
    ) -> "Builder":
        """
        Like :py:meth:`where`, but the value is used as is.  Use this for values
        that are already escaped, such as a GUID from
        :py:func:`~ldapquery.utils.string_guid_to_hex`.
        """
        return self.where(field, operator, value, raw=True)

    def or_where(
        self,
        field: str | Mapping[str, Any] | list[Any],
        operator: "str | Operator | None" = None,
        value: Any = NOT_PROVIDED,
    ) -> "Builder":
        return self.where(field, operator, value, boolean="or")

    def or_where_raw(
        self,
        field: str | Mapping[str, Any] | list[Any],
        operator: "str | Operator | None" = None,
        value: Any = NOT_PROVIDED,
    ) -> "Builder":
        return self.where(field, operator, value, boolean="or", raw=True)

    def where_equals(self, field: str, value: Any) -> "Builder":
        return self.where(field, Operator.EQUALS, value)

    def where_not_equals(self, field: str, value: Any) -> "Builder":
        return self.where(field, Operator.DOES_NOT_EQUAL, value)

    def where_approximately_equals(self, field: str, value: Any) -> "Builder":
        return self.where(field, Operator.APPROXIMATELY_EQUALS, value)

    def where_has(self, field: str) -> "Builder":
        return self.where(field, Operator.HAS)

    def where_not_has(self, field: str) -> "Builder":
        return self.where(field, Operator.NOT_HAS)

    def where_contains(self, field: str, value: Any) -> "Builder":
        return self.where(field, Operator.CONTAINS, value)

    def where_not_contains(self, field: str, value: Any) -> "Builder":
        return self.where(field, Operator.NOT_CONTAINS, value)

    def where_starts_with(self, field: str, value: Any) -> "Builder":
        return self.where(field, Operator.STARTS_WITH, value)

    def where_not_starts_with(self, field: str, value: Any) -> "Builder":
        return self.where(field, Operator.NOT_STARTS_WITH, value)

    def where_ends_with(self, field: str, value: Any) -> "Builder":
        return self.where(field, Operator.ENDS_WITH, value)

    def where_not_ends_with(self, field: str, value: Any) -> "Builder":
        return self.where(field, Operator.NOT_ENDS_WITH, value)

    def where_in(self, field: str, values: list[Any]) -> "Builder":
        """
        Match entries whose ``field`` equals any of ``values``.
        """

        def equals_any(query: Builder) -> None:
            for value in values:
                query.where_equals(field, value)

        return self.or_filter(equals_any)

    def where_between(self, field: str, values: list[Any] | tuple[Any, Any]) -> "Builder":
        """
        Match entries whose ``field`` lies between ``values[0]`` and ``values[1]``,
        inclusive.
        """
        return self.where(
            [
                [field, Operator.GREATER_THAN_OR_EQUALS, values[0]],
                [field, Operator.LESS_THAN_OR_EQUALS, values[1]],
            ]
        )

    def where_member_of(self, dn: str) -> "Builder":
        """
        Match entries that are members of the group ``dn``, directly or through
        nested groups.
        """
        return self.where_equals(self.schema.member_of_recursive(), dn)

    def where_enabled(self) -> "Builder":
        return self.raw_filter(self.schema.filter_enabled())

    def where_disabled(self) -> "Builder":
        return self.raw_filter(self.schema.filter_disabled())

    def or_where_has(self, field: str) -> "Builder":
        return self.or_where(field, Operator.HAS)

    def or_where_not_has(self, field: str) -> "Builder":
        return self.or_where(field, Operator.NOT_HAS)

    def or_where_equals(self, field: str, value: Any) -> "Builder":
        return self.or_where(field, Operator.EQUALS, value)

    def or_where_not_equals(self, field: str, value: Any) -> "Builder":
        return self.or_where(field, Operator.DOES_NOT_EQUAL, value)

    def or_where_approximately_equals(self, field: str, value: Any) -> "Builder":
        return self.or_where(field, Operator.APPROXIMATELY_EQUALS, value)

    def or_where_contains(self, field: str, value: Any) -> "Builder":
        return self.or_where(field, Operator.CONTAINS, value)

    def or_where_not_contains(self, field: str, value: Any) -> "Builder":
        return self.or_where(field, Operator.NOT_CONTAINS, value)

    def or_where_starts_with(self, field: str, value: Any) -> "Builder":
        return self.or_where(field, Operator.STARTS_WITH, value)

    def or_where_not_starts_with(self, field: str, value: Any) -> "Builder":
        return self.or_where(field, Operator.NOT_STARTS_WITH, value)

    def or_where_ends_with(self, field: str, value: Any) -> "Builder":
        return self.or_where(field, Operator.ENDS_WITH, value)

    def or_where_not_ends_with(self, field: str, value: Any) -> "Builder":
        return self.or_where(field, Operator.NOT_ENDS_WITH, value)

    def or_where_member_of(self, dn: str) -> "Builder":
        return self.or_where_equals(self.schema.member_of_recursive(), dn)

    def dynamic_where(self, finder: str, *values: Any) -> "Builder":
        """
        Add equality predicates named by ``finder``, a list of attribute names
        joined by ``_and_`` or ``_or_``::

            builder.dynamic_where("cn_and_mail", "John", "john@example.com")
            builder.dynamic_where("where_cn_or_sn", "Smith", "Smith")

        Each attribute takes the next of ``values``; the connector before it
        decides whether it is ANDed or ORed in.

        Raises:
            Builder.InvalidPredicate: there are fewer values than attributes.

        """
        tokens = finder.lower().split("_")
        if tokens and tokens[0] == "where":
            tokens = tokens[1:]
        connector = "and"
        index = 0
        for token in tokens:
            if token in ("and", "or"):
                connector = token
                continue
            if index >= len(values):
                msg = f"No value given for '{token}' in '{finder}'"
                raise self.InvalidPredicate(msg)
            self.where(token, Operator.EQUALS, values[index], boolean=connector)
            index += 1
        return self

    # ------------------------------------------------------------------
    # Nested filters
    # ------------------------------------------------------------------

    def raw_filter(self, *filters: str | list[str] | tuple[str, ...]) -> "Builder":
        """
        Add filter fragments exactly as given.  Accepts several fragments or one
        list of them.
        """
        if len(filters) == 1 and isinstance(filters[0], list | tuple):
            filters = tuple(filters[0])
        for _filter in filters:
            # an empty fragment would suppress the default predicate
            if str(_filter) == "":
                continue
            self.filters["raw"].append(_filter)
        self._compiled = None
        return self

    def and_filter(self, callback: Callable[["Builder"], Any]) -> "Builder":
        """
        Let ``callback`` fill a nested builder and add its predicates as one
        ``(&...)`` group.
        """
        query = self.new_nested_instance(callback)
        return self.raw_filter(self.grammar.compile_and(query.get_query()))

    def or_filter(self, callback: Callable[["Builder"], Any]) -> "Builder":
        """
        Let ``callback`` fill a nested builder and add its predicates as one
        ``(|...)`` group.
        """
        query = self.new_nested_instance(callback)
        return self.raw_filter(self.grammar.compile_or(query.get_query()))

    def not_filter(self, callback: Callable[["Builder"], Any]) -> "Builder":
        """
        Let ``callback`` fill a nested builder and add its predicates negated.
        """
        query = self.new_nested_instance(callback)
        return self.raw_filter(self.grammar.compile_not(query.get_query()))

    def add_filter(self, type: str, binding: Mapping[str, Any]) -> "Builder":  # noqa: A002
        """
        Add an already escaped predicate to the ``type`` bucket.

        Args:
            type: ``"and"``, ``"or"`` or ``"raw"``
            binding: a mapping with ``field``, ``operator`` and ``value`` keys

        Raises:
            Builder.InvalidPredicate: ``type`` is not a bucket, or ``binding``
                lacks a key.

        """
        if type not in self.filters:
            msg = f"Invalid filter type: {type}."
            raise self.InvalidPredicate(msg)
        missing = [key for key in ("field", "operator", "value") if key not in binding]
        if missing:
            msg = f"Invalid filter bindings. Missing: {', '.join(missing)} keys."
            raise self.InvalidPredicate(msg)
        self.filters[type].append(binding)
        self._compiled = None
        return self

    def clear_filters(self) -> "Builder":
        for bucket in self.filters.values():
            bucket.clear()
        self._compiled = None
        return self

    # ------------------------------------------------------------------
    # Compilation
    # ------------------------------------------------------------------

    def get_query(self) -> str:
        """
        Compile the predicates into a filter string.

        A query with no predicates at all matches every entry that has an
        object class.

        Returns:
            The filter.

        """
        if not any(self.filters.values()):
            self.where_has(self.schema.object_class())
        if self._compiled is None:
            self._compiled = self.grammar.compile(self)
        return self._compiled

    def get_unescaped_query(self) -> str:
        return unescape(self.get_query())

    def __str__(self) -> str:
        return self.get_query()

    # ------------------------------------------------------------------
    # Sorting
    # ------------------------------------------------------------------

    def sort_by(
        self, field: str, direction: str = "asc", flags: SortFlags | int | None = None
    ) -> "Builder":
        """
        Sort records by ``field`` once they are fetched.

        Args:
            field: the attribute to sort by

        Keyword Args:
            direction: ``"asc"`` or ``"desc"``, case-insensitive; anything else
                is ignored
            flags: how values are compared; natural and case-insensitive by
                default

        """
        self._sort_by_field = field
        direction = direction.lower()
        if direction in ("asc", "desc"):
            self._sort_by_direction = direction
        self._sort_by_flags = SortFlags.default() if flags is None else SortFlags(flags)
        return self

    def get_sort_by_field(self) -> str:
        return self._sort_by_field

    def get_sort_by_direction(self) -> str:
        return self._sort_by_direction

    def get_sort_by_flags(self) -> SortFlags:
        return (
            self._sort_by_flags
            if self._sort_by_flags is not None
            else SortFlags.default()
        )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def get(self) -> list[Any]:
        """
        Run the query.

        Returns:
            The matching records, or ``(dn, attributes)`` tuples for a raw query.

        """
        return self.query(self.get_query())

    def query(self, query: str) -> list[Any]:
        """
        Run ``query`` with this builder's scope, selection and limit.

        Args:
            query: an LDAP filter

        Returns:
            The processed results.

        """
        start = time.perf_counter()

        def callback() -> RawEntries:
            return self.parse(self.run(query))

        if self.caching and self._cache is not None:
            results = self.get_cached_response(self.get_cache_key(query), callback)
        else:
            results = callback()
        self.log_query(self.type, query, self.get_elapsed_time(start))
        return self.new_processor().process(results)

    def paginate(
        self,
        per_page: int = 1000,
        current_page: int = 0,
        is_critical: bool = True,  # noqa: FBT001, FBT002
    ) -> Paginator:
        """
        Run the query with the simple paged results control, fetching every page.

        Keyword Args:
            per_page: entries per round-trip, and the paginator's page size
            current_page: the page the returned paginator iterates
            is_critical: mark the paging control as critical

        Returns:
            A paginator over all the results.

        """
        self.paginated = True
        start = time.perf_counter()
        query = self.get_query()

        def callback() -> RawPages:
            return self.run_paginate(query, per_page, is_critical)

        if self.caching and self._cache is not None:
            pages = self.get_cached_response(self.get_cache_key(query), callback)
        else:
            pages = callback()
        self.log_query("paginate", query, self.get_elapsed_time(start))
        return self.new_processor().process_paginated(pages, per_page, current_page)

    def get_cached_response(self, key: str, callback: Callable[[], Any]) -> Any:
        cache = cast("Cache", self._cache)
        if self.flush_cache:
            cache.delete(key)
        return cache.remember(key, self.cache_until, callback)

    def run(
        self, query: str, serverctrls: list[LDAPControl] | None = None
    ) -> "SearchResult":
        """
        Send ``query`` to the session with the scope matching this builder's
        type.
        """
        methods = {
            "search": self.connection.search,
            "listing": self.connection.listing,
            "read": self.connection.read,
        }
        return methods[self.type](
            self.get_dn(),
            query,
            self.get_selects(),
            False,  # noqa: FBT003
            self.size_limit,
            serverctrls=serverctrls,
        )

    def run_paginate(self, query: str, per_page: int, is_critical: bool) -> RawPages:  # noqa: FBT001
        if self.connection.supports_server_controls_in_methods():
            return self.compatible_pagination_callback(query, per_page, is_critical)
        return self.legacy_pagination_callback(query, per_page, is_critical)

    def compatible_pagination_callback(
        self, query: str, per_page: int, is_critical: bool  # noqa: FBT001
    ) -> RawPages:
        """
        Page through the results by sending a paged results control with every
        search.  Errors from the session propagate.
        """
        paging = SimplePagedResultsControl(is_critical, size=per_page, cookie="")
        pages: RawPages = []
        while True:
            result = self.run(query, serverctrls=[paging])
            controls = self.connection.parse_result(result)
            pages.append(self.parse(result))
            paged_controls = [
                c
                for c in controls
                if c.controlType == SimplePagedResultsControl.controlType
            ]
            # No control back means the server did not page this search
            if not paged_controls or not paged_controls[0].cookie:
                break
            paging.cookie = paged_controls[0].cookie
        return pages

    def legacy_pagination_callback(
        self, query: str, per_page: int, is_critical: bool  # noqa: FBT001
    ) -> RawPages:
        """
        Page through the results with a paging control set on the session
        itself.  A failed round-trip ends pagination as if there were no more
        pages.
        """
        pages: RawPages = []
        cookie: bytes | str = ""
        try:
            while True:
                self.connection.set_continuation_control(per_page, is_critical, cookie)
                try:
                    result = self.run(query)
                except ldap.LDAPError as e:
                    self.logger.warning(
                        "ldapquery.query.paginate.failed filter=%s basedn=%s error=%s",
                        query,
                        self.get_dn(),
                        e,
                    )
                    break
                cookie = self.connection.read_continuation_cookie(result)
                pages.append(self.parse(result))
                if not cookie:
                    break
        finally:
            self.connection.set_continuation_control()
        return pages

    def parse(self, result: "SearchResult | None") -> RawEntries:
        """
        Pull the entries out of ``result`` and release it.
        """
        if result is None:
            return []
        entries = self.connection.materialize_entries(result)
        self.connection.release_result(result)
        return entries

    def get_cache_key(self, query: str) -> str:
        """
        Return the cache key for ``query`` run with this builder's settings.
        """
        key = "".join(
            [
                self.connection.get_host(),
                self.type,
                self.get_dn(),
                query,
                "".join(self.get_selects()),
                str(self.size_limit),
                "1" if self.paginated else "",
            ]
        )
        return hashlib.md5(key.encode("utf-8")).hexdigest()  # noqa: S324

    def log_query(self, type: str, query: str, elapsed: float) -> None:  # noqa: A002
        self.logger.debug(
            "ldapquery.query.%s filter=%s basedn=%s time=%.2fms",
            type,
            query,
            self.get_dn(),
            elapsed,
        )
        query_executed.send(sender=Builder, query=self, type=type, time=elapsed)

    @staticmethod
    def get_elapsed_time(start: float) -> float:
        return round((time.perf_counter() - start) * 1000, 2)

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def first(self, *columns: str | list[str]) -> Any:
        """
        Return the first result, or ``None`` if there are none.
        """
        results = self.select(*columns).limit(1).get()
        return results[0] if results else None

    def first_or_fail(self, *columns: str | list[str]) -> Any:
        """
        Return the first result.

        Raises:
            Model.DoesNotExist: nothing matched.

        """
        record = self.first(*columns)
        if record is None:
            raise Model.DoesNotExist(self.get_unescaped_query(), self.get_dn())
        return record

    def find_by(self, attribute: str, value: Any, columns: list[str] | None = None) -> Any:
        try:
            return self.find_by_or_fail(attribute, value, columns)
        except Model.DoesNotExist:
            return None

    def find_by_or_fail(
        self, attribute: str, value: Any, columns: list[str] | None = None
    ) -> Any:
        return self.where_equals(attribute, value).first_or_fail(columns or [])

    def _prepare_anr_equivalent_query(self, value: Any) -> "Builder":
        def locate(query: Builder) -> None:
            for attribute in (
                self.schema.name(),
                self.schema.email(),
                self.schema.user_id(),
                self.schema.last_name(),
                self.schema.first_name(),
                self.schema.common_name(),
                self.schema.display_name(),
            ):
                query.where_equals(attribute, value)

        return self.or_filter(locate)

    def find(self, value: Any, columns: list[str] | None = None) -> Any:
        """
        Find an entry by any of its names.

        Active Directory does this itself through ANR; elsewhere the name, mail,
        uid, surname, given name, common name and display name attributes are
        ORed together.

        Args:
            value: the name to look for, or a list of names (see
                :py:meth:`find_many`)

        Keyword Args:
            columns: the attributes to return

        Returns:
            The first match, or ``None``.

        """
        if isinstance(value, list | tuple):
            return self.find_many(list(value), columns)
        if not isinstance(self.schema, ActiveDirectory):
            return self._prepare_anr_equivalent_query(value).first(columns or [])
        return self.find_by(self.schema.anr(), value, columns)

    def find_or_fail(self, value: Any, columns: list[str] | None = None) -> Any:
        entry = self.find(value, columns)
        if entry is None:
            raise Model.DoesNotExist(self.get_unescaped_query(), self.get_dn())
        return entry

    def find_many(self, values: list[Any], columns: list[str] | None = None) -> list[Any]:
        """
        Find every entry matching any of ``values`` by name.
        """
        self.select(columns or [])
        if not isinstance(self.schema, ActiveDirectory):

            def any_of(query: Builder) -> None:
                for value in values:
                    query._prepare_anr_equivalent_query(value)

            return self.or_filter(any_of).get()
        return self.find_many_by(self.schema.anr(), values)

    def find_many_by(
        self, attribute: str, values: list[Any], columns: list[str] | None = None
    ) -> list[Any]:
        query = self.select(columns or [])
        for value in values:
            query.or_where({attribute: value})
        return query.get()

    def find_by_dn(self, dn: str | None, columns: list[str] | None = None) -> Any:
        try:
            return self.find_by_dn_or_fail(dn or "", columns)
        except Model.DoesNotExist:
            return None

    def find_by_dn_or_fail(self, dn: str, columns: list[str] | None = None) -> Any:
        """
        Read the entry at ``dn``.

        The returned record's builder is pointed back at this builder's original
        base DN.

        Raises:
            Model.DoesNotExist: there is no entry at ``dn``.

        """
        base = self.get_dn()
        try:
            record = (
                self.set_dn(dn)
                .read()
                .where_has(self.schema.object_class())
                .first_or_fail(columns or [])
            )
        except ldap.NO_SUCH_OBJECT as e:  # type: ignore[attr-defined]
            raise Model.DoesNotExist(self.get_unescaped_query(), dn) from e
        if isinstance(record, Model):
            record.set_query(self.in_(base))
        return record

    def find_by_guid(self, guid: str, columns: list[str] | None = None) -> Any:
        try:
            return self.find_by_guid_or_fail(guid, columns)
        except Model.DoesNotExist:
            return None

    def find_by_guid_or_fail(self, guid: str, columns: list[str] | None = None) -> Any:
        """
        Find the entry with the string GUID ``guid``.

        Where the directory stores GUIDs in binary, the filter uses the escaped
        byte form.
        """
        if self.schema.object_guid_requires_conversion():
            guid = string_guid_to_hex(guid)
        return (
            self.select(columns or [])
            .where_raw({self.schema.object_guid(): guid})
            .first_or_fail()
        )

    def find_by_sid(self, sid: str, columns: list[str] | None = None) -> Any:
        try:
            return self.find_by_sid_or_fail(sid, columns)
        except Model.DoesNotExist:
            return None

    def find_by_sid_or_fail(self, sid: str, columns: list[str] | None = None) -> Any:
        return self.find_by_or_fail(self.schema.object_sid(), sid, columns)

    def find_base_dn(self) -> str | None:
        """
        Read the directory's default naming context from its root DSE.

        Returns:
            The naming context, or ``None`` if the root DSE does not have one.

        """
        result = (
            self.set_dn(None)
            .read()
            .raw()
            .where_has(self.schema.object_class())
            .first()
        )
        if result is None:
            return None
        _, attributes = result
        values = attributes.get(self.schema.default_naming_context())
        if not values:
            return None
        value = values[0]
        return value.decode("utf-8") if isinstance(value, bytes) else value
