"""
Compile a :py:class:`~ldapquery.query.Builder`'s predicates into an RFC 4515
search filter string.
"""

from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from .operators import Operator
from .typing import FilterBinding

if TYPE_CHECKING:
    from .query import Builder


class Grammar:
    """
    Stateless LDAP filter compiler.

    Field names and values reach the grammar already escaped (the builder
    escapes them when the predicate is added), so every method here is plain
    string assembly.
    """

    def __init__(self) -> None:
        self._compilers: dict[Operator, Callable[[str, str], str]] = {
            Operator.HAS: lambda field, _value: self.compile_has(field),
            Operator.NOT_HAS: lambda field, _value: self.compile_not_has(field),
            Operator.EQUALS: self.compile_equals,
            Operator.DOES_NOT_EQUAL: self.compile_does_not_equal,
            Operator.DOES_NOT_EQUAL_ALIAS: self.compile_does_not_equal_alias,
            Operator.GREATER_THAN_OR_EQUALS: self.compile_greater_than_or_equals,
            Operator.LESS_THAN_OR_EQUALS: self.compile_less_than_or_equals,
            Operator.APPROXIMATELY_EQUALS: self.compile_approximately_equals,
            Operator.STARTS_WITH: self.compile_starts_with,
            Operator.NOT_STARTS_WITH: self.compile_not_starts_with,
            Operator.ENDS_WITH: self.compile_ends_with,
            Operator.NOT_ENDS_WITH: self.compile_not_ends_with,
            Operator.CONTAINS: self.compile_contains,
            Operator.NOT_CONTAINS: self.compile_not_contains,
        }

    def wrap(self, query: str, prefix: str = "(", suffix: str = ")") -> str:
        """
        Produces: ``(query)``
        """
        return f"{prefix}{query}{suffix}"

    def compile(self, builder: "Builder") -> str:
        """
        Compile the filters on ``builder`` into a single filter string.

        Raw fragments come first, then the ``and`` predicates in the order they
        were added, then the ``or`` predicates.  A top level (non-nested) query
        with more than one predicate is wrapped in ``(&...)``.

        Args:
            builder: the query to compile

        Returns:
            The filter string.

        """
        ands = builder.filters["and"]
        ors = builder.filters["or"]
        raws = builder.filters["raw"]

        query = self.concatenate(raws)
        query = self.compile_wheres(ands, query)
        query = self.compile_or_wheres(ors, query)

        # A nested query gets wrapped by whoever nested it
        if not builder.is_nested():
            total = len(ands) + len(raws)
            if total > 1 or (len(ands) == 1 and len(ors) > 0):
                query = self.compile_and(query)
        return query

    def concatenate(self, bindings: Iterable[object] = ()) -> str:
        """
        Join filter fragments, skipping the ones that are empty.
        """
        return "".join(str(binding) for binding in bindings if str(binding) != "")

    def compile_equals(self, field: str, value: str) -> str:
        """
        Produces: ``(field=value)``
        """
        return self.wrap(f"{field}{Operator.EQUALS}{value}")

    def compile_does_not_equal(self, field: str, value: str) -> str:
        """
        Produces: ``(!(field=value))``
        """
        return self.compile_not(self.compile_equals(field, value))

    def compile_does_not_equal_alias(self, field: str, value: str) -> str:
        """
        Produces: ``(!(field=value))``
        """
        return self.compile_does_not_equal(field, value)

    def compile_greater_than_or_equals(self, field: str, value: str) -> str:
        """
        Produces: ``(field>=value)``
        """
        return self.wrap(f"{field}{Operator.GREATER_THAN_OR_EQUALS}{value}")

    def compile_less_than_or_equals(self, field: str, value: str) -> str:
        """
        Produces: ``(field<=value)``
        """
        return self.wrap(f"{field}{Operator.LESS_THAN_OR_EQUALS}{value}")

    def compile_approximately_equals(self, field: str, value: str) -> str:
        """
        Produces: ``(field~=value)``
        """
        return self.wrap(f"{field}{Operator.APPROXIMATELY_EQUALS}{value}")

    def compile_starts_with(self, field: str, value: str) -> str:
        """
        Produces: ``(field=value*)``
        """
        return self.wrap(f"{field}{Operator.EQUALS}{value}{Operator.HAS}")

    def compile_not_starts_with(self, field: str, value: str) -> str:
        """
        Produces: ``(!(field=value*))``
        """
        return self.compile_not(self.compile_starts_with(field, value))

    def compile_ends_with(self, field: str, value: str) -> str:
        """
        Produces: ``(field=*value)``
        """
        return self.wrap(f"{field}{Operator.EQUALS}{Operator.HAS}{value}")

    def compile_not_ends_with(self, field: str, value: str) -> str:
        """
        Produces: ``(!(field=*value))``
        """
        return self.compile_not(self.compile_ends_with(field, value))

    def compile_contains(self, field: str, value: str) -> str:
        """
        Produces: ``(field=*value*)``
        """
        return self.wrap(
            f"{field}{Operator.EQUALS}{Operator.HAS}{value}{Operator.HAS}"
        )

    def compile_not_contains(self, field: str, value: str) -> str:
        """
        Produces: ``(!(field=*value*))``
        """
        return self.compile_not(self.compile_contains(field, value))

    def compile_has(self, field: str) -> str:
        """
        Produces: ``(field=*)``
        """
        return self.wrap(f"{field}{Operator.EQUALS}{Operator.HAS}")

    def compile_not_has(self, field: str) -> str:
        """
        Produces: ``(!(field=*))``
        """
        return self.compile_not(self.compile_has(field))

    def compile_and(self, query: str) -> str:
        """
        Produces: ``(&query)``, or ``""`` if ``query`` is empty.
        """
        return self.wrap(query, "(&") if query else ""

    def compile_or(self, query: str) -> str:
        """
        Produces: ``(|query)``, or ``""`` if ``query`` is empty.
        """
        return self.wrap(query, "(|") if query else ""

    def compile_not(self, query: str) -> str:
        """
        Produces: ``(!query)``, or ``""`` if ``query`` is empty.
        """
        return self.wrap(query, "(!") if query else ""

    def compile_wheres(self, wheres: list[FilterBinding], query: str = "") -> str:
        for where in wheres:
            query += self.compile_where(where)
        return query

    def compile_or_wheres(self, or_wheres: list[FilterBinding], query: str = "") -> str:
        _or = "".join(self.compile_where(where) for where in or_wheres)
        # (|(QUERY)(ORWHEREQUERY)) when combined with anything else
        if (query and len(or_wheres) > 0) or len(or_wheres) > 1:
            query += self.compile_or(_or)
        else:
            query += _or
        return query

    def compile_where(self, where: FilterBinding) -> str:
        """
        Compile a single predicate using the rule for its operator.
        """
        operator = Operator.lookup(where["operator"])
        return self._compilers[operator](where["field"], where["value"])
