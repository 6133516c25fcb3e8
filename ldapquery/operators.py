"""
The closed set of comparison operators a query predicate may use.
"""

from enum import Enum


class Operator(str, Enum):
    """
    Comparison operators understood by :py:class:`~ldapquery.grammar.Grammar`.

    The first eight map to native filter syntax.  The ``*_WITH`` and
    ``*CONTAINS`` members have no filter symbol of their own; the grammar
    expresses them by placing ``*`` wildcards around the value.
    """

    HAS = "*"
    NOT_HAS = "!*"
    EQUALS = "="
    DOES_NOT_EQUAL = "!"
    DOES_NOT_EQUAL_ALIAS = "!="
    GREATER_THAN_OR_EQUALS = ">="
    LESS_THAN_OR_EQUALS = "<="
    APPROXIMATELY_EQUALS = "~="
    STARTS_WITH = "starts_with"
    NOT_STARTS_WITH = "not_starts_with"
    ENDS_WITH = "ends_with"
    NOT_ENDS_WITH = "not_ends_with"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def all(cls) -> dict[str, str]:
        """
        Return every operator as a ``{name: symbol}`` table.
        """
        return {member.name: member.value for member in cls}

    @classmethod
    def lookup(cls, symbol: "str | Operator") -> "Operator":
        """
        Resolve ``symbol`` to its :py:class:`Operator`.  Lookup is by value and
        case-sensitive.

        Args:
            symbol: an operator symbol such as ``"="`` or ``"starts_with"``

        Raises:
            ValueError: ``symbol`` is not in the vocabulary.

        Returns:
            The matching operator.

        """
        if isinstance(symbol, Operator):
            return symbol
        return cls(symbol)
