"""
Turn raw search results into records, sort them, and page through them.
"""

import enum
import re
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any, cast

from .models import Model
from .typing import Attributes, RawEntries, RawPages

if TYPE_CHECKING:
    from .query import Builder
    from .schemas import Schema

DIGITS_REGEX = re.compile(r"(\d+)")


class SortFlags(enum.IntFlag):
    """
    How :py:meth:`Processor.process_sort` compares attribute values.
    """

    #: Compare values as plain strings.
    REGULAR = 0
    #: Compare runs of digits by their numeric value, so ``"a2"`` sorts
    #: before ``"a10"``.
    NATURAL = 1
    #: Compare case-insensitively.
    IGNORE_CASE = 2
    #: Compare values as numbers; anything that is not a number counts as 0.
    NUMERIC = 4

    @classmethod
    def default(cls) -> "SortFlags":
        return cls.NATURAL | cls.IGNORE_CASE


class Paginator:
    """
    The merged results of a paged search, with a window onto one page of them.

    Iterating yields only the records of :py:attr:`current_page`;
    :py:func:`len` and :py:meth:`count` report every record.

    Args:
        results: every record from every page

    Keyword Args:
        per_page: the page size
        current_page: the page to iterate, counting from 0
        pages: how many round-trips the search took

    """

    def __init__(
        self,
        results: list[Any] | None = None,
        per_page: int = 50,
        current_page: int = 0,
        pages: int = 0,
    ) -> None:
        self.results: list[Any] = results if results is not None else []
        self.per_page = per_page
        self.current_page = current_page
        self.pages = pages
        self.current_offset = current_page * per_page

    def __iter__(self) -> Iterator[Any]:
        return iter(
            self.results[self.current_offset : self.current_offset + self.per_page]
        )

    def __len__(self) -> int:
        return len(self.results)

    def count(self) -> int:
        return len(self.results)

    def __repr__(self) -> str:
        return (
            f"<Paginator: page {self.current_page} of {len(self.results)} results, "
            f"{self.per_page} per page>"
        )


class Processor:
    """
    Builds records for the entries returned by a
    :py:class:`~ldapquery.query.Builder`'s searches.

    Args:
        builder: the query whose results are being processed

    """

    def __init__(self, builder: "Builder") -> None:
        self.builder = builder
        self.schema: Schema = builder.get_schema()

    def process(self, entries: RawEntries) -> list[Any]:
        """
        Build a record for every entry.

        Raw queries get ``entries`` back untouched.  Paginated queries get the
        records unsorted; :py:meth:`process_paginated` sorts them once all pages
        are in.

        Args:
            entries: the raw entries of one round-trip

        Returns:
            The records, sorted if the query asked for it.

        """
        if self.builder.is_raw():
            return entries
        records = [self.new_ldap_entry(dn, attributes) for dn, attributes in entries]
        if self.builder.is_paginated():
            return records
        if self.builder.is_sorted():
            return self.process_sort(records)
        return records

    def process_paginated(
        self, pages: RawPages | None = None, per_page: int = 50, current_page: int = 0
    ) -> Paginator:
        """
        Merge the entries of every page into one :py:class:`Paginator`.

        Args:
            pages: the raw entries of each round-trip

        Keyword Args:
            per_page: the page size
            current_page: the page the paginator should iterate

        Returns:
            The paginator.

        """
        pages = pages or []
        records: list[Any] = []
        for entries in pages:
            records.extend(self.process(entries))
        if self.builder.is_sorted() and not self.builder.is_raw():
            records = self.process_sort(records)
        return Paginator(records, per_page, current_page, len(pages))

    def new_ldap_entry(self, dn: str, attributes: Attributes) -> Model:
        """
        Build the record for one entry.

        The entry's object classes are compared, case-insensitively, with the
        schema's object class map in map order; the first mapped class the
        entry carries picks the record type.  Entries with no mapped class
        become the schema's generic entry type.

        Args:
            dn: the entry's distinguished name
            attributes: the entry's attributes

        Returns:
            The record.

        """
        model: type[Model] | None = None
        classes = {
            value.decode("utf-8") if isinstance(value, bytes) else value
            for value in attributes.get(self.schema.object_class(), [])
        }
        classes = {value.lower() for value in classes}
        if classes:
            for object_class, mapped in self.schema.object_class_model_map().items():
                if object_class.lower() in classes:
                    model = mapped
                    break
        return self.new_model(model).set_raw_attributes(attributes, dn=dn)

    def new_model(self, model: type[Model] | None = None) -> Model:
        """
        Instantiate ``model`` bound to a fresh copy of the builder.

        Keyword Args:
            model: the record type; defaults to the schema's generic entry type

        Raises:
            TypeError: ``model`` is not a :py:class:`~ldapquery.models.Model`
                subclass.

        Returns:
            The new, empty record.

        """
        if model is None:
            model = self.schema.entry_model()
        if not (isinstance(model, type) and issubclass(model, Model)):
            msg = (
                f"The given model class '{model}' must extend the base model "
                f"class '{Model.__module__}.{Model.__qualname__}'"
            )
            raise TypeError(msg)
        return model(query=self.builder.new_instance())

    def _sort_key(self, record: Model) -> tuple:
        field = cast("str", self.builder.get_sort_by_field())
        flags = self.builder.get_sort_by_flags()
        value = record.get_first_attribute(field)
        # Records without the attribute sort before every other record
        if value is None:
            return (0, ())
        if isinstance(value, bytes):
            value = value.decode("utf-8", errors="replace")
        if flags & SortFlags.NUMERIC:
            try:
                return (1, (float(value),))
            except ValueError:
                return (1, (0.0,))
        if flags & SortFlags.IGNORE_CASE:
            value = value.casefold()
        if flags & SortFlags.NATURAL:
            return (
                1,
                tuple(
                    (0, int(part), "") if part.isdigit() else (1, 0, part)
                    for part in DIGITS_REGEX.split(value)
                    if part
                ),
            )
        return (1, (value,))

    def process_sort(self, records: list[Model]) -> list[Model]:
        """
        Sort ``records`` by the builder's sort field, using its sort flags.

        The sort is stable and ascending unless the builder's sort direction is
        ``desc``.

        Args:
            records: the records to sort

        Returns:
            A new, sorted list.

        """
        if not self.builder.get_sort_by_field():
            return list(records)
        return sorted(
            records,
            key=self._sort_key,
            reverse=self.builder.get_sort_by_direction() == "desc",
        )
