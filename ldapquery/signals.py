from django.dispatch import Signal

#: Sent after every query the builder executes.
#:
#: Keyword Args:
#:     query: the :py:class:`~ldapquery.query.Builder` that ran
#:     type: ``"search"``, ``"listing"``, ``"read"`` or ``"paginate"``
#:     time: elapsed time in milliseconds
query_executed = Signal()
