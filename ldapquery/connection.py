"""
The session :py:class:`~ldapquery.query.Builder` runs its searches on: a thin
layer over python-ldap that opens one connection per thread and returns search
results as :py:class:`SearchResult` handles.
"""

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, cast

from ldap.controls import LDAPControl, SimplePagedResultsControl

from ldapquery import ldap

from .typing import Attributes, AttributeValue, RawEntries

logger = logging.getLogger("django-ldapquery")

#: Attributes whose values are binary and must never be decoded as text.
BINARY_ATTRIBUTES: frozenset[str] = frozenset(
    {
        "objectguid",
        "objectsid",
        "jpegphoto",
        "thumbnailphoto",
        "usercertificate",
        "cacertificate",
        "msexchmailboxguid",
        "msexchmailboxsecuritydescriptor",
        "ntsecuritydescriptor",
        "logonhours",
        "sidhistory",
        "tokengroups",
    }
)


@dataclass
class SearchResult:
    """
    The outcome of one search round-trip.

    Attributes:
        msgid: the message id python-ldap assigned to the search
        data: the raw ``(dn, attrs)`` pairs, referrals included
        controls: the response controls the server sent back

    """

    msgid: int
    data: list[tuple[str | None, Any]] = field(default_factory=list)
    controls: list[LDAPControl] = field(default_factory=list)
    released: bool = False


class LdapConnection:
    """
    A directory session configured from one entry of ``settings.LDAP_SERVERS``.

    This class is thread-safe: it keeps a separate python-ldap connection for
    each thread, opened on first use.

    Args:
        config: connection settings: ``url``, ``user``, ``password`` and
            optionally ``use_starttls``, ``tls_verify``, ``tls_ca_certfile``,
            ``tls_certfile``, ``tls_keyfile``, ``timeout``, ``sizelimit``,
            ``follow_referrals`` and ``legacy_paging``

    """

    def __init__(self, config: dict[str, Any]) -> None:
        self.config = config
        self.logger = logger
        # keys in this dictionary get manipulated by .connect() and .disconnect()
        self._ldap_objects: dict[threading.Thread, ldap.ldapobject.LDAPObject] = {}  # type: ignore[name-defined]
        self._continuation: dict[threading.Thread, SimplePagedResultsControl] = {}

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    def _set_tls_file_option(self, ldap_object: Any, option: int, key: str, label: str) -> None:
        path = self.config.get(key)
        if not path:
            return
        if not Path(path).exists():
            msg = f"{label} file does not exist: {path}"
            raise OSError(msg)
        if not Path(path).is_file():
            msg = f"{label} file is not a file: {path}"
            raise OSError(msg)
        ldap_object.set_option(option, path)

    def _connect(self) -> ldap.ldapobject.LDAPObject:  # type: ignore[name-defined]
        """
        Open and bind a new python-ldap connection.

        Raises:
            ValueError: the ``tls_verify`` setting is not ``never`` or ``always``.
            OSError: a configured certificate or key file is missing or is not
                a file.

        Returns:
            A bound LDAPObject.

        """
        config = self.config
        ldap_object = ldap.initialize(config["url"])
        ldap_object.set_option(
            ldap.OPT_REFERRALS,  # type: ignore[attr-defined]
            1 if config.get("follow_referrals", False) else 0,
        )
        ldap_object.set_option(
            ldap.OPT_NETWORK_TIMEOUT,  # type: ignore[attr-defined]
            float(config.get("timeout", 15.0)),
        )
        if sizelimit := config.get("sizelimit", None):
            ldap_object.set_option(ldap.OPT_SIZELIMIT, int(sizelimit))  # type: ignore[attr-defined]
        tls_verify = config.get("tls_verify", "never")
        if tls_verify == "never":
            ldap_object.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_NEVER)  # type: ignore[attr-defined]
        elif tls_verify == "always":
            ldap_object.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_DEMAND)  # type: ignore[attr-defined]
        else:
            msg = f"Invalid tls_verify value: {tls_verify}"
            raise ValueError(msg)
        self._set_tls_file_option(
            ldap_object, ldap.OPT_X_TLS_CACERTFILE, "tls_ca_certfile", "CA Certificate"  # type: ignore[attr-defined]
        )
        self._set_tls_file_option(
            ldap_object, ldap.OPT_X_TLS_CERTFILE, "tls_certfile", "TLS Certificate"  # type: ignore[attr-defined]
        )
        self._set_tls_file_option(
            ldap_object, ldap.OPT_X_TLS_KEYFILE, "tls_keyfile", "TLS Key"  # type: ignore[attr-defined]
        )
        ldap_object.set_option(ldap.OPT_X_TLS_NEWCTX, 0)  # type: ignore[attr-defined]
        if config.get("use_starttls", True):
            ldap_object.start_tls_s()
        ldap_object.simple_bind_s(config.get("user"), config.get("password"))
        self.logger.debug("ldapquery.connection.bind url=%s", config["url"])
        return ldap_object

    def has_connection(self) -> bool:
        return threading.current_thread() in self._ldap_objects

    @property
    def connection(self) -> ldap.ldapobject.LDAPObject:  # type: ignore[name-defined]
        """
        The current thread's python-ldap connection, opened if needed.
        """
        thread = threading.current_thread()
        if thread not in self._ldap_objects:
            self._ldap_objects[thread] = self._connect()
        return self._ldap_objects[thread]

    def disconnect(self) -> None:
        """
        Unbind and forget the current thread's connection, if it has one.
        """
        thread = threading.current_thread()
        if thread in self._ldap_objects:
            self._ldap_objects.pop(thread).unbind_s()
        self._continuation.pop(thread, None)

    def get_host(self) -> str:
        return self.config["url"]

    def supports_server_controls_in_methods(self) -> bool:
        """
        Whether paging controls can be passed with each search.  When
        ``legacy_paging`` is set the paging control is kept on the session
        instead; see :py:meth:`set_continuation_control`.
        """
        return not self.config.get("legacy_paging", False)

    # ------------------------------------------------------------------
    # Searching
    # ------------------------------------------------------------------

    def _search(
        self,
        scope: int,
        base_dn: str,
        filter: str,  # noqa: A002
        attributes: list[str] | None,
        attrs_only: bool = False,  # noqa: FBT001, FBT002
        size_limit: int = 0,
        time_limit: int = 0,
        serverctrls: list[LDAPControl] | None = None,
    ) -> SearchResult:
        if attributes == ["*"]:
            # None asks for every user attribute, the same as "*"
            attributes = None
        controls = list(serverctrls or [])
        if continuation := self._continuation.get(threading.current_thread()):
            controls.append(continuation)
        msgid = self.connection.search_ext(
            base_dn,
            scope,
            filter,
            attributes,
            int(attrs_only),
            serverctrls=controls or None,
            timeout=time_limit or -1,
            sizelimit=size_limit,
        )
        data: list[tuple[str | None, Any]] = []
        response_controls: list[LDAPControl] = []
        rmsgid = msgid
        try:
            while True:
                rtype, rdata, rmsgid, rctrls = self.connection.result3(msgid, all=0)
                data.extend(rdata or [])
                if rtype == ldap.RES_SEARCH_RESULT:  # type: ignore[attr-defined]
                    response_controls = list(rctrls or [])
                    break
        except ldap.SIZELIMIT_EXCEEDED:  # type: ignore[attr-defined]
            # the entries sent before the limit was hit are still good
            self.logger.debug(
                "ldapquery.connection.sizelimit base_dn=%s filter=%s size_limit=%d returned=%d",
                base_dn,
                filter,
                size_limit,
                len(data),
            )
        return SearchResult(msgid=rmsgid, data=data, controls=response_controls)

    def search(
        self,
        base_dn: str,
        filter: str,  # noqa: A002
        attributes: list[str] | None,
        attrs_only: bool = False,  # noqa: FBT001, FBT002
        size_limit: int = 0,
        time_limit: int = 0,
        serverctrls: list[LDAPControl] | None = None,
    ) -> SearchResult:
        """
        Search the whole subtree under ``base_dn``.

        Args:
            base_dn: where to start
            filter: the LDAP filter
            attributes: the attributes to return

        Keyword Args:
            attrs_only: return attribute names without values
            size_limit: the most entries to return; 0 for no limit
            time_limit: seconds to wait for the server; 0 for no limit
            serverctrls: controls to send with the search

        Returns:
            The search result.

        """
        return self._search(
            ldap.SCOPE_SUBTREE,  # type: ignore[attr-defined]
            base_dn,
            filter,
            attributes,
            attrs_only,
            size_limit,
            time_limit,
            serverctrls,
        )

    def listing(
        self,
        base_dn: str,
        filter: str,  # noqa: A002
        attributes: list[str] | None,
        attrs_only: bool = False,  # noqa: FBT001, FBT002
        size_limit: int = 0,
        time_limit: int = 0,
        serverctrls: list[LDAPControl] | None = None,
    ) -> SearchResult:
        """
        Like :py:meth:`search`, but only the immediate children of ``base_dn``.
        """
        return self._search(
            ldap.SCOPE_ONELEVEL,  # type: ignore[attr-defined]
            base_dn,
            filter,
            attributes,
            attrs_only,
            size_limit,
            time_limit,
            serverctrls,
        )

    def read(
        self,
        base_dn: str,
        filter: str,  # noqa: A002
        attributes: list[str] | None,
        attrs_only: bool = False,  # noqa: FBT001, FBT002
        size_limit: int = 0,
        time_limit: int = 0,
        serverctrls: list[LDAPControl] | None = None,
    ) -> SearchResult:
        """
        Like :py:meth:`search`, but only ``base_dn`` itself.
        """
        return self._search(
            ldap.SCOPE_BASE,  # type: ignore[attr-defined]
            base_dn,
            filter,
            attributes,
            attrs_only,
            size_limit,
            time_limit,
            serverctrls,
        )

    # ------------------------------------------------------------------
    # Paging
    # ------------------------------------------------------------------

    def set_continuation_control(
        self,
        page_size: int | None = None,
        is_critical: bool = False,  # noqa: FBT001, FBT002
        cookie: bytes | str = "",
    ) -> None:
        """
        Attach a paged results control to every following search on this
        thread, or remove it when ``page_size`` is ``None``.
        """
        thread = threading.current_thread()
        if page_size is None:
            self._continuation.pop(thread, None)
            return
        self._continuation[thread] = SimplePagedResultsControl(
            is_critical, size=page_size, cookie=cookie
        )

    def _get_pctrls(self, controls: list[LDAPControl]) -> list[SimplePagedResultsControl]:
        return [
            c
            for c in controls
            if c.controlType == SimplePagedResultsControl.controlType
        ]

    def read_continuation_cookie(self, result: SearchResult) -> bytes | str:
        """
        Return the paging cookie the server sent back with ``result``; empty
        when there are no more pages.
        """
        paged_controls = self._get_pctrls(result.controls)
        if paged_controls and paged_controls[0].cookie:
            return paged_controls[0].cookie
        return ""

    def parse_result(self, result: SearchResult) -> list[LDAPControl]:
        """
        Return the response controls of ``result``.
        """
        return result.controls

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def _decode(self, name: str, value: AttributeValue) -> AttributeValue:
        if isinstance(value, str) or name in BINARY_ATTRIBUTES:
            return value
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError:
            return value

    def materialize_entries(self, result: SearchResult) -> RawEntries:
        """
        Return the entries of ``result`` as ``(dn, attributes)`` tuples.

        Referrals are dropped, attribute names are lowercased, and values are
        decoded as UTF-8 unless they are binary.
        """
        entries: RawEntries = []
        for dn, attrs in result.data:
            # AD returns an rdata at the end that is a reference that we
            # want to ignore
            if not isinstance(attrs, dict):
                continue
            attributes: Attributes = {}
            for name, values in attrs.items():
                key = name.lower()
                attributes.setdefault(key, []).extend(
                    self._decode(key, value) for value in values
                )
            entries.append((cast("str", dn), attributes))
        return entries

    def release_result(self, result: SearchResult) -> None:
        result.data = []
        result.released = True
