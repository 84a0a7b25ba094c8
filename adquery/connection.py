"""
An asyncio driver for a python-ldap connection.

python-ldap's synchronous calls (``search_s``, ``simple_bind_s``) block the
thread until the server answers.  Instead we start each operation with its
asynchronous variant (``search_ext``, ``simple_bind``), which returns a
message id straight away, and then poll ``result3(msgid, all=0, timeout=0)``,
sleeping on the event loop between polls.  That way many binds and searches
can be outstanding at once on a single thread.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import suppress
from pathlib import Path

import ldap
from ldap.controls import LDAPControl, SimplePagedResultsControl

from .attributes import truncate_log_output
from .conf import ConnectionOptions, get_logger
from .controls import copy_controls, get_paged_controls
from .entry import Entry, SearchReference
from .typing import ResultMessage


class LdapConnection:
    """
    One connection to one directory server.

    The connection is opened and bound by :meth:`bind`, used for any number of
    :meth:`search` calls, and closed by :meth:`unbind`.  :meth:`unbind` only
    ever talks to the server once, no matter how often it is called.

    Args:
        options: how to reach the server

    Keyword Args:
        logger: where to send trace output

    """

    def __init__(self, options: ConnectionOptions, logger: logging.Logger | None = None) -> None:
        self.options = options
        self.logger = get_logger(logger, __name__)
        self.ldap_object: ldap.ldapobject.LDAPObject | None = None  # type: ignore[name-defined]
        self.bound: bool = False
        self.unbound: bool = False

    def _connect(self) -> ldap.ldapobject.LDAPObject:  # type: ignore[name-defined]  # noqa: PLR0912
        """
        Create a new LDAP connection object and set its options.

        Raises:
            ValueError: If the ``tls_verify`` value is invalid.
            OSError: If a CA certificate, certificate or key file is configured
                but does not exist or is not a file.

        Returns:
            An unbound LDAPObject.

        """
        options = self.options
        ldap_object = ldap.initialize(options.url)
        # We chase referrals ourselves so that we can filter them.
        ldap_object.set_option(ldap.OPT_REFERRALS, 0)  # type: ignore[attr-defined]
        ldap_object.set_option(ldap.OPT_PROTOCOL_VERSION, 3)  # type: ignore[attr-defined]
        ldap_object.set_option(ldap.OPT_NETWORK_TIMEOUT, float(options.timeout))  # type: ignore[attr-defined]
        if options.sizelimit:
            ldap_object.set_option(ldap.OPT_SIZELIMIT, int(options.sizelimit))  # type: ignore[attr-defined]
        if options.tls_verify == "never":
            ldap_object.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_NEVER)  # type: ignore[attr-defined]
        elif options.tls_verify == "always":
            ldap_object.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_DEMAND)  # type: ignore[attr-defined]
        else:
            msg = f"Invalid tls_verify value: {options.tls_verify}"
            raise ValueError(msg)
        for label, path, option in (
            ("CA Certificate", options.tls_ca_certfile, ldap.OPT_X_TLS_CACERTFILE),  # type: ignore[attr-defined]
            ("TLS Certificate", options.tls_certfile, ldap.OPT_X_TLS_CERTFILE),  # type: ignore[attr-defined]
            ("TLS Key", options.tls_keyfile, ldap.OPT_X_TLS_KEYFILE),  # type: ignore[attr-defined]
        ):
            if not path:
                continue
            if not Path(path).exists():
                msg = f"{label} file does not exist: {path}"
                raise OSError(msg)
            if not Path(path).is_file():
                msg = f"{label} file is not a file: {path}"
                raise OSError(msg)
            ldap_object.set_option(option, path)
        ldap_object.set_option(ldap.OPT_X_TLS_NEWCTX, 0)  # type: ignore[attr-defined]
        return ldap_object

    async def wait(self, msgid: int) -> ResultMessage:
        """
        Wait for the next message for operation ``msgid``.

        Args:
            msgid: the message id python-ldap gave us when we started the
                operation

        Raises:
            ldap.TIMEOUT: nothing arrived within ``options.timeout`` seconds
            ldap.LDAPError: the server answered with an error

        Returns:
            The ``(rtype, rdata, msgid, serverctrls)`` tuple from ``result3``.

        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.options.timeout if self.options.timeout > 0 else None
        while True:
            message = self.ldap_object.result3(msgid, all=0, timeout=0)
            if message[0] is not None:
                return message
            if deadline is not None and loop.time() >= deadline:
                with suppress(ldap.LDAPError):
                    self.ldap_object.abandon(msgid)
                raise ldap.TIMEOUT(  # type: ignore[attr-defined]
                    {"desc": f"Timed out after {self.options.timeout}s waiting for {self.options.url}"}
                )
            await asyncio.sleep(self.options.poll_interval)

    async def bind(self) -> None:
        """
        Open the connection and, if we have credentials, bind.

        Calling this on a connection that is already bound does nothing.

        Raises:
            ldap.LDAPError: the server is down or rejected our credentials
            ValueError: bad TLS settings
            OSError: missing TLS files

        """
        if self.bound:
            return
        self.ldap_object = self._connect()
        if self.options.use_starttls:
            self.ldap_object.start_tls_s()
        if self.options.user:
            self.logger.debug("adquery.connection.bind url=%s user=%s", self.options.url, self.options.user)
            msgid = self.ldap_object.simple_bind(self.options.user, self.options.password or "")
            await self.wait(msgid)
            self.logger.debug("adquery.connection.bind.success url=%s", self.options.url)
        self.bound = True

    async def search(
        self,
        basedn: str,
        scope: int,
        filterstr: str,
        attrlist: list[str] | None = None,
        controls: list[LDAPControl] | tuple[LDAPControl, ...] = (),
        sizelimit: int = 0,
    ) -> AsyncIterator[Entry | SearchReference]:
        """
        Run a search and yield its entries and references as they arrive.

        If ``controls`` includes a paged results control, we keep asking for
        pages until the server stops handing us a cookie.

        Args:
            basedn: where to search
            scope: an ``ldap.SCOPE_*`` constant
            filterstr: the LDAP filter

        Keyword Args:
            attrlist: the attributes to return; ``None`` means all
            controls: the request controls
            sizelimit: the server-side size limit; 0 means none

        Raises:
            ldap.SIZELIMIT_EXCEEDED: the search matched more than ``sizelimit``
                entries; the entries up to the limit have been yielded already
            ldap.LDAPError: any other error from the server

        Yields:
            :class:`~adquery.entry.Entry` and
            :class:`~adquery.entry.SearchReference` objects.

        """
        if not self.bound:
            await self.bind()
        serverctrls = copy_controls(controls)
        paged = [c for c in serverctrls if isinstance(c, SimplePagedResultsControl)]
        self.logger.debug(
            "adquery.connection.search basedn=%s filter=%s",
            basedn,
            truncate_log_output(filterstr),
        )
        while True:
            msgid = self.ldap_object.search_ext(
                basedn,
                scope,
                filterstr,
                attrlist,
                serverctrls=serverctrls,
                sizelimit=sizelimit,
            )
            while True:
                rtype, rdata, _, response_controls = await self.wait(msgid)
                if rtype == ldap.RES_SEARCH_ENTRY:  # type: ignore[attr-defined]
                    for dn, attrs in rdata:
                        yield Entry.from_ldap(dn, attrs)
                elif rtype == ldap.RES_SEARCH_REFERENCE:  # type: ignore[attr-defined]
                    for _, uris in rdata:
                        yield SearchReference(tuple(uris))
                elif rtype == ldap.RES_SEARCH_RESULT:  # type: ignore[attr-defined]
                    break
            if not paged:
                return
            paged_controls = get_paged_controls(response_controls)
            if not paged_controls or not paged_controls[0].cookie:
                return
            # Push cookie back into our request control.
            paged[0].cookie = paged_controls[0].cookie

    async def unbind(self) -> None:
        """
        Close the connection.  Only the first call does anything.
        """
        if self.unbound:
            return
        self.unbound = True
        if self.ldap_object is None:
            return
        self.logger.debug("adquery.connection.unbind url=%s", self.options.url)
        with suppress(ldap.LDAPError):
            self.ldap_object.unbind_s()
