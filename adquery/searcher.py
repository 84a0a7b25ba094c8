"""
The search engine: one logical search, including ranged attribute assembly
and referral chasing, against Active Directory.
"""

import asyncio
import logging
from dataclasses import replace
from urllib.parse import unquote, urlsplit

import ldap
from django.core.exceptions import ImproperlyConfigured
from ldap.controls import LDAPControl, SimplePagedResultsControl

from .assembler import RangeAttributesParser
from .attributes import truncate_log_output
from .conf import DirectoryOptions, get_logger
from .connection import LdapConnection
from .constants import PAGED_RESULTS_OID, EControl
from .controls import ServerSideSortControl, get_control, has_control
from .entry import Entry, SearchReference
from .entry_parsers import default_entry_parser, default_pre_entry_parser
from .filters import get_compound_filter

DEFAULT_FILTER: str = "(objectClass=*)"


class Searcher:
    """
    Performs one search against Active Directory.

    On top of a plain LDAP search this:

    * pages through the results with the paged results control
    * asks for deleted objects too, if ``options.include_deleted`` is set
    * collects every value of ranged attributes (``member;range=0-1499``)
    * chases search continuation references allowed by ``options.referrals``,
      merging what they find into our results
    * treats "size limit exceeded" as "these are all the results"

    A :class:`Searcher` is single use: build it, await :meth:`search` once.

    Args:
        options: what and where to search

    Keyword Args:
        logger: where to send trace output
        visited: referral URIs already chased by the search tree this searcher
            belongs to

    Raises:
        ImproperlyConfigured: ``options.connection.url`` is empty

    """

    def __init__(
        self,
        options: DirectoryOptions,
        logger: logging.Logger | None = None,
        visited: set[str] | None = None,
    ) -> None:
        if not options.connection.url:
            msg = "No url specified for Active Directory client."
            raise ImproperlyConfigured(msg)
        self.options = options
        self.basedn = options.basedn
        self.logger = get_logger(logger, __name__)
        self.connection = LdapConnection(options.connection, logger=self.logger)
        self.controls = self._build_controls()
        #: dn -> finished entry
        self.results: dict[str, Entry] = {}
        self.entry_tasks: set[asyncio.Task] = set()
        self.pending_referrals: set[asyncio.Task] = set()
        self.visited: set[str] = visited if visited is not None else set()

    def _build_controls(self) -> list[LDAPControl]:
        controls = list(self.options.controls)
        if not has_control(controls, PAGED_RESULTS_OID):
            controls.append(
                SimplePagedResultsControl(
                    True,  # noqa: FBT003
                    size=self.options.search.get_page_size(),
                    cookie="",
                )
            )
        if self.options.include_deleted and not has_control(controls, EControl.DELETED.value):
            self.logger.debug(
                "adquery.searcher.controls.show-deleted basedn=%s", self.basedn
            )
            controls.append(get_control(EControl.DELETED))
        if self.options.search.sort and not has_control(controls, EControl.SORT.value):
            controls.append(ServerSideSortControl(sort_key_list=self.options.search.sort))
        return controls

    @property
    def filterstr(self) -> str:
        return get_compound_filter(self.options.search.filter) or DEFAULT_FILTER

    @property
    def attrlist(self) -> list[str] | None:
        """
        The attribute list to send to the server: ``None`` (every user
        attribute) if nothing was asked for.  ``all`` is our own spelling of
        ``*`` and is translated.
        """
        attributes = self.options.search.attributes
        if not attributes:
            return None
        return ["*" if a == "all" else a for a in attributes]

    # -----------------------
    # Entries
    # -----------------------

    def on_search_entry(self, entry: Entry) -> None:
        task = asyncio.create_task(self._process_entry(entry))
        self.entry_tasks.add(task)

    async def _process_entry(self, entry: Entry) -> None:
        pre_entry_parser = self.options.pre_entry_parser or default_pre_entry_parser
        entry_parser = self.options.entry_parser or default_entry_parser
        entry = pre_entry_parser(entry)
        parser = RangeAttributesParser(self, logger=self.logger)
        assembled = await parser.parse_result(entry)
        self.results[assembled.dn] = entry_parser(assembled)

    # -----------------------
    # Referrals
    # -----------------------

    def is_referral_allowed(self, uri: str) -> bool:
        """
        Decide whether to chase the referral ``uri``: referrals must be
        enabled, the URI must not match an exclude pattern, we must not be
        too many hops deep, and nobody in this search tree may have chased it
        already.
        """
        if not self.options.referrals.is_allowed(uri):
            return False
        if self.options.referral_depth >= self.options.referrals.max_depth:
            return False
        return uri.lower() not in self.visited

    def on_referral(self, reference: SearchReference) -> None:
        for uri in reference.uris:
            if not self.is_referral_allowed(uri):
                self.logger.debug("adquery.searcher.referral.skip uri=%s", uri)
                continue
            self.visited.add(uri.lower())
            task = asyncio.create_task(self._chase_referral(uri))
            self.pending_referrals.add(task)

    def referral_options(self, uri: str) -> DirectoryOptions:
        """
        Build the options for chasing ``uri``: everything stays the same
        except the server, which comes from the URI's scheme and host, and the
        base DN, which comes from its path.
        """
        parts = urlsplit(uri)
        return self.options.merge(
            basedn=unquote(parts.path[1:]),
            connection=replace(self.options.connection, url=f"{parts.scheme}://{parts.netloc}"),
            referral_depth=self.options.referral_depth + 1,
        )

    async def _chase_referral(self, uri: str) -> None:
        self.logger.debug("adquery.searcher.referral.chase uri=%s", uri)
        child = Searcher(self.referral_options(uri), logger=self.logger, visited=self.visited)
        try:
            results = await child.search()
        except (ldap.LDAPError, OSError) as e:
            self.logger.warning("adquery.searcher.referral.error uri=%s error=%s", uri, e)
            return
        for entry in results:
            self.results.setdefault(entry.dn, entry)

    # -----------------------
    # Searching
    # -----------------------

    async def _wait_for_pending(self) -> None:
        while self.entry_tasks or self.pending_referrals:
            done, _ = await asyncio.wait(
                self.entry_tasks | self.pending_referrals,
                return_when=asyncio.FIRST_COMPLETED,
            )
            for task in done:
                self.entry_tasks.discard(task)
                self.pending_referrals.discard(task)
                if not task.cancelled() and task.exception() is not None:
                    raise task.exception()

    async def _cancel_pending(self) -> None:
        tasks = self.entry_tasks | self.pending_referrals
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self.entry_tasks.clear()
        self.pending_referrals.clear()

    async def search(self) -> list[Entry]:
        """
        Run the search.

        Raises:
            ldap.LDAPError: the bind, the search, or a range follow-up search
                failed.  Errors while chasing referrals are logged and
                otherwise ignored.

        Returns:
            The entries found, at most one per DN.

        """
        self.logger.debug(
            "adquery.searcher.search.start basedn=%s filter=%s attributes=%s",
            self.basedn,
            truncate_log_output(self.filterstr),
            truncate_log_output(self.attrlist or ["*"]),
        )
        try:
            await self.connection.bind()
            try:
                async for item in self.connection.search(
                    self.basedn,
                    self.options.search.scope,
                    self.filterstr,
                    self.attrlist,
                    controls=self.controls,
                    sizelimit=self.options.search.size_limit,
                ):
                    if isinstance(item, SearchReference):
                        self.on_referral(item)
                    else:
                        self.on_search_entry(item)
            except ldap.SIZELIMIT_EXCEEDED:  # type: ignore[attr-defined]
                self.logger.debug(
                    "adquery.searcher.search.sizelimit basedn=%s filter=%s",
                    self.basedn,
                    truncate_log_output(self.filterstr),
                )
            await self._wait_for_pending()
        except Exception as e:
            self.logger.debug(
                "adquery.searcher.search.error basedn=%s error=%s", self.basedn, e
            )
            raise
        finally:
            await self._cancel_pending()
            await self.connection.unbind()
        self.logger.debug(
            "adquery.searcher.search.end basedn=%s filter=%s count=%d",
            self.basedn,
            truncate_log_output(self.filterstr),
            len(self.results),
        )
        return list(self.results.values())

    async def range_search(self, searchfilter: str, attributes: list[str]) -> list[Entry]:
        """
        Run a follow-up search for more windows of ranged attributes, on our
        connection and with our base DN, scope and controls.

        Args:
            searchfilter: the LDAP filter
            attributes: the attributes to ask for

        Raises:
            ldap.LDAPError: the search failed

        Returns:
            The entries found.

        """
        entries: list[Entry] = []
        async for item in self.connection.search(
            self.basedn,
            self.options.search.scope,
            searchfilter,
            attributes,
            controls=self.controls,
        ):
            if isinstance(item, SearchReference):
                self.on_referral(item)
            else:
                entries.append(item)
        return entries


async def search(options: DirectoryOptions, logger: logging.Logger | None = None) -> list[Entry]:
    """
    Run one search with ``options`` and return the entries found.
    """
    return await Searcher(options, logger=logger).search()
