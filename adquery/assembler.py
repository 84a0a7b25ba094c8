"""
Assembly of entries whose multi-valued attributes came back in ranged windows.
"""

import logging
from typing import TYPE_CHECKING

from .attributes import should_include_all_attributes, truncate_log_output
from .entry import Entry
from .filters import parse_distinguished_name
from .ranges import RangeAttribute, RangedSearchResult

if TYPE_CHECKING:
    from .searcher import Searcher


class RangeAttributesParser:
    """
    Retrieves every value of every ranged attribute of an entry.

    Give :meth:`parse_result` an entry that *might* have attributes with a
    ``;range=`` specifier and it will keep issuing follow-up searches through
    ``searcher`` until every window of every such attribute has been
    collected.

    Args:
        searcher: the :class:`~adquery.searcher.Searcher` whose connection,
            scope and controls the follow-up searches use

    Keyword Args:
        logger: where to send trace output

    """

    def __init__(self, searcher: "Searcher", logger: logging.Logger | None = None) -> None:
        self.searcher = searcher
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        #: dn -> accumulated result
        self.results: dict[str, RangedSearchResult] = {}

    def _follow_up_attributes(self, result: RangedSearchResult, queued: list[str]) -> list[str]:
        requested = [
            a
            for a in self.searcher.options.search.attributes or []
            if not should_include_all_attributes([a])
        ]
        ranged = {name.lower() for name in result.range_attributes}
        attributes = list(queued)
        for attribute in requested:
            if attribute.lower() not in ranged and attribute not in attributes:
                attributes.append(attribute)
        return attributes

    async def parse_result(self, entry: Entry) -> Entry:
        """
        Collect every window of every ranged attribute on ``entry``.

        Args:
            entry: a (first or follow-up) page of an entry

        Raises:
            ldap.LDAPError: a follow-up search failed

        Returns:
            The finished entry, with each ranged attribute under its base name.

        """
        result = self.results.setdefault(entry.dn, RangedSearchResult(entry))
        range_attributes = RangeAttribute.get_range_attributes(entry)
        if not range_attributes:
            return result.value()

        queued: list[str] = []
        for range_attribute in range_attributes:
            name = range_attribute.attribute_name
            result.range_attributes.setdefault(name, range_attribute)
            current = str(range_attribute)
            result.range_attribute_results.setdefault(name, []).extend(entry.values_for(current))
            if range_attribute.next():
                result.range_attributes[name] = range_attribute
                if str(range_attribute) != current:
                    queued.append(str(range_attribute))

        if not queued:
            return result.value()

        attributes = self._follow_up_attributes(result, queued)
        searchfilter = f"(distinguishedName={parse_distinguished_name(entry.dn)})"
        self.logger.debug(
            "adquery.ranges.follow-up dn=%s attributes=%s",
            entry.dn,
            truncate_log_output(attributes),
        )
        entries = await self.searcher.range_search(searchfilter, attributes)
        if not entries:
            self.logger.debug("adquery.ranges.follow-up.empty dn=%s", entry.dn)
            return result.value()
        return await self.parse_result(entries[0])
