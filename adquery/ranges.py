"""
Active Directory ranged attribute retrieval.

When a multi-valued attribute (typically ``member``) has more values than the
server's ``MaxValRange``, AD returns only a window of them under a renamed
attribute such as ``member;range=0-1499``.  The client asks for the next
window by requesting ``member;range=1500-*`` (or an explicit upper bound),
until the server answers with a window whose upper bound is ``*``.

See https://learn.microsoft.com/en-us/openspecs/windows_protocols/ms-adts/d2435927-0999-4c62-8c6d-13ba31a52e1a
"""

import re

from .entry import Entry
from .typing import AttributeValue

RANGE_RE = re.compile(r"^([^;]+);range=(\d+)-(\d+|\*)$", re.IGNORECASE)


class RangeAttribute:
    """
    A cursor over the windows of a ranged attribute.

    Args:
        attribute: a ranged attribute name like ``member;range=0-1499``.  If it
            is not one, :attr:`attribute_name`, :attr:`low` and :attr:`high` are
            all ``None``.

    """

    def __init__(self, attribute: str) -> None:
        self.attribute_name: str | None = None
        self.low: int | None = None
        #: ``None`` means ``*``: this is the last window
        self.high: int | None = None
        match = RANGE_RE.match(attribute)
        if match:
            self.attribute_name = match.group(1)
            self.low = int(match.group(2))
            self.high = None if match.group(3) == "*" else int(match.group(3))

    def __str__(self) -> str:
        high = "*" if self.high is None else str(self.high)
        return f"{self.attribute_name};range={self.low}-{high}"

    def __repr__(self) -> str:
        return f"<RangeAttribute: {self}>"

    def is_complete(self) -> bool:
        """
        Return ``True`` if this is the last window of values.
        """
        return self.high is None

    def next(self) -> "RangeAttribute | None":
        """
        Advance to the next window and return ``self``, or return ``None`` if
        there is no next window.

        The first follow-up window is the same size as the first page
        (``0-999`` is followed by ``1000-1999``); after that each window is
        twice as large as the one before it (``1000-1999`` is followed by
        ``2000-3999``).  The server may always return fewer values than we
        ask for.

        Returns:
            ``self`` after advancing, or ``None``.

        """
        low, high = self.low, self.high
        if high is None or low is None or high == low:
            return None
        size = high - low + 1
        self.low = high + 1
        self.high = high + size if low == 0 else high + 2 * size
        return self

    @staticmethod
    def is_range_attribute(attribute: str) -> bool:
        """
        Return ``True`` if ``attribute`` is a ranged attribute name.
        """
        return bool(RANGE_RE.match(attribute))

    @classmethod
    def has_range_attributes(cls, entry: Entry) -> bool:
        """
        Return ``True`` if ``entry`` has any ranged attributes.
        """
        return any(cls.is_range_attribute(name) for name in entry)

    @classmethod
    def get_range_attributes(cls, entry: Entry) -> list["RangeAttribute"]:
        """
        Return a :class:`RangeAttribute` for every ranged attribute on ``entry``.
        """
        return [cls(name) for name in entry if cls.is_range_attribute(name)]


class RangedSearchResult:
    """
    Accumulates the windows of every ranged attribute of one entry.

    Args:
        entry: the first page of the entry, as the search returned it

    """

    def __init__(self, entry: Entry) -> None:
        self.original_entry = entry
        #: base attribute name -> the cursor for its next window
        self.range_attributes: dict[str, RangeAttribute] = {}
        #: base attribute name -> the values collected so far
        self.range_attribute_results: dict[str, list[AttributeValue]] = {}

    @property
    def name(self) -> str:
        return self.original_entry.dn

    def value(self) -> Entry:
        """
        Return the finished entry: the first page's plain attributes, plus each
        ranged attribute under its base name with every value we collected.
        The ``;range=`` attribute names are dropped.
        """
        ranged = [name for name in self.original_entry if RangeAttribute.is_range_attribute(name)]
        return self.original_entry.replace(
            attributes=self.range_attribute_results,
            remove=ranged,
        )
