"""
Value types for what a directory search hands back: entries and
continuation references.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from django.utils.datastructures import CaseInsensitiveMapping

from .constants import BINARY_ATTRIBUTES
from .typing import AttributeMap, AttributeValue


def _decode(name: str, values: list[bytes]) -> list[AttributeValue]:
    if name.split(";", 1)[0].lower() in BINARY_ATTRIBUTES:
        return list(values)
    decoded: list[AttributeValue] = []
    for value in values:
        if isinstance(value, str):
            decoded.append(value)
            continue
        try:
            decoded.append(value.decode("utf-8"))
        except UnicodeDecodeError:
            # Some schema extensions store binary data in attributes we don't
            # know about; hand those back untouched.
            decoded.append(value)
    return decoded


class Entry(Mapping):
    """
    A single directory entry: its distinguished name plus its attributes.

    Attribute names are looked up case-insensitively, as LDAP does, but we keep
    the spelling the server used.  Every attribute maps to a list of values;
    text values are ``str`` and binary values are ``bytes``.

    Entries are treated as immutable: use :meth:`replace` to get a modified
    copy.

    Args:
        dn: The distinguished name, exactly as the server returned it.
        attributes: The attribute map.

    """

    def __init__(self, dn: str, attributes: Mapping[str, list[AttributeValue]] | None = None) -> None:
        self.dn = dn
        self._attributes = CaseInsensitiveMapping(
            {name: list(values) for name, values in (attributes or {}).items()}
        )

    @classmethod
    def from_ldap(cls, dn: str, attrs: dict[str, list[bytes]]) -> "Entry":
        """
        Build an :class:`Entry` from a python-ldap ``(dn, attrs)`` pair,
        decoding text attributes as UTF-8.
        """
        return cls(dn, {name: _decode(name, values) for name, values in attrs.items()})

    def __getitem__(self, name: str) -> list[AttributeValue]:
        return self._attributes[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._attributes)

    def __len__(self) -> int:
        return len(self._attributes)

    def __repr__(self) -> str:
        return f"<Entry: {self.dn}>"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entry):
            return NotImplemented
        return self.dn == other.dn and self.as_dict() == other.as_dict()

    def values_for(self, name: str) -> list[AttributeValue]:
        """
        Return the values for attribute ``name``, or an empty list if the entry
        does not have it.
        """
        return list(self._attributes.get(name, []))

    def value_for(self, name: str, default: Any = None) -> Any:
        """
        Return a single value for attribute ``name``.

        Multi-valued attributes yield their last value, which is what AD
        returns first for single-valued attributes anyway.
        """
        values = self._attributes.get(name)
        if not values:
            return default
        return values[-1]

    def as_dict(self) -> AttributeMap:
        """
        Return a plain ``dict`` copy of the attributes.
        """
        return {name: list(values) for name, values in self._attributes.items()}

    def replace(
        self,
        attributes: Mapping[str, list[AttributeValue]] | None = None,
        remove: list[str] | None = None,
    ) -> "Entry":
        """
        Return a copy of this entry with ``attributes`` set and the attributes
        named in ``remove`` dropped.

        Keyword Args:
            attributes: attributes to add or overwrite
            remove: attribute names to drop (case-insensitive)

        Returns:
            A new :class:`Entry`.

        """
        data = self.as_dict()
        for name in remove or []:
            for key in [k for k in data if k.lower() == name.lower()]:
                del data[key]
        for name, values in (attributes or {}).items():
            for key in [k for k in data if k.lower() == name.lower()]:
                del data[key]
            data[name] = list(values)
        return Entry(self.dn, data)


@dataclass(frozen=True)
class SearchReference:
    """
    A search continuation reference: the server's way of saying "part of the
    answer lives on another server".
    """

    #: The referral URIs, e.g. ``ldap://other.example.com/DC=other,DC=example,DC=com``
    uris: tuple[str, ...] = field(default_factory=tuple)
