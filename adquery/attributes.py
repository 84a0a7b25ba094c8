"""
Helpers for reading attributes off :class:`~adquery.entry.Entry` objects and
for deciding what kind of object an entry is.
"""

import re
from collections.abc import Iterable

from .constants import ALL_ATTRIBUTES_TOKENS, MAX_OUTPUT_LENGTH
from .entry import Entry
from .typing import AttributeMap

GROUP_CATEGORY_RE = re.compile(r"CN=Group,CN=Schema,CN=Configuration,.*", re.IGNORECASE)
PERSON_CATEGORY_RE = re.compile(r"CN=Person,CN=Schema,CN=Configuration,.*", re.IGNORECASE)


def has_attribute(entry: Entry, name: str) -> bool:
    return name in entry


def _classify(entry: Entry, marker: str, category_re: re.Pattern, object_class: str) -> bool:
    # The first signal present decides; later ones are not consulted.
    if has_attribute(entry, marker):
        return True
    if has_attribute(entry, "objectCategory"):
        return bool(category_re.match(str(entry.value_for("objectCategory", ""))))
    if has_attribute(entry, "objectClass"):
        return any(
            str(value).lower() == object_class for value in entry.values_for("objectClass")
        )
    return False


def is_group_entry(entry: Entry) -> bool:
    """
    Decide whether ``entry`` is a group.

    ``groupType`` only exists on groups, so its presence settles it.  Failing
    that we look at ``objectCategory``, and then at ``objectClass``.

    Args:
        entry: the entry to classify

    Returns:
        ``True`` if the entry is a group.

    """
    return _classify(entry, "groupType", GROUP_CATEGORY_RE, "group")


def is_user_entry(entry: Entry) -> bool:
    """
    Decide whether ``entry`` is a user.

    ``userPrincipalName`` settles it; failing that we look at
    ``objectCategory`` (``CN=Person,...``), and then at ``objectClass``.

    Args:
        entry: the entry to classify

    Returns:
        ``True`` if the entry is a user.

    """
    return _classify(entry, "userPrincipalName", PERSON_CATEGORY_RE, "user")


def should_include_all_attributes(attributes: Iterable[str] | None) -> bool:
    """
    Return ``True`` if ``attributes`` contains the ``*`` or ``all`` wildcard.
    """
    return any(a in ALL_ATTRIBUTES_TOKENS for a in attributes or [])


def pick_attributes(entry: Entry, attributes: Iterable[str] | None) -> AttributeMap:
    """
    Return a copy of the attributes of ``entry`` restricted to ``attributes``.

    If ``attributes`` contains a wildcard, every attribute is returned.  Names
    are matched case-insensitively; the returned keys keep the spelling from
    the entry.

    Args:
        entry: the source entry
        attributes: the attribute names the caller asked for

    Returns:
        A new attribute dictionary.

    """
    wanted = list(attributes or [])
    if should_include_all_attributes(wanted):
        return entry.as_dict()
    lowered = {name.lower() for name in wanted}
    return {name: values for name, values in entry.as_dict().items() if name.lower() in lowered}


def join_attributes(*attribute_lists: Iterable[str] | None) -> list[str]:
    """
    Return the sorted union of several attribute lists.
    """
    joined: set[str] = set()
    for attributes in attribute_lists:
        joined.update(attributes or [])
    return sorted(joined)


def is_include_group_membership_for(include_membership: Iterable[str] | None, kind: str) -> bool:
    """
    Decide whether membership expansion was asked for ``kind`` (``"user"`` or
    ``"group"``).  ``"all"`` turns it on for everything.
    """
    requested = {str(value).lower() for value in include_membership or []}
    return kind.lower() in requested or "all" in requested


def truncate_log_output(value: object, max_length: int = MAX_OUTPUT_LENGTH) -> str:
    """
    Shorten ``value`` for a log line.
    """
    text = str(value)
    if len(text) <= max_length:
        return text
    return f"{text[:max_length]}..."
