"""
Distinguished-name escaping and LDAP filter construction for Active Directory
user and group lookups.

Filters that compare plain values are built with :mod:`ldap_filter`.  Filters
that compare against a distinguished name use :func:`parse_distinguished_name`
instead, because a DN is already escaped at the RDN level and must not be
escaped a second time.
"""

import re

from ldap_filter import Filter

from .constants import (
    ACCOUNTDISABLE,
    LDAP_MATCHING_RULE_BIT_AND,
    LDAP_MATCHING_RULE_IN_CHAIN,
)

CAT_USER: str = "(objectCategory=User)"
CAT_GROUP: str = "(objectCategory=Group)"

DN_RE = re.compile(r"(([^=]+=.+),?)+", re.IGNORECASE)
EMAIL_RE = re.compile(r"^[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}$", re.IGNORECASE)
RDN_START_RE = re.compile(r"^(CN|OU|DC)=", re.IGNORECASE)
USER_CATEGORY_RE = re.compile(r"objectCategory=User\b", re.IGNORECASE)
GROUP_CATEGORY_RE = re.compile(r"objectCategory=Group\b", re.IGNORECASE)

#: Characters that get a hex escape inside a filter value
FILTER_HEX_ESCAPES: dict[str, str] = {
    "\\": r"\5c",
    "*": r"\2a",
    "(": r"\28",
    ")": r"\29",
    "\0": r"\00",
}
#: Characters a DN value must escape with a backslash
DN_SPECIAL_CHARS: frozenset[str] = frozenset(',+<>;"=')
#: The DN escape backslash, written as a filter value hex escape
DN_ESCAPE: str = FILTER_HEX_ESCAPES["\\"]


def _escape_rdn_value(value: str) -> str:
    # Every backslash in the result must start a two hex digit filter escape,
    # so the DN level backslash is itself written as \5c.
    escaped = []
    last = len(value) - 1
    i = 0
    while i <= last:
        char = value[i]
        if char == "\\" and i < last:
            # Already escaped in the DN: keep the pair
            following = value[i + 1]
            escaped.append(DN_ESCAPE + FILTER_HEX_ESCAPES.get(following, following))
            i += 2
            continue
        if char in FILTER_HEX_ESCAPES:
            escaped.append(FILTER_HEX_ESCAPES[char])
        elif char in DN_SPECIAL_CHARS or (char == " " and i in (0, last)):
            escaped.append(DN_ESCAPE + char)
        else:
            escaped.append(char)
        i += 1
    return "".join(escaped)


def parse_distinguished_name(dn: str | None) -> str | None:
    """
    Escape a distinguished name so it can be dropped into a search filter.

    A DN like ``CN=Doe\\, John (Test),OU=Users,DC=example,DC=com`` contains a
    comma that is part of the common name.  We split on commas and then glue
    back together any piece that doesn't start a new ``CN=``, ``OU=`` or
    ``DC=`` component, so the embedded comma stays in the CN.  Then each
    component value is escaped twice over, first as a DN value and then as a
    filter value (RFC 4515), because a filter only allows a backslash in front
    of two hex digits:

    * ``*``, ``(``, ``)`` and a bare ``\\`` become ``\\2a``, ``\\28``,
      ``\\29`` and ``\\5c``
    * ``, + < > ; " =`` and a leading or trailing space get a DN escape,
      written ``\\5c`` followed by the character
    * an existing DN escape such as ``\\,`` is kept, as ``\\5c,``

    Args:
        dn: the distinguished name

    Returns:
        The escaped distinguished name, or ``dn`` itself if it is empty.

    """
    if not dn:
        return dn
    components: list[str] = []
    for i, piece in enumerate(dn.split(",")):
        if i and not RDN_START_RE.match(piece):
            components.append(f"{components.pop()},{piece}")
        else:
            components.append(piece)
    escaped = []
    for component in components:
        name, sep, value = component.partition("=")
        escaped.append(f"{name}{sep}{_escape_rdn_value(value)}" if sep else component)
    return ",".join(escaped)


def get_user_query_filter(username: str | None = None) -> str:
    """
    Build the filter that finds the user named ``username``.

    ``username`` may be a distinguished name, a ``sAMAccountName``, a
    ``userPrincipalName`` or an email address.  With no ``username`` we match
    every user.

    Args:
        username: the user to look for

    Returns:
        An LDAP filter string.

    """
    if not username:
        return CAT_USER
    if is_distinguished_name(username):
        return f"(&{CAT_USER}(distinguishedName={parse_distinguished_name(username)}))"
    alternatives = [Filter.attribute("sAMAccountName").equal_to(username)]
    if EMAIL_RE.match(username):
        alternatives.append(Filter.attribute("mail").equal_to(username))
    alternatives.append(Filter.attribute("userPrincipalName").equal_to(username))
    return Filter.AND(
        [Filter.attribute("objectCategory").equal_to("User"), Filter.OR(alternatives)]
    ).to_string()


def get_group_query_filter(group_name: str | None = None) -> str:
    """
    Build the filter that finds the group ``group_name``, given either as a
    distinguished name or as a common name.  With no name we match every
    group.
    """
    if not group_name:
        return CAT_GROUP
    if is_distinguished_name(group_name):
        return f"(&{CAT_GROUP}(distinguishedName={parse_distinguished_name(group_name)}))"
    return Filter.AND(
        [
            Filter.attribute("objectCategory").equal_to("Group"),
            Filter.attribute("cn").equal_to(group_name),
        ]
    ).to_string()


def wildcard_filter(name: str, value: str) -> Filter:
    """
    Convert a value with leading and/or trailing ``*`` to the matching
    :class:`ldap_filter.Filter` comparison on attribute ``name``.
    """
    value = value.strip()
    bare = re.sub(r"[*]", "", value)
    attr = Filter.attribute(name)
    if value.startswith("*") and value.endswith("*") and bare:
        return attr.contains(bare)
    if value.startswith("*") and bare:
        return attr.ends_with(bare)
    if value.endswith("*") and bare:
        return attr.starts_with(bare)
    if not bare:
        return attr.present()
    return attr.equal_to(bare)


def get_wildcards_user_filter(searchfilter: str | None = None) -> str:
    """
    Turn what a caller typed into a filter that only matches users.

    * nothing: every user
    * a filter that already restricts to ``objectCategory=User``: unchanged
    * any other parenthesised filter: ANDed with the user category
    * ``attr=value`` or a bare ``value`` (meaning ``CN=value``): a comparison,
      honouring leading/trailing ``*`` wildcards, ANDed with the user category

    Args:
        searchfilter: the caller's filter

    Returns:
        An LDAP filter string.

    """
    if not searchfilter:
        return CAT_USER
    searchfilter = str(searchfilter).strip()
    if USER_CATEGORY_RE.search(searchfilter):
        return searchfilter
    if searchfilter.startswith("(") and searchfilter.endswith(")"):
        return f"(&{CAT_USER}{searchfilter})"
    name, sep, value = searchfilter.partition("=")
    if not sep:
        name, value = "CN", searchfilter
    comparison = wildcard_filter(name.strip(), value)
    return f"(&{CAT_USER}{comparison.to_string()})"


def get_member_filter(dn: str) -> str:
    """
    Build the filter for the objects that list ``dn`` as a direct ``member``.
    """
    return f"(member={parse_distinguished_name(dn)})"


def get_transitive_member_of_filter(group_dn: str) -> str:
    """
    Build the filter for objects that are members of ``group_dn`` directly or
    through any number of nested groups, using AD's in-chain matching rule.
    """
    return f"(memberOf:{LDAP_MATCHING_RULE_IN_CHAIN}:={parse_distinguished_name(group_dn)})"


def get_transitive_member_filter(dn: str) -> str:
    """
    Build the filter for every group that contains ``dn``, directly or
    through nesting, using AD's in-chain matching rule.
    """
    return f"(member:{LDAP_MATCHING_RULE_IN_CHAIN}:={parse_distinguished_name(dn)})"


def get_enabled_only_filter() -> str:
    """
    Build the filter that excludes disabled accounts.
    """
    return f"(!(userAccountControl:{LDAP_MATCHING_RULE_BIT_AND}:={ACCOUNTDISABLE}))"
