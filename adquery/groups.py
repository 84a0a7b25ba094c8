"""
Group lookups: nested membership resolution, listing every group, and a
cached "is this user in that group" check.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Literal

import ldap
from ldap_filter import Filter

from .attributes import is_group_entry, join_attributes, should_include_all_attributes
from .conf import DirectoryOptions, SearchOptions, get_config, get_logger
from .constants import DEFAULT_GROUP_ATTRIBUTES, GROUP_BASE_ATTRIBUTES
from .entry import Entry
from .filters import (
    CAT_GROUP,
    GROUP_CATEGORY_RE,
    get_compound_filter,
    get_group_query_filter,
    get_member_filter,
    get_transitive_member_filter,
    get_transitive_member_of_filter,
    get_user_query_filter,
)
from .models import Group
from .searcher import search

DEFAULT_MEMBERSHIP_CACHE_TTL: int = 10 * 60
DEFAULT_DN_CACHE_TTL: int = 24 * 60 * 60


def _requested_group_attributes(options: DirectoryOptions) -> tuple[list[str], list[str]]:
    """
    Return the attributes the caller wants on the :class:`Group` records, and
    the attributes we must ask the server for to build them.
    """
    configured = options.search.attributes
    if should_include_all_attributes(configured):
        return ["all"], ["*"]
    asked = list(configured or DEFAULT_GROUP_ATTRIBUTES)
    # groupType is what tells us an entry is a group
    return asked, join_attributes(asked, ["groupType"])


async def get_group_members_for_dn(
    dn: str,
    options: DirectoryOptions,
    logger: logging.Logger | None = None,
    groups: dict[str, Group] | None = None,
) -> list[Group]:
    """
    Find every group that ``dn`` is a member of, directly or through nested
    groups.

    AD offers a transitive matching rule for this
    (``member:1.2.840.113556.1.4.1941:=``), but it is very slow on large
    directories; walking the tree one level at a time is typically an order of
    magnitude faster.  Each level's lookups run concurrently.

    Args:
        dn: the distinguished name of the user or group
        options: where and how to search; ``options.search.attributes`` names
            the attributes to return on each group

    Keyword Args:
        logger: where to send trace output
        groups: the groups found so far, keyed by DN.  Leave this alone: it is
            how the recursive calls share what they have seen, which is also
            what stops membership cycles from looping forever.

    Raises:
        ValueError: ``dn`` is empty
        ldap.LDAPError: a search failed

    Returns:
        The groups, each once.

    """
    logger = get_logger(logger, __name__)
    if not dn:
        msg = "No distinguishedName (dn) specified for group membership retrieval."
        raise ValueError(msg)
    if groups is None:
        groups = {}
    asked, attributes = _requested_group_attributes(options)
    search_options = options.merge(
        search=SearchOptions(
            filter=get_member_filter(dn),
            scope=ldap.SCOPE_SUBTREE,  # type: ignore[attr-defined]
            attributes=attributes,
            page_size=options.search.page_size,
        )
    )
    logger.debug("adquery.groups.members.search dn=%s", dn)
    entries = await search(search_options, logger=logger)

    async def add_group(entry: Entry) -> None:
        if entry.dn in groups or not is_group_entry(entry):
            return
        logger.debug("adquery.groups.members.add group=%s member=%s", entry.dn, dn)
        groups[entry.dn] = Group.from_entry(entry, asked)
        await get_group_members_for_dn(entry.dn, options, logger=logger, groups=groups)

    await asyncio.gather(*(add_group(entry) for entry in entries))
    logger.debug("adquery.groups.members.done dn=%s count=%d", dn, len(groups))
    return list(groups.values())


async def find_groups(options: DirectoryOptions, logger: logging.Logger | None = None) -> list[Group]:
    """
    Find the groups matching ``options.search.filter`` (every group, if there
    is no filter).
    """
    asked, attributes = _requested_group_attributes(options)
    searchfilter = get_compound_filter(options.search.filter)
    if not searchfilter:
        searchfilter = CAT_GROUP
    elif not GROUP_CATEGORY_RE.search(searchfilter):
        searchfilter = f"(&{CAT_GROUP}{searchfilter})"
    entries = await search(
        options.with_search(filter=searchfilter, attributes=attributes), logger=logger
    )
    return [Group.from_entry(entry, asked) for entry in entries if is_group_entry(entry)]


async def find_group(
    group_name: str, options: DirectoryOptions, logger: logging.Logger | None = None
) -> Group | None:
    """
    Find the group with common name or distinguished name ``group_name``.
    """
    groups = await find_groups(
        options.with_search(filter=get_group_query_filter(group_name)), logger=logger
    )
    return groups[0] if groups else None


@dataclass
class GroupNode:
    """
    A group in the tree :func:`get_all_groups` builds, with the groups that
    are its members.
    """

    group: Group
    members: list["GroupNode"] = field(default_factory=list)


async def get_all_groups(
    options: DirectoryOptions,
    mode: Literal["plain", "tree"] = "plain",
    logger: logging.Logger | None = None,
) -> list[Group] | list[GroupNode]:
    """
    List every group in the directory.

    Args:
        options: where and how to search

    Keyword Args:
        mode: ``"plain"`` for a flat list of :class:`Group`; ``"tree"`` for a
            list of :class:`GroupNode` roots (groups that are not a member of
            any other group), each linked to the groups that are its members
        logger: where to send trace output

    Returns:
        The groups, as a list or as a forest.

    """
    logger = get_logger(logger, __name__)
    attributes = list(GROUP_BASE_ATTRIBUTES)
    if mode == "tree":
        attributes.append("member")
    entries = await search(
        options.with_search(filter=CAT_GROUP, attributes=attributes), logger=logger
    )
    if mode == "plain":
        logger.debug("adquery.groups.all count=%d", len(entries))
        return [Group.from_entry(entry, GROUP_BASE_ATTRIBUTES) for entry in entries]

    nodes = {entry.dn.lower(): GroupNode(Group.from_entry(entry, attributes)) for entry in entries}
    children: set[str] = set()
    for node in nodes.values():
        for member in node.group.members:
            child = nodes.get(str(member).lower())
            if child is not None and child is not node:
                node.members.append(child)
                children.add(child.group.dn.lower())
    roots = [node for key, node in nodes.items() if key not in children]
    logger.debug("adquery.groups.all.tree count=%d roots=%d", len(nodes), len(roots))
    return roots


async def get_groups_for_user(
    username: str,
    options: DirectoryOptions,
    include_nested: bool = True,
    logger: logging.Logger | None = None,
) -> list[Group]:
    """
    Find the groups user ``username`` belongs to, with a single search using
    AD's transitive matching rule.

    Args:
        username: the user's ``sAMAccountName``, ``userPrincipalName``,
            email address or DN
        options: where and how to search

    Keyword Args:
        include_nested: also return groups the user is in through nesting
        logger: where to send trace output

    Returns:
        The groups, or an empty list if there is no such user.

    """
    logger = get_logger(logger, __name__)
    users = await search(
        options.merge(
            search=SearchOptions(
                filter=get_user_query_filter(username),
                attributes=("distinguishedName",),
                page_size=options.search.page_size,
            )
        ),
        logger=logger,
    )
    if not users:
        logger.debug("adquery.groups.user.not-found user=%s", username)
        return []
    dn = users[0].dn
    member_filter = (
        get_transitive_member_filter(dn) if include_nested else get_member_filter(dn)
    )
    entries = await search(
        options.merge(
            search=SearchOptions(
                filter=f"(&{CAT_GROUP}{member_filter})",
                attributes=GROUP_BASE_ATTRIBUTES,
                page_size=options.search.page_size,
            )
        ),
        logger=logger,
    )
    return [Group.from_entry(entry, GROUP_BASE_ATTRIBUTES) for entry in entries]


class GroupMembershipChecker:
    """
    Answers "is this user in that group, directly or through nesting?" with
    caching.

    Users and groups are named by ``sAMAccountName``.  Name to DN lookups are
    cached for ``dn_cache_ttl`` seconds and answers for ``cache_ttl`` seconds.

    Args:
        options: where and how to search

    Keyword Args:
        cache_ttl: seconds to remember an answer; defaults to
            ``ADQUERY_MEMBERSHIP_CACHE_TTL``
        dn_cache_ttl: seconds to remember a name to DN lookup; defaults to
            ``ADQUERY_DN_CACHE_TTL``
        logger: where to send trace output

    """

    class UserNotFound(LookupError):
        """Raised when no user has the given sAMAccountName."""

    class GroupNotFound(LookupError):
        """Raised when no group has the given sAMAccountName."""

    def __init__(
        self,
        options: DirectoryOptions,
        cache_ttl: float | None = None,
        dn_cache_ttl: float | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.options = options
        self.logger = get_logger(logger, __name__)
        self.cache_ttl = (
            cache_ttl
            if cache_ttl is not None
            else get_config("MEMBERSHIP_CACHE_TTL", DEFAULT_MEMBERSHIP_CACHE_TTL)
        )
        self.dn_cache_ttl = (
            dn_cache_ttl
            if dn_cache_ttl is not None
            else get_config("DN_CACHE_TTL", DEFAULT_DN_CACHE_TTL)
        )
        #: "user:group" -> (answer, expires at)
        self._cache: dict[str, tuple[bool, float]] = {}
        #: "U:sam" or "G:sam" -> (dn, expires at)
        self._dn_cache: dict[str, tuple[str, float]] = {}

    @staticmethod
    def _dn_cache_key(sam: str, is_group: bool) -> str:
        return ("G:" if is_group else "U:") + sam.lower()

    def clear_cache(self) -> None:
        self._cache.clear()
        self._dn_cache.clear()

    async def find_dn(self, sam: str, is_group: bool) -> str | None:
        """
        Look up the DN of the user or group whose ``sAMAccountName`` is
        ``sam``.
        """
        key = self._dn_cache_key(sam, is_group)
        cached = self._dn_cache.get(key)
        if cached is not None:
            if cached[1] > time.time():
                self.logger.debug("adquery.groups.checker.dn.cached sam=%s", sam)
                return cached[0]
            del self._dn_cache[key]
        object_class = "group" if is_group else "user"
        searchfilter = Filter.AND(
            [
                Filter.attribute("objectClass").equal_to(object_class),
                Filter.attribute("sAMAccountName").equal_to(sam),
            ]
        ).to_string()
        entries = await search(
            self.options.merge(
                search=SearchOptions(filter=searchfilter, attributes=("distinguishedName",))
            ),
            logger=self.logger,
        )
        if not entries:
            return None
        dn = entries[0].dn
        self._dn_cache[key] = (dn, time.time() + self.dn_cache_ttl)
        return dn

    async def is_user_in_group(self, user: str, group: str) -> bool:
        """
        Return ``True`` if user ``user`` is a member of group ``group``,
        directly or through nested groups.

        Args:
            user: the user's ``sAMAccountName``
            group: the group's ``sAMAccountName``

        Raises:
            GroupMembershipChecker.UserNotFound: there is no such user
            GroupMembershipChecker.GroupNotFound: there is no such group
            ldap.LDAPError: a search failed

        Returns:
            Whether the user is in the group.

        """
        cache_key = f"{user.lower()}:{group.lower()}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            if cached[1] > time.time():
                self.logger.debug("adquery.groups.checker.cached user=%s group=%s", user, group)
                return cached[0]
            del self._cache[cache_key]
        user_dn = await self.find_dn(user, is_group=False)
        if not user_dn:
            msg = f"User not found: sAMAccountName={user}"
            raise self.UserNotFound(msg)
        group_dn = await self.find_dn(group, is_group=True)
        if not group_dn:
            msg = f"Group not found: sAMAccountName={group}"
            raise self.GroupNotFound(msg)
        entries = await search(
            self.options.merge(
                basedn=user_dn,
                search=SearchOptions(
                    filter=get_transitive_member_of_filter(group_dn),
                    scope=ldap.SCOPE_BASE,  # type: ignore[attr-defined]
                    attributes=("distinguishedName",),
                ),
            ),
            logger=self.logger,
        )
        result = bool(entries)
        self._cache[cache_key] = (result, time.time() + self.cache_ttl)
        return result
