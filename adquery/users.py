"""
User lookups.
"""

import asyncio
import logging

from ldap_filter import Filter

from .attributes import (
    is_include_group_membership_for,
    is_user_entry,
    join_attributes,
    should_include_all_attributes,
    truncate_log_output,
)
from .conf import DirectoryOptions, SearchOptions, get_logger
from .constants import DEFAULT_USER_ATTRIBUTES, REQUIRED_USER_ATTRIBUTES
from .entry import Entry
from .filters import get_enabled_only_filter, get_user_query_filter, get_wildcards_user_filter
from .groups import get_group_members_for_dn
from .models import User
from .searcher import search

SUGGEST_ATTRIBUTES: tuple[str, ...] = ("sAMAccountName", "displayName", "mail")

SHORT_INFO_ATTRIBUTES: tuple[str, ...] = (
    "sAMAccountName",
    "displayName",
    "userPrincipalName",
    "mail",
)

FULL_INFO_ATTRIBUTES: tuple[str, ...] = (
    "sAMAccountName",
    "homeDrive",
    "profilePath",
    "givenName",
    "sn",
    "middleName",
    "employeeID",
    "lastLogon",
    "userPrincipalName",
    "telephoneNumber",
    "company",
    "mobile",
    "name",
    "displayName",
    "description",
    "mail",
    "thumbnailPhoto",
    "jpegPhoto",
)


def get_required_user_attributes(options: DirectoryOptions) -> list[str]:
    """
    Return the attributes every user search must ask for so that we can
    build :class:`User` records and, if asked, expand their memberships.
    """
    attributes = list(REQUIRED_USER_ATTRIBUTES)
    if is_include_group_membership_for(options.search.include_membership, "user"):
        attributes.append("member")
    return attributes


async def find_users(options: DirectoryOptions, logger: logging.Logger | None = None) -> list[User]:
    """
    Find the users matching ``options.search.filter``.

    The filter may be a full LDAP filter, an ``attr=value`` comparison or a
    bare name (matched against ``cn``); either way it is restricted to user
    objects.  ``*`` wildcards at either end of a value are honoured.

    If ``options.search.include_membership`` contains ``"user"`` or
    ``"all"``, each user's :attr:`~adquery.models.User.groups` is filled in
    with every group they belong to, directly or through nesting.

    Args:
        options: where and how to search

    Keyword Args:
        logger: where to send trace output

    Raises:
        ldap.LDAPError: a search failed

    Returns:
        The users found.

    """
    logger = get_logger(logger, __name__)
    configured = options.search.attributes
    if should_include_all_attributes(configured):
        asked: list[str] = ["all"]
        attributes: list[str] = ["*"]
    else:
        asked = list(configured or DEFAULT_USER_ATTRIBUTES)
        attributes = join_attributes(asked, get_required_user_attributes(options), ["objectCategory"])
    searchfilter = get_wildcards_user_filter(options.search.filter)
    entries = await search(
        options.with_search(filter=searchfilter, attributes=attributes), logger=logger
    )
    if not entries:
        logger.debug("adquery.users.find.none filter=%s", truncate_log_output(searchfilter))
        return []

    expand = is_include_group_membership_for(options.search.include_membership, "user")

    async def make_user(entry: Entry) -> User | None:
        if not is_user_entry(entry):
            return None
        user = User.from_entry(entry, asked)
        if expand:
            groups = await get_group_members_for_dn(
                user.dn, options.with_search(attributes=None), logger=logger
            )
            user = user.with_groups(groups)
        return user

    users = [u for u in await asyncio.gather(*(make_user(e) for e in entries)) if u is not None]
    logger.debug(
        "adquery.users.find filter=%s count=%d", truncate_log_output(searchfilter), len(users)
    )
    return users


async def find_user(
    username: str | None, options: DirectoryOptions, logger: logging.Logger | None = None
) -> User | None:
    """
    Find one user by ``sAMAccountName``, ``userPrincipalName``, email address
    or distinguished name.

    With no ``username``, this returns the first user matching
    ``options.search.filter``.

    Args:
        username: the user to look for
        options: where and how to search

    Keyword Args:
        logger: where to send trace output

    Returns:
        The user, or ``None``.

    """
    searchfilter = (
        get_user_query_filter(username)
        if username
        else get_wildcards_user_filter(options.search.filter)
    )
    users = await find_users(options.with_search(filter=searchfilter), logger=logger)
    return users[0] if users else None


async def suggest_users(
    text: str,
    options: DirectoryOptions,
    top: int = 0,
    include_disabled: bool = False,
    attributes: list[str] | tuple[str, ...] | None = None,
    logger: logging.Logger | None = None,
) -> list[User]:
    """
    Suggest people whose ``sAMAccountName`` or ``name`` starts with
    ``text``, for autocompletion.

    Args:
        text: what the person has typed so far
        options: where and how to search

    Keyword Args:
        top: return at most this many people; 0 means no limit
        include_disabled: also suggest disabled accounts
        attributes: the attributes to return; ``userAccountControl`` is always
            added so :attr:`~adquery.models.User.enabled` works
        logger: where to send trace output

    Returns:
        The matching people.

    """
    text = (text or "").strip().lower()
    asked = join_attributes(attributes or SUGGEST_ATTRIBUTES, ["userAccountControl"])
    name_filter = Filter.OR(
        [
            Filter.attribute("sAMAccountName").starts_with(text),
            Filter.attribute("name").starts_with(text),
        ]
    ).to_string()
    enabled_only = "" if include_disabled else get_enabled_only_filter()
    searchfilter = f"(&{enabled_only}(objectCategory=person){name_filter})"
    entries = await search(
        options.merge(
            search=SearchOptions(
                filter=searchfilter,
                attributes=asked,
                size_limit=top,
                page_size=options.search.page_size,
            )
        ),
        logger=logger,
    )
    return [User.from_entry(entry, asked) for entry in entries]


async def get_thumbnail_photo(
    username: str, options: DirectoryOptions, logger: logging.Logger | None = None
) -> bytes | None:
    """
    Fetch the ``thumbnailPhoto`` of user ``username``.

    Returns:
        The JPEG bytes, or ``None`` if there is no such user or they have no
        photo.

    """
    entries = await search(
        options.merge(
            search=SearchOptions(
                filter=get_user_query_filter(username),
                attributes=("thumbnailPhoto",),
                page_size=options.search.page_size,
            )
        ),
        logger=logger,
    )
    if not entries:
        return None
    photo = entries[0].value_for("thumbnailPhoto")
    return photo if isinstance(photo, bytes) else None


async def get_user_info(
    username: str,
    options: DirectoryOptions,
    full: bool = False,
    with_members: bool = False,
    logger: logging.Logger | None = None,
) -> User | None:
    """
    Look up a person by their domain login (``sAMAccountName``).

    Args:
        username: the login, without the domain
        options: where and how to search

    Keyword Args:
        full: fetch the long attribute list (phones, photos, profile paths)
            instead of just names and mail
        with_members: with ``full``, also fetch ``memberOf``
        logger: where to send trace output

    Raises:
        ValueError: the directory returned someone with a different login

    Returns:
        The person, or ``None``.

    """
    username = username.strip()
    attributes = list(FULL_INFO_ATTRIBUTES if full else SHORT_INFO_ATTRIBUTES)
    if full and with_members:
        attributes.append("memberOf")
    attributes.append("userAccountControl")
    searchfilter = Filter.AND(
        [
            Filter.attribute("objectCategory").equal_to("person"),
            Filter.attribute("sAMAccountName").equal_to(username.lower()),
        ]
    ).to_string()
    entries = await search(
        options.merge(
            search=SearchOptions(filter=searchfilter, attributes=attributes, size_limit=1)
        ),
        logger=logger,
    )
    if not entries:
        return None
    entry = entries[0]
    if str(entry.value_for("sAMAccountName", "")).lower() != username.lower():
        msg = f"Username does not match: {username}"
        raise ValueError(msg)
    if not entry.values_for("mail") and entry.values_for("userPrincipalName"):
        entry = entry.replace(attributes={"mail": entry.values_for("userPrincipalName")})
    return User.from_entry(entry, [*attributes, "mail"])
