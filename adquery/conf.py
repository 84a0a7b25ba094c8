"""
Configuration for directory searches.

Every search is driven by a :class:`DirectoryOptions` value.  Option objects
are frozen: to change something, use :meth:`DirectoryOptions.merge` or
:meth:`DirectoryOptions.with_search`, which return a new object and leave the
original alone.

Connection details are normally read from ``settings.LDAP_SERVERS``::

    LDAP_SERVERS = {
        "default": {
            "basedn": "DC=example,DC=com",
            "read": {
                "url": "ldaps://dc1.example.com",
                "user": "CN=svc-reader,OU=Service Accounts,DC=example,DC=com",
                "password": "secret",
                "use_starttls": False,
                "tls_verify": "always",
                "timeout": 15.0,
                "follow_referrals": False,
                "sizelimit": 0,
            },
        }
    }

Library-wide tunables come from ``ADQUERY_*`` settings; see
:func:`get_config`.
"""

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

import ldap
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from .constants import (
    DEFAULT_MAX_REFERRAL_DEPTH,
    DEFAULT_PAGE_SIZE,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_REFERRAL_EXCLUDES,
)

if TYPE_CHECKING:
    from ldap.controls import LDAPControl

    from .entry import Entry

    EntryParser = Callable[[Entry], Entry]


def get_config(setting_name: str, default_value: Any) -> Any:
    """
    Get configuration value from Django settings with fallback.

    If Django settings have not been configured at all, ``default_value`` is
    returned.

    Args:
        setting_name: Name of the setting (without ADQUERY_ prefix)
        default_value: Default value if setting not found

    Returns:
        Configuration value from settings or default

    """
    if not settings.configured:
        return default_value
    return getattr(settings, f"ADQUERY_{setting_name}", default_value)


def _as_tuple(value: Iterable[str] | str | None) -> tuple[str, ...] | None:
    if value is None:
        return None
    if isinstance(value, str):
        return (value,)
    return tuple(value)


@dataclass(frozen=True)
class ConnectionOptions:
    """
    How to reach and authenticate to one directory server.
    """

    #: ``ldap://`` or ``ldaps://`` URL of the server
    url: str | None = None
    #: Bind DN (or UPN).  No user means we do not bind at all.
    user: str | None = None
    password: str | None = None
    #: Network timeout, and the deadline for each bind or search, in seconds
    timeout: float = 15.0
    use_starttls: bool = False
    #: ``"never"`` or ``"always"``
    tls_verify: str = "never"
    tls_ca_certfile: str | None = None
    tls_certfile: str | None = None
    tls_keyfile: str | None = None
    #: Client-side size limit; 0 means the server's limit
    sizelimit: int = 0
    #: Seconds to wait between polls of an outstanding operation
    poll_interval: float = field(
        default_factory=lambda: float(get_config("POLL_INTERVAL", DEFAULT_POLL_INTERVAL))
    )


@dataclass(frozen=True)
class ReferralPolicy:
    """
    Which search continuation references we chase.
    """

    enabled: bool = False
    #: Regular expressions, matched case-insensitively against the referral
    #: URI; a match means "don't follow"
    exclude: tuple[str, ...] = DEFAULT_REFERRAL_EXCLUDES
    #: How many referral hops deep we go
    max_depth: int = field(
        default_factory=lambda: int(get_config("MAX_REFERRAL_DEPTH", DEFAULT_MAX_REFERRAL_DEPTH))
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "exclude", _as_tuple(self.exclude) or ())

    def is_allowed(self, uri: str | None) -> bool:
        """
        Return ``True`` if we should chase the referral ``uri``.
        """
        if not uri or not self.enabled:
            return False
        return not any(re.search(pattern, uri, re.IGNORECASE) for pattern in self.exclude)


@dataclass(frozen=True)
class SearchOptions:
    """
    What to search for.
    """

    filter: str | None = None
    scope: int = ldap.SCOPE_SUBTREE  # type: ignore[attr-defined]
    #: ``None`` means whatever the caller's default is; ``("*",)`` means all
    attributes: tuple[str, ...] | None = None
    #: Paged results page size; ``None`` means ``ADQUERY_DEFAULT_PAGE_SIZE``
    page_size: int | None = None
    #: Server-side size limit for the search; 0 means no limit
    size_limit: int = 0
    #: ``"user"``, ``"group"`` and/or ``"all"``: whose group memberships to
    #: expand
    include_membership: tuple[str, ...] = ()
    #: Attribute names to have the server sort by; prefix with ``-`` for
    #: descending
    sort: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "attributes", _as_tuple(self.attributes))
        object.__setattr__(self, "include_membership", _as_tuple(self.include_membership) or ())
        object.__setattr__(self, "sort", _as_tuple(self.sort) or ())

    def get_page_size(self) -> int:
        if self.page_size:
            return self.page_size
        return int(get_config("DEFAULT_PAGE_SIZE", DEFAULT_PAGE_SIZE))


@dataclass(frozen=True)
class DirectoryOptions:
    """
    Everything a :class:`~adquery.searcher.Searcher` needs: where to search,
    how to connect, what to search for, and how to post-process entries.
    """

    basedn: str
    connection: ConnectionOptions
    search: SearchOptions = field(default_factory=SearchOptions)
    #: Ask AD to include deleted (tombstoned) objects
    include_deleted: bool = False
    referrals: ReferralPolicy = field(default_factory=ReferralPolicy)
    #: Extra controls to send with every search
    controls: tuple["LDAPControl", ...] = ()
    #: Called on each raw entry before ranged attributes are assembled
    pre_entry_parser: "EntryParser | None" = None
    #: Called on each finished entry before it is added to the results
    entry_parser: "EntryParser | None" = None
    #: How many referral hops led to this search
    referral_depth: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "controls", tuple(self.controls or ()))

    def merge(self, **changes: Any) -> "DirectoryOptions":
        """
        Return a copy of these options with ``changes`` applied.
        """
        return replace(self, **changes)

    def with_search(self, **changes: Any) -> "DirectoryOptions":
        """
        Return a copy of these options with ``changes`` applied to
        :attr:`search`.
        """
        return replace(self, search=replace(self.search, **changes))

    @classmethod
    def from_settings(
        cls, server: str = "default", key: str = "read", **changes: Any
    ) -> "DirectoryOptions":
        """
        Build options from ``settings.LDAP_SERVERS[server]``.

        Args:
            server: the key into ``settings.LDAP_SERVERS``
            key: which connection of that server to use (``"read"``)

        Keyword Args:
            changes: overrides for the resulting :class:`DirectoryOptions`

        Raises:
            ImproperlyConfigured: ``settings.LDAP_SERVERS`` is missing, or has
                no such server, or that server has no ``basedn`` or no such
                connection.

        Returns:
            A new :class:`DirectoryOptions`.

        """
        try:
            config = settings.LDAP_SERVERS[server]
        except AttributeError as e:
            msg = "settings.LDAP_SERVERS does not exist!"
            raise ImproperlyConfigured(msg) from e
        except KeyError as e:
            msg = f"settings.LDAP_SERVERS has no key '{server}'"
            raise ImproperlyConfigured(msg) from e
        try:
            basedn = config["basedn"]
        except KeyError as e:
            msg = f"settings.LDAP_SERVERS['{server}'] has no 'basedn' key"
            raise ImproperlyConfigured(msg) from e
        try:
            server_config = config[key]
        except KeyError as e:
            msg = f"settings.LDAP_SERVERS['{server}'] has no '{key}' key"
            raise ImproperlyConfigured(msg) from e
        connection = ConnectionOptions(
            url=server_config.get("url"),
            user=server_config.get("user"),
            password=server_config.get("password"),
            timeout=float(server_config.get("timeout", 15.0)),
            use_starttls=server_config.get("use_starttls", True),
            tls_verify=server_config.get("tls_verify", "never"),
            tls_ca_certfile=server_config.get("tls_ca_certfile"),
            tls_certfile=server_config.get("tls_certfile"),
            tls_keyfile=server_config.get("tls_keyfile"),
            sizelimit=int(server_config.get("sizelimit", 0) or 0),
        )
        referrals = ReferralPolicy(enabled=bool(server_config.get("follow_referrals", False)))
        options = cls(basedn=basedn, connection=connection, referrals=referrals)
        return options.merge(**changes) if changes else options


def get_logger(logger: logging.Logger | None, name: str) -> logging.Logger:
    """
    Return ``logger`` if the caller gave us one, else the module logger
    ``name``.
    """
    return logger if logger is not None else logging.getLogger(name)
