"""
Records for the users and groups the lookup functions return.
"""

import datetime
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from django.utils.datastructures import CaseInsensitiveMapping

from .attributes import pick_attributes
from .constants import ACCOUNTDISABLE
from .converters import ad_timestamp_to_datetime, generalized_time_to_datetime
from .entry import Entry
from .typing import AttributeValue


@dataclass(frozen=True)
class DirectoryObject:
    """
    Base for :class:`User` and :class:`Group`: a DN plus the attributes the
    caller asked for.  Two records are the same object if their DNs are
    equal.
    """

    dn: str
    attributes: Mapping[str, list[AttributeValue]] = field(
        default_factory=dict, compare=False, repr=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "attributes", CaseInsensitiveMapping(dict(self.attributes))
        )

    def __str__(self) -> str:
        return self.cn or self.dn

    @classmethod
    def from_entry(cls, entry: Entry, attributes: Iterable[str] | None = None, **kwargs: Any):
        """
        Build a record from ``entry``, keeping only ``attributes`` (or
        everything, if ``attributes`` is empty or has a wildcard).
        """
        picked = pick_attributes(entry, attributes) if attributes else entry.as_dict()
        return cls(dn=entry.dn, attributes=picked, **kwargs)

    def get(self, name: str, default: Any = None) -> Any:
        """
        Return the (last) value of attribute ``name``.
        """
        values = self.attributes.get(name)
        if not values:
            return default
        return values[-1]

    def get_list(self, name: str) -> list[AttributeValue]:
        return list(self.attributes.get(name, []))

    @property
    def cn(self) -> str | None:
        return self.get("cn")

    @property
    def description(self) -> str | None:
        return self.get("description")


@dataclass(frozen=True)
class Group(DirectoryObject):
    """
    An Active Directory group.
    """

    @property
    def sam_account_name(self) -> str | None:
        return self.get("sAMAccountName")

    @property
    def members(self) -> list[AttributeValue]:
        return self.get_list("member")


@dataclass(frozen=True)
class User(DirectoryObject):
    """
    An Active Directory user account.

    :attr:`groups` is only filled in when group membership expansion was
    asked for.
    """

    groups: tuple[Group, ...] = field(default=(), compare=False, repr=False)

    def __post_init__(self) -> None:
        super().__post_init__()
        object.__setattr__(self, "groups", tuple(self.groups))

    def with_groups(self, groups: Iterable[Group]) -> "User":
        """
        Return a copy of this user with :attr:`groups` set to ``groups``.
        """
        return replace(self, groups=tuple(groups))

    def is_member_of(self, group: str | None) -> bool:
        """
        Return ``True`` if this user is a member of ``group``, given either
        as a common name or as a distinguished name.  Matching is
        case-insensitive and only consults :attr:`groups`.
        """
        if not group:
            return False
        wanted = group.lower()
        return any(
            wanted in {g.dn.lower(), (g.cn or "").lower()} for g in self.groups
        )

    @property
    def sam_account_name(self) -> str | None:
        return self.get("sAMAccountName")

    @property
    def user_principal_name(self) -> str | None:
        return self.get("userPrincipalName")

    @property
    def mail(self) -> str | None:
        return self.get("mail")

    @property
    def display_name(self) -> str | None:
        return self.get("displayName")

    @property
    def enabled(self) -> bool | None:
        """
        ``False`` if the account is disabled, ``None`` if we did not fetch
        ``userAccountControl``.
        """
        uac = self.get("userAccountControl")
        if uac is None:
            return None
        return not int(uac) & ACCOUNTDISABLE

    @property
    def when_created(self) -> datetime.datetime | None:
        value = self.get("whenCreated")
        return generalized_time_to_datetime(value) if value else None

    @property
    def pwd_last_set(self) -> datetime.datetime | None:
        value = self.get("pwdLastSet")
        return ad_timestamp_to_datetime(value) if value is not None else None

    @property
    def last_logon(self) -> datetime.datetime | None:
        value = self.get("lastLogon")
        return ad_timestamp_to_datetime(value) if value is not None else None

    @property
    def lockout_time(self) -> datetime.datetime | None:
        value = self.get("lockoutTime")
        return ad_timestamp_to_datetime(value) if value is not None else None
