"""
Active Directory queries for Django projects: paged, referral-following
searches with ranged attribute assembly, user lookups, and recursive group
membership resolution.
"""

import logging

from .conf import ConnectionOptions, DirectoryOptions, ReferralPolicy, SearchOptions
from .entry import Entry, SearchReference
from .groups import (
    GroupMembershipChecker,
    GroupNode,
    find_group,
    find_groups,
    get_all_groups,
    get_group_members_for_dn,
    get_groups_for_user,
)
from .models import Group, User
from .ranges import RangeAttribute
from .searcher import Searcher, search
from .users import find_user, find_users, get_thumbnail_photo, get_user_info, suggest_users

__version__ = "1.0.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "ConnectionOptions",
    "DirectoryOptions",
    "Entry",
    "Group",
    "GroupMembershipChecker",
    "GroupNode",
    "RangeAttribute",
    "ReferralPolicy",
    "SearchOptions",
    "SearchReference",
    "Searcher",
    "User",
    "find_group",
    "find_groups",
    "find_user",
    "find_users",
    "get_all_groups",
    "get_group_members_for_dn",
    "get_groups_for_user",
    "get_thumbnail_photo",
    "get_user_info",
    "search",
    "suggest_users",
]
