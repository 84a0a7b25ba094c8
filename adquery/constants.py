"""
Well-known Active Directory constants: control OIDs, matching rules, and the
default attribute sets requested for users and groups.
"""

from enum import Enum

#: Page size used for the paged results control when none is configured
DEFAULT_PAGE_SIZE: int = 1000

#: Seconds to sleep between two polls of an outstanding LDAP operation
DEFAULT_POLL_INTERVAL: float = 0.01

#: How many referral hops a single search may follow
DEFAULT_MAX_REFERRAL_DEPTH: int = 5

#: Longest log line fragment before it gets truncated
MAX_OUTPUT_LENGTH: int = 256

#: Matching rule that makes ``member``/``memberOf`` comparisons transitive
LDAP_MATCHING_RULE_IN_CHAIN: str = "1.2.840.113556.1.4.1941"

#: Matching rule for bitwise AND comparisons (``userAccountControl`` flags)
LDAP_MATCHING_RULE_BIT_AND: str = "1.2.840.113556.1.4.803"

#: ``userAccountControl`` flag for disabled accounts
ACCOUNTDISABLE: int = 0x0002

PAGED_RESULTS_OID: str = "1.2.840.113556.1.4.319"


class EControl(str, Enum):
    """
    OIDs of the Active Directory extended controls we know how to request.
    """

    #: Return deleted (tombstoned) objects
    DELETED = "1.2.840.113556.1.4.417"
    #: Return recycled objects (requires the AD recycle bin)
    RECYCLED = "1.2.840.113556.1.4.2064"
    #: Return search statistics in the search result
    STATS = "1.2.840.113556.1.4.970"
    #: Let the server commit without flushing to disk
    LAZY_COMMIT = "1.2.840.113556.1.4.619"
    #: Server side sorting (RFC 2891)
    SORT = "1.2.840.113556.1.4.473"


#: Attributes requested for user lookups when the caller does not name any
DEFAULT_USER_ATTRIBUTES: tuple[str, ...] = (
    "dn",
    "distinguishedName",
    "userPrincipalName",
    "sAMAccountName",
    "mail",
    "lockoutTime",
    "whenCreated",
    "pwdLastSet",
    "userAccountControl",
    "employeeID",
    "sn",
    "givenName",
    "initials",
    "cn",
    "displayName",
    "comment",
    "description",
)

#: Attributes requested for group lookups when the caller does not name any
DEFAULT_GROUP_ATTRIBUTES: tuple[str, ...] = (
    "dn",
    "cn",
    "description",
    "distinguishedName",
    "objectCategory",
)

#: Attributes every user lookup needs so we can build a :class:`User`
REQUIRED_USER_ATTRIBUTES: tuple[str, ...] = ("dn", "cn")

#: Attributes requested when listing every group in the directory
GROUP_BASE_ATTRIBUTES: tuple[str, ...] = (
    "cn",
    "distinguishedName",
    "description",
    "sAMAccountName",
    "groupType",
)

#: Referral URIs we never chase: the DNS application partitions and the
#: configuration naming context
DEFAULT_REFERRAL_EXCLUDES: tuple[str, ...] = (
    r"ldaps?://ForestDnsZones\..*/.*",
    r"ldaps?://DomainDnsZones\..*/.*",
    r"ldaps?://.*/CN=Configuration,.*",
)

#: Attribute values python-ldap hands us that are binary and must not be
#: decoded as UTF-8
BINARY_ATTRIBUTES: frozenset[str] = frozenset(
    name.lower()
    for name in (
        "objectSid",
        "objectGUID",
        "msExchMailboxGuid",
        "msExchMasterAccountSid",
        "thumbnailPhoto",
        "jpegPhoto",
        "tokenGroups",
        "sIDHistory",
        "userCertificate",
        "nTSecurityDescriptor",
        "msExchArchiveGUID",
    )
)

#: Tokens that mean "every attribute" in a requested attribute list
ALL_ATTRIBUTES_TOKENS: frozenset[str] = frozenset(("*", "all"))
