"""
Converters for the raw attribute values Active Directory hands back.

python-ldap gives us every attribute value as ``bytes``.  Most of them are
UTF-8 text, but a handful (SIDs, GUIDs, photos) are binary blobs, and AD
stores timestamps either as GeneralizedTime strings or as Windows NT
"FILETIME" integers.
"""

import datetime
import struct
import uuid

import pytz

#: The Active Directory epoch (January 1, 1601 UTC).
AD_EPOCH: datetime.datetime = datetime.datetime(1601, 1, 1, tzinfo=pytz.UTC)
#: The number of 100-nanosecond intervals per second.
INTERVALS_PER_SECOND: int = 10_000_000
#: AD uses both 0 and the largest 64-bit integer to mean "never"
AD_NEVER: frozenset[int] = frozenset((0, 0x7FFFFFFFFFFFFFFF))

LDAP_DATETIME_FORMATS: list[str] = [
    "%Y%m%d%H%M%SZ",
    "%Y%m%d%H%M%S.%fZ",
    "%Y%m%d%H%M%S+0000",
]

#: Length of a SID header: revision, subauthority count and 48 bit authority
SID_HEADER_LENGTH: int = 8
GUID_LENGTH: int = 16


def decode_value(value: bytes | str) -> str:
    """
    Decode a single LDAP attribute value as UTF-8 text.

    Args:
        value: The raw value.

    Returns:
        The decoded string.

    """
    if isinstance(value, str):
        return value
    return value.decode("utf-8")


def binary_sid_to_string_sid(sid: bytes) -> str:
    """
    Convert a binary ``objectSid`` to its ``S-1-5-21-...`` string form.

    The layout is: revision (1 byte), number of subauthorities (1 byte),
    identifier authority (6 bytes, big-endian), then the subauthorities as
    32 bit little-endian integers.

    Args:
        sid: The binary SID.

    Raises:
        ValueError: ``sid`` is too short to be a SID.

    Returns:
        The string SID.

    """
    if len(sid) < SID_HEADER_LENGTH:
        msg = f"Not a binary SID: {sid!r}"
        raise ValueError(msg)
    revision = sid[0]
    authority = int.from_bytes(sid[2:8], "big")
    parts = ["S", str(revision), str(authority)]
    for offset in range(SID_HEADER_LENGTH, len(sid) - 3, 4):
        parts.append(str(struct.unpack("<I", sid[offset : offset + 4])[0]))
    return "-".join(parts)


def binary_guid_to_string_guid(guid: bytes) -> str:
    """
    Convert a binary ``objectGUID`` to its canonical string form.

    AD stores the first three GUID fields little-endian.

    Args:
        guid: The 16 byte binary GUID.

    Raises:
        ValueError: ``guid`` is not 16 bytes long.

    Returns:
        The GUID as ``xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx``.

    """
    if len(guid) != GUID_LENGTH:
        msg = f"Not a binary GUID: {guid!r}"
        raise ValueError(msg)
    return str(uuid.UUID(bytes_le=guid))


def ad_timestamp_to_datetime(value: int | str | bytes) -> datetime.datetime | None:
    """
    Convert an Active Directory FILETIME timestamp to an aware ``datetime``.

    The Active Directory timestamp is the number of 100-nanosecond intervals
    since Jan 1, 1601 UTC.  ``0`` and ``0x7FFFFFFFFFFFFFFF`` mean "never" and
    convert to ``None``.

    Args:
        value: The timestamp, as an integer or its decimal text.

    Raises:
        ValueError: ``value`` is not an integer or is out of range.

    Returns:
        The corresponding UTC datetime, or ``None``.

    """
    if isinstance(value, bytes):
        value = decode_value(value)
    timestamp = int(value)
    if timestamp in AD_NEVER:
        return None
    try:
        return AD_EPOCH + datetime.timedelta(seconds=timestamp / INTERVALS_PER_SECOND)
    except OverflowError as e:
        msg = f"Active Directory timestamp out of range: {value}"
        raise ValueError(msg) from e


def datetime_to_ad_timestamp(dt: datetime.datetime) -> int:
    """
    Convert a ``datetime`` to an Active Directory FILETIME timestamp.

    Naive datetimes are taken to be UTC.
    """
    dt = pytz.utc.localize(dt) if dt.tzinfo is None else dt.astimezone(pytz.UTC)
    delta = dt - AD_EPOCH
    return int(delta.total_seconds() * INTERVALS_PER_SECOND)


def generalized_time_to_datetime(value: str | bytes) -> datetime.datetime:
    """
    Convert an LDAP GeneralizedTime value (``whenCreated``, ``whenChanged``)
    to an aware UTC ``datetime``.

    Args:
        value: The GeneralizedTime string.

    Raises:
        ValueError: ``value`` matches none of the formats we understand.

    Returns:
        The parsed datetime.

    """
    dt_str = decode_value(value)
    for fmt in LDAP_DATETIME_FORMATS:
        try:
            dt = datetime.datetime.strptime(dt_str, fmt)  # noqa: DTZ007
        except ValueError:  # noqa: PERF203
            pass
        else:
            return pytz.utc.localize(dt)
    msg = f"Unsupported LDAP datetime format: {dt_str}"
    raise ValueError(msg)
