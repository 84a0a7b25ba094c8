"""
LDAP controls we attach to Active Directory searches.
"""

from typing import ClassVar

from ldap.controls import LDAPControl, SimplePagedResultsControl
from pyasn1.codec.ber import encoder  # type: ignore[import]
from pyasn1.type import namedtype, tag, univ  # type: ignore[import]

from .constants import DEFAULT_PAGE_SIZE, EControl

# -----------------------
# Server-Side Sort (RFC 2891)
# -----------------------


class SortKey(univ.Sequence):
    """
    SortKey is a sequence of attributeType, orderingRule, and reverseOrder.

    See RFC 2891 for more details.
    """

    componentType: ClassVar[namedtype.NamedTypes] = namedtype.NamedTypes(  # noqa: N815
        namedtype.NamedType("attributeType", univ.OctetString()),
        namedtype.OptionalNamedType(
            "orderingRule",
            univ.OctetString().subtype(
                explicitTag=tag.Tag(tag.tagClassContext, tag.tagFormatSimple, 0)
            ),
        ),
        namedtype.DefaultedNamedType(
            "reverseOrder",
            univ.Boolean(False).subtype(  # noqa: FBT003
                explicitTag=tag.Tag(tag.tagClassContext, tag.tagFormatSimple, 1)
            ),
        ),
    )


class SortKeyList(univ.SequenceOf):
    """
    A sequence of SortKeys.
    """

    componentType: ClassVar[SortKey] = SortKey()  # noqa: N815


def build_sort_control_value(sort_fields: list[str] | tuple[str, ...]) -> bytes:
    """
    Build the BER-encoded control value for server-side sorting.

    Args:
        sort_fields: Attribute names to sort by; a leading ``-`` means
            descending.

    Returns:
        BER-encoded control value.

    """
    if not sort_fields:
        return b""
    sort_key_list = SortKeyList()
    for sort_field in sort_fields:
        descending = sort_field.startswith("-")
        attr_name = sort_field[1:] if descending else sort_field
        sort_key = SortKey()
        sort_key.setComponentByName(
            "attributeType", univ.OctetString(attr_name.encode("utf-8"))
        )
        if descending:
            sort_key.setComponentByName(
                "reverseOrder",
                univ.Boolean(True).subtype(  # noqa: FBT003
                    explicitTag=tag.Tag(tag.tagClassContext, tag.tagFormatSimple, 1)
                ),
            )
        sort_key_list.append(sort_key)
    return encoder.encode(sort_key_list)


class ServerSideSortControl(LDAPControl):
    """
    Ask the server to sort the results before returning them.

    Args:
        criticality: Whether the control is critical.
        sort_key_list: Attribute names to sort by; a leading ``-`` means
            descending.

    """

    control_type = EControl.SORT.value

    def __init__(
        self,
        criticality: bool = False,
        sort_key_list: list[str] | tuple[str, ...] | None = None,
    ) -> None:
        super().__init__(
            self.control_type, criticality, build_sort_control_value(sort_key_list or [])
        )


# -----------------------
# Active Directory value-less controls
# -----------------------


class ShowDeletedControl(LDAPControl):
    """
    LDAP_SERVER_SHOW_DELETED_OID: make tombstones and deleted objects visible
    to the search.
    """

    def __init__(self, criticality: bool = True) -> None:
        super().__init__(EControl.DELETED.value, criticality, None)


def get_control(control: EControl, criticality: bool = True) -> LDAPControl:
    """
    Build a value-less Active Directory control by OID.
    """
    if control == EControl.DELETED:
        return ShowDeletedControl(criticality)
    return LDAPControl(EControl(control).value, criticality, None)


def has_control(controls: list[LDAPControl] | tuple[LDAPControl, ...], oid: str) -> bool:
    """
    Return ``True`` if ``controls`` already has a control of type ``oid``.
    """
    return any(c.controlType == oid for c in controls)


def get_paged_controls(serverctrls: list[LDAPControl] | None) -> list[SimplePagedResultsControl]:
    """
    Lookup the paged results controls among the controls a search result
    returned.  Their ``cookie`` is what we need to request the next page.
    """
    return [
        c
        for c in serverctrls or []
        if c.controlType == SimplePagedResultsControl.controlType
    ]


def copy_controls(controls: list[LDAPControl] | tuple[LDAPControl, ...]) -> list[LDAPControl]:
    """
    Return the controls to send with one search request.

    Paged results controls carry per-search state (the cookie), so each search
    gets a fresh one with the same page size and criticality; the rest are
    shared.
    """
    copied: list[LDAPControl] = []
    for control in controls:
        if control.controlType == SimplePagedResultsControl.controlType:
            copied.append(
                SimplePagedResultsControl(
                    control.criticality,
                    size=getattr(control, "size", DEFAULT_PAGE_SIZE),
                    cookie="",
                )
            )
        else:
            copied.append(control)
    return copied
