"""
Default entry parsers.

A :class:`~adquery.searcher.Searcher` passes each raw entry through a
pre-parser before assembling its ranged attributes, and each finished entry
through a post-parser before adding it to the results.  Either can be replaced
via :class:`~adquery.conf.DirectoryOptions`.
"""

from .converters import binary_guid_to_string_guid, binary_sid_to_string_sid
from .entry import Entry

#: binary attribute -> converter to its string form
BINARY_CONVERTERS = {
    "objectSid": binary_sid_to_string_sid,
    "msExchMasterAccountSid": binary_sid_to_string_sid,
    "objectGUID": binary_guid_to_string_guid,
    "msExchMailboxGuid": binary_guid_to_string_guid,
    "msExchArchiveGUID": binary_guid_to_string_guid,
}


def default_pre_entry_parser(entry: Entry) -> Entry:
    """
    Replace the binary SID and GUID attributes of ``entry`` with their string
    forms.  Values that are already strings are left alone.
    """
    converted = {}
    for name, converter in BINARY_CONVERTERS.items():
        values = entry.values_for(name)
        if values and isinstance(values[-1], bytes):
            converted[name] = [converter(values[-1])]
    if not converted:
        return entry
    return entry.replace(attributes=converted)


def default_entry_parser(entry: Entry) -> Entry:
    return entry
