"""
Type aliases for the raw data python-ldap hands back.

python-ldap returns attribute values as lists of ``bytes``; once an entry has
been through :mod:`adquery.entry` text attributes are ``str`` and binary ones
stay ``bytes``.
"""

from typing import Any

AttributeValue = str | bytes
AttributeMap = dict[str, list[AttributeValue]]
#: A python-ldap ``result3()`` tuple: (rtype, rdata, msgid, serverctrls)
ResultMessage = tuple[int | None, list[Any] | None, int | None, list[Any] | None]
