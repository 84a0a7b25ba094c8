# type: ignore
"""
Tests for Entry, the attribute helpers and entry classification.
"""

import unittest

from adquery.attributes import (
    is_group_entry,
    is_include_group_membership_for,
    is_user_entry,
    join_attributes,
    pick_attributes,
    should_include_all_attributes,
    truncate_log_output,
)
from adquery.entry import Entry, SearchReference


class TestEntry(unittest.TestCase):
    """Test the Entry value type."""

    def test_from_ldap_decodes_text(self):
        entry = Entry.from_ldap(
            "CN=Jane,DC=example,DC=com",
            {"cn": [b"Jane"], "objectSid": [b"\x01\x02"], "description": [b"\xff\xfe"]},
        )
        self.assertEqual(entry["cn"], ["Jane"])
        self.assertEqual(entry["objectSid"], [b"\x01\x02"])
        # not valid UTF-8 and not a known binary attribute: left as bytes
        self.assertEqual(entry["description"], [b"\xff\xfe"])

    def test_lookup_is_case_insensitive(self):
        entry = Entry("CN=Jane", {"sAMAccountName": ["jane"]})
        self.assertEqual(entry["samaccountname"], ["jane"])
        self.assertIn("SAMACCOUNTNAME", entry)
        self.assertEqual(list(entry), ["sAMAccountName"])

    def test_values_for_and_value_for(self):
        entry = Entry("CN=Jane", {"mail": ["a@example.com", "b@example.com"]})
        self.assertEqual(entry.values_for("mail"), ["a@example.com", "b@example.com"])
        self.assertEqual(entry.value_for("mail"), "b@example.com")
        self.assertEqual(entry.values_for("sn"), [])
        self.assertIsNone(entry.value_for("sn"))
        self.assertEqual(entry.value_for("sn", "x"), "x")

    def test_replace_returns_copy(self):
        entry = Entry("CN=Jane", {"cn": ["Jane"], "Member;range=0-1": ["a"]})
        changed = entry.replace(attributes={"member": ["a", "b"]}, remove=["member;range=0-1"])
        self.assertEqual(changed.as_dict(), {"cn": ["Jane"], "member": ["a", "b"]})
        self.assertEqual(entry.as_dict(), {"cn": ["Jane"], "Member;range=0-1": ["a"]})

    def test_replace_overwrites_case_insensitively(self):
        entry = Entry("CN=Jane", {"objectsid": [b"\x01"]})
        changed = entry.replace(attributes={"objectSid": ["S-1-5"]})
        self.assertEqual(changed.as_dict(), {"objectSid": ["S-1-5"]})

    def test_equality(self):
        self.assertEqual(Entry("CN=a", {"cn": ["a"]}), Entry("CN=a", {"cn": ["a"]}))
        self.assertNotEqual(Entry("CN=a", {"cn": ["a"]}), Entry("CN=b", {"cn": ["a"]}))

    def test_search_reference(self):
        ref = SearchReference(("ldap://a/DC=a",))
        self.assertEqual(ref.uris, ("ldap://a/DC=a",))


class TestClassification(unittest.TestCase):
    """Test deciding whether an entry is a user or a group."""

    def test_group_type_wins(self):
        entry = Entry("CN=g", {"groupType": ["-2147483646"], "objectClass": ["top", "user"]})
        self.assertTrue(is_group_entry(entry))

    def test_group_by_category(self):
        entry = Entry(
            "CN=g",
            {"objectCategory": ["CN=Group,CN=Schema,CN=Configuration,DC=example,DC=com"]},
        )
        self.assertTrue(is_group_entry(entry))

    def test_category_decides_before_object_class(self):
        entry = Entry(
            "CN=u",
            {
                "objectCategory": ["CN=Person,CN=Schema,CN=Configuration,DC=example,DC=com"],
                "objectClass": ["top", "group"],
            },
        )
        self.assertFalse(is_group_entry(entry))
        self.assertTrue(is_user_entry(entry))

    def test_group_by_object_class(self):
        self.assertTrue(is_group_entry(Entry("CN=g", {"objectClass": ["top", "Group"]})))

    def test_user_by_object_class(self):
        entry = Entry("CN=u", {"objectClass": ["top", "person", "user"]})
        self.assertTrue(is_user_entry(entry))
        self.assertFalse(is_group_entry(entry))

    def test_user_by_upn(self):
        self.assertTrue(is_user_entry(Entry("CN=u", {"userPrincipalName": ["u@example.com"]})))

    def test_no_signal(self):
        entry = Entry("CN=x", {"cn": ["x"]})
        self.assertFalse(is_group_entry(entry))
        self.assertFalse(is_user_entry(entry))


class TestAttributeHelpers(unittest.TestCase):
    def test_should_include_all(self):
        self.assertTrue(should_include_all_attributes(["cn", "*"]))
        self.assertTrue(should_include_all_attributes(["all"]))
        self.assertFalse(should_include_all_attributes(["cn"]))
        self.assertFalse(should_include_all_attributes(None))

    def test_pick_attributes(self):
        entry = Entry("CN=u", {"cn": ["u"], "mail": ["u@example.com"], "sn": ["U"]})
        self.assertEqual(pick_attributes(entry, ["CN", "mail"]), {"cn": ["u"], "mail": ["u@example.com"]})
        self.assertEqual(pick_attributes(entry, ["all"]), entry.as_dict())

    def test_join_attributes(self):
        self.assertEqual(join_attributes(["cn", "mail"], ["mail", "dn"], None), ["cn", "dn", "mail"])

    def test_is_include_group_membership_for(self):
        self.assertTrue(is_include_group_membership_for(["User"], "user"))
        self.assertTrue(is_include_group_membership_for(["all"], "group"))
        self.assertFalse(is_include_group_membership_for(["group"], "user"))
        self.assertFalse(is_include_group_membership_for(None, "user"))

    def test_truncate_log_output(self):
        self.assertEqual(truncate_log_output("abc", 5), "abc")
        self.assertEqual(truncate_log_output("abcdefgh", 5), "abcde...")


if __name__ == "__main__":
    unittest.main()
