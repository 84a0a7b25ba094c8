# type: ignore
"""
Tests for RangeAttribute and RangedSearchResult.
"""

import unittest

from adquery.entry import Entry
from adquery.ranges import RangeAttribute, RangedSearchResult


class TestRangeAttribute(unittest.TestCase):
    """Test parsing and advancing ranged attribute specifiers."""

    def test_parse(self):
        attr = RangeAttribute("member;range=0-1499")
        self.assertEqual(attr.attribute_name, "member")
        self.assertEqual(attr.low, 0)
        self.assertEqual(attr.high, 1499)
        self.assertFalse(attr.is_complete())

    def test_parse_is_case_insensitive(self):
        attr = RangeAttribute("member;RANGE=1500-2999")
        self.assertEqual(attr.attribute_name, "member")
        self.assertEqual(attr.low, 1500)

    def test_parse_star(self):
        attr = RangeAttribute("member;range=1500-*")
        self.assertEqual(attr.low, 1500)
        self.assertIsNone(attr.high)
        self.assertTrue(attr.is_complete())
        self.assertEqual(str(attr), "member;range=1500-*")

    def test_parse_not_ranged(self):
        attr = RangeAttribute("member")
        self.assertIsNone(attr.attribute_name)
        self.assertIsNone(attr.low)
        self.assertIsNone(attr.high)

    def test_next_after_first_page_keeps_window_size(self):
        attr = RangeAttribute("member;range=0-999")
        self.assertIs(attr.next(), attr)
        self.assertEqual(str(attr), "member;range=1000-1999")

    def test_next_after_later_page_doubles_window(self):
        attr = RangeAttribute("member;range=1000-1999")
        attr.next()
        self.assertEqual(str(attr), "member;range=2000-3999")

    def test_next_on_last_page(self):
        self.assertIsNone(RangeAttribute("member;range=1000-*").next())

    def test_next_on_degenerate_window(self):
        self.assertIsNone(RangeAttribute("member;range=5-5").next())

    def test_zero_high_is_not_star(self):
        attr = RangeAttribute("member;range=0-0")
        self.assertEqual(attr.high, 0)
        self.assertEqual(str(attr), "member;range=0-0")
        self.assertIsNone(attr.next())

    def test_entry_helpers(self):
        entry = Entry(
            "CN=g,DC=example,DC=com",
            {"cn": ["g"], "member;range=0-1": ["a", "b"]},
        )
        self.assertTrue(RangeAttribute.has_range_attributes(entry))
        ranged = RangeAttribute.get_range_attributes(entry)
        self.assertEqual([str(r) for r in ranged], ["member;range=0-1"])
        self.assertFalse(RangeAttribute.has_range_attributes(Entry("CN=x", {"cn": ["x"]})))


class TestRangedSearchResult(unittest.TestCase):
    """Test assembling the final entry."""

    def test_value_replaces_ranged_attributes(self):
        entry = Entry(
            "CN=g,DC=example,DC=com",
            {"cn": ["g"], "member;range=0-1": ["a", "b"]},
        )
        result = RangedSearchResult(entry)
        result.range_attributes["member"] = RangeAttribute("member;range=0-1")
        result.range_attribute_results["member"] = ["a", "b", "c"]
        value = result.value()
        self.assertEqual(value.dn, "CN=g,DC=example,DC=com")
        self.assertEqual(value["member"], ["a", "b", "c"])
        self.assertEqual(value["cn"], ["g"])
        self.assertNotIn("member;range=0-1", value)
        self.assertEqual(result.name, "CN=g,DC=example,DC=com")
        # the original entry is untouched
        self.assertIn("member;range=0-1", entry)


if __name__ == "__main__":
    unittest.main()
