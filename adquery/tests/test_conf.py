# type: ignore
"""
Tests for the option objects and the Django settings loader.
"""

import dataclasses
import unittest

import ldap
from django.core.exceptions import ImproperlyConfigured
from django.test import override_settings

from adquery.conf import (
    ConnectionOptions,
    DirectoryOptions,
    ReferralPolicy,
    SearchOptions,
    get_config,
)


class TestDirectoryOptions(unittest.TestCase):
    """Test that options are immutable values."""

    def setUp(self):
        self.options = DirectoryOptions(
            basedn="DC=example,DC=com",
            connection=ConnectionOptions(url="ldap://dc1.example.com"),
        )

    def test_frozen(self):
        with self.assertRaises(dataclasses.FrozenInstanceError):
            self.options.basedn = "DC=other"

    def test_merge_returns_new_object(self):
        merged = self.options.merge(include_deleted=True)
        self.assertTrue(merged.include_deleted)
        self.assertFalse(self.options.include_deleted)

    def test_with_search(self):
        changed = self.options.with_search(filter="(cn=a)", attributes=["cn"])
        self.assertEqual(changed.search.filter, "(cn=a)")
        self.assertEqual(changed.search.attributes, ("cn",))
        self.assertIsNone(self.options.search.filter)

    def test_search_defaults(self):
        search = SearchOptions()
        self.assertEqual(search.scope, ldap.SCOPE_SUBTREE)
        self.assertIsNone(search.attributes)
        self.assertEqual(search.include_membership, ())

    def test_search_normalizes_strings(self):
        search = SearchOptions(attributes="cn", include_membership="user")
        self.assertEqual(search.attributes, ("cn",))
        self.assertEqual(search.include_membership, ("user",))

    def test_page_size(self):
        self.assertEqual(SearchOptions(page_size=50).get_page_size(), 50)
        self.assertEqual(SearchOptions().get_page_size(), 1000)
        with override_settings(ADQUERY_DEFAULT_PAGE_SIZE=200):
            self.assertEqual(SearchOptions().get_page_size(), 200)


class TestReferralPolicy(unittest.TestCase):
    """Test which referrals we chase."""

    def test_disabled_by_default(self):
        self.assertFalse(ReferralPolicy().is_allowed("ldap://dc2.example.com/DC=example,DC=com"))

    def test_enabled(self):
        policy = ReferralPolicy(enabled=True)
        self.assertTrue(policy.is_allowed("ldap://dc2.example.com/DC=example,DC=com"))
        self.assertFalse(policy.is_allowed(""))

    def test_default_excludes(self):
        policy = ReferralPolicy(enabled=True)
        self.assertFalse(policy.is_allowed("ldap://ForestDnsZones.example.com/DC=ForestDnsZones,DC=example,DC=com"))
        self.assertFalse(policy.is_allowed("ldaps://domaindnszones.example.com/DC=DomainDnsZones,DC=example,DC=com"))
        self.assertFalse(policy.is_allowed("ldap://example.com/CN=Configuration,DC=example,DC=com"))

    def test_custom_excludes(self):
        policy = ReferralPolicy(enabled=True, exclude=[r"ldap://bad\..*"])
        self.assertEqual(policy.exclude, (r"ldap://bad\..*",))
        self.assertFalse(policy.is_allowed("ldap://BAD.example.com/DC=x"))
        self.assertTrue(policy.is_allowed("ldap://ForestDnsZones.example.com/DC=x"))


class TestFromSettings(unittest.TestCase):
    """Test reading LDAP_SERVERS."""

    def test_from_settings(self):
        options = DirectoryOptions.from_settings()
        self.assertEqual(options.basedn, "DC=example,DC=com")
        self.assertEqual(options.connection.url, "ldap://dc1.example.com")
        self.assertEqual(options.connection.user, "CN=svc-reader,OU=Service Accounts,DC=example,DC=com")
        self.assertEqual(options.connection.password, "secret")
        self.assertEqual(options.connection.timeout, 5.0)
        self.assertFalse(options.connection.use_starttls)
        self.assertFalse(options.referrals.enabled)

    def test_from_settings_with_changes(self):
        options = DirectoryOptions.from_settings(include_deleted=True)
        self.assertTrue(options.include_deleted)

    def test_follow_referrals(self):
        servers = {
            "default": {
                "basedn": "DC=example,DC=com",
                "read": {"url": "ldap://dc1", "follow_referrals": True},
            }
        }
        with override_settings(LDAP_SERVERS=servers):
            options = DirectoryOptions.from_settings()
        self.assertTrue(options.referrals.enabled)
        self.assertTrue(options.connection.use_starttls)

    def test_unknown_server(self):
        with self.assertRaises(ImproperlyConfigured):
            DirectoryOptions.from_settings("nope")

    def test_missing_basedn(self):
        with override_settings(LDAP_SERVERS={"default": {"read": {"url": "ldap://dc1"}}}):
            with self.assertRaises(ImproperlyConfigured):
                DirectoryOptions.from_settings()

    def test_missing_key(self):
        with self.assertRaises(ImproperlyConfigured):
            DirectoryOptions.from_settings(key="write")

    def test_get_config(self):
        self.assertEqual(get_config("NOT_A_SETTING", 42), 42)
        with override_settings(ADQUERY_SOMETHING=7):
            self.assertEqual(get_config("SOMETHING", 42), 7)


if __name__ == "__main__":
    unittest.main()
