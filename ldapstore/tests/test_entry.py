"""
Tests for the Entry model.
"""

import unittest

from ldapstore.entry import Entry, coerce_values, normalize_dn


class TestNormalizeDn(unittest.TestCase):
    """Test DN normalization."""

    def test_lowercases(self):
        """Test that DNs are lower-cased."""
        self.assertEqual(normalize_dn("CN=Bob,DC=Example"), "cn=bob,dc=example")

    def test_decodes_bytes(self):
        """Test that bytes DNs are decoded."""
        self.assertEqual(normalize_dn(b"CN=Bob,DC=Example"), "cn=bob,dc=example")


class TestCoerceValues(unittest.TestCase):
    """Test conversion of protocol values to strings."""

    def test_single_string_is_one_value(self):
        """Test that a lone string is one value."""
        self.assertEqual(coerce_values("bob"), ["bob"])

    def test_bytes_are_decoded(self):
        """Test that bytes values are decoded."""
        self.assertEqual(coerce_values([b"bob", "alice"]), ["bob", "alice"])

    def test_none_is_no_values(self):
        """Test that None means no values."""
        self.assertEqual(coerce_values(None), [])


class TestEntry(unittest.TestCase):
    """Test Entry mutators."""

    def setUp(self):
        """Set up test fixtures."""
        self.entry = Entry(
            "CN=Bob,DC=Example,DC=Com",
            {"cn": ["bob"], "mail": ["bob@x.com", "old@x.com"]},
        )

    def test_dn_is_normalized(self):
        """Test that the entry DN is normalized."""
        self.assertEqual(self.entry.dn, "cn=bob,dc=example,dc=com")

    def test_initial_values_are_deduplicated(self):
        """Test that duplicate initial values are dropped."""
        entry = Entry("cn=bob", {"mail": ["a@x.com", "a@x.com", "b@x.com"]})
        self.assertEqual(entry.get("mail"), ["a@x.com", "b@x.com"])

    def test_initial_empty_attribute_is_dropped(self):
        """Test that an initial attribute with no values is not created."""
        entry = Entry("cn=bob", [("cn", ["bob"]), ("description", [])])
        self.assertNotIn("description", entry)

    def test_repeated_pairs_are_merged(self):
        """Test that repeated attribute pairs are merged and deduplicated."""
        entry = Entry(
            "cn=bob",
            [("objectClass", [b"top"]), (b"objectClass", [b"person"]), ("objectClass", "top")],
        )
        self.assertEqual(entry.to_dict(), {"objectClass": ["top", "person"]})

    def test_get_missing_attribute(self):
        """Test getting an attribute the entry does not have."""
        self.assertEqual(self.entry.get("sn"), [])

    def test_get_returns_a_copy(self):
        """Test that get() returns a copy of the values."""
        self.entry.get("cn").append("robert")
        self.assertEqual(self.entry.get("cn"), ["bob"])

    def test_attribute_names_are_case_sensitive(self):
        """Test that attribute names are case-sensitive."""
        self.assertEqual(self.entry.get("CN"), [])

    def test_add_values_merges(self):
        """Test merging new values into an attribute."""
        self.entry.add_values("mail", ["new@x.com", "bob@x.com"])
        self.assertEqual(self.entry.get("mail"), ["bob@x.com", "old@x.com", "new@x.com"])

    def test_add_values_twice_is_idempotent(self):
        """Test that adding the same values twice changes nothing."""
        self.entry.add_values("telephoneNumber", ["555-1234", "555-9876"])
        once = self.entry.get("telephoneNumber")
        self.entry.add_values("telephoneNumber", ["555-1234", "555-9876"])
        self.assertEqual(self.entry.get("telephoneNumber"), once)

    def test_add_no_values_does_not_create_attribute(self):
        """Test that adding no values does not create the attribute."""
        self.entry.add_values("sn", [])
        self.assertNotIn("sn", self.entry)

    def test_delete_some_values(self):
        """Test deleting some values."""
        self.entry.delete_values("mail", ["old@x.com"])
        self.assertEqual(self.entry.get("mail"), ["bob@x.com"])

    def test_delete_all_values_removes_attribute(self):
        """Test that deleting every value removes the attribute."""
        self.entry.delete_values("mail", self.entry.get("mail"))
        self.assertEqual(self.entry.get("mail"), [])
        self.assertNotIn("mail", self.entry.to_dict())

    def test_delete_values_of_missing_attribute(self):
        """Test deleting values of an attribute the entry does not have."""
        self.entry.delete_values("sn", ["smith"])
        self.assertNotIn("sn", self.entry)

    def test_replace_values(self):
        """Test replacing the values of an attribute."""
        self.entry.replace_values("mail", ["bob@x.com"])
        self.assertEqual(self.entry.get("mail"), ["bob@x.com"])

    def test_replace_with_nothing_removes_attribute(self):
        """Test that replacing with no values removes the attribute."""
        self.entry.replace_values("mail", [])
        self.assertNotIn("mail", self.entry)

    def test_delete_attribute(self):
        """Test deleting whole attributes, present or not."""
        self.entry.delete_attribute("mail")
        self.entry.delete_attribute("not-there")
        self.assertEqual(self.entry.to_dict(), {"cn": ["bob"]})

    def test_copy_is_independent(self):
        """Test that a copy does not share values with the original."""
        copy = self.entry.copy()
        copy.add_values("cn", ["robert"])
        self.assertEqual(self.entry.get("cn"), ["bob"])
        self.assertEqual(copy.dn, self.entry.dn)

    def test_equality_ignores_value_order(self):
        """Test that equality compares value sets."""
        other = Entry(
            "cn=bob,dc=example,dc=com",
            {"cn": ["bob"], "mail": ["old@x.com", "bob@x.com"]},
        )
        self.assertEqual(self.entry, other)
        other.add_values("sn", ["smith"])
        self.assertNotEqual(self.entry, other)
