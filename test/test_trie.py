import unittest
import os
import sys

import dns.name

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "../src")))

from dmatcher.labels import MalformedDomain
from dmatcher.trie import DomainTrie


class TestDomainTrie(unittest.TestCase):
    def setUp(self):
        # Create a fresh trie for each test
        self.trie = DomainTrie()

        # Set up some common rules
        self.trie.insert("apple.com", 1)
        self.trie.insert("apple.cn", 2)

    def test_subdomain_matches(self):
        """Rules match themselves and any subdomain"""
        self.assertTrue(self.trie.matches("apple.com"))
        self.assertTrue(self.trie.matches("store.apple.com"))
        self.assertTrue(self.trie.matches("你好.store.www.apple.com"))
        self.assertTrue(self.trie.matches("apple.cn"))
        self.assertTrue(self.trie.matches("x.apple.cn"))

    def test_non_matching_domains(self):
        self.assertFalse(self.trie.matches("baidu"))
        self.assertFalse(self.trie.matches("baidu.com"))
        self.assertFalse(self.trie.matches("apple.org"))
        self.assertFalse(self.trie.matches("pineapple.com"))

    def test_lookup_payload(self):
        self.assertEqual(self.trie.lookup("store.apple.com"), 1)
        self.assertEqual(self.trie.lookup("apple.com"), 1)
        self.assertEqual(self.trie.lookup("x.apple.cn"), 2)
        self.assertIsNone(self.trie.lookup("baidu"))
        self.assertIsNone(self.trie.lookup("apple.org"))

    def test_insertion_structure(self):
        """Labels are stored top level first, with no shared branches between TLDs"""
        root = self.trie.root
        self.assertEqual(set(root.children), {b"com", b"cn"})

        for tld, rule in ((b"com", 1), (b"cn", 2)):
            tld_node = root.children[tld]
            self.assertFalse(tld_node.terminal)
            self.assertIsNone(tld_node.rule)
            self.assertEqual(list(tld_node.children), [b"apple"])

            leaf = tld_node.children[b"apple"]
            self.assertTrue(leaf.terminal)
            self.assertEqual(leaf.rule, rule)
            self.assertEqual(leaf.children, {})

        self.assertEqual(self.trie.node_count(), 5)
        self.assertEqual(len(self.trie), 2)

    def test_membership_without_payload(self):
        trie = DomainTrie()
        trie.insert("apple.com")

        self.assertTrue(trie.matches("store.apple.com"))
        self.assertIn("www.apple.com", trie)
        self.assertNotIn("apple.cn", trie)
        # a rule without payload looks up as None
        self.assertIsNone(trie.lookup("store.apple.com"))

    def test_idempotent_insert(self):
        """Inserting twice keeps the structure, the last payload wins"""
        nodes = self.trie.node_count()

        self.trie.insert("apple.com", 10)
        self.trie.insert("apple.com", 11)

        self.assertEqual(self.trie.node_count(), nodes)
        self.assertEqual(len(self.trie), 2)
        self.assertEqual(self.trie.lookup("store.apple.com"), 11)
        self.assertTrue(self.trie.matches("store.apple.com"))

    def test_order_independence(self):
        reversed_trie = DomainTrie()
        reversed_trie.insert("apple.cn", 2)
        reversed_trie.insert("apple.com", 1)

        queries = ["apple.com", "store.apple.com", "apple.cn", "x.apple.cn", "baidu", "com", "cn"]
        for query in queries:
            self.assertEqual(self.trie.matches(query), reversed_trie.matches(query), query)
            self.assertEqual(self.trie.lookup(query), reversed_trie.lookup(query), query)

        self.assertEqual(sorted(self.trie.all_rules_flat()), sorted(reversed_trie.all_rules_flat()))

    def test_empty_labels_ignored(self):
        """Leading, trailing and double dots behave like the stripped domain"""
        trie = DomainTrie()
        trie.insert(".apple..com.", 1)

        self.assertEqual(trie.all_rules_flat(), [("apple.com", 1)])
        self.assertNotIn(b"", trie.root.children)

        for query in ("store.apple.com", ".store.apple.com", "store..apple.com.", "apple.com."):
            self.assertTrue(trie.matches(query), query)
            self.assertEqual(trie.lookup(query), 1, query)

        self.assertFalse(trie.matches("apple..cn"))

    def test_empty_domain(self):
        """Domains made only of dots are ignored, and never match"""
        trie = DomainTrie()
        trie.insert("", 1)
        trie.insert("...", 1)

        self.assertEqual(len(trie), 0)
        self.assertEqual(trie.node_count(), 1)

        self.trie.insert("", 3)
        self.assertFalse(self.trie.matches(""))
        self.assertFalse(self.trie.matches("."))
        self.assertIsNone(self.trie.lookup(""))

    def test_empty_trie_matches_nothing(self):
        trie = DomainTrie()
        self.assertFalse(trie.matches("apple.com"))
        self.assertFalse(trie.matches("com"))
        self.assertIsNone(trie.lookup("apple.com"))

    def test_routing_node(self):
        """
        A parent of a deeper rule matches as a boolean, but it has
        no rule of its own so the lookup gives None.
        """
        trie = DomainTrie()
        trie.insert("store.apple.com", 2)

        self.assertTrue(trie.matches("apple.com"))
        self.assertTrue(trie.matches("com"))
        self.assertIsNone(trie.lookup("apple.com"))
        self.assertIsNone(trie.lookup("com"))

        # siblings of the rule are not covered
        self.assertFalse(trie.matches("www.apple.com"))
        self.assertIsNone(trie.lookup("www.apple.com"))

        self.assertTrue(trie.matches("x.store.apple.com"))
        self.assertEqual(trie.lookup("x.store.apple.com"), 2)

    def test_nested_rules(self):
        """A rule with a deeper rule below it still covers its other subdomains"""
        trie = DomainTrie()
        trie.insert("apple.com", 1)
        trie.insert("store.apple.com", 2)

        self.assertTrue(trie.matches("www.apple.com"))
        self.assertEqual(trie.lookup("www.apple.com"), 1)
        self.assertEqual(trie.lookup("apple.com"), 1)
        self.assertEqual(trie.lookup("store.apple.com"), 2)
        self.assertEqual(trie.lookup("x.store.apple.com"), 2)

        # insertion order does not matter
        other = DomainTrie()
        other.insert("store.apple.com", 2)
        other.insert("apple.com", 1)
        self.assertTrue(other.matches("www.apple.com"))
        self.assertEqual(other.lookup("www.apple.com"), 1)
        self.assertEqual(other.lookup("x.store.apple.com"), 2)

    def test_suffix_law(self):
        rules = ["apple.com", "apple.cn", "a.b.c.d", "org"]
        trie = DomainTrie()
        for rule in rules:
            trie.insert(rule)

        prefixes = ["", "www.", "x.y.", "1.2.3.4.5."]
        for rule in rules:
            for prefix in prefixes:
                self.assertTrue(trie.matches(prefix + rule), prefix + rule)

        for domain in ("x.c.d", "apple.net", "x.b.c.d", "orgs", "cn.apple"):
            self.assertFalse(trie.matches(domain), domain)

    def test_case_insensitive(self):
        trie = DomainTrie()
        trie.insert("Apple.COM", 1)

        self.assertTrue(trie.matches("STORE.apple.com"))
        self.assertEqual(trie.lookup("store.APPLE.Com"), 1)
        self.assertEqual(trie.all_rules_flat(), [("apple.com", 1)])

    def test_internationalized_domains(self):
        trie = DomainTrie()
        trie.insert("你好.cn", "hello")

        self.assertTrue(trie.matches("www.你好.cn"))
        self.assertEqual(trie.lookup("www.xn--6qq79v.cn"), "hello")
        self.assertEqual(trie.all_rules_flat(), [("xn--6qq79v.cn", "hello")])

    def test_structured_names(self):
        trie = DomainTrie()
        trie.insert(dns.name.from_text("apple.com"), 1)

        self.assertTrue(trie.matches("store.apple.com"))
        self.assertTrue(trie.matches(dns.name.from_text("Store.Apple.com.")))
        self.assertEqual(trie.lookup(dns.name.from_text("store.apple.com")), 1)
        self.assertFalse(trie.matches(dns.name.from_text("apple.cn")))

    def test_malformed_domain(self):
        long_label = "a" * 64
        with self.assertRaises(MalformedDomain):
            self.trie.insert(f"{long_label}.com", 3)

        with self.assertRaises(MalformedDomain):
            self.trie.matches(f"{long_label}.apple.com")

        with self.assertRaises(MalformedDomain):
            self.trie.lookup(f"{long_label}.apple.com")

        # failed insert leaves the trie untouched
        self.assertEqual(len(self.trie), 2)
        self.assertEqual(self.trie.node_count(), 5)

    def test_malformed_domain_is_value_error(self):
        with self.assertRaises(ValueError) as ctx:
            self.trie.insert("-你好.com")
        self.assertEqual(ctx.exception.domain, "-你好.com")

    def test_insert_bulk(self):
        trie = DomainTrie()
        count = trie.insert_bulk("apple.com\napple.cn\n\nbaidu.com\n", "bulk")

        self.assertEqual(count, 3)
        self.assertEqual(len(trie), 3)
        self.assertEqual(trie.lookup("www.baidu.com"), "bulk")
        self.assertTrue(trie.matches("store.apple.com"))

    def test_insert_bulk_stops_at_first_error(self):
        trie = DomainTrie()
        text = "apple.com\n" + "a" * 64 + ".com\napple.cn"

        with self.assertRaises(MalformedDomain):
            trie.insert_bulk(text)

        self.assertTrue(trie.matches("apple.com"))
        self.assertFalse(trie.matches("apple.cn"))

    def test_all_rules_flat(self):
        self.trie.insert("store.apple.com", 3)

        rules = sorted(self.trie.all_rules_flat())
        self.assertEqual(rules, [("apple.cn", 2), ("apple.com", 1), ("store.apple.com", 3)])


if __name__ == "__main__":
    unittest.main()
