from typing import Dict, Generic, List, Optional, Tuple, TypeVar, Union
import logging

import dns.name

from dmatcher.labels import Label, to_labels, to_text

T = TypeVar("T")

Domain = Union[str, dns.name.Name]


logger = logging.getLogger(__name__)


class TrieNode(Generic[T]):
    def __init__(self) -> None:
        self.children: Dict[Label, "TrieNode[T]"] = {}
        self.rule: Optional[T] = None
        # set when an inserted rule ends exactly at this node
        self.terminal = False


class DomainTrie(Generic[T]):
    """
    Trie over reversed domain labels, "store.apple.com" is walked as
    com -> apple -> store. A rule matches itself and every subdomain of it.

    Nodes only created to reach deeper rules are routing nodes, they are
    not terminal and carry no rule.

    The trie is insertion only. Build it completely, then share it with
    readers; no locking is done here.
    """

    def __init__(self) -> None:
        self.root: TrieNode[T] = TrieNode()
        self.rule_count = 0

    def __len__(self) -> int:
        return self.rule_count

    def __contains__(self, domain: Domain) -> bool:
        return self.matches(domain)

    def insert(self, domain: Domain, rule: Optional[T] = None) -> None:
        """
        Insert a domain rule, optionally with a rule value attached.
        Inserting the same domain again overwrites the rule value.

        Raises MalformedDomain if the domain can not be split into labels.
        """
        labels = to_labels(domain)
        if not labels:
            logger.debug(f"Ignoring empty domain rule: {domain!r}")
            return

        cur = self.root
        for label in labels:
            if label not in cur.children:
                cur.children[label] = TrieNode()
            cur = cur.children[label]

        if not cur.terminal:
            cur.terminal = True
            self.rule_count += 1
        cur.rule = rule

    def insert_bulk(self, text: str, rule: Optional[T] = None) -> int:
        """
        Insert one domain per line of text, all with the same rule value.
        Stops at the first malformed line and raises, lines inserted before
        it stay in the trie.

        Returns the number of lines inserted.
        """
        count = 0
        for line in text.split("\n"):
            if not line.strip():
                continue
            self.insert(line, rule)
            count += 1
        return count

    def matches(self, domain: Domain) -> bool:
        """
        True if the domain is a rule, a subdomain of a rule, or the exact
        path of a routing node (a parent of some deeper rule).
        """
        labels = to_labels(domain)
        if not labels or not self.root.children:
            return False

        cur = self.root
        for label in labels:
            if cur.terminal:
                # any deeper label is a subdomain of this rule
                break
            child = cur.children.get(label)
            if child is None:
                return False
            cur = child

        return True

    def lookup(self, domain: Domain) -> Optional[T]:
        """
        Return the rule value of the most specific rule the domain falls
        under, or None.

        Unlike matches(), the exact path of a routing node gives None since
        no rule was registered there.
        """
        labels = to_labels(domain)

        cur = self.root
        matched = None
        for label in labels:
            child = cur.children.get(label)
            if child is None:
                break
            cur = child
            if cur.terminal:
                matched = cur.rule
            if not cur.children:
                break

        return matched

    def node_count(self) -> int:
        """Count all nodes, the root included"""
        count = 0
        stack = [self.root]
        while stack:
            node = stack.pop()
            count += 1
            stack.extend(node.children.values())
        return count

    def all_rules_flat(self) -> List[Tuple[str, Optional[T]]]:
        """
        Returns a list of (domain, rule) for every rule in the trie
        """

        def walk(node, labels, result):
            if node.terminal:
                result.append((to_text(labels), node.rule))
            for label, child in node.children.items():
                walk(child, labels + (label,), result)

        result: List[Tuple[str, Optional[T]]] = []
        walk(self.root, (), result)
        return result

    def pretty_print(self) -> None:
        """Print the trie structure for debugging"""
        print(f"Current rule set ({self.rule_count} rules): \n")
        self._pretty_print_recursive(self.root, 0, "")

    def _pretty_print_recursive(self, node, level, prefix):
        indent = "  " * level
        if node.terminal:
            print(f"{indent}{prefix}: {node.rule}")
        else:
            print(f"{indent}{prefix}")

        for part, child in sorted(node.children.items()):
            self._pretty_print_recursive(child, level + 1, part.decode("ascii", errors="backslashreplace"))
