from typing import Any, Dict, Iterable, Optional, Tuple
import logging
import threading

from cachetools import LRUCache

from dmatcher.config import ConfigManager
from dmatcher.loader import RuleLoader
from dmatcher.trie import Domain, DomainTrie

logger = logging.getLogger(__name__)

MATCHES = "matches"
LOOKUP = "lookup"


class DomainMatcher:
    """
    Builds a DomainTrie from rule lists and publishes it to readers.

    A trie is never changed once published. build() creates a new trie,
    and only when loading succeeded it replaces the published one and the
    query cache is dropped.

    Lookups may run from many threads, the cache and its counters are only
    touched under self.lock while the trie walk runs outside of it.
    """

    def __init__(self, cache_size: int = 1000) -> None:
        self._trie: DomainTrie[str] = DomainTrie()
        self.cache_size = cache_size
        # LRUCache refuses every item with maxsize 0
        self.cache: Optional[LRUCache] = LRUCache(maxsize=cache_size) if cache_size > 0 else None
        self.hits = 0
        self.misses = 0
        self.lock = threading.Lock()

    @classmethod
    def from_config(cls, conf_manager: ConfigManager) -> "DomainMatcher":
        matcher = cls(cache_size=conf_manager.get_cache_size())
        matcher.build(
            rule_files=conf_manager.get_rule_files(),
            rules=conf_manager.get_rules(),
            skip_invalid=conf_manager.get_skip_invalid(),
        )
        return matcher

    @property
    def trie(self) -> DomainTrie[str]:
        return self._trie

    def build(
        self,
        rule_files: Iterable[Tuple[str, Optional[str]]] = (),
        rules: Iterable[Tuple[str, Optional[str]]] = (),
        skip_invalid: bool = False,
    ) -> DomainTrie[str]:
        """
        Build a trie from (path, tag) rule files and (domain, value) inline
        rules, then publish it. Inline rules are inserted last, so they win
        over the same domain in a file.
        """
        trie: DomainTrie[str] = DomainTrie()
        loader = RuleLoader(trie, skip_invalid=skip_invalid)

        for path, tag in rule_files:
            loader.load_file(path, tag)

        for domain, value in rules:
            try:
                trie.insert(domain, value)
            except ValueError as e:
                if not skip_invalid:
                    raise
                loader.skipped += 1
                logger.warning(f"Skipping inline rule {domain}: {e}")

        # swap
        with self.lock:
            self._trie = trie
            if self.cache is not None:
                self.cache.clear()

        logger.info(f"Published rule set: {len(trie)} rules, {trie.node_count()} nodes, {loader.skipped} skipped")
        return trie

    def matches(self, domain: Domain) -> bool:
        return self._cached(MATCHES, domain)

    def lookup(self, domain: Domain) -> Optional[str]:
        return self._cached(LOOKUP, domain)

    def cache_info(self) -> Dict[str, int]:
        with self.lock:
            return {
                "hits": self.hits,
                "misses": self.misses,
                "size": len(self.cache) if self.cache is not None else 0,
                "maxsize": self.cache_size,
            }

    def _cached(self, kind: str, domain: Domain) -> Any:
        trie = self._trie
        if self.cache is None:
            return getattr(trie, kind)(domain)

        key = (kind, domain)
        with self.lock:
            try:
                result = self.cache[key]
                self.hits += 1
                return result
            except KeyError:
                self.misses += 1

        result = getattr(trie, kind)(domain)

        with self.lock:
            # only results of the published trie go into the cache
            if self._trie is trie:
                self.cache[key] = result
        return result
