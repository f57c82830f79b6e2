from pathlib import Path
from typing import Optional, Tuple, Union
import logging

from dmatcher.trie import DomainTrie

logger = logging.getLogger(__name__)

# dnsmasq directives carrying a domain, "server=/apple.com/114.114.114.114"
DOMAIN_DIRECTIVES = ("server",)


def parse_rule_line(line: str) -> Optional[Tuple[str, Optional[str]]]:
    """
    Parse one line of a rule list. Two formats are accepted:

        apple.com                            -> ("apple.com", None)
        server=/apple.com/114.114.114.114    -> ("apple.com", "114.114.114.114")

    Returns None for blank lines and comments.
    """
    line = line.strip()
    if not line or line.startswith("#"):
        return None

    equals_pos = line.find("=")
    if equals_pos == -1:
        return line, None

    directive = line[:equals_pos].strip()
    value = line[equals_pos + 1 :].strip()
    if directive not in DOMAIN_DIRECTIVES:
        raise ValueError(f"Unknown directive: {directive}")

    return parse_domain_value(value, directive)


def parse_domain_value(value: str, directive: str) -> Tuple[str, Optional[str]]:
    """
    Split the "/domain/value" part of a directive, the value may be empty:

        /apple.com/114.114.114.114 -> ("apple.com", "114.114.114.114")
        /apple.com/                -> ("apple.com", None)
    """
    if not value.startswith("/"):
        raise ValueError(f"Missing '/' in {directive} directive.")
    second_slash = value.find("/", 1)
    if second_slash == -1:
        raise ValueError(f"Missing '/' in {directive} directive.")

    domain = value[1:second_slash].strip()
    target = value[second_slash + 1 :].strip()
    if not domain:
        raise ValueError(f"Empty domain in {directive} directive.")

    return domain, (target or None)


class RuleLoader:
    """
    Feed rule lists into a DomainTrie.

    By default the first bad line (an unknown directive or a MalformedDomain)
    aborts the load. With skip_invalid the bad line is logged and skipped,
    and counted in self.skipped.
    """

    def __init__(self, trie: DomainTrie, skip_invalid: bool = False) -> None:
        self.trie = trie
        self.skip_invalid = skip_invalid
        self.skipped = 0

    def load_text(self, text: str, rule: Optional[str] = None, source: str = "<text>") -> int:
        """
        Insert every rule in text. Lines with their own value ("server=/d/ip")
        keep it, the others get rule.

        Returns the number of rules inserted.
        """
        count = 0
        for line_num, line in enumerate(text.split("\n"), start=1):
            try:
                parsed = parse_rule_line(line)
                if parsed is None:
                    continue
                domain, value = parsed
                self.trie.insert(domain, value if value is not None else rule)
                count += 1
            except ValueError as e:
                if not self.skip_invalid:
                    raise ValueError(f"{source} line {line_num}: {e}") from e
                self.skipped += 1
                logger.warning(f"Skipping {source} line {line_num}: {e}")

        logger.debug(f"Loaded {count} rules from {source}")
        return count

    def load_file(self, path: Union[str, Path], rule: Optional[str] = None) -> int:
        """Insert every rule of a rule list file"""
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"Rule file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            count = self.load_text(f.read(), rule, source=str(path))

        logger.info(f"Loaded {count} rules from {path}")
        return count
