from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from dmatcher.loader import parse_domain_value


class ConfigManager:
    """
    A conf file would look like as follow:

        cache-size = 10000
        skip-invalid = yes

        rule-file=/etc/dmatcher/accelerated-domains.china.raw.txt
        rule-file=/etc/dmatcher/ads.txt,block

        rule=/apple.com/direct
        rule=/doubleclick.net/

    rule-file takes an optional tag after a comma, given to every domain of
    the file that has no value of its own.
    """

    def __init__(self, base_dir: str = "conf/") -> None:
        self.base_dir = Path(base_dir)
        self.config: Dict[str, Any] = {
            "cache_size": 1000,  # default number of cached query results
            "skip_invalid": False,  # abort loading on the first bad rule
            "rule_files": [],
            "rules": [],
        }

        # define valid prefixes in the config file
        # and the functions to parse the lines for each prefix
        self.valid_prefixes = {
            "cache-size": self._parse_cache_size_line,
            "skip-invalid": self._parse_skip_invalid_line,
            "rule-file": self._batch_rule_file_line,
            "rule": self._batch_rule_line,
        }

    def parse_file(self, file_path: str = "") -> Dict[str, Any]:
        """Parse the given file, or every file in the base folder"""
        confs: List[Path] = []
        if not file_path:
            if self.base_dir.is_dir():
                confs = sorted(f for f in self.base_dir.iterdir() if f.is_file())
        else:
            confs.append(Path(file_path))
        # check if empty
        if not confs:
            raise FileNotFoundError(f"No config file found in {self.base_dir}")

        self._parse_file(confs)
        return self.config

    def get_cache_size(self) -> int:
        return self.config["cache_size"]

    def get_skip_invalid(self) -> bool:
        return self.config["skip_invalid"]

    def get_rule_files(self) -> List[Tuple[str, Optional[str]]]:
        """
        return (path, tag) for each rule list file, tag is None when not given
        """
        return self.config["rule_files"]

    def get_rules(self) -> List[Tuple[str, Optional[str]]]:
        """
        return (domain, value) for each inline rule
        """
        return self.config["rules"]

    def _parse_file(self, confs: List[Path]) -> Dict[str, Any]:
        """
        Read all lines first, skipping comments, and report every syntax
        error at once before handing the values to the directive parsers.
        """
        batches: Dict[str, List[Tuple[int, str]]] = {prefix: [] for prefix in self.valid_prefixes}
        errors = []  # record all the syntax errors found

        for conf in confs:
            with open(conf, "r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()

                    # skip comments
                    if line.startswith("#") or (not line):
                        continue
                    # extract directive and then save each line
                    equals_pos = line.find("=")
                    if equals_pos == -1:
                        errors.append((conf, line_num, line, "Missing '=' in configuration line"))
                        continue

                    directive = line[:equals_pos].strip()
                    value = line[equals_pos + 1 :].strip()

                    # check if directive is valid
                    if directive in self.valid_prefixes:
                        batches[directive].append((line_num, value))
                    else:
                        errors.append((conf, line_num, line, f"Unknown directive: {directive}"))

        if errors:
            error_message = [
                f"{conf.name} line {line_num}: {line} - {msg}" for conf, line_num, line, msg in errors
            ]
            raise ValueError("Configuration errors found\n" + "\n".join(error_message))

        # now, parse and verify with each respective directive
        for prefix, handler in self.valid_prefixes.items():
            if batches[prefix]:
                handler(batches[prefix])

        return self.config

    def _parse_cache_size_line(self, line: List[Tuple[int, str]]):
        """
        Parse the cache size setting, the last one wins. 0 disables the cache.
        eg:
            cache-size=10000
        """
        line_num, value = line[-1]

        try:
            cache_size = int(value)
        except ValueError:
            raise ValueError(f"Line {line_num}: Invalid cache size: {value}")

        if 0 <= cache_size <= 1_000_000:
            self.config["cache_size"] = cache_size
        else:
            raise ValueError(f"Line {line_num}: Cache size must be between 0 and 1000000: {value}")

    def _parse_skip_invalid_line(self, line: List[Tuple[int, str]]):
        line_num, value = line[-1]

        value = value.lower()
        if value in ("yes", "true", "1"):
            self.config["skip_invalid"] = True
        elif value in ("no", "false", "0"):
            self.config["skip_invalid"] = False
        else:
            raise ValueError(f"Line {line_num}: skip-invalid must be yes or no: {value}")

    def _batch_rule_file_line(self, line: List[Tuple[int, str]]):
        """
        Rule list files, with an optional tag:
            rule-file=/path/to/list.txt
            rule-file=/path/to/list.txt,block
        """
        for line_num, value in line:
            path, _, tag = value.partition(",")
            path = path.strip()
            tag = tag.strip()
            if not path:
                raise ValueError(f"Line {line_num}: Empty path in rule-file directive.")
            self.config["rule_files"].append((path, tag or None))

    def _batch_rule_line(self, line: List[Tuple[int, str]]):
        """
        Batch processing inline rules
        """
        for line_num, value in line:
            try:
                self._parse_rule_line(value)
            except ValueError as e:
                raise ValueError(f"Line {line_num}, Invalid rule: {e}")

    def _parse_rule_line(self, value: str):
        self.config["rules"].append(parse_domain_value(value, "rule"))
