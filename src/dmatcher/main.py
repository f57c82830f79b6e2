import argparse
import logging
import sys
from typing import List, Optional

from dmatcher.config import ConfigManager
from dmatcher.labels import MalformedDomain
from dmatcher.matcher import DomainMatcher

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] - %(filename)s:%(lineno)d: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def build_matcher(args: argparse.Namespace) -> DomainMatcher:
    """
    Load the conf file if given, rule files from the command line are
    added after the ones of the conf file.
    """
    conf_manager = ConfigManager()
    if args.conf:
        conf_manager.parse_file(args.conf)

    rule_files = conf_manager.get_rule_files() + [(path, None) for path in args.rules]

    matcher = DomainMatcher(cache_size=conf_manager.get_cache_size())
    matcher.build(
        rule_files=rule_files,
        rules=conf_manager.get_rules(),
        skip_invalid=conf_manager.get_skip_invalid() or args.skip_invalid,
    )
    return matcher


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Match domains against domain suffix rules")
    parser.add_argument("--conf", default="", help="Configuration file")
    parser.add_argument(
        "--rules", action="append", default=[], help="Rule list file, one domain per line (repeatable)"
    )
    parser.add_argument("--skip-invalid", action="store_true", help="Skip malformed rules instead of failing")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    parser.add_argument("domains", nargs="*", help="Domains to match")

    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        matcher = build_matcher(args)
    except (OSError, ValueError) as e:
        logger.error(f"Failed to load rules: {e}")
        return 1

    status = 0
    for domain in args.domains:
        try:
            matched = matcher.matches(domain)
            value = matcher.lookup(domain)
        except MalformedDomain as e:
            logger.error(str(e))
            status = 1
            continue
        print(f"{domain}\t{'match' if matched else 'no-match'}\t{'' if value is None else value}")

    return status


if __name__ == "__main__":
    sys.exit(main())
