import logging
from typing import Tuple, Union

import dns.exception
import dns.name

logger = logging.getLogger(__name__)

# IDNA 2008 with UTS-46 mapping, pure ascii labels are passed through
IDNA_CODEC = dns.name.IDNA_2008_Practical

Label = bytes


class MalformedDomain(ValueError):
    """
    Raised when a domain can not be split into valid labels, e.g. a label
    longer than 63 bytes, a name longer than 255 bytes, or a label that
    IDNA refuses to encode.
    """

    def __init__(self, domain: object, reason: str) -> None:
        self.domain = domain
        self.reason = reason
        super().__init__(f"Malformed domain {domain!r}: {reason}")


def to_labels(domain: Union[str, dns.name.Name]) -> Tuple[Label, ...]:
    """
    Normalize a domain into its labels, most significant first.

        "store.Apple.com." -> (b"com", b"apple", b"store")

    Empty labels coming from leading, trailing or double dots are dropped,
    so an input made only of dots gives an empty tuple. Pure ascii labels
    are only length checked, "a b" or "\\x00" pass through as they are.
    """
    if isinstance(domain, dns.name.Name):
        name = domain
    else:
        try:
            parts = [IDNA_CODEC.encode(part) for part in domain.strip().split(".") if part]
            # absolute, so the 255 byte limit counts the root label
            name = dns.name.Name(parts + [b""])
        except dns.exception.DNSException as e:
            raise MalformedDomain(domain, _describe(e)) from e

    # drops the root label of absolute names as well
    labels = [label for label in name.canonicalize().labels if label]
    labels.reverse()
    return tuple(labels)


def to_text(labels: Tuple[Label, ...]) -> str:
    """Turn labels from to_labels() back into a dotted domain"""
    return ".".join(label.decode("ascii", errors="backslashreplace") for label in reversed(labels))


def _describe(e: dns.exception.DNSException) -> str:
    if isinstance(e, dns.name.LabelTooLong):
        return "label exceeds 63 bytes"
    if isinstance(e, dns.name.NameTooLong):
        return "name exceeds 255 bytes"
    return str(e) or e.__class__.__name__
