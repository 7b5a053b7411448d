from enum import Enum
from typing import Iterator, List

from advault_dns.normalize import normalize


class BlockDecision(Enum):
    ALLOW = "allow"
    BLOCK = "block"


def _suffixes(labels: List[str]) -> Iterator[str]:
    """Yield right-aligned suffixes from two labels up to the full name."""
    for i in range(len(labels) - 2, -1, -1):
        yield ".".join(labels[i:])


def classify(qname: str, snapshot) -> BlockDecision:
    """
    Decide ALLOW / BLOCK for a query name against a (block, allow) snapshot.

    The allowlist wins over the blocklist at every level: an allowlisted name
    or parent unblocks all of its subdomains. A blocklisted name blocks all of
    its subdomains. Parent suffixes are checked from two labels up, so a
    single-label entry such as ``com`` only matches the exact name ``com``.
    """
    name = normalize(qname)
    if not name:
        return BlockDecision.ALLOW

    labels = name.split(".")

    if name in snapshot.allow or any(s in snapshot.allow for s in _suffixes(labels)):
        return BlockDecision.ALLOW

    if name in snapshot.block:
        return BlockDecision.BLOCK

    for suffix in _suffixes(labels):
        if suffix in snapshot.block:
            return BlockDecision.BLOCK

    return BlockDecision.ALLOW
