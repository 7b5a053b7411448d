"""
Domain normalization shared by the blocklist pipeline, the allowlist loader
and the query classifier.

Hosts entries, AdBlock rules, URLs and bare domains all collapse into a bare
lowercase domain. The filter deliberately over-accepts: AdBlock selector
syntax such as ``example.com##.banner`` survives as a plausible-looking name.
The allowlist is the correction mechanism for such false positives.
"""

import os
import re
from typing import FrozenSet, Optional


COMMENT_MARKERS = ("#", "!")

_IPV4_RE = re.compile(r"^\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}$")
_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://")
_DISALLOWED_RE = re.compile(r"[^a-z0-9.-]")


def _strip_edges(candidate: str) -> str:
    while True:
        candidate = candidate.strip(".-")
        if candidate.startswith("www."):
            candidate = candidate[4:]
            continue
        return candidate


def normalize(line: str) -> Optional[str]:
    """Normalize one raw line of text into a bare domain, or None."""
    s = (line or "").strip().lower()
    if not s or s.startswith(COMMENT_MARKERS):
        return None

    tokens = s.split()
    # Hosts form: "0.0.0.0 ads.example.com"
    if len(tokens) >= 2 and _IPV4_RE.match(tokens[0]):
        candidate = tokens[1]
    else:
        candidate = tokens[0]

    candidate = _SCHEME_RE.sub("", candidate)
    candidate = re.split(r"[/?]", candidate, maxsplit=1)[0]
    candidate = _DISALLOWED_RE.sub("", candidate)
    candidate = _strip_edges(candidate)

    return candidate or None


def load_domain_file(path: str) -> FrozenSet[str]:
    """Read a local list through normalize(); a missing file is an empty list."""
    if not path or not os.path.exists(path):
        return frozenset()

    domains = set()
    with open(path, "r", encoding="utf-8", errors="ignore") as f:
        for line in f:
            d = normalize(line)
            if d:
                domains.add(d)
    return frozenset(domains)
