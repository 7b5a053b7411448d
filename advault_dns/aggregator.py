"""
Blocklist aggregation.

Fetches every configured source (remote URL or local file), runs each line
through the normalizer and swaps the consolidated domain set into the shared
state in one step. A failing source is logged and skipped; it never aborts the
refresh.
"""

import logging
import os
import re
import time
from dataclasses import dataclass
from typing import FrozenSet, List, Optional, Set
from urllib.parse import urlparse

import requests

from advault_dns.normalize import COMMENT_MARKERS, normalize


FORMATS = ("hosts", "adblock", "domains")


@dataclass(frozen=True)
class Source:
    location: str
    fmt: Optional[str] = None

    @property
    def is_remote(self) -> bool:
        return self.location.lower().startswith(("http://", "https://"))


@dataclass
class SourceStats:
    """Track statistics for each source."""
    location: str
    fmt: Optional[str] = None
    total_domains: int = 0
    unique_domains: int = 0
    overlap_domains: int = 0
    fetch_time_ms: float = 0.0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


# ============================================================================
# Helpers
# ============================================================================


def is_valid_abs_http_url(url: str) -> bool:
    try:
        p = urlparse(url)
    except Exception:
        return False
    if p.scheme not in ("http", "https"):
        return False
    if not p.netloc:
        return False
    return True


def detect_format(content: str) -> Optional[str]:
    """
    Guess the list format from a sample of its lines.

    Only used for reporting; every format goes through the same normalizer.
    """
    sample: List[str] = []
    for line in content.splitlines():
        s = line.strip()
        if s and not s.startswith(COMMENT_MARKERS) and not s.startswith("["):
            sample.append(s)
        if len(sample) >= 20:
            break

    if not sample:
        return None

    hosts_like = 0
    adblock_like = 0
    domain_like = 0

    for line in sample:
        if line.startswith("||") or "##" in line or line.startswith("@@"):
            adblock_like += 1
        elif re.match(r"^\d{1,3}(\.\d{1,3}){3}\s+", line):
            hosts_like += 1
        elif re.match(r"^[a-z0-9.-]+$", line.lower()):
            domain_like += 1

    if adblock_like > hosts_like and adblock_like > domain_like:
        return "adblock"
    elif hosts_like >= domain_like:
        return "hosts"
    else:
        return "domains"


def request_with_retry(
    session: requests.Session,
    url: str,
    timeout_seconds: float,
    max_retries: int,
    retry_backoff_seconds: float,
    logger: logging.Logger,
) -> requests.Response:
    """
    GET url with a bounded number of attempts.

    HTTP error statuses fail immediately; connection errors and timeouts are
    retried with a linear backoff. Raises the last error when giving up.
    """
    last_exc: Optional[Exception] = None

    for attempt in range(1, max(1, max_retries) + 1):
        try:
            resp = session.get(url, timeout=timeout_seconds, allow_redirects=True)
        except requests.RequestException as e:
            last_exc = e
            logger.info("Request error (attempt %s/%s) %s: %s", attempt, max_retries, url, e)
            if attempt < max_retries:
                time.sleep(retry_backoff_seconds * attempt)
            continue
        resp.raise_for_status()
        return resp

    logger.info("Giving up on %s due to errors", url)
    raise last_exc


# ============================================================================
# Aggregator
# ============================================================================


class BlocklistAggregator:
    def __init__(
        self,
        state,
        logger: logging.Logger,
        timeout_seconds: float = 15,
        max_retries: int = 3,
        retry_backoff_seconds: float = 2,
        user_agent: str = "AdVault-DNS/1.0",
        session: Optional[requests.Session] = None,
    ):
        self._state = state
        self._logger = logger
        self._timeout = timeout_seconds
        self._max_retries = max_retries
        self._backoff = retry_backoff_seconds
        if session is None:
            session = requests.Session()
            session.headers.update({"User-Agent": user_agent})
        self._session = session
        self.last_stats: List[SourceStats] = []

    def fetch(self, source: Source) -> str:
        if source.is_remote:
            resp = request_with_retry(
                session=self._session,
                url=source.location,
                timeout_seconds=self._timeout,
                max_retries=self._max_retries,
                retry_backoff_seconds=self._backoff,
                logger=self._logger,
            )
            return resp.text

        with open(os.path.expanduser(source.location), "r", encoding="utf-8", errors="ignore") as f:
            return f.read()

    def refresh(self, sources: List[Source]) -> FrozenSet[str]:
        """
        Rebuild the blocklist from all sources and publish it.

        Returns the set now in effect. When every source failed the previous
        set is kept and returned.
        """
        working: Set[str] = set()
        stats: List[SourceStats] = []

        for source in sources:
            st = SourceStats(location=source.location, fmt=source.fmt)
            start = time.monotonic()
            try:
                content = self.fetch(source)
            except (requests.RequestException, OSError) as e:
                st.error = str(e) or e.__class__.__name__
                st.fetch_time_ms = (time.monotonic() - start) * 1000
                stats.append(st)
                self._logger.warning("Source %s failed: %s", source.location, st.error)
                continue
            st.fetch_time_ms = (time.monotonic() - start) * 1000

            if st.fmt is None:
                st.fmt = detect_format(content)

            seen: Set[str] = set()
            for line in content.splitlines():
                d = normalize(line)
                if d:
                    seen.add(d)

            st.total_domains = len(seen)
            st.overlap_domains = len(seen & working)
            st.unique_domains = st.total_domains - st.overlap_domains
            working |= seen
            stats.append(st)

            self._logger.info(
                "Source %s -> %s domains (%s new, format: %s, %.0f ms)",
                source.location, st.total_domains, st.unique_domains, st.fmt or "unknown", st.fetch_time_ms,
            )

        self.last_stats = stats

        if sources and not any(s.ok for s in stats):
            self._logger.error("All %s sources failed; keeping previous blocklist", len(sources))
            return self._state.snapshot().block

        new_set = frozenset(working)
        self._state.replace_blocklist(new_set)
        failed = sum(1 for s in stats if not s.ok)
        self._logger.info(
            "Blocklist refreshed: %s domains from %s sources (%s failed)",
            len(new_set), len(sources), failed,
        )
        return new_set


def format_source_report(stats: List[SourceStats], unique_total: int) -> str:
    """Render the per-source results of the latest refresh as a text table."""
    rows = [
        f"{'#':>2}  {'status':<6} {'format':<8} {'entries':>9} {'new':>9} {'ms':>7}  source",
    ]
    for idx, s in enumerate(stats, 1):
        if s.ok:
            rows.append(
                f"{idx:>2}  {'ok':<6} {(s.fmt or '-'):<8} {s.total_domains:>9} "
                f"{s.unique_domains:>9} {s.fetch_time_ms:>7.0f}  {s.location}"
            )
        else:
            rows.append(f"{idx:>2}  {'failed':<6} {'-':<8} {'-':>9} {'-':>9} {s.fetch_time_ms:>7.0f}  {s.location}")

    failed = [s for s in stats if not s.ok]
    parsed = sum(s.total_domains for s in stats)
    rows.append("")
    rows.append(
        f"{len(stats)} sources, {len(failed)} failed; {parsed} entries parsed, "
        f"{unique_total} unique in blocklist"
    )
    for s in failed:
        rows.append(f"  failed: {s.location}: {s.error}")
    return "\n".join(rows)


def print_source_stats_report(stats: List[SourceStats], unique_total: int) -> None:
    if not stats:
        return
    print(format_source_report(stats, unique_total))
