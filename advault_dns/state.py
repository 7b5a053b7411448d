"""
Shared block/allow state and the background refresh loop.

The blocklist reference is replaced wholesale; the lock only guards the
reference read or swap, never the set construction or any network I/O.
"""

import logging
import os
import threading
import time
from datetime import datetime, timezone
from typing import FrozenSet, Iterable, List, NamedTuple, Optional

from advault_dns.aggregator import BlocklistAggregator, Source
from advault_dns.normalize import load_domain_file


class Snapshot(NamedTuple):
    block: FrozenSet[str]
    allow: FrozenSet[str]


class SharedState:
    def __init__(self, allow: Iterable[str] = (), block: Iterable[str] = ()):
        self._lock = threading.Lock()
        self._allow: FrozenSet[str] = frozenset(allow)
        self._block: FrozenSet[str] = frozenset(block)

    def snapshot(self) -> Snapshot:
        with self._lock:
            return Snapshot(self._block, self._allow)

    def replace_blocklist(self, domains: Iterable[str]) -> None:
        new_set = domains if isinstance(domains, frozenset) else frozenset(domains)
        with self._lock:
            self._block = new_set

    def blocklist_size(self) -> int:
        with self._lock:
            return len(self._block)


# ============================================================================
# Blocklist cache
# ============================================================================


def atomic_write(path: str, content: str) -> None:
    tmp = f"{path}.tmp"
    with open(tmp, "w", encoding="utf-8") as f:
        f.write(content)
    os.replace(tmp, path)


def save_blocklist_cache(path: str, domains: FrozenSet[str]) -> None:
    header = "\n".join([
        "# AdVault DNS blocklist cache",
        f"# Updated: {datetime.now(timezone.utc).isoformat(timespec='seconds')}",
        f"# Entries: {len(domains)}",
        "",
    ])
    body = "\n".join(sorted(domains)) + ("\n" if domains else "")
    atomic_write(path, header + body)


def load_cached_blocklist(path: str) -> FrozenSet[str]:
    return load_domain_file(path)


# ============================================================================
# Refresh coordinator
# ============================================================================


class RefreshCoordinator:
    """Runs the aggregator at startup and then on a fixed interval."""

    def __init__(
        self,
        aggregator: BlocklistAggregator,
        sources: List[Source],
        interval_seconds: float,
        logger: logging.Logger,
        cache_path: Optional[str] = None,
    ):
        self._aggregator = aggregator
        self._sources = list(sources)
        self._interval = float(interval_seconds)
        self._logger = logger
        self._cache_path = cache_path
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def load_cache(self, state: SharedState) -> int:
        """Seed the state from the on-disk cache so blocking starts immediately."""
        if not self._cache_path:
            return 0
        cached = load_cached_blocklist(self._cache_path)
        if cached:
            state.replace_blocklist(cached)
            self._logger.info("Loaded %s cached domains from %s", len(cached), self._cache_path)
        return len(cached)

    def run_once(self) -> FrozenSet[str]:
        start = time.time()
        self._logger.info("Starting blocklist refresh (%s sources)", len(self._sources))
        domains = self._aggregator.refresh(self._sources)

        if self._cache_path and any(s.ok for s in self._aggregator.last_stats):
            try:
                save_blocklist_cache(self._cache_path, domains)
            except OSError as e:
                self._logger.warning("Could not write blocklist cache %s: %s", self._cache_path, e)

        self._logger.info("Refresh complete in %.1fs", time.time() - start)
        return domains

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception as e:
                self._logger.exception("Refresh cycle failed: %s", e)

            self._logger.info("Next refresh in %.0fs", self._interval)
            self._stop_event.wait(self._interval)

    def start(self) -> None:
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name="BlocklistRefresh", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
