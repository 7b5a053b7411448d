import logging
import threading
from datetime import datetime, timezone


class BlockLog:
    """Append-only record of blocked domains, one line per BLOCK decision."""

    def __init__(self, path: str, logger: logging.Logger):
        self.path = path
        self._logger = logger
        self._lock = threading.Lock()

    def record(self, domain: str) -> bool:
        if not self.path:
            return False

        ts = datetime.now(timezone.utc).isoformat(timespec="seconds")
        try:
            with self._lock:
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(f"{ts}\t{domain}\n")
        except OSError as e:
            self._logger.warning("Could not append to %s: %s", self.path, e)
            return False
        return True
