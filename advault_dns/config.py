import json
import logging
import os
from typing import Any, Dict, List

from advault_dns.aggregator import FORMATS, Source, is_valid_abs_http_url


DEFAULT_CONFIG: Dict[str, Any] = {
    "sources": [
        "https://raw.githubusercontent.com/StevenBlack/hosts/master/hosts",
        "https://big.oisd.nl/",
        "https://raw.githubusercontent.com/hagezi/dns-blocklists/main/domains/pro.txt",
        "https://raw.githubusercontent.com/AdguardTeam/cname-trackers/master/combined_disguised_trackers.txt",
    ],
    "refresh_interval_hours": 6,
    "upstream_dns": "1.1.1.1",
    "upstream_port": 53,
    "upstream_timeout_seconds": 3,
    "listen_addr": "0.0.0.0",
    "listen_port": 53,
    "sinkhole_ipv4": "0.0.0.0",
    "sinkhole_ipv6": "::",
    "sinkhole_ttl": 60,
    "allowlist_path": "allowlist.txt",
    "blocked_log_path": "blocked_domains.log",
    "blocklist_cache_path": "blocklist_cache.txt",
    "request_timeout_seconds": 15,
    "max_retries": 3,
    "retry_backoff_seconds": 2,
    "user_agent": "AdVault-DNS/1.0",
    "log_path": "advault_dns.log",
}


def load_config(config_path: str) -> dict:
    """Return the defaults overlaid with the JSON file at config_path, if any."""
    config = dict(DEFAULT_CONFIG)
    if config_path and os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as f:
            config.update(json.load(f))
    return config


def parse_sources(config: dict, logger: logging.Logger) -> List[Source]:
    sources: List[Source] = []
    for entry in config.get("sources", []):
        if isinstance(entry, dict):
            location = str(entry.get("url") or entry.get("path") or "").strip()
            fmt = entry.get("format")
        else:
            location = str(entry).strip()
            fmt = None

        if not location or location.startswith("#"):
            continue

        if "://" in location and not is_valid_abs_http_url(location):
            logger.info("Skipping invalid source URL: %s", location)
            continue

        if fmt is not None and fmt not in FORMATS:
            logger.info("Skipping source %s with unknown format: %s", location, fmt)
            continue

        sources.append(Source(location=location, fmt=fmt))
    return sources


def setup_logger(log_path: str) -> logging.Logger:
    logger = logging.getLogger("advault_dns")
    logger.setLevel(logging.INFO)

    if logger.handlers:
        return logger

    fmt = logging.Formatter("%(asctime)s %(levelname)s %(message)s")

    sh = logging.StreamHandler()
    sh.setFormatter(fmt)
    logger.addHandler(sh)

    if log_path:
        fh = logging.FileHandler(log_path, encoding="utf-8")
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    return logger
