#!/usr/bin/env python3
"""
AdVault DNS command line entry point.

Loads the configuration, the allowlist and the cached blocklist, starts the
background refresh loop and serves DNS until interrupted.
"""

import argparse
import sys

from advault_dns import __version__
from advault_dns.aggregator import BlocklistAggregator, print_source_stats_report
from advault_dns.blocklog import BlockLog
from advault_dns.config import load_config, parse_sources, setup_logger
from advault_dns.normalize import load_domain_file
from advault_dns.relay import ListenBindError, QueryRelay
from advault_dns.state import RefreshCoordinator, SharedState


def main() -> None:
    parser = argparse.ArgumentParser(
        description="AdVault DNS sinkhole",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", default="config.json", help="Path to config file")
    parser.add_argument("--once", action="store_true", help="Run one blocklist refresh and exit")
    parser.add_argument("--stats", action="store_true", help="Show source quality statistics after a refresh")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    args = parser.parse_args()

    config = load_config(args.config)
    logger = setup_logger(config.get("log_path", "advault_dns.log"))

    logger.info("AdVault DNS %s starting (config: %s)", __version__, args.config)

    allow = load_domain_file(config.get("allowlist_path", "allowlist.txt"))
    logger.info("Loaded %s allowlist entries", len(allow))

    state = SharedState(allow=allow)
    sources = parse_sources(config, logger)
    aggregator = BlocklistAggregator(
        state,
        logger,
        timeout_seconds=float(config.get("request_timeout_seconds", 15)),
        max_retries=int(config.get("max_retries", 3)),
        retry_backoff_seconds=float(config.get("retry_backoff_seconds", 2)),
        user_agent=config.get("user_agent", "AdVault-DNS/1.0"),
    )
    coordinator = RefreshCoordinator(
        aggregator,
        sources,
        interval_seconds=float(config.get("refresh_interval_hours", 6)) * 3600.0,
        logger=logger,
        cache_path=config.get("blocklist_cache_path"),
    )

    if args.once:
        domains = coordinator.run_once()
        if args.stats:
            print_source_stats_report(aggregator.last_stats, len(domains))
        return

    relay = QueryRelay(
        state,
        logger,
        listen_addr=config.get("listen_addr", "0.0.0.0"),
        listen_port=int(config.get("listen_port", 53)),
        upstream_addr=config.get("upstream_dns", "1.1.1.1"),
        upstream_port=int(config.get("upstream_port", 53)),
        upstream_timeout=float(config.get("upstream_timeout_seconds", 3)),
        sinkhole_ipv4=config.get("sinkhole_ipv4", "0.0.0.0"),
        sinkhole_ipv6=config.get("sinkhole_ipv6", "::"),
        sinkhole_ttl=int(config.get("sinkhole_ttl", 60)),
        block_log=BlockLog(config.get("blocked_log_path", "blocked_domains.log"), logger),
    )

    try:
        relay.bind()
    except ListenBindError as e:
        logger.critical("%s", e)
        sys.exit(1)

    coordinator.load_cache(state)
    coordinator.start()

    try:
        relay.serve_forever()
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    finally:
        relay.shutdown()
        coordinator.stop()


if __name__ == "__main__":
    main()
