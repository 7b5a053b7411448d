"""
AdVault DNS - network-wide DNS sinkhole.

Aggregates remote blocklists (hosts files, domain-per-line lists, AdBlock
rules) into one domain set, answers queries for listed domains with a null
address and relays everything else to an upstream resolver.
"""

__version__ = "1.0.0"
