import logging

import pytest
from dnslib import DNSRecord


@pytest.fixture
def logger():
    return logging.getLogger("advault_dns.tests")


def make_query(name: str, qtype: str = "A", txid: int = 0x1234) -> bytes:
    q = DNSRecord.question(name, qtype)
    q.header.id = txid
    return q.pack()
