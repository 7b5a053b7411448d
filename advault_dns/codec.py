"""
Minimal DNS message handling on top of dnslib.

Only what the relay needs: decode an inbound query, and synthesize the two
replies the relay produces itself (sinkhole answer and SERVFAIL). Forwarded
replies are relayed as raw bytes and never re-encoded.
"""

from dataclasses import dataclass
from typing import Optional

from dnslib import AAAA, QTYPE, RCODE, RR, A, DNSRecord


@dataclass
class Query:
    name: str
    qtype: int
    txid: int
    record: DNSRecord

    @property
    def qtype_name(self) -> str:
        try:
            return QTYPE[self.qtype]
        except Exception:
            return f"TYPE{self.qtype}"


def parse_query(data: bytes) -> Optional[Query]:
    """Decode a request datagram; None when it is not a usable query."""
    try:
        record = DNSRecord.parse(data)
    except Exception:
        return None

    if record.header.qr or not record.questions:
        return None

    q = record.q
    return Query(
        name=str(q.qname).rstrip(".").lower(),
        qtype=q.qtype,
        txid=record.header.id,
        record=record,
    )


def sinkhole_reply(query: Query, ipv4: str = "0.0.0.0", ipv6: str = "::", ttl: int = 60) -> bytes:
    reply = query.record.reply()
    qname = query.record.q.qname

    if query.qtype in (QTYPE.A, QTYPE.ANY):
        reply.add_answer(RR(qname, QTYPE.A, rdata=A(ipv4), ttl=ttl))
    elif query.qtype == QTYPE.AAAA:
        reply.add_answer(RR(qname, QTYPE.AAAA, rdata=AAAA(ipv6), ttl=ttl))

    return reply.pack()


def servfail_reply(query: Query) -> bytes:
    reply = query.record.reply()
    reply.header.rcode = RCODE.SERVFAIL
    return reply.pack()
