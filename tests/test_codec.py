"""
Tests for the DNS codec on fixed byte fixtures.
"""

import struct

from dnslib import QTYPE, RCODE, DNSRecord

from advault_dns.codec import parse_query, servfail_reply, sinkhole_reply

from conftest import make_query


# id=0xBEEF, RD set, one question: ads.example.com A IN
QUERY_A = (
    b"\xbe\xef\x01\x00\x00\x01\x00\x00\x00\x00\x00\x00"
    b"\x03ads\x07example\x03com\x00"
    b"\x00\x01\x00\x01"
)


class TestParseQuery:
    """Tests for parse_query()"""

    def test_fixture(self):
        q = parse_query(QUERY_A)
        assert q.name == "ads.example.com"
        assert q.qtype == QTYPE.A
        assert q.txid == 0xBEEF
        assert q.qtype_name == "A"

    def test_garbage_rejected(self):
        assert parse_query(b"") is None
        assert parse_query(b"\x00\x01\x02") is None
        assert parse_query(QUERY_A[:20]) is None

    def test_response_rejected(self):
        reply = DNSRecord.parse(QUERY_A).reply().pack()
        assert parse_query(reply) is None

    def test_no_question_rejected(self):
        header_only = b"\x12\x34\x01\x00" + b"\x00" * 8
        assert parse_query(header_only) is None


class TestSinkholeReply:
    """Tests for sinkhole_reply()"""

    def test_a_answer_bytes(self):
        reply = sinkhole_reply(parse_query(QUERY_A), "0.0.0.0", ttl=60)

        txid, flags, qd, an, ns, ar = struct.unpack("!HHHHHH", reply[:12])
        assert txid == 0xBEEF
        assert flags & 0x8000
        assert flags & 0x000F == 0
        assert (qd, an, ns, ar) == (1, 1, 0, 0)
        # Question echoed verbatim
        assert reply[12:12 + len(QUERY_A) - 12] == QUERY_A[12:]
        # One A record, compressed name pointer to the question, TTL 60, 0.0.0.0
        assert reply.endswith(b"\xc0\x0c\x00\x01\x00\x01\x00\x00\x00\x3c\x00\x04\x00\x00\x00\x00")

    def test_custom_address(self):
        reply = DNSRecord.parse(sinkhole_reply(parse_query(QUERY_A), "10.0.0.1"))
        assert len(reply.rr) == 1
        assert str(reply.rr[0].rdata) == "10.0.0.1"
        assert str(reply.rr[0].rname) == "ads.example.com."

    def test_aaaa_gets_null_ipv6(self):
        reply = DNSRecord.parse(sinkhole_reply(parse_query(make_query("ads.example.com", "AAAA"))))
        assert len(reply.rr) == 1
        assert reply.rr[0].rtype == QTYPE.AAAA
        assert bytes(reply.rr[0].rdata.data) == b"\x00" * 16

    def test_other_types_get_empty_answer(self):
        reply = DNSRecord.parse(sinkhole_reply(parse_query(make_query("ads.example.com", "TXT"))))
        assert reply.header.rcode == RCODE.NOERROR
        assert reply.rr == []


class TestServfailReply:
    """Tests for servfail_reply()"""

    def test_servfail(self):
        reply = servfail_reply(parse_query(QUERY_A))
        assert reply[:2] == b"\xbe\xef"
        parsed = DNSRecord.parse(reply)
        assert parsed.header.rcode == RCODE.SERVFAIL
        assert parsed.header.qr == 1
        assert str(parsed.q.qname) == "ads.example.com."
        assert parsed.rr == []
