"""
UDP query relay.

The listening loop hands every datagram to a short-lived thread so a slow
upstream never holds up unrelated queries. Blocked names get a synthesized
sinkhole answer; everything else is forwarded verbatim over a fresh socket
and the upstream reply relayed back untouched. Upstream timeouts and errors
turn into SERVFAIL instead of silence.
"""

import logging
import socket
import threading
import time
from typing import Optional, Tuple

from advault_dns.blocklog import BlockLog
from advault_dns.classifier import BlockDecision, classify
from advault_dns.codec import parse_query, servfail_reply, sinkhole_reply

MAX_UDP_SIZE = 65535


class ListenBindError(RuntimeError):
    """The DNS listening socket could not be bound."""


def _family_for(host: str) -> int:
    return socket.AF_INET6 if ":" in host else socket.AF_INET


class QueryRelay:
    def __init__(
        self,
        state,
        logger: logging.Logger,
        listen_addr: str = "0.0.0.0",
        listen_port: int = 53,
        upstream_addr: str = "1.1.1.1",
        upstream_port: int = 53,
        upstream_timeout: float = 3.0,
        sinkhole_ipv4: str = "0.0.0.0",
        sinkhole_ipv6: str = "::",
        sinkhole_ttl: int = 60,
        block_log: Optional[BlockLog] = None,
    ):
        self._state = state
        self._logger = logger
        self.listen_addr = listen_addr
        self.listen_port = int(listen_port)
        self.upstream = (upstream_addr, int(upstream_port))
        self.upstream_timeout = float(upstream_timeout)
        self.sinkhole_ipv4 = sinkhole_ipv4
        self.sinkhole_ipv6 = sinkhole_ipv6
        self.sinkhole_ttl = int(sinkhole_ttl)
        self.block_log = block_log

        self._sock: Optional[socket.socket] = None
        self._running = threading.Event()
        self._stopped = threading.Event()
        self._stats_lock = threading.Lock()
        self.stats = {"queries": 0, "blocked": 0, "forwarded": 0, "servfail": 0, "dropped": 0}

    def _count(self, key: str) -> None:
        with self._stats_lock:
            self.stats[key] += 1

    # ------------------------------------------------------------------
    # Listening
    # ------------------------------------------------------------------

    def bind(self) -> Tuple[str, int]:
        sock = socket.socket(_family_for(self.listen_addr), socket.SOCK_DGRAM)
        try:
            sock.bind((self.listen_addr, self.listen_port))
        except OSError as e:
            sock.close()
            raise ListenBindError(
                f"Cannot bind DNS socket on {self.listen_addr}:{self.listen_port}: {e}"
            ) from e
        self._sock = sock
        bound = sock.getsockname()
        self._logger.info("DNS sinkhole listening on %s:%s (upstream %s:%s)",
                          bound[0], bound[1], self.upstream[0], self.upstream[1])
        return bound[0], bound[1]

    def serve_forever(self, poll_interval: float = 0.5) -> None:
        """Receive datagrams until shutdown() is called."""
        if self._sock is None:
            self.bind()

        self._sock.settimeout(poll_interval)
        self._running.set()
        self._stopped.clear()
        try:
            while self._running.is_set():
                try:
                    data, addr = self._sock.recvfrom(MAX_UDP_SIZE)
                except socket.timeout:
                    continue
                except OSError as e:
                    if not self._running.is_set():
                        break
                    self._logger.warning("Receive error: %s", e)
                    continue

                threading.Thread(
                    target=self.handle_datagram,
                    args=(data, addr),
                    name="DNSQuery",
                    daemon=True,
                ).start()
        finally:
            self._stopped.set()

    def shutdown(self, timeout: float = 5) -> None:
        if self._running.is_set():
            self._running.clear()
            self._stopped.wait(timeout)
        if self._sock is not None:
            self._sock.close()
            self._sock = None
        self._logger.info(
            "Relay stopped: %(queries)s queries, %(blocked)s blocked, %(forwarded)s forwarded, "
            "%(servfail)s SERVFAIL, %(dropped)s dropped", self.stats,
        )

    # ------------------------------------------------------------------
    # Per-query handling
    # ------------------------------------------------------------------

    def _send(self, payload: bytes, addr) -> None:
        sock = self._sock
        if sock is None:
            return
        sock.sendto(payload, addr)

    def handle_datagram(self, data: bytes, addr) -> None:
        try:
            self._handle(data, addr)
        except Exception as e:
            self._logger.exception("Error handling query from %s: %s", addr, e)

    def _handle(self, data: bytes, addr) -> None:
        query = parse_query(data)
        if query is None:
            self._count("dropped")
            self._logger.debug("Dropped malformed datagram from %s", addr)
            return

        self._count("queries")
        decision = classify(query.name, self._state.snapshot())

        if decision is BlockDecision.BLOCK:
            reply = sinkhole_reply(query, self.sinkhole_ipv4, self.sinkhole_ipv6, self.sinkhole_ttl)
            self._count("blocked")
            self._logger.info("BLOCKED %s (%s) for %s", query.name, query.qtype_name, addr[0])
            if self.block_log is not None:
                self.block_log.record(query.name)
            self._send(reply, addr)
            return

        resp = self.forward(data)
        if resp is None:
            self._count("servfail")
            self._logger.warning("SERVFAIL %s for %s: upstream %s:%s unavailable",
                                 query.name, addr[0], self.upstream[0], self.upstream[1])
            self._send(servfail_reply(query), addr)
            return

        self._count("forwarded")
        self._logger.debug("Forwarded %s for %s", query.name, addr[0])
        self._send(resp, addr)

    def forward(self, data: bytes) -> Optional[bytes]:
        """Relay data to the upstream resolver; None on timeout or I/O error."""
        deadline = time.monotonic() + self.upstream_timeout
        try:
            with socket.socket(_family_for(self.upstream[0]), socket.SOCK_DGRAM) as s:
                s.sendto(data, self.upstream)
                while True:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise socket.timeout("upstream timed out")
                    s.settimeout(remaining)
                    resp, _ = s.recvfrom(MAX_UDP_SIZE)
                    # Ignore stray datagrams that do not answer this request
                    if resp[:2] == data[:2]:
                        return resp
        except OSError as e:
            self._logger.info("Upstream %s:%s error: %s", self.upstream[0], self.upstream[1], e)
            return None
