"""
relay.session

One upstream client, from accept to teardown.

A session opens a fresh connection to every downstream, then loops:
read a packet from the client, fan it out, forward the reply (if any).
It has no successful exit. The first error or timeout on any of its sockets
moves it to TERMINATED, and every socket it owns is closed on the way out.
"""

from contextlib import ExitStack
from typing import List, Optional

from common.config import RelayConfig
from common.errors import ConnectError, RelayError, TransportError
from common.framing import read_packet
from common.log import log
from common.syslog import LOG_INFO, LOG_WARN
from relay.dispatcher import dispatch
from relay.endpoint import Downstream

ACTIVE = "ACTIVE"
TERMINATED = "TERMINATED"


class Session:
    def __init__(self, client, client_addr, config: RelayConfig):
        self.client = client
        self.client_addr = client_addr
        self.config = config

        self.state = ACTIVE
        self.stage = "connect"
        self.endpoints: List[Downstream] = []
        self.cause: Optional[BaseException] = None

        self.packets = 0
        self.replies = 0

    @property
    def active(self) -> bool:
        return self.state == ACTIVE

    def run(self) -> BaseException:
        """Serve the client until its first failure. Returns that failure."""
        LOG_INFO("SESSION_START", event="SESSION_START", addr=self.client_addr)
        log("relay", "session", "SESSION_START", addr=self.client_addr,
            endpoints=len(self.config.endpoints))

        with ExitStack() as stack:
            stack.callback(self._close_client)
            try:
                self._open_endpoints(stack)
                while True:
                    self._cycle()
            except (RelayError, OSError) as e:
                # TimeoutError is an OSError
                self.cause = e

        self.state = TERMINATED
        self._report_end()
        return self.cause

    def _open_endpoints(self, stack: ExitStack):
        for cfg in self.config.endpoints:
            ep = Downstream(cfg, timeout=self.config.endpoint_timeout)
            stack.callback(ep.close)
            try:
                ep.open()
            except ConnectError as e:
                log("relay", "session", "DOWNSTREAM_CONNECT_FAIL", level="ERROR",
                    addr=ep.addr, position=ep.position, error=e)
                raise
            self.endpoints.append(ep)
            log("relay", "session", "DOWNSTREAM_CONNECT", addr=ep.addr, position=ep.position)

    def _cycle(self):
        self.stage = "client_read"
        packet = read_packet(self.client)
        self.packets += 1
        if self.config.debug:
            log("relay", "session", "PACKET_IN", level="DEBUG", addr=self.client_addr,
                protocol=f"0x{packet.protocol_id:02X}", hex=packet.hex())

        self.stage = "dispatch"
        reply = dispatch(packet, self.endpoints, debug=self.config.debug)
        if reply is None:
            return

        self.stage = "client_write"
        try:
            self.client.sendall(reply.raw)
        except TimeoutError:
            raise
        except OSError as e:
            raise TransportError(f"write to client failed: {e}") from e
        self.replies += 1
        log("relay", "session", "REPLY_SENT", addr=self.client_addr, size=len(reply))

    def _close_client(self):
        try:
            self.client.close()
        except OSError:
            pass

    def _report_end(self):
        kind = type(self.cause).__name__
        log("relay", "session", "SESSION_END", level="WARN", addr=self.client_addr,
            stage=self.stage, kind=kind, error=f'"{self.cause}"',
            packets=self.packets, replies=self.replies)
        LOG_WARN("SESSION_END", event="SESSION_END", addr=self.client_addr,
                 stage=self.stage, kind=kind, packets=self.packets, replies=self.replies)
