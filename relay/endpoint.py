import socket
from typing import Optional

from common.config import EndpointConfig
from common.errors import ConnectError, TransportError
from common.framing import Packet, read_packet


class Downstream:
    """
    One configured downstream peer and its connection.

    OSErrors are reported as ConnectError (while connecting) or TransportError
    (afterwards). TimeoutError is left alone so timeouts stay recognisable.
    """

    def __init__(self, cfg: EndpointConfig, timeout: Optional[float] = None):
        self.cfg = cfg
        self.timeout = timeout
        self.sock: Optional[socket.socket] = None

    @property
    def host(self):
        return self.cfg.host

    @property
    def port(self):
        return self.cfg.port

    @property
    def position(self):
        return self.cfg.position

    @property
    def addr(self):
        return self.cfg.addr

    def open(self):
        try:
            self.sock = socket.create_connection(self.addr, timeout=self.timeout)
        except OSError as e:
            raise ConnectError(f"cannot connect to {self.host}:{self.port}: {e}") from e
        # create_connection only applies the timeout to connect(); make it stick for reads too
        self.sock.settimeout(self.timeout)

    def send(self, packet: Packet):
        try:
            self.sock.sendall(packet.raw)
        except TimeoutError:
            raise
        except OSError as e:
            raise TransportError(f"write to {self.host}:{self.port} failed: {e}") from e

    def read_packet(self) -> Packet:
        try:
            return read_packet(self.sock)
        except TimeoutError:
            raise
        except OSError as e:
            raise TransportError(f"read from {self.host}:{self.port} failed: {e}") from e

    def close(self):
        if self.sock is None:
            return
        try:
            self.sock.close()
        except OSError:
            pass
        self.sock = None

    def __repr__(self):
        return f"Downstream({self.position}, {self.host}:{self.port})"
