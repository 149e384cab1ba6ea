import socket
from typing import Optional

from common.config import LISTEN_BACKLOG, LISTEN_HOST, RelayConfig
from common.log import log
from common.syslog import LOG_ERROR, LOG_INFO, LOG_WARN
from relay.session import Session


class Listener:
    """
    Accepts one upstream client at a time and runs its session to the end
    before accepting the next. Further clients wait in the listen backlog.
    """

    def __init__(self, config: RelayConfig, host: str = LISTEN_HOST):
        self.config = config
        self.host = host
        self.sock: Optional[socket.socket] = None

    @property
    def port(self) -> int:
        return self.sock.getsockname()[1]

    def open(self):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.config.listen_port))
            sock.listen(LISTEN_BACKLOG)
            sock.settimeout(self.config.listen_timeout)
        except OSError:
            sock.close()
            raise
        self.sock = sock

        log("relay", "listener", "LISTEN", addr=(self.host, self.port),
            endpoints=len(self.config.endpoints), debug=self.config.debug)
        LOG_INFO("LISTEN", event="LISTEN", addr=(self.host, self.port))

    def accept_once(self) -> Optional[Session]:
        """Wait for one client and serve it. Returns None if the accept timed out or failed."""
        log("relay", "listener", "ACCEPT_WAIT", port=self.port)
        try:
            client, addr = self.sock.accept()
        except TimeoutError:
            log("relay", "listener", "ACCEPT_TIMEOUT", level="WARN",
                port=self.port, timeout_ms=self.config.listen_timeout_ms)
            LOG_WARN("ACCEPT_TIMEOUT", event="ACCEPT_TIMEOUT", port=self.port)
            return None
        except OSError as e:
            log("relay", "listener", "ACCEPT_FAIL", level="ERROR", port=self.port, error=f'"{e}"')
            LOG_ERROR("ACCEPT_FAIL", event="ACCEPT_FAIL", port=self.port, error=e)
            return None

        client.settimeout(self.config.source_timeout)
        session = Session(client, addr, self.config)
        session.run()
        return session

    def serve_forever(self):
        while True:
            self.accept_once()

    def close(self):
        if self.sock is None:
            return
        try:
            self.sock.close()
        except OSError:
            pass
        self.sock = None

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *exc):
        self.close()
