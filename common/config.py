import os
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from common.errors import ConfigError

# Wire format
HEADER_SIZE = 2
PROTOCOL_SIZE = 1
LENGTH_SIZE = 2
PREFIX_SIZE = HEADER_SIZE + PROTOCOL_SIZE + LENGTH_SIZE
MAX_PAYLOAD = 0xFFFF

# Protocol ids the relay treats as fire-and-forget telemetry
PROTOCOL_GPS = 0x02
PROTOCOL_ORDINARY_MESSAGE = 0x81

# Listener
LISTEN_HOST = "0.0.0.0"
LISTEN_BACKLOG = 50

# Syslog (RFC5424 over UDP)
SYSLOG_ENABLED = os.getenv("RELAY_SYSLOG") == "1"
SYSLOG_HOST = os.getenv("RELAY_SYSLOG_HOST", "127.0.0.1")
SYSLOG_PORT = int(os.getenv("RELAY_SYSLOG_PORT", "5514"))
SYSLOG_FACILITY = 1  # user-level
SYSLOG_APP = "packet-relay"

# Properties file keys
KEY_SERVER_TIMEOUT = "server.socket.timeout"
KEY_NUMBER_OF_CLIENTS = "number.of.clients"
KEY_CLIENT_HOST = "client.host.{}"
KEY_CLIENT_PORT = "client.port.{}"
KEY_CLIENT_TIMEOUT = "client.socket.timeout"
KEY_SOURCE_TIMEOUT = "source.socket.timeout"
KEY_DEBUG = "debug"


def _seconds(ms: int) -> Optional[float]:
    # 0 means block forever
    if ms == 0:
        return None
    return ms / 1000.0


@dataclass(frozen=True)
class EndpointConfig:
    host: str
    port: int
    position: int

    @property
    def addr(self) -> Tuple[str, int]:
        return (self.host, self.port)


@dataclass(frozen=True)
class RelayConfig:
    """
    Fully resolved relay settings. Built once at startup and handed by
    reference to the listener and every session; never mutated afterwards.
    """
    listen_port: int
    listen_timeout_ms: int
    endpoints: Tuple[EndpointConfig, ...]
    endpoint_timeout_ms: int
    source_timeout_ms: int = 0
    debug: bool = False

    @property
    def listen_timeout(self) -> Optional[float]:
        return _seconds(self.listen_timeout_ms)

    @property
    def endpoint_timeout(self) -> Optional[float]:
        return _seconds(self.endpoint_timeout_ms)

    @property
    def source_timeout(self) -> Optional[float]:
        return _seconds(self.source_timeout_ms)


def _logical_lines(text: str):
    # a line ending in an odd number of backslashes continues on the next one
    pending = None
    for raw in text.splitlines():
        line = raw.lstrip()
        if pending is None and (not line or line[0] in "#!"):
            continue

        trailing = len(line) - len(line.rstrip("\\"))
        continued = trailing % 2 == 1
        if continued:
            line = line[:-1]

        pending = line if pending is None else pending + line
        if not continued:
            yield pending
            pending = None

    if pending is not None:
        yield pending


def parse_properties(text: str) -> Dict[str, str]:
    """
    Parse the java.util.Properties line format: the key ends at the first
    `=`, `:` or whitespace, `#`/`!` lines are comments, and a trailing
    backslash joins the next line. Escape sequences (\\uXXXX, `\\=` inside
    keys) are not interpreted.
    """
    props = {}
    for line in _logical_lines(text):
        line = line.strip()
        cut = len(line)
        for i, ch in enumerate(line):
            if ch in "=:" or ch.isspace():
                cut = i
                break

        key = line[:cut]
        rest = line[cut:].lstrip()
        if rest[:1] in ("=", ":"):
            rest = rest[1:].lstrip()
        props[key] = rest
    return props


def _require(props, key):
    value = props.get(key)
    if value is None or value == "":
        raise ConfigError(f"missing required key {key!r}")
    return value


def _int(props, key, lo=None, hi=None):
    value = _require(props, key)
    try:
        number = int(value)
    except ValueError:
        raise ConfigError(f"{key!r} must be an integer, got {value!r}") from None

    if lo is not None and number < lo:
        raise ConfigError(f"{key!r} must be >= {lo}, got {number}")
    if hi is not None and number > hi:
        raise ConfigError(f"{key!r} must be <= {hi}, got {number}")
    return number


def build_config(props: Dict[str, str], listen_port: int) -> RelayConfig:
    if not 0 <= listen_port <= 65535:
        raise ConfigError(f"listen port out of range: {listen_port}")

    count = _int(props, KEY_NUMBER_OF_CLIENTS, lo=1)
    endpoints = []
    for i in range(count):
        host = _require(props, KEY_CLIENT_HOST.format(i))
        port = _int(props, KEY_CLIENT_PORT.format(i), lo=1, hi=65535)
        endpoints.append(EndpointConfig(host=host, port=port, position=i))

    return RelayConfig(
        listen_port=listen_port,
        listen_timeout_ms=_int(props, KEY_SERVER_TIMEOUT, lo=0),
        endpoints=tuple(endpoints),
        endpoint_timeout_ms=_int(props, KEY_CLIENT_TIMEOUT, lo=0),
        source_timeout_ms=_int(props, KEY_SOURCE_TIMEOUT, lo=0) if props.get(KEY_SOURCE_TIMEOUT) else 0,
        debug=props.get(KEY_DEBUG, "").lower() == "true",
    )


def load_config(path, listen_port: int) -> RelayConfig:
    try:
        with open(path, "r", encoding="latin-1") as f:
            text = f.read()
    except OSError as e:
        raise ConfigError(f"cannot read configuration {path}: {e}") from e

    return build_config(parse_properties(text), listen_port)
