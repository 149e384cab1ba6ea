"""
common.errors

Relay error kinds. Timeouts are not listed here: sockets raise the builtin
TimeoutError (socket.timeout is an alias of it) and it is passed through as-is.
"""


class RelayError(Exception):
    """Base class for every relay-level error."""


class ConfigError(RelayError):
    """The configuration file is missing, unreadable or incomplete."""


class FramingError(RelayError):
    """The stream ended before a complete packet was read."""


class ConnectError(RelayError):
    """A downstream connection could not be established."""


class TransportError(RelayError):
    """A read or write failed on an already established socket."""
