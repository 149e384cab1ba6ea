import socket
import sys

from common.framing import encode_packet, read_packet
from relay.dispatcher import needs_reply

DEFAULT_HEADER = b"\xAA\xBB"


def exchange(sock, packet, expect_reply=None):
    """
    Send one packet and, for command traffic, wait for the framed reply.
    Returns the reply Packet or None.
    """
    if expect_reply is None:
        expect_reply = needs_reply(packet.protocol_id)

    sock.sendall(packet.raw)
    if not expect_reply:
        return None
    return read_packet(sock)


class Device:
    """A stand-in for the tracking device: one TCP connection to the relay."""

    def __init__(self, host, port, header=DEFAULT_HEADER, timeout=2.0):
        self.addr = (host, port)
        self.header = header
        self.sock = socket.create_connection(self.addr, timeout=timeout)

    def send(self, protocol_id, payload=b""):
        packet = encode_packet(self.header, protocol_id, payload)
        print(f"[device] -> {packet.hex()}")
        reply = exchange(self.sock, packet)
        if reply is not None:
            print(f"[device] <- {reply.hex()}")
        return reply

    def close(self):
        self.sock.close()


def _parse_args(args):
    header = DEFAULT_HEADER
    if "--header" in args:
        i = args.index("--header")
        header = bytes.fromhex(args[i + 1])
        args = args[:i] + args[i + 2:]

    if len(args) != 4:
        raise ValueError("expected HOST PORT PROTOCOL PAYLOAD_HEX")

    host = args[0]
    port = int(args[1])
    protocol_id = int(args[2], 16)
    payload = bytes.fromhex(args[3])
    return host, port, protocol_id, payload, header


if __name__ == "__main__":
    try:
        host, port, protocol_id, payload, header = _parse_args(sys.argv[1:])
    except (ValueError, IndexError) as e:
        print(f"Error: {e}")
        print("Usage: python -m client.device <HOST> <PORT> <PROTOCOL_HEX> <PAYLOAD_HEX> [--header HEX]")
        sys.exit(1)

    device = Device(host, port, header=header)
    try:
        device.send(protocol_id, payload)
    finally:
        device.close()
