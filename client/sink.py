"""
client.sink

A downstream consumer for trying the relay by hand. Accepts connections one
at a time and logs every framed packet. With --reply, command packets are
answered with that payload under the request's header and protocol id.
"""

import socket
import sys

from common.errors import FramingError
from common.framing import encode_packet, read_packet
from common.log import log
from relay.dispatcher import needs_reply


def make_reply(request, payload):
    return encode_packet(request.header, request.protocol_id, payload)


def serve_connection(conn, addr, reply_payload=None):
    """Handle one relay connection until it closes. Returns the packets seen."""
    seen = []
    while True:
        try:
            packet = read_packet(conn)
        except FramingError:
            log("sink", addr[1], "CLOSED", packets=len(seen))
            return seen

        seen.append(packet)
        log("sink", addr[1], "PACKET", protocol=f"0x{packet.protocol_id:02X}", hex=packet.hex())

        if reply_payload is not None and needs_reply(packet.protocol_id):
            reply = make_reply(packet, reply_payload)
            conn.sendall(reply.raw)
            log("sink", addr[1], "REPLY", hex=reply.hex())


def main(port, reply_payload=None):
    srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    srv.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    srv.bind(("0.0.0.0", port))
    srv.listen(1)
    print(f"[sink] Listening on port {port}")

    try:
        while True:
            conn, addr = srv.accept()
            with conn:
                try:
                    serve_connection(conn, addr, reply_payload)
                except OSError as e:
                    log("sink", addr[1], "ERROR", level="ERROR", error=e)
    finally:
        srv.close()


if __name__ == "__main__":
    args = sys.argv[1:]
    reply = None
    if "--reply" in args:
        i = args.index("--reply")
        reply = bytes.fromhex(args[i + 1])
        args = args[:i] + args[i + 2:]

    if len(args) != 1:
        print("Usage: python -m client.sink <PORT> [--reply HEX]")
        sys.exit(1)

    main(int(args[0]), reply)
