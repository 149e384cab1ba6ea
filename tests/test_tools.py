import socket
import threading

from client.device import _parse_args, exchange
from client.sink import make_reply, serve_connection
from common.framing import encode_packet


def test_device_and_sink_exchange():
    device_side, sink_side = socket.socketpair()
    device_side.settimeout(2.0)
    seen = []
    t = threading.Thread(
        target=lambda: seen.extend(serve_connection(sink_side, ("127.0.0.1", 7001), b"\x55\x66")),
        daemon=True,
    )
    t.start()
    try:
        command = encode_packet(b"\xAA\xBB", 0x05, b"\x11\x22\x33")
        reply = exchange(device_side, command)
        assert reply.raw == bytes.fromhex("AABB0500025566")

        gps = encode_packet(b"\xAA\xBB", 0x02, b"fix")
        assert exchange(device_side, gps) is None
    finally:
        device_side.close()
        t.join(timeout=2.0)
        sink_side.close()

    assert [p.protocol_id for p in seen] == [0x05, 0x02]


def test_make_reply_keeps_header_and_protocol():
    request = encode_packet(b"\x01\x02", 0x33, b"req")
    reply = make_reply(request, b"ok")
    assert reply.header == b"\x01\x02"
    assert reply.protocol_id == 0x33
    assert reply.payload == b"ok"


def test_device_args():
    host, port, protocol_id, payload, header = _parse_args(
        ["127.0.0.1", "9000", "81", "DEADBEEF", "--header", "0102"]
    )
    assert (host, port, protocol_id) == ("127.0.0.1", 9000, 0x81)
    assert payload == b"\xDE\xAD\xBE\xEF"
    assert header == b"\x01\x02"
