import queue
import socket
import threading

import pytest

from common.errors import FramingError
from common.framing import encode_packet, read_packet
from relay.listener import Listener
from relay_helpers import make_config


@pytest.fixture
def listener_for():
    made = []

    def factory(ports, **kw):
        lst = Listener(make_config(ports, **kw), host="127.0.0.1")
        lst.open()
        made.append(lst)
        return lst

    try:
        yield factory
    finally:
        for lst in made:
            lst.close()


def test_accept_timeout_is_logged_and_not_fatal(peers, listener_for, capsys):
    (e0,) = peers(1)
    lst = listener_for([e0.port], listen_timeout_ms=100)

    assert lst.accept_once() is None
    assert lst.accept_once() is None

    out = capsys.readouterr().out
    assert out.count("event=ACCEPT_TIMEOUT") == 2
    assert "timeout_ms=100" in out


def test_accept_runs_session_to_termination(peers, listener_for):
    (e0,) = peers(1)
    lst = listener_for([e0.port], listen_timeout_ms=2000)
    results = queue.Queue()
    t = threading.Thread(target=lambda: results.put(lst.accept_once()), daemon=True)
    t.start()

    client = socket.create_connection(("127.0.0.1", lst.port), timeout=2.0)
    try:
        c0 = e0.accept()
        packet = encode_packet(b"\xAA\xBB", 0x02, b"here")
        client.sendall(packet.raw)
        assert read_packet(c0) == packet
    finally:
        client.close()

    session = results.get(timeout=3.0)
    assert isinstance(session.cause, FramingError)
    assert session.packets == 1


def test_second_client_waits_for_first_session(peers, listener_for):
    (e0,) = peers(1)
    lst = listener_for([e0.port], listen_timeout_ms=2000)

    sessions = []
    t = threading.Thread(
        target=lambda: sessions.extend(lst.accept_once() for _ in range(2)),
        daemon=True,
    )
    t.start()

    first = socket.create_connection(("127.0.0.1", lst.port), timeout=2.0)
    second = None
    try:
        c_first = e0.accept()

        # accepted by the kernel backlog, but not served yet
        second = socket.create_connection(("127.0.0.1", lst.port), timeout=2.0)
        waiting = encode_packet(b"\x00\x02", 0x02, b"second")
        second.sendall(waiting.raw)
        with pytest.raises(queue.Empty):
            e0.accept(timeout=0.3)

        first.close()
        assert c_first.recv(1) == b""

        c_second = e0.accept()
        assert read_packet(c_second) == waiting
    finally:
        first.close()
        if second is not None:
            second.close()
        t.join(timeout=3.0)

    assert len(sessions) == 2
    assert all(s.cause is not None for s in sessions)


def test_client_socket_gets_source_timeout(peers, listener_for):
    (e0,) = peers(1)
    lst = listener_for([e0.port], listen_timeout_ms=2000, source_timeout_ms=150)
    results = queue.Queue()
    t = threading.Thread(target=lambda: results.put(lst.accept_once()), daemon=True)
    t.start()

    client = socket.create_connection(("127.0.0.1", lst.port), timeout=2.0)
    try:
        e0.accept()
        session = results.get(timeout=3.0)
        assert isinstance(session.cause, TimeoutError)
    finally:
        client.close()


def test_bind_failure_raises(peers, listener_for):
    (e0,) = peers(1)
    taken = listener_for([e0.port])

    clash = Listener(make_config([e0.port], listen_port=taken.port), host="127.0.0.1")
    with pytest.raises(OSError):
        clash.open()
    assert clash.sock is None


class FlakyAccept:
    """Listen socket wrapper whose first accept() fails."""

    def __init__(self, sock, error):
        self.sock = sock
        self.error = error
        self.calls = 0

    def accept(self):
        self.calls += 1
        if self.calls == 1:
            raise self.error
        if self.calls == 2:
            return self.sock.accept()
        raise KeyboardInterrupt

    def __getattr__(self, name):
        return getattr(self.sock, name)


def test_accept_error_is_logged_and_loop_continues(peers, listener_for, capsys):
    (e0,) = peers(1)
    lst = listener_for([e0.port], listen_timeout_ms=2000)
    flaky = FlakyAccept(lst.sock, ConnectionAbortedError(103, "Software caused connection abort"))
    lst.sock = flaky

    client = socket.create_connection(("127.0.0.1", lst.port), timeout=2.0)
    client.close()
    try:
        with pytest.raises(KeyboardInterrupt):
            lst.serve_forever()
    finally:
        lst.sock = flaky.sock

    assert flaky.calls == 3
    out = capsys.readouterr().out
    assert "event=ACCEPT_FAIL" in out
    assert "event=SESSION_END" in out
