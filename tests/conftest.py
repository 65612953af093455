"""Shared fixtures for rootsftp tests."""

from __future__ import annotations

import pytest
from paramiko.message import Message
from paramiko.sftp import (
    CMD_ATTRS,
    CMD_DATA,
    CMD_HANDLE,
    CMD_NAME,
    CMD_NAMES,
    CMD_STATUS,
    int64,
)
from paramiko.sftp_attr import SFTPAttributes as WireAttributes

from rootsftp.sftp_server import SFTPServer


class FakeTransport:
    """The few Transport methods a subsystem handler touches."""

    def get_log_channel(self) -> str:
        return "rootsftp.test"

    def get_hexdump(self) -> bool:
        return False

    def _log(self, level: int, msg: str) -> None:
        pass


class FakeChannel:
    """Channel stand-in; optionally relays recv/send to a real socket."""

    def __init__(self, sock=None) -> None:
        self._transport = FakeTransport()
        self._sock = sock
        self.closed = False

    def get_transport(self) -> FakeTransport:
        return self._transport

    def get_name(self) -> str:
        return "chan-test"

    def recv(self, n: int) -> bytes:
        return self._sock.recv(n)

    def send(self, data: bytes) -> int:
        return self._sock.send(data)

    def close(self) -> None:
        self.closed = True
        if self._sock is not None:
            self._sock.close()


class Response:
    """A decoded server response."""

    def __init__(self, t: int, msg: Message) -> None:
        self.t = t
        self.code = None
        self.message = None
        self.handle = None
        self.data = None
        self.attrs = None
        self.names = None
        if t == CMD_STATUS:
            self.code = msg.get_int()
            self.message = msg.get_text()
        elif t == CMD_HANDLE:
            self.handle = msg.get_binary()
        elif t == CMD_DATA:
            self.data = msg.get_binary()
        elif t == CMD_ATTRS:
            self.attrs = WireAttributes._from_msg(msg)
        elif t == CMD_NAME:
            self.names = []
            for _ in range(msg.get_int()):
                filename = msg.get_text()
                longname = msg.get_text()
                self.names.append((filename, longname, WireAttributes._from_msg(msg)))

    def __repr__(self) -> str:
        return f"<Response {CMD_NAMES.get(self.t, self.t)} code={self.code} message={self.message!r}>"


class RecordingSFTPServer(SFTPServer):
    """SFTPServer that records responses instead of writing packets."""

    def __init__(self, root: str) -> None:
        super().__init__(FakeChannel(), "sftp", None, root)
        self.responses: list[tuple[int, Message]] = []
        self.next_request = 1

    def _send_packet(self, t, packet) -> None:
        self.responses.append((t, Message(packet.asbytes())))

    def request(self, t: int, *args) -> Response:
        """Dispatch one request and return its (single) response."""
        msg = Message()
        for item in args:
            if isinstance(item, int64):
                msg.add_int64(item)
            elif isinstance(item, int):
                msg.add_int(item)
            else:
                msg.add_string(item)
        request_number = self.next_request
        self.next_request += 1
        self._process(t, request_number, Message(msg.asbytes()))
        assert len(self.responses) == 1, self.responses
        t, reply = self.responses.pop()
        assert reply.get_int() == request_number
        return Response(t, reply)


@pytest.fixture
def root(tmp_path):
    """Served directory holding a single file, a.txt ("hi")."""
    served = tmp_path / "root"
    served.mkdir()
    (served / "a.txt").write_bytes(b"hi")
    return served


@pytest.fixture
def sftp(root) -> RecordingSFTPServer:
    return RecordingSFTPServer(str(root))
