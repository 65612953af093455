"""Whole SFTP sessions over a socket pair, with paramiko's SFTPClient."""

import socket
import struct

import pytest
from paramiko import SFTPClient
from paramiko.sftp import CMD_OPEN, CMD_REMOVE

from rootsftp.sftp_server import SFTPServer

from conftest import FakeChannel


@pytest.fixture
def session(root):
    server_sock, client_sock = socket.socketpair()
    channel = FakeChannel(server_sock)
    server = SFTPServer(channel, "sftp", None, str(root))
    server.daemon = True
    yield server, channel, client_sock
    client_sock.close()
    server.join(5)


@pytest.fixture
def client(session):
    server, channel, client_sock = session
    server.start()
    sftp = SFTPClient(FakeChannel(client_sock))
    yield sftp
    sftp.close()


class TestSession:
    def test_browse_and_transfer(self, client, root):
        assert client.normalize(".") == "/"
        assert client.listdir() == ["a.txt"]

        with client.open("/a.txt", "r") as f:
            assert f.read() == b"hi"

        with client.open("/upload.bin", "w") as f:
            f.write(b"x" * 100000)
        assert (root / "upload.bin").read_bytes() == b"x" * 100000

        with client.open("upload.bin", "a") as f:
            f.write(b"tail")
        assert (root / "upload.bin").stat().st_size == 100004

        client.rename("/upload.bin", "/moved.bin")
        assert sorted(client.listdir("/")) == ["a.txt", "moved.bin"]
        client.remove("moved.bin")
        assert client.listdir(".") == ["a.txt"]

    def test_listdir_attr(self, client, root):
        (root / "sub").mkdir()
        entries = {attr.filename: attr for attr in client.listdir_attr("/")}
        assert entries["a.txt"].st_size == 2
        assert entries["sub"].longname.startswith("drwxrwxrwx")

    def test_errors(self, client):
        with pytest.raises(IOError):
            client.open("/missing.txt", "r")
        with pytest.raises(IOError):
            client.remove("/missing.txt")
        with pytest.raises(IOError):
            client.stat("/a.txt")
        with pytest.raises(IOError):
            client.mkdir("/sub")
        # the session survives failed requests
        assert client.listdir() == ["a.txt"]

    def test_handler_exception_reports_failure(self, session):
        server, channel, client_sock = session

        def explode(request_number, msg):
            raise RuntimeError("boom")

        server._handlers[CMD_REMOVE] = explode
        server.start()
        sftp = SFTPClient(FakeChannel(client_sock))
        with pytest.raises(IOError):
            sftp.remove("/a.txt")
        assert sftp.listdir() == ["a.txt"]
        sftp.close()

    def test_end_of_session_closes_everything(self, session, root):
        server, channel, client_sock = session
        server.start()
        sftp = SFTPClient(FakeChannel(client_sock))
        f = sftp.open("/pending.txt", "w")
        f.write(b"data")
        f.flush()
        assert len(server.handles) == 1
        sftp.close()
        server.join(5)
        assert not server.is_alive()
        assert channel.closed
        assert len(server.handles) == 0
        assert (root / "pending.txt").read_bytes() == b"data"

    def test_rejects_requests_before_init(self, session):
        server, channel, client_sock = session
        server.start()
        client_sock.sendall(struct.pack(">IB", 5, CMD_OPEN) + b"\x00\x00\x00\x01")
        client_sock.settimeout(5)
        assert client_sock.recv(16) == b""
        server.join(5)
        assert channel.closed
