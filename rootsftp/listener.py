"""
TCP listener that hands each accepted connection to its own paramiko
`Transport`, with the SFTP subsystem attached.
"""
import socket
import threading

from paramiko import ECDSAKey, Ed25519Key, RSAKey, Transport
from paramiko.common import DEBUG, ERROR, INFO
from paramiko.ssh_exception import PasswordRequiredException, SSHException
from paramiko import util

from rootsftp.server import SFTPServerAuth
from rootsftp.sftp_server import SFTPServer

_HOST_KEY_CLASSES = (Ed25519Key, ECDSAKey, RSAKey)


def load_host_key(filename, password=None):
    """
    Load a private host key, trying each supported key type in turn.

    :param str filename: path of the private key file.
    :param str password: passphrase, if the key is encrypted.
    :return: a `paramiko.PKey`.

    :raises: ``IOError`` -- if the file can't be read.
    :raises: `paramiko.SSHException` -- if the file holds no usable key (or
        is encrypted and no passphrase was given).
    """
    errors = []
    for key_class in _HOST_KEY_CLASSES:
        try:
            return key_class.from_private_key_file(filename, password=password)
        except PasswordRequiredException:
            raise
        except (SSHException, ValueError) as e:
            errors.append("{}: {}".format(key_class.__name__, e))
    raise SSHException(
        "Unable to load host key from {} ({})".format(filename, "; ".join(errors))
    )


class SFTPListener(util.ClosingContextManager):
    """
    Serves the SFTP subsystem to every client that connects to
    ``hostname:port``.  `serve_forever` blocks the calling thread; each SSH
    connection then runs in the transport's own thread, and each SFTP session
    in the subsystem thread paramiko starts for it.

    Instances of this class may be used as context managers.
    """

    # seconds between checks for `close` while waiting in accept()
    _accept_timeout = 0.5

    def __init__(self, root, host_key, credentials, hostname="127.0.0.1", port=0):
        """
        :param str root: directory to serve (must exist).
        :param .PKey host_key: the server's private host key.
        :param credentials: iterable of ``(username, password)`` pairs.
        :param str hostname: address to bind.
        :param int port: port to bind; ``0`` picks a free one.
        """
        self.root = str(root)
        self.host_key = host_key
        self.server = SFTPServerAuth(credentials)
        self.hostname = hostname
        self.port = port
        self.logger = util.get_logger("rootsftp.listener")
        self._socket = None
        self._closed = threading.Event()
        self._lock = threading.Lock()
        self._transports = []

    def _log(self, level, msg):
        self.logger.log(level, msg)

    def bind(self):
        """
        Bind and listen.  Returns the port actually bound.
        """
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.hostname, self.port))
            sock.listen(100)
        except OSError:
            sock.close()
            raise
        sock.settimeout(self._accept_timeout)
        self._socket = sock
        self.port = sock.getsockname()[1]
        return self.port

    def serve_forever(self):
        """
        Accept connections until `close` is called.
        """
        if self._socket is None:
            self.bind()
        self._log(INFO, "SFTP server listening on {}:{}".format(self.hostname, self.port))
        while not self._closed.is_set():
            try:
                conn, address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError:
                if self._closed.is_set():
                    break
                raise
            self._log(INFO, "Client connected from {}:{}".format(*address[:2]))
            self._start_transport(conn)

    def close(self):
        """
        Stop accepting connections and close every live transport.
        """
        self._closed.set()
        if self._socket is not None:
            self._socket.close()
        with self._lock:
            transports, self._transports = self._transports, []
        for transport in transports:
            transport.close()

    def _start_transport(self, conn):
        transport = Transport(conn)
        transport.set_log_channel("rootsftp.transport")
        transport.add_server_key(self.host_key)
        transport.set_subsystem_handler("sftp", SFTPServer, self.root)
        try:
            # with an event, negotiation continues in the transport thread
            transport.start_server(event=threading.Event(), server=self.server)
        except SSHException as e:
            self._log(ERROR, "Unable to start SSH session: {}".format(e))
            transport.close()
            return
        with self._lock:
            self._transports = [t for t in self._transports if t.is_active()]
            self._transports.append(transport)
            live = len(self._transports)
        self._log(DEBUG, "{} live transport(s)".format(live))
