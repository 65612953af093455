"""
`.SFTPServerAuth` is the SSH-level half of the server: it decides who may log
in and which channel requests are allowed.
"""
from paramiko import ServerInterface
from paramiko.common import (
    AUTH_FAILED,
    AUTH_SUCCESSFUL,
    DEBUG,
    INFO,
    OPEN_FAILED_ADMINISTRATIVELY_PROHIBITED,
    OPEN_SUCCEEDED,
)
from paramiko import util


class SFTPServerAuth(ServerInterface):
    """
    `paramiko.ServerInterface` for the SFTP server.  Clients authenticate with
    one of a fixed set of username/password pairs and may then open
    ``session`` channels to request the ``sftp`` subsystem.  Everything else
    a client may ask of the connection (shells, commands, port forwarding,
    global requests) is logged and refused.
    """

    def __init__(self, credentials):
        """
        :param credentials: iterable of ``(username, password)`` pairs.
        """
        self._credentials = [(util.b(u), util.b(p)) for u, p in credentials]
        self.logger = util.get_logger("rootsftp.server")

    def _log(self, level, msg):
        self.logger.log(level, msg)

    def get_allowed_auths(self, username):
        return "password"

    def check_auth_password(self, username, password):
        user = util.b(username)
        secret = util.b(password)
        granted = False
        # every pair is compared so the time taken doesn't reveal which
        # (if any) username matched
        for allowed_user, allowed_password in self._credentials:
            user_ok = util.constant_time_bytes_eq(allowed_user, user)
            password_ok = util.constant_time_bytes_eq(allowed_password, secret)
            granted |= user_ok & password_ok
        if not granted:
            self._log(INFO, "User denied access: {}".format(username))
            return AUTH_FAILED
        self._log(INFO, "User {} authenticated.".format(username))
        return AUTH_SUCCESSFUL

    def check_channel_request(self, kind, chanid):
        if kind == "session":
            return OPEN_SUCCEEDED
        self._log(DEBUG, "Refused {!r} channel {}".format(kind, chanid))
        return OPEN_FAILED_ADMINISTRATIVELY_PROHIBITED

    def check_channel_subsystem_request(self, channel, name):
        self._log(DEBUG, "Subsystem {!r} requested on channel {}".format(name, channel.get_id()))
        return super().check_channel_subsystem_request(channel, name)

    def _no_handler(self, event):
        self._log(
            DEBUG,
            "The {} event does not have an explicitly defined handler at "
            "this time, but was just called".format(event),
        )

    def check_channel_pty_request(
        self, channel, term, width, height, pixelwidth, pixelheight, modes
    ):
        self._no_handler("pty-req")
        return False

    def check_channel_shell_request(self, channel):
        self._no_handler("shell")
        return False

    def check_channel_exec_request(self, channel, command):
        self._no_handler("exec")
        return False

    def check_channel_direct_tcpip_request(self, chanid, origin, destination):
        self._no_handler("direct-tcpip")
        return OPEN_FAILED_ADMINISTRATIVELY_PROHIBITED

    def check_port_forward_request(self, address, port):
        self._no_handler("tcpip-forward")
        return False

    def check_global_request(self, kind, msg):
        self._no_handler("global request {!r}".format(kind))
        return False
