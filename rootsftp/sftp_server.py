"""
Server-mode SFTP support, confined to a single root directory.
"""
import errno
import os
import struct

from paramiko.common import DEBUG, ERROR, INFO, WARNING
from paramiko.message import Message
from paramiko.server import SubsystemHandler
from paramiko.sftp import BaseSFTP, SFTPError, int64
from paramiko.sftp import (
    CMD_ATTRS,
    CMD_CLOSE,
    CMD_DATA,
    CMD_FSTAT,
    CMD_HANDLE,
    CMD_INIT,
    CMD_LSTAT,
    CMD_NAME,
    CMD_NAMES,
    CMD_OPEN,
    CMD_OPENDIR,
    CMD_READ,
    CMD_READDIR,
    CMD_READLINK,
    CMD_REALPATH,
    CMD_REMOVE,
    CMD_RENAME,
    CMD_STATUS,
    CMD_VERSION,
    CMD_WRITE,
    SFTP_DESC,
    SFTP_EOF,
    SFTP_FAILURE,
    SFTP_FLAG_APPEND,
    SFTP_FLAG_CREATE,
    SFTP_FLAG_EXCL,
    SFTP_FLAG_READ,
    SFTP_FLAG_TRUNC,
    SFTP_FLAG_WRITE,
    SFTP_NO_SUCH_FILE,
    SFTP_OK,
    SFTP_OP_UNSUPPORTED,
)
from paramiko import util

from rootsftp.handle_table import HandleTable
from rootsftp.sandbox import PathSandbox
from rootsftp.sftp_attr import SFTPAttributes

SFTP_VERSION = 3

# largest payload returned by a single READ
MAX_READ_LENGTH = 256 * 1024

_WRITE_FLAGS = SFTP_FLAG_WRITE | SFTP_FLAG_CREATE | SFTP_FLAG_TRUNC
_APPEND_FLAGS = SFTP_FLAG_WRITE | SFTP_FLAG_CREATE | SFTP_FLAG_APPEND

# the only flag combinations a client may open with ("r", "r+", "w", "w+",
# "a", "a+"); "r+" is served read-only
_OPEN_MODES = {
    SFTP_FLAG_READ: "r",
    SFTP_FLAG_READ | SFTP_FLAG_WRITE: "r",
    _WRITE_FLAGS: "w",
    _WRITE_FLAGS | SFTP_FLAG_READ: "w",
    _APPEND_FLAGS: "a",
    _APPEND_FLAGS | SFTP_FLAG_READ: "a",
}


class SFTPServer(BaseSFTP, SubsystemHandler):
    """
    Server-side SFTP subsystem serving the files below one root directory.
    Since this is a `paramiko.server.SubsystemHandler`, it is meant to be set
    as the handler for ``"sftp"`` requests, with the root as extra argument::

        transport.set_subsystem_handler("sftp", SFTPServer, root)

    Every path a client sends goes through the session's `.PathSandbox`
    before it reaches the filesystem, and every open file or folder lives in
    the session's `.HandleTable`.  Each request gets exactly one response.
    """

    def __init__(self, channel, name, server, root):
        """
        The constructor for SFTPServer is meant to be called from within the
        `paramiko.transport.Transport` as a subsystem handler.

        :param .Channel channel: channel passed from the transport.
        :param str name: name of the requested subsystem.
        :param .ServerInterface server:
            the server object associated with this channel and subsystem
        :param str root: the directory to serve.
        """
        BaseSFTP.__init__(self)
        SubsystemHandler.__init__(self, channel, name, server)
        transport = channel.get_transport()
        self._channel_name = str(channel.get_name())
        self.logger = util.get_logger(transport.get_log_channel() + ".sftp")
        self.ultra_debug = transport.get_hexdump()
        self.sandbox = PathSandbox(root)
        self.handles = HandleTable()
        self._handlers = self._bind_handlers()

    def _log(self, level, msg):
        if issubclass(type(msg), list):
            for m in msg:
                super()._log(level, "[chan " + self._channel_name + "] " + m)
        else:
            super()._log(level, "[chan " + self._channel_name + "] " + msg)

    def start_subsystem(self, name, transport, channel):
        self.sock = channel
        self._log(DEBUG, "Started sftp server on channel {!r}".format(channel))
        try:
            version = self._send_server_version()
        except (EOFError, SFTPError) as e:
            self._log(WARNING, "SFTP negotiation failed: {}".format(e))
            return
        self._log(INFO, "Client SFTP session started (version {}).".format(version))
        while True:
            try:
                t, data = self._read_packet()
            except EOFError:
                self._log(DEBUG, "EOF -- end of session")
                return
            except Exception as e:
                self._log(DEBUG, "Exception on channel: " + str(e))
                self._log(DEBUG, util.tb_strings())
                return
            msg = Message(data)
            request_number = msg.get_int()
            try:
                self._process(t, request_number, msg)
            except Exception as e:
                self._log(ERROR, "Exception in server processing: " + str(e))
                self._log(DEBUG, util.tb_strings())
                # send some kind of failure message, at least
                try:
                    self._send_status(request_number, SFTP_FAILURE)
                except Exception as e:
                    self._log(DEBUG, "Unable to report failure: " + str(e))

    def finish_subsystem(self):
        super().finish_subsystem()
        # close any handles that were left open
        # (so we can return them to the OS quickly)
        for handle, e in self.handles.close_all():
            self._log(WARNING, "Error closing {!r}: {}".format(handle, e))
        self._log(INFO, "SFTP session ended.")

    @staticmethod
    def convert_errno(e):
        """
        Convert an errno value (as from an ``OSError``) into one of the SFTP
        status codes this server reports.

        :param int e: an errno code, as from ``OSError.errno``.
        :return: ``SFTP_NO_SUCH_FILE`` or ``SFTP_FAILURE``.
        """
        if (e == errno.ENOENT) or (e == errno.ENOTDIR):
            return SFTP_NO_SUCH_FILE
        else:
            return SFTP_FAILURE

    # ...internals...

    def _send_server_version(self):
        # winscp will freak out if the server sends version info before the
        # client finishes sending INIT.
        t, data = self._read_packet()
        if t != CMD_INIT:
            raise SFTPError("Incompatible sftp protocol")
        version = struct.unpack(">I", data[:4])[0]
        msg = Message()
        msg.add_int(SFTP_VERSION)
        self._send_packet(CMD_VERSION, msg)
        return version

    def _response(self, request_number, t, *args):
        msg = Message()
        msg.add_int(request_number)
        for item in args:
            if isinstance(item, int64):
                msg.add_int64(item)
            elif isinstance(item, int):
                msg.add_int(item)
            elif isinstance(item, (str, bytes)):
                msg.add_string(item)
            elif type(item) is SFTPAttributes:
                item._pack(msg)
            else:
                raise Exception(
                    "unknown type for {!r} type {!r}".format(item, type(item))
                )
        self._send_packet(t, msg)

    def _send_status(self, request_number, code, desc=None):
        if desc is None:
            try:
                desc = SFTP_DESC[code]
            except IndexError:
                desc = "Unknown"
        # some clients expect a "language" tag at the end
        # (but don't mind it being blank)
        self._response(request_number, CMD_STATUS, code, desc, "")

    def _send_names(self, request_number, attrs):
        msg = Message()
        msg.add_int(request_number)
        msg.add_int(len(attrs))
        for attr in attrs:
            msg.add_string(attr.filename)
            msg.add_string(str(attr))
            attr._pack(msg)
        self._send_packet(CMD_NAME, msg)

    def _convert_pflags(self, pflags):
        """convert SFTP-style open() flags to an open mode ("r", "w", "a" or
        None if unsupported) and whether the file must not exist yet"""
        exclusive = bool(pflags & SFTP_FLAG_EXCL)
        mode = _OPEN_MODES.get(pflags & ~SFTP_FLAG_EXCL)
        if exclusive and mode == "r":
            mode = None
        return mode, exclusive

    def _handle_str(self, name):
        return util.safe_string(name).decode("ascii")

    # ...dispatch...

    def _bind_handlers(self):
        handlers = {
            CMD_OPEN: self._open,
            CMD_CLOSE: self._close,
            CMD_READ: self._read,
            CMD_WRITE: self._write,
            CMD_FSTAT: self._fstat,
            CMD_OPENDIR: self._opendir,
            CMD_READDIR: self._readdir,
            CMD_REMOVE: self._remove,
            CMD_RENAME: self._rename,
            CMD_REALPATH: self._realpath,
            CMD_READLINK: self._no_handler("readlink"),
            CMD_LSTAT: self._no_handler("lstat"),
        }
        for t, name in CMD_NAMES.items():
            if t not in handlers:
                handlers[t] = self._no_handler(name)
        return handlers

    def _no_handler(self, name):
        def handler(request_number, msg):
            self._log(
                DEBUG,
                "The {} request does not have an explicitly defined handler "
                "at this time, but was just called".format(name),
            )
            self._send_status(request_number, SFTP_OP_UNSUPPORTED)

        return handler

    def _process(self, t, request_number, msg):
        self._log(DEBUG, "Request: {}".format(CMD_NAMES.get(t, t)))
        handler = self._handlers.get(t)
        if handler is None:
            handler = self._no_handler("type {}".format(t))
        handler(request_number, msg)

    # ...handlers...

    def _open(self, request_number, msg):
        path = msg.get_text()
        pflags = msg.get_int()
        # any attributes that follow are not used
        client_path = self.sandbox.normalize(path)
        self._log(DEBUG, "In open for {} (flags {:#x})".format(client_path, pflags))
        mode, exclusive = self._convert_pflags(pflags)
        if mode is None:
            self._send_status(
                request_number,
                SFTP_OP_UNSUPPORTED,
                "Only read, write, and append mode are supported.",
            )
            return
        real_path = self.sandbox.resolve(path)
        if mode == "r" and not os.path.exists(real_path):
            self._send_status(
                request_number,
                SFTP_NO_SUCH_FILE,
                "File does not exist " + client_path,
            )
            return
        try:
            handle = SFTPFileHandle(real_path, client_path, mode, exclusive)
        except OSError as e:
            self._log(
                ERROR,
                "Unable to open {} in mode {!r}: {}".format(
                    client_path, mode, e.strerror
                ),
            )
            self._send_status(
                request_number,
                self.convert_errno(e.errno),
                "{}: {}".format(e.strerror, client_path),
            )
            return
        except ValueError as e:
            # e.g. an embedded NUL byte
            self._log(ERROR, "Unable to open {!r}: {}".format(client_path, e))
            self._send_status(
                request_number, SFTP_FAILURE, "{}: {!r}".format(e, client_path)
            )
            return
        name = self.handles.create(handle)
        self._log(
            DEBUG,
            "File {} opened in {!r} mode as {}".format(
                client_path, mode, self._handle_str(name)
            ),
        )
        self._response(request_number, CMD_HANDLE, name)

    def _close(self, request_number, msg):
        name = msg.get_binary()
        handle = self.handles.get(name)
        if handle is None:
            self._log(
                WARNING,
                "Cannot find handle {}, but saying we closed it, since it's "
                "not open".format(self._handle_str(name)),
            )
            self._send_status(request_number, SFTP_OK)
            return
        self._log(DEBUG, "Closing {!r}".format(handle))
        try:
            handle.close()
        except OSError as e:
            self._log(ERROR, "Error closing {!r}: {}".format(handle, e.strerror))
            self._send_status(
                request_number,
                SFTP_FAILURE,
                "{}: {}".format(e.strerror, handle.client_path),
            )
            return
        finally:
            self.handles.destroy(name)
        self._send_status(request_number, SFTP_OK)

    def _read(self, request_number, msg):
        name = msg.get_binary()
        offset = msg.get_int64()
        length = msg.get_int()
        handle = self.handles.get(name)
        if handle is None:
            self._log(ERROR, "No file was opened for {}".format(self._handle_str(name)))
            self._send_status(request_number, SFTP_FAILURE, "No file open.")
            return
        if handle.kind != KIND_FILE:
            self._send_status(
                request_number, SFTP_FAILURE, "Cannot read a directory, try a file."
            )
            return
        data = handle.read(offset, min(length, MAX_READ_LENGTH))
        if isinstance(data, bytes):
            # a zero-length request gets empty data, not EOF
            if len(data) == 0 and length > 0:
                self._send_status(request_number, SFTP_EOF)
            else:
                self._response(request_number, CMD_DATA, data)
        else:
            self._send_status(request_number, data)

    def _write(self, request_number, msg):
        name = msg.get_binary()
        offset = msg.get_int64()
        data = msg.get_binary()
        handle = self.handles.get(name)
        if handle is None:
            self._log(ERROR, "Requested to write a file that was never opened.")
            self._send_status(
                request_number,
                SFTP_FAILURE,
                "File must first be opened before writing.",
            )
            return
        if handle.kind != KIND_FILE:
            self._log(ERROR, "Requested to write to a directory instead of a file")
            self._send_status(
                request_number, SFTP_FAILURE, "Cannot write to directory, try a file."
            )
            return
        self._log(
            DEBUG,
            "Writing {} bytes at {} to {}".format(len(data), offset, handle.client_path),
        )
        self._send_status(request_number, handle.write(offset, data))

    def _fstat(self, request_number, msg):
        name = msg.get_binary()
        handle = self.handles.get(name)
        if handle is None:
            self._log(ERROR, "File not opened to stat.")
            self._send_status(request_number, SFTP_FAILURE, "File not opened to stat.")
            return
        attr = handle.stat()
        if isinstance(attr, SFTPAttributes):
            self._log(DEBUG, "Stats: {!r}".format(attr))
            self._response(request_number, CMD_ATTRS, attr)
        else:
            self._send_status(request_number, SFTP_FAILURE)

    def _opendir(self, request_number, msg):
        path = msg.get_text()
        client_path = self.sandbox.normalize(path)
        real_path = self.sandbox.resolve(path)
        self._log(DEBUG, "Opening directory: [{}]".format(client_path))
        if not os.path.exists(real_path):
            self._send_status(
                request_number, SFTP_NO_SUCH_FILE, "Dir does not exist " + client_path
            )
            return
        if not os.path.isdir(real_path):
            self._send_status(
                request_number, SFTP_FAILURE, "Not a directory " + client_path
            )
            return
        name = self.handles.create(SFTPFolderHandle(real_path, client_path))
        self._response(request_number, CMD_HANDLE, name)

    def _readdir(self, request_number, msg):
        name = msg.get_binary()
        handle = self.handles.get(name)
        if handle is None or handle.kind != KIND_FOLDER:
            self._log(ERROR, "Directory not opened to read.")
            self._send_status(request_number, SFTP_FAILURE)
            return
        try:
            flist = handle._get_next_files()
        except OSError as e:
            self._log(ERROR, "Error listing {}: {}".format(handle.client_path, e.strerror))
            self._send_status(request_number, SFTP_FAILURE, e.strerror)
            return
        if len(flist) == 0:
            self._log(DEBUG, "No more entries in {}".format(handle.client_path))
            self._send_status(request_number, SFTP_EOF)
            return
        self._log(DEBUG, "Found {} entries to return to client.".format(len(flist)))
        self._send_names(request_number, flist)

    def _rename(self, request_number, msg):
        oldpath = msg.get_text()
        newpath = msg.get_text()
        old_client_path = self.sandbox.normalize(oldpath)
        new_client_path = self.sandbox.normalize(newpath)
        self._log(
            INFO,
            "Renaming path. Old: [{}]. New: [{}]".format(old_client_path, new_client_path),
        )
        real_old = self.sandbox.resolve(oldpath)
        real_new = self.sandbox.resolve(newpath)
        if not os.path.exists(real_old):
            self._send_status(
                request_number,
                SFTP_NO_SUCH_FILE,
                "Path does not exist " + old_client_path,
            )
            return
        if self.sandbox.is_root(oldpath) or self.sandbox.is_root(newpath):
            self._send_status(
                request_number, SFTP_FAILURE, "Cannot rename the root directory."
            )
            return
        try:
            os.rename(real_old, real_new)
        except OSError as e:
            self._log(
                ERROR,
                "Failed to rename path: {} -> {}: {}".format(
                    old_client_path, new_client_path, e.strerror
                ),
            )
            self._send_status(request_number, SFTP_FAILURE, e.strerror)
            return
        except ValueError as e:
            self._log(
                ERROR,
                "Failed to rename path: {!r} -> {!r}: {}".format(
                    old_client_path, new_client_path, e
                ),
            )
            self._send_status(request_number, SFTP_FAILURE, str(e))
            return
        self._send_status(request_number, SFTP_OK)

    def _remove(self, request_number, msg):
        path = msg.get_text()
        client_path = self.sandbox.normalize(path)
        real_path = self.sandbox.resolve(path)
        self._log(INFO, "Removing path: [{}]".format(client_path))
        if not os.path.exists(real_path):
            self._send_status(
                request_number, SFTP_NO_SUCH_FILE, "Path does not exist " + client_path
            )
            return
        if self.sandbox.is_root(path):
            self._send_status(
                request_number, SFTP_FAILURE, "Cannot remove the root directory."
            )
            return
        try:
            os.unlink(real_path)
        except OSError as e:
            self._log(ERROR, "Error removing {}: {}".format(client_path, e.strerror))
            self._send_status(request_number, SFTP_FAILURE, e.strerror)
            return
        self._send_status(request_number, SFTP_OK)

    def _realpath(self, request_number, msg):
        path = msg.get_text()
        client_path = self.sandbox.normalize(path)
        real_path = self.sandbox.resolve(path)
        self._log(DEBUG, "In realpath for {}".format(client_path))
        try:
            attr = SFTPAttributes.from_stat(os.stat(real_path), client_path)
        except (OSError, ValueError):
            self._send_status(
                request_number, SFTP_FAILURE, "Not a valid path on this server."
            )
            return
        self._send_names(request_number, [attr])


from rootsftp.sftp_handle import KIND_FILE, KIND_FOLDER  # noqa: E402
from rootsftp.sftp_handle import SFTPFileHandle, SFTPFolderHandle  # noqa: E402
