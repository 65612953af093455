"""
Server-side state behind an SFTP handle: an open file or an open folder.
"""
import os

from paramiko.sftp import SFTP_FAILURE, SFTP_OK
from paramiko.util import ClosingContextManager

from rootsftp.sftp_attr import SFTPAttributes

KIND_FILE = "file"
KIND_FOLDER = "folder"

# maximum number of entries returned by one READDIR response
READDIR_BATCH = 100

_OPEN_FLAGS = {
    "r": os.O_RDONLY,
    "w": os.O_WRONLY | os.O_CREAT | os.O_TRUNC,
    "a": os.O_WRONLY | os.O_CREAT | os.O_APPEND,
}
_FDOPEN_MODES = {"r": "rb", "w": "wb", "a": "ab"}


class SFTPHandle(ClosingContextManager):
    """
    Object representing a handle to an open file (or folder) in the SFTP
    server.  Each handle has an opaque byte-string name, assigned by the
    `.HandleTable`, that the client uses to refer to it.

    ``real_path`` is the sandboxed local path; ``client_path`` is the
    client-visible path the handle was opened with, kept for log and error
    messages.

    Instances of this class may be used as context managers.
    """

    kind = None

    def __init__(self, real_path, client_path):
        self.real_path = real_path
        self.client_path = client_path
        self.__name = None

    def close(self):
        """
        Release whatever OS resources the handle holds.  The base
        implementation holds none.
        """
        pass

    def stat(self):
        """
        Return an `.SFTPAttributes` object for the path behind this handle,
        or an error code.  The path is re-opened read-only and stat'ed through
        the new descriptor, so the result reflects what is on disk now.

        :return:
            an attributes object for the given file, or an SFTP error code
            (like ``SFTP_FAILURE``).
        :rtype: `.SFTPAttributes` or error code
        """
        try:
            fd = os.open(self.real_path, os.O_RDONLY)
            try:
                st = os.fstat(fd)
            finally:
                os.close(fd)
        except OSError as e:
            return SFTPServer.convert_errno(e.errno)
        return SFTPAttributes.from_stat(st, os.path.basename(self.client_path))

    def _set_name(self, name):
        self.__name = name

    def _get_name(self):
        return self.__name

    def __repr__(self):
        return "<{} {} {!r}>".format(
            type(self).__name__, self.kind, self.client_path
        )


class SFTPFileHandle(SFTPHandle):
    """
    Handle for a file opened in exactly one direction.  A file opened for
    reading keeps its stream in ``readfile``; one opened for writing (``"w"``)
    or appending (``"a"``) keeps it in ``writefile``.
    """

    kind = KIND_FILE

    def __init__(self, real_path, client_path, mode, exclusive=False):
        """
        Open ``real_path`` on the local filesystem.

        :param str real_path: sandboxed local path.
        :param str client_path: client-visible path.
        :param str mode: ``"r"``, ``"w"`` (truncate) or ``"a"`` (append).
        :param bool exclusive: fail if the file already exists.

        :raises: ``OSError`` -- if the file could not be opened.
        """
        super().__init__(real_path, client_path)
        self.mode = mode
        self.__tell = None
        flags = _OPEN_FLAGS[mode]
        if exclusive:
            flags |= os.O_EXCL
        fd = os.open(real_path, flags, 0o666)
        try:
            f = os.fdopen(fd, _FDOPEN_MODES[mode])
        except OSError:
            os.close(fd)
            raise
        if mode == "r":
            self.readfile = f
        else:
            self.writefile = f

    def close(self):
        """
        Close the underlying stream.  A write stream is flushed first, so
        errors from buffered data surface here.
        """
        readfile = getattr(self, "readfile", None)
        if readfile is not None:
            readfile.close()
        writefile = getattr(self, "writefile", None)
        if writefile is not None:
            writefile.close()

    def read(self, offset, length):
        """
        Read up to ``length`` bytes from the stream.  Reads are served in
        stream order: ``offset`` is accepted for the protocol's sake but the
        data always continues where the previous read stopped.

        :param offset: position the client asked for (not honoured).
        :param int length: number of bytes to attempt to read.
        :return: the `bytes` read (empty at EOF), or an error code `int`.
        """
        readfile = getattr(self, "readfile", None)
        if readfile is None:
            return SFTP_FAILURE
        try:
            return readfile.read(length)
        except IOError as e:
            return SFTPServer.convert_errno(e.errno)

    def write(self, offset, data):
        """
        Write ``data`` into this file at position ``offset``.  In append mode
        the offset is ignored and data always lands at the end of the file.
        This method cannot do a partial write: it writes all of ``data`` or
        returns an error.

        :param offset: position in the file to start writing at.
        :param bytes data: data to write into the file.
        :return: an SFTP status code like ``SFTP_OK``.
        """
        writefile = getattr(self, "writefile", None)
        if writefile is None:
            return SFTP_FAILURE
        try:
            if self.mode != "a":
                if self.__tell is None:
                    self.__tell = writefile.tell()
                if offset != self.__tell:
                    writefile.seek(offset)
                    self.__tell = offset
            writefile.write(data)
            writefile.flush()
        except IOError as e:
            self.__tell = None
            return SFTPServer.convert_errno(e.errno)
        if self.__tell is not None:
            self.__tell += len(data)
        return SFTP_OK


class SFTPFolderHandle(SFTPHandle):
    """
    Handle for an open folder.  It records which entry names have already
    been sent, so that successive READDIR requests return only new entries
    and eventually nothing at all.
    """

    kind = KIND_FOLDER

    def __init__(self, real_path, client_path):
        super().__init__(real_path, client_path)
        self._emitted = set()

    def _get_next_files(self):
        """
        List the folder afresh and return `.SFTPAttributes` for up to
        ``READDIR_BATCH`` entries not returned before, marking them returned.
        Entries that can't be stat'ed are left out.  An empty list means the
        listing is exhausted.

        :raises: ``OSError`` -- if the folder itself can't be listed.
        """
        batch = []
        for filename in sorted(os.listdir(self.real_path)):
            if filename in self._emitted:
                continue
            try:
                st = os.stat(os.path.join(self.real_path, filename))
            except OSError:
                # removed since listdir, or unstattable (symlink loop,
                # permissions); never marked emitted
                continue
            self._emitted.add(filename)
            batch.append(SFTPAttributes.from_stat(st, filename))
            if len(batch) >= READDIR_BATCH:
                break
        return batch


from rootsftp.sftp_server import SFTPServer  # noqa: E402
