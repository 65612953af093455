import stat

# permissions are not modelled; every listing line carries the same fields
_DIR_PERMISSIONS = "drwxrwxrwx"
_FILE_PERMISSIONS = "-rwxrwxrwx"
_LONGNAME_FIELDS = "  1 user group    11 Sep 27 12:00 "


class SFTPAttributes:
    """
    Representation of the attributes of a served file, as reported to the
    client in ``ATTRS`` and ``NAME`` responses.  It mirrors the object
    returned by `os.stat`, so it may have the following fields, with the same
    meanings:

        - ``st_size``
        - ``st_uid``
        - ``st_gid``
        - ``st_mode``

    Access and modification times are kept as integer epoch milliseconds in
    ``atime`` and ``mtime``; ``st_atime`` and ``st_mtime`` give the whole
    seconds that SFTP version 3 puts on the wire.  The filename, when known,
    is stored in ``filename``.
    """

    FLAG_SIZE = 1
    FLAG_UIDGID = 2
    FLAG_PERMISSIONS = 4
    FLAG_AMTIME = 8

    def __init__(self):
        """
        Create a new (empty) SFTPAttributes object.  All fields will be empty.
        """
        self._flags = 0
        self.st_size = None
        self.st_uid = None
        self.st_gid = None
        self.st_mode = None
        self.atime = None
        self.mtime = None
        self.filename = None

    @classmethod
    def from_stat(cls, obj, filename=None):
        """
        Create an `.SFTPAttributes` object from an existing ``stat`` object (an
        object returned by `os.stat`).

        :param object obj: an object returned by `os.stat` (or equivalent).
        :param str filename: the filename associated with this file.
        :return: new `.SFTPAttributes` object with the same attribute fields.
        """
        attr = cls()
        attr.st_size = obj.st_size
        attr.st_uid = obj.st_uid
        attr.st_gid = obj.st_gid
        attr.st_mode = obj.st_mode
        attr.atime = obj.st_atime_ns // 1000000
        attr.mtime = obj.st_mtime_ns // 1000000
        attr._flags = (
            cls.FLAG_SIZE
            | cls.FLAG_UIDGID
            | cls.FLAG_PERMISSIONS
            | cls.FLAG_AMTIME
        )
        if filename is not None:
            attr.filename = filename
        return attr

    @property
    def st_atime(self):
        if self.atime is None:
            return None
        return self.atime // 1000

    @property
    def st_mtime(self):
        if self.mtime is None:
            return None
        return self.mtime // 1000

    def as_dict(self):
        """
        Return the attributes as a plain dict with the keys ``mode``, ``uid``,
        ``gid``, ``size``, ``atime`` and ``mtime`` (times in epoch
        milliseconds).
        """
        return {
            "mode": self.st_mode,
            "uid": self.st_uid,
            "gid": self.st_gid,
            "size": self.st_size,
            "atime": self.atime,
            "mtime": self.mtime,
        }

    def is_dir(self):
        return self.st_mode is not None and stat.S_ISDIR(self.st_mode)

    def _pack(self, msg):
        msg.add_int(self._flags)
        if self._flags & self.FLAG_SIZE:
            msg.add_int64(self.st_size)
        if self._flags & self.FLAG_UIDGID:
            msg.add_int(self.st_uid)
            msg.add_int(self.st_gid)
        if self._flags & self.FLAG_PERMISSIONS:
            msg.add_int(self.st_mode)
        if self._flags & self.FLAG_AMTIME:
            msg.add_int(self.st_atime)
            msg.add_int(self.st_mtime)

    def _debug_str(self):
        out = "[ "
        if self.st_size is not None:
            out += "size={} ".format(self.st_size)
        if (self.st_uid is not None) and (self.st_gid is not None):
            out += "uid={} gid={} ".format(self.st_uid, self.st_gid)
        if self.st_mode is not None:
            out += "mode=" + oct(self.st_mode) + " "
        if (self.atime is not None) and (self.mtime is not None):
            out += "atime={} mtime={} ".format(self.atime, self.mtime)
        out += "]"
        return out

    def __repr__(self):
        return "<SFTPAttributes: {}>".format(self._debug_str())

    def __str__(self):
        """create the legacy ``ls -l`` style line sent as a longname"""
        if self.is_dir():
            ks = _DIR_PERMISSIONS
        else:
            ks = _FILE_PERMISSIONS
        filename = self.filename
        if filename is None:
            filename = "?"
        return ks + _LONGNAME_FIELDS + filename
