"""
Per-session registry of open SFTP handles.
"""
import threading
import uuid


class HandleTable:
    """
    Maps opaque handle names to the `.SFTPHandle` objects behind them.

    Names are random 128-bit identifiers (hex-encoded, so always 32 bytes)
    and are never reused while the previous holder is still registered.  The
    table only tracks handles: releasing the OS resources behind an entry is
    the caller's job, except in `close_all`.

    All methods are safe to call from several threads.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._handles = {}

    def create(self, handle):
        """
        Register ``handle`` under a fresh name and return that name.

        :param .SFTPHandle handle: an open file or folder handle.
        :return: the handle name, as `bytes`.
        """
        with self._lock:
            name = self._new_name()
            while name in self._handles:
                name = self._new_name()
            handle._set_name(name)
            self._handles[name] = handle
        return name

    def get(self, name):
        """
        Return the handle registered as ``name``, or ``None`` if there is no
        such handle (never opened, or already closed).
        """
        with self._lock:
            return self._handles.get(name)

    def destroy(self, name):
        """
        Remove ``name`` from the table and return the handle it referred to,
        or ``None`` if it wasn't registered.
        """
        with self._lock:
            return self._handles.pop(name, None)

    def close_all(self):
        """
        Empty the table, closing every handle that was still registered.
        Returns the handles that failed to close, paired with the error.
        """
        with self._lock:
            handles = list(self._handles.values())
            self._handles = {}
        failed = []
        for handle in handles:
            try:
                handle.close()
            except OSError as e:
                failed.append((handle, e))
        return failed

    def _new_name(self):
        return uuid.uuid4().hex.encode("ascii")

    def __contains__(self, name):
        with self._lock:
            return name in self._handles

    def __len__(self):
        with self._lock:
            return len(self._handles)
