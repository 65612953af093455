"""
Confinement of client-supplied paths to the served root directory.
"""
import os
import posixpath


class PathSandbox:
    """
    Maps the paths named in SFTP requests onto the local filesystem, below a
    fixed root directory.

    Client paths are always interpreted relative to the root, whether or not
    they start with ``/``.  Parent references (``..``) are collapsed before
    the join, so they stop at the root instead of walking above it.  The
    sandbox never touches the filesystem: callers check for existence (and
    type) of the resolved path themselves.
    """

    def __init__(self, root):
        """
        :param str root: the directory being served.  It is made absolute
            but is otherwise taken as given (it must already exist).
        """
        self.root = os.path.abspath(root)

    def normalize(self, path):
        """
        Return the client-visible absolute form of ``path``: ``/``-prefixed,
        with ``.``, ``..`` and repeated slashes collapsed.  An empty path is
        the root, ``"/"``.

        :param str path: path as sent by the client.
        :return: the normalized path, as a `str`.
        """
        path = posixpath.normpath("/" + (path or ""))
        # normpath keeps a leading "//"
        return "/" + path.lstrip("/")

    def resolve(self, path):
        """
        Join ``path`` onto the root.  The result is the root itself or a path
        textually inside it.

        :param str path: path as sent by the client.
        :return: the absolute local path, as a `str`.
        """
        relative = self.normalize(path).lstrip("/")
        if not relative:
            return self.root
        return os.path.join(self.root, *relative.split("/"))

    def is_root(self, path):
        """Return True if the client path names the served root itself."""
        return self.normalize(path) == "/"
