"""
Serve a directory tree over SFTP, with every client confined to that tree.
"""

__version__ = "1.0.0"

from rootsftp.sftp_server import SFTPServer  # noqa: E402
from rootsftp.sftp_handle import (  # noqa: E402
    SFTPHandle,
    SFTPFileHandle,
    SFTPFolderHandle,
)
from rootsftp.sftp_attr import SFTPAttributes  # noqa: E402
from rootsftp.handle_table import HandleTable  # noqa: E402
from rootsftp.sandbox import PathSandbox  # noqa: E402
from rootsftp.server import SFTPServerAuth  # noqa: E402
from rootsftp.listener import SFTPListener, load_host_key  # noqa: E402

__all__ = [
    "HandleTable",
    "PathSandbox",
    "SFTPAttributes",
    "SFTPFileHandle",
    "SFTPFolderHandle",
    "SFTPHandle",
    "SFTPListener",
    "SFTPServer",
    "SFTPServerAuth",
    "load_host_key",
]
