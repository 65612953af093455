"""
Log sinks for the ``rootsftp`` logger.  Loggers themselves (with the
thread-id filter the format below relies on) come from
`paramiko.util.get_logger`.
"""
import logging
import sys

from paramiko.common import DEBUG

_LOG_FORMAT = (
    "%(levelname)-.3s [%(asctime)s.%(msecs)03d] thr=%(_threadid)-3d"
    " %(name)s: %(message)s"
)
_LOG_DATEFMT = "%Y%m%d-%H:%M:%S"


def _attach_handler(handler, level):
    logger = logging.getLogger("rootsftp")
    if len(logger.handlers) > 0:
        return False
    logger.setLevel(level)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, _LOG_DATEFMT))
    logger.addHandler(handler)
    return True


def log_to_file(filename, level=DEBUG):
    """send rootsftp logs to a logfile,
    if they're not already going somewhere"""
    return _attach_handler(logging.FileHandler(filename, "a"), level)


def log_to_stderr(level=DEBUG):
    """send rootsftp logs to stderr,
    if they're not already going somewhere"""
    return _attach_handler(logging.StreamHandler(sys.stderr), level)
