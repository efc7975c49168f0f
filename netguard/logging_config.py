"""
Logging setup for NetGuard processes.

Every module logs through logging.getLogger(__name__); this configures
the "netguard" parent logger once per process.
"""

import logging
import logging.handlers
import os
from typing import Optional

from .constants import LogRotation, Permissions

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_configured = False


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the netguard logger.

    Args:
        level: Level name (DEBUG, INFO, ...)
        log_file: Optional path for a rotating log file (5 MB x 3)

    Returns:
        The configured "netguard" logger
    """
    global _configured

    root = logging.getLogger("netguard")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    if _configured:
        return root

    formatter = logging.Formatter(LOG_FORMAT)

    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    root.addHandler(stream)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, mode=Permissions.LOG_DIR, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=LogRotation.MAX_BYTES,
            backupCount=LogRotation.BACKUP_COUNT,
        )
        handler.setFormatter(formatter)
        root.addHandler(handler)

    _configured = True
    return root
