"""Process-wide logging setup.

Modules log through ``logging.getLogger(__name__)``; this installs a single
console handler on the root logger at startup.
"""

import logging
import os

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once. Level defaults to $LOG_LEVEL or INFO."""
    global _configured
    if _configured:
        return

    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level_name, logging.INFO))

    # httpx logs every request at INFO, including token endpoint URLs
    logging.getLogger("httpx").setLevel(logging.WARNING)
    _configured = True
