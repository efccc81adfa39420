"""
Storefront Core - Logging Bootstrap
====================================
Configures the root logger once; modules use logging.getLogger("storefront.<module>").
"""

import logging

from config.settings import LOG_LEVEL

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"


def setup_logging(level: str = LOG_LEVEL):
    root = logging.getLogger()
    if root.handlers:
        root.setLevel(level)
        return
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # Quieter third-party loggers
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
