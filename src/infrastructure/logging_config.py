from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configure process-wide logging once, at start-up."""
    logging.basicConfig(level=level, format=LOG_FORMAT)
