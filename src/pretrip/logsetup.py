"""Logging configuration with domain tags for filtering."""

from __future__ import annotations

import logging
import sys

DOMAIN_RESOLVER = "resolver"
DOMAIN_DRILLS = "drills"
DOMAIN_PROGRESS = "progress"

LOG_FORMAT = "%(asctime)s | %(levelname)s | [%(domain)s] | %(name)s | %(message)s"


def get_domain_logger(name: str, domain: str) -> logging.LoggerAdapter[logging.Logger]:
    """Return a logger that adds the given domain to every log record."""
    return logging.LoggerAdapter(logging.getLogger(name), {"domain": domain})


class DomainDefaultFilter(logging.Filter):
    """Ensure every record has a ``domain`` so the format string never fails."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "domain"):
            record.domain = "app"
        return True


class PretripStreamHandler(logging.StreamHandler):
    """Stdout handler owned by ``configure_logging`` so reconfiguring replaces it."""

    def __init__(self) -> None:
        super().__init__(sys.stdout)
        self.setFormatter(logging.Formatter(LOG_FORMAT))
        self.addFilter(DomainDefaultFilter())


def configure_logging(level: str = "INFO") -> None:
    """Install a stdout handler on the ``pretrip`` logger."""
    logger = logging.getLogger("pretrip")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in list(logger.handlers):
        if isinstance(handler, PretripStreamHandler):
            logger.removeHandler(handler)
    logger.addHandler(PretripStreamHandler())
    logger.propagate = False
