"""JSON logging setup with per-request correlation.

``RequestIdFilter`` injects the current request id (from the ContextVar set
by the request-id middleware) into every record, so the JSON formatter can
always reference ``%(request_id)s``.
"""

import logging
from logging import Filter, LogRecord

from pythonjsonlogger import jsonlogger

from .middleware import REQUEST_ID_CTX

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"


class RequestIdFilter(Filter):
    """Attach a ``request_id`` attribute to log records.

    Outside a request the ContextVar default (``"-"``) is used.
    """

    def filter(self, record: LogRecord) -> bool:
        record.request_id = REQUEST_ID_CTX.get()
        return True


def configure_logging(level: str = "info") -> logging.Logger:
    """Attach a JSON stream handler to the ``orderbook`` logger once.

    Args:
        level: Level name, case-insensitive.

    Returns:
        logging.Logger: The configured package logger.
    """
    logger = logging.getLogger("orderbook")
    if not logger.handlers:
        h = logging.StreamHandler()
        h.setFormatter(jsonlogger.JsonFormatter(LOG_FORMAT))
        h.addFilter(RequestIdFilter())
        logger.addHandler(h)
    logger.setLevel(level.upper())
    return logger
