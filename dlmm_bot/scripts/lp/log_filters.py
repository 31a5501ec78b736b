"""
Keep the per-tick status table readable by muting HTTP client chatter.

httpx logs one INFO line per request ("HTTP Request: GET ... 200 OK") and
httpcore logs connection lifecycle at DEBUG. Both drown out the status rows
when the monitor polls every few seconds.
"""

import logging
from typing import Dict, Iterable

HTTP_CLIENT_LOGGERS = ("httpx", "httpcore")

_installed: Dict[str, logging.Filter] = {}


class HttpChatterFilter(logging.Filter):
    """Drop records at or below ``max_level``; warnings and errors pass."""

    def __init__(self, max_level: int = logging.INFO) -> None:
        super().__init__()
        self.max_level = max_level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno > self.max_level


def set_http_request_logs_suppressed(suppress: bool, logger_names: Iterable[str] = HTTP_CLIENT_LOGGERS) -> None:
    for name in logger_names:
        log = logging.getLogger(name)
        current = _installed.get(name)
        if suppress and current is None:
            _installed[name] = HttpChatterFilter()
            log.addFilter(_installed[name])
        elif not suppress and current is not None:
            log.removeFilter(current)
            del _installed[name]
