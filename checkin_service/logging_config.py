"""
Logging configuration for Check-in Service.

Every record carries the kiosk id and the short component name
(``verification``, ``recognition.facepp``, ...), so one log stream from a
multi-kiosk deployment can be split by site and by subsystem.
"""

import logging
import sys
from typing import Iterable

PACKAGE_LOGGER = 'checkin_service'

LOG_FORMAT = '[%(levelname)s] [kiosk=%(kiosk_id)s] [%(component)s] %(message)s'

# Kept at WARNING outside debug
NOISY_LOGGERS = ('urllib3', 'werkzeug')


class KioskContextFilter(logging.Filter):
    """Stamp kiosk id and component onto log records."""

    def __init__(self, kiosk_id: str):
        super().__init__()
        self.kiosk_id = kiosk_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.kiosk_id = self.kiosk_id
        record.component = component_name(record.name)
        return True


def component_name(logger_name: str) -> str:
    """'checkin_service.recognition.gemini' -> 'recognition.gemini'."""
    prefix = PACKAGE_LOGGER + '.'
    if logger_name.startswith(prefix):
        return logger_name[len(prefix):]
    return logger_name


def _quiet(names: Iterable[str], level: int) -> None:
    for name in names:
        logging.getLogger(name).setLevel(level)


def setup_logging(kiosk_id: str, debug: bool = False) -> None:
    """
    Configure logging for the service.

    Args:
        kiosk_id: Kiosk identifier for log context
        debug: Enable debug level logging (HTTP library logs stay at WARNING
            unless debug is on)
    """
    level = logging.DEBUG if debug else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(KioskContextFilter(kiosk_id))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    _quiet(NOISY_LOGGERS, logging.INFO if debug else logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
