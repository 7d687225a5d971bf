# backend/core/log.py
# Logger setup: "[Component] message"

import logging
import sys

from .config import settings

_configured = False


class ComponentFormatter(logging.Formatter):
    """cas.FormConfigEngine -> [FormConfigEngine]"""

    def format(self, record: logging.LogRecord) -> str:
        record.component = record.name.split(".", 1)[-1]
        return super().format(record)


def configure_logging(level: str = None):
    """Install one stream handler on the hub's root logger; later calls only change the level"""
    global _configured
    root = logging.getLogger("cas")
    if _configured:
        if level:
            root.setLevel(level.upper())
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ComponentFormatter(
        "%(asctime)s %(levelname)s [%(component)s] %(message)s"
    ))

    root.addHandler(handler)
    root.setLevel((level or settings.LOG_LEVEL).upper())
    root.propagate = False
    _configured = True


def get_logger(component: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(f"cas.{component}")
