# cart_engine/utils/logging.py
import logging

from cart_engine.utils.settings import LOG_LEVEL

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_configured = False


def _configure():
    global _configured
    if _configured:
        return
    logging.basicConfig(format=_FORMAT)
    logging.getLogger("cart_engine").setLevel(LOG_LEVEL.upper())
    _configured = True


def get_logger(name: str) -> logging.Logger:
    _configure()
    return logging.getLogger(name)
