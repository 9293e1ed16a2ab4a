import logging

from libledger.core.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def setup_logging(level: str | None = None) -> logging.Logger:
    level = (level or get_settings().log_level).upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logger = logging.getLogger("libledger")
    logger.setLevel(getattr(logging, level, logging.INFO))
    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    base = logging.getLogger("libledger")
    return base.getChild(name) if name else base
