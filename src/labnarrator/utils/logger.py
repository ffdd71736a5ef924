import logging
import os

LOG_FORMAT = "[{asctime}|{filename}:{funcName}:{lineno:d}]{levelname}  {message}"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def setup_logger(level: str | None = None) -> logging.Logger:
    """Send labnarrator logs to the console.

    The level comes from ``level``, then the ``LOG_LEVEL`` environment
    variable, then defaults to info. Library code never calls this; scripts
    and the relay server do.
    """
    level_name = (level or os.environ.get("LOG_LEVEL", "info")).lower()
    logger = logging.getLogger("labnarrator")
    logger.setLevel(_LEVELS.get(level_name, logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_labnarrator", False):
            logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, style="{", datefmt="%H:%M:%S"))
    console_handler._labnarrator = True  # type: ignore[attr-defined]
    logger.addHandler(console_handler)
    return logger
