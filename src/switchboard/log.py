"""Opt-in logging setup for applications embedding switchboard."""

import logging

LOG_FORMAT = "%(asctime)s:%(name)s:%(levelname)s:%(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(
    level: int | str = logging.INFO,
    log_file: str | None = None,
) -> logging.Logger:
    """Attach stream (and optionally file) handlers to the ``switchboard`` logger.

    Safe to call more than once: handlers from an earlier call are replaced.
    """
    logger = logging.getLogger("switchboard")
    logger.setLevel(level)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger
