"""
Logging setup for the devtools transport.
"""
import logging

logger = logging.getLogger("devtools_transport")

_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: int = logging.INFO, debug: bool = False) -> logging.Logger:
    """Configure the package logger. Calling it again only updates the level."""
    if debug:
        level = logging.DEBUG

    logger.setLevel(level)
    if not any(getattr(h, "_devtools_transport", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._devtools_transport = True
        logger.addHandler(handler)
    return logger
