"""Logging setup and identity-prefixed loggers."""

import logging
import sys

logger = logging.getLogger("dailyctl")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


class _IdentityAdapter(logging.LoggerAdapter):
    def process(self, msg, kwargs):
        return f"[{self.extra['identity']}] {msg}", kwargs


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a stderr handler to the dailyctl logger (once)."""
    logger.setLevel(level.upper())
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger


def program_log(program, name: str = "dailyctl") -> logging.LoggerAdapter:
    return _IdentityAdapter(logging.getLogger(name), {"identity": program.name})


def execution_log(execution, name: str = "dailyctl") -> logging.LoggerAdapter:
    identity = f"{execution.program.name} {execution.id}"
    return _IdentityAdapter(logging.getLogger(name), {"identity": identity})
