"""Logger factory with a TRACE level for per-sample output."""

import logging
from typing import Any

# Below DEBUG: loudness samples arrive 20 times a second
TRACE_LEVEL = 5


def install_trace_level() -> None:
    """Register the TRACE level name and a ``Logger.trace`` method once."""
    if hasattr(logging.Logger, "trace"):
        return

    logging.addLevelName(TRACE_LEVEL, "TRACE")

    def trace(self: logging.Logger, message: str, *args: Any, **kwargs: Any) -> None:
        if self.isEnabledFor(TRACE_LEVEL):
            self._log(TRACE_LEVEL, message, args, **kwargs)

    logging.Logger.trace = trace


def get_logger(name: str) -> logging.Logger:
    """Get a logger that supports ``logger.trace(...)``."""
    install_trace_level()
    return logging.getLogger(name)
