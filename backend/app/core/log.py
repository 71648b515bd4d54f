"""Application-wide logging helpers.

``configure_logging`` installs a single stream handler on the root logger
the first time it is called; later calls only adjust the level, so creating
several apps in one process (as the tests do) never duplicates output.
Modules obtain their logger through ``get_logger(__name__)``.
"""

from __future__ import annotations

import logging

_HANDLER_NAME = "polygon-service"


def configure_logging(level: str | int = logging.INFO) -> None:
    """Configure the root logger with a timestamped formatter."""
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    if any(h.get_name() == _HANDLER_NAME for h in root_logger.handlers):
        return

    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(
        logging.Formatter(
            "[%(asctime)s] [%(levelname)s] %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root_logger.addHandler(handler)


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-specific logger."""
    return logging.getLogger(name)
