"""Logging setup for the TUI.

A full-screen app owns the terminal, so records go to the Textual dev
console (``textual console``) and, when configured, to a log file.
"""

import logging

from textual.logging import TextualHandler

from .config import AdminConfig

QUIET_LOGGERS = ("httpx", "httpcore")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(config: AdminConfig) -> None:
    """Configure the root logger once at startup."""
    level = logging.getLevelName(config.log_level)
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(TextualHandler())

    if config.log_file is not None:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
