"""Logger setup for training scripts."""

from __future__ import annotations

import logging
import os
import sys

LOG_FORMAT = '%(asctime)s - %(name)s -  %(message)s'


def get_logger(
    name: str = "condforest",
    filepath: str | os.PathLike | None = None,
    output: bool = True,
    level: int = logging.INFO,
) -> logging.Logger:
    """Configure and return a logger.

    Existing handlers on the logger are replaced, so calling this twice does
    not duplicate output.

    Args:
        name: Logger name. The default configures every condforest module.
        filepath: Also write records to this file when given.
        output: Write records to stderr.
        level: Logging level for the logger and its handlers.
    """
    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    if filepath is not None:
        file_handler = logging.FileHandler(filepath)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger
