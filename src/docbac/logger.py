#!/usr/bin/env python3

"""Module which sets up logging for docbac."""

import logging
import sys
from pathlib import Path
from typing import List, Optional, Union

LOG_FORMAT = "[%(asctime)s][%(name)s][%(levelname)-7s] %(message)s"
RUN_LOG_FORMAT = "[%(asctime)s][{run_type}][%(levelname)-7s] %(message)s"
DEFAULT_LOG_LEVEL = logging.DEBUG

stdout_handler = logging.StreamHandler(stream=sys.stdout)
stdout_handler.setFormatter(logging.Formatter(LOG_FORMAT))

handlers: List[logging.Handler] = [stdout_handler]

logger = logging.getLogger(__name__)

logger.setLevel(DEFAULT_LOG_LEVEL)

for handler in handlers:
    handler.setLevel(DEFAULT_LOG_LEVEL)
    logger.addHandler(handler)


def configure_logging(
    log_dir: Optional[Path], run_type: str, level: Union[int, str] = DEFAULT_LOG_LEVEL
) -> Optional[logging.FileHandler]:
    """Attaches an append-only log file for the specified run type.

    Every run type (backup, graceful, restore, validation) writes to its own file '<log_dir>/<run_type>.log' and each
    line carries the run type, so interleaved runs stay distinguishable. Handlers from an earlier call are replaced.

    Args:
        log_dir (Optional[Path]): Directory for log files. If None, only stdout logging is used.
        run_type (str): Name of the run type.
        level (Union[int, str], optional): Log level name or number. Defaults to DEBUG.

    Returns:
        Optional[logging.FileHandler]: The attached file handler or None.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = DEFAULT_LOG_LEVEL

    formatter = logging.Formatter(RUN_LOG_FORMAT.format(run_type=run_type))

    for handler in list(logger.handlers):
        if isinstance(handler, logging.FileHandler):
            logger.removeHandler(handler)
            handler.close()

    logger.setLevel(level)
    stdout_handler.setLevel(level)
    stdout_handler.setFormatter(formatter)

    if log_dir is None:
        return None

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir.joinpath(f"{run_type}.log"), mode="a")
    except OSError as error:
        logger.warning(f"Unable to open log file in '{log_dir}', logging to stdout only: {error}")
        return None

    file_handler.setFormatter(formatter)
    file_handler.setLevel(level)
    logger.addHandler(file_handler)

    return file_handler
