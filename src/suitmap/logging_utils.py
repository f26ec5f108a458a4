#!/usr/bin/env python3
"""suitmap.logging_utils

Logging setup for suitmap CLIs and the pipeline.

Library modules only ever call get_logger(); handlers are installed once,
by the entrypoint, through setup_logging().
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional, Union

LOGGER_ROOT = "suitmap"

_FORMATS = {
    "standard": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    "simple": "%(levelname)s: %(message)s",
}


def setup_logging(
    level: Union[str, int] = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    format_style: str = "standard",
) -> logging.Logger:
    """Configure the root logger and return the suitmap logger.

    Existing root handlers are cleared so repeated calls (tests, notebooks)
    don't duplicate output.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())

    root = logging.getLogger()
    if root.handlers:
        root.handlers.clear()
    root.setLevel(level)

    formatter = logging.Formatter(
        _FORMATS.get(format_style, _FORMATS["standard"]),
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_path)
        fh.setLevel(level)
        fh.setFormatter(formatter)
        root.addHandler(fh)

    return logging.getLogger(LOGGER_ROOT)


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the suitmap namespace.

    Accepts either a module __name__ ("suitmap.geo.align") or a short
    component name ("align").
    """
    if name == LOGGER_ROOT or name.startswith(LOGGER_ROOT + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_ROOT}.{name}")
