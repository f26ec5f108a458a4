#!/usr/bin/env python3
"""discover.py

Find a time series of single-band rasters on disk.

A series is a directory of files sharing a prefix and differing by a
per-period suffix, e.g.

    data/raw/tmean/tmean_2016.tif
    data/raw/tmean/tmean_2017.tif
    ...

discover_rasters() only returns paths; nothing is opened until load_stack()
(or read_grid) is called, so large series cost nothing to enumerate.

Called by:
  python -m suitmap.ingest list --dir data/raw/tmean --pattern "tmean_*.tif"
  suitmap.pipeline.run_suitability()
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Sequence, Union

from suitmap.errors import NotFound
from suitmap.grid import Grid, read_grid
from suitmap.logging_utils import get_logger

logger = get_logger(__name__)


def discover_rasters(directory: Union[str, Path], pattern: str) -> List[Path]:
    """Return files in directory matching a glob pattern, sorted by name.

    Sorting by name keeps prefix+year style series in time order.

    Raises NotFound if the directory doesn't exist or nothing matches.
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise NotFound(f"Raster directory not found: {directory}")

    matches = sorted(p for p in directory.glob(pattern) if p.is_file())
    if not matches:
        raise NotFound(f"No rasters match '{pattern}' in {directory}")

    logger.info("Found %d rasters for '%s' in %s", len(matches), pattern, directory)
    return matches


def load_stack(paths: Sequence[Union[str, Path]], band: int = 1) -> List[Grid]:
    """Read each path into a Grid, preserving order."""
    if not paths:
        raise NotFound("No raster paths given")
    return [read_grid(p, band=band) for p in paths]
