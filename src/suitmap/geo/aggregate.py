#!/usr/bin/env python3
"""aggregate.py

Per-cell reductions over a stack of aligned grids (one grid per period).

Missing cells are skipped: a cell averages only the layers that have a
value there, and becomes nodata when no layer does.
"""

from __future__ import annotations

import warnings
from typing import Sequence

import numpy as np

from suitmap.grid import Grid, check_aligned, describe_grid
from suitmap.logging_utils import get_logger

logger = get_logger(__name__)

KELVIN_OFFSET = -273.15

_REDUCERS = ("mean", "sum")


def _stack_values(grids: Sequence[Grid]) -> np.ndarray:
    """(n, rows, cols) float64 array with nodata as NaN."""
    if not grids:
        raise ValueError("Cannot reduce an empty grid stack")
    first = grids[0]
    for i, g in enumerate(grids[1:], start=1):
        check_aligned(first, g, context=f"stack layer {i}")
    return np.stack([g.masked() for g in grids])


def reduce_stack(grids: Sequence[Grid], how: str = "mean") -> Grid:
    """Skip-missing mean or sum across the stack dimension.

    The result has NaN nodata; cells with no valid input are NaN.
    """
    if how not in _REDUCERS:
        raise ValueError(f"Unknown reducer '{how}'. Choose from: {', '.join(_REDUCERS)}")

    values = _stack_values(grids)
    count = np.sum(~np.isnan(values), axis=0)

    with warnings.catch_warnings():
        # all-NaN slices are expected and handled via count below
        warnings.simplefilter("ignore", category=RuntimeWarning)
        if how == "mean":
            out = np.nanmean(values, axis=0)
        else:
            out = np.nansum(values, axis=0)

    out[count == 0] = np.nan

    logger.info(
        "Reduced %d layers (%s): %d/%d cells valid",
        len(grids), how, int(np.sum(count > 0)), count.size,
    )
    return grids[0].with_data(out, nodata=float("nan"))


def mean_stack(
    grids: Sequence[Grid],
    scale: float = 1.0,
    offset: float = KELVIN_OFFSET,
) -> Grid:
    """Average a series, then convert units as value * scale + offset.

    Defaults convert Kelvin to degrees Celsius. Pass offset=0.0 for inputs
    that are already in the target unit.
    """
    mean = reduce_stack(grids, how="mean")
    converted = mean.data * scale + offset
    logger.debug("Mean grid after conversion: %s", describe_grid(mean))
    return mean.with_data(converted)
