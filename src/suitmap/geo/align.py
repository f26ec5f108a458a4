#!/usr/bin/env python3
"""align.py

Bring one grid onto another grid's cells: reproject, crop, resample.

    align_grid(ph, reference=temperature, method="bilinear", kind="continuous")

is the usual entry point; the three steps are exposed separately because
each is useful on its own (e.g. cropping a national raster to an AOI).

Interpolation must match what the values mean:
- categorical data (land cover classes, zone ids) -> nearest or mode,
  so no in-between class values are invented
- continuous data (temperature, pH, elevation) -> bilinear, cubic,
  cubic_spline, lanczos, or average

Any other pairing raises UnsupportedInterpolation.

Warped outputs are float64 with NaN nodata.

Required deps: numpy, rasterio
"""

from __future__ import annotations

import math
import warnings
from typing import Any, Dict, FrozenSet, Optional, Tuple, Union

import numpy as np
from rasterio import windows
from rasterio.crs import CRS
from rasterio.enums import Resampling
from rasterio.warp import calculate_default_transform, reproject

from suitmap.config import BBox, coerce_bbox, format_bbox, intersect_bbox
from suitmap.errors import LossyResampleWarning, ShapeMismatch, UnsupportedInterpolation
from suitmap.grid import Grid, check_aligned, describe_grid, is_aligned
from suitmap.logging_utils import get_logger

logger = get_logger(__name__)

CATEGORICAL = "categorical"
CONTINUOUS = "continuous"

METHODS: Dict[str, Resampling] = {
    "nearest": Resampling.nearest,
    "mode": Resampling.mode,
    "bilinear": Resampling.bilinear,
    "cubic": Resampling.cubic,
    "cubic_spline": Resampling.cubic_spline,
    "lanczos": Resampling.lanczos,
    "average": Resampling.average,
}

ALLOWED_METHODS: Dict[str, FrozenSet[str]] = {
    CATEGORICAL: frozenset({"nearest", "mode"}),
    CONTINUOUS: frozenset({"bilinear", "cubic", "cubic_spline", "lanczos", "average"}),
}

# Cell edges closer than this (in pixels) are treated as coincident
_PIXEL_EPS = 1e-6


def default_method(kind: str) -> str:
    """Sensible interpolation for a data kind."""
    if kind == CATEGORICAL:
        return "nearest"
    if kind == CONTINUOUS:
        return "bilinear"
    raise ValueError(f"Unknown data kind '{kind}'. Use '{CATEGORICAL}' or '{CONTINUOUS}'.")


def check_method(method: str, kind: str) -> Resampling:
    """Validate a method/kind pairing and return the rasterio enum."""
    if kind not in ALLOWED_METHODS:
        raise ValueError(f"Unknown data kind '{kind}'. Use '{CATEGORICAL}' or '{CONTINUOUS}'.")
    if method not in METHODS:
        raise UnsupportedInterpolation(
            f"Unknown resampling method '{method}'. Choose from: {', '.join(sorted(METHODS))}"
        )
    if method not in ALLOWED_METHODS[kind]:
        raise UnsupportedInterpolation(
            f"'{method}' resampling is not valid for {kind} data. "
            f"Allowed: {', '.join(sorted(ALLOWED_METHODS[kind]))}"
        )
    return METHODS[method]


def _warp(
    grid: Grid,
    dst_transform,
    dst_shape: Tuple[int, int],
    dst_crs: CRS,
    resampling: Resampling,
) -> np.ndarray:
    """Warp grid values onto a destination footprint (NaN = nodata)."""
    dst = np.full(dst_shape, np.nan, dtype="float64")
    reproject(
        source=grid.masked(),
        destination=dst,
        src_transform=grid.transform,
        src_crs=grid.crs,
        src_nodata=np.nan,
        dst_transform=dst_transform,
        dst_crs=dst_crs,
        dst_nodata=np.nan,
        resampling=resampling,
    )
    return dst


# -----------------------------------------------------------------------------
# Reproject
# -----------------------------------------------------------------------------

def reproject_grid(
    grid: Grid,
    dst_crs: Any,
    method: str = "bilinear",
    kind: str = CONTINUOUS,
    resolution: Optional[Union[float, Tuple[float, float]]] = None,
) -> Grid:
    """Warp a grid into another CRS.

    The output footprint comes from rasterio's calculate_default_transform
    (or the explicit resolution). Same-CRS input is returned as a copy.
    """
    resampling = check_method(method, kind)
    dst_crs = CRS.from_user_input(dst_crs)

    if grid.crs == dst_crs:
        return grid.copy()

    transform, width, height = calculate_default_transform(
        grid.crs, dst_crs, grid.width, grid.height, *grid.bounds, resolution=resolution,
    )
    data = _warp(grid, transform, (height, width), dst_crs, resampling)
    out = Grid(data=data, transform=transform, crs=dst_crs, nodata=np.nan)

    logger.info("Reprojected (%s) %s -> %s", method, grid.crs.to_string(), describe_grid(out))
    return out


# -----------------------------------------------------------------------------
# Crop
# -----------------------------------------------------------------------------

def _snap_window(win: windows.Window) -> windows.Window:
    """Expand a fractional window outward to whole cells."""
    col_start = math.floor(win.col_off + _PIXEL_EPS)
    row_start = math.floor(win.row_off + _PIXEL_EPS)
    col_stop = math.ceil(win.col_off + win.width - _PIXEL_EPS)
    row_stop = math.ceil(win.row_off + win.height - _PIXEL_EPS)
    return windows.Window(col_start, row_start, col_stop - col_start, row_stop - row_start)


def crop_grid(grid: Grid, reference: Union[Grid, BBox]) -> Grid:
    """Keep only the cells of grid that overlap the reference extent.

    reference is a Grid (same CRS required) or an (xmin, ymin, xmax, ymax)
    bbox in the grid's CRS. Partially covered edge cells are kept; cells
    outside are dropped, not set to nodata.
    """
    if isinstance(reference, Grid):
        if reference.crs != grid.crs:
            raise ShapeMismatch(
                "crop_grid needs the reference in the same CRS; reproject first:\n"
                f"  grid:      {describe_grid(grid)}\n"
                f"  reference: {describe_grid(reference)}"
            )
        ref_bounds = reference.bounds
    else:
        ref_bounds = coerce_bbox(reference)
        if ref_bounds is None:
            raise ValueError(f"Invalid crop bounds: {reference!r}")

    inter = intersect_bbox(grid.bounds, ref_bounds)
    if inter is None:
        raise ShapeMismatch(
            f"Crop extent {format_bbox(ref_bounds)} does not overlap grid "
            f"{describe_grid(grid)}"
        )

    win = _snap_window(windows.from_bounds(*inter, transform=grid.transform))
    full = windows.Window(0, 0, grid.width, grid.height)
    win = win.intersection(full)

    data = grid.data[win.toslices()]
    out = Grid(
        data=data,
        transform=windows.transform(win, grid.transform),
        crs=grid.crs,
        nodata=grid.nodata,
    )
    logger.debug("Cropped to %s", describe_grid(out))
    return out


# -----------------------------------------------------------------------------
# Resample
# -----------------------------------------------------------------------------

def is_coarsening(grid: Grid, reference: Grid) -> bool:
    """True if the reference cells are larger than the source cells."""
    sdx, sdy = grid.res
    rdx, rdy = reference.res
    return rdx > sdx * (1 + 1e-9) or rdy > sdy * (1 + 1e-9)


def resample_grid(
    grid: Grid,
    reference: Grid,
    method: str = "bilinear",
    kind: str = CONTINUOUS,
) -> Grid:
    """Recompute grid values on the reference grid's cells.

    Both grids must already share a CRS. Going to coarser cells aggregates
    values and emits LossyResampleWarning; going finer is the safe direction.
    """
    resampling = check_method(method, kind)

    if grid.crs != reference.crs:
        raise ShapeMismatch(
            "resample_grid needs grids in the same CRS; reproject first:\n"
            f"  grid:      {describe_grid(grid)}\n"
            f"  reference: {describe_grid(reference)}"
        )

    if is_aligned(grid, reference):
        return grid.copy()

    if is_coarsening(grid, reference):
        msg = (
            f"Resampling from res {grid.res} to coarser res {reference.res} "
            f"aggregates values ('{method}'); detail is lost"
        )
        logger.warning(msg)
        warnings.warn(msg, LossyResampleWarning, stacklevel=2)

    data = _warp(grid, reference.transform, reference.shape, reference.crs, resampling)
    out = Grid(data=data, transform=reference.transform, crs=reference.crs, nodata=np.nan)
    logger.info("Resampled (%s) onto %s", method, describe_grid(out))
    return out


# -----------------------------------------------------------------------------
# Full alignment
# -----------------------------------------------------------------------------

def align_grid(
    grid: Grid,
    reference: Grid,
    method: Optional[str] = None,
    kind: str = CONTINUOUS,
) -> Grid:
    """Reproject, crop and resample grid so it is aligned with reference."""
    method = method or default_method(kind)
    check_method(method, kind)

    if is_aligned(grid, reference):
        return grid.copy()

    step = reproject_grid(grid, reference.crs, method=method, kind=kind)
    # one reference cell of margin keeps the resampling kernel supported at the edges
    pad = max(abs(r) for r in reference.res)
    xmin, ymin, xmax, ymax = reference.bounds
    step = crop_grid(step, (xmin - pad, ymin - pad, xmax + pad, ymax + pad))
    out = resample_grid(step, reference, method=method, kind=kind)

    check_aligned(out, reference, context="align_grid")
    return out
