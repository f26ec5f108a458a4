#!/usr/bin/env python3
"""suitmap.grid

The Grid type and single-band raster I/O.

A Grid is an immutable 2-D array plus the metadata needed to place it on
the Earth: an affine transform, a CRS and a nodata sentinel. Every suitmap
operation takes Grids and returns new Grids; nothing is modified in place
(the array is flagged read-only to make that hard to get wrong).

Two grids are "aligned" when they share CRS, transform and shape. Every
elementwise operation checks this first and raises ShapeMismatch with both
grids' metadata when it doesn't hold.

Required deps: numpy, rasterio
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Tuple, Union

import numpy as np
import rasterio
from affine import Affine
from rasterio.crs import CRS
from rasterio.transform import array_bounds, from_bounds, from_origin

from suitmap.config import BBox, format_bbox
from suitmap.errors import NotFound, ShapeMismatch
from suitmap.logging_utils import get_logger

logger = get_logger(__name__)

PathLike = Union[str, Path]


def _is_nan(x: Any) -> bool:
    return isinstance(x, float) and np.isnan(x)


@dataclass(frozen=True, eq=False)
class Grid:
    """Single-band raster held in memory.

    data      : 2-D numpy array (rows, cols); row 0 is the northern edge
    transform : affine pixel -> CRS transform
    crs       : coordinate reference system
    nodata    : sentinel marking missing cells (NaN allowed for float data)
    """

    data: np.ndarray
    transform: Affine
    crs: CRS
    nodata: Optional[float] = float("nan")

    def __post_init__(self) -> None:
        arr = np.array(self.data, copy=True)
        if arr.ndim != 2:
            raise ValueError(f"Grid data must be 2-D, got shape {arr.shape}")

        nodata = self.nodata
        if nodata is None:
            nodata = float("nan")
        if _is_nan(nodata) and not np.issubdtype(arr.dtype, np.floating):
            # NaN can't live in an integer array
            arr = arr.astype("float64")
        arr.setflags(write=False)

        crs = self.crs if isinstance(self.crs, CRS) else CRS.from_user_input(self.crs)

        object.__setattr__(self, "data", arr)
        object.__setattr__(self, "crs", crs)
        object.__setattr__(self, "nodata", nodata)

    # --- geometry ---

    @property
    def shape(self) -> Tuple[int, int]:
        return self.data.shape

    @property
    def height(self) -> int:
        return self.data.shape[0]

    @property
    def width(self) -> int:
        return self.data.shape[1]

    @property
    def res(self) -> Tuple[float, float]:
        """Cell size (dx, dy), both positive."""
        return (abs(self.transform.a), abs(self.transform.e))

    @property
    def bounds(self) -> BBox:
        """Extent as (xmin, ymin, xmax, ymax)."""
        west, south, east, north = array_bounds(self.height, self.width, self.transform)
        return (west, south, east, north)

    def xy(self, row: int, col: int) -> Tuple[float, float]:
        """CRS coordinate of the centre of cell (row, col)."""
        t = self.transform
        x = t.c + (col + 0.5) * t.a + (row + 0.5) * t.b
        y = t.f + (col + 0.5) * t.d + (row + 0.5) * t.e
        return (x, y)

    def cell_centers(self) -> Tuple[np.ndarray, np.ndarray]:
        """Arrays (xs, ys) of cell-centre coordinates, each shaped like data."""
        cols, rows = np.meshgrid(np.arange(self.width) + 0.5, np.arange(self.height) + 0.5)
        t = self.transform
        xs = t.c + cols * t.a + rows * t.b
        ys = t.f + cols * t.d + rows * t.e
        return xs, ys

    # --- values ---

    def valid_mask(self) -> np.ndarray:
        """Boolean array, True where the cell holds a real value."""
        data = self.data
        if np.issubdtype(data.dtype, np.floating):
            valid = ~np.isnan(data)
        else:
            valid = np.ones(data.shape, dtype=bool)
        if not _is_nan(self.nodata):
            valid &= data != self.nodata
        return valid

    def masked(self) -> np.ndarray:
        """float64 copy of the data with nodata cells set to NaN."""
        out = self.data.astype("float64")
        out[~self.valid_mask()] = np.nan
        return out

    def with_data(self, data: np.ndarray, nodata: Any = "same") -> "Grid":
        """New Grid on the same footprint with different values."""
        return Grid(
            data=data,
            transform=self.transform,
            crs=self.crs,
            nodata=self.nodata if nodata == "same" else nodata,
        )

    def copy(self) -> "Grid":
        return self.with_data(self.data)


# -----------------------------------------------------------------------------
# Alignment
# -----------------------------------------------------------------------------

def describe_grid(grid: Grid) -> str:
    """One-line metadata summary used in error messages and logs."""
    dx, dy = grid.res
    return (
        f"crs={grid.crs.to_string()} bounds={format_bbox(grid.bounds)} "
        f"res=({dx:g}, {dy:g}) shape={grid.height}x{grid.width}"
    )


def is_aligned(a: Grid, b: Grid) -> bool:
    """True iff a and b share CRS, transform and dimensions."""
    return (
        a.shape == b.shape
        and a.crs == b.crs
        and a.transform.almost_equals(b.transform)
    )


def check_aligned(a: Grid, b: Grid, context: str = "operation") -> None:
    """Raise ShapeMismatch unless a and b are aligned."""
    if is_aligned(a, b):
        return
    raise ShapeMismatch(
        f"{context} needs aligned grids:\n"
        f"  left:  {describe_grid(a)}\n"
        f"  right: {describe_grid(b)}"
    )


# -----------------------------------------------------------------------------
# Builders
# -----------------------------------------------------------------------------

def grid_from_array(
    data: Any,
    bounds: BBox,
    crs: Any,
    nodata: Optional[float] = float("nan"),
) -> Grid:
    """Place an array (rows, cols) on an extent, north-up."""
    arr = np.asarray(data)
    if arr.ndim == 1:
        arr = arr.reshape(1, -1)
    height, width = arr.shape
    transform = from_bounds(*bounds, width, height)
    return Grid(data=arr, transform=transform, crs=crs, nodata=nodata)


def grid_from_bounds(
    bounds: BBox,
    res: Union[float, Tuple[float, float]],
    crs: Any,
    fill: float = 0.0,
    nodata: Optional[float] = float("nan"),
    dtype: str = "float64",
) -> Grid:
    """Constant-valued grid covering bounds at the given cell size."""
    dx, dy = (res, res) if np.isscalar(res) else res
    xmin, ymin, xmax, ymax = bounds
    width = int(round((xmax - xmin) / dx))
    height = int(round((ymax - ymin) / dy))
    if width < 1 or height < 1:
        raise ValueError(f"Bounds {format_bbox(bounds)} hold no whole cell at res ({dx}, {dy})")
    transform = from_origin(xmin, ymax, dx, dy)
    return Grid(
        data=np.full((height, width), fill, dtype=dtype),
        transform=transform,
        crs=crs,
        nodata=nodata,
    )


# -----------------------------------------------------------------------------
# I/O
# -----------------------------------------------------------------------------

def read_grid(path: PathLike, band: int = 1, dtype: str = "float64") -> Grid:
    """Read one band of a raster file into a Grid.

    The file's nodata is kept; files without a declared nodata get NaN.
    """
    path = Path(path)
    if not path.exists():
        raise NotFound(f"Raster not found: {path}")

    with rasterio.open(path) as src:
        if src.crs is None:
            raise ValueError(f"Raster has no CRS: {path}")
        if band < 1 or band > src.count:
            raise ValueError(f"Band {band} out of range for {path} (count={src.count})")
        data = src.read(band).astype(dtype)
        nodata = src.nodata
        grid = Grid(data=data, transform=src.transform, crs=src.crs, nodata=nodata)

    logger.debug("Read %s: %s", path.name, describe_grid(grid))
    return grid


def write_grid(grid: Grid, path: PathLike, overwrite: bool = False) -> Path:
    """Write a Grid as a single-band, tiled, deflate-compressed GeoTIFF."""
    path = Path(path)
    if path.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing raster: {path}")

    profile = {
        "driver": "GTiff",
        "height": grid.height,
        "width": grid.width,
        "count": 1,
        "dtype": str(grid.data.dtype),
        "crs": grid.crs,
        "transform": grid.transform,
        "nodata": grid.nodata,
        "tiled": True,
        "compress": "deflate",
    }

    path.parent.mkdir(parents=True, exist_ok=True)
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(grid.data, 1)

    logger.info("Wrote %s (%s)", path, describe_grid(grid))
    return path
