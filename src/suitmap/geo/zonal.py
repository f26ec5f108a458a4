#!/usr/bin/env python3
"""zonal.py

Zone grids and per-zone aggregation.

- rasterize_zones(): burn polygon ids onto a reference grid (cell-centre rule)
- mask_grid():       blank cells outside a zone grid / polygon set
- cell_area():       true area of every cell, corrected for projection
- zonal_stats():     per-zone statistics of a value grid (pandas)
- zonal_sum():       per-zone sum as a plain {zone_id: value} dict
- join_zonal():      attach results back onto the zone GeoDataFrame

Zone grids are int32 with nodata 0, so zone ids must be positive integers.

Required deps: numpy, pandas, geopandas, rasterio, pyproj
"""

from __future__ import annotations

from typing import Dict, Mapping, Sequence, Union

import geopandas as gpd
import numpy as np
import pandas as pd
from pyproj import CRS as ProjCRS
from pyproj import Proj, Transformer
from rasterio.features import geometry_mask, rasterize

from suitmap.grid import Grid, check_aligned, describe_grid
from suitmap.logging_utils import get_logger

logger = get_logger(__name__)

ZONE_NODATA = 0

AREA_UNITS: Dict[str, float] = {
    "m2": 1.0,
    "ha": 1e4,
    "km2": 1e6,
}

ZONAL_STATS = ("sum", "mean", "min", "max", "std", "count")


def _to_grid_crs(zones: gpd.GeoDataFrame, grid: Grid) -> gpd.GeoDataFrame:
    if zones.crs is None:
        raise ValueError("Zones have no CRS; can't place them on a grid safely.")
    target = ProjCRS.from_user_input(grid.crs.to_wkt())
    if zones.crs.equals(target):
        return zones
    return zones.to_crs(target)


def _valid_geometries(zones: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    return zones[zones.geometry.notna() & ~zones.geometry.is_empty]


# -----------------------------------------------------------------------------
# Rasterize / mask
# -----------------------------------------------------------------------------

def rasterize_zones(
    zones: gpd.GeoDataFrame,
    reference: Grid,
    id_field: str = "zone_id",
    all_touched: bool = False,
) -> Grid:
    """Label each reference cell with the id of the polygon covering its centre.

    Cells covered by no polygon get ZONE_NODATA (0).
    """
    if id_field not in zones.columns:
        raise ValueError(f"Zone id field '{id_field}' not found. Available columns: {list(zones.columns)}")

    gdf = _valid_geometries(_to_grid_crs(zones, reference))
    if gdf.empty:
        raise ValueError("No non-empty zone geometries to rasterize")

    ids = gdf[id_field].astype("int64")
    if (ids <= 0).any():
        raise ValueError(f"Zone ids must be positive integers; got {sorted(ids[ids <= 0].unique().tolist())}")

    shapes = ((geom, int(zid)) for geom, zid in zip(gdf.geometry, ids))
    burned = rasterize(
        shapes,
        out_shape=reference.shape,
        transform=reference.transform,
        fill=ZONE_NODATA,
        all_touched=all_touched,
        dtype="int32",
    )

    out = Grid(data=burned, transform=reference.transform, crs=reference.crs, nodata=ZONE_NODATA)
    present = np.unique(burned[burned != ZONE_NODATA])
    logger.info("Rasterized %d zones (%d present on grid) onto %s", len(gdf), present.size, describe_grid(out))
    return out


def mask_grid(grid: Grid, mask_by: Union[Grid, gpd.GeoDataFrame]) -> Grid:
    """Set cells outside the valid area to nodata.

    mask_by is either an aligned Grid (its nodata cells are outside) or a
    GeoDataFrame (cells whose centre lies outside every polygon are outside).
    """
    if isinstance(mask_by, Grid):
        check_aligned(grid, mask_by, context="mask_grid")
        inside = mask_by.valid_mask()
    else:
        gdf = _valid_geometries(_to_grid_crs(mask_by, grid))
        if gdf.empty:
            inside = np.zeros(grid.shape, dtype=bool)
        else:
            inside = geometry_mask(
                gdf.geometry,
                out_shape=grid.shape,
                transform=grid.transform,
                all_touched=False,
                invert=True,
            )

    data = np.array(grid.data, copy=True)
    data[~inside] = grid.nodata
    return grid.with_data(data)


# -----------------------------------------------------------------------------
# Cell area
# -----------------------------------------------------------------------------

def _geographic_areas(grid: Grid, crs: ProjCRS) -> np.ndarray:
    """Geodesic cell areas (m2) for a lon/lat grid; constant along each row."""
    geod = crs.get_geod()
    t = grid.transform
    row_areas = np.empty(grid.height, dtype="float64")
    for row in range(grid.height):
        x0 = t.c
        x1 = t.c + t.a
        y0 = t.f + row * t.e
        y1 = t.f + (row + 1) * t.e
        area, _ = geod.polygon_area_perimeter([x0, x1, x1, x0], [y0, y0, y1, y1])
        row_areas[row] = abs(area)
    return np.repeat(row_areas[:, None], grid.width, axis=1)


def _projected_areas(grid: Grid, crs: ProjCRS) -> np.ndarray:
    """Nominal cell area divided by the projection's areal scale (m2)."""
    xs, ys = grid.cell_centers()
    to_geo = Transformer.from_crs(crs, crs.geodetic_crs, always_xy=True)
    lon, lat = to_geo.transform(xs.ravel(), ys.ravel())

    factors = Proj(crs).get_factors(lon, lat)
    areal_scale = np.asarray(factors.areal_scale, dtype="float64").reshape(grid.shape)

    unit = crs.axis_info[0].unit_conversion_factor if crs.axis_info else 1.0
    dx, dy = grid.res
    nominal = dx * dy * unit * unit
    return nominal / areal_scale


def cell_area(grid: Grid, unit: str = "km2", mask: bool = False) -> Grid:
    """Grid of true cell areas on grid's footprint.

    With mask=True, cells that are nodata in grid stay nodata.
    """
    if unit not in AREA_UNITS:
        raise ValueError(f"Unknown area unit '{unit}'. Choose from: {', '.join(AREA_UNITS)}")

    crs = ProjCRS.from_user_input(grid.crs.to_wkt())
    if crs.is_geographic:
        areas = _geographic_areas(grid, crs)
    else:
        areas = _projected_areas(grid, crs)

    areas = areas / AREA_UNITS[unit]
    if mask:
        areas[~grid.valid_mask()] = np.nan

    logger.debug("Cell areas (%s): min=%g max=%g", unit, float(np.nanmin(areas)), float(np.nanmax(areas)))
    return grid.with_data(areas, nodata=float("nan"))


# -----------------------------------------------------------------------------
# Zonal statistics
# -----------------------------------------------------------------------------

def zonal_stats(
    values: Grid,
    zones: Grid,
    stats: Sequence[str] = ("sum",),
) -> pd.DataFrame:
    """Per-zone statistics of values over the cells of each zone id.

    One row per zone id present in the zone grid (index 'zone_id').
    Nodata value cells are skipped; a zone without valid values gets
    sum 0 and count 0.
    """
    stats = list(stats)
    unknown = [s for s in stats if s not in ZONAL_STATS]
    if unknown or not stats:
        raise ValueError(f"Unknown stats {unknown}. Choose from: {', '.join(ZONAL_STATS)}")

    check_aligned(values, zones, context="zonal_stats")

    in_zone = zones.valid_mask()
    df = pd.DataFrame({
        "zone_id": zones.data[in_zone].astype("int64"),
        "value": values.masked()[in_zone],
    })

    if df.empty:
        return pd.DataFrame(columns=stats, index=pd.Index([], name="zone_id", dtype="int64"))

    return df.groupby("zone_id")["value"].agg(stats)


def zonal_sum(values: Grid, zones: Grid) -> Dict[int, float]:
    """Sum of values per zone id, as a plain dict."""
    table = zonal_stats(values, zones, stats=("sum",))
    return {int(zid): float(v) for zid, v in table["sum"].items()}


def join_zonal(
    zones: gpd.GeoDataFrame,
    result: Union[Mapping[int, float], pd.DataFrame],
    id_field: str = "zone_id",
    column: str = "suitable_km2",
) -> gpd.GeoDataFrame:
    """Return a copy of zones with the zonal result joined by zone id.

    A dict result becomes one column named `column`; a DataFrame result
    (from zonal_stats) is joined column by column. Zones missing from the
    result get NaN.
    """
    out = zones.copy()
    keys = out[id_field].astype("int64")
    if isinstance(result, pd.DataFrame):
        for col in result.columns:
            out[col] = keys.map(result[col])
    else:
        out[column] = keys.map(pd.Series(dict(result), dtype="float64"))
    return out
