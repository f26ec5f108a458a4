#!/usr/bin/env python3
"""prep_zones.py

Turn a zone shapefile (or any vector file geopandas can read) into a clean
Polygon Zone Set: one row per zone, a unique positive integer id, valid
geometries, a CRS, and a QA area column.

Public interface:
- clean_zones() / read_zones(): validated zones for the pipeline
- prep_zones(): cleaned zones written to a GeoPackage (CLI: prep-zones)

Example (via suitmap.registry):
  python -m suitmap.registry prep-zones \
    --zones-shp data/raw/zones/regions.shp \
    --id-field REG_ID \
    --out-gpkg data/interim/vectors/zones.gpkg

Notes:
- Ids are normalized so "07", 7, and " 7 " all become 7.
- Ids must be positive: 0 is the nodata value of rasterized zone grids.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import List, Optional, Union

import geopandas as gpd
from shapely import make_valid

from suitmap.errors import NotFound
from suitmap.logging_utils import get_logger

logger = get_logger(__name__)

ZONE_ID = "zone_id"


# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------
# These are internal utilities. The public interface is read_zones()/prep_zones().

def _normalize_zone_id(x) -> Optional[int]:
    """Normalize a zone id attribute to an int.

    Handles ints, floats with no fraction (7.0), and strings like '07' or ' 7 '.
    Returns None for empty or non-integer inputs.
    """
    if x is None:
        return None
    if isinstance(x, float):
        if x != x or not x.is_integer():
            return None
        return int(x)
    if isinstance(x, int):
        return int(x)
    s = str(x).strip()
    m = re.fullmatch(r"[+-]?\d+(\.0+)?", s)
    if not m:
        return None
    return int(float(s))


def _make_valid(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Fix invalid geometries (self-intersections etc.) on a copy."""
    gdf = gdf.copy()
    invalid = ~gdf.geometry.is_valid
    if invalid.any():
        logger.warning("Repairing %d invalid geometries", int(invalid.sum()))
        gdf["geometry"] = gpd.GeoSeries(make_valid(gdf.geometry.to_numpy()), index=gdf.index, crs=gdf.crs)
    return gdf


def _compute_area_km2(gdf: gpd.GeoDataFrame, area_crs: str = "EPSG:6933") -> List[float]:
    """Compute polygon area in km² using an equal-area CRS.

    Default CRS is EPSG:6933 (WGS 84 / NSIDC EASE-Grid 2.0 Global), which
    is equal-area worldwide. Pass a regional equal-area CRS for better accuracy.
    """
    if gdf.crs is None:
        raise ValueError("Input geometries have no CRS; can't compute area safely.")
    tmp = gdf.to_crs(area_crs)
    return (tmp.geometry.area / 1_000_000.0).astype(float).tolist()


# -----------------------------------------------------------------------------
# Core functions (called by CLI or the pipeline)
# -----------------------------------------------------------------------------

def clean_zones(gdf: gpd.GeoDataFrame, id_field: str, source: str = "zones") -> gpd.GeoDataFrame:
    """Validate a GeoDataFrame as a Polygon Zone Set and return a cleaned copy.

    The id column is normalized into an integer 'zone_id' column. The
    original column is kept unless its name differs from 'zone_id' only by
    case. Empty geometries are dropped and invalid ones repaired.

    Raises ValueError on: no features, no CRS, missing id field, and
    non-integer, non-positive or duplicate ids.
    """
    if gdf.empty:
        raise ValueError(f"{source} contains zero features. Wrong file?")

    if gdf.crs is None:
        raise ValueError(
            f"{source} has no CRS (.prj missing or unreadable). "
            "Fix that first; everything downstream depends on CRS."
        )

    if id_field not in gdf.columns:
        raise ValueError(f"Zone id field '{id_field}' not found. Available columns: {list(gdf.columns)}")

    gdf = gdf[gdf.geometry.notna() & ~gdf.geometry.is_empty].copy()
    gdf[ZONE_ID] = gdf[id_field].apply(_normalize_zone_id)

    bad = gdf[gdf[ZONE_ID].isna()]
    if not bad.empty:
        sample = bad[id_field].astype(str).unique().tolist()[:10]
        raise ValueError(f"Zone ids in '{id_field}' must be integers; got {sample}")

    gdf[ZONE_ID] = gdf[ZONE_ID].astype("int64")

    if (gdf[ZONE_ID] <= 0).any():
        raise ValueError(f"Zone ids must be positive (0 is reserved for 'no zone') in {source}")

    dupes = gdf[gdf[ZONE_ID].duplicated()][ZONE_ID].unique().tolist()
    if dupes:
        raise ValueError(
            f"Duplicate zone ids {sorted(dupes)[:10]} in {source}. "
            "Dissolve multipart zones first (prep_zones(dissolve=True))."
        )

    # vector drivers compare field names case-insensitively
    clashing = [c for c in gdf.columns if c != ZONE_ID and c.lower() == ZONE_ID]
    if clashing:
        gdf = gdf.drop(columns=clashing)

    return _make_valid(gdf)


def read_zones(
    path: Union[str, Path],
    id_field: str,
    *,
    layer: Optional[str] = None,
    target_crs: Optional[str] = None,
) -> gpd.GeoDataFrame:
    """Read a vector file as a Polygon Zone Set (see clean_zones).

    Raises NotFound for a missing file.
    """
    path = Path(path)
    if not path.exists():
        raise NotFound(f"Zones file not found: {path}")

    raw = gpd.read_file(path, layer=layer) if layer else gpd.read_file(path)
    gdf = clean_zones(raw, id_field, source=str(path))

    if target_crs:
        gdf = gdf.to_crs(target_crs)

    logger.info("Read %d zones from %s (crs=%s)", len(gdf), path, gdf.crs)
    return gdf


def prep_zones(
    zones_shp: Path,
    out_gpkg: Path,
    *,
    id_field: str,
    name_field: Optional[str] = None,
    layer: str = "zones",
    target_crs: str = "EPSG:4326",
    area_crs: str = "EPSG:6933",
    dissolve: bool = False,
    qa_csv: Optional[Path] = None,
) -> gpd.GeoDataFrame:
    """Clean a zone file and write it as a GeoPackage.

    This is the main workhorse function. It:
    1. Reads the zone file
    2. Optionally dissolves features sharing an id (multipart zones)
    3. Validates ids and fixes geometries (clean_zones)
    4. Computes areas in km²
    5. Reprojects to target CRS
    6. Writes output GeoPackage (and optional QA CSV)

    Returns:
        The processed GeoDataFrame (also written to out_gpkg).
    """
    zones_shp = Path(zones_shp)
    if not zones_shp.exists():
        raise NotFound(f"Zones file not found: {zones_shp}")

    raw = gpd.read_file(zones_shp)

    # --- Optional dissolve ---
    # Useful when a zone is stored as several features (e.g., disjoint parts)
    if dissolve:
        if id_field not in raw.columns:
            raise ValueError(f"Zone id field '{id_field}' not found. Available columns: {list(raw.columns)}")
        raw = raw.copy()
        raw[id_field] = raw[id_field].apply(_normalize_zone_id)
        keep = [c for c in (name_field,) if c and c in raw.columns]
        raw = raw[[id_field] + keep + ["geometry"]].dissolve(by=id_field, as_index=False)

    out = clean_zones(raw, id_field, source=str(zones_shp))

    # --- Canonical columns ---
    if name_field:
        if name_field not in out.columns:
            raise ValueError(f"Name field '{name_field}' not found. Available columns: {list(out.columns)}")
        out["name"] = out[name_field].astype(str)
    else:
        out["name"] = ""

    out["area_km2"] = _compute_area_km2(out, area_crs=area_crs)
    out = out.to_crs(target_crs)

    keep_cols = [ZONE_ID, "name", "area_km2", "geometry"]
    out = out[keep_cols].copy()

    # --- Write outputs ---
    out_gpkg = Path(out_gpkg)
    out_gpkg.parent.mkdir(parents=True, exist_ok=True)
    out.to_file(out_gpkg, layer=layer, driver="GPKG")

    if qa_csv:
        qa_csv = Path(qa_csv)
        qa_csv.parent.mkdir(parents=True, exist_ok=True)
        out.drop(columns="geometry").to_csv(qa_csv, index=False)

    # --- Human-friendly summary ---
    print(f"Wrote {len(out)} zones -> {out_gpkg} (layer={layer})")
    for _, row in out.drop(columns="geometry").sort_values(ZONE_ID).iterrows():
        print(f"  - zone {row[ZONE_ID]} | area_km2={row['area_km2']:.1f} | {row['name']}")
    print(f"(Used id field: {id_field}; output CRS: {target_crs})")

    return out
