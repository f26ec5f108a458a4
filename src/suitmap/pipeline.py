#!/usr/bin/env python3
"""suitmap.pipeline

End-to-end climate suitability run, driven by a YAML config.

Stages (strictly linear; the first failure stops the run):
1. discover + read the yearly temperature rasters
2. average them and convert units (Kelvin -> °C by default)
3. align the secondary raster onto the averaged grid
4. threshold both into binary masks and combine them
5. rasterize zones, mask to the zones, multiply by cell area, sum per zone

Every stage returns new Grids; the config object is never mutated.

Example config (see config/suitability.yaml):

    temperature:
      dir: data/raw/tmean
      pattern: "tmean_*.tif"
      range: [12, 18]
    secondary:
      path: data/raw/soil_ph.tif
      kind: continuous
      range: [2.6, 3.0]
    zones:
      path: data/raw/zones/zones.shp
      id_field: ZONE_ID
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import geopandas as gpd

from suitmap.config import (
    BBox,
    DEFAULT_OUTPUT_DIR,
    coerce_bbox,
    coerce_range,
    get_section,
    load_yaml,
    resolve_path,
)
from suitmap.geo.aggregate import KELVIN_OFFSET, mean_stack
from suitmap.geo.align import CONTINUOUS, align_grid, check_method, crop_grid, default_method
from suitmap.geo.classify import NODATA_POLICIES, combine, threshold
from suitmap.geo.zonal import AREA_UNITS, cell_area, join_zonal, mask_grid, rasterize_zones, zonal_sum
from suitmap.grid import Grid, describe_grid, read_grid, write_grid
from suitmap.ingest.discover import discover_rasters, load_stack
from suitmap.logging_utils import get_logger
from suitmap.registry.prep_zones import ZONE_ID, read_zones

logger = get_logger(__name__)


def _require(section: Dict[str, Any], name: str, key: str) -> Any:
    value = section.get(key)
    if value is None or value == "":
        raise ValueError(f"Config missing '{name}.{key}'")
    return value


@dataclass(frozen=True)
class PipelineConfig:
    """Everything a suitability run needs, resolved from YAML."""

    temperature_dir: Path
    temperature_pattern: str
    temperature_range: Tuple[float, float]
    secondary_path: Path
    secondary_range: Tuple[float, float]
    zones_path: Path
    zone_id_field: str
    temperature_scale: float = 1.0
    temperature_offset: float = KELVIN_OFFSET
    secondary_kind: str = CONTINUOUS
    secondary_method: Optional[str] = None
    zones_layer: Optional[str] = None
    nodata_policy: str = "propagate"
    area_unit: str = "km2"
    bounds: Optional[BBox] = None
    output_dir: Path = DEFAULT_OUTPUT_DIR
    write_grids: bool = False
    write_tables: bool = True
    overwrite: bool = False
    result_column: str = "suitable_km2"

    def __post_init__(self) -> None:
        if self.nodata_policy not in NODATA_POLICIES:
            raise ValueError(
                f"combine.nodata_policy must be one of {NODATA_POLICIES}, got '{self.nodata_policy}'"
            )
        if self.area_unit not in AREA_UNITS:
            raise ValueError(f"area.unit must be one of {tuple(AREA_UNITS)}, got '{self.area_unit}'")
        check_method(self.method, self.secondary_kind)

    @property
    def method(self) -> str:
        return self.secondary_method or default_method(self.secondary_kind)

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any], base_dir: Optional[Path] = None) -> "PipelineConfig":
        temp = get_section(cfg, "temperature")
        sec = get_section(cfg, "secondary")
        zones = get_section(cfg, "zones")
        comb = get_section(cfg, "combine")
        area = get_section(cfg, "area")
        outputs = get_section(cfg, "outputs")

        bounds = None
        if cfg.get("bounds") is not None:
            bounds = coerce_bbox(cfg.get("bounds"))
            if bounds is None:
                raise ValueError(f"'bounds' must be [xmin, ymin, xmax, ymax], got {cfg.get('bounds')!r}")

        return cls(
            temperature_dir=resolve_path(_require(temp, "temperature", "dir"), base_dir),
            temperature_pattern=str(temp.get("pattern", "*.tif")),
            temperature_range=coerce_range(_require(temp, "temperature", "range"), "temperature.range"),
            temperature_scale=float(temp.get("scale", 1.0)),
            temperature_offset=float(temp.get("offset", KELVIN_OFFSET)),
            secondary_path=resolve_path(_require(sec, "secondary", "path"), base_dir),
            secondary_range=coerce_range(_require(sec, "secondary", "range"), "secondary.range"),
            secondary_kind=str(sec.get("kind", CONTINUOUS)),
            secondary_method=sec.get("method"),
            zones_path=resolve_path(_require(zones, "zones", "path"), base_dir),
            zone_id_field=str(_require(zones, "zones", "id_field")),
            zones_layer=zones.get("layer"),
            nodata_policy=str(comb.get("nodata_policy", "propagate")),
            area_unit=str(area.get("unit", "km2")),
            bounds=bounds,
            output_dir=resolve_path(outputs.get("dir"), base_dir) or DEFAULT_OUTPUT_DIR,
            write_grids=bool(outputs.get("write_grids", False)),
            write_tables=bool(outputs.get("write_tables", True)),
            overwrite=bool(outputs.get("overwrite", False)),
            result_column=str(outputs.get("column", "suitable_km2")),
        )

    @classmethod
    def from_yaml(cls, path: Path, base_dir: Optional[Path] = None) -> "PipelineConfig":
        return cls.from_dict(load_yaml(path), base_dir=base_dir)


@dataclass(frozen=True)
class SuitabilityResult:
    """Intermediate grids and final per-zone table of a run."""

    temperature: Grid
    temperature_mask: Grid
    secondary: Grid
    secondary_mask: Grid
    suitability: Grid
    zone_grid: Grid
    suitable_area: Grid
    by_zone: Dict[int, float]
    zones: gpd.GeoDataFrame
    outputs: Dict[str, Path] = field(default_factory=dict)


# Intermediate grids written when outputs.write_grids is set, by file stem
GRID_OUTPUTS = (
    "temperature_mean",
    "temperature_mask",
    "secondary_aligned",
    "secondary_mask",
    "suitability",
    "zones",
    "suitable_area",
)


def _output_paths(cfg: PipelineConfig) -> Dict[str, Path]:
    out_dir = cfg.output_dir
    paths: Dict[str, Path] = {}
    if cfg.write_grids:
        for name in GRID_OUTPUTS:
            paths[name] = out_dir / f"{name}.tif"
    if cfg.write_tables:
        paths["table"] = out_dir / "zonal_suitability.csv"
        paths["table_gpkg"] = out_dir / "zonal_suitability.gpkg"
    return paths


def _check_outputs(cfg: PipelineConfig) -> Dict[str, Path]:
    """Planned output paths; refuses up front if any already exists."""
    paths = _output_paths(cfg)
    if not cfg.overwrite:
        existing = [p for p in paths.values() if p.exists()]
        if existing:
            raise FileExistsError(
                f"Refusing to overwrite existing outputs (set outputs.overwrite): "
                f"{', '.join(str(p) for p in existing)}"
            )
    return paths


def _write_outputs(
    paths: Dict[str, Path],
    grids: Dict[str, Grid],
    table: gpd.GeoDataFrame,
) -> Dict[str, Path]:
    written: Dict[str, Path] = {}

    for name, path in paths.items():
        if name in grids:
            written[name] = write_grid(grids[name], path, overwrite=True)

    if "table" in paths:
        csv_path = paths["table"]
        gpkg_path = paths["table_gpkg"]
        csv_path.parent.mkdir(parents=True, exist_ok=True)
        table.drop(columns="geometry").to_csv(csv_path, index=False)
        if gpkg_path.exists():
            gpkg_path.unlink()
        table.to_file(gpkg_path, layer="zonal_suitability", driver="GPKG")
        written["table"] = csv_path
        written["table_gpkg"] = gpkg_path

    return written


def run_suitability(cfg: PipelineConfig) -> SuitabilityResult:
    """Run all stages and return every intermediate plus the zone table."""
    t0 = time.time()
    logger.info("Starting suitability run -> %s", cfg.output_dir)
    out_paths = _check_outputs(cfg)

    # --- 1-2. Temperature series -> mean ---
    paths = discover_rasters(cfg.temperature_dir, cfg.temperature_pattern)
    stack = load_stack(paths)
    temperature = mean_stack(stack, scale=cfg.temperature_scale, offset=cfg.temperature_offset)
    if cfg.bounds:
        temperature = crop_grid(temperature, cfg.bounds)
    logger.info("Reference grid: %s", describe_grid(temperature))

    t_lo, t_hi = cfg.temperature_range
    temperature_mask = threshold(temperature, t_lo, t_hi)

    # --- 3. Secondary variable onto the temperature grid ---
    secondary = align_grid(
        read_grid(cfg.secondary_path),
        temperature,
        method=cfg.method,
        kind=cfg.secondary_kind,
    )
    s_lo, s_hi = cfg.secondary_range
    secondary_mask = threshold(secondary, s_lo, s_hi)

    # --- 4. Combine ---
    suitability = combine(temperature_mask, secondary_mask, nodata_policy=cfg.nodata_policy)

    # --- 5. Zones ---
    zones = read_zones(cfg.zones_path, cfg.zone_id_field, layer=cfg.zones_layer)
    zone_grid = rasterize_zones(zones, suitability, id_field=ZONE_ID)
    in_zones = mask_grid(suitability, zones)
    area = cell_area(suitability, unit=cfg.area_unit)
    suitable_area = combine(in_zones, area, nodata_policy=cfg.nodata_policy)

    by_zone = zonal_sum(suitable_area, zone_grid)
    joined = join_zonal(zones, by_zone, id_field=ZONE_ID, column=cfg.result_column)

    grids = {
        "temperature_mean": temperature,
        "temperature_mask": temperature_mask,
        "secondary_aligned": secondary,
        "secondary_mask": secondary_mask,
        "suitability": suitability,
        "zones": zone_grid,
        "suitable_area": suitable_area,
    }
    outputs = _write_outputs(out_paths, grids, joined)

    result = SuitabilityResult(
        temperature=temperature,
        temperature_mask=temperature_mask,
        secondary=secondary,
        secondary_mask=secondary_mask,
        suitability=suitability,
        zone_grid=zone_grid,
        suitable_area=suitable_area,
        by_zone=by_zone,
        zones=joined,
        outputs=outputs,
    )

    logger.info(
        "Suitability run finished in %.1fs: %d zones, %.3f %s suitable in total",
        time.time() - t0, len(by_zone), sum(by_zone.values()), cfg.area_unit,
    )
    return result
