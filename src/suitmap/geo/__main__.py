#!/usr/bin/env python3
"""suitmap.geo

Raster processing CLI for suitmap.

This is one of several suitmap subsystem CLIs:
- suitmap.registry → zone preparation (prep-zones)
- suitmap.ingest   → raster discovery and input checks
- suitmap.geo      → raster processing and the full run (this file)

Each subcommand wraps one stage so it can be run and inspected on its
own; `run` chains all of them from a YAML config.

Design notes:
- Lazy-imports geo modules to keep CLI startup fast
- Library errors (suitmap.errors) become a clean SystemExit message
- All subcommands support --dry-run for safe exploration

Examples:
  # Average a yearly series (Kelvin -> °C)
  python -m suitmap.geo mean-stack --dir data/raw/tmean --pattern "tmean_*.tif" \
    --out data/processed/tmean_mean.tif

  # Align a second raster onto the averaged grid
  python -m suitmap.geo align --src data/raw/soil_ph.tif \
    --reference data/processed/tmean_mean.tif --out data/processed/ph_aligned.tif

  # Threshold into a binary mask
  python -m suitmap.geo threshold --src data/processed/ph_aligned.tif \
    --lower 2.6 --upper 3.0 --out data/processed/ph_mask.tif

  # Per-zone statistics
  python -m suitmap.geo zonal-stats --values data/processed/ph_mask.tif \
    --zones data/raw/zones/zones.shp --id-field ZONE_ID --stats sum count

  # Everything, from config
  python -m suitmap.geo run --config config/suitability.yaml
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import List, Optional

from suitmap.config import DEFAULT_PIPELINE_YAML
from suitmap.errors import SuitmapError
from suitmap.logging_utils import setup_logging


# -----------------------------------------------------------------------------
# CLI structure
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for suitmap.geo.

    Structure:
    - Global args: apply to all subcommands (--dry-run, --overwrite, logging)
    - Subcommands: one per stage, plus `run` for the full pipeline
    """
    ap = argparse.ArgumentParser(
        prog="suitmap.geo",
        description="Raster processing for suitmap",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Subsystem CLIs:
  python -m suitmap.registry  # Zone preparation
  python -m suitmap.ingest    # Raster discovery / input checks
  python -m suitmap.geo       # Raster processing (this)
        """,
    )

    # --- Global args ---
    ap.add_argument(
        "--dry-run",
        action="store_true",
        help="Print planned actions without writing files",
    )
    ap.add_argument(
        "--overwrite",
        action="store_true",
        help="Overwrite existing output files",
    )
    ap.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    ap.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Optional log file (in addition to stdout)",
    )

    # --- Subcommands ---
    sub = ap.add_subparsers(dest="command", required=True)

    # --- mean-stack ---
    mean = sub.add_parser(
        "mean-stack",
        help="Average a series of aligned rasters",
        description="""
Average every raster matching --pattern in --dir, skipping nodata per cell,
then convert units as value * scale + offset (default: Kelvin -> °C).
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    mean.add_argument("--dir", required=True, type=Path, help="Directory holding the series")
    mean.add_argument("--pattern", default="*.tif", help="Glob pattern (default: *.tif)")
    mean.add_argument("--out", required=True, type=Path, help="Output GeoTIFF")
    mean.add_argument("--scale", type=float, default=1.0, help="Scale applied to the mean (default: 1.0)")
    mean.add_argument("--offset", type=float, default=-273.15, help="Offset applied after scaling (default: -273.15)")

    # --- align ---
    align = sub.add_parser(
        "align",
        help="Reproject, crop and resample a raster onto a reference raster",
    )
    align.add_argument("--src", required=True, type=Path, help="Raster to align")
    align.add_argument("--reference", required=True, type=Path, help="Reference raster (target grid)")
    align.add_argument("--out", required=True, type=Path, help="Output GeoTIFF")
    align.add_argument("--kind", choices=["continuous", "categorical"], default="continuous",
                       help="What the values mean (default: continuous)")
    align.add_argument("--method", default=None,
                       help="Resampling method (default: bilinear for continuous, nearest for categorical)")

    # --- threshold ---
    thr = sub.add_parser(
        "threshold",
        help="Binary mask of cells within [lower, upper]",
    )
    thr.add_argument("--src", required=True, type=Path, help="Input raster")
    thr.add_argument("--lower", required=True, type=float, help="Lower bound (inclusive)")
    thr.add_argument("--upper", required=True, type=float, help="Upper bound (inclusive)")
    thr.add_argument("--out", required=True, type=Path, help="Output GeoTIFF")

    # --- zonal-stats ---
    zonal = sub.add_parser(
        "zonal-stats",
        help="Compute zonal statistics per zone",
        description="""
Rasterize zone polygons onto the value raster's grid and compute
statistics of the value cells in each zone.
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    zonal.add_argument("--values", required=True, type=Path, help="Value raster")
    zonal.add_argument("--zones", required=True, type=Path, help="Zone shapefile / GeoPackage")
    zonal.add_argument("--id-field", required=True, help="Zone id column")
    zonal.add_argument("--stats", nargs="+", default=["sum"],
                       help="Statistics to compute (default: sum)")
    zonal.add_argument("--out-csv", type=Path, default=None, help="Optional CSV output")

    # --- run ---
    run = sub.add_parser(
        "run",
        help="Run the full suitability pipeline from a YAML config",
    )
    run.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_PIPELINE_YAML,
        help=f"Pipeline YAML (default: {DEFAULT_PIPELINE_YAML})",
    )

    return ap


# -----------------------------------------------------------------------------
# Command handlers
# -----------------------------------------------------------------------------
# Each subcommand gets a handler function that:
# 1. Handles --dry-run
# 2. Lazy-imports the implementation module
# 3. Calls the core function with parsed args

def _handle_mean_stack(args: argparse.Namespace) -> int:
    from suitmap.ingest.discover import discover_rasters, load_stack

    paths = discover_rasters(args.dir, args.pattern)

    if args.dry_run:
        print(f"[dry-run] Would average {len(paths)} rasters:")
        for p in paths:
            print(f"  - {p}")
        print(f"  Output: {args.out}")
        return 0

    from suitmap.geo.aggregate import mean_stack
    from suitmap.grid import write_grid

    grid = mean_stack(load_stack(paths), scale=args.scale, offset=args.offset)
    write_grid(grid, args.out, overwrite=args.overwrite)
    print(f"Wrote mean of {len(paths)} rasters -> {args.out}")
    return 0


def _handle_align(args: argparse.Namespace) -> int:
    if args.dry_run:
        print("[dry-run] Would align:")
        print(f"  Source: {args.src}")
        print(f"  Reference: {args.reference}")
        print(f"  Kind/method: {args.kind} / {args.method or 'default'}")
        print(f"  Output: {args.out}")
        return 0

    from suitmap.geo.align import align_grid
    from suitmap.grid import describe_grid, read_grid, write_grid

    reference = read_grid(args.reference)
    aligned = align_grid(read_grid(args.src), reference, method=args.method, kind=args.kind)
    write_grid(aligned, args.out, overwrite=args.overwrite)
    print(f"Wrote aligned raster -> {args.out}")
    print(f"  {describe_grid(aligned)}")
    return 0


def _handle_threshold(args: argparse.Namespace) -> int:
    if args.dry_run:
        print(f"[dry-run] Would threshold {args.src} to [{args.lower}, {args.upper}] -> {args.out}")
        return 0

    import numpy as np

    from suitmap.geo.classify import threshold
    from suitmap.grid import read_grid, write_grid

    mask = threshold(read_grid(args.src), args.lower, args.upper)
    write_grid(mask, args.out, overwrite=args.overwrite)
    n_suitable = int(np.sum(mask.valid_mask()))
    print(f"Wrote mask -> {args.out} ({n_suitable}/{mask.data.size} cells within range)")
    return 0


def _handle_zonal_stats(args: argparse.Namespace) -> int:
    if args.dry_run:
        print("[dry-run] Would compute zonal stats:")
        print(f"  Values: {args.values}")
        print(f"  Zones: {args.zones} (id field: {args.id_field})")
        print(f"  Stats: {' '.join(args.stats)}")
        return 0

    from suitmap.geo.zonal import rasterize_zones, zonal_stats
    from suitmap.grid import read_grid
    from suitmap.registry.prep_zones import ZONE_ID, read_zones

    values = read_grid(args.values)
    zones = read_zones(args.zones, args.id_field)
    zone_grid = rasterize_zones(zones, values, id_field=ZONE_ID)
    table = zonal_stats(values, zone_grid, stats=args.stats)

    print(table.to_string())
    if args.out_csv:
        if args.out_csv.exists() and not args.overwrite:
            raise SystemExit(f"Output exists (use --overwrite): {args.out_csv}")
        args.out_csv.parent.mkdir(parents=True, exist_ok=True)
        table.to_csv(args.out_csv)
        print(f"Wrote zonal stats -> {args.out_csv}")
    return 0


def _handle_run(args: argparse.Namespace) -> int:
    from dataclasses import replace

    from suitmap.pipeline import PipelineConfig, run_suitability

    cfg = PipelineConfig.from_yaml(args.config)
    if args.overwrite:
        cfg = replace(cfg, overwrite=True)

    if args.dry_run:
        print("[dry-run] Would run suitability pipeline:")
        print(f"  Temperature: {cfg.temperature_dir}/{cfg.temperature_pattern} range={cfg.temperature_range}")
        print(f"  Secondary: {cfg.secondary_path} ({cfg.secondary_kind}, {cfg.method}) range={cfg.secondary_range}")
        print(f"  Zones: {cfg.zones_path} (id field: {cfg.zone_id_field})")
        print(f"  Nodata policy: {cfg.nodata_policy}")
        print(f"  Output dir: {cfg.output_dir}")
        return 0

    result = run_suitability(cfg)

    print(f"Suitable area per zone ({cfg.area_unit}):")
    for zid in sorted(result.by_zone):
        print(f"  - zone {zid}: {result.by_zone[zid]:.3f}")
    for name, path in result.outputs.items():
        print(f"Wrote {name} -> {path}")
    return 0


# -----------------------------------------------------------------------------
# Main entrypoint
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    """Main entrypoint for suitmap.geo CLI."""
    ap = build_parser()
    args = ap.parse_args(argv)

    setup_logging(args.log_level, log_file=args.log_file)

    handlers = {
        "mean-stack": _handle_mean_stack,
        "align": _handle_align,
        "threshold": _handle_threshold,
        "zonal-stats": _handle_zonal_stats,
        "run": _handle_run,
    }

    handler = handlers.get(args.command)
    if handler is None:
        raise SystemExit(f"Unknown command: {args.command}")

    try:
        return handler(args)
    except (SuitmapError, ValueError, FileExistsError) as e:
        raise SystemExit(f"[{args.command}] {e}") from e


if __name__ == "__main__":
    raise SystemExit(main())
