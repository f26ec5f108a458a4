#!/usr/bin/env python3
"""suitmap.registry

Zone definition CLI for suitmap.

This is one of several suitmap subsystem CLIs:
- suitmap.registry → zone preparation (this file)
- suitmap.ingest   → raster discovery and input checks
- suitmap.geo      → raster processing and the full run

suitmap.registry turns a raw zone shapefile into the canonical zone
GeoPackage the rest of the pipeline reads: integer ids, valid geometry,
an area column, one CRS.

Examples:
  python -m suitmap.registry prep-zones \
    --zones-shp data/raw/zones/zones.shp --id-field ZONE_ID --name-field NAME
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import List, Optional

from suitmap.errors import SuitmapError
from suitmap.logging_utils import setup_logging


# -----------------------------------------------------------------------------
# Default output paths
# -----------------------------------------------------------------------------

DEFAULT_ZONES_GPKG = Path("data/interim/vectors/zones.gpkg")


# -----------------------------------------------------------------------------
# CLI structure
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for suitmap.registry."""
    ap = argparse.ArgumentParser(
        prog="suitmap.registry",
        description="Zone preparation for suitmap",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    # --- Global args ---
    ap.add_argument(
        "--dry-run",
        action="store_true",
        help="Print planned actions without writing files",
    )
    ap.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    # --- Subcommands ---
    sub = ap.add_subparsers(dest="command", required=True)

    # --- prep-zones ---
    prep = sub.add_parser(
        "prep-zones",
        help="Clean a zone shapefile into a GeoPackage",
        description="""
Process a zone shapefile into the canonical zone GeoPackage.

This command:
1. Reads the shapefile
2. Optionally dissolves features sharing an id
3. Normalizes ids and fixes invalid geometries
4. Computes areas and reprojects to target CRS
5. Writes the GeoPackage (and optional QA CSV)
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    prep.add_argument("--zones-shp", required=True, type=Path, help="Input zone shapefile / GeoPackage")
    prep.add_argument("--id-field", required=True, help="Column holding the integer zone id")
    prep.add_argument("--name-field", default=None, help="Optional column holding a zone name")
    prep.add_argument(
        "--out-gpkg",
        type=Path,
        default=DEFAULT_ZONES_GPKG,
        help=f"Output GeoPackage path (default: {DEFAULT_ZONES_GPKG})",
    )
    prep.add_argument("--layer", default="zones", help="Layer name in output GeoPackage (default: zones)")
    prep.add_argument("--target-crs", default="EPSG:4326", help="Output CRS (default: EPSG:4326 / WGS84)")
    prep.add_argument(
        "--area-crs",
        default="EPSG:6933",
        help="Equal-area CRS for area calculations (default: EPSG:6933)",
    )
    prep.add_argument("--dissolve", action="store_true", help="Dissolve features sharing an id")
    prep.add_argument("--qa-csv", type=Path, default=None, help="Optional path to write QA summary CSV")

    return ap


# -----------------------------------------------------------------------------
# Command handlers
# -----------------------------------------------------------------------------

def _handle_prep_zones(args: argparse.Namespace) -> int:
    """Handle the prep-zones subcommand."""
    if args.dry_run:
        print("[dry-run] Would prepare zones:")
        print(f"  Input shapefile: {args.zones_shp}")
        print(f"  Id field: {args.id_field}")
        print(f"  Output GeoPackage: {args.out_gpkg}")
        print(f"  Dissolve: {args.dissolve}")
        return 0

    # Lazy import to keep CLI startup fast
    from suitmap.registry.prep_zones import prep_zones

    prep_zones(
        zones_shp=args.zones_shp,
        out_gpkg=args.out_gpkg,
        id_field=args.id_field,
        name_field=args.name_field,
        layer=args.layer,
        target_crs=args.target_crs,
        area_crs=args.area_crs,
        dissolve=args.dissolve,
        qa_csv=args.qa_csv,
    )
    return 0


# -----------------------------------------------------------------------------
# Main entrypoint
# -----------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    """Main entrypoint for suitmap.registry CLI."""
    ap = build_parser()
    args = ap.parse_args(argv)

    setup_logging(args.log_level)

    handlers = {
        "prep-zones": _handle_prep_zones,
    }

    handler = handlers.get(args.command)
    if handler is None:
        raise SystemExit(f"Unknown command: {args.command}")

    try:
        return handler(args)
    except (SuitmapError, ValueError) as e:
        raise SystemExit(f"[{args.command}] {e}") from e


if __name__ == "__main__":
    raise SystemExit(main())
