#!/usr/bin/env python3
"""suitmap.ingest

Input discovery CLI for suitmap.

This is one of several suitmap subsystem CLIs:
- suitmap.registry → zone preparation
- suitmap.ingest   → raster discovery and input checks (this file)
- suitmap.geo      → raster processing and the full run

Design goals:
- Show exactly which files a series pattern picks up, in order
- Verify every input a pipeline config names before a long run

Examples:
  # List the yearly series
  python -m suitmap.ingest list --dir data/raw/tmean --pattern "tmean_*.tif"

  # Verify that all inputs of a run exist
  python -m suitmap.ingest verify --config config/suitability.yaml
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from suitmap.config import DEFAULT_PIPELINE_YAML
from suitmap.errors import NotFound, SuitmapError
from suitmap.ingest.discover import discover_rasters
from suitmap.logging_utils import setup_logging


# -----------------------------
# Verify helpers (lightweight)
# -----------------------------

def _verify_series(directory: Path, pattern: str) -> Dict[str, Any]:
    try:
        matches = discover_rasters(directory, pattern)
    except NotFound as e:
        return {"input": "temperature", "ok": False, "rule": "glob", "reason": str(e)}
    return {
        "input": "temperature",
        "ok": True,
        "rule": "glob",
        "count": len(matches),
        "sample": [str(p) for p in matches[:5]],
    }


def _verify_file(name: str, path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {"input": name, "ok": False, "rule": "file", "reason": f"missing file: {path}"}
    return {"input": name, "ok": True, "rule": "file", "sample": [str(path)]}


def verify_inputs(cfg) -> List[Dict[str, Any]]:
    """Presence checks for every input a PipelineConfig names.

    This is intentionally conservative: it won't claim correctness, just presence.
    """
    return [
        _verify_series(cfg.temperature_dir, cfg.temperature_pattern),
        _verify_file("secondary", cfg.secondary_path),
        _verify_file("zones", cfg.zones_path),
    ]


# -----------------------------
# CLI
# -----------------------------

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="suitmap.ingest", description="Input discovery for suitmap")

    ap.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )

    sub = ap.add_subparsers(dest="command", required=True)

    # --- list ---
    lst = sub.add_parser("list", help="List rasters matching a pattern, in series order")
    lst.add_argument("--dir", required=True, type=Path, help="Directory holding the series")
    lst.add_argument("--pattern", default="*.tif", help="Glob pattern (default: *.tif)")

    # --- verify ---
    ver = sub.add_parser("verify", help="Verify that all inputs of a pipeline config exist")
    ver.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_PIPELINE_YAML,
        help=f"Pipeline YAML (default: {DEFAULT_PIPELINE_YAML})",
    )
    ver.add_argument("--json", action="store_true", help="Emit JSON to stdout")

    return ap


def _handle_list(args: argparse.Namespace) -> int:
    paths = discover_rasters(args.dir, args.pattern)
    for p in paths:
        print(p)
    print(f"{len(paths)} rasters")
    return 0


def _handle_verify(args: argparse.Namespace) -> int:
    # Lazy import: the pipeline pulls in geopandas
    from suitmap.pipeline import PipelineConfig

    cfg = PipelineConfig.from_yaml(args.config)
    results = verify_inputs(cfg)
    ok = all(r.get("ok") for r in results)

    if args.json:
        print(json.dumps({"ok": ok, "results": results}, indent=2))
    else:
        for r in results:
            status = "OK" if r.get("ok") else "MISSING"
            print(f"[{status}] {r['input']} ({r.get('rule', '?')})")
            if "reason" in r:
                print(f"  - reason: {r['reason']}")
            if "count" in r:
                print(f"  - count: {r['count']}")
            for s in r.get("sample", []):
                print(f"    - {s}")
        print(f"Overall: {'OK' if ok else 'NOT OK'}")
    return 0 if ok else 2


def main(argv: Optional[List[str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)

    setup_logging(args.log_level, format_style="simple")

    handlers = {
        "list": _handle_list,
        "verify": _handle_verify,
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
