#!/usr/bin/env python3
"""suitmap.config

Shared configuration utilities for suitmap CLIs and the pipeline.

This module provides common helpers used across suitmap.ingest, suitmap.geo,
suitmap.registry and suitmap.pipeline.

Design notes:
- YAML loading is strict: files must exist and be valid mappings.
- Bboxes are plain (xmin, ymin, xmax, ymax) tuples everywhere.
- All functions are pure (no side effects on import).
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from suitmap.errors import NotFound

BBox = Tuple[float, float, float, float]


# -----------------------------------------------------------------------------
# YAML loading
# -----------------------------------------------------------------------------

def load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return as dict.

    Raises NotFound on a missing file and ValueError on a non-mapping
    document. Config errors should fail fast.
    """
    path = Path(path)
    if not path.exists():
        raise NotFound(f"Config not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Expected YAML mapping at {path}")
    return data


def get_section(cfg: Dict[str, Any], key: str) -> Dict[str, Any]:
    """Return cfg[key] as a dict (empty if absent).

    Raises ValueError if the key exists but isn't a mapping.
    """
    section = cfg.get(key)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ValueError(f"Config section '{key}' must be a mapping, got {type(section).__name__}")
    return section


def coerce_range(x: Any, name: str) -> Tuple[float, float]:
    """Coerce a two-element [lower, upper] config value into floats."""
    if not isinstance(x, (list, tuple)) or len(x) != 2:
        raise ValueError(f"'{name}' must be a [lower, upper] pair, got {x!r}")
    lower, upper = float(x[0]), float(x[1])
    if lower > upper:
        raise ValueError(f"'{name}' lower bound {lower} is above upper bound {upper}")
    return lower, upper


# -----------------------------------------------------------------------------
# Bounding box utilities
# -----------------------------------------------------------------------------
# Used by geo (crop windows) and the pipeline (optional AOI).

def coerce_bbox(x: Any) -> Optional[BBox]:
    """Try to coerce [xmin, ymin, xmax, ymax] into a bbox tuple.

    Returns None if input is invalid or missing.
    """
    if x is None:
        return None
    if isinstance(x, (list, tuple)) and len(x) == 4:
        try:
            xmin, ymin, xmax, ymax = map(float, x)
        except (TypeError, ValueError):
            return None
        if xmin > xmax or ymin > ymax:
            return None
        return (xmin, ymin, xmax, ymax)
    return None


def intersect_bbox(a: BBox, b: BBox) -> Optional[BBox]:
    """Intersection of two bboxes, or None when they don't overlap."""
    xmin = max(a[0], b[0])
    ymin = max(a[1], b[1])
    xmax = min(a[2], b[2])
    ymax = min(a[3], b[3])
    if xmin >= xmax or ymin >= ymax:
        return None
    return (xmin, ymin, xmax, ymax)


def format_bbox(b: BBox, precision: int = 5) -> str:
    """Format a bbox tuple as a readable string."""
    return f"[{b[0]:.{precision}f}, {b[1]:.{precision}f}, {b[2]:.{precision}f}, {b[3]:.{precision}f}]"


def resolve_path(value: Any, base: Optional[Path] = None) -> Optional[Path]:
    """Turn a config path string into a Path, relative to base if given."""
    if value is None or value == "":
        return None
    p = Path(str(value)).expanduser()
    if base is not None and not p.is_absolute():
        p = base / p
    return p


# -----------------------------------------------------------------------------
# Default paths
# -----------------------------------------------------------------------------
# Centralized so all CLIs use the same defaults.

DEFAULT_PIPELINE_YAML = Path("config/suitability.yaml")
DEFAULT_OUTPUT_DIR = Path("data/processed")
