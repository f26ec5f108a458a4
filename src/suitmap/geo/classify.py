#!/usr/bin/env python3
"""classify.py

Turn value grids into suitability masks and combine them.

Reclassification rules use pandas' Interval vocabulary for boundaries:
closed in {"both", "left", "right", "neither"}. Rules must tile the value
line without overlaps or gaps between neighbours; values beyond the first
and last rule map to nodata.

threshold_rules(lower, upper) is the common case: the suitable band
[lower, upper] is closed on BOTH ends, everything below or above is nodata.
So with [2.6, 3.0]:

    1.0 -> nodata, 2.6 -> 1, 2.9 -> 1, 3.0 -> 1, 5.0 -> nodata

combine() multiplies two masks cell by cell (logical AND for 0/1 masks).
How nodata behaves is set by nodata_policy:
- "propagate" (default): nodata in either input -> nodata
- "zero": nodata counts as 0, so the output holds only 0 and 1
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from suitmap.errors import InvalidRange
from suitmap.grid import Grid, check_aligned
from suitmap.logging_utils import get_logger

logger = get_logger(__name__)

CLOSED_OPTIONS = ("both", "left", "right", "neither")
NODATA_POLICIES = ("propagate", "zero")


@dataclass(frozen=True)
class ReclassRule:
    """Map values in an interval to a new value (None = nodata)."""

    lower: float
    upper: float
    value: Optional[float]
    closed: str = "both"

    @property
    def closed_left(self) -> bool:
        return self.closed in ("both", "left")

    @property
    def closed_right(self) -> bool:
        return self.closed in ("both", "right")

    def contains(self, values: np.ndarray) -> np.ndarray:
        lo = values >= self.lower if self.closed_left else values > self.lower
        hi = values <= self.upper if self.closed_right else values < self.upper
        return lo & hi

    def __str__(self) -> str:
        left = "[" if self.closed_left else "("
        right = "]" if self.closed_right else ")"
        target = "nodata" if self.value is None else f"{self.value:g}"
        return f"{left}{self.lower:g}, {self.upper:g}{right} -> {target}"


def validate_rules(rules: Sequence[ReclassRule]) -> List[ReclassRule]:
    """Check rules and return them sorted by lower bound.

    Raises InvalidRange on malformed, empty, overlapping, or gapped rules.
    """
    if not rules:
        raise InvalidRange("At least one reclassification rule is required")

    for r in rules:
        if r.closed not in CLOSED_OPTIONS:
            raise InvalidRange(f"Rule {r!r}: closed must be one of {CLOSED_OPTIONS}")
        if math.isnan(r.lower) or math.isnan(r.upper):
            raise InvalidRange(f"Rule {r}: bounds must not be NaN")
        if r.lower > r.upper:
            raise InvalidRange(f"Rule {r}: lower bound above upper bound")
        if r.lower == r.upper and r.closed != "both":
            raise InvalidRange(f"Rule {r}: empty interval")

    ordered = sorted(rules, key=lambda r: (r.lower, not r.closed_left))

    for prev, cur in zip(ordered, ordered[1:]):
        if cur.lower < prev.upper:
            raise InvalidRange(f"Rules overlap: {prev} and {cur}")
        if cur.lower > prev.upper:
            raise InvalidRange(f"Gap between rules: {prev} and {cur}")
        # shared edge: exactly one side may own it
        if prev.closed_right and cur.closed_left:
            raise InvalidRange(f"Rules overlap at {cur.lower:g}: {prev} and {cur}")
        if not prev.closed_right and not cur.closed_left:
            raise InvalidRange(f"Value {cur.lower:g} falls between rules {prev} and {cur}")

    return ordered


def threshold_rules(lower: float, upper: float, value: float = 1.0) -> List[ReclassRule]:
    """Rules keeping [lower, upper] as value and everything else as nodata."""
    if lower > upper:
        raise InvalidRange(f"Threshold lower bound {lower} is above upper bound {upper}")
    rules = [ReclassRule(lower, upper, value, closed="both")]
    # an infinite bound leaves nothing on that side
    if lower > -np.inf:
        rules.insert(0, ReclassRule(-np.inf, lower, None, closed="neither"))
    if upper < np.inf:
        rules.append(ReclassRule(upper, np.inf, None, closed="neither"))
    return rules


def reclassify(
    grid: Grid,
    rules: Sequence[ReclassRule],
    nodata: float = float("nan"),
) -> Grid:
    """Replace each valid cell with the value of the rule containing it.

    Cells matching no rule, rules mapping to None, and input nodata all
    become nodata in the output.
    """
    ordered = validate_rules(rules)

    values = grid.masked()
    valid = ~np.isnan(values)
    out = np.full(grid.shape, nodata, dtype="float64")

    for rule in ordered:
        hit = valid & rule.contains(values)
        out[hit] = nodata if rule.value is None else rule.value

    logger.info(
        "Reclassified with %d rules: %s",
        len(ordered), "; ".join(str(r) for r in ordered),
    )
    return grid.with_data(out, nodata=nodata)


def threshold(grid: Grid, lower: float, upper: float, value: float = 1.0) -> Grid:
    """Binary mask: value where lower <= cell <= upper, nodata elsewhere."""
    return reclassify(grid, threshold_rules(lower, upper, value=value))


def combine(a: Grid, b: Grid, nodata_policy: str = "propagate") -> Grid:
    """Elementwise product of two aligned masks (AND for 0/1 masks)."""
    if nodata_policy not in NODATA_POLICIES:
        raise ValueError(
            f"Unknown nodata_policy '{nodata_policy}'. Choose from: {', '.join(NODATA_POLICIES)}"
        )
    check_aligned(a, b, context="combine")

    va = a.masked()
    vb = b.masked()

    if nodata_policy == "zero":
        out = np.nan_to_num(va, nan=0.0) * np.nan_to_num(vb, nan=0.0)
    else:
        # NaN propagates through the product
        out = va * vb

    return a.with_data(out, nodata=float("nan"))
