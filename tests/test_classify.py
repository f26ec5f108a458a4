#!/usr/bin/env python3

from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest

# Ensure we can import from src/ without installing the package
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from suitmap.errors import InvalidRange, ShapeMismatch
from suitmap.geo.classify import ReclassRule, combine, reclassify, threshold, validate_rules
from suitmap.grid import grid_from_array

ND = -9999.0


def _row(values, crs="EPSG:4326", nodata=ND):
    values = np.asarray(values, dtype="float64")
    return grid_from_array(values, (0, 0, values.size, 1), crs, nodata=nodata)


def _mask_values(grid):
    """Cell values with nodata as None, for readable asserts."""
    valid = grid.valid_mask().ravel()
    return [float(v) if ok else None for v, ok in zip(grid.data.ravel(), valid)]


# -----------------------------------------------------------------------------
# Threshold / reclassify
# -----------------------------------------------------------------------------

def test_threshold_band_is_closed_on_both_ends():
    mask = threshold(_row([1.0, 2.6, 2.9, 3.0, 5.0]), 2.6, 3.0)
    assert _mask_values(mask) == [None, 1.0, 1.0, 1.0, None]


def test_explicit_rules_match_threshold():
    rules = [
        ReclassRule(-np.inf, 2.6, None, closed="neither"),
        ReclassRule(2.6, 3.0, 1.0, closed="both"),
        ReclassRule(3.0, np.inf, None, closed="neither"),
    ]
    grid = _row([1.0, 2.6, 2.9, 3.0, 5.0])
    np.testing.assert_array_equal(
        reclassify(grid, rules).valid_mask(),
        threshold(grid, 2.6, 3.0).valid_mask(),
    )


def test_multi_class_boundaries():
    rules = [
        ReclassRule(0, 10, 1, closed="left"),
        ReclassRule(10, 20, 2, closed="left"),
        ReclassRule(20, 30, 3, closed="both"),
    ]
    out = reclassify(_row([-1, 0, 9.99, 10, 19.99, 20, 30, 30.01]), rules)
    assert _mask_values(out) == [None, 1.0, 1.0, 2.0, 2.0, 3.0, 3.0, None]


def test_rules_are_order_independent():
    rules = [
        ReclassRule(10, 20, 2, closed="right"),
        ReclassRule(0, 10, 1, closed="both"),
    ]
    out = reclassify(_row([0, 10, 10.5, 20]), rules)
    assert _mask_values(out) == [1.0, 1.0, 2.0, 2.0]


def test_input_nodata_stays_nodata_and_input_untouched():
    grid = _row([ND, 15.0, np.nan, 11.0])
    before = grid.data.copy()

    out = threshold(grid, 12, 18)
    assert _mask_values(out) == [None, 1.0, None, None]
    np.testing.assert_array_equal(grid.data, before)


def test_every_valid_cell_is_classified():
    rng = np.random.default_rng(1)
    values = rng.uniform(-50, 50, size=200)
    out = threshold(_row(values), -5, 5)
    inside = (values >= -5) & (values <= 5)
    np.testing.assert_array_equal(out.valid_mask().ravel(), inside)
    assert np.all(out.data.ravel()[inside] == 1.0)


def test_threshold_with_custom_value():
    out = threshold(_row([1.0, 2.0]), 0, 1.5, value=3.0)
    assert _mask_values(out) == [3.0, None]

def test_threshold_open_below():
    out = threshold(_row([1.0, 5.0, 9.0]), -np.inf, 5.0)
    assert _mask_values(out) == [1.0, 1.0, None]


def test_threshold_open_above():
    out = threshold(_row([1.0, 5.0, 9.0]), 5.0, np.inf)
    assert _mask_values(out) == [None, 1.0, 1.0]


def test_threshold_unbounded_keeps_every_valid_cell():
    out = threshold(_row([-1e30, 0.0, ND, 1e30]), -np.inf, np.inf)
    assert _mask_values(out) == [1.0, 1.0, None, 1.0]



# -----------------------------------------------------------------------------
# Rule validation
# -----------------------------------------------------------------------------

@pytest.mark.parametrize(
    "rules",
    [
        # overlap
        [ReclassRule(0, 10, 1), ReclassRule(5, 15, 2)],
        # gap
        [ReclassRule(0, 10, 1), ReclassRule(11, 15, 2)],
        # shared edge owned by both
        [ReclassRule(0, 10, 1, closed="both"), ReclassRule(10, 15, 2, closed="both")],
        # shared edge owned by neither
        [ReclassRule(0, 10, 1, closed="left"), ReclassRule(10, 15, 2, closed="right")],
        # inverted
        [ReclassRule(10, 0, 1)],
        # empty interval
        [ReclassRule(5, 5, 1, closed="left")],
        # bad closed keyword
        [ReclassRule(0, 1, 1, closed="open")],
        # NaN bound
        [ReclassRule(float("nan"), 1, 1)],
        [],
    ],
)
def test_invalid_rules_raise(rules):
    with pytest.raises(InvalidRange):
        validate_rules(rules)


def test_threshold_inverted_range_raises():
    with pytest.raises(InvalidRange):
        threshold(_row([1.0]), 18, 12)


def test_invalid_range_is_a_value_error():
    with pytest.raises(ValueError):
        threshold(_row([1.0]), 18, 12)


def test_rule_str():
    assert str(ReclassRule(2.6, 3.0, 1.0)) == "[2.6, 3] -> 1"
    assert str(ReclassRule(3.0, np.inf, None, closed="neither")) == "(3, inf) -> nodata"


# -----------------------------------------------------------------------------
# Combine
# -----------------------------------------------------------------------------

def test_combine_is_logical_and():
    a = _row([1, 1, 0, 0])
    b = _row([1, 0, 1, 0])
    assert _mask_values(combine(a, b)) == [1.0, 0.0, 0.0, 0.0]


def test_combine_is_commutative_and_idempotent():
    a = _row([1, ND, 0, 1, ND])
    b = _row([1, 1, ND, 0, ND])

    ab = combine(a, b)
    ba = combine(b, a)
    assert _mask_values(ab) == _mask_values(ba)
    assert _mask_values(combine(a, a)) == _mask_values(a)

    z = combine(a, a, nodata_policy="zero")
    assert _mask_values(combine(z, z, nodata_policy="zero")) == _mask_values(z)


def test_combine_nodata_policies():
    a = _row([1, ND, 1])
    b = _row([1, 1, np.nan])

    assert _mask_values(combine(a, b, nodata_policy="propagate")) == [1.0, None, None]
    assert _mask_values(combine(a, b, nodata_policy="zero")) == [1.0, 0.0, 0.0]


def test_combine_scales_by_area():
    mask = _row([1, 0, ND])
    area = _row([100.0, 100.0, 100.0])
    assert _mask_values(combine(mask, area)) == [100.0, 0.0, None]


def test_combine_rejects_misaligned_grids():
    a = _row([1, 1])
    with pytest.raises(ShapeMismatch):
        combine(a, _row([1, 1, 1]))
    with pytest.raises(ShapeMismatch):
        combine(a, _row([1, 1], crs="EPSG:3857"))


def test_combine_unknown_policy():
    a = _row([1, 1])
    with pytest.raises(ValueError):
        combine(a, a, nodata_policy="ignore")
