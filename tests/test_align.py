#!/usr/bin/env python3

from __future__ import annotations

import sys
import warnings
from pathlib import Path

import numpy as np
import pytest

# Ensure we can import from src/ without installing the package
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from suitmap.errors import LossyResampleWarning, ShapeMismatch, UnsupportedInterpolation
from suitmap.geo.align import (
    CATEGORICAL,
    CONTINUOUS,
    align_grid,
    check_method,
    crop_grid,
    default_method,
    reproject_grid,
    resample_grid,
)
from suitmap.grid import grid_from_array, grid_from_bounds, is_aligned


def _grid(values, bounds, crs="EPSG:32633"):
    return grid_from_array(np.asarray(values, dtype="float64"), bounds, crs)


def _ramp(n=10):
    return _grid(np.arange(n * n).reshape(n, n), (0, 0, n, n))


# -----------------------------------------------------------------------------
# Method / kind pairing
# -----------------------------------------------------------------------------

def test_default_methods():
    assert default_method(CATEGORICAL) == "nearest"
    assert default_method(CONTINUOUS) == "bilinear"


@pytest.mark.parametrize("method", ["nearest", "mode"])
def test_categorical_methods_allowed(method):
    check_method(method, CATEGORICAL)


@pytest.mark.parametrize("method", ["bilinear", "cubic", "average"])
def test_continuous_only_methods_rejected_for_categorical(method):
    check_method(method, CONTINUOUS)
    with pytest.raises(UnsupportedInterpolation):
        check_method(method, CATEGORICAL)


def test_unknown_method_and_kind():
    with pytest.raises(UnsupportedInterpolation):
        check_method("sinc", CONTINUOUS)
    with pytest.raises(ValueError):
        check_method("nearest", "ordinal")


def test_align_categorical_with_bilinear_raises():
    g = _ramp()
    with pytest.raises(UnsupportedInterpolation):
        align_grid(g, g, method="bilinear", kind=CATEGORICAL)


# -----------------------------------------------------------------------------
# Aligning onto itself changes nothing
# -----------------------------------------------------------------------------

def test_operations_on_aligned_grid_are_noops():
    g = _ramp()
    for out in (
        reproject_grid(g, g.crs),
        crop_grid(g, g),
        crop_grid(g, g.bounds),
        resample_grid(g, g),
        align_grid(g, g),
    ):
        assert is_aligned(out, g)
        np.testing.assert_array_equal(out.data, g.data)


# -----------------------------------------------------------------------------
# Crop
# -----------------------------------------------------------------------------

def test_crop_snaps_outward_to_whole_cells():
    g = _ramp()
    out = crop_grid(g, (2.5, 3, 6, 8))

    assert out.shape == (5, 4)
    assert out.bounds == pytest.approx((2, 3, 6, 8))
    assert out.res == g.res
    np.testing.assert_array_equal(out.data, g.data[2:7, 2:6])


def test_crop_larger_extent_keeps_whole_grid():
    g = _ramp()
    out = crop_grid(g, (-5, -5, 50, 50))
    assert is_aligned(out, g)


def test_crop_disjoint_extent_raises():
    with pytest.raises(ShapeMismatch):
        crop_grid(_ramp(), (20, 20, 30, 30))


def test_crop_reference_in_other_crs_raises():
    other = _grid(np.zeros((2, 2)), (0, 0, 2, 2), crs="EPSG:4326")
    with pytest.raises(ShapeMismatch):
        crop_grid(_ramp(), other)


def test_crop_invalid_bounds():
    with pytest.raises(ValueError):
        crop_grid(_ramp(), (5, 5, 1, 1))


# -----------------------------------------------------------------------------
# Resample
# -----------------------------------------------------------------------------

def test_categorical_upsample_with_nearest_keeps_classes(recwarn):
    classes = np.array([[1, 2], [3, 4]], dtype="float64")
    src = _grid(classes, (0, 0, 4, 4))
    reference = grid_from_bounds((0, 0, 4, 4), 1.0, "EPSG:32633")

    out = resample_grid(src, reference, method="nearest", kind=CATEGORICAL)

    assert is_aligned(out, reference)
    np.testing.assert_array_equal(out.data, np.kron(classes, np.ones((2, 2))))
    assert set(np.unique(out.data)) <= {1.0, 2.0, 3.0, 4.0}
    assert not [w for w in recwarn if issubclass(w.category, LossyResampleWarning)]


def test_coarsening_warns_and_aggregates():
    src = _grid(np.full((4, 4), 5.0), (0, 0, 4, 4))
    reference = grid_from_bounds((0, 0, 4, 4), 2.0, "EPSG:32633")

    with pytest.warns(LossyResampleWarning):
        out = resample_grid(src, reference, method="average", kind=CONTINUOUS)

    assert out.shape == (2, 2)
    np.testing.assert_allclose(out.data, 5.0)


def test_resample_requires_same_crs():
    src = _ramp()
    reference = grid_from_bounds((0, 0, 10, 10), 2.0, "EPSG:32632")
    with pytest.raises(ShapeMismatch):
        resample_grid(src, reference)


# -----------------------------------------------------------------------------
# Full alignment across CRSs
# -----------------------------------------------------------------------------

def test_align_lonlat_onto_utm_grid():
    src = grid_from_bounds((10, 45, 12, 47), 0.01, "EPSG:4326", fill=7.0)
    reference = grid_from_bounds((640000, 5080000, 670000, 5110000), 1000.0, "EPSG:32632")

    with warnings.catch_warnings():
        warnings.simplefilter("ignore", LossyResampleWarning)
        out = align_grid(src, reference, method="bilinear", kind=CONTINUOUS)

    assert is_aligned(out, reference)
    valid = out.valid_mask()
    assert valid[1:-1, 1:-1].all()
    np.testing.assert_allclose(out.data[valid], 7.0)

    # aligning again is a no-op
    again = align_grid(out, reference)
    np.testing.assert_array_equal(again.data, out.data)


def test_reproject_changes_crs_and_keeps_values():
    src = grid_from_bounds((10, 45, 11, 46), 0.05, "EPSG:4326", fill=3.0)
    out = reproject_grid(src, "EPSG:3857", method="nearest", kind=CATEGORICAL)

    assert out.crs.to_epsg() == 3857
    assert set(np.unique(out.data[out.valid_mask()])) == {3.0}
