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

from suitmap.errors import NotFound
from suitmap.grid import grid_from_array, write_grid
from suitmap.ingest.discover import discover_rasters, load_stack


def test_discover_sorts_series_by_name(tmp_path):
    for year in (2018, 2016, 2017):
        (tmp_path / f"tmean_{year}.tif").touch()
    (tmp_path / "notes.txt").touch()
    (tmp_path / "prec_2016.tif").touch()

    paths = discover_rasters(tmp_path, "tmean_*.tif")
    assert [p.name for p in paths] == ["tmean_2016.tif", "tmean_2017.tif", "tmean_2018.tif"]


def test_discover_does_not_open_files(tmp_path):
    # not valid rasters; discovery must not care
    (tmp_path / "a.tif").write_text("not a raster")
    assert discover_rasters(tmp_path, "*.tif") == [tmp_path / "a.tif"]


def test_discover_missing_directory(tmp_path):
    with pytest.raises(NotFound):
        discover_rasters(tmp_path / "nope", "*.tif")


def test_discover_no_matches(tmp_path):
    (tmp_path / "a.txt").touch()
    with pytest.raises(NotFound):
        discover_rasters(tmp_path, "*.tif")


def test_load_stack_reads_in_order(tmp_path):
    for i, year in enumerate((2016, 2017)):
        g = grid_from_array(np.full((2, 2), float(i)), (0, 0, 2, 2), "EPSG:4326")
        write_grid(g, tmp_path / f"t_{year}.tif")

    grids = load_stack(discover_rasters(tmp_path, "t_*.tif"))
    assert len(grids) == 2
    assert grids[0].data[0, 0] == 0.0
    assert grids[1].data[0, 0] == 1.0


def test_load_stack_empty():
    with pytest.raises(NotFound):
        load_stack([])
