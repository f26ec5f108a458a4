#!/usr/bin/env python3

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure we can import from src/ without installing the package
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
sys.path.insert(0, str(SRC))

from suitmap.config import (
    coerce_bbox,
    coerce_range,
    format_bbox,
    get_section,
    intersect_bbox,
    load_yaml,
    resolve_path,
)
from suitmap.errors import NotFound, UnsupportedInterpolation
from suitmap.pipeline import PipelineConfig


def _minimal_cfg(**overrides):
    cfg = {
        "temperature": {"dir": "tmean", "range": [12, 18]},
        "secondary": {"path": "ph.tif", "range": [2.6, 3.0]},
        "zones": {"path": "zones.gpkg", "id_field": "ZONE_ID"},
    }
    for section, values in overrides.items():
        cfg.setdefault(section, {}).update(values)
    return cfg


# -----------------------------------------------------------------------------
# YAML / helpers
# -----------------------------------------------------------------------------

def test_load_yaml_errors(tmp_path):
    with pytest.raises(NotFound):
        load_yaml(tmp_path / "missing.yaml")

    bad = tmp_path / "list.yaml"
    bad.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_yaml(bad)


def test_get_section():
    assert get_section({}, "area") == {}
    assert get_section({"area": {"unit": "ha"}}, "area") == {"unit": "ha"}
    with pytest.raises(ValueError):
        get_section({"area": "ha"}, "area")


def test_coerce_range():
    assert coerce_range([12, 18], "t") == (12.0, 18.0)
    assert coerce_range((3, 3), "t") == (3.0, 3.0)
    for bad in ([18, 12], [1], "12-18", None):
        with pytest.raises(ValueError):
            coerce_range(bad, "t")


def test_bbox_helpers():
    assert coerce_bbox(["0", 1, 2, 3]) == (0.0, 1.0, 2.0, 3.0)
    assert coerce_bbox([2, 0, 1, 1]) is None
    assert coerce_bbox([0, 0, 1]) is None
    assert coerce_bbox(None) is None

    assert intersect_bbox((0, 0, 2, 2), (1, 1, 3, 3)) == (1, 1, 2, 2)
    assert intersect_bbox((0, 0, 1, 1), (1, 0, 2, 1)) is None

    assert format_bbox((0, 0, 1, 1), precision=1) == "[0.0, 0.0, 1.0, 1.0]"


def test_resolve_path(tmp_path):
    assert resolve_path(None) is None
    assert resolve_path("") is None
    assert resolve_path("a/b.tif", tmp_path) == tmp_path / "a" / "b.tif"
    assert resolve_path(str(tmp_path), Path("/elsewhere")) == tmp_path


# -----------------------------------------------------------------------------
# PipelineConfig
# -----------------------------------------------------------------------------

def test_pipeline_config_defaults(tmp_path):
    cfg = PipelineConfig.from_dict(_minimal_cfg(), base_dir=tmp_path)

    assert cfg.temperature_dir == tmp_path / "tmean"
    assert cfg.temperature_pattern == "*.tif"
    assert cfg.temperature_range == (12.0, 18.0)
    assert cfg.temperature_offset == pytest.approx(-273.15)
    assert cfg.secondary_kind == "continuous"
    assert cfg.method == "bilinear"
    assert cfg.nodata_policy == "propagate"
    assert cfg.area_unit == "km2"
    assert cfg.bounds is None


def test_pipeline_config_categorical_defaults_to_nearest():
    cfg = PipelineConfig.from_dict(_minimal_cfg(secondary={"kind": "categorical"}))
    assert cfg.method == "nearest"


def test_pipeline_config_rejects_bad_values():
    with pytest.raises(ValueError, match="temperature.dir"):
        PipelineConfig.from_dict({"temperature": {"range": [1, 2]}})
    with pytest.raises(ValueError):
        PipelineConfig.from_dict(_minimal_cfg(combine={"nodata_policy": "ignore"}))
    with pytest.raises(ValueError):
        PipelineConfig.from_dict(_minimal_cfg(area={"unit": "acre"}))
    with pytest.raises(ValueError):
        PipelineConfig.from_dict(dict(_minimal_cfg(), bounds=[1, 2, 3]))
    with pytest.raises(UnsupportedInterpolation):
        PipelineConfig.from_dict(_minimal_cfg(secondary={"kind": "categorical", "method": "bilinear"}))


def test_pipeline_config_is_frozen():
    cfg = PipelineConfig.from_dict(_minimal_cfg())
    with pytest.raises(AttributeError):
        cfg.nodata_policy = "zero"


def test_shipped_example_config_loads():
    cfg = PipelineConfig.from_yaml(ROOT / "config" / "suitability.yaml")
    assert cfg.temperature_range == (12.0, 18.0)
    assert cfg.secondary_range == (2.6, 3.0)
    assert cfg.write_grids is True
