import math

import pytest

from tessgraph.config import DEFAULT_CONFIG, PipelineConfig, config_from_dict, load_config


def test_defaults():
    config = PipelineConfig()
    assert config.curve_quality == 2.5
    assert config.surface_quality == 2.5
    assert config.tessellate_quality == 2.0
    assert config.allow_merge
    assert config.primitive_aliases["nurbsCurve"] == "curve"
    assert config.flat_limit == pytest.approx(1.0 / 180.0)
    assert config.smooth_limit == pytest.approx(math.cos(math.radians(45.0)))


def test_load_yaml(tmp_path):
    path = tmp_path / "tess.yaml"
    path.write_text(
        "curve_quality: 4.0\n"
        "smooth_limit_degrees: 30\n"
        "tess_url: https://tess.example.com/api\n"
        "primitive_aliases:\n"
        "  oldLine: line\n"
    )
    config = load_config(path)
    assert config.curve_quality == 4.0
    assert config.smooth_limit_degrees == 30
    assert config.tess_url == "https://tess.example.com/api"
    assert config.primitive_aliases["oldLine"] == "line"
    # defaults survive alongside additions
    assert config.primitive_aliases["nurbsSurface"] == "surface"


def test_empty_yaml_is_default(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert load_config(path) == DEFAULT_CONFIG


def test_unknown_keys_rejected():
    with pytest.raises(ValueError, match="unknown configuration keys: bogus"):
        config_from_dict({"bogus": 1})


def test_non_mapping_rejected(tmp_path):
    path = tmp_path / "list.yaml"
    path.write_text("- 1\n- 2\n")
    with pytest.raises(ValueError):
        load_config(path)


def test_with_overrides():
    config = DEFAULT_CONFIG.with_overrides(token="abc", timeout=5)
    assert config.token == "abc"
    assert config.timeout == 5
    assert DEFAULT_CONFIG.token is None
