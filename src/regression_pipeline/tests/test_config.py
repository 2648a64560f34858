from pathlib import Path

import pytest

from regression_pipeline.config import Config

DEFAULT_CONFIG = Path(__file__).resolve().parents[3] / "config" / "default.yaml"


def test_from_yaml_fills_empty_sections(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "data:\n"
        "  path: data.csv\n"
        "  target_col: y\n"
        "preprocessing:\n"
        "model:\n"
        "  families: [\"null\", lasso]\n"
    )
    cfg = Config.from_yaml(str(path))

    assert cfg.data == {"path": "data.csv", "target_col": "y"}
    assert cfg.preprocessing == {}
    assert cfg.model["families"] == ["null", "lasso"]
    assert cfg.validation == {} and cfg.output == {}


def test_default_config_parses():
    cfg = Config.from_yaml(str(DEFAULT_CONFIG))
    assert cfg.data["target_col"] == "y"
    assert cfg.model["grids"]["lasso"]["alpha"][0] == pytest.approx(1e-4)


def test_missing_target_is_rejected(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("data:\n  path: data.csv\n")
    with pytest.raises(ValueError, match="target_col"):
        Config.from_yaml(str(path))


def test_unknown_section_is_rejected(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("data:\n  path: data.csv\n  target_col: y\ntraining:\n  epochs: 3\n")
    with pytest.raises(ValueError, match="training"):
        Config.from_yaml(str(path))
